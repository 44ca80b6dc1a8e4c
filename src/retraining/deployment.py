"""
Model Deployment Stage

Rolls a validated model out according to the job's deployment policy,
runs a post-deployment health check and keeps track of which model is
live for each model type.

The deployer itself is pluggable: any object with
``deploy(model_type, model_id, policy, traffic_steps) -> HealthCheckResult``.
The default ``SimulatedDeployer`` succeeds with a fixed high probability.

Usage Example:
    >>> from retraining.deployment import DeploymentStage, plan_rollout
    >>> from retraining.config import DeploymentPolicy
    >>> plan_rollout(DeploymentPolicy(strategy="CANARY", canary_percent=5))
    [5.0, 100.0]
"""

from typing import Dict, List, Optional, Callable, Protocol
from datetime import datetime
import threading

import numpy as np
from loguru import logger

from retraining.config import DeploymentPolicy
from retraining.errors import DeploymentError
from retraining.types import (
    DeploymentResult,
    DeploymentStrategy,
    HealthCheckResult,
    RetrainableModelType,
)

DEFAULT_ROLLBACK_REASON = "Health check failed after deployment"
DEFAULT_SUCCESS_RATE = 0.95


class ModelDeployer(Protocol):
    """Deployment backend contract."""

    def deploy(
        self,
        model_type: RetrainableModelType,
        model_id: str,
        policy: DeploymentPolicy,
        traffic_steps: List[float]
    ) -> HealthCheckResult:
        ...


def plan_rollout(policy: DeploymentPolicy) -> List[float]:
    """
    Traffic percentages the new model receives, in order.

    IMMEDIATE switches all traffic at once, GRADUAL walks the policy's
    rollout steps, CANARY sends ``canary_percent`` first and BLUE_GREEN
    stands the new model up idle before cutting over.
    """
    strategy = DeploymentStrategy(policy.strategy)
    if strategy == DeploymentStrategy.GRADUAL:
        return [float(step) for step in policy.rollout_steps]
    if strategy == DeploymentStrategy.CANARY:
        return [float(policy.canary_percent), 100.0]
    if strategy == DeploymentStrategy.BLUE_GREEN:
        return [0.0, 100.0]
    return [100.0]


class SimulatedDeployer:
    """Deployer whose health check passes with probability ``success_rate``."""

    def __init__(self, rng: Optional[np.random.Generator] = None, success_rate: float = DEFAULT_SUCCESS_RATE):
        if not 0 <= success_rate <= 1:
            raise ValueError(f"Invalid success rate: {success_rate}")
        self.rng = rng or np.random.default_rng()
        self.success_rate = success_rate

    def deploy(
        self,
        model_type: RetrainableModelType,
        model_id: str,
        policy: DeploymentPolicy,
        traffic_steps: List[float]
    ) -> HealthCheckResult:
        healthy = bool(self.rng.random() < self.success_rate)
        return HealthCheckResult(
            healthy=healthy,
            latency_ms=10 + self.rng.random() * 50,
            error_rate=self.rng.random() * 0.01,
            message=None if healthy else DEFAULT_ROLLBACK_REASON
        )


class DeploymentStage:
    """
    Executes deployments and tracks the live model per model type.

    A failed health check leaves the previously live model in place. With
    ``auto_rollback`` the result is marked rolled back; without it the
    result is a plain failure.
    """

    def __init__(
        self,
        deployer: Optional[ModelDeployer] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.deployer = deployer or SimulatedDeployer(rng=rng)
        self.clock = clock
        self._live_models: Dict[RetrainableModelType, str] = {}
        self._lock = threading.Lock()

    def current_model(self, model_type: RetrainableModelType) -> Optional[str]:
        """Id of the model currently serving ``model_type``."""
        with self._lock:
            return self._live_models.get(model_type)

    def live_models(self) -> Dict[RetrainableModelType, str]:
        with self._lock:
            return dict(self._live_models)

    def deploy(
        self,
        model_type: RetrainableModelType,
        model_id: str,
        policy: DeploymentPolicy
    ) -> DeploymentResult:
        """
        Roll ``model_id`` out and report the outcome.

        Raises:
            DeploymentError: If the deployer itself raises
        """
        previous_model_id = self.current_model(model_type)
        traffic_steps = plan_rollout(policy)

        logger.info(
            f"Deploying {model_id} for {model_type.value} "
            f"({policy.strategy.value}, traffic steps {traffic_steps})"
        )
        try:
            health = self.deployer.deploy(model_type, model_id, policy, traffic_steps)
        except Exception as e:
            raise DeploymentError(f"Deployment of {model_id} failed: {e}") from e

        if health.healthy:
            with self._lock:
                self._live_models[model_type] = model_id
            logger.info(
                f"Deployed {model_id} for {model_type.value}: "
                f"latency {health.latency_ms:.1f}ms, error rate {health.error_rate:.4f}"
            )
            return DeploymentResult(
                strategy=policy.strategy,
                success=True,
                deployed_model_id=model_id,
                deployed_at=self.clock(),
                previous_model_id=previous_model_id,
                health_check=health,
                traffic_steps=traffic_steps
            )

        rollback_reason = None
        if policy.auto_rollback:
            rollback_reason = health.message or DEFAULT_ROLLBACK_REASON
            logger.warning(
                f"Rolling back {model_id} for {model_type.value}, "
                f"keeping {previous_model_id or 'no model'}: {rollback_reason}"
            )
        else:
            logger.error(f"Deployment of {model_id} for {model_type.value} failed without rollback")

        return DeploymentResult(
            strategy=policy.strategy,
            success=False,
            deployed_model_id=model_id,
            deployed_at=self.clock(),
            previous_model_id=previous_model_id,
            rolled_back=policy.auto_rollback,
            rollback_reason=rollback_reason,
            health_check=health,
            traffic_steps=traffic_steps
        )

    def reset(self) -> None:
        """Forget every live model."""
        with self._lock:
            self._live_models.clear()
