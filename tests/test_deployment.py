"""
Test suite for the deployment stage.
"""

import numpy as np
import pytest

from conftest import HealthyDeployer, UnhealthyDeployer
from retraining.config import DeploymentPolicy
from retraining.deployment import (
    DEFAULT_ROLLBACK_REASON,
    DeploymentStage,
    SimulatedDeployer,
    plan_rollout,
)
from retraining.errors import DeploymentError
from retraining.types import DeploymentStrategy, HealthCheckResult, RetrainableModelType

MODEL = RetrainableModelType.MARKET_PREDICTOR


class TestPlanRollout:

    @pytest.mark.parametrize("policy,expected", [
        (DeploymentPolicy(), [100.0]),
        (DeploymentPolicy(strategy=DeploymentStrategy.GRADUAL), [10.0, 25.0, 50.0, 75.0, 100.0]),
        (DeploymentPolicy(strategy=DeploymentStrategy.CANARY, canary_percent=5.0), [5.0, 100.0]),
        (DeploymentPolicy(strategy=DeploymentStrategy.BLUE_GREEN), [0.0, 100.0]),
    ])
    def test_traffic_steps(self, policy, expected):
        assert plan_rollout(policy) == expected


class TestDeploymentStage:
    """Test live-model tracking and rollback handling."""

    def test_successful_deploy_tracks_live_model(self, clock):
        deployer = HealthyDeployer()
        stage = DeploymentStage(deployer=deployer, clock=clock)

        first = stage.deploy(MODEL, "model_a", DeploymentPolicy())
        second = stage.deploy(MODEL, "model_b", DeploymentPolicy(strategy=DeploymentStrategy.CANARY))

        assert first.success and first.previous_model_id is None
        assert second.success and second.previous_model_id == "model_a"
        assert second.traffic_steps == [5.0, 100.0]
        assert second.deployed_at == clock()
        assert stage.current_model(MODEL) == "model_b"
        assert stage.live_models() == {MODEL: "model_b"}
        assert deployer.deployed[1] == (MODEL, "model_b", [5.0, 100.0])

    def test_unhealthy_deploy_rolls_back(self, clock):
        stage = DeploymentStage(deployer=HealthyDeployer(), clock=clock)
        stage.deploy(MODEL, "model_a", DeploymentPolicy())
        stage.deployer = UnhealthyDeployer()

        result = stage.deploy(MODEL, "model_b", DeploymentPolicy())

        assert not result.success
        assert result.rolled_back
        assert result.rollback_reason == "Latency SLA breached"
        assert result.previous_model_id == "model_a"
        assert stage.current_model(MODEL) == "model_a"

    def test_unhealthy_deploy_without_rollback(self, clock):
        stage = DeploymentStage(deployer=UnhealthyDeployer(), clock=clock)

        result = stage.deploy(MODEL, "model_b", DeploymentPolicy(auto_rollback=False))

        assert not result.success
        assert not result.rolled_back
        assert result.rollback_reason is None
        assert stage.current_model(MODEL) is None

    def test_default_rollback_reason(self, clock):
        class SilentFailure:
            def deploy(self, model_type, model_id, policy, traffic_steps):
                return HealthCheckResult(healthy=False, latency_ms=100.0, error_rate=0.5)

        result = DeploymentStage(deployer=SilentFailure(), clock=clock).deploy(MODEL, "model_b", DeploymentPolicy())

        assert result.rollback_reason == DEFAULT_ROLLBACK_REASON

    def test_deployer_exception_is_wrapped(self, clock):
        class UnreachableRegistry:
            def deploy(self, model_type, model_id, policy, traffic_steps):
                raise ConnectionError("registry unreachable")

        stage = DeploymentStage(deployer=HealthyDeployer(), clock=clock)
        stage.deploy(MODEL, "model_a", DeploymentPolicy())
        stage.deployer = UnreachableRegistry()

        with pytest.raises(DeploymentError, match="Deployment of model_b failed: registry unreachable") as exc:
            stage.deploy(MODEL, "model_b", DeploymentPolicy())

        assert isinstance(exc.value.__cause__, ConnectionError)
        assert stage.current_model(MODEL) == "model_a"

    def test_reset(self, clock):
        stage = DeploymentStage(deployer=HealthyDeployer(), clock=clock)
        stage.deploy(MODEL, "model_a", DeploymentPolicy())
        stage.reset()
        assert stage.live_models() == {}


class TestSimulatedDeployer:

    def test_always_healthy(self):
        deployer = SimulatedDeployer(rng=np.random.default_rng(0), success_rate=1.0)
        for _ in range(10):
            health = deployer.deploy(MODEL, "model_a", DeploymentPolicy(), [100.0])
            assert health.healthy
            assert 10 <= health.latency_ms < 60
            assert 0 <= health.error_rate < 0.01

    def test_always_unhealthy(self):
        deployer = SimulatedDeployer(rng=np.random.default_rng(0), success_rate=0.0)
        health = deployer.deploy(MODEL, "model_a", DeploymentPolicy(), [100.0])
        assert not health.healthy
        assert health.message == DEFAULT_ROLLBACK_REASON

    def test_invalid_success_rate(self):
        with pytest.raises(ValueError):
            SimulatedDeployer(success_rate=1.5)

    def test_default_stage_uses_simulation(self):
        assert isinstance(DeploymentStage().deployer, SimulatedDeployer)
