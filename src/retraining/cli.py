"""
Command-line entry point.

Builds one orchestrator from a YAML file, creates the configured
schedules, optionally triggers a manual retraining and waits for it,
keeps the timers running for a while if asked, then prints statistics.

    retraining-scheduler --config config/scheduler_config.yaml \\
        --trigger INSIDER_PREDICTOR --run-for 60
"""

from typing import List, Optional
import argparse
import json
import time

from loguru import logger

from retraining.config import configure_logging, load_config
from retraining.descriptions import format_duration, format_improvement
from retraining.errors import RetrainingRejectedError
from retraining.orchestrator import build_orchestrator
from retraining.types import RetrainableModelType, RetrainingJobStatus


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Model retraining scheduler")
    p.add_argument('--config', help='Path to the YAML configuration file')
    p.add_argument(
        '--trigger',
        choices=[m.value for m in RetrainableModelType],
        help='Trigger a manual retraining for this model type and wait for it'
    )
    p.add_argument('--timeout', type=float, default=300.0, help='Seconds to wait for a triggered job')
    p.add_argument('--run-for', type=float, default=0.0, help='Keep interval timers running for N seconds')
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    raw_config = load_config(args.config)
    configure_logging(raw_config.get('logging'))

    orchestrator = build_orchestrator(raw_config)
    exit_code = 0
    try:
        if args.run_for > 0:
            orchestrator.start()

        if args.trigger:
            try:
                job = orchestrator.trigger_retraining(RetrainableModelType(args.trigger))
            except RetrainingRejectedError as e:
                logger.error(f"Retraining rejected: {e}")
                return 2

            job = orchestrator.wait_for_job(job.job_id, timeout=args.timeout)
            summary = f"{job.job_id}: {job.status.value}"
            if job.duration_ms is not None:
                summary += f" in {format_duration(job.duration_ms)}"
            if job.validation_result is not None:
                summary += f", improvement {format_improvement(job.validation_result.improvement)}"
            if job.error:
                summary += f" ({job.error})"
            print(summary)
            if job.status != RetrainingJobStatus.COMPLETED:
                exit_code = 1

        if args.run_for > 0:
            logger.info(f"Running timers for {args.run_for:.0f}s")
            time.sleep(args.run_for)

        print(json.dumps(orchestrator.get_statistics().to_dict(), indent=2))
    finally:
        orchestrator.destroy()

    return exit_code


if __name__ == '__main__':  # pragma: no cover
    raise SystemExit(main())
