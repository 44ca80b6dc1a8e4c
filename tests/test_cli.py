"""
Test suite for the command-line entry point.
"""

import json

import pytest
import yaml

from retraining.cli import main, parse_args


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "scheduler.yaml"
    path.write_text(yaml.safe_dump({
        'scheduler': {'random_seed': 7, 'max_workers': 2},
        'schedules': [
            {'model_type': 'ANOMALY_DETECTION', 'schedule_type': 'INTERVAL', 'interval_ms': 3600000},
        ],
        'logging': {'level': 'WARNING'},
    }))
    return path


class TestCli:

    def test_parse_args_defaults(self):
        args = parse_args([])
        assert args.config is None
        assert args.trigger is None
        assert args.timeout == 300.0
        assert args.run_for == 0.0

    def test_unknown_model_type_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(['--trigger', 'PRICE_ORACLE'])

    def test_statistics_only(self, config_file, capsys):
        assert main(['--config', str(config_file)]) == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats['total_jobs'] == 0
        assert stats['active_schedules'] == 1

    def test_trigger_and_wait(self, config_file, capsys):
        exit_code = main(['--config', str(config_file), '--trigger', 'SIGNAL_TRACKER', '--timeout', '60'])

        lines = capsys.readouterr().out.splitlines()
        assert exit_code in (0, 1)
        assert lines[0].startswith("job_")
        assert any(status in lines[0] for status in ("COMPLETED", "ROLLED_BACK", "FAILED"))

        stats = json.loads("\n".join(lines[1:]))
        assert stats['total_jobs'] == 1
        assert stats['jobs_by_model_type']['SIGNAL_TRACKER'] == 1
