"""
Tests for settings loading and the CLI argument parser.
"""

from datetime import timedelta

import pytest

from marketwatch.cli import build_parser, cmd_reap, cmd_run, cmd_scan, cmd_work
from marketwatch.core.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.dedup_window == timedelta(minutes=15)
        assert s.stale_job_timeout == timedelta(minutes=10)
        assert s.filter_thresholds().market_cap_floor == 10_000_000
        assert s.scoring_config().orderbook_weight == 30
        assert s.alert_thresholds().favorable_scenarios == (
            "organic",
            "breakout",
            "accumulation",
            "healthy",
        )

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MARKETWATCH_DEDUP_WINDOW_MINUTES", "5")
        monkeypatch.setenv("MARKETWATCH_WORKER_INSTANCES", "3")
        monkeypatch.setenv("MARKETWATCH_TRACKED_SYMBOLS", '["BTCUSDT", "PEPEUSDT"]')
        monkeypatch.setenv("MARKETWATCH_RSI_WEIGHT", "25")
        s = Settings(_env_file=None)
        assert s.dedup_window == timedelta(minutes=5)
        assert s.worker_instances == 3
        assert s.tracked_symbols == ["BTCUSDT", "PEPEUSDT"]
        assert s.scoring_config().rsi_weight == 25

    def test_worker_instances_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("MARKETWATCH_WORKER_INSTANCES", "0")
        with pytest.raises(ValueError):
            Settings(_env_file=None)


class TestCliParser:
    @pytest.mark.parametrize(
        "argv, func",
        [(["scan"], cmd_scan), (["reap"], cmd_reap), (["run"], cmd_run)],
    )
    def test_commands(self, argv, func):
        args = build_parser().parse_args(argv)
        assert args.func is func

    def test_work_max_jobs(self):
        args = build_parser().parse_args(["work", "--max-jobs", "5"])
        assert args.func is cmd_work
        assert args.max_jobs == 5

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
