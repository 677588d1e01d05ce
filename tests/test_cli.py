import argparse

import pytest
from pydantic import ValidationError

from orchestrator.settings import Settings
from worker.cli import build_parser, build_registry, main, parse_toggle


def test_parse_toggle():
    assert parse_toggle("deep=true") == ("deep", True)
    assert parse_toggle("deep=False") == ("deep", False)
    for bad in ("deep", "deep=yes", "=true"):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_toggle(bad)


def test_enqueue_arguments():
    args = build_parser().parse_args(
        ["enqueue", "scrape_statistics", "--toggle", "deep=true", "--toggle", "images=false"]
    )
    assert args.type == "scrape_statistics"
    assert dict(args.toggle) == {"deep": True, "images": False}


def test_enqueue_rejects_unknown_type():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["enqueue", "scrape_everything"])


def test_build_registry():
    assert build_registry([], dry_run=False).job_types == []
    assert "scrape_statistics" in build_registry([], dry_run=True)
    assert "export_overview" in build_registry(["worker.tasks"], dry_run=False)


def test_run_without_handlers_exits_2():
    assert main(["run"]) == 2


def test_settings_reject_heartbeat_not_shorter_than_lease():
    with pytest.raises(ValidationError):
        Settings(LEASE_DURATION_SECONDS=30, HEARTBEAT_INTERVAL_SECONDS=30)
    with pytest.raises(ValidationError):
        Settings(POLL_INTERVAL_SECONDS=10, POLL_INTERVAL_MAX_SECONDS=5)
    with pytest.raises(ValidationError):
        Settings(DEFAULT_MAX_ATTEMPTS=0)
