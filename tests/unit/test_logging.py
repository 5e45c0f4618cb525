"""Tests for logging setup."""

import logging
import os
import time

import structlog

from fincoach.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    prune_run_logs,
)


def touch_logs(directory, names):
    paths = []
    for i, name in enumerate(names):
        path = directory / name
        path.write_text("")
        # Distinct, increasing mtimes
        stamp = time.time() - 100 + i
        os.utime(path, (stamp, stamp))
        paths.append(path)
    return paths


def test_prune_keeps_newest(tmp_path):
    oldest, middle, newest = touch_logs(
        tmp_path, ["fincoach_1.log", "fincoach_2.log", "fincoach_3.log"]
    )
    (tmp_path / "other.log").write_text("")

    removed = prune_run_logs(tmp_path, keep=2)

    assert removed == [oldest]
    assert sorted(p.name for p in tmp_path.iterdir()) == [
        "fincoach_2.log",
        "fincoach_3.log",
        "other.log",
    ]


def test_prune_with_fewer_files_than_keep(tmp_path):
    touch_logs(tmp_path, ["fincoach_1.log"])
    assert prune_run_logs(tmp_path, keep=5) == []


def test_configure_creates_run_log(tmp_path):
    logs_dir = tmp_path / "logs"
    logs_dir.mkdir()
    touch_logs(logs_dir, ["fincoach_old.log"])

    log_file = configure_logging(logs_dir=logs_dir, keep=1, debug=False)

    assert log_file.parent == logs_dir
    assert log_file.exists()
    assert not (logs_dir / "fincoach_old.log").exists()
    assert len(logging.getLogger().handlers) == 2


def test_reconfigure_replaces_handlers(tmp_path):
    configure_logging(logs_dir=tmp_path, keep=3, debug=True)
    configure_logging(logs_dir=tmp_path, keep=3, debug=True)
    assert len(logging.getLogger().handlers) == 2


def test_bound_context_is_merged():
    bind_context(request_id="req-1")
    try:
        assert structlog.contextvars.get_contextvars()["request_id"] == "req-1"
    finally:
        clear_context()
    assert "request_id" not in structlog.contextvars.get_contextvars()
