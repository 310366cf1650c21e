"""Tests for the moonfrp-observe command line."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys

import pytest

import cli
from services import status_payload
from services.status_payload import FALLBACK_FIELDS


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("MOONFRP_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.delenv("MOONFRP_LOG_FILE", raising=False)
    # basicConfig(force=True) would drop the caplog handler
    monkeypatch.setattr(cli, "setup_logging", lambda *a, **kw: None)
    monkeypatch.setattr(
        status_payload, "collect_status_fields",
        lambda settings: dict(FALLBACK_FIELDS, frp_version="v0.52.3", total_configs=2, total_proxies=6),
    )
    return tmp_path


def test_dashboard_before_first_collection(env, capsys) -> None:
    assert cli.main(["dashboard"]) == 0
    assert "No metrics available yet" in capsys.readouterr().out


def test_status_cold_start_prints_summary(env, capsys) -> None:
    assert cli.main(["status"]) == 0
    out = capsys.readouterr().out
    assert "  FRP: Active (v0.52.3)" in out
    assert "  Configs: 2 (Proxies: 6)" in out
    assert (env / "state" / "status.cache").exists()


def test_status_json(env, capsys) -> None:
    assert cli.main(["status", "--refresh", "--json"]) == 0
    view = json.loads(capsys.readouterr().out)
    assert view["status"]["total_proxies"] == 6
    assert view["stale"] is False


def test_refresh_worker_writes_cache(env) -> None:
    assert cli.main(["status-refresh-worker", "--holder", "w@host"]) == 0
    doc = json.loads((env / "state" / "status.cache").read_text())
    assert json.loads(doc["data"])["frp_version"] == "v0.52.3"
    assert not (env / "state" / "status.cache.lease").exists()


def test_prometheus_snippet(env, capsys) -> None:
    assert cli.main(["prometheus-snippet"]) == 0
    assert "scrape_configs:" in capsys.readouterr().out


def test_unknown_command_exits() -> None:
    with pytest.raises(SystemExit):
        cli.main(["bogus"])


class FakePopen:
    started = []

    def __init__(self, argv, **kwargs):
        self.pid = 4242
        FakePopen.started.append((argv, kwargs))


@pytest.fixture
def popen(monkeypatch):
    FakePopen.started = []
    monkeypatch.setattr(subprocess, "Popen", FakePopen)
    return FakePopen


def test_init_starts_detached_worker(env, popen, caplog) -> None:
    with caplog.at_level(logging.INFO):
        assert cli.main(["init"]) == 0
    argv, kwargs = popen.started[0]
    assert argv == [sys.executable, "-m", "cli", "background"]
    assert kwargs["start_new_session"] is True
    assert kwargs["stdout"] == subprocess.DEVNULL
    assert (env / "state" / "metrics" / "history").is_dir()
    assert "Metrics background worker started (pid 4242)" in caplog.text


def test_init_leaves_running_worker_alone(env, popen, caplog) -> None:
    pid_file = env / "state" / "metrics" / "worker.pid"
    pid_file.parent.mkdir(parents=True)
    pid_file.write_text(f"{os.getpid()}\n")
    with caplog.at_level(logging.INFO):
        assert cli.main(["init"]) == 0
    assert popen.started == []
    assert "already running" in caplog.text


def test_init_replaces_stale_pid(env, popen, monkeypatch) -> None:
    pid_file = env / "state" / "metrics" / "worker.pid"
    pid_file.parent.mkdir(parents=True)
    pid_file.write_text("999999\n")

    def gone(pid, sig):
        raise ProcessLookupError(pid)

    monkeypatch.setattr(os, "kill", gone)
    assert cli.main(["init"]) == 0
    assert len(popen.started) == 1


def test_background_records_and_removes_pid(env, monkeypatch) -> None:
    pid_file = env / "state" / "metrics" / "worker.pid"
    seen = []

    class OneShot:
        def __init__(self, settings):
            pass

        def run(self):
            seen.append(pid_file.read_text())

        def stop(self):
            pass

    monkeypatch.setattr(cli, "MetricsCollector", OneShot)
    assert cli.main(["background"]) == 0
    assert seen == [f"{os.getpid()}\n"]
    assert not pid_file.exists()
