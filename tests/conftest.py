"""Shared fixtures: isolated settings, fake dashboard session, fake systemctl."""

from __future__ import annotations

import json
from typing import Dict, List, Optional

import pytest
import requests

from settings import Settings

UNITS_OUTPUT = """\
  moonfrp-server.service          loaded active   running MoonFRP server
  moonfrp-client-eu.service       loaded active   running MoonFRP client eu
● moonfrp-client-us.service       loaded failed   failed  MoonFRP client us
  moonfrp-visitor-db.service      loaded inactive dead    MoonFRP visitor db
  ssh.service                     loaded active   running OpenBSD Secure Shell server
"""


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, str):
            return json.loads(self._body)
        return self._body


class FakeSession:
    """Stands in for requests.Session; routes by URL suffix."""

    def __init__(self, routes: Optional[Dict[str, FakeResponse]] = None, fail: bool = False):
        self.routes = routes or {}
        self.fail = fail
        self.calls: List[str] = []
        self.closed = False

    def get(self, url, timeout=None, auth=None):
        self.calls.append(url)
        if self.fail:
            raise requests.ConnectionError(f"connection refused: {url}")
        for suffix, res in self.routes.items():
            if url.endswith(suffix):
                return res
        return FakeResponse(404, {})

    def close(self):
        self.closed = True


def fake_runner(output: str = UNITS_OUTPUT):
    def run(cmd):
        return output
    return run


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        state_dir=str(tmp_path / "state"),
        frp_dir=str(tmp_path / "frp"),
        dashboard_url="http://frps.test:7500",
        proxy_kinds=("tcp", "http"),
    )


@pytest.fixture
def proc_root(tmp_path):
    """A fake /proc with stat, meminfo and net/dev."""
    root = tmp_path / "proc"
    (root / "net").mkdir(parents=True)
    (root / "stat").write_text("cpu  100 0 100 800 0 0 0 0 0 0\ncpu0 100 0 100 800 0 0 0 0 0 0\n")
    (root / "meminfo").write_text(
        "MemTotal:        2048000 kB\nMemFree:          512000 kB\nMemAvailable:    1024000 kB\n"
    )
    (root / "net" / "dev").write_text(
        "Inter-|   Receive                                                |  Transmit\n"
        " face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed\n"
        "    lo:    1000      10    0    0    0     0          0         0     1000      10    0    0    0     0       0          0\n"
        "  eth0:    5000      50    0    0    0     0          0         0     3000      30    0    0    0     0       0          0\n"
    )
    return root
