# === settings.py ===
# Environment-driven configuration for the status cache, metrics worker and
# HTTP surface. Every numeric knob falls back to its default when the value
# is missing, non-numeric or not positive.

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

DEFAULT_STATUS_TTL = 5
DEFAULT_LEASE_SECONDS = 30
DEFAULT_INTERVAL_SECONDS = 60
DEFAULT_RETENTION_HOURS = 24
DEFAULT_DASHBOARD_PORT = 7500
DEFAULT_HTTP_PORT = 9150

PROXY_KINDS: Tuple[str, ...] = ("tcp", "http", "https", "udp", "stcp", "xtcp")


def _positive_int(env: Mapping[str, str], names: Tuple[str, ...], default: int) -> int:
    """First env var in `names` that is set wins; invalid values yield `default`."""
    for name in names:
        raw = env.get(name)
        if raw is None or str(raw).strip() == "":
            continue
        try:
            val = int(str(raw).strip())
        except ValueError:
            return default
        return val if val > 0 else default
    return default


def _resolve_state_dir(env: Mapping[str, str]) -> str:
    override = env.get("MOONFRP_STATE_DIR")
    if override:
        return override
    home = env.get("HOME") or os.path.expanduser("~")
    return os.path.join(home, ".moonfrp")


@dataclass
class Settings:
    state_dir: str
    status_ttl: int = DEFAULT_STATUS_TTL
    lease_seconds: int = DEFAULT_LEASE_SECONDS
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    retention_hours: int = DEFAULT_RETENTION_HOURS
    metrics_dir: str = ""
    metrics_file: str = ""
    history_dir: str = ""
    index_db: str = ""
    frp_dir: str = "/opt/frp"
    dashboard_url: str = f"http://127.0.0.1:{DEFAULT_DASHBOARD_PORT}"
    dashboard_user: str = "admin"
    dashboard_password: str = ""
    proxy_kinds: Tuple[str, ...] = field(default=PROXY_KINDS)
    http_host: str = "127.0.0.1"
    http_port: int = DEFAULT_HTTP_PORT
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.metrics_dir:
            self.metrics_dir = os.path.join(self.state_dir, "metrics")
        if not self.metrics_file:
            self.metrics_file = os.path.join(self.metrics_dir, "moonfrp_metrics.prom")
        if not self.history_dir:
            self.history_dir = os.path.join(self.metrics_dir, "history")
        if not self.index_db:
            self.index_db = os.path.join(self.state_dir, "index.db")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        state_dir = _resolve_state_dir(env)

        host = env.get("FRP_DASHBOARD_HOST") or "127.0.0.1"
        port = _positive_int(env, ("MOONFRP_SERVER_DASHBOARD_PORT",), DEFAULT_DASHBOARD_PORT)
        dashboard_url = (env.get("FRP_DASHBOARD_URL") or f"http://{host}:{port}").rstrip("/")

        return cls(
            state_dir=state_dir,
            status_ttl=_positive_int(env, ("STATUS_CACHE_TTL", "MOONFRP_STATUS_TTL"), DEFAULT_STATUS_TTL),
            lease_seconds=_positive_int(env, ("STATUS_CACHE_LEASE_SECONDS",), DEFAULT_LEASE_SECONDS),
            interval_seconds=_positive_int(env, ("METRICS_INTERVAL_SECONDS",), DEFAULT_INTERVAL_SECONDS),
            retention_hours=_positive_int(env, ("RETENTION_HOURS",), DEFAULT_RETENTION_HOURS),
            metrics_dir=env.get("METRICS_DIR", ""),
            metrics_file=env.get("METRICS_FILE", ""),
            history_dir=env.get("METRICS_HISTORY_DIR", ""),
            index_db=env.get("MOONFRP_INDEX_DB", ""),
            frp_dir=env.get("MOONFRP_INSTALL_DIR") or "/opt/frp",
            dashboard_url=dashboard_url,
            dashboard_user=env.get("MOONFRP_SERVER_DASHBOARD_USER") or "admin",
            dashboard_password=env.get("MOONFRP_SERVER_DASHBOARD_PASSWORD") or "",
            http_host=env.get("MOONFRP_HTTP_HOST") or "127.0.0.1",
            http_port=_positive_int(env, ("MOONFRP_HTTP_PORT",), DEFAULT_HTTP_PORT),
            log_level=(env.get("MOONFRP_LOG_LEVEL") or "INFO").upper(),
            log_file=env.get("MOONFRP_LOG_FILE") or None,
        )
