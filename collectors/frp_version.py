from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import time
from typing import Callable, Optional, Sequence

from utils import atomic_write_text, read_text

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(r"v?\d+\.\d+\.\d+")
VERSION_CACHE_TTL = 3600
NOT_INSTALLED = "not installed"
UNKNOWN = "unknown"

Runner = Callable[[Sequence[str]], str]


def _run_version(cmd: Sequence[str]) -> str:
    try:
        res = subprocess.run(list(cmd), capture_output=True, text=True, timeout=5, check=False)
        return (res.stdout or "") + (res.stderr or "")
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("version check %s failed: %s", cmd, e)
        return ""


def _normalize(raw: str) -> Optional[str]:
    m = VERSION_RE.search(raw or "")
    if not m:
        return None
    v = m.group(0)
    return v if v.startswith("v") else f"v{v}"


def _is_exe(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def detect_frp_version(frp_dir: str, runner: Optional[Runner] = None) -> str:
    """frps --version, then frpc --version, then <frp_dir>/.version."""
    run = runner or _run_version
    frps = os.path.join(frp_dir, "frps")
    frpc = os.path.join(frp_dir, "frpc")
    if not (_is_exe(frps) and _is_exe(frpc)):
        return NOT_INSTALLED

    for binary in (frps, frpc):
        v = _normalize(run([binary, "--version"]))
        if v:
            return v

    v = _normalize(read_text(os.path.join(frp_dir, ".version")) or "")
    return v or UNKNOWN


def cached_frp_version(
    state_dir: str,
    frp_dir: str,
    ttl: int = VERSION_CACHE_TTL,
    runner: Optional[Runner] = None,
    now: Optional[float] = None,
) -> str:
    """Version string cached on disk for `ttl` seconds (probing binaries is slow)."""
    now = time.time() if now is None else now
    cache_path = os.path.join(state_dir, "frp_version.cache")
    raw = read_text(cache_path)
    if raw:
        try:
            doc = json.loads(raw)
            if now - float(doc.get("timestamp", 0)) < ttl and doc.get("version"):
                return str(doc["version"])
        except (ValueError, TypeError, AttributeError):
            logger.debug("ignoring unreadable version cache %s", cache_path)

    version = detect_frp_version(frp_dir, runner=runner)
    try:
        atomic_write_text(cache_path, json.dumps({"version": version, "timestamp": now}))
    except OSError as e:
        logger.warning("Could not write FRP version cache: %s", e)
    return version
