"""
File-backed store for the fleet status cache.

Independent processes (menu front-ends, the web app, detached refresh
workers) share the cache only through this directory:

    status.cache        {"timestamp": <epoch>, "data": "<payload json>"}
    status.cache.error  {"message": ..., "exit_code": ..., "timestamp": ...}
    status.cache.lease  {"holder": "pid@host", "expires_at": <epoch>}

Timestamp and data live in one document that is replaced atomically, so a
reader can never pair fresh data with an old timestamp or the reverse. The
lease stands in for the old "refreshing" flag: it only avoids duplicate
refreshes (no mutual exclusion) and expires on its own when the refresher
died.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from errors import WriteFailure
from utils import atomic_write_text, read_text, remove_quietly

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5


def default_holder() -> str:
    return f"{os.getpid()}@{socket.gethostname()}"


@dataclass
class CacheEntry:
    timestamp: float = 0.0
    data: str = ""
    ttl: int = DEFAULT_TTL
    refreshing: bool = False

    def age(self, now: float) -> float:
        return max(0.0, now - self.timestamp)

    def is_fresh(self, now: float, ttl: Optional[int] = None) -> bool:
        return bool(self.data) and self.age(now) < (ttl or self.ttl)


@dataclass
class Lease:
    holder: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore:
    def __init__(self, directory: str, name: str = "status.cache"):
        self.directory = directory
        self.cache_path = os.path.join(directory, name)
        self.error_path = self.cache_path + ".error"
        self.lease_path = self.cache_path + ".lease"

    # ---- data + timestamp ----------------------------------------------------

    def load(self) -> Optional[CacheEntry]:
        """Persisted entry, or None when missing/unreadable (treated as cold)."""
        raw = read_text(self.cache_path)
        if not raw:
            return None
        try:
            doc = json.loads(raw)
            return CacheEntry(timestamp=float(doc["timestamp"]), data=str(doc["data"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable status cache %s: %s", self.cache_path, e)
            return None

    def save(self, timestamp: float, data: str) -> None:
        doc = json.dumps({"timestamp": timestamp, "data": data})
        try:
            atomic_write_text(self.cache_path, doc)
        except OSError as e:
            raise WriteFailure(f"could not write {self.cache_path}: {e}") from e

    # ---- error marker --------------------------------------------------------

    def read_error(self) -> Optional[Dict[str, Any]]:
        raw = read_text(self.error_path)
        if raw is None:
            return None
        try:
            doc = json.loads(raw)
            if isinstance(doc, dict):
                return doc
        except ValueError:
            pass
        # foreign or truncated marker: still a failure signal
        return {"message": raw.strip() or "unknown error", "exit_code": 1}

    def write_error(self, message: str, exit_code: int = 1, now: Optional[float] = None) -> None:
        doc = {"message": message, "exit_code": exit_code or 1, "timestamp": time.time() if now is None else now}
        try:
            atomic_write_text(self.error_path, json.dumps(doc))
        except OSError as e:
            raise WriteFailure(f"could not write {self.error_path}: {e}") from e

    def clear_error(self) -> bool:
        return remove_quietly(self.error_path)

    # ---- refresh lease -------------------------------------------------------

    def read_lease(self) -> Optional[Lease]:
        raw = read_text(self.lease_path)
        if not raw:
            return None
        try:
            doc = json.loads(raw)
            return Lease(holder=str(doc["holder"]), expires_at=float(doc["expires_at"]))
        except (ValueError, KeyError, TypeError):
            # unreadable lease would otherwise block refreshes until removed by hand
            return Lease(holder="unknown", expires_at=0.0)

    def lease_active(self, now: float) -> bool:
        lease = self.read_lease()
        if lease is None:
            return False
        if lease.expired(now):
            logger.warning("Refresh lease held by %s expired; clearing it", lease.holder)
            remove_quietly(self.lease_path)
            return False
        return True

    def acquire_lease(self, holder: str, seconds: int, now: float) -> bool:
        """Take the lease unless another live holder has it."""
        lease = self.read_lease()
        if lease is not None and not lease.expired(now) and lease.holder != holder:
            return False
        if lease is not None and lease.expired(now):
            logger.warning("Taking over expired refresh lease from %s", lease.holder)
        try:
            atomic_write_text(self.lease_path, json.dumps({"holder": holder, "expires_at": now + seconds}))
        except OSError as e:
            raise WriteFailure(f"could not write {self.lease_path}: {e}") from e
        return True

    def release_lease(self, holder: Optional[str] = None) -> bool:
        """Drop the lease; with `holder`, only when that holder still owns it."""
        if holder is not None:
            lease = self.read_lease()
            if lease is not None and lease.holder != holder:
                return False
        return remove_quietly(self.lease_path)
