"""
Stale-while-revalidate cache for the fleet status payload.

`get()` answers from memory or from the shared store and never waits on a
refresh: fresh data is returned as is, stale data is returned while a
background refresh is started, and only a cold cache (no data at all) is
filled synchronously.

The background refresh is a one-shot unit of work (`run_refresh_job`) started
through a spawner: a daemon thread for long-lived processes, or a detached
`cli.py status-refresh-worker` process for short-lived front-ends. Either way
its only outputs are the store files, so the success and failure paths look
the same to the next reader.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import threading
import time
from typing import Any, Callable, Dict, Optional

from errors import BackgroundRefreshFailure, WriteFailure
from settings import Settings

from .status_payload import PayloadResult, generate_status_payload
from .status_store import CacheEntry, CacheStore, default_holder

logger = logging.getLogger(__name__)

Job = Callable[[], int]


class ThreadSpawner:
    """Run the refresh job in a daemon thread of the current process."""

    def __call__(self, job: Job, holder: str) -> None:
        threading.Thread(target=job, name="status-refresh", daemon=True).start()


class ProcessSpawner:
    """Run the refresh in a detached interpreter so it outlives the caller."""

    def __init__(self, python: Optional[str] = None):
        self.python = python or sys.executable

    def __call__(self, job: Job, holder: str) -> None:
        subprocess.Popen(
            [self.python, "-m", "cli", "status-refresh-worker", "--holder", holder],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            close_fds=True,
            start_new_session=True,
        )


class StatusCache:
    def __init__(
        self,
        settings: Settings,
        store: Optional[CacheStore] = None,
        generator: Optional[Callable[[], PayloadResult]] = None,
        spawner: Optional[Callable[[Job, str], None]] = None,
        clock: Callable[[], float] = time.time,
        holder: Optional[str] = None,
    ):
        self.settings = settings
        self.store = store or CacheStore(settings.state_dir)
        self.generator = generator or (lambda: generate_status_payload(settings))
        self.spawner = spawner or ThreadSpawner()
        self.clock = clock
        self.holder = holder or default_holder()
        self.entry = CacheEntry(ttl=settings.status_ttl)

    # ---- reads ---------------------------------------------------------------

    def _sync_from_store(self, now: float) -> None:
        persisted = self.store.load()
        if persisted is not None and persisted.data:
            if persisted.timestamp > self.entry.timestamp or not self.entry.data:
                self.entry.timestamp = persisted.timestamp
                self.entry.data = persisted.data
        self.entry.refreshing = self.store.lease_active(now)

    def _consume_error_marker(self) -> None:
        err = self.store.read_error()
        if err is None:
            return
        logger.warning("Background cache refresh failed: %s", err.get("message", "unknown error"))
        self.entry.refreshing = False
        self.store.release_lease()
        self.store.clear_error()

    def get(self, ttl_default: Optional[int] = None) -> str:
        """Freshest known payload; blocks only on a cold cache."""
        now = self.clock()
        self._sync_from_store(now)
        self._consume_error_marker()

        ttl = ttl_default if ttl_default and ttl_default > 0 else self.entry.ttl
        if self.entry.is_fresh(now, ttl):
            return self.entry.data

        if self.entry.data:
            if not self.entry.refreshing:
                self.refresh_background()
            return self.entry.data

        return self.refresh_sync()

    def view(self) -> Dict[str, Any]:
        """Payload plus staleness flags, for the dashboard and the HTTP surface."""
        data = self.get()
        now = self.clock()
        try:
            status = json.loads(data) if data else {}
        except ValueError:
            status = {}
        age = self.entry.age(now) if self.entry.timestamp else None
        return {
            "status": status if isinstance(status, dict) else {},
            "timestamp": self.entry.timestamp,
            "age": age,
            "ttl": self.entry.ttl,
            "stale": age is None or age >= self.entry.ttl,
            "refreshing": self.entry.refreshing,
        }

    # ---- refreshes -----------------------------------------------------------

    def refresh_sync(self) -> str:
        """Regenerate inline (cold start, manual force refresh)."""
        result = self.generator()
        ts = self.clock()
        self.entry.data = result.payload
        self.entry.timestamp = ts
        self.entry.refreshing = False
        try:
            self.store.save(ts, result.payload)
        except WriteFailure as e:
            logger.error("Status cache not persisted: %s", e)
        return self.entry.data

    def refresh_background(self) -> bool:
        """Start a background refresh unless one is believed to be running."""
        if self.entry.refreshing:
            return False
        now = self.clock()
        try:
            if not self.store.acquire_lease(self.holder, self.settings.lease_seconds, now):
                self.entry.refreshing = True
                return False
        except WriteFailure as e:
            logger.error("Could not take refresh lease: %s", e)
            return False

        self.entry.refreshing = True
        try:
            self.spawner(self.run_refresh_job, self.holder)
        except Exception as e:
            logger.error("Could not start background refresh: %s", e)
            self.store.release_lease(self.holder)
            self.entry.refreshing = False
            return False
        return True

    def run_refresh_job(self) -> int:
        """The detached unit of work. Only touches the store; returns an exit code."""
        try:
            result = self.generator()
            if not result.ok:
                raise BackgroundRefreshFailure(f"generate_status_payload failed: {result.error}")
            self.store.save(self.clock(), result.payload)
            self.store.clear_error()
            return 0
        except Exception as e:
            exit_code = getattr(e, "exit_code", 1)
            try:
                self.store.write_error(f"ERROR: {e}", exit_code=exit_code)
            except WriteFailure as we:
                logger.error("Could not record background refresh failure: %s", we)
            return exit_code or 1
        finally:
            self.store.release_lease(self.holder)
