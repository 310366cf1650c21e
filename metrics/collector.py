"""
Metrics collector.

Builds one MetricsSnapshot per cycle out of three independent sub-collectors
(services, system, tunnels) and commits it as the current exposition file plus
a history copy. A failing source only blanks its own samples; the cycle still
produces a complete, parseable snapshot.

Runs either once (`collect_and_commit`) or as a sleep-and-repeat worker
(`run` in the foreground, `start`/`stop` in a daemon thread).
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, List, Optional, Tuple

import requests

from collectors import frp_api, units
from collectors.metrics_cpu import cpu_usage_percent
from collectors.metrics_mem import memory_used_mb
from collectors.metrics_net import net_totals_bytes
from errors import SourceUnavailable
from settings import Settings
from utils import read_text

from .exposition import parse_exposition, sample_value
from .history import commit
from .model import COUNTER, GAUGE, MetricDefinition, MetricsSnapshot

logger = logging.getLogger(__name__)

# --- service ---
SERVICES_TOTAL = MetricDefinition("moonfrp_services_total", "Total number of moonfrp-* services", GAUGE)
SERVICES_ACTIVE = MetricDefinition("moonfrp_services_active", "Active moonfrp-* services", GAUGE)
SERVICES_FAILED = MetricDefinition("moonfrp_services_failed", "Failed moonfrp-* services", GAUGE)

# --- system ---
CPU_PERCENT = MetricDefinition("moonfrp_cpu_usage_percent", "CPU usage percent over ~1s sample", GAUGE)
MEM_USED_MB = MetricDefinition("moonfrp_memory_used_megabytes", "Memory used in MB", GAUGE)
NET_RX = MetricDefinition("moonfrp_net_rx_bytes_total", "Total received bytes across interfaces", COUNTER)
NET_TX = MetricDefinition("moonfrp_net_tx_bytes_total", "Total transmitted bytes across interfaces", COUNTER)

# --- tunnels ---
TUNNEL_CONNECTIONS = MetricDefinition(
    "moonfrp_tunnel_connections_total", "Current connections per tunnel", GAUGE)
TUNNEL_BANDWIDTH = MetricDefinition(
    "moonfrp_tunnel_bandwidth_bytes_total", "Total bandwidth bytes per tunnel", COUNTER)
TUNNEL_ERRORS = MetricDefinition("moonfrp_tunnel_errors_total", "Error events per tunnel", COUNTER)
TUNNEL_COUNT = MetricDefinition("moonfrp_tunnel_count", "Total number of tunnels detected", GAUGE)
TUNNEL_ERRORS_AGG = MetricDefinition(
    "moonfrp_tunnel_errors", "Total error count across tunnels (best-effort)", COUNTER)
TUNNEL_BANDWIDTH_BPS = MetricDefinition(
    "moonfrp_tunnel_bandwidth_bps", "Estimated aggregate bandwidth (best-effort)", GAUGE)
ALERTS_TUNNEL_FAILURES = MetricDefinition(
    "moonfrp_alerts_tunnel_failures_total", "Total tunnel failure alert events", COUNTER)
TUNNEL_FAILURE_LEGACY = MetricDefinition(
    "moonfrp_tunnel_failure_total", "Legacy alias for failure events", COUNTER)

TUNNEL_FAMILIES = (
    TUNNEL_CONNECTIONS, TUNNEL_BANDWIDTH, TUNNEL_ERRORS,
    TUNNEL_COUNT, TUNNEL_ERRORS_AGG, TUNNEL_BANDWIDTH_BPS,
    ALERTS_TUNNEL_FAILURES, TUNNEL_FAILURE_LEGACY,
)

OVERALL_LABELS = (("tunnel", "__overall__"), ("kind", "all"))


class MetricsCollector:
    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        unit_runner: Optional[units.Runner] = None,
        proc_root: str = "/proc",
        cpu_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        api_timeout: float = 1.0,
    ):
        self.settings = settings
        self.unit_runner = unit_runner
        self.proc_root = proc_root
        self.cpu_interval = cpu_interval
        self.api_timeout = api_timeout
        self._sleep = sleep
        self._owns_session = session is None
        self._session = session or requests.Session()

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---- sub-collectors ------------------------------------------------------

    def collect_service_metrics(self) -> MetricsSnapshot:
        snap = MetricsSnapshot()
        try:
            counts = units.fleet_unit_counts(units.list_units(units.FLEET_UNIT_RE, runner=self.unit_runner))
        except SourceUnavailable as e:
            logger.warning("Service metrics unavailable: %s", e)
            counts = {"total": 0, "active": 0, "failed": 0}
        snap.add(SERVICES_TOTAL, counts["total"])
        snap.add(SERVICES_ACTIVE, counts["active"])
        snap.add(SERVICES_FAILED, counts["failed"])
        return snap

    def collect_system_metrics(self) -> MetricsSnapshot:
        snap = MetricsSnapshot()
        for d in (CPU_PERCENT, MEM_USED_MB, NET_RX, NET_TX):
            snap.declare(d)

        try:
            cpu = cpu_usage_percent(self.cpu_interval, os.path.join(self.proc_root, "stat"), sleep=self._sleep)
        except SourceUnavailable as e:
            logger.warning("CPU sample unavailable: %s", e)
            cpu = 0.0
        snap.add(CPU_PERCENT, cpu)

        try:
            mem = memory_used_mb(os.path.join(self.proc_root, "meminfo"))
        except SourceUnavailable as e:
            logger.warning("Memory sample unavailable: %s", e)
            mem = 0
        snap.add(MEM_USED_MB, mem)

        # A made-up 0 would read as a counter reset, so no sample at all instead
        try:
            rx, tx = net_totals_bytes(os.path.join(self.proc_root, "net", "dev"))
            snap.add(NET_RX, rx)
            snap.add(NET_TX, tx)
        except SourceUnavailable as e:
            logger.warning("Network counters unavailable: %s", e)
        return snap

    def _fetch_all_kinds(self) -> Tuple[bool, List[frp_api.TunnelRecord]]:
        auth = (self.settings.dashboard_user, self.settings.dashboard_password) \
            if self.settings.dashboard_password else None
        reachable = False
        records: List[frp_api.TunnelRecord] = []
        for kind in self.settings.proxy_kinds:
            try:
                found = frp_api.fetch_proxies(
                    self.settings.dashboard_url, kind,
                    session=self._session, auth=auth, timeout=self.api_timeout,
                )
            except SourceUnavailable as e:
                logger.debug("Dashboard API skipped for %s: %s", kind, e)
                continue
            reachable = True
            records.extend(found)
        return reachable, records

    def previous_failure_total(self) -> int:
        """Failure counter of the last committed snapshot (0 when none)."""
        text = read_text(self.settings.metrics_file)
        if not text:
            return 0
        parsed = parse_exposition(text)
        return int(sample_value(parsed, ALERTS_TUNNEL_FAILURES.name, default=0.0))

    def collect_tunnel_metrics(self) -> MetricsSnapshot:
        snap = MetricsSnapshot()
        for d in TUNNEL_FAMILIES:
            snap.declare(d)

        reachable, records = self._fetch_all_kinds()
        failures = self.previous_failure_total()

        for rec in records:
            labels = (("tunnel", rec.name), ("kind", rec.kind))
            snap.add(TUNNEL_CONNECTIONS, rec.cur_conns, labels)
            # the dashboard API carries no per-tunnel byte/error attribution yet
            snap.add(TUNNEL_BANDWIDTH, 0, labels)
            snap.add(TUNNEL_ERRORS, 0, labels)

        if not reachable:
            snap.add(TUNNEL_CONNECTIONS, 0, OVERALL_LABELS)
            snap.add(TUNNEL_BANDWIDTH, 0, OVERALL_LABELS)
            snap.add(TUNNEL_ERRORS, 0, OVERALL_LABELS)

        if not reachable or not records:
            failures += 1
            on_tunnel_failure(
                "__overall__",
                "dashboard API unreachable" if not reachable else "no tunnels reported",
            )

        snap.add(TUNNEL_COUNT, len(records))
        snap.add(TUNNEL_ERRORS_AGG, 0)
        snap.add(TUNNEL_BANDWIDTH_BPS, 0)
        snap.add(ALERTS_TUNNEL_FAILURES, failures)
        snap.add(TUNNEL_FAILURE_LEGACY, failures)
        return snap

    # ---- orchestration -------------------------------------------------------

    def collect(self) -> MetricsSnapshot:
        snapshot = MetricsSnapshot()
        for label, fn in (
            ("service", self.collect_service_metrics),
            ("system", self.collect_system_metrics),
            ("tunnel", self.collect_tunnel_metrics),
        ):
            try:
                snapshot.extend(fn())
            except Exception as e:
                logger.error("%s metrics collection failed: %s", label, e, exc_info=True)
        return snapshot

    def collect_and_commit(self) -> bool:
        snapshot = self.collect()
        ok = commit(
            snapshot,
            self.settings.metrics_file,
            self.settings.history_dir,
            retention_hours=self.settings.retention_hours,
        )
        if ok:
            logger.info("Metrics collected -> %s", self.settings.metrics_file)
        return ok

    # ---- worker loop ---------------------------------------------------------

    def run(self, max_cycles: Optional[int] = None) -> None:
        """Collect every `interval_seconds` until stop() (or `max_cycles`)."""
        logger.info("Starting background metrics collection every %ss", self.settings.interval_seconds)
        cycles = 0
        while not self._stop.is_set():
            try:
                self.collect_and_commit()
            except Exception as e:
                logger.error("Metrics collection cycle failed: %s", e, exc_info=True)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            self._stop.wait(self.settings.interval_seconds)

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            logger.warning("Metrics worker already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="metrics-worker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        if self._owns_session:
            self._session.close()
        logger.info("Metrics worker stopped")


def on_tunnel_failure(tunnel: str, reason: str) -> None:
    """Hook for external alerting; today the signal is the failure counter plus this log line."""
    logger.warning("Tunnel failure detected: %s reason=%s", tunnel, reason)
