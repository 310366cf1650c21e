"""
MoonFRP observability command line.

Usage:
    moonfrp-observe init                    # start the metrics worker unless running
    moonfrp-observe collect                 # one metrics cycle, then exit
    moonfrp-observe background              # metrics worker in the foreground
    moonfrp-observe dashboard               # summary of the current metrics file
    moonfrp-observe status [--refresh]      # cached fleet status block
    moonfrp-observe serve [--no-collector]  # HTTP surface (+ metrics worker)
    moonfrp-observe prometheus-snippet

Environment Variables:
    MOONFRP_STATE_DIR: cache and metrics root (default: ~/.moonfrp)
    METRICS_INTERVAL_SECONDS / RETENTION_HOURS / STATUS_CACHE_TTL
    MOONFRP_LOG_LEVEL / MOONFRP_LOG_FILE
"""
import argparse
import json
import logging
import os
import subprocess
import sys
from typing import List, Optional

from metrics.collector import MetricsCollector
from services.dashboard_view import (
    render_metrics_dashboard,
    render_prometheus_snippet,
    render_status_summary,
)
from services.status_cache import ProcessSpawner, StatusCache
from settings import Settings
from utils import atomic_write_text, read_text, setup_logging

logger = logging.getLogger("moonfrp.cli")


def cmd_collect(settings: Settings, args) -> int:
    return 0 if MetricsCollector(settings).collect_and_commit() else 1


def worker_pid_file(settings: Settings) -> str:
    return os.path.join(settings.metrics_dir, "worker.pid")


def running_worker_pid(settings: Settings) -> Optional[int]:
    """Pid of a live background worker, or None."""
    text = read_text(worker_pid_file(settings))
    try:
        pid = int((text or "").strip())
    except ValueError:
        return None
    if pid <= 0:
        return None
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return None
    except PermissionError:
        pass  # alive, owned by another user
    return pid


def cmd_init(settings: Settings, args) -> int:
    os.makedirs(settings.history_dir, exist_ok=True)
    pid = running_worker_pid(settings)
    if pid is not None:
        logger.info("Metrics background worker already running (pid %d)", pid)
        return 0
    proc = subprocess.Popen(
        [sys.executable, "-m", "cli", "background"],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        close_fds=True,
        start_new_session=True,
    )
    logger.info("Metrics background worker started (pid %d)", proc.pid)
    return 0


def cmd_background(settings: Settings, args) -> int:
    pid_file = worker_pid_file(settings)
    atomic_write_text(pid_file, f"{os.getpid()}\n")
    collector = MetricsCollector(settings)
    try:
        collector.run()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping metrics worker")
    finally:
        collector.stop()
        if read_text(pid_file) == f"{os.getpid()}\n":
            os.remove(pid_file)
    return 0


def cmd_dashboard(settings: Settings, args) -> int:
    sys.stdout.write(render_metrics_dashboard(settings.metrics_file))
    return 0


def cmd_status(settings: Settings, args) -> int:
    # menu front-ends exit right away, so the refresh must outlive us
    cache = StatusCache(settings, spawner=ProcessSpawner())
    if args.refresh:
        cache.refresh_sync()
    view = cache.view()
    if args.json:
        print(json.dumps(view, indent=2))
    else:
        sys.stdout.write(render_status_summary(view))
    return 0


def cmd_serve(settings: Settings, args) -> int:
    from app import run_server

    if args.host:
        settings.http_host = args.host
    if args.port:
        settings.http_port = args.port
    run_server(settings, with_collector=not args.no_collector)
    return 0


def cmd_prometheus_snippet(settings: Settings, args) -> int:
    sys.stdout.write(render_prometheus_snippet(settings.metrics_file, settings.http_host, settings.http_port))
    return 0


def cmd_refresh_worker(settings: Settings, args) -> int:
    cache = StatusCache(settings, holder=args.holder)
    return cache.run_refresh_job()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="moonfrp-observe", description="MoonFRP metrics and status cache")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="start the metrics worker unless one is running").set_defaults(func=cmd_init)
    sub.add_parser("collect", help="collect one metrics snapshot").set_defaults(func=cmd_collect)
    sub.add_parser("background", help="collect metrics every interval").set_defaults(func=cmd_background)
    sub.add_parser("dashboard", help="print the metrics dashboard").set_defaults(func=cmd_dashboard)

    p = sub.add_parser("status", help="print the cached fleet status")
    p.add_argument("--refresh", action="store_true", help="regenerate before printing")
    p.add_argument("--json", action="store_true", help="print the raw cache view")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("serve", help="run the HTTP surface")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--no-collector", action="store_true", help="do not start the metrics worker")
    p.set_defaults(func=cmd_serve)

    sub.add_parser("prometheus-snippet", help="print scrape integration notes").set_defaults(
        func=cmd_prometheus_snippet)

    # internal: started detached by the status cache
    p = sub.add_parser("status-refresh-worker")
    p.add_argument("--holder", required=True)
    p.set_defaults(func=cmd_refresh_worker)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    return args.func(settings, args)


if __name__ == "__main__":
    sys.exit(main())
