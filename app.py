# === app.py ===
# Flask app for the MoonFRP observability surface (metrics + cached status)

import logging
import time
import traceback
from typing import Optional

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from metrics.collector import MetricsCollector
from routes import register_routes
from services.status_cache import StatusCache, ThreadSpawner
from settings import Settings
from utils import setup_logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, start_collector: bool = False) -> Flask:
    settings = settings or Settings.from_env()

    # === Flask app setup ===
    app = Flask(__name__)
    app.config.update(
        SEND_FILE_MAX_AGE_DEFAULT=0,
        MOONFRP_SETTINGS=settings,
        # web process is long-lived, so refreshes run as threads in here
        STATUS_CACHE=StatusCache(settings, spawner=ThreadSpawner()),
    )

    register_routes(app)

    # no caching for JSON / plain text
    @app.after_request
    def _no_cache_for_api(resp):
        ct = (resp.headers.get("Content-Type") or "")
        if ct.startswith("application/json") or ct.startswith("text/plain"):
            resp.headers["Cache-Control"] = "no-store"
        return resp

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        if isinstance(e, HTTPException):
            return e
        tb = traceback.format_exc()
        app.logger.error("Unhandled error: %s\n%s", e, tb)
        return Response(f"Unhandled error (500)\n\n{e}\n", status=500, mimetype="text/plain; charset=utf-8")

    # === Debug endpoints ===
    @app.get("/_debug/health")
    def _debug_health():
        collector = app.config.get("METRICS_COLLECTOR")
        return jsonify({
            "ok": True,
            "time": time.time(),
            "collector_running": bool(collector and collector.running),
        })

    @app.get("/_debug/routes")
    def _debug_routes():
        routes = []
        for rule in app.url_map.iter_rules():
            routes.append({
                "rule": str(rule),
                "endpoint": rule.endpoint,
                "methods": sorted(m for m in rule.methods if m not in ("HEAD", "OPTIONS")),
            })
        routes.sort(key=lambda r: r["rule"])
        return jsonify({"count": len(routes), "routes": routes})

    if start_collector:
        collector = MetricsCollector(settings)
        collector.start()
        app.config["METRICS_COLLECTOR"] = collector

    return app


# === Entry point ===
def run_server(settings: Optional[Settings] = None, with_collector: bool = True) -> None:
    settings = settings or Settings.from_env()
    app = create_app(settings, start_collector=with_collector)
    logger.info("Serving on %s:%s (collector=%s)", settings.http_host, settings.http_port, with_collector)
    print(f" * MoonFRP observability at http://{settings.http_host}:{settings.http_port} (CTRL+C to stop)")
    print(" * Routes: /metrics  /metrics/dashboard  /metrics/history  /status  /status/summary\n")
    try:
        app.run(host=settings.http_host, port=settings.http_port, debug=False, use_reloader=False)
    finally:
        collector = app.config.get("METRICS_COLLECTOR")
        if collector:
            collector.stop()


if __name__ == "__main__":
    _settings = Settings.from_env()
    setup_logging(_settings.log_level, _settings.log_file)
    run_server(_settings)
