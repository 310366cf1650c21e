# === Status routes ===
# Cached fleet status for UIs: JSON, plain-text summary and a manual refresh.

from flask import Blueprint, Response, current_app, jsonify

from services.dashboard_view import parse_status_fields, render_status_summary

status_bp = Blueprint("status", __name__)


def _cache():
    return current_app.config["STATUS_CACHE"]


@status_bp.route("/status", methods=["GET"])
def status():
    try:
        view = _cache().view()
    except Exception as e:
        current_app.logger.error("Status read failed: %s", e)
        return jsonify({"ok": False, "error": str(e), "status": parse_status_fields(None)})
    return jsonify({
        "ok": True,
        "status": parse_status_fields(view["status"]),
        "timestamp": view["timestamp"],
        "age": view["age"],
        "ttl": view["ttl"],
        "stale": view["stale"],
        "refreshing": view["refreshing"],
    })


@status_bp.route("/status/refresh", methods=["POST"])
def force_refresh():
    cache = _cache()
    try:
        data = cache.refresh_sync()
    except Exception as e:
        current_app.logger.error("Manual status refresh failed: %s", e)
        return jsonify({"ok": False, "error": str(e)})
    current_app.logger.info("Status cache refreshed on request")
    return jsonify({"ok": True, "status": parse_status_fields(data), "timestamp": cache.entry.timestamp})


@status_bp.route("/status/summary", methods=["GET"])
def summary():
    try:
        view = _cache().view()
    except Exception as e:
        current_app.logger.error("Status read failed: %s", e)
        view = None
    return Response(render_status_summary(view), mimetype="text/plain")
