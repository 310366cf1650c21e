# === Metrics routes ===
# Serves the exposition file written by the metrics worker, a text dashboard
# and the list of retained history snapshots.

from flask import Blueprint, Response, current_app, jsonify

from metrics.exposition import CONTENT_TYPE
from metrics.history import list_history
from services.dashboard_view import render_metrics_dashboard
from utils import read_text

metrics_bp = Blueprint("metrics", __name__)


@metrics_bp.route("/metrics", methods=["GET"])
def exposition():
    settings = current_app.config["MOONFRP_SETTINGS"]
    text = read_text(settings.metrics_file)
    if not text:
        return Response("# no metrics collected yet\n", status=503, mimetype="text/plain")
    return Response(text, status=200, content_type=CONTENT_TYPE)


@metrics_bp.route("/metrics/dashboard", methods=["GET"])
def dashboard():
    settings = current_app.config["MOONFRP_SETTINGS"]
    return Response(render_metrics_dashboard(settings.metrics_file), mimetype="text/plain")


@metrics_bp.route("/metrics/history", methods=["GET"])
def history():
    settings = current_app.config["MOONFRP_SETTINGS"]
    items = list_history(settings.history_dir)
    return jsonify({
        "ok": True,
        "retention_hours": settings.retention_hours,
        "count": len(items),
        "items": items,
    })
