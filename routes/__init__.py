# === routes/__init__.py ===
# Registers all blueprints

def register_routes(app):
    """
    Central place to import + register the app blueprints.

    - routes/metrics.py => metrics_bp (/metrics, /metrics/dashboard, /metrics/history)
    - routes/status.py  => status_bp  (/status, /status/refresh, /status/summary)
    """
    # --- Imports inside the function to avoid circulars with app.py ---
    from .metrics import metrics_bp
    from .status import status_bp

    for bp in (metrics_bp, status_bp):
        if bp.name not in app.blueprints:
            app.register_blueprint(bp)
            app.logger.info("Registered blueprint: %s", bp.name)
