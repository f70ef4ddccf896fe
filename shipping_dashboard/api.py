from typing import Optional

from flask import Flask, jsonify, request

from shipping_dashboard.config import DashboardSettings
from shipping_dashboard.services.orchestrator import ShippingDataService


def parse_days(raw: Optional[str], default: int, maximum: int) -> int:
    """Day-count from the query string; junk or non-positive values fall back to ``default``."""
    try:
        days = int(raw) if raw is not None else default
    except (TypeError, ValueError):
        days = default
    if days <= 0:
        days = default
    return min(days, maximum)


def create_app(service: ShippingDataService, settings: Optional[DashboardSettings] = None) -> Flask:
    settings = settings or service.settings
    app = Flask(__name__)

    @app.route("/api/shipping")
    def shipping():
        days = parse_days(request.args.get("days"), settings.default_days, settings.max_days)
        return jsonify(service.get_or_fetch(days))

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok", **service.snapshot()})

    return app
