from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, jsonify, request
from flask.views import MethodView

from ..errors import GiftExchangeError
from .games import services

public_bp = Blueprint("public", __name__, url_prefix="/api")


class SendEmailView(MethodView):
    def post(self):
        body = services().emails.send(request.get_json(silent=True))
        return jsonify(body), 200


class HealthView(MethodView):
    def get(self):
        checks = {}
        healthy = True
        try:
            services().store.ping()
            checks["database"] = {"status": "ok"}
        except GiftExchangeError as e:
            healthy = False
            checks["database"] = {"status": "error", "error": e.message}

        configured = services().notifications.configured
        checks["notifications"] = {"status": "ok" if configured else "not_configured"}

        body = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        }
        return jsonify(body), 200 if healthy else 503


public_bp.add_url_rule("/email/send", view_func=SendEmailView.as_view("send_email"), methods=["POST"])
public_bp.add_url_rule("/health", view_func=HealthView.as_view("health"))
