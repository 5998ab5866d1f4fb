from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request
from flask.views import MethodView

from ..errors import StatusKind, ValidationError
from ..services.actions import decode_action

logger = logging.getLogger(__name__)

games_bp = Blueprint("games", __name__, url_prefix="/api")


def services():
    return current_app.extensions["gift_exchange"]


def _json_body():
    body = request.get_json(silent=True)
    if body is None:
        raise ValidationError("Invalid request body")
    return body


def _respond(body, status_kind: StatusKind = StatusKind.OK):
    return jsonify(body), status_kind.http_status


class GamesView(MethodView):
    def post(self):
        outcome = services().games.create_game(_json_body())
        return _respond(outcome.body, outcome.status_kind)


class GameView(MethodView):
    def get(self, code: str):
        view = services().games.get_game(
            code,
            organizer_token=request.args.get("organizerToken"),
            participant_token=request.args.get("participantToken"),
            participant_id=request.args.get("participantId"),
        )
        return _respond(view)

    def patch(self, code: str):
        action = decode_action(_json_body())
        outcome = services().games.update_game(code, action)
        return _respond(outcome.body, outcome.status_kind)

    put = patch

    def delete(self, code: str):
        token = request.args.get("organizerToken") or request.headers.get("X-Organizer-Token")
        outcome = services().games.delete_game(code, token)
        return _respond(outcome.body)


games_bp.add_url_rule("/games", view_func=GamesView.as_view("create"), methods=["POST"])
games_bp.add_url_rule(
    "/games/<code>",
    view_func=GameView.as_view("game"),
    methods=["GET", "PATCH", "PUT", "DELETE"],
)
