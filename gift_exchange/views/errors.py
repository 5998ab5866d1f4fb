from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from ..errors import GiftExchangeError, InternalError

logger = logging.getLogger(__name__)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(GiftExchangeError)
    def handle_gift_exchange_error(e: GiftExchangeError):
        if e.status_kind.http_status >= 500:
            logger.error("%s: %s", type(e).__name__, e.message, exc_info=e.__cause__ or e)
        return jsonify(e.to_dict()), e.status_kind.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("Unhandled error")
        err = InternalError("Internal server error")
        return jsonify(err.to_dict()), err.status_kind.http_status
