from __future__ import annotations

import logging

from flask import Flask

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(app: Flask) -> None:
    """Attach a single stream handler to the package logger."""
    level = logging.getLevelName(app.config.get("LOG_LEVEL", "INFO"))
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger("gift_exchange")
    logger.setLevel(level)
    if not any(getattr(h, "_gift_exchange", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._gift_exchange = True
        logger.addHandler(handler)
