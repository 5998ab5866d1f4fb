from __future__ import annotations

import atexit
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import click
from flask import Flask

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging
from .services.cleanup import CleanupService
from .services.emails import EmailService
from .services.games import GameService
from .services.notifications import LoggingNotifier, NotificationDispatcher, Notifier
from .services.storage import GameStore
from .views.errors import register_error_handlers
from .views.games import games_bp
from .views.public import public_bp


@dataclass
class Services:
    store: GameStore
    notifications: NotificationDispatcher
    games: GameService
    emails: EmailService
    cleanup: CleanupService


def build_services(app: Flask, notifier: Optional[Notifier] = None) -> Services:
    if notifier is None and app.config["NOTIFIER"] == "log":
        notifier = LoggingNotifier()

    store = GameStore()
    notifications = NotificationDispatcher(
        notifier,
        sync=app.config["NOTIFY_SYNC"],
        workers=app.config["NOTIFY_WORKERS"],
    )
    atexit.register(notifications.shutdown)

    language = app.config["DEFAULT_LANGUAGE"]
    return Services(
        store=store,
        notifications=notifications,
        games=GameService(
            store,
            notifications,
            default_language=language,
            write_retries=app.config["GAME_WRITE_RETRIES"],
        ),
        emails=EmailService(store, notifications, default_language=language),
        cleanup=CleanupService(store, grace_days=app.config["RETENTION_GRACE_DAYS"]),
    )


def create_app(test_config: Mapping[str, Any] | None = None, notifier: Optional[Notifier] = None) -> Flask:
    app = Flask(__name__)

    app.config.from_mapping(Config().as_dict())
    if test_config:
        app.config.from_mapping(test_config)

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)

    app.extensions["gift_exchange"] = build_services(app, notifier)

    app.register_blueprint(games_bp)
    app.register_blueprint(public_bp)
    register_error_handlers(app)

    @app.cli.command("init-db")
    def init_db_command():
        """Create the database tables."""
        db.create_all()
        click.echo("Database initialised.")

    @app.cli.command("cleanup-expired-games")
    def cleanup_expired_games_command():
        """Delete games whose event date is past the retention period."""
        report = app.extensions["gift_exchange"].cleanup.delete_expired()
        click.echo(f"Deleted {report.deleted} game(s), {report.failed} failed (cutoff {report.cutoff}).")

    return app
