from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    return int(raw) if raw else default


class Config:
    """Settings read from the environment when the app is created."""

    def __init__(self) -> None:
        self.SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
        self.SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///giftexchange.db")
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False

        # Optional explicit Fernet key; otherwise derived from SECRET_KEY.
        self.ASSIGNMENT_ENC_KEY = os.environ.get("ASSIGNMENT_ENC_KEY", "").strip()

        self.DEFAULT_LANGUAGE = os.environ.get("DEFAULT_LANGUAGE", "es").strip() or "es"
        self.RETENTION_GRACE_DAYS = _env_int("RETENTION_GRACE_DAYS", 3)
        self.GAME_WRITE_RETRIES = _env_int("GAME_WRITE_RETRIES", 3)

        # "log" writes notifications to the log, "none" disables them.
        self.NOTIFIER = os.environ.get("NOTIFIER", "log").strip().lower()
        self.NOTIFY_SYNC = _env_bool("NOTIFY_SYNC", False)
        self.NOTIFY_WORKERS = _env_int("NOTIFY_WORKERS", 4)

        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper()

    def as_dict(self) -> dict:
        return {k: v for k, v in vars(self).items() if k.isupper()}
