from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..domain import Game
from ..errors import ConcurrentUpdateError, ConflictError, InternalError, ServiceUnavailableError
from ..extensions import db
from ..models import GameRecord
from ..security import decrypt_assignments, encrypt_assignments

logger = logging.getLogger(__name__)


class DuplicateGameCode(ConflictError):
    default_message = "Game code already in use"


class GameStore:
    """Document store for games backed by Flask-SQLAlchemy.

    Reads and writes whole games. Every ``Game`` carries the row version it
    was read at; a write only lands if the row is still at that version.
    """

    def _to_game(self, record: GameRecord) -> Game:
        game = Game.from_dict(record.document)
        try:
            game.assignments = decrypt_assignments(record.assignments_ciphertext)
        except ValueError as e:
            logger.error("Cannot decrypt assignments for game %s", record.code)
            raise InternalError("Stored assignments are unreadable") from e
        game.version = record.version
        return game

    def _columns(self, game: Game) -> dict:
        document = game.to_dict()
        document.pop("assignments", None)
        return {
            "code": game.code,
            "document": document,
            "event_date": game.date or "",
            "assignments_ciphertext": encrypt_assignments(game.assignments),
        }

    def _fail(self, e: SQLAlchemyError, action: str):
        db.session.rollback()
        if isinstance(e, OperationalError):
            logger.error("Database unavailable during %s: %s", action, e)
            raise ServiceUnavailableError("Database not available") from e
        logger.exception("Database error during %s", action)
        raise InternalError(f"Failed to {action}") from e

    def ping(self) -> None:
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            self._fail(e, "check database")

    def get(self, code: str) -> Optional[Game]:
        try:
            record = db.session.execute(
                select(GameRecord).filter_by(code=code)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            self._fail(e, "load game")
        return self._to_game(record) if record else None

    def get_by_id(self, game_id: str) -> Optional[Game]:
        try:
            record = db.session.get(GameRecord, game_id)
        except SQLAlchemyError as e:
            self._fail(e, "load game")
        return self._to_game(record) if record else None

    def create(self, game: Game) -> Game:
        record = GameRecord(id=game.id, **self._columns(game))
        db.session.add(record)
        try:
            db.session.commit()
            game.version = record.version
        except IntegrityError as e:
            db.session.rollback()
            raise DuplicateGameCode() from e
        except SQLAlchemyError as e:
            self._fail(e, "create game")
        return game

    def replace(self, game: Game) -> Game:
        """Write ``game`` back only if the row is still at ``game.version``.

        Raises ConcurrentUpdateError when another writer got there first or
        the game was deleted in the meantime.
        """
        stmt = (
            update(GameRecord)
            .where(GameRecord.id == game.id, GameRecord.version == game.version)
            .values(version=game.version + 1, **self._columns(game))
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
            if result.rowcount != 1:
                db.session.rollback()
                logger.info("Stale write rejected for game %s (version %d)", game.code, game.version)
                raise ConcurrentUpdateError()
            db.session.commit()
        except SQLAlchemyError as e:
            self._fail(e, "update game")
        game.version += 1
        return game

    def delete(self, game_id: str) -> None:
        try:
            record = db.session.get(GameRecord, game_id)
            if record is not None:
                db.session.delete(record)
                db.session.commit()
        except StaleDataError as e:
            db.session.rollback()
            raise ConcurrentUpdateError() from e
        except SQLAlchemyError as e:
            self._fail(e, "delete game")

    def list_expired(self, cutoff: str) -> list[Game]:
        """Games whose event date is on or before ``cutoff`` (YYYY-MM-DD)."""
        try:
            records = db.session.execute(
                select(GameRecord)
                .where(GameRecord.event_date != "")
                .where(GameRecord.event_date <= cutoff)
            ).scalars().all()
        except SQLAlchemyError as e:
            self._fail(e, "list expired games")
        return [self._to_game(r) for r in records]

    def reset(self) -> None:
        """Drop the session state so the next read sees the latest row."""
        db.session.rollback()
        db.session.expire_all()
