from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from ..errors import GiftExchangeError
from .storage import GameStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    cutoff: str
    deleted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class CleanupService:
    """Deletes games whose event took place at least ``grace_days`` ago."""

    def __init__(self, store: GameStore, grace_days: int = 3):
        self.store = store
        self.grace_days = grace_days

    def delete_expired(self, today: date | None = None) -> CleanupReport:
        cutoff = ((today or date.today()) - timedelta(days=self.grace_days)).isoformat()
        report = CleanupReport(cutoff=cutoff)

        expired = self.store.list_expired(cutoff)
        if not expired:
            logger.info("No games with an event date on or before %s", cutoff)
            return report

        logger.info("Found %d expired game(s) to delete", len(expired))
        for game in expired:
            try:
                self.store.delete(game.id)
            except GiftExchangeError as e:
                report.failed += 1
                report.errors.append(f"Failed to delete game {game.code}: {e.message}")
                logger.error("Failed to delete game %s: %s", game.code, e.message)
                continue
            report.deleted += 1
            logger.info("Deleted game %s (event date: %s)", game.code, game.date)

        logger.info("Cleanup complete: %d deleted, %d failed", report.deleted, report.failed)
        return report
