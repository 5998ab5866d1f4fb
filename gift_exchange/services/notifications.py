"""
Structured notification events and their best-effort delivery.

The orchestrator only decides which events to raise and with what payload.
Rendering and delivery belong to a ``Notifier``. Dispatch happens after the
game has been written, never blocks the response, and never fails it.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Protocol

from ..domain import Game, Participant

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    GAME_CREATED = "game-created"
    ASSIGNMENT_READY = "assignment-ready"
    REASSIGNMENT_REQUESTED = "reassignment-requested"
    REASSIGNMENT_RESOLVED = "reassignment-resolved"
    DETAILS_CHANGED = "details-changed"
    REMINDER = "reminder"
    INVITATION = "invitation"
    REMOVAL = "removal"
    CANCELLATION = "cancellation"
    RECOVERY_LINK = "recovery-link"
    FULL_RESHUFFLE = "full-reshuffle"
    ALL_CONFIRMED = "all-confirmed"
    PARTICIPANT_CONFIRMED = "participant-confirmed"
    WISH_UPDATED = "wish-updated"
    NEW_ORGANIZER_LINK = "new-organizer-link"


@dataclass
class NotificationEvent:
    kind: NotificationKind
    game: dict[str, Any]
    recipient_email: str
    language: str
    participant: Optional[dict[str, Any]] = None
    details: dict[str, Any] = field(default_factory=dict)


def make_event(
    kind: NotificationKind,
    game: Game,
    recipient_email: str,
    language: str,
    participant: Participant | None = None,
    **details: Any,
) -> NotificationEvent:
    """Snapshot the game so later mutations cannot leak into a queued event."""
    return NotificationEvent(
        kind=kind,
        game=game.to_dict(),
        recipient_email=recipient_email,
        language=language,
        participant=participant.to_dict() if participant else None,
        details=details,
    )


class Notifier(Protocol):
    def send(self, event: NotificationEvent) -> bool:
        ...


class LoggingNotifier:
    """Writes each event to the log instead of delivering it."""

    def send(self, event: NotificationEvent) -> bool:
        logger.info(
            "Notification %s for game %s -> %s (%s)",
            event.kind.value,
            event.game.get("code"),
            event.recipient_email,
            event.language,
        )
        return True


class NotificationDispatcher:
    def __init__(self, notifier: Notifier | None, sync: bool = False, workers: int = 4):
        self.notifier = notifier
        self.sync = sync
        self._executor = None if sync or notifier is None else ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="notify"
        )

    @property
    def configured(self) -> bool:
        return self.notifier is not None

    def deliver(self, event: NotificationEvent) -> bool:
        """Send one event now; returns False instead of raising."""
        if self.notifier is None:
            return False
        try:
            ok = bool(self.notifier.send(event))
        except Exception:
            logger.exception("Failed to send %s notification to %s", event.kind.value, event.recipient_email)
            return False
        if not ok:
            logger.warning("Notifier rejected %s notification to %s", event.kind.value, event.recipient_email)
        return ok

    def dispatch(self, events: Iterable[NotificationEvent]) -> None:
        """Fire-and-forget delivery of ``events``."""
        events = list(events)
        if not events or self.notifier is None:
            return
        if self._executor is None:
            for event in events:
                self.deliver(event)
            return
        for event in events:
            self._executor.submit(self.deliver, event)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
