from __future__ import annotations

import logging
from typing import Any

from ..domain import Game
from ..errors import InternalError, NotFoundError, ServiceUnavailableError, ValidationError
from ..policies import require_organizer
from .notifications import NotificationDispatcher, NotificationKind, make_event
from .storage import GameStore
from .validation import clean_language

logger = logging.getLogger(__name__)

EMAIL_TYPES = (
    "organizer",
    "participant",
    "allParticipants",
    "reminder",
    "reminderAll",
    "recoverOrganizerLink",
    "recoverParticipantLink",
)

RECOVERY_ORGANIZER_MESSAGE = "If this email is registered as the organizer, a recovery link has been sent."
RECOVERY_PARTICIPANT_MESSAGE = "If this email is registered as a participant, a recovery link has been sent."


class EmailService:
    """
    On-demand notifications: resending links, reminders and link recovery.

    Unlike the notifications raised by game updates these are delivered
    synchronously, because the caller asked for them and wants to know
    whether they went out.
    """

    def __init__(self, store: GameStore, notifications: NotificationDispatcher, default_language: str = "es"):
        self.store = store
        self.notifications = notifications
        self.default_language = default_language

    def send(self, payload: Any) -> dict:
        if not self.notifications.configured:
            raise ServiceUnavailableError("Email service not configured")
        if not isinstance(payload, dict):
            raise ValidationError("Invalid request body")

        code = payload.get("code")
        if not code:
            raise ValidationError("Game code is required")
        email_type = payload.get("type")
        if email_type not in EMAIL_TYPES:
            raise ValidationError("Invalid email type. Must be one of: " + ", ".join(EMAIL_TYPES))
        language = clean_language(payload.get("language")) or self.default_language

        game = self.store.get(code)
        if game is None:
            raise NotFoundError("Game not found")

        # Recovery needs no token: proving control of the email is the point.
        if email_type == "recoverOrganizerLink":
            return self._recover_organizer(game, payload.get("email"), language)
        if email_type == "recoverParticipantLink":
            return self._recover_participant(game, payload.get("email"), language)

        require_organizer(game, payload.get("organizerToken"))

        if email_type == "organizer":
            if not game.organizer_email:
                raise ValidationError("No organizer email configured for this game")
            event = make_event(NotificationKind.GAME_CREATED, game, game.organizer_email,
                               game.organizer_language or language)
            self._deliver_or_fail(event, "Failed to send organizer email")
            return {"success": True, "message": "Organizer email sent successfully"}

        custom_message = payload.get("customMessage") or None
        if email_type in ("participant", "reminder"):
            if not payload.get("participantId"):
                raise ValidationError("Participant ID is required")
            participant = game.find_participant(payload.get("participantId"))
            if participant is None:
                raise NotFoundError("Participant not found")
            if not participant.email:
                raise ValidationError("Participant does not have an email address")

            if email_type == "participant":
                kind, details = NotificationKind.ASSIGNMENT_READY, {}
            else:
                kind, details = NotificationKind.REMINDER, {"customMessage": custom_message}
            event = make_event(kind, game, participant.email,
                               participant.preferred_language or language, participant, **details)
            self._deliver_or_fail(event, f"Failed to send {email_type} email")
            noun = "Email" if email_type == "participant" else "Reminder email"
            return {"success": True, "message": f"{noun} sent to {participant.name}"}

        kind = NotificationKind.ASSIGNMENT_READY if email_type == "allParticipants" else NotificationKind.REMINDER
        details = {"customMessage": custom_message} if kind is NotificationKind.REMINDER else {}
        return self._send_to_all(game, kind, language, **details)

    def _deliver_or_fail(self, event, message: str) -> None:
        if not self.notifications.deliver(event):
            raise InternalError(message)

    def _send_to_all(self, game: Game, kind: NotificationKind, language: str, **details: Any) -> dict:
        recipients = [p for p in game.participants if p.email]
        if not recipients:
            raise ValidationError("No participants have email addresses configured")

        sent, errors = 0, []
        for p in recipients:
            event = make_event(kind, game, p.email, p.preferred_language or language, p, **details)
            if self.notifications.deliver(event):
                sent += 1
            else:
                errors.append(f"Failed to send to {p.name}")

        failed = len(errors)
        label = "reminder emails" if kind is NotificationKind.REMINDER else "emails"
        logger.info("Sent %d %s for game %s, %d failed", sent, label, game.code, failed)
        body = {
            "success": True,
            "sent": sent,
            "failed": failed,
            "message": f"Sent {sent} {label}, {failed} failed",
        }
        if errors:
            body["errors"] = errors
        return body

    def _recover_organizer(self, game: Game, email: Any, language: str) -> dict:
        if not email:
            raise ValidationError("Email address is required for link recovery")
        if not game.organizer_email:
            raise ValidationError(
                "This game does not have an organizer email registered. Link recovery is not possible.",
                code="NO_EMAIL_REGISTERED",
            )
        # Same answer whether or not the address matches.
        if game.organizer_email.lower() == str(email).lower():
            event = make_event(NotificationKind.RECOVERY_LINK, game, game.organizer_email,
                               game.organizer_language or language, role="organizer")
            self._deliver_or_fail(event, "Failed to send recovery email")
        return {"success": True, "message": RECOVERY_ORGANIZER_MESSAGE}

    def _recover_participant(self, game: Game, email: Any, language: str) -> dict:
        if not email:
            raise ValidationError("Email address is required for link recovery")
        lowered = str(email).lower()
        participant = next((p for p in game.participants if p.email and p.email.lower() == lowered), None)
        if participant is not None:
            event = make_event(NotificationKind.RECOVERY_LINK, game, participant.email,
                               participant.preferred_language or language, participant, role="participant")
            self._deliver_or_fail(event, "Failed to send recovery email")
        return {"success": True, "message": RECOVERY_PARTICIPANT_MESSAGE}
