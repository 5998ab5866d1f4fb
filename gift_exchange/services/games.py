"""
Game orchestration: validate -> mutate -> persist -> notify.

Every mutating call loads the whole game, applies one action in memory,
writes the whole game back and only then hands notification events to the
dispatcher. A write that loses a race against another request is retried
from a fresh read.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import date
from functools import singledispatchmethod
from typing import Any, Callable, Optional

from ..domain import Game, Participant, ReassignmentRequest
from ..errors import (
    ConcurrentUpdateError,
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    StatusKind,
    UnauthorizedError,
    UnprocessableEntityError,
    ValidationError,
)
from ..policies import Anonymous, participant_view, project_game, require_organizer, resolve_credential
from ..security import generate_game_code, generate_id, generate_token, tokens_match
from . import actions as a
from .assignments import MIN_PARTICIPANTS, find_swap_partner, generate_assignments, reassign_participant, swap_receivers
from .notifications import NotificationDispatcher, NotificationEvent, NotificationKind, make_event
from .storage import DuplicateGameCode, GameStore
from .validation import clean_email, clean_language, clean_text, parse_event_date, validate_future_date

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 5


@dataclass
class Outcome:
    body: dict[str, Any]
    events: list[NotificationEvent] = field(default_factory=list)
    status_kind: StatusKind = StatusKind.OK
    write: bool = True


class GameService:
    def __init__(
        self,
        store: GameStore,
        notifications: NotificationDispatcher,
        *,
        default_language: str = "es",
        write_retries: int = 3,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.notifications = notifications
        self.default_language = default_language
        self.write_retries = max(1, write_retries)
        self.rng = rng
        self.clock = clock
        self.today = today

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _language(self, *candidates: Optional[str]) -> str:
        return next((c for c in candidates if c), self.default_language)

    def _remember_language(self, participant: Participant, language: Optional[str]) -> None:
        # Only worth storing when something will actually be sent.
        if language and self.notifications.configured:
            participant.preferred_language = language

    def _regenerate(self, game: Game) -> None:
        if len(game.participants) >= MIN_PARTICIPANTS:
            game.assignments = generate_assignments(game.participants, rng=self.rng)
        else:
            game.assignments = []

    def _load(self, code: str) -> Game:
        game = self.store.get(code)
        if game is None:
            raise NotFoundError("Game not found")
        return game

    def _participant(self, game: Game, participant_id: str | None) -> Participant:
        participant = game.find_participant(participant_id)
        if participant is None:
            raise NotFoundError("Participant not found")
        return participant

    def _check_new_member(self, game: Game, name: str, email: Optional[str], exclude_id: str | None = None) -> None:
        if game.name_taken(name, exclude_id):
            raise ConflictError("Participant name already exists", code="DUPLICATE_NAME")
        if email and game.email_taken(email, exclude_id):
            raise ConflictError("Participant email already exists", code="DUPLICATE_EMAIL")

    def _new_participant(self, game: Game, name: str, email: Optional[str], **fields: Any) -> Participant:
        return Participant(
            id=generate_id(),
            name=name,
            email=email,
            token=generate_token() if game.is_protected else None,
            **fields,
        )

    def _to_organizer(self, game: Game, kind: NotificationKind, language: Optional[str],
                      participant: Participant | None = None, **details: Any) -> list[NotificationEvent]:
        if not game.organizer_email:
            return []
        lang = self._language(language, game.organizer_language)
        return [make_event(kind, game, game.organizer_email, lang, participant, **details)]

    def _to_participant(self, game: Game, participant: Participant, kind: NotificationKind,
                        language: Optional[str] = None, **details: Any) -> list[NotificationEvent]:
        if not participant.email:
            return []
        lang = self._language(participant.preferred_language, language)
        return [make_event(kind, game, participant.email, lang, participant, **details)]

    def _participant_response(self, game: Game, participant: Participant, action: a.ParticipantAction) -> dict:
        # Participant actions need no token; on a protected game the caller
        # only gets the participant's view back if they prove who they are.
        if game.is_protected and not tokens_match(action.participant_token, participant.token):
            return project_game(game, Anonymous())
        return participant_view(game, participant)

    def _mutate(self, code: str, apply: Callable[[Game], Outcome]) -> Outcome:
        for attempt in range(1, self.write_retries + 1):
            game = self._load(code)
            outcome = apply(game)
            if not outcome.write:
                return outcome
            try:
                self.store.replace(game)
            except ConcurrentUpdateError:
                logger.warning("Concurrent update on game %s (attempt %d/%d)", code, attempt, self.write_retries)
                self.store.reset()
                continue
            self.notifications.dispatch(outcome.events)
            return outcome
        raise ConflictError("The game is being modified by someone else. Please retry.", code="CONCURRENT_UPDATE")

    # ------------------------------------------------------------------
    # create / read / delete
    # ------------------------------------------------------------------

    def create_game(self, payload: Any) -> Outcome:
        if not isinstance(payload, dict):
            raise ValidationError("Invalid request body")

        name = clean_text(payload.get("name"))
        raw_participants = payload.get("participants")
        if not name or not isinstance(raw_participants, list) or len(raw_participants) < MIN_PARTICIPANTS:
            raise ValidationError(
                f"Invalid game data. Need at least {MIN_PARTICIPANTS} participants.",
                code="VALIDATION_ERROR",
            )

        event_date = clean_text(payload.get("date"))
        if event_date:
            validate_future_date(event_date, today=self.today())

        language = clean_language(payload.get("language"))
        stored_language = language if self.notifications.configured else None
        is_protected = payload.get("isProtected") is not False

        game = Game(
            id=generate_id(),
            code=generate_game_code(),
            name=name,
            organizer_token=generate_token(),
            amount=clean_text(payload.get("amount")),
            currency=clean_text(payload.get("currency")) or "USD",
            date=event_date,
            time=clean_text(payload.get("time")) or None,
            location=clean_text(payload.get("location")),
            allow_reassignment=payload.get("allowReassignment") is not False,
            is_protected=is_protected,
            general_notes=clean_text(payload.get("generalNotes")),
            organizer_email=clean_email(payload.get("organizerEmail")),
            organizer_language=stored_language,
            invitation_token=generate_token(),
            created_at=int(self.clock() * 1000),
        )

        for raw in raw_participants:
            if not isinstance(raw, dict):
                raise ValidationError("Each participant must be an object with a name")
            p_name = clean_text(raw.get("name"))
            if not p_name:
                raise ValidationError("Participant name is required", code="PARTICIPANT_NAME_REQUIRED")
            p_email = clean_email(raw.get("email"))
            if game.name_taken(p_name):
                raise ValidationError(f"Duplicate participant name: {p_name}", code="DUPLICATE_NAME")
            if p_email and game.email_taken(p_email):
                raise ValidationError(f"Duplicate participant email: {p_email}", code="DUPLICATE_EMAIL")
            game.participants.append(self._new_participant(
                game, p_name, p_email,
                desired_gift=clean_text(raw.get("desiredGift")),
                wish=clean_text(raw.get("wish")),
                preferred_language=stored_language,
            ))

        game.assignments = generate_assignments(game.participants, rng=self.rng)

        for attempt in range(CODE_ATTEMPTS):
            try:
                self.store.create(game)
                break
            except DuplicateGameCode:
                logger.warning("Game code %s already taken, picking another", game.code)
                game.code = generate_game_code()
        else:
            raise InternalError("Could not allocate a game code")

        logger.info("Game %s created with %d participants", game.code, len(game.participants))

        events: list[NotificationEvent] = []
        if payload.get("sendEmails") is not False:
            events += self._to_organizer(game, NotificationKind.GAME_CREATED, language)
            for p in game.participants:
                events += self._to_participant(game, p, NotificationKind.ASSIGNMENT_READY, language)
        self.notifications.dispatch(events)

        return Outcome(body=game.to_dict(), events=events, status_kind=StatusKind.CREATED)

    def get_game(
        self,
        code: str,
        organizer_token: str | None = None,
        participant_token: str | None = None,
        participant_id: str | None = None,
    ) -> dict:
        game = self._load(code)
        credential = resolve_credential(game, organizer_token, participant_token, participant_id)
        return project_game(game, credential)

    def delete_game(self, code: str, organizer_token: str | None) -> Outcome:
        if not organizer_token:
            raise UnauthorizedError("Organizer token is required to delete a game")
        game = self._load(code)
        if not tokens_match(organizer_token, game.organizer_token):
            logger.warning("Unauthorized delete attempt for game %s", code)
            raise ForbiddenError("Invalid organizer token")

        self.store.delete(game.id)
        logger.info("Game %s deleted by organizer", code)

        events: list[NotificationEvent] = []
        for p in game.participants:
            events += self._to_participant(game, p, NotificationKind.CANCELLATION)
        self.notifications.dispatch(events)

        return Outcome(
            body={"success": True, "message": "Game deleted successfully", "deletedCode": code},
            events=events,
        )

    # ------------------------------------------------------------------
    # updates
    # ------------------------------------------------------------------

    def update_game(self, code: str, action: a.GameAction) -> Outcome:
        if isinstance(action, a.RegenerateOrganizerToken):
            return self._regenerate_organizer_token(code, action)

        def apply(game: Game) -> Outcome:
            if isinstance(action, a.OrganizerAction):
                require_organizer(game, action.organizer_token)
            return self._apply(action, game)

        outcome = self._mutate(code, apply)
        logger.info("Action %s applied to game %s", action.name, code)
        return outcome

    @singledispatchmethod
    def _apply(self, action, game: Game) -> Outcome:
        raise ValidationError(f"Unsupported action: {type(action).__name__}")

    @_apply.register
    def _(self, action: a.UpdateGameDetails, game: Game) -> Outcome:
        if action.game_name is not None and not action.game_name.strip():
            raise ValidationError("Game name cannot be empty")
        if action.date:
            parse_event_date(action.date)

        changes: dict[str, dict] = {}
        for attr in ("date", "time", "location", "general_notes"):
            new = getattr(action, attr)
            if new is not None and new != (getattr(game, attr) or ""):
                changes[attr] = {"old": getattr(game, attr), "new": new}

        if action.game_name is not None:
            game.name = action.game_name.strip()
        if action.amount is not None:
            game.amount = action.amount
        if action.currency is not None:
            game.currency = action.currency
        if action.date is not None:
            game.date = action.date
        if action.time is not None:
            game.time = action.time or None
        if action.location is not None:
            game.location = action.location
        if action.general_notes is not None:
            game.general_notes = action.general_notes
        if action.allow_reassignment is not None:
            game.allow_reassignment = action.allow_reassignment

        events: list[NotificationEvent] = []
        if changes:
            for p in game.participants:
                events += self._to_participant(game, p, NotificationKind.DETAILS_CHANGED, action.language,
                                               changes=changes)
        return Outcome(body=game.to_dict(), events=events)

    @_apply.register
    def _(self, action: a.AddParticipant, game: Game) -> Outcome:
        name = clean_text(action.participant_name)
        email = clean_email(action.participant_email)
        if not name:
            raise ValidationError("Participant name is required", code="PARTICIPANT_NAME_REQUIRED")
        self._check_new_member(game, name, email)

        participant = self._new_participant(game, name, email)
        game.participants.append(participant)
        # Set size changed: a local swap cannot absorb a new member.
        self._regenerate(game)

        events: list[NotificationEvent] = []
        if len(game.participants) >= MIN_PARTICIPANTS:
            events += self._to_participant(game, participant, NotificationKind.INVITATION, action.language)
        return Outcome(body=game.to_dict(), events=events)

    @_apply.register
    def _(self, action: a.RemoveParticipant, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        game.participants = [p for p in game.participants if p.id != participant.id]
        game.reassignment_requests = [
            r for r in game.reassignment_requests if r.participant_id != participant.id
        ]
        self._regenerate(game)

        events = self._to_participant(game, participant, NotificationKind.REMOVAL, action.language)
        return Outcome(body=game.to_dict(), events=events)

    @_apply.register
    def _(self, action: a.UpdateParticipantDetails, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)

        name = None
        if action.participant_name is not None:
            name = action.participant_name.strip()
            if not name:
                raise ValidationError("Participant name cannot be empty")
        email = clean_email(action.email) if action.email is not None else None
        self._check_new_member(game, name or participant.name, email, exclude_id=participant.id)

        if name is not None:
            participant.name = name
            for r in game.reassignment_requests:
                if r.participant_id == participant.id:
                    r.participant_name = name
        if action.email is not None:
            participant.email = email
        if action.desired_gift is not None:
            participant.desired_gift = action.desired_gift.strip()
        if action.wish is not None:
            participant.wish = action.wish.strip()
        if action.has_confirmed_assignment is not None:
            participant.has_confirmed_assignment = action.has_confirmed_assignment
        return Outcome(body=game.to_dict())

    def _approve(self, game: Game, participant: Participant) -> bool:
        updated = reassign_participant(participant.id, game.assignments, game.participants, rng=self.rng)
        if updated is None:
            return False
        game.assignments = updated
        game.reassignment_requests = [
            r for r in game.reassignment_requests if r.participant_id != participant.id
        ]
        participant.has_pending_reassignment_request = False
        return True

    @_apply.register
    def _(self, action: a.ApproveReassignment, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        if game.find_request(participant.id) is None:
            raise ConflictError("No pending reassignment request for this participant", code="NO_PENDING_REQUEST")
        if not self._approve(game, participant):
            raise UnprocessableEntityError(
                "Cannot reassign: no valid swap available. Try regenerating all assignments.",
                code="NO_VALID_SWAP",
            )

        events = self._to_participant(game, participant, NotificationKind.REASSIGNMENT_RESOLVED,
                                      action.language, approved=True)
        return Outcome(body=game.to_dict(), events=events)

    @_apply.register
    def _(self, action: a.ApproveAllReassignments, game: Game) -> Outcome:
        if not game.reassignment_requests:
            raise ConflictError("No pending reassignment requests", code="NO_PENDING_REQUEST")

        approved: list[Participant] = []
        failed = 0
        for request in list(game.reassignment_requests):
            participant = game.find_participant(request.participant_id)
            if participant is None:
                continue
            if self._approve(game, participant):
                approved.append(participant)
            else:
                failed += 1

        if not approved and failed:
            raise UnprocessableEntityError(
                "Could not approve any reassignments. Try regenerating all assignments.",
                code="NO_VALID_SWAP",
            )
        logger.info("Approved %d reassignment requests for game %s, %d left pending",
                    len(approved), game.code, failed)

        events: list[NotificationEvent] = []
        for p in approved:
            events += self._to_participant(game, p, NotificationKind.REASSIGNMENT_RESOLVED,
                                           action.language, approved=True)
        return Outcome(body=game.to_dict(), events=events)

    def _reset_round(self, game: Game) -> None:
        game.reassignment_requests = []
        for p in game.participants:
            p.has_pending_reassignment_request = False
            p.has_confirmed_assignment = False

    @_apply.register
    def _(self, action: a.ReassignAll, game: Game) -> Outcome:
        if len(game.participants) < MIN_PARTICIPANTS:
            raise ValidationError(f"Need at least {MIN_PARTICIPANTS} participants to generate assignments")

        previously_confirmed = [p for p in game.participants if p.has_confirmed_assignment]
        game.assignments = generate_assignments(game.participants, rng=self.rng)
        self._reset_round(game)

        events: list[NotificationEvent] = []
        for p in previously_confirmed:
            events += self._to_participant(game, p, NotificationKind.FULL_RESHUFFLE, action.language)
        return Outcome(body=game.to_dict(), events=events)

    @_apply.register
    def _(self, action: a.CancelReassignmentRequest, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        game.reassignment_requests = [
            r for r in game.reassignment_requests if r.participant_id != participant.id
        ]
        participant.has_pending_reassignment_request = False

        events = self._to_participant(game, participant, NotificationKind.REASSIGNMENT_RESOLVED,
                                      action.language, approved=False)
        return Outcome(body=game.to_dict(), events=events)

    @_apply.register
    def _(self, action: a.RegenerateToken, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        participant.token = generate_token()
        logger.info("Token regenerated for participant '%s' in game %s", participant.name, game.code)
        return Outcome(body=game.to_dict())

    @_apply.register
    def _(self, action: a.ForceReassignParticipant, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        if game.assignment_for_giver(participant.id) is None:
            raise NotFoundError("Assignment not found")

        partner = find_swap_partner(participant.id, game.assignments, game.participants, rng=self.rng)
        if partner is None:
            raise UnprocessableEntityError("No valid swap available", code="NO_VALID_SWAP")

        game.assignments = swap_receivers(game.assignments, participant.id, partner.giver_id)
        # Both givers have a new receiver they have not seen yet.
        for p in (participant, game.find_participant(partner.giver_id)):
            if p is not None:
                p.has_confirmed_assignment = False
        game.reassignment_requests = [
            r for r in game.reassignment_requests if r.participant_id != participant.id
        ]
        participant.has_pending_reassignment_request = False

        events = self._to_participant(game, participant, NotificationKind.REASSIGNMENT_RESOLVED,
                                      action.language, approved=True, forced=True)
        return Outcome(body=game.to_dict(), events=events)

    @_apply.register
    def _(self, action: a.RequestReassignment, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        if not game.allow_reassignment:
            raise ForbiddenError("Reassignment not allowed for this game", code="REASSIGNMENT_DISABLED")
        if participant.has_pending_reassignment_request:
            raise ConflictError("Reassignment already requested", code="ALREADY_REQUESTED")

        self._remember_language(participant, clean_language(action.language))
        game.reassignment_requests.append(ReassignmentRequest(
            participant_id=participant.id,
            participant_name=participant.name,
            requested_at=int(self.clock() * 1000),
        ))
        participant.has_pending_reassignment_request = True

        events = self._to_organizer(game, NotificationKind.REASSIGNMENT_REQUESTED, action.language, participant)
        return Outcome(body=self._participant_response(game, participant, action), events=events)

    @_apply.register
    def _(self, action: a.ConfirmAssignment, game: Game) -> Outcome:
        participant = game.find_participant(action.participant_id)
        if participant is None:
            logger.info("Confirmation for unknown participant in game %s ignored", game.code)
            return Outcome(body=project_game(game, Anonymous()), write=False)

        newly_confirmed = not participant.has_confirmed_assignment
        participant.has_confirmed_assignment = True
        self._remember_language(participant, clean_language(action.language))

        events: list[NotificationEvent] = []
        if newly_confirmed:
            events += self._to_organizer(game, NotificationKind.PARTICIPANT_CONFIRMED, action.language, participant)
            if all(p.has_confirmed_assignment for p in game.participants):
                events += self._to_organizer(game, NotificationKind.ALL_CONFIRMED, action.language)
        return Outcome(body=self._participant_response(game, participant, action), events=events)

    @_apply.register
    def _(self, action: a.UpdateWish, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        old_wish = participant.wish
        participant.wish = (action.wish or "").strip()
        self._remember_language(participant, clean_language(action.language))

        events: list[NotificationEvent] = []
        incoming = game.assignment_for_receiver(participant.id)
        giver = game.find_participant(incoming.giver_id) if incoming else None
        if giver is not None and participant.wish != old_wish and giver.email:
            lang = self._language(giver.preferred_language, action.language)
            events.append(make_event(NotificationKind.WISH_UPDATED, game, giver.email, lang, participant))
        return Outcome(body=self._participant_response(game, participant, action), events=events)

    @_apply.register
    def _(self, action: a.UpdateParticipantEmail, game: Game) -> Outcome:
        participant = self._participant(game, action.participant_id)
        email = clean_email(action.email)
        if email and game.email_taken(email, exclude_id=participant.id):
            raise ConflictError("Participant email already exists", code="DUPLICATE_EMAIL")
        participant.email = email
        self._remember_language(participant, clean_language(action.language))
        return Outcome(body=self._participant_response(game, participant, action))

    @_apply.register
    def _(self, action: a.JoinInvitation, game: Game) -> Outcome:
        if not tokens_match(action.invitation_token, game.invitation_token):
            raise ForbiddenError("Invalid invitation token", code="INVALID_INVITATION_TOKEN")
        name = clean_text(action.participant_name)
        if not name:
            raise ValidationError("Participant name is required", code="PARTICIPANT_NAME_REQUIRED")
        email = clean_email(action.participant_email)
        if game.name_taken(name):
            raise ConflictError("Participant name already exists", code="DUPLICATE_NAME")
        if email and game.email_taken(email):
            raise ConflictError("Email address already in use", code="DUPLICATE_EMAIL")
        language = clean_language(action.language)

        participant = self._new_participant(
            game, name, email,
            desired_gift=clean_text(action.desired_gift),
            wish=clean_text(action.wish),
            preferred_language=language if self.notifications.configured else None,
        )
        game.participants.append(participant)
        self._regenerate(game)
        # The old cycle is gone; earlier confirmations and requests refer to it.
        self._reset_round(game)

        logger.info("Participant '%s' joined game %s via invitation", name, game.code)
        events = self._to_participant(game, participant, NotificationKind.INVITATION, language)
        return Outcome(
            body={"game": participant_view(game, participant), "participantId": participant.id},
            events=events,
        )

    def _regenerate_organizer_token(self, code: str, action: a.RegenerateOrganizerToken) -> Outcome:
        game = self._load(code)
        require_organizer(game, action.organizer_token)
        if not self.notifications.configured:
            raise ValidationError(
                "Email service not configured. Cannot regenerate organizer token without email.",
                code="EMAIL_NOT_CONFIGURED",
            )
        if not game.organizer_email:
            raise ValidationError(
                "No organizer email configured. Cannot send new access link.",
                code="NO_ORGANIZER_EMAIL",
            )

        old_token = game.organizer_token
        game.organizer_token = generate_token()
        try:
            self.store.replace(game)
        except ConcurrentUpdateError as e:
            self.store.reset()
            raise ConflictError("The game is being modified by someone else. Please retry.",
                                code="CONCURRENT_UPDATE") from e

        event = self._to_organizer(game, NotificationKind.NEW_ORGANIZER_LINK, action.language)[0]
        if not self.notifications.deliver(event):
            # The new link never reached the organizer; keep the old one valid.
            self.store.reset()
            current = self._load(code)
            current.organizer_token = old_token
            self.store.replace(current)
            raise InternalError("Failed to send email with new link")

        logger.info("Organizer token regenerated for game %s", code)
        return Outcome(
            body={
                "success": True,
                "message": "Organizer token regenerated. Check your email for the new link.",
                "emailSent": True,
            },
            events=[event],
        )
