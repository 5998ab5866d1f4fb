"""
Access control over a game.

Every read goes through ``project_game``: the organizer sees everything, a
participant sees only the edge where they are the giver, and anonymous
callers never see an edge at all.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .domain import Game, Participant
from .errors import ForbiddenError, InvalidParticipantToken, NotFoundError, UnauthorizedError
from .security import tokens_match


@dataclass(frozen=True)
class OrganizerToken:
    token: str


@dataclass(frozen=True)
class ParticipantToken:
    token: str


@dataclass(frozen=True)
class ParticipantId:
    participant_id: str


@dataclass(frozen=True)
class Anonymous:
    pass


Credential = Union[OrganizerToken, ParticipantToken, ParticipantId, Anonymous]


def is_organizer(game: Game, credential: Credential) -> bool:
    return isinstance(credential, OrganizerToken) and tokens_match(credential.token, game.organizer_token)


def require_organizer(game: Game, token: str | None) -> None:
    if not token:
        raise UnauthorizedError("Organizer token is required")
    if not tokens_match(token, game.organizer_token):
        raise ForbiddenError("Invalid organizer token")


def find_by_token(game: Game, token: str) -> Participant | None:
    return next((p for p in game.participants if tokens_match(token, p.token)), None)


def resolve_credential(
    game: Game,
    organizer_token: str | None = None,
    participant_token: str | None = None,
    participant_id: str | None = None,
) -> Credential:
    """Pick the strongest credential a request carries.

    A wrong organizer token does not lock the caller out; it is ignored and
    the next credential is used. On an open game the participant id is
    preferred over a participant token.
    """
    if organizer_token and tokens_match(organizer_token, game.organizer_token):
        return OrganizerToken(organizer_token)
    if participant_token and (game.is_protected or not participant_id):
        return ParticipantToken(participant_token)
    if participant_id:
        return ParticipantId(participant_id)
    return Anonymous()


def _participant_view(game: Game, participant: Participant, *, protected: bool) -> dict:
    view = game.to_dict()

    participants = []
    for p in game.participants:
        data = p.to_dict()
        if p.id != participant.id or not protected:
            data.pop("token", None)
        if protected and p.id != participant.id:
            data.pop("email", None)
        participants.append(data)
    view["participants"] = participants

    own = game.assignment_for_giver(participant.id)
    view["assignments"] = [own.to_dict()] if own else []

    incoming = game.assignment_for_receiver(participant.id)
    giver = game.find_participant(incoming.giver_id) if incoming else None

    view["organizerToken"] = ""
    view.pop("invitationToken", None)
    if protected:
        view.pop("organizerEmail", None)
    view["authenticatedParticipantId"] = participant.id
    view["giverHasConfirmed"] = bool(giver and giver.has_confirmed_assignment)
    return view


def participant_view(game: Game, participant: Participant) -> dict:
    """View returned to a participant right after one of their own actions."""
    return _participant_view(game, participant, protected=game.is_protected)


def _public_view(game: Game) -> dict:
    view = game.to_dict()
    view["organizerToken"] = ""
    view.pop("invitationToken", None)
    view["participants"] = [
        {k: v for k, v in p.to_dict().items() if k != "token"} for p in game.participants
    ]
    view["assignments"] = []
    return view


def project_game(game: Game, credential: Credential) -> dict:
    """
    Return the part of ``game`` the holder of ``credential`` may see.

    Raises InvalidParticipantToken for an unknown participant token and
    NotFoundError for an unknown participant id on an open game.
    """
    if is_organizer(game, credential):
        return game.to_dict()

    if isinstance(credential, ParticipantToken):
        participant = find_by_token(game, credential.token)
        if participant is None:
            raise InvalidParticipantToken()
        return _participant_view(game, participant, protected=game.is_protected)

    if game.is_protected:
        return {
            "code": game.code,
            "name": game.name,
            "isProtected": True,
            "requiresToken": True,
        }

    if isinstance(credential, ParticipantId):
        participant = game.find_participant(credential.participant_id)
        if participant is None:
            raise NotFoundError("Participant not found")
        return _participant_view(game, participant, protected=False)

    return _public_view(game)
