"""
Update actions on a game.

Each action is its own dataclass; ``decode_action`` turns a JSON payload of
the form ``{"action": "<name>", ...}`` into one of them, so the orchestrator
never looks at raw strings again.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Union

from ..errors import ValidationError
from .validation import clean_language


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass
class Action:
    name: ClassVar[str] = ""
    required: ClassVar[tuple[str, ...]] = ()
    messages: ClassVar[dict[str, str]] = {}

    language: Optional[str] = None


@dataclass
class OrganizerAction(Action):
    organizer_token: Optional[str] = None


@dataclass
class UpdateGameDetails(OrganizerAction):
    name: ClassVar[str] = "updateGameDetails"

    game_name: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = None
    general_notes: Optional[str] = None
    allow_reassignment: Optional[bool] = None


@dataclass
class AddParticipant(OrganizerAction):
    name: ClassVar[str] = "addParticipant"

    participant_name: Optional[str] = None
    participant_email: Optional[str] = None


@dataclass
class ParticipantTargetedOrganizerAction(OrganizerAction):
    required: ClassVar[tuple[str, ...]] = ("participant_id",)
    messages: ClassVar[dict[str, str]] = {"participant_id": "Participant ID is required"}

    participant_id: Optional[str] = None


@dataclass
class RemoveParticipant(ParticipantTargetedOrganizerAction):
    name: ClassVar[str] = "removeParticipant"


@dataclass
class UpdateParticipantDetails(ParticipantTargetedOrganizerAction):
    name: ClassVar[str] = "updateParticipantDetails"

    participant_name: Optional[str] = None
    email: Optional[str] = None
    desired_gift: Optional[str] = None
    wish: Optional[str] = None
    has_confirmed_assignment: Optional[bool] = None


@dataclass
class ApproveReassignment(ParticipantTargetedOrganizerAction):
    name: ClassVar[str] = "approveReassignment"


@dataclass
class ApproveAllReassignments(OrganizerAction):
    name: ClassVar[str] = "approveAllReassignments"


@dataclass
class ReassignAll(OrganizerAction):
    name: ClassVar[str] = "reassignAll"


@dataclass
class CancelReassignmentRequest(ParticipantTargetedOrganizerAction):
    name: ClassVar[str] = "cancelReassignmentRequest"


@dataclass
class RegenerateToken(ParticipantTargetedOrganizerAction):
    name: ClassVar[str] = "regenerateToken"


@dataclass
class RegenerateOrganizerToken(OrganizerAction):
    name: ClassVar[str] = "regenerateOrganizerToken"


@dataclass
class ForceReassignParticipant(ParticipantTargetedOrganizerAction):
    name: ClassVar[str] = "forceReassignParticipant"


@dataclass
class ParticipantAction(Action):
    required: ClassVar[tuple[str, ...]] = ("participant_id",)
    messages: ClassVar[dict[str, str]] = {"participant_id": "Participant ID is required"}

    participant_id: Optional[str] = None
    # Optional; only used to decide how much of the game to send back.
    participant_token: Optional[str] = None


@dataclass
class RequestReassignment(ParticipantAction):
    name: ClassVar[str] = "requestReassignment"


@dataclass
class ConfirmAssignment(ParticipantAction):
    name: ClassVar[str] = "confirmAssignment"


@dataclass
class UpdateWish(ParticipantAction):
    name: ClassVar[str] = "updateWish"

    wish: Optional[str] = None


@dataclass
class UpdateParticipantEmail(ParticipantAction):
    name: ClassVar[str] = "updateParticipantEmail"

    email: Optional[str] = None


@dataclass
class JoinInvitation(Action):
    name: ClassVar[str] = "joinInvitation"

    invitation_token: Optional[str] = None
    participant_name: Optional[str] = None
    participant_email: Optional[str] = None
    desired_gift: Optional[str] = None
    wish: Optional[str] = None


GameAction = Union[
    UpdateGameDetails,
    AddParticipant,
    RemoveParticipant,
    UpdateParticipantDetails,
    ApproveReassignment,
    ApproveAllReassignments,
    ReassignAll,
    CancelReassignmentRequest,
    RegenerateToken,
    RegenerateOrganizerToken,
    ForceReassignParticipant,
    RequestReassignment,
    ConfirmAssignment,
    UpdateWish,
    UpdateParticipantEmail,
    JoinInvitation,
]

ACTIONS: dict[str, type] = {cls.name: cls for cls in GameAction.__args__}

_BOOL_FIELDS = {"allow_reassignment", "has_confirmed_assignment"}

# Wire keys that differ from the camelCase form of the field name.
_WIRE_KEYS = {
    (UpdateGameDetails, "game_name"): "name",
    (UpdateParticipantDetails, "participant_name"): "name",
}


def decode_action(payload: Any) -> GameAction:
    """Build the action named by ``payload["action"]``.

    Raises ValidationError for an unknown action, a wrongly typed field or a
    missing required field.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid request body")

    action_name = payload.get("action")
    cls = ACTIONS.get(action_name)
    if cls is None:
        raise ValidationError(f"Unknown action: {action_name}", code="UNKNOWN_ACTION")

    values = {}
    for f in dataclasses.fields(cls):
        key = _WIRE_KEYS.get((cls, f.name), _camel(f.name))
        value = payload.get(key)
        if value is None:
            continue
        if f.name in _BOOL_FIELDS:
            if not isinstance(value, bool):
                raise ValidationError(f"'{key}' must be a boolean")
        elif not isinstance(value, str):
            raise ValidationError(f"'{key}' must be a string")
        values[f.name] = value

    for field_name in cls.required:
        if not (values.get(field_name) or "").strip():
            raise ValidationError(cls.messages.get(field_name, f"'{_camel(field_name)}' is required"))

    if "language" in values:
        values["language"] = clean_language(values["language"])
    return cls(**values)
