"""
Value types for a gift-exchange game.

A ``Game`` is the unit of persistence: it is loaded whole, mutated in memory
and written back whole. ``to_dict``/``from_dict`` map to the camelCase JSON
documents used on the wire and in storage.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

LANGUAGES = ("en", "es", "pt", "fr", "it", "ja", "zh", "de", "nl")


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class Participant:
    id: str
    name: str
    email: Optional[str] = None
    desired_gift: str = ""
    wish: str = ""
    has_confirmed_assignment: bool = False
    has_pending_reassignment_request: bool = False
    token: Optional[str] = None
    preferred_language: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "desiredGift": self.desired_gift,
            "wish": self.wish,
            "hasConfirmedAssignment": self.has_confirmed_assignment,
            "hasPendingReassignmentRequest": self.has_pending_reassignment_request,
            "token": self.token,
            "preferredLanguage": self.preferred_language,
        })

    @classmethod
    def from_dict(cls, data: dict) -> "Participant":
        return cls(
            id=data["id"],
            name=data["name"],
            email=data.get("email") or None,
            desired_gift=data.get("desiredGift") or "",
            wish=data.get("wish") or "",
            has_confirmed_assignment=bool(data.get("hasConfirmedAssignment", False)),
            has_pending_reassignment_request=bool(data.get("hasPendingReassignmentRequest", False)),
            token=data.get("token") or None,
            preferred_language=data.get("preferredLanguage") or None,
        )


@dataclass(frozen=True)
class Assignment:
    """Directed edge: ``giver_id`` gives a gift to ``receiver_id``."""

    giver_id: str
    receiver_id: str

    def to_dict(self) -> dict:
        return {"giverId": self.giver_id, "receiverId": self.receiver_id}

    @classmethod
    def from_dict(cls, data: dict) -> "Assignment":
        return cls(giver_id=data["giverId"], receiver_id=data["receiverId"])


@dataclass
class ReassignmentRequest:
    participant_id: str
    participant_name: str
    requested_at: int  # epoch milliseconds

    def to_dict(self) -> dict:
        return {
            "participantId": self.participant_id,
            "participantName": self.participant_name,
            "requestedAt": self.requested_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReassignmentRequest":
        return cls(
            participant_id=data["participantId"],
            participant_name=data.get("participantName", ""),
            requested_at=int(data.get("requestedAt", 0)),
        )


@dataclass
class Game:
    id: str
    code: str
    name: str
    organizer_token: str
    amount: str = ""
    currency: str = "USD"
    date: str = ""
    time: Optional[str] = None
    location: str = ""
    allow_reassignment: bool = True
    is_protected: bool = True
    general_notes: str = ""
    participants: list[Participant] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)
    reassignment_requests: list[ReassignmentRequest] = field(default_factory=list)
    organizer_email: Optional[str] = None
    organizer_language: Optional[str] = None
    invitation_token: Optional[str] = None
    created_at: int = 0
    # Row version seen by the last read; not part of the document.
    version: int = field(default=0, compare=False, repr=False)

    def find_participant(self, participant_id: str | None) -> Optional[Participant]:
        if not participant_id:
            return None
        return next((p for p in self.participants if p.id == participant_id), None)

    def find_request(self, participant_id: str) -> Optional[ReassignmentRequest]:
        return next((r for r in self.reassignment_requests if r.participant_id == participant_id), None)

    def assignment_for_giver(self, giver_id: str) -> Optional[Assignment]:
        return next((a for a in self.assignments if a.giver_id == giver_id), None)

    def assignment_for_receiver(self, receiver_id: str) -> Optional[Assignment]:
        return next((a for a in self.assignments if a.receiver_id == receiver_id), None)

    def name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        lowered = name.lower()
        return any(p.id != exclude_id and p.name.lower() == lowered for p in self.participants)

    def email_taken(self, email: str, exclude_id: str | None = None) -> bool:
        lowered = email.lower()
        return any(
            p.id != exclude_id and p.email and p.email.lower() == lowered
            for p in self.participants
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "amount": self.amount,
            "currency": self.currency,
            "date": self.date,
            "time": self.time,
            "location": self.location,
            "allowReassignment": self.allow_reassignment,
            "isProtected": self.is_protected,
            "generalNotes": self.general_notes,
            "participants": [p.to_dict() for p in self.participants],
            "assignments": [a.to_dict() for a in self.assignments],
            "reassignmentRequests": [r.to_dict() for r in self.reassignment_requests],
            "organizerToken": self.organizer_token,
            "organizerEmail": self.organizer_email,
            "organizerLanguage": self.organizer_language,
            "invitationToken": self.invitation_token,
            "createdAt": self.created_at,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Game":
        return cls(
            id=data["id"],
            code=data["code"],
            name=data.get("name", ""),
            organizer_token=data.get("organizerToken", ""),
            amount=data.get("amount") or "",
            currency=data.get("currency") or "USD",
            date=data.get("date") or "",
            time=data.get("time") or None,
            location=data.get("location") or "",
            allow_reassignment=bool(data.get("allowReassignment", True)),
            is_protected=bool(data.get("isProtected", True)),
            general_notes=data.get("generalNotes") or "",
            participants=[Participant.from_dict(p) for p in data.get("participants") or []],
            assignments=[Assignment.from_dict(a) for a in data.get("assignments") or []],
            reassignment_requests=[
                ReassignmentRequest.from_dict(r) for r in data.get("reassignmentRequests") or []
            ],
            organizer_email=data.get("organizerEmail") or None,
            organizer_language=data.get("organizerLanguage") or None,
            invitation_token=data.get("invitationToken") or None,
            created_at=int(data.get("createdAt") or 0),
        )
