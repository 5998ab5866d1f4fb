from __future__ import annotations

import random
from typing import Iterable, Optional, Sequence

from ..domain import Assignment, Participant
from ..errors import ValidationError

MIN_PARTICIPANTS = 3

_system_random = random.SystemRandom()


class AssignmentError(ValidationError):
    pass


def generate_assignments(
    participants: Sequence[Participant],
    rng: random.Random | None = None,
) -> list[Assignment]:
    """
    Build a single giver->receiver cycle over every participant.

    The participant order is shuffled uniformly and each participant gives to
    the next one, the last giving to the first. With at least three distinct
    participants no one is ever assigned to themselves.
    """
    if len(participants) < MIN_PARTICIPANTS:
        raise AssignmentError(f"Need at least {MIN_PARTICIPANTS} participants")

    rng = rng or _system_random
    ids = [p.id for p in participants]
    rng.shuffle(ids)

    return [
        Assignment(giver_id=giver_id, receiver_id=ids[(i + 1) % len(ids)])
        for i, giver_id in enumerate(ids)
    ]


def _swap_candidates(
    participant_id: str,
    current_receiver_id: str,
    assignments: Iterable[Assignment],
) -> list[Assignment]:
    candidates = []
    for a in assignments:
        if a.giver_id == participant_id:
            continue
        # partner -> requester would leave the requester giving to themselves
        if a.receiver_id == participant_id:
            continue
        if a.receiver_id == current_receiver_id:
            continue
        # partner would end up giving to themselves
        if a.giver_id == current_receiver_id:
            continue
        candidates.append(a)
    return candidates


def find_swap_partner(
    participant_id: str,
    assignments: Sequence[Assignment],
    participants: Sequence[Participant],
    rng: random.Random | None = None,
) -> Optional[Assignment]:
    """
    Pick the edge whose receiver the requester should take over.

    Givers who have not confirmed their assignment yet are always preferred;
    a confirmed giver is only disturbed when nobody else is eligible.
    Returns None when the requester has no edge or nobody is eligible.
    """
    own = next((a for a in assignments if a.giver_id == participant_id), None)
    if own is None:
        return None

    candidates = _swap_candidates(participant_id, own.receiver_id, assignments)
    if not candidates:
        return None

    confirmed = {p.id for p in participants if p.has_confirmed_assignment}
    unconfirmed = [a for a in candidates if a.giver_id not in confirmed]

    rng = rng or _system_random
    return rng.choice(unconfirmed or candidates)


def reassign_participant(
    participant_id: str,
    assignments: Sequence[Assignment],
    participants: Sequence[Participant],
    rng: random.Random | None = None,
) -> Optional[list[Assignment]]:
    """
    Give ``participant_id`` a new receiver by swapping receivers with one other giver.

    Before: requester -> B, partner -> D.  After: requester -> D, partner -> B.
    Every other edge is left untouched.

    Returns the input unchanged when ``participant_id`` is not a giver, and
    None when no swap keeps the assignment valid (for example a 3-cycle).
    """
    own = next((a for a in assignments if a.giver_id == participant_id), None)
    if own is None:
        return list(assignments)

    partner = find_swap_partner(participant_id, assignments, participants, rng=rng)
    if partner is None:
        return None

    return swap_receivers(assignments, participant_id, partner.giver_id)


def swap_receivers(assignments: Sequence[Assignment], giver_a: str, giver_b: str) -> list[Assignment]:
    """Exchange the receivers of two givers, keeping edge order."""
    receivers = {a.giver_id: a.receiver_id for a in assignments}
    swapped = {giver_a: receivers[giver_b], giver_b: receivers[giver_a]}
    return [
        Assignment(giver_id=a.giver_id, receiver_id=swapped[a.giver_id]) if a.giver_id in swapped else a
        for a in assignments
    ]


def is_valid_derangement(assignments: Sequence[Assignment], participant_ids: Iterable[str]) -> bool:
    ids = set(participant_ids)
    if len(ids) < MIN_PARTICIPANTS:
        return not assignments
    givers = [a.giver_id for a in assignments]
    receivers = [a.receiver_id for a in assignments]
    return (
        len(assignments) == len(ids)
        and set(givers) == ids
        and set(receivers) == ids
        and len(set(givers)) == len(givers)
        and len(set(receivers)) == len(receivers)
        and all(a.giver_id != a.receiver_id for a in assignments)
    )
