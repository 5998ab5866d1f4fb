"""Tests for gift_exchange.policies: who sees which part of a game."""
import pytest

from gift_exchange.domain import Assignment, Game, Participant
from gift_exchange.errors import ForbiddenError, InvalidParticipantToken, NotFoundError, UnauthorizedError
from gift_exchange.policies import (
    Anonymous,
    OrganizerToken,
    ParticipantId,
    ParticipantToken,
    project_game,
    require_organizer,
    resolve_credential,
)


def _game(protected=True):
    people = [
        Participant(id="a", name="Ana", email="ana@x.com", token="tok-a" if protected else None),
        Participant(id="b", name="Ben", email="ben@x.com", token="tok-b" if protected else None,
                    has_confirmed_assignment=True),
        Participant(id="c", name="Cy", email="cy@x.com", token="tok-c" if protected else None),
    ]
    return Game(
        id="g1",
        code="123456",
        name="Party",
        organizer_token="org",
        is_protected=protected,
        organizer_email="boss@x.com",
        invitation_token="inv",
        participants=people,
        # a -> b -> c -> a
        assignments=[Assignment("a", "b"), Assignment("b", "c"), Assignment("c", "a")],
    )


def test_organizer_sees_everything():
    game = _game()
    view = project_game(game, OrganizerToken("org"))
    assert view == game.to_dict()
    assert len(view["assignments"]) == 3
    assert view["invitationToken"] == "inv"


def test_protected_participant_sees_only_own_edge():
    view = project_game(_game(), ParticipantToken("tok-a"))

    assert view["assignments"] == [{"giverId": "a", "receiverId": "b"}]
    assert view["organizerToken"] == ""
    assert "invitationToken" not in view
    assert "organizerEmail" not in view
    assert view["authenticatedParticipantId"] == "a"


def test_protected_participant_view_hides_other_tokens_and_emails():
    view = project_game(_game(), ParticipantToken("tok-a"))
    by_id = {p["id"]: p for p in view["participants"]}

    assert by_id["a"]["token"] == "tok-a"
    assert by_id["a"]["email"] == "ana@x.com"
    for other in ("b", "c"):
        assert "token" not in by_id[other]
        assert "email" not in by_id[other]


def test_giver_has_confirmed_reflects_incoming_edge():
    # a's giver is c, who has not confirmed.
    assert project_game(_game(), ParticipantToken("tok-a"))["giverHasConfirmed"] is False
    # c's giver is b, who has confirmed.
    assert project_game(_game(), ParticipantToken("tok-c"))["giverHasConfirmed"] is True


def test_protected_game_without_token_reveals_nothing():
    view = project_game(_game(), Anonymous())
    assert view == {"code": "123456", "name": "Party", "isProtected": True, "requiresToken": True}


def test_protected_game_ignores_participant_id():
    view = project_game(_game(), ParticipantId("a"))
    assert view["requiresToken"] is True
    assert "assignments" not in view


def test_protected_game_unknown_token_is_forbidden():
    with pytest.raises(InvalidParticipantToken):
        project_game(_game(), ParticipantToken("nope"))


def test_open_game_anonymous_sees_no_edges():
    view = project_game(_game(protected=False), Anonymous())
    assert view["assignments"] == []
    assert view["organizerToken"] == ""
    assert "invitationToken" not in view
    assert len(view["participants"]) == 3


def test_open_game_participant_id_sees_own_edge():
    view = project_game(_game(protected=False), ParticipantId("b"))
    assert view["assignments"] == [{"giverId": "b", "receiverId": "c"}]
    assert view["organizerEmail"] == "boss@x.com"


def test_open_game_unknown_participant_id_is_not_found():
    with pytest.raises(NotFoundError):
        project_game(_game(protected=False), ParticipantId("zzz"))


def test_wrong_organizer_token_falls_through_to_next_credential():
    game = _game()
    assert resolve_credential(game, "wrong", "tok-b") == ParticipantToken("tok-b")
    assert resolve_credential(game, "wrong") == Anonymous()
    assert resolve_credential(game, "org", "tok-b") == OrganizerToken("org")


def test_require_organizer():
    game = _game()
    require_organizer(game, "org")
    with pytest.raises(UnauthorizedError):
        require_organizer(game, None)
    with pytest.raises(ForbiddenError):
        require_organizer(game, "guess")


def test_open_game_prefers_participant_id_over_token():
    game = _game(protected=False)
    game.participants[0].token = "tok-a"

    credential = resolve_credential(game, participant_token="tok-a", participant_id="b")
    assert credential == ParticipantId("b")
    assert project_game(game, credential)["authenticatedParticipantId"] == "b"


def test_open_game_accepts_a_regenerated_participant_token():
    game = _game(protected=False)
    game.participants[0].token = "tok-a"

    view = project_game(game, resolve_credential(game, participant_token="tok-a"))
    assert view["authenticatedParticipantId"] == "a"
    assert view["assignments"] == [{"giverId": "a", "receiverId": "b"}]
    assert all("token" not in p for p in view["participants"])


def test_open_game_unknown_token_is_forbidden():
    with pytest.raises(InvalidParticipantToken):
        project_game(_game(protected=False), ParticipantToken("nope"))
