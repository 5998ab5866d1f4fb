"""HTTP-level tests: routing, JSON bodies and status codes."""
import pytest

from gift_exchange.errors import ServiceUnavailableError

from helpers import by_name, game_payload


@pytest.fixture
def game(client):
    resp = client.post("/api/games", json=game_payload())
    assert resp.status_code == 201
    return resp.get_json()


def test_create_game(game):
    assert game["code"]
    assert len(game["participants"]) == 4


def test_create_game_bad_body(client):
    resp = client.post("/api/games", data="not json", content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["error"]


def test_create_game_validation_error_has_code(client):
    resp = client.post("/api/games", json=game_payload(participants=[]))
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"


def test_get_game_views(client, game):
    code = game["code"]

    resp = client.get(f"/api/games/{code}")
    assert resp.status_code == 200
    assert resp.get_json()["requiresToken"] is True

    resp = client.get(f"/api/games/{code}", query_string={"organizerToken": game["organizerToken"]})
    assert len(resp.get_json()["assignments"]) == 4

    ana = by_name(game, "Ana")
    resp = client.get(f"/api/games/{code}", query_string={"participantToken": ana["token"]})
    assert len(resp.get_json()["assignments"]) == 1

    resp = client.get(f"/api/games/{code}", query_string={"participantToken": "bogus"})
    assert resp.status_code == 403


def test_unknown_game_is_404(client):
    assert client.get("/api/games/000000").status_code == 404


def test_patch_action(client, game):
    ana = by_name(game, "Ana")
    resp = client.patch(f"/api/games/{game['code']}", json={
        "action": "requestReassignment", "participantId": ana["id"], "participantToken": ana["token"],
    })
    assert resp.status_code == 200
    assert resp.get_json()["authenticatedParticipantId"] == ana["id"]


def test_put_is_an_alias_for_patch(client, game):
    resp = client.put(f"/api/games/{game['code']}", json={
        "action": "updateGameDetails", "organizerToken": game["organizerToken"], "location": "Roof",
    })
    assert resp.status_code == 200
    assert resp.get_json()["location"] == "Roof"


@pytest.mark.parametrize("body, status", [
    ({"action": "reassignAll"}, 401),
    ({"action": "reassignAll", "organizerToken": "guess"}, 403),
    ({"action": "launchRockets"}, 400),
    ({"action": "removeParticipant", "organizerToken": None, "participantId": "ghost"}, 401),
])
def test_patch_error_statuses(client, game, body, status):
    resp = client.patch(f"/api/games/{game['code']}", json=body)
    assert resp.status_code == status
    assert "error" in resp.get_json()


def test_patch_conflict_and_unprocessable(client):
    game = client.post("/api/games", json=game_payload(participants=[
        {"name": "A"}, {"name": "B"}, {"name": "C"},
    ])).get_json()
    url = f"/api/games/{game['code']}"
    a_id = by_name(game, "A")["id"]

    client.patch(url, json={"action": "requestReassignment", "participantId": a_id})
    resp = client.patch(url, json={"action": "requestReassignment", "participantId": a_id})
    assert resp.status_code == 409

    resp = client.patch(url, json={
        "action": "approveReassignment", "organizerToken": game["organizerToken"], "participantId": a_id,
    })
    assert resp.status_code == 422
    assert resp.get_json()["code"] == "NO_VALID_SWAP"


def test_delete_game(client, game):
    url = f"/api/games/{game['code']}"
    assert client.delete(url).status_code == 401
    assert client.delete(url, headers={"X-Organizer-Token": "guess"}).status_code == 403

    resp = client.delete(url, query_string={"organizerToken": game["organizerToken"]})
    assert resp.status_code == 200
    assert resp.get_json()["deletedCode"] == game["code"]
    assert client.get(url).status_code == 404


def test_send_email(client, game):
    resp = client.post("/api/email/send", json={
        "code": game["code"], "type": "reminderAll", "organizerToken": game["organizerToken"],
    })
    assert resp.status_code == 200
    assert resp.get_json()["sent"] == 4


def test_unknown_route_is_json_404(client):
    resp = client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.get_json()["error"]


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["notifications"]["status"] == "ok"


def test_health_reports_database_outage(client, services, monkeypatch):
    def down():
        raise ServiceUnavailableError("Database not available")

    monkeypatch.setattr(services.store, "ping", down)
    resp = client.get("/api/health")
    assert resp.status_code == 503
    assert resp.get_json()["checks"]["database"]["status"] == "error"


def test_unexpected_errors_are_500(client, services, monkeypatch):
    def boom(*args, **kwargs):
        raise KeyError("oops")

    monkeypatch.setattr(services.games, "get_game", boom)
    resp = client.get("/api/games/123456")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Internal server error"}
