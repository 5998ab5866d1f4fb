"""Tests for gift_exchange.services.storage: persistence, encryption at rest and versioning."""
import pytest
from sqlalchemy import select, update

from gift_exchange import create_app
from gift_exchange.errors import ConcurrentUpdateError, InternalError
from gift_exchange.extensions import db
from gift_exchange.models import GameRecord
from gift_exchange.security import decrypt_assignments, encrypt_assignments
from gift_exchange.services.actions import decode_action
from gift_exchange.services.storage import DuplicateGameCode

from helpers import TEST_CONFIG, by_name, game_payload


def _record(code):
    return db.session.execute(select(GameRecord).filter_by(code=code)).scalar_one()


def test_assignments_are_not_stored_in_plaintext(service, created):
    record = _record(created["code"])

    assert "assignments" not in record.document
    assert record.assignments_ciphertext
    ana_id = by_name(created, "Ana")["id"]
    assert ana_id not in record.assignments_ciphertext
    assert [a.to_dict() for a in decrypt_assignments(record.assignments_ciphertext)] == created["assignments"]


def test_event_date_is_indexed_separately(created):
    assert _record(created["code"]).event_date == created["date"]


def test_round_trip_through_store(services, created):
    game = services.store.get(created["code"])
    assert game.to_dict() == created
    assert services.store.get_by_id(created["id"]).code == created["code"]
    assert services.store.get("999999") is None


def test_each_write_bumps_version(services, created):
    record = _record(created["code"])
    version = record.version

    game = services.store.get(created["code"])
    game.name = "Renamed"
    services.store.replace(game)

    assert _record(created["code"]).version == version + 1


def test_stale_write_is_rejected(services, created):
    game = services.store.get(created["code"])
    # Another writer commits in between.
    db.session.execute(
        update(GameRecord)
        .where(GameRecord.id == created["id"])
        .values(version=GameRecord.version + 1)
        .execution_options(synchronize_session=False)
    )

    game.name = "Too late"
    with pytest.raises(ConcurrentUpdateError):
        services.store.replace(game)


def test_duplicate_code_is_rejected(services, created):
    game = services.store.get(created["code"])
    game.id = "another-id"
    with pytest.raises(DuplicateGameCode):
        services.store.create(game)


def test_unreadable_ciphertext_is_an_internal_error(services, created):
    record = _record(created["code"])
    record.assignments_ciphertext = "not-a-fernet-token"
    db.session.commit()

    with pytest.raises(InternalError):
        services.store.get(created["code"])


def test_ciphertext_depends_on_secret_key(app):
    token = encrypt_assignments([])
    app.config["SECRET_KEY"] = "rotated"
    with pytest.raises(ValueError):
        decrypt_assignments(token)


def test_delete_and_list_expired(services):
    old = services.games.create_game(game_payload(sendEmails=False)).body
    game = services.store.get(old["code"])
    game.date = "2000-01-01"
    services.store.replace(game)
    services.games.create_game(game_payload(sendEmails=False, date=""))

    expired = services.store.list_expired("2000-01-04")
    assert [g.code for g in expired] == [old["code"]]

    services.store.delete(game.id)
    assert services.store.get(old["code"]) is None
    assert services.store.list_expired("2000-01-04") == []


# ── two sessions racing on a shared database ────────────────


@pytest.fixture
def shared_db_app(tmp_path, notifier):
    app = create_app(
        {**TEST_CONFIG, "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'games.db'}"},
        notifier=notifier,
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


def _confirmed(game):
    return sorted(p.name for p in game.participants if p.has_confirmed_assignment)


def _confirm(game, name):
    next(p for p in game.participants if p.name == name).has_confirmed_assignment = True


def test_stale_write_from_another_session_is_rejected(shared_db_app):
    services = shared_db_app.extensions["gift_exchange"]
    code = services.games.create_game(game_payload(sendEmails=False)).body["code"]

    mine = services.store.get(code)
    # Each app context gets its own session.
    with shared_db_app.app_context():
        theirs = services.store.get(code)
        _confirm(theirs, "Ben")
        services.store.replace(theirs)

    _confirm(mine, "Ana")
    with pytest.raises(ConcurrentUpdateError):
        services.store.replace(mine)

    assert _confirmed(services.store.get(code)) == ["Ben"]


def test_replace_after_fresh_read_succeeds(shared_db_app):
    services = shared_db_app.extensions["gift_exchange"]
    code = services.games.create_game(game_payload(sendEmails=False)).body["code"]

    game = services.store.get(code)
    _confirm(game, "Ana")
    services.store.replace(game)
    # The same object can keep writing: its version follows the row.
    _confirm(game, "Cy")
    services.store.replace(game)

    assert _confirmed(services.store.get(code)) == ["Ana", "Cy"]


def test_orchestrator_retries_lost_race_without_losing_data(shared_db_app, monkeypatch):
    services = shared_db_app.extensions["gift_exchange"]
    created = services.games.create_game(game_payload(sendEmails=False)).body
    ana = by_name(created, "Ana")
    real_get = services.store.get
    raced = []

    def get_then_race(code):
        game = real_get(code)
        if not raced:
            raced.append(code)
            with shared_db_app.app_context():
                other = real_get(code)
                _confirm(other, "Ben")
                services.store.replace(other)
        return game

    monkeypatch.setattr(services.store, "get", get_then_race)
    services.games.update_game(created["code"], decode_action({
        "action": "confirmAssignment", "participantId": ana["id"],
    }))

    assert _confirmed(real_get(created["code"])) == ["Ana", "Ben"]
