"""Tests for gift_exchange.services.cleanup: the retention sweep."""
from datetime import date

from gift_exchange.errors import InternalError

from helpers import game_payload


def _game_on(services, event_date):
    code = services.games.create_game(game_payload(sendEmails=False, date="")).body["code"]
    game = services.store.get(code)
    game.date = event_date
    services.store.replace(game)
    return code


def test_deletes_games_past_grace_period(services):
    expired = _game_on(services, "2024-12-20")
    on_cutoff = _game_on(services, "2024-12-22")
    recent = _game_on(services, "2024-12-23")
    undated = _game_on(services, "")

    report = services.cleanup.delete_expired(today=date(2024, 12, 25))

    assert report.cutoff == "2024-12-22"
    assert report.deleted == 2
    assert report.failed == 0
    assert services.store.get(expired) is None
    assert services.store.get(on_cutoff) is None
    assert services.store.get(recent) is not None
    assert services.store.get(undated) is not None


def test_nothing_to_delete(services):
    _game_on(services, "2030-01-01")
    report = services.cleanup.delete_expired(today=date(2024, 12, 25))
    assert (report.deleted, report.failed, report.errors) == (0, 0, [])


def test_one_failure_does_not_stop_the_sweep(services, monkeypatch):
    first = _game_on(services, "2024-01-01")
    second = _game_on(services, "2024-01-02")
    real_delete = services.store.delete
    failing_id = services.store.get(first).id

    def flaky_delete(game_id):
        if game_id == failing_id:
            raise InternalError("Failed to delete game")
        real_delete(game_id)

    monkeypatch.setattr(services.store, "delete", flaky_delete)
    report = services.cleanup.delete_expired(today=date(2024, 12, 25))

    assert (report.deleted, report.failed) == (1, 1)
    assert first in report.errors[0]
    assert services.store.get(second) is None


def test_cli_command(app, services):
    code = _game_on(services, "2000-01-01")
    result = app.test_cli_runner().invoke(args=["cleanup-expired-games"])

    assert result.exit_code == 0
    assert "Deleted 1 game(s)" in result.output
    assert services.store.get(code) is None
