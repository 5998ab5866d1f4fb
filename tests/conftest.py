import pytest

from gift_exchange import create_app
from gift_exchange.extensions import db

from helpers import TEST_CONFIG, RecordingNotifier, game_payload


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app(TEST_CONFIG, notifier=notifier)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["gift_exchange"]


@pytest.fixture
def service(services):
    return services.games


@pytest.fixture
def created(service, notifier):
    """A freshly created protected game with four participants."""
    game = service.create_game(game_payload()).body
    notifier.sent.clear()
    return game
