from datetime import date, timedelta


class RecordingNotifier:
    """Keeps every event it is asked to send; can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail_kinds = set()
        self.raise_kinds = set()

    def send(self, event):
        if event.kind in self.raise_kinds:
            raise RuntimeError("smtp down")
        if event.kind in self.fail_kinds:
            return False
        self.sent.append(event)
        return True

    def kinds(self):
        return [e.kind for e in self.sent]

    def to(self, email):
        return [e for e in self.sent if e.recipient_email == email]


TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret",
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "ASSIGNMENT_ENC_KEY": "",
    "NOTIFY_SYNC": True,
    "NOTIFIER": "none",
    "DEFAULT_LANGUAGE": "es",
}


def future_date(days=30):
    return (date.today() + timedelta(days=days)).isoformat()


def game_payload(**overrides):
    payload = {
        "name": "Office Party",
        "amount": "20",
        "currency": "EUR",
        "date": future_date(),
        "location": "Break room",
        "organizerEmail": "boss@example.com",
        "participants": [
            {"name": "Ana", "email": "ana@example.com"},
            {"name": "Ben", "email": "ben@example.com"},
            {"name": "Cy", "email": "cy@example.com"},
            {"name": "Dee", "email": "dee@example.com"},
        ],
    }
    payload.update(overrides)
    return payload


def by_name(game, name):
    return next(p for p in game["participants"] if p["name"] == name)


def receiver_of(game, giver_id):
    return next(a["receiverId"] for a in game["assignments"] if a["giverId"] == giver_id)
