from datetime import datetime, timezone

from .extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


class GameRecord(db.Model):
    """
    One row per game. The game itself is a JSON document; its assignments
    are kept out of the document and stored encrypted.
    """
    __tablename__ = "games"

    id = db.Column(db.String(32), primary_key=True)
    code = db.Column(db.String(6), unique=True, nullable=False)

    # Bumped on every write. GameStore.replace only updates the row at the
    # version it read; ORM flushes check it through version_id_col.
    version = db.Column(db.Integer, nullable=False)

    # YYYY-MM-DD or empty; used by the retention sweep.
    event_date = db.Column(db.String(10), nullable=False, default="", index=True)

    document = db.Column(db.JSON, nullable=False)
    assignments_ciphertext = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}
