from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import secrets

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from .domain import Assignment


def generate_id() -> str:
    return secrets.token_hex(12)


def generate_token() -> str:
    """Opaque credential used for organizer, participant and invitation links."""
    return secrets.token_urlsafe(24)


def generate_game_code() -> str:
    """Six-digit human-shareable lookup code."""
    return str(100000 + secrets.randbelow(900000))


def tokens_match(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


# ---------------------------------------------------------------------------
# Assignment encryption-at-rest
#
# The stored game document never holds the giver->receiver edges in
# plaintext; they live in a separate Fernet token column.
#
# NOTE: anyone with the server environment (SECRET_KEY / ASSIGNMENT_ENC_KEY)
# can still decrypt. This keeps casual DB inspection from spoiling the game.
# ---------------------------------------------------------------------------


def _assignment_fernet() -> Fernet:
    """Returns a Fernet instance keyed by ASSIGNMENT_ENC_KEY or derived from SECRET_KEY."""
    explicit = (current_app.config.get("ASSIGNMENT_ENC_KEY") or os.environ.get("ASSIGNMENT_ENC_KEY") or "").strip()
    if explicit:
        # Expect a urlsafe base64-encoded 32-byte key.
        return Fernet(explicit.encode("utf-8"))

    secret = (current_app.config.get("SECRET_KEY") or "").encode("utf-8")
    digest = hashlib.sha256(b"giftexchange-assignments|" + secret).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_assignments(assignments: list[Assignment]) -> str:
    """Encrypt the edge list -> ciphertext token (string)."""
    raw = json.dumps([a.to_dict() for a in assignments], separators=(",", ":"))
    return _assignment_fernet().encrypt(raw.encode("utf-8")).decode("utf-8")


def decrypt_assignments(token: str | None) -> list[Assignment]:
    """Decrypt ciphertext token -> edge list. Raises ValueError on failure."""
    if not token:
        return []
    try:
        raw = _assignment_fernet().decrypt(token.encode("utf-8"))
        return [Assignment.from_dict(item) for item in json.loads(raw.decode("utf-8"))]
    except (InvalidToken, ValueError, TypeError, KeyError) as e:
        raise ValueError("Invalid assignment token") from e
