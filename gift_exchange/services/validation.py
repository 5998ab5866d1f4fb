from __future__ import annotations

import re
from datetime import date
from typing import Any, Optional

from ..domain import LANGUAGES
from ..errors import ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_event_date(value: str) -> date:
    """
    Parse a strict YYYY-MM-DD date.

    Rejects other formats, years outside 1900-2100 and dates that do not
    exist on the calendar (e.g. February 31).
    """
    if not _DATE_RE.match(value):
        raise ValidationError("Invalid date format. Expected YYYY-MM-DD", code="INVALID_DATE")

    year, month, day = (int(part) for part in value.split("-"))
    if not (1900 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31):
        raise ValidationError(
            "Invalid date values. Year must be 1900-2100, month 1-12, day 1-31",
            code="INVALID_DATE",
        )
    try:
        return date(year, month, day)
    except ValueError as e:
        raise ValidationError(
            "Invalid calendar date. The date does not exist (e.g., February 31, April 31).",
            code="INVALID_DATE",
        ) from e


def validate_future_date(value: str, today: date | None = None) -> None:
    if parse_event_date(value) < (today or date.today()):
        raise ValidationError("Event date must be today or in the future", code="DATE_IN_PAST")


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("Expected a text value")
    return value.strip()


def clean_email(value: Any) -> Optional[str]:
    return clean_text(value) or None


def clean_language(value: Any) -> Optional[str]:
    if not value:
        return None
    if value not in LANGUAGES:
        raise ValidationError(f"Unsupported language: {value}", code="INVALID_LANGUAGE")
    return value
