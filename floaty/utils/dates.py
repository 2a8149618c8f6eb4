"""Lenient timestamp parsing for values coming from browsers and third parties."""

import re
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

_EPOCH_RE = re.compile(r"^\d{10,13}$")


def to_datetime(value: Any) -> datetime | None:
    """Parse datetimes, epoch milliseconds, 10/13 digit epoch strings or date strings.

    Naive results are taken as UTC. Returns None for anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)):
            # Browser clients send Date.getTime() values
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        else:
            text = str(value).strip()
            if not text:
                return None
            if _EPOCH_RE.match(text):
                seconds = int(text) / 1000 if len(text) == 13 else int(text)
                parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
            else:
                parsed = date_parser.parse(text)
    except (ValueError, OverflowError, OSError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: Any) -> str | None:
    parsed = to_datetime(value)
    return parsed.isoformat().replace("+00:00", "Z") if parsed else None


def timestamp_ms(value: Any) -> float:
    """Milliseconds since the epoch, 0 when missing or unparseable."""
    parsed = to_datetime(value)
    return parsed.timestamp() * 1000 if parsed else 0.0


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))
