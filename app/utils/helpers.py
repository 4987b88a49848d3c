"""Shared utility functions.

parse_date:   lenient date parsing, returns None on bad input
parse_bool:   query-string / JSON boolean coercion
"""
from datetime import date, datetime


def parse_date(value):
    """Parse a date or timestamp value to a ``date`` object.

    Returns None for empty/invalid input. Supports:
    - date / datetime objects (datetime → .date())
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS[.ffffff][+HH:MM|Z] (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_bool(value, default=None):
    """Coerce ``true/false/1/0/yes/no`` (any case) or a bool to ``bool``.

    Returns ``default`` when the value is missing or not recognisable.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off"):
        return False
    return default
