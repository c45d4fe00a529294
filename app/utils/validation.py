"""
Validation utilities for loosely typed request bodies
"""
import re
from datetime import date

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_date_string(value, label: str) -> str | None:
    """
    Check a YYYY-MM-DD date string.

    Returns:
        error message, or None when the value is valid

    Example:
        >>> validate_date_string("2026-02-30", "due_date")
        "due_date must be YYYY-MM-DD"
    """
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return f"{label} must be YYYY-MM-DD"
    try:
        date.fromisoformat(value)
    except ValueError:
        return f"{label} must be YYYY-MM-DD"
    return None


def parse_date_string(value, label: str) -> date:
    """
    Validate and parse YYYY-MM-DD (raise exception on error)

    Raises:
        ValueError: with a message naming the field
    """
    error = validate_date_string(value, label)
    if error:
        raise ValueError(error)
    return date.fromisoformat(value)


def to_boolean(value, default: bool) -> bool:
    """
    Lenient boolean used for flags coming from forms, JSON and query strings.

    Example:
        >>> to_boolean("0", True)
        False
        >>> to_boolean("maybe", True)
        True
    """
    if value is None:
        return default
    if value is True or value in ("true", "1", 1):
        return True
    if value is False or value in ("false", "0", 0):
        return False
    return default


def clean_text(value) -> str | None:
    """Strip and turn empty strings into None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_year_month(year, month) -> tuple[int, int] | None:
    """Integer year and month 1..12, or None."""
    try:
        y = int(year)
        m = int(month)
    except (TypeError, ValueError):
        return None
    if isinstance(year, float) and not year.is_integer():
        return None
    if m < 1 or m > 12:
        return None
    return y, m
