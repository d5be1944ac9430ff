"""
Field normalization rules for uploaded citizen-report rows.

Every function is total: invalid input yields None, never an exception.
"""

import re
from datetime import date, datetime

from comunidata.core.models import Zone


MIN_AGE = 0
MAX_AGE = 120

# First successful format wins; day-first is tried before month-first.
DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%Y/%m/%d")

TRUE_VALUES = frozenset({"1", "true", "sí", "si", "yes", "y"})
FALSE_VALUES = frozenset({"0", "false", "no", "n"})

_AGE_PATTERN = re.compile(r"^[+-]?[0-9]+$")
_SYMBOL_RUN = re.compile(r"[#@*_=+\-]{2,}")
_WHITESPACE_RUN = re.compile(r"\s+")
_PUNCTUATION_RUNS = (
    (re.compile(r"\.{2,}"), "."),
    (re.compile(r"!{2,}"), "!"),
    (re.compile(r"\?{2,}"), "?"),
)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def normalize_age(value: str | None) -> int | None:
    """Integer age within 0-120; anything else is None."""
    if _blank(value):
        return None
    value = value.strip()
    if not _AGE_PATTERN.match(value):
        return None
    age = int(value)
    if age < MIN_AGE or age > MAX_AGE:
        return None
    return age


def normalize_city(value: str | None) -> str | None:
    """Trim and capitalize each whitespace-separated word: 'sAN  josé' -> 'San José'."""
    if _blank(value):
        return None
    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split())


def normalize_comment(value: str | None) -> str | None:
    """
    Clean a free-text comment.

    Runs of two or more of ``# @ * _ = + -`` are removed, whitespace runs
    become one space, and repeated ``.``, ``!`` or ``?`` collapse to one.
    Applying it twice gives the same result as applying it once.
    """
    if _blank(value):
        return None
    text = value.strip()
    text = _SYMBOL_RUN.sub("", text)
    text = _WHITESPACE_RUN.sub(" ", text)
    for pattern, replacement in _PUNCTUATION_RUNS:
        text = pattern.sub(replacement, text)
    text = text.strip()
    return text or None


def normalize_date(value: str | None) -> date | None:
    if _blank(value):
        return None
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def normalize_boolean(value: str | None) -> bool | None:
    """Map 1/true/sí/si/yes/y and 0/false/no/n (any case); else None."""
    if _blank(value):
        return None
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    return None


def normalize_zone(value: str | None) -> Zone | None:
    """
    Zone from the rural-area cell.

    The cell is usually a yes/no flag (yes means rural); textual values
    such as 'Rural' or 'Urbana' are accepted as a fallback.
    """
    if _blank(value):
        return None
    is_rural = normalize_boolean(value)
    if is_rural is not None:
        return Zone.from_rural_flag(is_rural)
    return Zone.from_string(value)
