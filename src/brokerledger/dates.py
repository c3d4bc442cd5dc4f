"""Calendar-date parsing for the date formats found in brokerage exports.

Parsers are tried in the order listed in ``DATE_PARSERS``; the first one that
produces a valid calendar date wins. The list is closed on purpose: the
formats are fixed by the brokerage export.

1. Native parse (pandas/dateutil, month-first like a browser ``Date``).
2. ``DD/MM/YYYY``
3. ``MM/DD/YYYY``
4. ``YYYY-MM-DD``

Formats 2-4 accept ``/``, ``.`` or ``-`` as separators.
"""

import re
import warnings
from datetime import date
from typing import Callable

import pandas as pd

DateParser = Callable[[str], date | None]

_SEPARATORS = re.compile(r"[/.\-]")
_HAS_YEAR = re.compile(r"\d{4}")


def _clean(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = text[1:-1].strip()
    return text


def _parts(text: str) -> list[str] | None:
    parts = _SEPARATORS.split(text)
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    return parts


def _build(year: str, month: str, day: str) -> date | None:
    if len(year) != 4:
        return None
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def parse_native(text: str) -> date | None:
    """Parse with pandas, the way a spreadsheet or browser would.

    Strings without a four-digit year are refused: dateutil fills missing
    fields from the current date, which would make results depend on when
    the import runs.
    """
    if not _HAS_YEAR.search(text):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text)
        except (ValueError, TypeError, OverflowError):
            return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_day_first(text: str) -> date | None:
    """Parse ``DD/MM/YYYY``."""
    parts = _parts(text)
    if parts is None:
        return None
    day, month, year = parts
    return _build(year, month, day)


def parse_month_first(text: str) -> date | None:
    """Parse ``MM/DD/YYYY``."""
    parts = _parts(text)
    if parts is None:
        return None
    month, day, year = parts
    return _build(year, month, day)


def parse_year_first(text: str) -> date | None:
    """Parse ``YYYY-MM-DD``."""
    parts = _parts(text)
    if parts is None:
        return None
    year, month, day = parts
    return _build(year, month, day)


DATE_PARSERS: tuple[DateParser, ...] = (
    parse_native,
    parse_day_first,
    parse_month_first,
    parse_year_first,
)


def parse_date(text: str | None) -> date | None:
    """
    Resolve a date string using the first parser in ``DATE_PARSERS`` that succeeds.

    Args:
        text: Raw date text. Surrounding whitespace and double quotes are ignored.

    Returns:
        The parsed date, or None if no parser accepts the text.
    """
    if not text:
        return None
    cleaned = _clean(text)
    if not cleaned:
        return None
    for parser in DATE_PARSERS:
        result = parser(cleaned)
        if result is not None:
            return result
    return None
