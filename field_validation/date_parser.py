"""
Date parsing for conditional date rules.

Dates arrive as strings in one of five named layouts. The separator is read
from the string itself, so "2024-01-31", "2024/01/31" and "2024.01.31" all
parse under ISO. Two-digit years below 50 land in the 2000s, the rest in the
1900s. Long layouts (and ISO) also read a trailing "hh:mm:ss"; short layouts
never read a time.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .errors import InvalidDateFormat

logger = logging.getLogger(__name__)


class DateFormat(Enum):
    ISO = "ISO"
    US_SHORT = "US_SHORT"
    US_LONG = "US_LONG"
    EURO_SHORT = "EURO_SHORT"
    EURO_LONG = "EURO_LONG"


# Accepted spellings, matched case-insensitively
_ALIASES = {
    "ISO": DateFormat.ISO,
    "EURO_LONG": DateFormat.EURO_LONG,
    "EURO-LONG": DateFormat.EURO_LONG,
    "UK": DateFormat.EURO_SHORT,
    "EURO": DateFormat.EURO_SHORT,
    "EUROPE": DateFormat.EURO_SHORT,
    "EURO_SHORT": DateFormat.EURO_SHORT,
    "EURO-SHORT": DateFormat.EURO_SHORT,
    "US_LONG": DateFormat.US_LONG,
    "US-LONG": DateFormat.US_LONG,
    "US": DateFormat.US_SHORT,
    "US_SHORT": DateFormat.US_SHORT,
    "US-SHORT": DateFormat.US_SHORT,
}

_SEPARATORS = ("-", "/", ".")


def resolve_date_format(name, strict: bool = False) -> DateFormat:
    """
    Resolve a date format name (or DateFormat) to a DateFormat.

    Args:
        name: Format name such as "ISO", "euro-long" or "US"
        strict: Raise on unknown names instead of falling back to ISO

    Returns:
        The matching DateFormat

    Raises:
        InvalidDateFormat: If the name is unknown and strict is set
    """
    if isinstance(name, DateFormat):
        return name

    resolved = _ALIASES.get(str(name or "").upper())
    if resolved is not None:
        return resolved

    if strict:
        raise InvalidDateFormat(f"Unknown date format: {name!r}")

    logger.warning(
        f"Unknown date format {name!r}, falling back to ISO",
        extra={"date_format": name},
    )
    return DateFormat.ISO


def _split_date(date_part: str, separator: str) -> List[str]:
    if separator not in _SEPARATORS:
        separator = "-"
    return date_part.split(separator)


def _expand_year(two_digits: str) -> int:
    year = int(two_digits)
    return 2000 + year if year < 50 else 1900 + year


def _parse_time(time_part: Optional[str]):
    if not time_part:
        return 0, 0, 0
    pieces = time_part.split(":")
    if len(pieces) != 3:
        return 0, 0, 0
    return int(pieces[0]), int(pieces[1]), int(pieces[2])


def parse_date(date_str: str, date_format="ISO", strict: bool = False) -> datetime:
    """
    Parse date_str under the named layout.

    Args:
        date_str: Date string, e.g. "31/12/99" or "2024-01-31 08:30:00"
        date_format: DateFormat or format name
        strict: Raise InvalidDateFormat for unknown format names

    Returns:
        Naive datetime for the parsed instant

    Raises:
        InvalidDateFormat: Unknown format name with strict set
        ValueError: If the string does not hold a real calendar date
    """
    fmt = resolve_date_format(date_format, strict=strict)
    date_str = str(date_str)
    time_part = None

    if fmt is DateFormat.ISO:
        year, month, day = _split_date(date_str[:10], date_str[4:5])[:3]
        if len(date_str) > 10:
            time_part = date_str[11:]
        year = int(year)
    elif fmt is DateFormat.EURO_LONG:
        day, month, year = _split_date(date_str[:10], date_str[2:3])[:3]
        if len(date_str) > 10:
            time_part = date_str[11:]
        year = int(year)
    elif fmt is DateFormat.US_LONG:
        month, day, year = _split_date(date_str[:10], date_str[2:3])[:3]
        if len(date_str) > 10:
            time_part = date_str[11:]
        year = int(year)
    elif fmt is DateFormat.EURO_SHORT:
        day, month, year = _split_date(date_str[:8], date_str[2:3])[:3]
        year = _expand_year(year)
    else:
        month, day, year = _split_date(date_str[:8], date_str[2:3])[:3]
        year = _expand_year(year)

    hour, minute, second = _parse_time(time_part)
    return datetime(year, int(month), int(day), hour, minute, second)
