# Area: Shared
"""
epyc_engine._shared.duration — Duration Codec
=============================================

Converts human-readable duration strings such as ``"1d2h30m"`` to and
from ``datetime.timedelta``. Every configurable timeout goes through
this module.

Grammar: one or more ``<digits><unit>`` segments, units drawn from
``d``, ``h``, ``m``, ``s``, each unit at most once and in that order.
Formatting omits zero-valued units; a zero interval is ``"0s"``.
"""

import re
from datetime import timedelta
from typing import Union

from ..errors import DurationFormatError

UNIT_SECONDS = {"d": 86400, "h": 3600, "m": 60, "s": 1}
UNIT_ORDER = "dhms"

_DURATION_RE = re.compile(r"(?:[0-9]+[dhms])+")
_SEGMENT_RE = re.compile(r"([0-9]+)([dhms])")

IntervalLike = Union[timedelta, int, float]


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string.

    Args:
        value: Duration string, e.g. "2d5h" or "90s"

    Returns:
        The interval as a timedelta

    Raises:
        DurationFormatError: If the string does not match the grammar
    """
    if not isinstance(value, str):
        raise DurationFormatError(value, "expected a string")
    if not _DURATION_RE.fullmatch(value):
        raise DurationFormatError(
            value, 'use segments like "1d", "2h", "30m", "45s"'
        )

    total = 0
    last_rank = -1
    for amount, unit in _SEGMENT_RE.findall(value):
        rank = UNIT_ORDER.index(unit)
        if rank <= last_rank:
            raise DurationFormatError(
                value, "each unit may appear once, in d, h, m, s order"
            )
        last_rank = rank
        total += int(amount) * UNIT_SECONDS[unit]
    return timedelta(seconds=total)


def to_seconds(interval: IntervalLike) -> int:
    """Whole seconds in an interval. Sub-second remainders are dropped."""
    if isinstance(interval, timedelta):
        seconds = interval // timedelta(seconds=1)
    elif isinstance(interval, (int, float)) and not isinstance(interval, bool):
        seconds = int(interval)
    else:
        raise DurationFormatError(interval, "expected timedelta or seconds")
    if seconds < 0:
        raise DurationFormatError(interval, "negative intervals are not supported")
    return seconds


def format_duration(interval: IntervalLike) -> str:
    """
    Format an interval in the most compact form.

    >>> format_duration(timedelta(days=1, minutes=30))
    '1d30m'
    >>> format_duration(0)
    '0s'
    """
    remaining = to_seconds(interval)
    if remaining == 0:
        return "0s"

    parts = []
    for unit in UNIT_ORDER:
        amount, remaining = divmod(remaining, UNIT_SECONDS[unit])
        if amount:
            parts.append(f"{amount}{unit}")
    return "".join(parts)


def is_valid_duration(value: str) -> bool:
    """Check a duration string without raising."""
    try:
        parse_duration(value)
    except DurationFormatError:
        return False
    return True
