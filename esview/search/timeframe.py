"""Resolve relative timeframe tokens like ``24h`` or ``week`` into time windows."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

from esview.exceptions import TimeframeError

SECONDS_TIME_FIELD = "unixTime"
MILLIS_TIME_FIELD = "detectionGeneratedTime"

_KEYWORDS: dict[str, timedelta] = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "quarter": timedelta(days=90),
    "year": timedelta(days=365),
}

_UNITS: dict[str, timedelta] = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

_TIMEFRAME_RE = re.compile(r"^(-?\d+)([a-z])$")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timeframe(timeframe: str) -> timedelta:
    """Parse a timeframe token into a duration.

    Accepted forms are ``<n>h``, ``<n>d`` and ``<n>w`` with a
    non-negative integer ``n``, plus the keywords ``week``, ``month``
    (30 days), ``quarter`` (90 days) and ``year`` (365 days). Case and
    surrounding whitespace are ignored.

    Args:
        timeframe: The token to parse.

    Returns:
        The duration the token covers.

    Raises:
        TimeframeError: If the token is empty, malformed, negative or
            beyond the range of a duration.
    """
    token = timeframe.strip().lower()
    if not token:
        raise TimeframeError(timeframe, "empty timeframe")

    if token in _KEYWORDS:
        return _KEYWORDS[token]

    match = _TIMEFRAME_RE.match(token)
    if match is None:
        raise TimeframeError(timeframe, f"invalid timeframe format: {token}")

    value = int(match.group(1))
    unit = match.group(2)
    if value < 0:
        raise TimeframeError(timeframe, f"timeframe cannot be negative: {token}")
    if unit not in _UNITS:
        raise TimeframeError(timeframe, f"invalid timeframe unit: {unit} (supported: h,d,w)")
    try:
        return value * _UNITS[unit]
    except OverflowError as e:
        raise TimeframeError(timeframe, f"timeframe too large: {token}") from e


def is_valid_timeframe(timeframe: str) -> bool:
    """Return whether *timeframe* parses."""
    try:
        parse_timeframe(timeframe)
    except TimeframeError:
        return False
    return True


def _epoch_delta(now: datetime) -> timedelta:
    # astimezone() treats naive datetimes as local time
    return now.astimezone(timezone.utc) - _EPOCH


def build_time_query(timeframe: str, now: datetime | None = None) -> dict[str, Any] | None:
    """Build the time-window clause for *timeframe* ending at *now*.

    Documents carry their timestamp either as epoch seconds in
    ``unixTime`` or as epoch milliseconds in ``detectionGeneratedTime``,
    so the window is expressed on both and at least one must match.

    Args:
        timeframe: Timeframe token; empty means no time restriction.
        now: End of the window. Defaults to the current time.

    Returns:
        A ``bool``/``should`` clause, or None for an empty timeframe.

    Raises:
        TimeframeError: If the token does not parse.
    """
    if timeframe == "":
        return None

    duration = parse_timeframe(timeframe)
    if now is None:
        now = datetime.now(timezone.utc)

    since_epoch = _epoch_delta(now)
    now_s = since_epoch // timedelta(seconds=1)
    now_ms = since_epoch // timedelta(milliseconds=1)
    duration_s = duration // timedelta(seconds=1)
    duration_ms = duration // timedelta(milliseconds=1)

    return {
        "bool": {
            "should": [
                {"range": {SECONDS_TIME_FIELD: {"gte": now_s - duration_s, "lte": now_s}}},
                {"range": {MILLIS_TIME_FIELD: {"gte": now_ms - duration_ms, "lte": now_ms}}},
            ],
            "minimum_should_match": 1,
        }
    }
