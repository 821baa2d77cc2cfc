"""
Day identifiers for settlement partitioning.

A day id is the count of whole UTC days since the epoch. This module is the
only place that converts between day ids and instants: session timestamps are
handled in epoch milliseconds, claim windows in epoch seconds.
"""

import time
from datetime import datetime, timedelta
from typing import Optional, Tuple

import pytz

from prizepool.utils.settlement_exceptions import InvalidTimestampError

MS_PER_DAY = 86_400_000
SECONDS_PER_DAY = 86_400

EPOCH = datetime(1970, 1, 1, tzinfo=pytz.UTC)
# datetime.max as epoch millis, anything above cannot be represented
MAX_EPOCH_MS = 253_402_300_799_999


def to_utc(moment: datetime) -> datetime:
    """Return an aware UTC datetime. Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None or moment.tzinfo.utcoffset(moment) is None:
        return pytz.UTC.localize(moment)
    return moment.astimezone(pytz.UTC)


def epoch_millis(moment: datetime) -> int:
    """Whole milliseconds since the epoch, floored."""
    delta = to_utc(moment) - EPOCH
    return delta.days * MS_PER_DAY + delta.seconds * 1000 + delta.microseconds // 1000


def from_epoch_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


def day_id(moment: datetime) -> int:
    """Map an instant to its UTC epoch-day."""
    return epoch_millis(moment) // MS_PER_DAY


def day_id_from_millis(millis: int) -> int:
    return millis // MS_PER_DAY


def day_bounds_millis(day: int) -> Tuple[int, int]:
    """Inclusive epoch-millis range covered by a day id."""
    start = day * MS_PER_DAY
    return start, start + MS_PER_DAY - 1


def day_start_seconds(day: int) -> int:
    """Epoch seconds at 00:00:00 UTC of a day id."""
    return day * SECONDS_PER_DAY


def day_start(day: int) -> datetime:
    return EPOCH + timedelta(days=day)


def current_day_id(now: Optional[float] = None) -> int:
    """Day id for an epoch-seconds instant, defaulting to the wall clock."""
    if now is None:
        now = time.time()
    return int(now // SECONDS_PER_DAY)


def parse_timestamp(value) -> int:
    """
    Parse an externally sourced session timestamp into epoch milliseconds.

    Accepted inputs:
    - datetime (naive values are read as UTC)
    - int epoch milliseconds, or a string of digits holding one
    - ISO-8601 string with an explicit offset or 'Z'

    Floats and offset-less strings are rejected because they are ambiguous
    (seconds vs milliseconds, local time vs UTC).

    Raises:
        InvalidTimestampError: If the value is not one of the above
    """
    if isinstance(value, datetime):
        millis = epoch_millis(value)
    elif isinstance(value, bool):
        raise InvalidTimestampError(value, "booleans are not timestamps")
    elif isinstance(value, int):
        millis = value
    elif isinstance(value, str):
        millis = _parse_timestamp_string(value)
    else:
        raise InvalidTimestampError(value, f"unsupported type {type(value).__name__}")

    if not 0 <= millis <= MAX_EPOCH_MS:
        raise InvalidTimestampError(value, "outside the supported epoch range")
    return millis


def _parse_timestamp_string(value: str) -> int:
    text = value.strip()
    if not text:
        raise InvalidTimestampError(value, "empty string")
    # str.isdigit also accepts non-ASCII digits such as superscripts
    if text.isascii() and text.isdigit():
        return int(text)

    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidTimestampError(value, str(e)) from e

    if parsed.tzinfo is None:
        raise InvalidTimestampError(value, "missing UTC offset")
    return epoch_millis(parsed)
