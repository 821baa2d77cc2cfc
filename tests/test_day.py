from datetime import datetime, timedelta, timezone

import pytest

from prizepool.utils.day import (
    MS_PER_DAY, current_day_id, day_bounds_millis, day_id, day_id_from_millis,
    day_start, day_start_seconds, epoch_millis, parse_timestamp
)
from prizepool.utils.settlement_exceptions import InvalidTimestampError


def test_day_id_is_utc_epoch_day():
    assert day_id(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0
    assert day_id(datetime(1970, 1, 1, 23, 59, 59, 999000, tzinfo=timezone.utc)) == 0
    assert day_id(datetime(1970, 1, 2, tzinfo=timezone.utc)) == 1
    assert day_id(datetime(2024, 10, 4, 12, 0, tzinfo=timezone.utc)) == 20000


def test_day_id_uses_utc_for_offset_datetimes():
    # 01:00 at +02:00 is still the previous UTC day
    moment = datetime(2024, 10, 5, 1, 0, tzinfo=timezone(timedelta(hours=2)))
    assert day_id(moment) == 20000


def test_naive_datetime_is_read_as_utc():
    assert day_id(datetime(2024, 10, 4, 23, 30)) == 20000


def test_day_bounds_cover_exactly_one_day():
    start, end = day_bounds_millis(20000)
    assert start == 20000 * MS_PER_DAY
    assert end - start == MS_PER_DAY - 1
    assert day_id_from_millis(start) == 20000
    assert day_id_from_millis(end) == 20000
    assert day_id_from_millis(end + 1) == 20001


def test_day_start_round_trips():
    assert day_id(day_start(20000)) == 20000
    assert day_start_seconds(20000) == 20000 * 86_400
    assert epoch_millis(day_start(20000)) == day_start_seconds(20000) * 1000


def test_current_day_id_from_seconds():
    assert current_day_id(20000 * 86_400) == 20000
    assert current_day_id(20001 * 86_400 - 0.5) == 20000


def test_parse_timestamp_accepts_supported_inputs():
    expected = 20000 * MS_PER_DAY + 1_500
    assert parse_timestamp(expected) == expected
    assert parse_timestamp(str(expected)) == expected
    assert parse_timestamp('2024-10-04T00:00:01.500Z') == expected
    assert parse_timestamp('2024-10-04T02:00:01.500+02:00') == expected
    assert parse_timestamp(datetime(2024, 10, 4, 0, 0, 1, 500000, tzinfo=timezone.utc)) == expected


@pytest.mark.parametrize('value', [
    1728000000.5,
    '2024-10-04T00:00:00',
    'yesterday',
    '\u00b2',
    '\u2460\u2461',
    '',
    None,
    True,
    -1,
])
def test_parse_timestamp_rejects_ambiguous_or_invalid_values(value):
    with pytest.raises(InvalidTimestampError):
        parse_timestamp(value)
