from datetime import date, datetime, timedelta, timezone

import pytest

from backend.app.timeutil import (
    EPOCH,
    day_key,
    event_sort_key,
    event_time,
    local_midnight,
    parse_instant,
    parse_range_end,
    parse_range_start,
)

UTC = timezone.utc
WEST = timezone(timedelta(hours=-5))


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2026-03-10T09:00:00Z", datetime(2026, 3, 10, 9, 0, tzinfo=UTC)),
        ("2026-03-10T09:00:00+02:00", datetime(2026, 3, 10, 7, 0, tzinfo=UTC)),
        (1773133200000, datetime(2026, 3, 10, 9, 0, tzinfo=UTC)),
        ("1773133200000", datetime(2026, 3, 10, 9, 0, tzinfo=UTC)),
        (date(2026, 3, 10), datetime(2026, 3, 10, tzinfo=UTC)),
    ],
)
def test_parse_instant_accepts_common_shapes(raw, expected):
    assert parse_instant(raw, UTC) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", True, "next tuesday", "2026-02-30", float("nan"), float("inf"), "9" * 5000, "\u00b2"],
)
def test_parse_instant_returns_none_for_unreadable_values(raw):
    assert parse_instant(raw, UTC) is None


def test_naive_values_are_read_in_the_given_zone():
    assert parse_instant("2026-03-10T09:00:00", WEST) == datetime(2026, 3, 10, 14, 0, tzinfo=UTC)


def test_event_time_prefers_created_at_over_timestamp():
    sale = {"created_at": "2026-03-10T09:00:00Z", "timestamp": "2020-01-01T00:00:00Z"}
    assert event_time(sale, UTC) == datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
    assert event_time({"timestamp": "2020-01-01T00:00:00Z"}, UTC).year == 2020
    assert event_time({}, UTC) is None
    assert event_sort_key({}, UTC) == EPOCH


def test_day_key_and_midnight_follow_zone():
    t = datetime(2026, 3, 10, 3, 0, tzinfo=UTC)
    assert day_key(t, UTC) == "2026-03-10"
    assert day_key(t, WEST) == "2026-03-09"
    assert local_midnight(t, WEST) == datetime(2026, 3, 9, 5, 0, tzinfo=UTC)


def test_range_bounds():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
    assert parse_range_start(None, UTC) == EPOCH
    assert parse_range_start("", UTC) == EPOCH
    assert parse_range_end(None, now, UTC) == now

    assert parse_range_start("2026-03-01", UTC) == datetime(2026, 3, 1, tzinfo=UTC)
    end = parse_range_end("2026-03-01", now, UTC)
    assert end.date() == date(2026, 3, 1)
    assert end > datetime(2026, 3, 1, 23, 59, 59, tzinfo=UTC)

    assert parse_range_start("2026-02-31", UTC) is None
    assert parse_range_end("2026-03-01T10:00:00Z", now, UTC) == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
