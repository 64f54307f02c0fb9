from datetime import datetime, timedelta, timezone

import pytest

from agenda.scheduling.errors import InvalidInterval
from agenda.scheduling.intervals import Interval, overlaps, to_storage, utc_instant


def _interval(start_hour: int, start_minute: int, end_hour: int, end_minute: int) -> Interval:
    return Interval.between(
        datetime(2030, 1, 7, start_hour, start_minute),
        datetime(2030, 1, 7, end_hour, end_minute),
    )


def test_interval_rejects_start_equal_to_end() -> None:
    with pytest.raises(InvalidInterval):
        _interval(9, 0, 9, 0)


def test_interval_rejects_start_after_end() -> None:
    with pytest.raises(InvalidInterval):
        _interval(10, 0, 9, 0)


def test_invalid_interval_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        _interval(10, 0, 9, 0)


def test_overlaps_is_symmetric() -> None:
    first = _interval(9, 0, 9, 50)
    second = _interval(9, 30, 10, 0)

    assert overlaps(first, second)
    assert overlaps(second, first)


def test_interval_overlaps_itself() -> None:
    slot = _interval(9, 0, 9, 50)

    assert slot.overlaps(slot)


def test_touching_intervals_do_not_overlap() -> None:
    morning = _interval(9, 0, 10, 0)
    next_session = _interval(10, 0, 10, 50)

    assert not overlaps(morning, next_session)
    assert not overlaps(next_session, morning)


def test_contained_interval_overlaps_and_is_contained() -> None:
    window = _interval(8, 0, 18, 0)
    slot = _interval(9, 0, 9, 50)

    assert overlaps(window, slot)
    assert window.contains(slot)
    assert not slot.contains(window)


def test_duration_returns_timedelta() -> None:
    assert _interval(9, 0, 9, 50).duration() == timedelta(minutes=50)


def test_utc_instant_treats_naive_values_as_utc() -> None:
    instant = utc_instant(datetime(2030, 1, 7, 9, 0))

    assert instant.utcoffset() == timedelta(0)
    assert instant.hour == 9


def test_to_storage_converts_aware_values_to_naive_utc() -> None:
    aware = datetime(2030, 1, 7, 9, 0, tzinfo=timezone(timedelta(hours=-6)))

    stored = to_storage(aware)

    assert stored.tzinfo is None
    assert stored == datetime(2030, 1, 7, 15, 0)
