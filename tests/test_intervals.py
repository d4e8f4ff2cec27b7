"""Unit tests for time parsing and the half-open overlap rule."""

from datetime import time
from itertools import product

import pytest

from schoolerp.api.v1.timetables.intervals import (
    format_minutes,
    normalize_day,
    normalize_time,
    overlaps,
    parse_time,
)


def test_parse_time_accepts_padded_unpadded_and_seconds() -> None:
    assert parse_time("09:00") == 540
    assert parse_time("9:00") == 540
    assert parse_time("09:00:00") == 540
    assert parse_time(" 23:59 ") == 1439
    assert parse_time("00:00") == 0
    assert parse_time(time(14, 30)) == 870


@pytest.mark.parametrize("value", ["24:00", "12:60", "9", "9:5", "ab:cd", "", "10-00", "12:00:61"])
def test_parse_time_rejects_malformed(value: str) -> None:
    with pytest.raises(ValueError):
        parse_time(value)


def test_normalize_time_zero_pads() -> None:
    assert normalize_time("9:05") == "09:05"
    assert normalize_time("13:45:00") == "13:45"
    assert format_minutes(0) == "00:00"
    with pytest.raises(ValueError):
        format_minutes(1440)


def test_normalize_day_is_case_insensitive() -> None:
    assert normalize_day("Monday") == "monday"
    assert normalize_day("  SUNDAY ") == "sunday"
    with pytest.raises(ValueError):
        normalize_day("Funday")


def test_back_to_back_slots_do_not_overlap() -> None:
    assert not overlaps("09:00", "10:00", "10:00", "11:00")
    assert not overlaps("10:00", "11:00", "09:00", "10:00")


def test_one_minute_overlap_is_detected() -> None:
    assert overlaps("09:00", "10:00", "09:59", "10:30")


def test_identical_and_contained_ranges_overlap() -> None:
    assert overlaps("09:00", "10:00", "09:00", "10:00")
    assert overlaps("09:00", "12:00", "10:00", "11:00")
    assert overlaps("10:00", "11:00", "09:00", "12:00")


def test_unpadded_input_is_compared_numerically() -> None:
    # As strings "9:00" > "10:00"; as times they overlap
    assert overlaps("9:00", "10:00", "09:30", "09:45")
    assert not overlaps("9:00", "9:30", "10:00", "11:00")


def test_overlap_is_symmetric() -> None:
    points = ["08:00", "08:30", "09:00", "09:30", "10:00"]
    ranges = [(s, e) for s, e in product(points, points) if parse_time(s) < parse_time(e)]
    for (s1, e1), (s2, e2) in product(ranges, ranges):
        assert overlaps(s1, e1, s2, e2) == overlaps(s2, e2, s1, e1)
