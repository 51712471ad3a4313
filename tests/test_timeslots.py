"""Tests for time-of-day arithmetic and money rounding."""

from datetime import date, datetime

import pytest

from app.core.exceptions import InvalidTimeSlot
from app.core.money import platform_split, round_money, to_minor_units
from app.services.timeslots import (
    TimeSlot,
    combine,
    day_bounds,
    intervals_overlap,
    month_bounds,
    normalize_hhmm,
    parse_hhmm,
    slot_duration_minutes,
)


def test_parse_hhmm_accepts_unpadded_hours():
    assert parse_hhmm("9:05") == 545
    assert parse_hhmm("23:59") == 23 * 60 + 59
    assert normalize_hhmm("9:05") == "09:05"


@pytest.mark.parametrize("value", ["24:00", "9:5", "12:60", "noon", "", None])
def test_parse_hhmm_rejects_malformed_times(value):
    with pytest.raises(InvalidTimeSlot):
        parse_hhmm(value)


def test_time_slot_requires_end_after_start():
    with pytest.raises(InvalidTimeSlot):
        TimeSlot("10:00", "09:00")
    with pytest.raises(InvalidTimeSlot):
        TimeSlot("10:00", "10:00")


def test_time_slot_is_zero_padded():
    slot = TimeSlot("9:00", "9:45")
    assert (slot.start_time, slot.end_time) == ("09:00", "09:45")
    assert slot.end_minutes - slot.start_minutes == 45


def test_overlap_is_half_open():
    """Back-to-back slots share an endpoint but do not overlap."""
    slot = TimeSlot("10:00", "11:00")
    assert slot.overlaps("09:30", "10:30")
    assert slot.overlaps("10:15", "10:45")
    assert not slot.overlaps("09:00", "10:00")
    assert not slot.overlaps("11:00", "12:00")
    assert intervals_overlap(0, 10, 5, 15)
    assert not intervals_overlap(0, 10, 10, 20)


def test_slot_duration_in_hours():
    assert slot_duration_minutes({"duration": 2, "duration_unit": "hours"}) == 120
    assert slot_duration_minutes({"duration": 45, "duration_unit": "minutes"}) == 45


def test_month_bounds_crosses_year():
    start, end = month_bounds(datetime(2030, 1, 20, 15, 30), months_back=1)
    assert start == datetime(2029, 12, 1)
    assert end == datetime(2030, 1, 1)


def test_day_bounds_and_combine_do_not_mutate_input():
    moment = datetime(2030, 3, 4, 18, 45)
    start, end = day_bounds(moment)
    assert start == datetime(2030, 3, 4)
    assert end == datetime(2030, 3, 5)
    assert moment == datetime(2030, 3, 4, 18, 45)
    assert combine(date(2030, 3, 4), "07:30") == datetime(2030, 3, 4, 7, 30)


def test_round_money_is_half_up():
    assert round_money(5.005) == 5.01
    assert round_money(2.675) == 2.68
    assert round_money(None) == 0


def test_minor_units_and_platform_split():
    assert to_minor_units(19.99) == 1999
    assert to_minor_units(0.015) == 2
    assert platform_split(50, 0.10) == (5.0, 45.0)
    assert platform_split(33.33, 0.10) == (3.33, 30.0)
