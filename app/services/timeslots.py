"""Time-of-day arithmetic for appointment slots.

Times are wall-clock ``HH:MM`` strings local to the business. Nothing here
converts time zones, and every helper returns new values instead of
mutating its inputs.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from app.core.exceptions import InvalidTimeSlot

HHMM_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def utcnow() -> datetime:
    return datetime.utcnow()


def parse_hhmm(value: str) -> int:
    """Convert ``HH:MM`` to minutes since midnight."""
    if not isinstance(value, str) or not HHMM_PATTERN.match(value):
        raise InvalidTimeSlot(f"Invalid time format '{value}'. Use HH:MM")
    h, m = map(int, value.split(":"))
    return h * 60 + m


def format_minutes(minutes: int) -> str:
    """Convert minutes since midnight to zero-padded ``HH:MM``."""
    h = minutes // 60
    m = minutes % 60
    return f"{h:02d}:{m:02d}"


def normalize_hhmm(value: str) -> str:
    return format_minutes(parse_hhmm(value))


def intervals_overlap(a: int, b: int, c: int, d: int) -> bool:
    """Half-open intervals [a, b) and [c, d) overlap."""
    return a < d and c < b


def slot_duration_minutes(slot: dict) -> int:
    duration = int(slot.get("duration") or 0)
    if slot.get("duration_unit") == "hours":
        return duration * 60
    return duration


@dataclass(frozen=True)
class TimeSlot:
    start_time: str
    end_time: str

    def __post_init__(self):
        start = parse_hhmm(self.start_time)
        end = parse_hhmm(self.end_time)
        if end <= start:
            raise InvalidTimeSlot("End time must be after start time")
        object.__setattr__(self, "start_time", format_minutes(start))
        object.__setattr__(self, "end_time", format_minutes(end))

    @property
    def start_minutes(self) -> int:
        return parse_hhmm(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_hhmm(self.end_time)

    def overlaps(self, start_time: str, end_time: str) -> bool:
        return intervals_overlap(self.start_minutes, self.end_minutes, parse_hhmm(start_time), parse_hhmm(end_time))


def day_bounds(day) -> tuple[datetime, datetime]:
    """Return ``[start, next_day_start)`` for a date or datetime."""
    if isinstance(day, datetime):
        day = day.date()
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def month_bounds(moment: datetime, months_back: int = 0) -> tuple[datetime, datetime]:
    """Return ``[first_of_month, first_of_next_month)``, optionally shifted back."""
    year, month = moment.year, moment.month - months_back
    while month < 1:
        month += 12
        year -= 1
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start, end


def combine(day: date, hhmm: str) -> datetime:
    minutes = parse_hhmm(hhmm)
    return datetime.combine(day, time(minutes // 60, minutes % 60))
