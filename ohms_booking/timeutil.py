"""Wall-clock helpers shared by the slot, conflict and timeline rules.

All values are naive local times; the backend carries no timezone.
"""
from __future__ import annotations

from datetime import date, time, timedelta

SLOT_MINUTES = 10
MINUTES_PER_DAY = 24 * 60


def parse_time(value: str | time) -> time:
    """Accept HH:MM or HH:MM:SS (or an existing time)."""
    if isinstance(value, time):
        return value
    parts = [int(p) for p in value.split(":")]
    while len(parts) < 3:
        parts.append(0)
    return time(parts[0], parts[1], parts[2])


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    # time() cannot represent 24:00 and beyond
    return time(minutes // 60, minutes % 60)


def format_time(value: time) -> str:
    return value.strftime("%H:%M:%S")


def format_minutes(minutes: int) -> str:
    """HH:MM:SS for a minute offset; hours past 23 are kept, not wrapped."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}:00"


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open [a_start, a_end) vs [b_start, b_end); touching ranges don't overlap."""
    return a_start < b_end and b_start < a_end


def contains(outer_start, outer_end, start, end) -> bool:
    return outer_start <= start and end <= outer_end


def quantize_up(minutes: int, step: int = SLOT_MINUTES) -> int:
    return -(-minutes // step) * step


def week_start(ref: date) -> date:
    """Monday of the week containing ``ref``."""
    return ref - timedelta(days=ref.weekday())


def week_dates(ref: date, days: int = 6) -> list[date]:
    """Monday-anchored working week; the booking calendar shows Mon-Sat."""
    monday = week_start(ref)
    return [monday + timedelta(days=i) for i in range(days)]
