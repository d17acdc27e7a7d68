"""Bookable slot generation from doctors' working intervals.

Slots are derived on every query and never stored. A week that has no
explicit working interval on any of its days falls back to the default
07:00-17:00 Monday-Friday window; as soon as one day of the week has an
explicit interval the fallback is off for the whole week, and days without
one produce no slots.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from math import ceil
from typing import Iterable, Mapping, Sequence

from .conflicts import has_conflict, is_in_past
from .models import Appointment, DaySchedule, Slot, WorkingInterval
from .timeutil import SLOT_MINUTES, from_minutes, overlaps, quantize_up, to_minutes, week_dates

DEFAULT_START = time(7, 0)
DEFAULT_END = time(17, 0)
DEFAULT_WORKDAYS = range(0, 5)  # Monday..Friday

THIS_WEEK = "this_week"
NEXT_WEEK = "next_week"


def default_intervals(work_date: date) -> list[WorkingInterval]:
    if work_date.weekday() not in DEFAULT_WORKDAYS:
        return []
    return [WorkingInterval(work_date=work_date, start_time=DEFAULT_START, end_time=DEFAULT_END)]


def group_by_date(items: Iterable) -> dict[date, list]:
    grouped: dict[date, list] = defaultdict(list)
    for item in items:
        grouped[item.work_date].append(item)
    return dict(grouped)


def build_slots(
    work_date: date,
    intervals: Iterable[WorkingInterval],
    appointments: Iterable[Appointment] = (),
) -> list[Slot]:
    """10-minute slots covering each interval, flagged against existing bookings.

    Only whole slots inside an interval are produced; an interval starting off
    the 10-minute grid begins at the next grid line.
    """
    busy = [
        (to_minutes(a.start_time), to_minutes(a.end_time))
        for a in appointments
        if a.work_date == work_date and not a.is_cancelled
    ]

    by_start: dict[int, Slot] = {}
    for interval in intervals:
        minute = quantize_up(to_minutes(interval.start_time))
        end = to_minutes(interval.end_time)
        while minute + SLOT_MINUTES <= end:
            if minute not in by_start:
                slot_end = minute + SLOT_MINUTES
                taken = any(overlaps(minute, slot_end, b_start, b_end) for b_start, b_end in busy)
                by_start[minute] = Slot(
                    work_date=work_date,
                    start_time=from_minutes(minute),
                    end_time=from_minutes(slot_end),
                    available=not taken,
                )
            minute += SLOT_MINUTES

    return [by_start[m] for m in sorted(by_start)]


def available_slots(
    work_date: date,
    intervals: Iterable[WorkingInterval],
    appointments: Iterable[Appointment] = (),
) -> list[Slot]:
    return [s for s in build_slots(work_date, intervals, appointments) if s.available]


def week_uses_default(week: Sequence[date], intervals_by_date: Mapping[date, list]) -> bool:
    """True only when no day of the week has an explicit working interval."""
    return not any(intervals_by_date.get(day) for day in week)


def build_week(
    week: Sequence[date],
    intervals_by_date: Mapping[date, list[WorkingInterval]],
    appointments_by_date: Mapping[date, list[Appointment]],
    week_label: str = THIS_WEEK,
    today: date | None = None,
) -> list[DaySchedule]:
    use_default = week_uses_default(week, intervals_by_date)
    days = []
    for day in week:
        if today is not None and day < today:
            continue
        intervals = default_intervals(day) if use_default else intervals_by_date.get(day, [])
        slots = build_slots(day, intervals, appointments_by_date.get(day, []))
        days.append(DaySchedule(work_date=day, week_label=week_label, slots=slots))
    return days


def booking_window_dates(today: date) -> tuple[list[date], list[date]]:
    """This week's and next week's working days."""
    this_week = week_dates(today)
    next_week = week_dates(this_week[0] + timedelta(days=7))
    return this_week, next_week


def build_booking_window(
    today: date,
    intervals: Iterable[WorkingInterval],
    appointments_by_date: Mapping[date, list[Appointment]],
) -> list[DaySchedule]:
    """Two-week calendar shown when booking or rescheduling.

    Each week decides the default fallback on its own; past days of the
    current week are dropped.
    """
    intervals_by_date = group_by_date(intervals)
    this_week, next_week = booking_window_dates(today)
    return (
        build_week(this_week, intervals_by_date, appointments_by_date, THIS_WEEK, today=today)
        + build_week(next_week, intervals_by_date, appointments_by_date, NEXT_WEEK)
    )


def required_slots(total_minutes: int) -> int:
    return max(1, ceil(total_minutes / SLOT_MINUTES))


def bookable_starts(
    day_slots: Sequence[Slot],
    total_minutes: int,
    now: datetime,
    patient_appointments: Iterable[Appointment] = (),
    exclude_id: str | None = None,
) -> list[Slot]:
    """Slots a visit of ``total_minutes`` can start at.

    The visit needs a run of consecutive available slots, none of which
    collides with the patient's other bookings, and may not start in the past.
    """
    patient_appointments = list(patient_appointments)
    needed = required_slots(total_minutes)
    starts = []
    for i, slot in enumerate(day_slots):
        if not slot.available or is_in_past(slot.work_date, slot.start_time, now):
            continue
        run = day_slots[i:i + needed]
        if len(run) < needed:
            continue
        if any(not s.available for s in run):
            continue
        if any(prev.end_time != nxt.start_time for prev, nxt in zip(run, run[1:])):
            continue
        if any(has_conflict(s.work_date, s.start_time, s.end_time, patient_appointments, exclude_id) for s in run):
            continue
        starts.append(slot)
    return starts
