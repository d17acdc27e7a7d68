from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time
from itertools import combinations
from typing import Iterable

from .models import Appointment
from .timeutil import overlaps


def is_in_past(work_date: date, start_time: time, now: datetime) -> bool:
    """A slot is past when its start is strictly before ``now``."""
    return datetime.combine(work_date, start_time) < now


def conflicting_appointments(
    work_date: date,
    start_time: time,
    end_time: time,
    appointments: Iterable[Appointment],
    exclude_id: str | None = None,
) -> list[Appointment]:
    """Non-cancelled appointments on ``work_date`` overlapping [start, end)."""
    return [
        appt for appt in appointments
        if not (exclude_id and appt.id == exclude_id)
        and not appt.is_cancelled
        and appt.work_date == work_date
        and overlaps(start_time, end_time, appt.start_time, appt.end_time)
    ]


def has_conflict(
    work_date: date,
    start_time: time,
    end_time: time,
    appointments: Iterable[Appointment],
    exclude_id: str | None = None,
    now: datetime | None = None,
) -> bool:
    """True when the candidate can't be booked.

    ``exclude_id`` is the appointment being moved during a reschedule so it
    doesn't collide with itself. When ``now`` is given, past slots always
    count as conflicting.
    """
    if now is not None and is_in_past(work_date, start_time, now):
        return True
    return bool(conflicting_appointments(work_date, start_time, end_time, appointments, exclude_id))


def find_overlapping_appointments(appointments: Iterable[Appointment]) -> list[tuple[Appointment, Appointment]]:
    """Pairs of same-doctor, same-date appointments whose ranges overlap."""
    by_day: dict[tuple[str, date], list[Appointment]] = defaultdict(list)
    for appt in appointments:
        if appt.is_cancelled or appt.doctor_id is None:
            continue
        by_day[(appt.doctor_id, appt.work_date)].append(appt)

    clashes = []
    for day in by_day.values():
        day.sort(key=lambda a: a.start_time)
        for a, b in combinations(day, 2):
            if overlaps(a.start_time, a.end_time, b.start_time, b.end_time):
                clashes.append((a, b))
    return clashes
