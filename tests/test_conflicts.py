from datetime import date, datetime, time

from ohms_booking.conflicts import (
    conflicting_appointments,
    find_overlapping_appointments,
    has_conflict,
    is_in_past,
)
from ohms_booking.models import Appointment
from ohms_booking.timeutil import format_minutes, format_time, overlaps, parse_time, quantize_up

DAY = date(2025, 3, 10)


def appt(id, start, end, day=DAY, status="CONFIRMED", doctor="doc-1"):
    return Appointment(id=id, doctor_id=doctor, work_date=day, start_time=start, end_time=end, status=status)


A = appt("A", "09:00", "09:30")
B = appt("B", "09:30", "10:00")
C = appt("C", "09:15", "09:45")


def test_touching_ranges_do_not_conflict():
    assert not has_conflict(DAY, B.start_time, B.end_time, [A])
    assert not has_conflict(DAY, A.start_time, A.end_time, [B])


def test_overlapping_ranges_conflict():
    assert has_conflict(DAY, C.start_time, C.end_time, [A])
    assert [a.id for a in conflicting_appointments(DAY, C.start_time, C.end_time, [A, B])] == ["A", "B"]


def test_moved_appointment_does_not_conflict_with_itself():
    assert not has_conflict(DAY, time(9, 10), time(9, 20), [A], exclude_id="A")


def test_cancelled_and_other_dates_are_ignored():
    others = [appt("X", "09:00", "09:30", status="CANCELLED"), appt("Y", "09:00", "09:30", day=date(2025, 3, 11))]
    assert not has_conflict(DAY, time(9, 0), time(9, 30), others)


def test_past_start_is_always_rejected():
    now = datetime(2025, 3, 10, 12, 0)
    assert is_in_past(DAY, time(11, 50), now)
    assert not is_in_past(DAY, time(12, 0), now)
    assert has_conflict(DAY, time(11, 0), time(11, 10), [], now=now)
    assert not has_conflict(DAY, time(13, 0), time(13, 10), [], now=now)


def test_find_overlapping_appointments_per_doctor_and_day():
    other_doctor = appt("D", "09:00", "09:30", doctor="doc-2")
    cancelled = appt("E", "09:00", "09:30", status="CANCELLED")
    clashes = find_overlapping_appointments([A, B, C, other_doctor, cancelled])
    assert {(a.id, b.id) for a, b in clashes} == {("A", "C"), ("C", "B")}


def test_time_helpers():
    assert parse_time("09:05") == time(9, 5)
    assert parse_time("09:05:30") == time(9, 5, 30)
    assert format_time(time(9, 5)) == "09:05:00"
    assert format_minutes(9 * 60 + 40) == "09:40:00"
    assert format_minutes(24 * 60 + 5) == "24:05:00"
    assert quantize_up(485) == 490 and quantize_up(490) == 490
    assert not overlaps(0, 10, 10, 20)
    assert overlaps(0, 11, 10, 20)
