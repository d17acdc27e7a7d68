from datetime import date, datetime, time

from ohms_booking.availability import (
    available_slots,
    bookable_starts,
    build_booking_window,
    build_slots,
    build_week,
    week_uses_default,
)
from ohms_booking.models import Appointment, WorkingInterval
from ohms_booking.timeutil import week_dates

MONDAY = date(2025, 3, 10)


def interval(start, end, day=MONDAY, doctor="doc-1"):
    return WorkingInterval(doctor_id=doctor, work_date=day, start_time=start, end_time=end)


def appt(id, start, end, day=MONDAY, status="CONFIRMED", doctor="doc-1"):
    return Appointment(id=id, doctor_id=doctor, work_date=day, start_time=start, end_time=end, status=status)


def starts(slots):
    return [s.start_time.strftime("%H:%M") for s in slots]


def test_full_day_with_one_booking_excludes_only_that_slot():
    slots = build_slots(MONDAY, [interval("07:00", "17:00")], [appt("a", "09:00", "09:10")])
    assert len(slots) == 60
    free = available_slots(MONDAY, [interval("07:00", "17:00")], [appt("a", "09:00", "09:10")])
    assert len(free) == 59
    assert "09:00" not in starts(free)
    assert "08:50" in starts(free) and "09:10" in starts(free)
    assert free[0].start_time == time(7, 0)
    assert free[-1].end_time == time(17, 0)


def test_empty_day_covers_union_of_intervals():
    slots = build_slots(MONDAY, [interval("08:00", "09:00"), interval("13:00", "14:00")])
    assert all(s.available for s in slots)
    assert starts(slots) == [
        "08:00", "08:10", "08:20", "08:30", "08:40", "08:50",
        "13:00", "13:10", "13:20", "13:30", "13:40", "13:50",
    ]


def test_booking_boundary_is_exclusive():
    slots = {s.start_time: s for s in build_slots(MONDAY, [interval("09:00", "11:00")], [appt("a", "10:00", "10:30")])}
    assert slots[time(9, 50)].available
    assert not slots[time(10, 0)].available
    assert not slots[time(10, 10)].available
    assert not slots[time(10, 20)].available
    assert slots[time(10, 30)].available


def test_cancelled_and_other_day_bookings_are_ignored():
    slots = build_slots(
        MONDAY,
        [interval("09:00", "10:00")],
        [appt("a", "09:00", "09:30", status="CANCELLED"), appt("b", "09:00", "09:30", day=date(2025, 3, 11))],
    )
    assert all(s.available for s in slots)


def test_interval_off_grid_starts_at_next_grid_line():
    slots = build_slots(MONDAY, [interval("08:05", "09:00")])
    assert starts(slots) == ["08:10", "08:20", "08:30", "08:40", "08:50"]


def test_overlapping_intervals_do_not_duplicate_slots():
    slots = build_slots(MONDAY, [interval("08:00", "09:00"), interval("08:30", "09:30")])
    assert len(slots) == 9


def test_week_without_any_interval_uses_default_weekdays():
    week = week_dates(MONDAY)
    assert week_uses_default(week, {})
    days = build_week(week, {}, {})
    assert [len(d.slots) for d in days] == [60, 60, 60, 60, 60, 0]


def test_one_explicit_day_turns_default_off_for_whole_week():
    week = week_dates(MONDAY)
    wednesday = date(2025, 3, 12)
    by_date = {wednesday: [interval("08:00", "10:00", day=wednesday)]}
    assert not week_uses_default(week, by_date)
    days = {d.work_date: d for d in build_week(week, by_date, {})}
    assert days[MONDAY].slots == []
    assert len(days[wednesday].slots) == 12
    assert days[date(2025, 3, 14)].slots == []


def test_booking_window_decides_default_per_week():
    today = date(2025, 3, 12)
    thursday = date(2025, 3, 13)
    days = build_booking_window(today, [interval("08:00", "09:00", day=thursday)], {})

    this_week = [d for d in days if d.week_label == "this_week"]
    next_week = [d for d in days if d.week_label == "next_week"]
    assert [d.work_date.day for d in this_week] == [12, 13, 14, 15]
    assert [len(d.slots) for d in this_week] == [0, 6, 0, 0]
    assert [d.work_date.day for d in next_week] == [17, 18, 19, 20, 21, 22]
    assert [len(d.slots) for d in next_week] == [60, 60, 60, 60, 60, 0]


def test_bookable_starts_need_consecutive_free_slots():
    day = build_slots(MONDAY, [interval("09:00", "10:00")], [appt("a", "09:40", "09:50")])
    now = datetime(2025, 3, 10, 8, 0)
    assert starts(bookable_starts(day, 30, now)) == ["09:00", "09:10"]
    assert starts(bookable_starts(day, 10, now)) == ["09:00", "09:10", "09:20", "09:30", "09:50"]


def test_bookable_starts_skip_past_slots():
    day = build_slots(MONDAY, [interval("09:00", "10:00")])
    assert starts(bookable_starts(day, 10, datetime(2025, 3, 10, 9, 25)))[0] == "09:30"


def test_bookable_starts_respect_patient_bookings():
    day = build_slots(MONDAY, [interval("09:00", "10:00")])
    patient = [appt("p1", "09:20", "09:30", doctor="doc-2"), appt("moving", "09:40", "09:50")]
    now = datetime(2025, 3, 10, 8, 0)
    assert starts(bookable_starts(day, 30, now, patient, exclude_id="moving")) == ["09:30"]
    assert starts(bookable_starts(day, 30, now, patient)) == []


def test_bookable_run_may_not_cross_a_gap_between_intervals():
    day = build_slots(MONDAY, [interval("09:00", "09:20"), interval("10:00", "10:30")])
    now = datetime(2025, 3, 10, 8, 0)
    assert starts(bookable_starts(day, 30, now)) == ["10:00"]
