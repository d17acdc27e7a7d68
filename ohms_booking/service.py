"""Booking workflows: fetch what a rule needs, apply it, submit the result."""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time
from typing import Iterable

from . import client
from .availability import booking_window_dates, bookable_starts, build_booking_window, build_week, group_by_date
from .conflicts import conflicting_appointments, is_in_past
from .errors import ConflictError, ValidationError
from .models import (
    Appointment,
    DaySchedule,
    RefundQuote,
    ScheduleChangeDraft,
    ScheduleChangePreview,
    ScheduleChangeRequest,
    Slot,
    Timeline,
)
from .refund import is_refunded, quote_for, sort_refund_queue
from .schedule_requests import ApprovalTracker, prepare_request
from .session import SessionContext
from .timeline import build_timeline, total_duration
from .timeutil import MINUTES_PER_DAY, from_minutes, parse_time, to_minutes

logger = logging.getLogger(__name__)


def _own_ids(appointment: Appointment) -> set[str]:
    """The appointment and its service appointments move together."""
    return {appointment.id} | {s.id for s in appointment.service_appointments or []}


async def load_booking_window(
    doctor_id: str, today: date | None = None, session: SessionContext | None = None
) -> list[DaySchedule]:
    today = today or date.today()
    intervals = await client.fetch_doctor_schedule(doctor_id, session=session)
    this_week, next_week = booking_window_dates(today)
    appointments = await client.fetch_appointments_for_dates(doctor_id, this_week + next_week, session=session)
    return build_booking_window(today, intervals, appointments)


async def doctor_day_slots(
    doctor_id: str,
    work_date: date,
    today: date,
    exclude_ids: Iterable[str] = (),
    session: SessionContext | None = None,
) -> list[Slot]:
    """One day of the doctor's booking window; bookings in ``exclude_ids`` don't block."""
    this_week, next_week = booking_window_dates(today)
    if work_date < today or work_date not in this_week + next_week:
        return []
    week = this_week if work_date in this_week else next_week

    intervals, appointments = await asyncio.gather(
        client.fetch_doctor_schedule(doctor_id, session=session),
        client.fetch_doctor_appointments(doctor_id, work_date, session=session),
    )
    exclude_ids = set(exclude_ids)
    appointments = [a for a in appointments if a.id not in exclude_ids]
    days = build_week(week, group_by_date(intervals), {work_date: appointments})
    return next(d.slots for d in days if d.work_date == work_date)


async def find_bookable_slots(
    appointment: Appointment,
    doctor_id: str,
    work_date: date,
    now: datetime | None = None,
    session: SessionContext | None = None,
) -> list[Slot]:
    """Start slots the whole visit (services, buffer, consultation) fits into."""
    now = now or datetime.now()
    own = _own_ids(appointment)
    slots, patient_appointments = await asyncio.gather(
        doctor_day_slots(doctor_id, work_date, now.date(), own, session=session),
        _patient_appointments(appointment, session),
    )
    others = [a for a in patient_appointments if a.id not in own]
    return bookable_starts(slots, total_duration(appointment.service_appointments), now, others)


async def _patient_appointments(appointment: Appointment, session: SessionContext | None) -> list[Appointment]:
    if not appointment.patient_id:
        return []
    return await client.fetch_patient_appointments(appointment.patient_id, session=session)


async def reschedule_appointment(
    appointment: Appointment,
    doctor_id: str,
    work_date: date,
    start_time: time | str,
    now: datetime | None = None,
    patient_appointments: Iterable[Appointment] | None = None,
    session: SessionContext | None = None,
) -> Timeline:
    """Move a visit and all of its service appointments to a new start.

    Service segments are written first, then the consultation, one PUT each.
    """
    now = now or datetime.now()
    start_time = parse_time(start_time)

    if (
        doctor_id == appointment.doctor_id
        and work_date == appointment.work_date
        and start_time == appointment.start_time
    ):
        raise ValidationError("choose a different time or doctor")
    if is_in_past(work_date, start_time, now):
        raise ValidationError("cannot move an appointment into the past")

    timeline = build_timeline(start_time, appointment.service_appointments, parent_id=appointment.id)
    end_minute = to_minutes(start_time) + timeline.total_minutes
    if end_minute > MINUTES_PER_DAY:
        raise ValidationError("visit would run past midnight")

    if patient_appointments is None:
        patient_appointments = await _patient_appointments(appointment, session)
    end_time = from_minutes(end_minute) if end_minute < MINUTES_PER_DAY else time.max
    own = _own_ids(appointment)
    clashes = [
        a for a in conflicting_appointments(work_date, start_time, end_time, patient_appointments)
        if a.id not in own
    ]
    if clashes:
        raise ConflictError(f"patient already has an appointment at {clashes[0].start_time:%H:%M}")

    slots = await doctor_day_slots(doctor_id, work_date, now.date(), own, session=session)
    if not any(s.start_time == start_time for s in bookable_starts(slots, timeline.total_minutes, now)):
        raise ConflictError(f"doctor {doctor_id} is not free for {timeline.total_minutes} minutes from {start_time:%H:%M}")

    for appointment_id, payload in timeline.update_payloads(appointment, doctor_id, work_date):
        await client.update_appointment(appointment_id, payload, session=session)

    logger.info("Rescheduled appointment %s to %s %s-%s with doctor %s",
                appointment.id, work_date, timeline.start, timeline.end, doctor_id)
    return timeline


async def load_refund_queue(session: SessionContext | None = None) -> list[tuple[Appointment, RefundQuote]]:
    cancelled = await client.fetch_cancelled_appointments(session=session)
    return [(a, quote_for(a)) for a in sort_refund_queue(cancelled)]


async def confirm_refund(appointment_id: str, session: SessionContext | None = None) -> RefundQuote:
    """Quote from the backend's record of the cancellation, then pay it out."""
    appointment = await client.fetch_appointment(appointment_id, session=session)
    if not appointment.is_cancelled:
        raise ValidationError("appointment is not cancelled")
    if is_refunded(appointment):
        raise ValidationError("deposit already refunded")
    quote = quote_for(appointment)
    if quote.amount == 0:
        raise ValidationError("nothing to refund")
    await client.apply_refund(appointment.id, quote.amount, session=session)
    return quote


async def preview_schedule_change(
    draft: ScheduleChangeDraft,
    department_doctor_ids: Iterable[str] = (),
    session: SessionContext | None = None,
) -> ScheduleChangePreview:
    """Gather the day's intervals of the department and the doctor's bookings, then check the change."""
    doctor_ids = list(dict.fromkeys([draft.target_doctor_id, *department_doctor_ids]))
    schedules = await asyncio.gather(
        *(client.fetch_doctor_schedule(d, session=session) for d in doctor_ids)
    )
    day_intervals = [i for rows in schedules for i in rows if i.work_date == draft.work_date]
    appointments = await client.fetch_doctor_appointments(draft.target_doctor_id, draft.work_date, session=session)

    return prepare_request(
        draft.change_type,
        draft.work_date,
        draft.target_doctor_id,
        draft.created_by_staff_id,
        day_intervals=day_intervals,
        appointments=appointments,
        new_start_time=draft.new_start_time,
        new_end_time=draft.new_end_time,
        target_schedule_id=draft.target_schedule_id,
        department=draft.department,
        reason=draft.reason,
    )


async def submit_schedule_change_request(
    preview: ScheduleChangePreview, session: SessionContext | None = None
) -> ScheduleChangeRequest:
    return await client.submit_schedule_change(preview.request, session=session)


async def approve_change(
    request: ScheduleChangeRequest, doctor_id: str, session: SessionContext | None = None
) -> ScheduleChangeRequest:
    """Approve as ``doctor_id``; a repeated approval is not sent again."""
    local = request.model_copy(deep=True)
    already = doctor_id in local.approved_doctor_ids
    ApprovalTracker(local).approve(doctor_id)
    if already:
        return local
    return await client.approve_schedule_change(request.id, doctor_id, session=session)


async def reject_change(
    request: ScheduleChangeRequest, doctor_id: str, note: str | None = None, session: SessionContext | None = None
) -> ScheduleChangeRequest:
    local = request.model_copy(deep=True)
    ApprovalTracker(local).reject(doctor_id, note)
    return await client.reject_schedule_change(request.id, doctor_id, note, session=session)
