"""Deposit refund policy for cancelled appointments.

Lead time is counted in calendar days between the cancellation date and the
appointment date:

* doctor changed the schedule: 100%, whatever the timing
* 2 days or more: 100%
* exactly 1 day: 50%, floored to a whole currency unit
* same day or later: nothing
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Iterable

from .models import Appointment, RefundQuote

FULL_REFUND_DAYS = 2
HALF_REFUND_DAYS = 1


def lead_days(cancel_time: datetime | date, work_date: date) -> int:
    cancel_date = cancel_time.date() if isinstance(cancel_time, datetime) else cancel_time
    return (work_date - cancel_date).days


def calculate_refund(
    deposit: int,
    cancel_time: datetime | date,
    work_date: date,
    doctor_changed: bool = False,
) -> RefundQuote:
    deposit = abs(deposit)
    if doctor_changed:
        return RefundQuote(amount=deposit, percentage=100)

    days = lead_days(cancel_time, work_date)
    if days >= FULL_REFUND_DAYS:
        return RefundQuote(amount=deposit, percentage=100)
    if days >= HALF_REFUND_DAYS:
        return RefundQuote(amount=deposit // 2, percentage=50)
    return RefundQuote(amount=0, percentage=0)


def is_refunded(appointment: Appointment) -> bool:
    return appointment.deposit is not None and appointment.deposit < 0


def quote_for(appointment: Appointment) -> RefundQuote:
    if appointment.is_remove_by_change_schedule:
        # schedule-driven removals carry no cancel time
        return RefundQuote(amount=abs(appointment.deposit or 0), percentage=100)
    if appointment.cancel_time is None:
        # not cancelled through the patient flow; nothing is owed yet
        return RefundQuote(amount=0, percentage=0)
    return calculate_refund(
        appointment.deposit or 0,
        appointment.cancel_time,
        appointment.work_date,
    )


def awaiting_refund(appointment: Appointment) -> bool:
    return not is_refunded(appointment) and quote_for(appointment).amount > 0


def sort_refund_queue(appointments: Iterable[Appointment]) -> list[Appointment]:
    """Appointments still owed money first, then most recently cancelled first."""
    by_recency = sorted(
        appointments,
        key=lambda a: a.cancel_time or datetime.min,
        reverse=True,
    )
    return sorted(by_recency, key=lambda a: not awaiting_refund(a))
