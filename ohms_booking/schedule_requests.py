"""Staff-initiated changes to doctors' working intervals.

A change (create, update or delete of one interval) is only applied after
every doctor affected on that day has approved it. Before submitting, staff
get two kinds of warnings: intervals of other doctors the new range overlaps,
and bookings that would end up outside the doctor's hours.
"""
from __future__ import annotations

import logging
from datetime import date, time
from typing import Iterable, Sequence

from .errors import InvalidTransitionError, ValidationError
from .models import (
    Appointment,
    BulkScheduleItem,
    ChangeType,
    RequestStatus,
    ScheduleChangePreview,
    ScheduleChangeRequest,
    WorkingInterval,
)
from .timeutil import contains, overlaps

logger = logging.getLogger(__name__)


def affected_doctor_ids(
    target_doctor_id: str,
    work_date: date,
    day_intervals: Iterable[WorkingInterval],
) -> list[str]:
    """Doctors working on ``work_date`` plus the target doctor."""
    ids = {i.doctor_id for i in day_intervals if i.work_date == work_date and i.doctor_id}
    ids.add(target_doctor_id)
    return sorted(ids)


def overlap_warnings(
    change_type: ChangeType,
    target_doctor_id: str,
    work_date: date,
    start: time | None,
    end: time | None,
    day_intervals: Iterable[WorkingInterval],
) -> list[WorkingInterval]:
    """Other doctors' intervals the proposed range overlaps. Advisory only."""
    if change_type == ChangeType.DELETE or start is None or end is None:
        return []
    return [
        i for i in day_intervals
        if i.work_date == work_date
        and i.doctor_id != target_doctor_id
        and overlaps(start, end, i.start_time, i.end_time)
    ]


def orphaned_appointments(
    change_type: ChangeType,
    start: time | None,
    end: time | None,
    appointments: Iterable[Appointment],
    current: WorkingInterval | None = None,
    remaining: Iterable[WorkingInterval] = (),
) -> list[Appointment]:
    """Bookings the change would leave without a doctor.

    A booking survives when it fits entirely inside the new bounds (CREATE and
    UPDATE) or inside one of the doctor's ``remaining`` intervals. When the
    interval being replaced or deleted is known, only its bookings count.
    """
    remaining = list(remaining)
    live = [a for a in appointments if not a.is_cancelled]
    if current is not None:
        live = [a for a in live if overlaps(a.start_time, a.end_time, current.start_time, current.end_time)]

    def covered(appt: Appointment) -> bool:
        if change_type != ChangeType.DELETE and start is not None and end is not None:
            if contains(start, end, appt.start_time, appt.end_time):
                return True
        return any(contains(i.start_time, i.end_time, appt.start_time, appt.end_time) for i in remaining)

    return [a for a in live if not covered(a)]


def validate_change(
    change_type: ChangeType,
    start: time | None,
    end: time | None,
    target_schedule_id: str | None = None,
    current: WorkingInterval | None = None,
) -> None:
    if change_type in (ChangeType.CREATE, ChangeType.UPDATE):
        if start is None or end is None:
            raise ValidationError("start and end time are required")
        if start >= end:
            raise ValidationError("end time must be after start time")
    if change_type in (ChangeType.UPDATE, ChangeType.DELETE) and not target_schedule_id:
        raise ValidationError("target schedule id is required for update and delete")
    if (
        change_type == ChangeType.UPDATE
        and current is not None
        and current.start_time == start
        and current.end_time == end
    ):
        raise ValidationError("schedule time is unchanged")


def prepare_request(
    change_type: ChangeType,
    work_date: date,
    target_doctor_id: str,
    created_by_staff_id: str,
    day_intervals: Sequence[WorkingInterval] = (),
    appointments: Sequence[Appointment] = (),
    new_start_time: time | None = None,
    new_end_time: time | None = None,
    target_schedule_id: str | None = None,
    current_interval: WorkingInterval | None = None,
    department: str | None = None,
    reason: str | None = None,
) -> ScheduleChangePreview:
    """Validate a proposed change and collect what staff must be warned about.

    ``appointments`` are the target doctor's bookings on ``work_date``.
    """
    if current_interval is None and target_schedule_id:
        current_interval = next((i for i in day_intervals if i.id == target_schedule_id), None)

    validate_change(change_type, new_start_time, new_end_time, target_schedule_id, current_interval)

    request = ScheduleChangeRequest(
        change_type=change_type,
        date_change=work_date,
        department=department,
        new_start_time=new_start_time,
        new_end_time=new_end_time,
        target_doctor_id=target_doctor_id,
        target_schedule_id=target_schedule_id,
        created_by_staff_id=created_by_staff_id,
        affected_doctor_ids=affected_doctor_ids(target_doctor_id, work_date, day_intervals),
        reason=reason,
    )
    warnings = overlap_warnings(change_type, target_doctor_id, work_date, new_start_time, new_end_time, day_intervals)
    remaining = [
        i for i in day_intervals
        if i.doctor_id == target_doctor_id and i.work_date == work_date
        and not (target_schedule_id and i.id == target_schedule_id)
    ]
    orphans = orphaned_appointments(change_type, new_start_time, new_end_time, appointments, current_interval, remaining)

    if warnings:
        logger.warning("Schedule change for doctor %s on %s overlaps %d other interval(s)",
                       target_doctor_id, work_date, len(warnings))
    if orphans:
        logger.warning("Schedule change for doctor %s on %s affects %d booking(s)",
                       target_doctor_id, work_date, len(orphans))

    return ScheduleChangePreview(request=request, overlap_warnings=warnings, affected_appointments=orphans)


def bulk_items(
    change_type: ChangeType,
    proposed: Iterable[BulkScheduleItem],
    current: Iterable[WorkingInterval] = (),
) -> list[BulkScheduleItem]:
    """Items for one bulk submission; updates that change nothing are dropped."""
    current_by_id = {i.id: i for i in current if i.id}
    items = []
    for item in proposed:
        if change_type in (ChangeType.UPDATE, ChangeType.DELETE) and not item.schedule_id:
            raise ValidationError(f"schedule id is required for doctor {item.doctor_id}")
        if change_type == ChangeType.UPDATE:
            existing = current_by_id.get(item.schedule_id)
            if existing and existing.start_time == item.start_time and existing.end_time == item.end_time:
                logger.info("Skipping doctor %s - no time change", item.doctor_id)
                continue
        if change_type != ChangeType.DELETE:
            validate_change(ChangeType.CREATE, item.start_time, item.end_time)
        items.append(item)
    return items


class ApprovalTracker:
    """Per-doctor approval state of one schedule-change request.

    PENDING is the only state that accepts decisions. Approving twice counts
    once; one rejection rejects the whole request.
    """

    def __init__(self, request: ScheduleChangeRequest):
        self.request = request
        if not request.affected_doctor_ids:
            request.affected_doctor_ids = [request.target_doctor_id]

    @property
    def status(self) -> RequestStatus:
        return self.request.status

    @property
    def pending_doctor_ids(self) -> list[str]:
        approved = set(self.request.approved_doctor_ids)
        return [d for d in self.request.affected_doctor_ids if d not in approved]

    def _check(self, doctor_id: str) -> None:
        if self.request.status != RequestStatus.PENDING:
            raise InvalidTransitionError(f"request is {self.request.status.value}, not PENDING")
        if doctor_id not in self.request.affected_doctor_ids:
            raise InvalidTransitionError(f"doctor {doctor_id} is not asked to approve this request")

    def approve(self, doctor_id: str) -> RequestStatus:
        if doctor_id in self.request.approved_doctor_ids and doctor_id in self.request.affected_doctor_ids:
            return self.request.status
        self._check(doctor_id)
        self.request.approved_doctor_ids.append(doctor_id)
        if not self.pending_doctor_ids:
            self.request.status = RequestStatus.APPROVED
        return self.request.status

    def reject(self, doctor_id: str, note: str | None = None) -> RequestStatus:
        self._check(doctor_id)
        self.request.status = RequestStatus.REJECTED
        self.request.rejected_by_doctor_id = doctor_id
        self.request.rejection_note = note
        return self.request.status

    def mark_applied(self) -> RequestStatus:
        if self.request.status != RequestStatus.APPROVED:
            raise InvalidTransitionError(f"only APPROVED requests can be applied, got {self.request.status.value}")
        self.request.status = RequestStatus.APPLIED
        return self.request.status
