"""Lay out a visit: service procedures back to back, a short buffer, then the
doctor consultation.
"""
from __future__ import annotations

from datetime import time
from typing import Sequence

from .models import ServiceAppointment, Timeline, TimelineSegment
from .timeutil import format_minutes, parse_time, to_minutes

CONSULTATION_MINUTES = 10
SERVICE_BUFFER_MINUTES = 5
DEFAULT_EXAMINATION_MINUTES = 30


def service_duration(service: ServiceAppointment) -> int:
    return sum(e.min_duration or DEFAULT_EXAMINATION_MINUTES for e in service.medical_examinations)


def total_duration(services: Sequence[ServiceAppointment] | None) -> int:
    services = services or []
    total = sum(service_duration(s) for s in services)
    if services:
        total += SERVICE_BUFFER_MINUTES
    return total + CONSULTATION_MINUTES


def build_timeline(
    start: time | str,
    services: Sequence[ServiceAppointment] | None = None,
    parent_id: str = "parent",
) -> Timeline:
    """Concrete segment times for a visit starting at ``start``.

    Services keep their given order with no gap between them; the buffer is
    added once after the last service. Same input, same segments.
    """
    cursor = to_minutes(parse_time(start))
    segments = []

    for service in services or []:
        minutes = service_duration(service)
        segments.append(TimelineSegment(
            kind="service",
            appointment_id=service.id,
            start=format_minutes(cursor),
            end=format_minutes(cursor + minutes),
            minutes=minutes,
        ))
        cursor += minutes

    if segments:
        cursor += SERVICE_BUFFER_MINUTES

    segments.append(TimelineSegment(
        kind="consultation",
        appointment_id=parent_id,
        start=format_minutes(cursor),
        end=format_minutes(cursor + CONSULTATION_MINUTES),
        minutes=CONSULTATION_MINUTES,
    ))
    return Timeline(segments=segments, total_minutes=total_duration(services))
