"""Async client for the hospital booking backend.

Every call takes its bearer token from a SessionContext, by default the
module-level one set with ``configure_session``.
"""
from __future__ import annotations
import asyncio
import logging
import os
from datetime import date
from typing import Iterable

import httpx
from dotenv import load_dotenv

from .errors import BackendError, ConflictError, NotFoundError, SessionExpiredError
from .models import Appointment, BulkScheduleItem, ChangeType, ScheduleChangeRequest, WorkingInterval
from .session import InFlightGuard, SessionContext, idempotency_key

load_dotenv()

logger = logging.getLogger(__name__)

_BASE_URL = os.getenv("OHMS_API_BASE_URL", "http://localhost:8080")
_TIMEOUT = float(os.getenv("OHMS_HTTP_TIMEOUT", "15"))

_SESSION = SessionContext(os.getenv("OHMS_ACCESS_TOKEN"))
_GUARD = InFlightGuard()


def configure_session(token: str | None) -> SessionContext:
    """Point the default session at a new access token (e.g. after login)."""
    _SESSION.set_token(token)
    return _SESSION


def _results(payload):
    """Backend wraps most payloads as {code, message, results}; lists come bare too."""
    if isinstance(payload, dict) and "results" in payload:
        return payload["results"]
    return payload


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        return body.get("message") or resp.reason_phrase
    return resp.reason_phrase


def _raise_for_status(resp: httpx.Response) -> None:
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = resp.status_code
        message = _error_message(resp)
        if status in (401, 403):
            raise SessionExpiredError(message, status_code=status) from exc
        if status == 404:
            raise NotFoundError(message, status_code=status) from exc
        if status in (400, 409):
            raise ConflictError(message, status_code=status) from exc
        raise BackendError(message, status_code=status) from exc


async def _request(
    method: str,
    path: str,
    session: SessionContext | None = None,
    json: dict | list | None = None,
    idempotent: bool = False,
):
    headers = {"Accept": "application/json", **(session or _SESSION).auth_headers()}
    if idempotent:
        headers["Idempotency-Key"] = idempotency_key(method, path, json)
    try:
        async with httpx.AsyncClient(http2=True, timeout=_TIMEOUT) as client:
            resp = await client.request(method, f"{_BASE_URL}{path}", headers=headers, json=json)
    except httpx.HTTPError as exc:
        raise BackendError(f"booking backend unreachable: {exc}") from exc
    _raise_for_status(resp)
    if not resp.content:
        return None
    return _results(resp.json())


async def _mutate(method: str, path: str, body: dict | list | None, session: SessionContext | None = None):
    """Side-effecting call: idempotency key header, one submission at a time."""
    key = idempotency_key(method, path, body)
    async with _GUARD.hold(key):
        return await _request(method, path, session=session, json=body, idempotent=True)


# Reads ----------------------------------------------------------------------

async def fetch_doctor_schedule(doctor_id: str, session: SessionContext | None = None) -> list[WorkingInterval]:
    """Working intervals of one doctor."""
    rows = await _request("GET", f"/schedule/{doctor_id}", session=session) or []
    return [WorkingInterval.model_validate({"doctorId": doctor_id, **row}) for row in rows]


async def fetch_doctor_appointments(
    doctor_id: str, work_date: date, session: SessionContext | None = None
) -> list[Appointment]:
    rows = await _request("GET", f"/appointments/doctor/{doctor_id}/date/{work_date.isoformat()}", session=session)
    return [Appointment.model_validate(row) for row in rows or []]


async def fetch_appointments_by_date(work_date: date, session: SessionContext | None = None) -> list[Appointment]:
    rows = await _request("GET", f"/appointments/date/{work_date.isoformat()}", session=session)
    return [Appointment.model_validate(row) for row in rows or []]


async def fetch_patient_appointments(patient_id: str, session: SessionContext | None = None) -> list[Appointment]:
    rows = await _request("GET", f"/appointments/patient/{patient_id}", session=session)
    return [Appointment.model_validate(row) for row in rows or []]


async def fetch_appointment(appointment_id: str, session: SessionContext | None = None) -> Appointment:
    data = await _request("GET", f"/appointments/{appointment_id}", session=session)
    if not data:
        raise NotFoundError(f"appointment {appointment_id} not found", status_code=404)
    return Appointment.model_validate(data)


async def fetch_cancelled_appointments(session: SessionContext | None = None) -> list[Appointment]:
    rows = await _request("GET", "/appointments/cancelled", session=session)
    return [Appointment.model_validate(row) for row in rows or []]


async def fetch_day_appointments_for_doctors(
    doctor_ids: Iterable[str], work_date: date, session: SessionContext | None = None
) -> dict[str, list[Appointment]]:
    """Fan out one request per doctor; results are keyed by doctor id."""
    doctor_ids = list(dict.fromkeys(doctor_ids))
    results = await asyncio.gather(
        *(fetch_doctor_appointments(d, work_date, session=session) for d in doctor_ids)
    )
    return dict(zip(doctor_ids, results))


async def fetch_appointments_for_dates(
    doctor_id: str, dates: Iterable[date], session: SessionContext | None = None
) -> dict[date, list[Appointment]]:
    dates = list(dict.fromkeys(dates))
    results = await asyncio.gather(
        *(fetch_doctor_appointments(doctor_id, d, session=session) for d in dates)
    )
    return dict(zip(dates, results))


async def fetch_schedule_change(request_id: str, session: SessionContext | None = None) -> ScheduleChangeRequest:
    data = await _request("GET", f"/schedule-change-requests/{request_id}", session=session)
    if not data:
        raise NotFoundError(f"schedule change request {request_id} not found", status_code=404)
    return ScheduleChangeRequest.model_validate(data)


# Mutations ------------------------------------------------------------------

async def update_appointment(appointment_id: str, payload: dict, session: SessionContext | None = None) -> dict | None:
    """Rewrite date/time/doctor of one (service or parent) appointment."""
    return await _request("PUT", f"/appointments/{appointment_id}", session=session, json=payload)


async def apply_refund(appointment_id: str, amount: int, session: SessionContext | None = None) -> dict | None:
    logger.info("Applying refund of %s to appointment %s", amount, appointment_id)
    return await _mutate("PUT", f"/appointments/{appointment_id}/refund", {"refundAmount": amount}, session=session)


async def submit_schedule_change(
    request: ScheduleChangeRequest, session: SessionContext | None = None
) -> ScheduleChangeRequest:
    body = request.to_wire()
    body.pop("status", None)
    data = await _mutate("POST", "/schedule-change-requests", body, session=session)
    logger.info("Submitted %s schedule change for doctor %s on %s",
                request.change_type.value, request.target_doctor_id, request.date_change)
    return ScheduleChangeRequest.model_validate(data) if data else request


async def submit_bulk_schedule_change(
    change_type: ChangeType,
    work_date: date,
    items: list[BulkScheduleItem],
    created_by_staff_id: str,
    department: str | None = None,
    reason: str | None = None,
    session: SessionContext | None = None,
) -> list[ScheduleChangeRequest]:
    body = {
        "changeType": change_type.value,
        "dateChange": work_date.isoformat(),
        "department": department,
        "createdByStaffId": created_by_staff_id,
        "reason": reason,
        "bulkSchedules": [item.to_wire() for item in items],
    }
    rows = await _mutate("POST", "/schedule-change-requests/bulk", body, session=session)
    logger.info("Submitted bulk %s schedule change for %d doctor(s) on %s",
                change_type.value, len(items), work_date)
    return [ScheduleChangeRequest.model_validate(row) for row in rows or []]


async def approve_schedule_change(
    request_id: str, doctor_id: str, session: SessionContext | None = None
) -> ScheduleChangeRequest:
    data = await _mutate("POST", f"/schedule-change-requests/{request_id}/approve/doctor/{doctor_id}", None, session=session)
    return ScheduleChangeRequest.model_validate(data)


async def reject_schedule_change(
    request_id: str, doctor_id: str, note: str | None = None, session: SessionContext | None = None
) -> ScheduleChangeRequest:
    body = {"rejectionNote": note} if note else None
    data = await _mutate("POST", f"/schedule-change-requests/{request_id}/reject/doctor/{doctor_id}", body, session=session)
    return ScheduleChangeRequest.model_validate(data)
