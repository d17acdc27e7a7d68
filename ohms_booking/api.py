import logging
from datetime import date, datetime
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import client, service
from .availability import build_slots
from .conflicts import conflicting_appointments, is_in_past
from .errors import (
    BackendError,
    BookingError,
    ConflictError,
    DuplicateSubmissionError,
    InvalidTransitionError,
    NotFoundError,
    SessionExpiredError,
    ValidationError,
)
from .models import (
    ConflictRequest,
    ConflictResponse,
    DaySchedule,
    RefundQuote,
    RefundQuoteRequest,
    RejectBody,
    RescheduleRequest,
    ScheduleChangePreview,
    ScheduleChangeRequest,
    ScheduleChangeResult,
    ScheduleChangeSubmission,
    SchedulePreviewRequest,
    Slot,
    SlotsRequest,
    Timeline,
    TimelineRequest,
)
from .refund import calculate_refund
from .schedule_requests import prepare_request
from .session import SessionContext
from .timeline import build_timeline

logger = logging.getLogger(__name__)

# HTTPBearer scheme so Swagger-UI can attach the Authorization header globally
auth_scheme = HTTPBearer(auto_error=False)

app = FastAPI(title="OHMS Booking Policy Service")

_STATUS_BY_ERROR = {
    ValidationError: 422,
    ConflictError: 409,
    DuplicateSubmissionError: 409,
    InvalidTransitionError: 409,
    NotFoundError: 404,
    SessionExpiredError: 401,
    BackendError: 502,
}


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 400)
    if status >= 500:
        logger.error("Backend failure on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=status, content={"detail": exc.message})


def backend_session(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)) -> SessionContext:
    """Forward the caller's bearer token to the booking backend."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return SessionContext(credentials.credentials)


# Pure policy endpoints ------------------------------------------------------

@app.post("/slots", response_model=list[Slot])
async def slots(req: SlotsRequest):
    """10-minute slots for the given intervals, flagged against existing bookings."""
    return build_slots(req.work_date, req.intervals, req.appointments)


@app.post("/conflicts", response_model=ConflictResponse)
async def conflicts(req: ConflictRequest):
    if req.now is not None and is_in_past(req.work_date, req.start_time, req.now):
        return ConflictResponse(conflicts=True)
    clashes = conflicting_appointments(
        req.work_date, req.start_time, req.end_time, req.appointments, req.exclude_appointment_id
    )
    return ConflictResponse(conflicts=bool(clashes), conflicting_ids=[a.id for a in clashes])


@app.post("/timeline", response_model=Timeline)
async def timeline(req: TimelineRequest):
    return build_timeline(req.start_time, req.service_appointments, parent_id=req.parent_appointment_id)


@app.post("/refund/quote", response_model=RefundQuote)
async def refund_quote(req: RefundQuoteRequest):
    return calculate_refund(req.deposit, req.cancel_time, req.work_date, req.doctor_changed)


@app.post("/schedule-change/preview", response_model=ScheduleChangePreview)
async def schedule_change_preview(req: SchedulePreviewRequest):
    """Check a change against intervals and bookings the caller already has."""
    return prepare_request(
        req.change_type,
        req.work_date,
        req.target_doctor_id,
        req.created_by_staff_id,
        day_intervals=req.day_intervals,
        appointments=req.appointments,
        new_start_time=req.new_start_time,
        new_end_time=req.new_end_time,
        target_schedule_id=req.target_schedule_id,
        current_interval=req.current_interval,
        department=req.department,
        reason=req.reason,
    )


# Backend-backed workflows ---------------------------------------------------

@app.get("/availability/{doctor_id}", response_model=list[DaySchedule])
async def availability(
    doctor_id: str,
    today: Optional[date] = Query(None, description="YYYY-MM-DD reference day, defaults to today"),
    session: SessionContext = Depends(backend_session),
):
    """Two-week booking calendar of one doctor."""
    return await service.load_booking_window(doctor_id, today, session=session)


@app.post("/reschedule", response_model=Timeline)
async def reschedule(req: RescheduleRequest, session: SessionContext = Depends(backend_session)):
    return await service.reschedule_appointment(
        req.appointment, req.doctor_id, req.work_date, req.start_time, now=datetime.now(), session=session
    )


@app.get("/refunds")
async def refund_queue(session: SessionContext = Depends(backend_session)):
    """Cancelled appointments, those still owed money first."""
    queue = await service.load_refund_queue(session=session)
    return [
        {"appointment": appt.to_wire(), "refund": quote.model_dump()}
        for appt, quote in queue
    ]


@app.post("/refund/{appointment_id}/confirm", response_model=RefundQuote)
async def confirm_refund(appointment_id: str, session: SessionContext = Depends(backend_session)):
    """Pay out the refund the backend's own cancellation record is owed."""
    return await service.confirm_refund(appointment_id, session=session)


@app.post("/schedule-change", response_model=ScheduleChangeResult)
async def schedule_change(req: ScheduleChangeSubmission, session: SessionContext = Depends(backend_session)):
    """Preview first; submit only once staff confirmed having seen the warnings."""
    preview = await service.preview_schedule_change(req, req.department_doctor_ids, session=session)
    if preview.has_warnings and not req.confirmed:
        return ScheduleChangeResult(preview=preview, submitted=False)
    submitted = await service.submit_schedule_change_request(preview, session=session)
    return ScheduleChangeResult(preview=preview, submitted=True, request=submitted)


@app.post("/schedule-change/{request_id}/approve/{doctor_id}", response_model=ScheduleChangeRequest)
async def approve(request_id: str, doctor_id: str, session: SessionContext = Depends(backend_session)):
    request = await client.fetch_schedule_change(request_id, session=session)
    return await service.approve_change(request, doctor_id, session=session)


@app.post("/schedule-change/{request_id}/reject/{doctor_id}", response_model=ScheduleChangeRequest)
async def reject(
    request_id: str,
    doctor_id: str,
    body: Optional[RejectBody] = Body(None),
    session: SessionContext = Depends(backend_session),
):
    note = body.note if body else None
    request = await client.fetch_schedule_change(request_id, session=session)
    return await service.reject_change(request, doctor_id, note, session=session)
