from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Backend speaks camelCase JSON; Python code uses snake_case."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ChangeType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    APPLIED = "APPLIED"


class WorkingInterval(WireModel):
    """One contiguous block a doctor is available on a given date."""
    id: str | None = None
    doctor_id: str | None = None
    work_date: date
    start_time: time
    end_time: time


class Slot(WireModel):
    work_date: date
    start_time: time
    end_time: time
    available: bool = True


class DaySchedule(WireModel):
    work_date: date
    week_label: str  # this_week | next_week
    slots: list[Slot] = []


class MedicalExamination(WireModel):
    id: str
    name: str = ""
    price: float | None = None
    min_duration: int | None = None  # minutes


class ServiceAppointment(WireModel):
    id: str
    parent_appointment_id: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    status: str = AppointmentStatus.PENDING.value
    medical_examinations: list[MedicalExamination] = []


class Appointment(WireModel):
    id: str
    patient_id: str | None = None
    patient_name: str | None = None
    doctor_id: str | None = None  # null until a doctor is assigned
    doctor_name: str | None = None
    doctor_specialty: str | None = None
    work_date: date
    start_time: time
    end_time: time
    status: str = AppointmentStatus.PENDING.value
    medical_examinations: list[MedicalExamination] | None = None
    service_appointments: list[ServiceAppointment] | None = None
    parent_appointment_id: str | None = None
    deposit: int | None = None  # negative once refunded
    deposit_status: str | None = None
    cancel_time: datetime | None = None
    is_remove_by_change_schedule: bool | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status.upper() == AppointmentStatus.CANCELLED.value


class ScheduleChangeRequest(WireModel):
    id: str | None = None
    change_type: ChangeType
    status: RequestStatus = RequestStatus.PENDING
    date_change: date
    department: str | None = None
    new_start_time: time | None = None
    new_end_time: time | None = None
    target_doctor_id: str
    target_schedule_id: str | None = None
    created_by_staff_id: str | None = None
    affected_doctor_ids: list[str] = []
    approved_doctor_ids: list[str] = []
    rejected_by_doctor_id: str | None = None
    rejection_note: str | None = None
    reason: str | None = None


class BulkScheduleItem(WireModel):
    doctor_id: str
    schedule_id: str | None = None  # null for CREATE
    start_time: time | None = None
    end_time: time | None = None


class RefundQuote(BaseModel):
    amount: int
    percentage: int


class TimelineSegment(BaseModel):
    kind: str  # service | consultation
    appointment_id: str
    start: str  # HH:MM:SS
    end: str
    minutes: int


class Timeline(BaseModel):
    segments: list[TimelineSegment]
    total_minutes: int

    @property
    def start(self) -> str:
        return self.segments[0].start

    @property
    def end(self) -> str:
        return self.segments[-1].end

    def update_payloads(self, appointment: Appointment, doctor_id: str | None, work_date: date) -> list[tuple[str, dict]]:
        """PUT bodies per segment, services first; services never carry a doctor."""
        exams_by_id = {s.id: s.medical_examinations for s in appointment.service_appointments or []}
        payloads = []
        for seg in self.segments:
            if seg.kind == "service":
                exams = exams_by_id.get(seg.appointment_id, [])
                seg_doctor = None
            else:
                exams = appointment.medical_examinations or []
                seg_doctor = doctor_id
            payloads.append((seg.appointment_id, {
                "patientId": appointment.patient_id,
                "doctorId": seg_doctor,
                "workDate": work_date.isoformat(),
                "startTime": seg.start,
                "endTime": seg.end,
                "medicalExaminationIds": [e.id for e in exams],
            }))
        return payloads


class ScheduleChangePreview(BaseModel):
    """Everything staff must see before submitting a schedule change."""
    request: ScheduleChangeRequest
    overlap_warnings: list[WorkingInterval] = []
    affected_appointments: list[Appointment] = []

    @property
    def has_warnings(self) -> bool:
        return bool(self.overlap_warnings or self.affected_appointments)


# Adapter service request bodies ---------------------------------------------

class SlotsRequest(BaseModel):
    work_date: date
    intervals: list[WorkingInterval] = []
    appointments: list[Appointment] = []


class ConflictRequest(BaseModel):
    work_date: date
    start_time: time
    end_time: time
    appointments: list[Appointment] = []
    exclude_appointment_id: str | None = None
    now: datetime | None = None


class ConflictResponse(BaseModel):
    conflicts: bool
    conflicting_ids: list[str] = []


class TimelineRequest(BaseModel):
    start_time: time
    service_appointments: list[ServiceAppointment] = []
    parent_appointment_id: str = "parent"


class RefundQuoteRequest(BaseModel):
    deposit: int
    cancel_time: datetime
    work_date: date
    doctor_changed: bool = False


class RescheduleRequest(BaseModel):
    appointment: Appointment
    doctor_id: str
    work_date: date
    start_time: time


class ScheduleChangeDraft(BaseModel):
    change_type: ChangeType
    work_date: date
    target_doctor_id: str
    created_by_staff_id: str
    new_start_time: time | None = None
    new_end_time: time | None = None
    target_schedule_id: str | None = None
    department: str | None = None
    reason: str | None = None


class SchedulePreviewRequest(ScheduleChangeDraft):
    day_intervals: list[WorkingInterval] = []
    appointments: list[Appointment] = []
    current_interval: WorkingInterval | None = None


class ScheduleChangeSubmission(ScheduleChangeDraft):
    department_doctor_ids: list[str] = []
    confirmed: bool = False  # staff has seen the warnings


class ScheduleChangeResult(BaseModel):
    preview: ScheduleChangePreview
    submitted: bool
    request: ScheduleChangeRequest | None = None


class RejectBody(BaseModel):
    note: str | None = None
