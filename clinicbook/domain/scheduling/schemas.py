"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ...models import APPOINTMENT_STATUSES, SCHEDULE_STATUSES
from ...shared.clock import to_clinic_time
from ...shared.validators import sanitize_notes, validate_status


class AppointmentCreate(BaseModel):
    """Schema for creating a single appointment (open slot or pre-booked)"""

    doctorId: int
    scheduleId: int
    patientId: Optional[int] = None
    startTime: datetime
    endTime: datetime
    notes: Optional[str] = Field(None, max_length=255)
    fee: Optional[Decimal] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        return sanitize_notes(v)

    @field_validator("fee")
    @classmethod
    def validate_fee(cls, v):
        if v is not None and v < 0:
            raise ValueError("Fee cannot be negative")
        return v

    @field_validator("startTime", "endTime")
    @classmethod
    def normalize_times(cls, v):
        return to_clinic_time(v)


class BulkCreateItem(BaseModel):
    """
    One slot inside a bulk request.

    Required fields are optional here so that a missing one is reported in
    the result instead of rejecting the whole batch.
    """

    doctorId: Optional[int] = None
    scheduleId: Optional[int] = None
    patientId: Optional[int] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=255)
    fee: Optional[Decimal] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        return sanitize_notes(v)

    @field_validator("fee")
    @classmethod
    def validate_fee(cls, v):
        if v is not None and v < 0:
            raise ValueError("Fee cannot be negative")
        return v

    @field_validator("startTime", "endTime")
    @classmethod
    def normalize_times(cls, v):
        return to_clinic_time(v)


class BulkCreateRequest(BaseModel):
    """Schema for pre-allocating many slots for one doctor"""

    doctorId: int
    # Raw items; each one is validated as a BulkCreateItem on its own
    items: list[Any]


class BookRequest(BaseModel):
    """Schema for booking an open slot"""

    appointmentId: Optional[int] = None  # Taken from the URL when omitted
    patientId: int
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        return sanitize_notes(v)


class CancelRequest(BaseModel):
    appointmentId: int


class AppointmentUpdate(BaseModel):
    """Schema for updating an existing appointment"""

    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    status: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=255)
    fee: Optional[Decimal] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        return sanitize_notes(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        return validate_status(v, APPOINTMENT_STATUSES)

    @field_validator("fee")
    @classmethod
    def validate_fee(cls, v):
        if v is not None and v < 0:
            raise ValueError("Fee cannot be negative")
        return v

    @field_validator("startTime", "endTime")
    @classmethod
    def normalize_times(cls, v):
        return to_clinic_time(v)


class AppointmentView(BaseModel):
    """Schema for appointment response"""

    id: int
    doctorId: int
    patientId: Optional[int] = None
    scheduleId: int
    startTime: datetime
    endTime: datetime
    status: str
    notes: Optional[str] = None
    fee: Optional[Decimal] = None

    @classmethod
    def from_appointment(cls, appointment) -> "AppointmentView":
        return cls(
            id=appointment.id,
            doctorId=appointment.doctor_id,
            patientId=appointment.patient_id,
            scheduleId=appointment.schedule_id,
            startTime=appointment.start_time,
            endTime=appointment.end_time,
            status=appointment.status,
            notes=appointment.notes,
            fee=appointment.fee,
        )


class BulkCreateFailure(BaseModel):
    index: int
    reason: str


class BulkCreateResult(BaseModel):
    """Outcome of a bulk request; errors line up with failed items in input order"""

    totalRequested: int
    successCount: int
    failedCount: int
    created: list[AppointmentView] = []
    errors: list[str] = []
    failures: list[BulkCreateFailure] = []


# Schedule Schemas
class ScheduleCreate(BaseModel):
    """Schema for declaring a doctor's availability window"""

    doctorId: int
    workDate: date
    startTime: time
    endTime: time
    status: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        return sanitize_notes(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        return validate_status(v, SCHEDULE_STATUSES)


class ScheduleUpdate(BaseModel):
    workDate: Optional[date] = None
    startTime: Optional[time] = None
    endTime: Optional[time] = None
    status: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        return sanitize_notes(v)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        return validate_status(v, SCHEDULE_STATUSES)


class ScheduleResponse(BaseModel):
    id: int
    doctorId: int
    workDate: date
    startTime: time
    endTime: time
    status: str
    notes: Optional[str] = None
    appointmentCount: Optional[int] = None

    @classmethod
    def from_schedule(cls, schedule, appointment_count: Optional[int] = None) -> "ScheduleResponse":
        return cls(
            id=schedule.id,
            doctorId=schedule.doctor_id,
            workDate=schedule.work_date,
            startTime=schedule.start_time,
            endTime=schedule.end_time,
            status=schedule.status,
            notes=schedule.notes,
            appointmentCount=appointment_count,
        )
