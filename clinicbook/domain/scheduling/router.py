"""Scheduling routers - FastAPI endpoints for appointments and schedules"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..notifications.dispatcher import NotificationDispatcher, get_notification_dispatcher
from .schedule_service import ScheduleService
from .schemas import (
    AppointmentCreate,
    AppointmentUpdate,
    AppointmentView,
    BookRequest,
    BulkCreateRequest,
    BulkCreateResult,
    CancelRequest,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
)
from .service import SlotBookingEngine

logger = logging.getLogger(__name__)

appointments_router = APIRouter(prefix="/appointments", tags=["Appointments"])
schedules_router = APIRouter(prefix="/schedules", tags=["Schedules"])


def get_booking_engine(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SlotBookingEngine:
    """Dependency injection for SlotBookingEngine"""
    return SlotBookingEngine(db, dispatcher)


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


def flush_after_response(
    background_tasks: BackgroundTasks, dispatcher: NotificationDispatcher
) -> None:
    """Queue buffered notifications once the response has been sent"""
    flush = getattr(dispatcher, "flush", None)
    if flush is not None:
        background_tasks.add_task(flush)


# ============================================================================
# APPOINTMENTS
# ============================================================================


@appointments_router.post("", response_model=AppointmentView, status_code=201)
def create_appointment(
    data: AppointmentCreate,
    background_tasks: BackgroundTasks,
    engine: SlotBookingEngine = Depends(get_booking_engine),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Create an open slot, or a booked appointment when patientId is given"""
    appointment = engine.create(data)
    flush_after_response(background_tasks, dispatcher)
    return AppointmentView.from_appointment(appointment)


@appointments_router.post("/bulk", response_model=BulkCreateResult, status_code=201)
def bulk_create_appointments(
    data: BulkCreateRequest,
    background_tasks: BackgroundTasks,
    engine: SlotBookingEngine = Depends(get_booking_engine),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Create many slots for one doctor; failed items are reported, not raised"""
    result = engine.bulk_create(data)
    flush_after_response(background_tasks, dispatcher)
    return result


@appointments_router.post("/book", response_model=AppointmentView)
def book_appointment(
    data: BookRequest,
    background_tasks: BackgroundTasks,
    engine: SlotBookingEngine = Depends(get_booking_engine),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Book the open slot named in the request body"""
    appointment = engine.book_appointment(data.appointmentId, data.patientId, data.notes)
    flush_after_response(background_tasks, dispatcher)
    return AppointmentView.from_appointment(appointment)


@appointments_router.post("/cancel", response_model=AppointmentView)
def cancel_appointment(
    data: CancelRequest,
    background_tasks: BackgroundTasks,
    engine: SlotBookingEngine = Depends(get_booking_engine),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Cancel the appointment named in the request body"""
    appointment = engine.cancel_appointment(data.appointmentId)
    flush_after_response(background_tasks, dispatcher)
    return AppointmentView.from_appointment(appointment)


@appointments_router.get("/by-doctor", response_model=list[AppointmentView])
def get_appointments_by_doctor(
    doctorId: int = Query(...),
    engine: SlotBookingEngine = Depends(get_booking_engine),
):
    return [AppointmentView.from_appointment(a) for a in engine.get_for_doctor(doctorId)]


@appointments_router.get("/by-patient", response_model=list[AppointmentView])
def get_appointments_by_patient(
    patientId: int = Query(...),
    engine: SlotBookingEngine = Depends(get_booking_engine),
):
    return [AppointmentView.from_appointment(a) for a in engine.get_for_patient(patientId)]


@appointments_router.get("/by-patient-and-doctor", response_model=list[AppointmentView])
def get_appointments_by_patient_and_doctor(
    patientId: int = Query(...),
    doctorId: int = Query(...),
    engine: SlotBookingEngine = Depends(get_booking_engine),
):
    appointments = engine.get_for_patient_and_doctor(patientId, doctorId)
    return [AppointmentView.from_appointment(a) for a in appointments]


@appointments_router.get("/available-slots", response_model=list[AppointmentView])
def get_available_slots(
    doctorId: int = Query(...),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    engine: SlotBookingEngine = Depends(get_booking_engine),
):
    """Open slots of a doctor, optionally limited to a start-time range"""
    slots = engine.get_available_slots(doctorId, start, end)
    return [AppointmentView.from_appointment(a) for a in slots]


@appointments_router.get("/{appointment_id}", response_model=AppointmentView)
def get_appointment(
    appointment_id: int,
    engine: SlotBookingEngine = Depends(get_booking_engine),
):
    return AppointmentView.from_appointment(engine.get_appointment(appointment_id))


@appointments_router.put("/{appointment_id}/book", response_model=AppointmentView)
def book_appointment_by_id(
    appointment_id: int,
    data: BookRequest,
    background_tasks: BackgroundTasks,
    engine: SlotBookingEngine = Depends(get_booking_engine),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Book an open slot for a patient"""
    appointment = engine.book_appointment(appointment_id, data.patientId, data.notes)
    flush_after_response(background_tasks, dispatcher)
    return AppointmentView.from_appointment(appointment)


@appointments_router.put("/{appointment_id}", response_model=AppointmentView)
def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    engine: SlotBookingEngine = Depends(get_booking_engine),
):
    return AppointmentView.from_appointment(engine.update_appointment(appointment_id, data))


@appointments_router.delete("/{appointment_id}", response_model=AppointmentView)
def cancel_appointment_by_id(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    engine: SlotBookingEngine = Depends(get_booking_engine),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Cancel an appointment and release its schedule"""
    appointment = engine.cancel_appointment(appointment_id)
    flush_after_response(background_tasks, dispatcher)
    return AppointmentView.from_appointment(appointment)


@appointments_router.delete("/{appointment_id}/permanent")
def delete_appointment(
    appointment_id: int,
    engine: SlotBookingEngine = Depends(get_booking_engine),
):
    """Permanently delete an open or cancelled slot"""
    return engine.delete_appointment(appointment_id)


# ============================================================================
# SCHEDULES
# ============================================================================


@schedules_router.post("", response_model=ScheduleResponse, status_code=201)
def create_schedule(
    data: ScheduleCreate,
    service: ScheduleService = Depends(get_schedule_service),
):
    return ScheduleResponse.from_schedule(service.create_schedule(data))


@schedules_router.get("/by-doctor", response_model=list[ScheduleResponse])
def get_schedules_by_doctor(
    doctorId: int = Query(...),
    status: Optional[str] = Query(None),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Schedules of a doctor with their appointment counts"""
    return service.get_schedules_for_doctor(doctorId, status)


@schedules_router.get("/{schedule_id}", response_model=ScheduleResponse)
def get_schedule(
    schedule_id: int,
    service: ScheduleService = Depends(get_schedule_service),
):
    return ScheduleResponse.from_schedule(service.get_schedule(schedule_id))


@schedules_router.patch("/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    service: ScheduleService = Depends(get_schedule_service),
):
    return ScheduleResponse.from_schedule(service.update_schedule(schedule_id, data))


@schedules_router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: int,
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.delete_schedule(schedule_id)


@schedules_router.get("/{schedule_id}/appointments", response_model=list[AppointmentView])
def get_schedule_appointments(
    schedule_id: int,
    service: ScheduleService = Depends(get_schedule_service),
):
    appointments = service.get_schedule_appointments(schedule_id)
    return [AppointmentView.from_appointment(a) for a in appointments]
