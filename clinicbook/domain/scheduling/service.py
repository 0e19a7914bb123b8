"""Booking engine - Business logic for appointment slots

Every mutating operation runs under the doctor's lock and inside a single
database transaction. Notification events are collected while the
operation runs and handed to the dispatcher only after the commit.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...errors import (
    BookingValidationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SchedulingError,
)
from ...models import (
    APPOINTMENT_AVAILABLE,
    APPOINTMENT_CANCELLED,
    APPOINTMENT_COMPLETED,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_SCHEDULED,
    SCHEDULE_AVAILABLE,
    Appointment,
    Doctor,
    Patient,
    Schedule,
)
from ..notifications.dispatcher import LoggingNotificationDispatcher, NotificationDispatcher
from ..notifications.events import (
    BookingCancelled,
    BookingCreated,
    NewAppointmentForDoctor,
    NotificationEvent,
)
from .intervals import check_within_schedule, find_conflict, overlaps
from .locking import DoctorLockRegistry, doctor_locks
from .repository import (
    AppointmentRepository,
    DoctorRepository,
    PatientRepository,
    ScheduleRepository,
)
from .schemas import (
    AppointmentCreate,
    AppointmentUpdate,
    AppointmentView,
    BulkCreateFailure,
    BulkCreateItem,
    BulkCreateRequest,
    BulkCreateResult,
)
from .slot_state import BookedSlot, OpenSlot

logger = logging.getLogger(__name__)

# Status changes allowed through update_appointment; booking and
# cancellation have their own operations
STATUS_TRANSITIONS = {
    (APPOINTMENT_SCHEDULED, APPOINTMENT_CONFIRMED),
    (APPOINTMENT_SCHEDULED, APPOINTMENT_COMPLETED),
    (APPOINTMENT_CONFIRMED, APPOINTMENT_COMPLETED),
}


class SlotBookingEngine:
    """Service layer for creating, booking and cancelling appointment slots"""

    def __init__(
        self,
        db: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        locks: DoctorLockRegistry = doctor_locks,
    ):
        self.db = db
        self.dispatcher = dispatcher or LoggingNotificationDispatcher()
        self.locks = locks
        self.doctors = DoctorRepository()
        self.patients = PatientRepository()
        self.schedules = ScheduleRepository()
        self.repo = AppointmentRepository()

    # Transaction helpers
    @contextmanager
    def _doctor_transaction(self, doctor_id: int):
        """
        Serialize work for one doctor and run it in one transaction.

        Yields the locked doctor row. Commits when the block finishes,
        rolls back and re-raises on any exception.
        """
        with self.locks.lock_for(doctor_id):
            try:
                doctor = self.doctors.lock_doctor(self.db, doctor_id)
                if not doctor:
                    raise NotFoundError(f"Doctor {doctor_id} not found")

                # Anything read before the lock may be stale
                self.db.expire_all()

                yield doctor
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def _emit(self, events: list[NotificationEvent]) -> None:
        """Hand events to the dispatcher; failures never reach the caller"""
        for event in events:
            try:
                self.dispatcher.dispatch(event)
            except Exception as e:
                logger.warning(
                    f"⚠️ Failed to emit {event.event_type} for appointment "
                    f"{event.appointment_id}: {e}"
                )

    def _doctor_id_for(self, appointment_id: int) -> int:
        doctor_id = self.repo.get_doctor_id_for_appointment(self.db, appointment_id)
        if doctor_id is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return doctor_id

    def _require_patient(self, patient_id: int) -> Patient:
        patient = self.patients.get_patient(self.db, patient_id)
        if not patient:
            raise NotFoundError(f"Patient {patient_id} not found")
        return patient

    def _require_schedule(self, schedule_id: int) -> Schedule:
        schedule = self.schedules.get_schedule(self.db, schedule_id)
        if not schedule:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule

    @staticmethod
    def _schedule_rejection(
        schedule: Schedule, doctor_id: int, start: datetime, end: datetime
    ) -> Optional[str]:
        if schedule.doctor_id != doctor_id:
            return "schedule not owned by doctor"
        if schedule.status != SCHEDULE_AVAILABLE:
            return "schedule not available"
        return check_within_schedule(schedule, start, end)

    @staticmethod
    def _parse_bulk_item(raw) -> BulkCreateItem:
        """Validate one raw bulk item; a malformed item fails on its own"""
        if isinstance(raw, BulkCreateItem):
            return raw
        try:
            return BulkCreateItem.model_validate(raw)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "item"
            raise BookingValidationError(f"invalid {field}: {error['msg']}")

    @staticmethod
    def _booking_events(appointment: Appointment, patient: Patient, doctor: Doctor) -> list:
        return [
            BookingCreated(recipient_user_id=patient.user_id, appointment_id=appointment.id),
            NewAppointmentForDoctor(recipient_user_id=doctor.user_id, appointment_id=appointment.id),
        ]

    # Queries
    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def get_for_doctor(self, doctor_id: int) -> list[Appointment]:
        return self.repo.get_appointments_for_doctor(self.db, doctor_id)

    def get_for_patient(self, patient_id: int) -> list[Appointment]:
        return self.repo.get_appointments_for_patient(self.db, patient_id)

    def get_for_patient_and_doctor(self, patient_id: int, doctor_id: int) -> list[Appointment]:
        return self.repo.get_appointments_for_patient_and_doctor(self.db, patient_id, doctor_id)

    def get_available_slots(
        self,
        doctor_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Appointment]:
        """Open slots a patient can still book, ordered by start time"""
        if not self.doctors.get_doctor(self.db, doctor_id):
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return self.repo.get_open_slots_for_doctor(self.db, doctor_id, start, end)

    # Mutations
    def create(self, request: AppointmentCreate) -> Appointment:
        """
        Create a single appointment inside a schedule.

        Without a patient the result is an open slot (status Available);
        with one it is booked straight away (status Scheduled).

        Raises:
            NotFoundError: doctor, patient or schedule does not exist
            InvalidStateError: schedule is foreign, unavailable or too small
            ConflictError: the interval overlaps another appointment of the doctor
        """
        for field in ("doctorId", "scheduleId", "startTime", "endTime"):
            if getattr(request, field, None) is None:
                raise BookingValidationError(f"missing required field: {field}")

        logger.info(
            f"📥 Creating appointment for doctor {request.doctorId} "
            f"({request.startTime} - {request.endTime})"
        )

        with self._doctor_transaction(request.doctorId) as doctor:
            patient = None
            if request.patientId is not None:
                patient = self._require_patient(request.patientId)

            schedule = self._require_schedule(request.scheduleId)
            reason = self._schedule_rejection(
                schedule, doctor.id, request.startTime, request.endTime
            )
            if reason:
                raise InvalidStateError(reason)

            existing = self.repo.get_appointments_for_doctor(self.db, doctor.id)
            conflict = find_conflict(request.startTime, request.endTime, existing)
            if conflict:
                logger.warning(
                    f"⚠️ Doctor {doctor.id} slot {request.startTime} overlaps appointment {conflict.id}"
                )
                raise ConflictError(f"overlaps appointment #{conflict.id}")

            appointment = Appointment(
                doctor_id=doctor.id,
                schedule_id=schedule.id,
                patient_id=patient.id if patient else None,
                start_time=request.startTime,
                end_time=request.endTime,
                status=APPOINTMENT_SCHEDULED if patient else APPOINTMENT_AVAILABLE,
                notes=request.notes,
                fee=request.fee,
            )
            self.repo.save(self.db, appointment)

            events = self._booking_events(appointment, patient, doctor) if patient else []

        logger.info(f"✅ Appointment {appointment.id} created for doctor {doctor.id}")
        self._emit(events)
        return appointment

    def book_appointment(
        self, appointment_id: int, patient_id: int, notes: Optional[str] = None
    ) -> Appointment:
        """
        Bind a patient to an open slot.

        Raises:
            NotFoundError: appointment or patient does not exist
            ConflictError: the slot already has a patient
            InvalidStateError: the slot is not Available
        """
        if appointment_id is None:
            raise BookingValidationError("missing required field: appointmentId")

        doctor_id = self._doctor_id_for(appointment_id)

        with self._doctor_transaction(doctor_id) as doctor:
            appointment = self.get_appointment(appointment_id)

            if patient_id is None:
                raise BookingValidationError("missing required field: patientId")

            if isinstance(appointment.slot, BookedSlot):
                logger.warning(f"⚠️ Appointment {appointment_id} is already booked")
                raise ConflictError("already booked")
            if appointment.status != APPOINTMENT_AVAILABLE:
                raise InvalidStateError("not available")

            patient = self._require_patient(patient_id)

            appointment.patient_id = patient.id
            appointment.status = APPOINTMENT_SCHEDULED
            if notes is not None:
                appointment.notes = notes
            self.repo.save(self.db, appointment)

            events = self._booking_events(appointment, patient, doctor)

        logger.info(f"✅ Appointment {appointment_id} booked by patient {patient_id}")
        self._emit(events)
        return appointment

    def cancel_appointment(self, appointment_id: int) -> Appointment:
        """
        Cancel an appointment and release its schedule.

        The status change and the schedule release are committed together.

        Raises:
            NotFoundError: appointment does not exist
            InvalidStateError: appointment is already cancelled or completed
        """
        if appointment_id is None:
            raise BookingValidationError("missing required field: appointmentId")

        doctor_id = self._doctor_id_for(appointment_id)

        with self._doctor_transaction(doctor_id):
            appointment = self.get_appointment(appointment_id)

            if appointment.is_terminal:
                raise InvalidStateError(f"appointment already {appointment.status.lower()}")

            appointment.status = APPOINTMENT_CANCELLED
            self.repo.save(self.db, appointment)

            schedule = appointment.schedule
            if schedule is not None and schedule.status != SCHEDULE_AVAILABLE:
                schedule.status = SCHEDULE_AVAILABLE
                self.schedules.save(self.db, schedule)

            events = []
            slot = appointment.slot
            if isinstance(slot, BookedSlot):
                events.append(
                    BookingCancelled(
                        recipient_user_id=appointment.patient.user_id,
                        appointment_id=appointment.id,
                    )
                )

        logger.info(f"✅ Appointment {appointment_id} cancelled")
        self._emit(events)
        return appointment

    def bulk_create(self, request: BulkCreateRequest) -> BulkCreateResult:
        """
        Create many slots for one doctor with per-item failure reporting.

        Only an unknown doctor aborts the whole batch. Every other problem is
        recorded against its item and the remaining items are still created.
        Inside the batch the earliest input index wins an overlap.
        """
        items = request.items or []
        logger.info(f"📥 Bulk creating {len(items)} appointment(s) for doctor {request.doctorId}")

        failures: list[BulkCreateFailure] = []
        accepted: list[tuple[int, Appointment]] = []

        with self._doctor_transaction(request.doctorId) as doctor:
            existing = self.repo.get_appointments_for_doctor(self.db, doctor.id)
            schedules: dict[int, Optional[Schedule]] = {}
            patients: dict[int, Optional[Patient]] = {}

            for index, raw in enumerate(items):
                try:
                    appointment = self._bulk_candidate(
                        doctor, raw, existing, accepted, schedules, patients
                    )
                except SchedulingError as e:
                    logger.debug(f"Bulk item {index} rejected: {e.reason}")
                    failures.append(BulkCreateFailure(index=index, reason=e.reason))
                    continue
                accepted.append((index, appointment))

            created = [appointment for _, appointment in accepted]
            if created:
                self.repo.save_all(self.db, created)

            events = []
            for appointment in created:
                if isinstance(appointment.slot, BookedSlot):
                    patient = patients[appointment.patient_id]
                    events.extend(self._booking_events(appointment, patient, doctor))

            views = [AppointmentView.from_appointment(a) for a in created]

        result = BulkCreateResult(
            totalRequested=len(items),
            successCount=len(created),
            failedCount=len(failures),
            created=views,
            errors=[f"Item {f.index}: {f.reason}" for f in failures],
            failures=failures,
        )
        logger.info(
            f"✅ Bulk create for doctor {doctor.id}: "
            f"{result.successCount} created, {result.failedCount} failed"
        )
        self._emit(events)
        return result

    def _bulk_candidate(
        self,
        doctor: Doctor,
        raw,
        existing: list[Appointment],
        accepted: list[tuple[int, Appointment]],
        schedules: dict,
        patients: dict,
    ) -> Appointment:
        """Validate one bulk item and build its (unsaved) appointment"""
        item = self._parse_bulk_item(raw)

        for field in ("scheduleId", "startTime", "endTime"):
            if getattr(item, field) is None:
                raise BookingValidationError(f"missing required field: {field}")

        if item.doctorId is not None and item.doctorId != doctor.id:
            raise InvalidStateError(f"item belongs to doctor #{item.doctorId}, not #{doctor.id}")

        patient = None
        if item.patientId is not None:
            if item.patientId not in patients:
                patients[item.patientId] = self.patients.get_patient(self.db, item.patientId)
            patient = patients[item.patientId]
            if patient is None:
                raise NotFoundError(f"Patient {item.patientId} not found")

        if item.scheduleId not in schedules:
            schedules[item.scheduleId] = self.schedules.get_schedule(self.db, item.scheduleId)
        schedule = schedules[item.scheduleId]
        if schedule is None:
            raise NotFoundError(f"Schedule {item.scheduleId} not found")

        reason = self._schedule_rejection(schedule, doctor.id, item.startTime, item.endTime)
        if reason:
            raise InvalidStateError(reason)

        conflict = find_conflict(item.startTime, item.endTime, existing)
        if conflict:
            raise ConflictError(f"overlaps appointment #{conflict.id}")

        for earlier_index, earlier in accepted:
            if overlaps(item.startTime, item.endTime, earlier.start_time, earlier.end_time):
                raise ConflictError(f"overlaps batch item #{earlier_index}")

        return Appointment(
            doctor_id=doctor.id,
            schedule_id=schedule.id,
            patient_id=patient.id if patient else None,
            start_time=item.startTime,
            end_time=item.endTime,
            status=APPOINTMENT_SCHEDULED if patient else APPOINTMENT_AVAILABLE,
            notes=item.notes,
            fee=item.fee,
        )

    def update_appointment(self, appointment_id: int, data: AppointmentUpdate) -> Appointment:
        """
        Update times, notes, fee or a forward status of an appointment.

        New times are checked against the schedule window and the doctor's
        other appointments, exactly as on create.
        """
        doctor_id = self._doctor_id_for(appointment_id)

        with self._doctor_transaction(doctor_id):
            appointment = self.get_appointment(appointment_id)

            if appointment.is_terminal:
                raise InvalidStateError(f"appointment is {appointment.status.lower()}")

            if data.startTime is not None or data.endTime is not None:
                start = data.startTime or appointment.start_time
                end = data.endTime or appointment.end_time

                reason = check_within_schedule(appointment.schedule, start, end)
                if reason:
                    raise InvalidStateError(reason)

                existing = self.repo.get_appointments_for_doctor(self.db, appointment.doctor_id)
                conflict = find_conflict(start, end, existing, exclude_id=appointment.id)
                if conflict:
                    raise ConflictError(f"overlaps appointment #{conflict.id}")

                appointment.start_time = start
                appointment.end_time = end

            if data.status is not None and data.status != appointment.status:
                if (appointment.status, data.status) not in STATUS_TRANSITIONS:
                    raise InvalidStateError(
                        f"cannot change status from {appointment.status} to {data.status}"
                    )
                appointment.status = data.status

            if data.notes is not None:
                appointment.notes = data.notes
            if data.fee is not None:
                appointment.fee = data.fee

            self.repo.save(self.db, appointment)

        logger.info(f"✅ Appointment {appointment_id} updated")
        return appointment

    def delete_appointment(self, appointment_id: int) -> dict:
        """Permanently remove an open or cancelled slot"""
        doctor_id = self._doctor_id_for(appointment_id)

        with self._doctor_transaction(doctor_id):
            appointment = self.get_appointment(appointment_id)

            slot = appointment.slot
            if isinstance(slot, BookedSlot) and appointment.status != APPOINTMENT_CANCELLED:
                raise InvalidStateError("booked appointment must be cancelled before deletion")
            if isinstance(slot, OpenSlot) and appointment.status not in (
                APPOINTMENT_AVAILABLE,
                APPOINTMENT_CANCELLED,
            ):
                raise InvalidStateError(f"appointment is {appointment.status.lower()}")

            self.repo.delete(self.db, appointment)

        logger.info(f"🗑️ Appointment {appointment_id} deleted")
        return {"message": "Appointment deleted"}
