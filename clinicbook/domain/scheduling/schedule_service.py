"""Schedule service - Availability windows declared by doctors"""

import logging
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import ConflictError, InvalidStateError, NotFoundError
from ...models import SCHEDULE_AVAILABLE, Appointment, Schedule
from .locking import DoctorLockRegistry, doctor_locks
from .repository import AppointmentRepository, DoctorRepository, ScheduleRepository
from .schemas import ScheduleCreate, ScheduleResponse, ScheduleUpdate

logger = logging.getLogger(__name__)


class ScheduleService:
    """Service layer for doctor schedules"""

    def __init__(self, db: Session, locks: DoctorLockRegistry = doctor_locks):
        self.db = db
        self.locks = locks
        self.doctors = DoctorRepository()
        self.repo = ScheduleRepository()
        self.appointments = AppointmentRepository()

    @contextmanager
    def _doctor_transaction(self, doctor_id: int):
        # Same lock as the booking engine so slot checks never see a window mid-edit
        with self.locks.lock_for(doctor_id):
            try:
                doctor = self.doctors.lock_doctor(self.db, doctor_id)
                if not doctor:
                    raise NotFoundError(f"Doctor {doctor_id} not found")
                self.db.expire_all()
                yield doctor
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def _find_overlapping_schedule(self, schedule: Schedule, exclude_id: Optional[int] = None):
        same_day = self.repo.get_schedules_for_doctor_and_date(
            self.db, schedule.doctor_id, schedule.work_date
        )
        for other in same_day:
            if other.id == exclude_id:
                continue
            if schedule.start_time < other.end_time and schedule.end_time > other.start_time:
                return other
        return None

    def _active_appointments(self, schedule_id: int) -> list[Appointment]:
        return [
            a
            for a in self.appointments.get_appointments_for_schedule_ids(self.db, [schedule_id])
            if not a.is_terminal
        ]

    def get_schedule(self, schedule_id: int) -> Schedule:
        schedule = self.repo.get_schedule(self.db, schedule_id)
        if not schedule:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule

    def get_schedules_for_doctor(
        self, doctor_id: int, status: Optional[str] = None
    ) -> list[ScheduleResponse]:
        """Schedules of a doctor with the number of appointments in each"""
        schedules = self.repo.get_schedules_for_doctor(self.db, doctor_id, status)

        # One query for all counts instead of one per schedule
        counts = Counter(
            a.schedule_id
            for a in self.appointments.get_appointments_for_schedule_ids(
                self.db, [s.id for s in schedules]
            )
        )

        return [ScheduleResponse.from_schedule(s, counts.get(s.id, 0)) for s in schedules]

    def get_schedule_appointments(self, schedule_id: int) -> list[Appointment]:
        schedule = self.get_schedule(schedule_id)
        return sorted(
            self.appointments.get_appointments_for_schedule_ids(self.db, [schedule.id]),
            key=lambda a: a.start_time,
        )

    def create_schedule(self, data: ScheduleCreate) -> Schedule:
        """Declare a new availability window; windows of one doctor never overlap"""
        logger.info(f"📥 Creating schedule for doctor {data.doctorId} on {data.workDate}")

        if data.startTime >= data.endTime:
            raise InvalidStateError("end time must be after start time")

        with self._doctor_transaction(data.doctorId) as doctor:
            schedule = Schedule(
                doctor_id=doctor.id,
                work_date=data.workDate,
                start_time=data.startTime,
                end_time=data.endTime,
                status=data.status or SCHEDULE_AVAILABLE,
                notes=data.notes,
            )

            other = self._find_overlapping_schedule(schedule)
            if other:
                raise ConflictError(f"overlaps schedule #{other.id}")

            self.repo.save(self.db, schedule)

        logger.info(f"✅ Schedule {schedule.id} created for doctor {schedule.doctor_id}")
        return schedule

    def update_schedule(self, schedule_id: int, data: ScheduleUpdate) -> Schedule:
        """
        Update a schedule's window, status or notes.

        A changed window must still contain every appointment of the schedule,
        cancelled and completed ones included, and must not overlap the
        doctor's other schedules.
        """
        schedule = self.get_schedule(schedule_id)

        with self._doctor_transaction(schedule.doctor_id):
            schedule = self.get_schedule(schedule_id)

            work_date = data.workDate or schedule.work_date
            start_time = data.startTime or schedule.start_time
            end_time = data.endTime or schedule.end_time

            if start_time >= end_time:
                raise InvalidStateError("end time must be after start time")

            window_changed = (work_date, start_time, end_time) != (
                schedule.work_date,
                schedule.start_time,
                schedule.end_time,
            )

            if window_changed:
                window_start = datetime.combine(work_date, start_time)
                window_end = datetime.combine(work_date, end_time)
                for appointment in self.appointments.get_appointments_for_schedule_ids(
                    self.db, [schedule.id]
                ):
                    if appointment.start_time < window_start or appointment.end_time > window_end:
                        raise InvalidStateError(
                            f"window no longer contains appointment #{appointment.id}"
                        )

                schedule.work_date = work_date
                schedule.start_time = start_time
                schedule.end_time = end_time

                other = self._find_overlapping_schedule(schedule, exclude_id=schedule.id)
                if other:
                    raise ConflictError(f"overlaps schedule #{other.id}")

            if data.status is not None:
                schedule.status = data.status
            if data.notes is not None:
                schedule.notes = data.notes

            self.repo.save(self.db, schedule)

        logger.info(f"✅ Schedule {schedule_id} updated")
        return schedule

    def delete_schedule(self, schedule_id: int) -> dict:
        """Delete a schedule that no longer holds active appointments"""
        schedule = self.get_schedule(schedule_id)

        with self._doctor_transaction(schedule.doctor_id):
            schedule = self.get_schedule(schedule_id)

            active = self._active_appointments(schedule.id)
            if active:
                raise InvalidStateError(
                    f"schedule has {len(active)} active appointment(s)"
                )

            # Terminal appointments keep no claim on the window
            for appointment in self.appointments.get_appointments_for_schedule_ids(
                self.db, [schedule.id]
            ):
                self.appointments.delete(self.db, appointment)

            self.repo.delete(self.db, schedule)

        logger.info(f"🗑️ Schedule {schedule_id} deleted")
        return {"message": "Schedule deleted"}
