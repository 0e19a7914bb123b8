"""Scheduling repository - Database operations for doctors, schedules and appointments

Repositories only add/flush; the calling service owns the transaction and
commits once per operation so related writes land together.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import (
    APPOINTMENT_AVAILABLE,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_SCHEDULED,
    Appointment,
    Doctor,
    Patient,
    Schedule,
)


class DoctorRepository:
    """Doctor lookups"""

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def lock_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        """
        Load the doctor row with SELECT ... FOR UPDATE.

        Holding this row lock serializes every read-check-write sequence for
        the doctor until the transaction ends. Backends without row locks
        (SQLite) ignore the clause.
        """
        return db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()


class PatientRepository:
    """Patient lookups"""

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()


class ScheduleRepository:
    """Repository for availability windows"""

    @staticmethod
    def get_schedule(db: Session, schedule_id: int) -> Optional[Schedule]:
        return db.query(Schedule).filter(Schedule.id == schedule_id).first()

    @staticmethod
    def get_schedules_for_doctor_and_date(
        db: Session, doctor_id: int, work_date: date
    ) -> list[Schedule]:
        return (
            db.query(Schedule)
            .filter(Schedule.doctor_id == doctor_id, Schedule.work_date == work_date)
            .order_by(Schedule.start_time.asc())
            .all()
        )

    @staticmethod
    def get_schedules_for_doctor(
        db: Session, doctor_id: int, status: Optional[str] = None
    ) -> list[Schedule]:
        """Get all schedules for a doctor, optionally filtered by status"""
        query = db.query(Schedule).filter(Schedule.doctor_id == doctor_id)

        if status:
            query = query.filter(Schedule.status == status)

        return query.order_by(Schedule.work_date.asc(), Schedule.start_time.asc()).all()

    @staticmethod
    def save(db: Session, schedule: Schedule) -> Schedule:
        db.add(schedule)
        db.flush()
        return schedule

    @staticmethod
    def delete(db: Session, schedule: Schedule) -> None:
        db.delete(schedule)
        db.flush()


class AppointmentRepository:
    """Repository for bookable slots"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_doctor_id_for_appointment(db: Session, appointment_id: int) -> Optional[int]:
        """Resolve the owning doctor without loading the appointment"""
        return db.query(Appointment.doctor_id).filter(Appointment.id == appointment_id).scalar()

    @staticmethod
    def get_appointments_for_doctor(db: Session, doctor_id: int) -> list[Appointment]:
        """Every persisted appointment of the doctor, whatever its status"""
        return (
            db.query(Appointment)
            .filter(Appointment.doctor_id == doctor_id)
            .order_by(Appointment.start_time.asc())
            .all()
        )

    @staticmethod
    def get_appointments_for_patient(db: Session, patient_id: int) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.start_time.asc())
            .all()
        )

    @staticmethod
    def get_appointments_for_patient_and_doctor(
        db: Session, patient_id: int, doctor_id: int
    ) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.patient_id == patient_id, Appointment.doctor_id == doctor_id)
            .order_by(Appointment.start_time.asc())
            .all()
        )

    @staticmethod
    def get_appointments_for_schedule_ids(
        db: Session, schedule_ids: list[int]
    ) -> list[Appointment]:
        """Batch lookup used for per-schedule counts"""
        if not schedule_ids:
            return []
        return db.query(Appointment).filter(Appointment.schedule_id.in_(schedule_ids)).all()

    @staticmethod
    def get_open_slots_for_doctor(
        db: Session,
        doctor_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Appointment]:
        """Open (unbooked, Available) slots, optionally limited to a start-time range"""
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.patient_id.is_(None),
            Appointment.status == APPOINTMENT_AVAILABLE,
        )

        if start:
            query = query.filter(Appointment.start_time >= start)

        if end:
            query = query.filter(Appointment.start_time <= end)

        return query.order_by(Appointment.start_time.asc()).all()

    @staticmethod
    def get_due_for_reminder(db: Session, now: datetime, until: datetime) -> list[Appointment]:
        """Booked appointments starting in (now, until) that have not been reminded yet"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.patient_id.isnot(None),
                Appointment.status.in_([APPOINTMENT_SCHEDULED, APPOINTMENT_CONFIRMED]),
                Appointment.start_time > now,
                Appointment.start_time < until,
                Appointment.reminder_sent_at.is_(None),
            )
            .order_by(Appointment.start_time.asc())
            .all()
        )

    @staticmethod
    def save(db: Session, appointment: Appointment) -> Appointment:
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def save_all(db: Session, appointments: list[Appointment]) -> list[Appointment]:
        """Write a batch of new appointments in one flush"""
        db.add_all(appointments)
        db.flush()
        return appointments

    @staticmethod
    def delete(db: Session, appointment: Appointment) -> None:
        db.delete(appointment)
        db.flush()
