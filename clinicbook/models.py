from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .domain.scheduling.slot_state import BookedSlot, OpenSlot, SlotState

# Schedule statuses
SCHEDULE_AVAILABLE = "Available"
SCHEDULE_BOOKED = "Booked"
SCHEDULE_CANCELLED = "Cancelled"
SCHEDULE_STATUSES = (SCHEDULE_AVAILABLE, SCHEDULE_BOOKED, SCHEDULE_CANCELLED)

# Appointment statuses
APPOINTMENT_AVAILABLE = "Available"
APPOINTMENT_SCHEDULED = "Scheduled"
APPOINTMENT_CONFIRMED = "Confirmed"
APPOINTMENT_CANCELLED = "Cancelled"
APPOINTMENT_COMPLETED = "Completed"
APPOINTMENT_STATUSES = (
    APPOINTMENT_AVAILABLE,
    APPOINTMENT_SCHEDULED,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_CANCELLED,
    APPOINTMENT_COMPLETED,
)
TERMINAL_APPOINTMENT_STATUSES = (APPOINTMENT_CANCELLED, APPOINTMENT_COMPLETED)


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)  # Owning user account (managed elsewhere)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    schedules = relationship("Schedule", back_populates="doctor", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="doctor")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    appointments = relationship("Appointment", back_populates="patient")


class Schedule(Base):
    """A doctor-declared single-day availability window"""

    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), default=SCHEDULE_AVAILABLE, nullable=False)  # Available, Booked, Cancelled
    notes = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="schedules")
    appointments = relationship("Appointment", back_populates="schedule")


class Appointment(Base):
    """A concrete bookable interval nested inside a Schedule"""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)  # NULL = open slot
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(
        String(30), default=APPOINTMENT_AVAILABLE, nullable=False
    )  # Available, Scheduled, Confirmed, Cancelled, Completed
    fee = Column(Numeric(10, 2), nullable=True)
    notes = Column(String(255), nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)  # Set once the upcoming-visit reminder went out
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="appointments")
    patient = relationship("Patient", back_populates="appointments")
    schedule = relationship("Schedule", back_populates="appointments")

    @property
    def slot(self) -> SlotState:
        """Open or booked view of this appointment"""
        if self.patient_id is None:
            return OpenSlot()
        return BookedSlot(patient_id=self.patient_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPOINTMENT_STATUSES


class SystemNotification(Base):
    """In-app notification written by the worker when an event is delivered"""

    __tablename__ = "system_notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_user_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    appointment_id = Column(Integer, nullable=True, index=True)
    idempotency_key = Column(String(255), unique=True, nullable=False)
    message = Column(String(500), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    read_at = Column(DateTime, nullable=True)
