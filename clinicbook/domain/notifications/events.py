"""Notification events emitted by the booking engine"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ...shared.clock import clinic_now


class NotificationEvent(BaseModel):
    event_type: str
    recipient_user_id: int
    appointment_id: int
    occurred_at: datetime = Field(default_factory=clinic_now)

    @property
    def idempotency_key(self) -> str:
        """Same event for the same appointment and recipient always maps to one key"""
        return f"{self.event_type}:{self.appointment_id}:{self.recipient_user_id}"

    def message(self) -> str:
        return f"{self.event_type} for appointment #{self.appointment_id}"


class BookingCreated(NotificationEvent):
    event_type: Literal["BookingCreated"] = "BookingCreated"

    def message(self) -> str:
        return f"Your appointment #{self.appointment_id} has been booked"


class BookingCancelled(NotificationEvent):
    event_type: Literal["BookingCancelled"] = "BookingCancelled"

    def message(self) -> str:
        return f"Your appointment #{self.appointment_id} has been cancelled"


class NewAppointmentForDoctor(NotificationEvent):
    event_type: Literal["NewAppointmentForDoctor"] = "NewAppointmentForDoctor"

    def message(self) -> str:
        return f"A patient booked appointment #{self.appointment_id}"


class AppointmentReminder(NotificationEvent):
    event_type: Literal["AppointmentReminder"] = "AppointmentReminder"
    start_time: Optional[datetime] = None

    def message(self) -> str:
        when = self.start_time.strftime("%Y-%m-%d %H:%M") if self.start_time else "soon"
        return f"Reminder: appointment #{self.appointment_id} starts at {when}"


EVENT_TYPES = {
    cls.model_fields["event_type"].default: cls
    for cls in (BookingCreated, BookingCancelled, NewAppointmentForDoctor, AppointmentReminder)
}


def event_from_payload(payload: dict) -> NotificationEvent:
    """Rebuild a typed event from its JSON payload (as stored in the job queue)"""
    event_cls = EVENT_TYPES.get(payload.get("event_type"))
    if event_cls is None:
        raise ValueError(f"Unknown notification event type: {payload.get('event_type')}")
    return event_cls.model_validate(payload)
