"""Upcoming appointment reminders"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import REMINDER_LEAD_MINUTES
from ...shared.clock import clinic_now
from ..scheduling.repository import AppointmentRepository
from .dispatcher import NotificationDispatcher
from .events import AppointmentReminder

logger = logging.getLogger(__name__)


def send_upcoming_reminders(
    db: Session,
    dispatcher: NotificationDispatcher,
    now: Optional[datetime] = None,
    lead_minutes: int = REMINDER_LEAD_MINUTES,
) -> int:
    """
    Emit one AppointmentReminder per booked appointment starting soon.

    ``reminder_sent_at`` is stamped and committed before the events are
    dispatched, so each appointment is reminded at most once even across
    worker restarts.

    Args:
        db: Database session
        dispatcher: where reminder events go
        now: reference time on the clinic clock (defaults to now)
        lead_minutes: how far ahead to look

    Returns:
        Number of reminders emitted
    """
    now = now or clinic_now()
    until = now + timedelta(minutes=lead_minutes)

    due = AppointmentRepository.get_due_for_reminder(db, now, until)
    if not due:
        return 0

    events = []
    for appointment in due:
        appointment.reminder_sent_at = now
        events.append(
            AppointmentReminder(
                recipient_user_id=appointment.patient.user_id,
                appointment_id=appointment.id,
                start_time=appointment.start_time,
            )
        )

    db.commit()
    logger.info(f"⏰ {len(events)} appointment reminder(s) due before {until}")

    sent = 0
    for event in events:
        try:
            dispatcher.dispatch(event)
            sent += 1
        except Exception as e:
            logger.warning(f"⚠️ Failed to emit reminder for appointment {event.appointment_id}: {e}")

    return sent
