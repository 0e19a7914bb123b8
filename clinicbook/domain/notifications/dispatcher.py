"""
Notification dispatchers

The booking engine hands events to a dispatcher and never waits for
delivery. Events are buffered during the request and pushed to the ARQ
queue afterwards, so a slow or broken Redis never affects a booking.
"""

import logging
from typing import Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from ...config import NOTIFICATIONS_ENABLED
from .events import NotificationEvent

logger = logging.getLogger(__name__)

DELIVERY_TASK_NAME = "deliver_notification_task"


class NotificationDispatcher:
    """Fire-and-forget sink for notification events"""

    def dispatch(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Logs events and drops them (used when notifications are disabled)"""

    def dispatch(self, event: NotificationEvent) -> None:
        logger.info(
            f"🔕 Notification disabled, dropping {event.event_type} "
            f"for user {event.recipient_user_id} (appointment {event.appointment_id})"
        )


class RecordingNotificationDispatcher(NotificationDispatcher):
    """Keeps every event in memory; handy for local runs and tests"""

    def __init__(self):
        self.events: list[NotificationEvent] = []

    def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[NotificationEvent]:
        return [e for e in self.events if e.event_type == event_type]


class QueuedNotificationDispatcher(NotificationDispatcher):
    """
    Buffers events and enqueues them as ARQ jobs on ``flush``.

    Each job uses the event's idempotency key as its job id, so a retried
    flush cannot queue the same notification twice.
    """

    def __init__(self, redis_settings: Optional[RedisSettings] = None):
        self.redis_settings = redis_settings
        self._pending: list[NotificationEvent] = []

    @property
    def pending(self) -> list[NotificationEvent]:
        return list(self._pending)

    def dispatch(self, event: NotificationEvent) -> None:
        self._pending.append(event)

    async def flush(self, pool: Optional[ArqRedis] = None) -> int:
        """
        Enqueue all buffered events.

        Args:
            pool: existing ARQ pool (the worker passes its own); a new pool
                is created and closed when omitted

        Returns:
            Number of events queued
        """
        if not self._pending:
            return 0

        events, self._pending = self._pending, []
        owns_pool = pool is None

        if owns_pool:
            try:
                if self.redis_settings is None:
                    from ...worker import get_redis_settings

                    self.redis_settings = get_redis_settings()
                pool = await create_pool(self.redis_settings)
            except Exception as e:
                logger.warning(f"⚠️ Failed to connect to notification queue, {len(events)} event(s) dropped: {e}")
                return 0

        queued = 0
        try:
            for event in events:
                try:
                    await pool.enqueue_job(
                        DELIVERY_TASK_NAME,
                        event.model_dump(mode="json"),
                        _job_id=event.idempotency_key,
                    )
                    queued += 1
                    logger.info(f"📋 Queued {event.event_type} for user {event.recipient_user_id}")
                except Exception as e:
                    logger.warning(f"⚠️ Failed to queue {event.event_type} ({event.idempotency_key}): {e}")
        finally:
            if owns_pool:
                await pool.close()

        return queued


def get_notification_dispatcher() -> NotificationDispatcher:
    """Request-scoped dispatcher (FastAPI dependency)"""
    if not NOTIFICATIONS_ENABLED:
        return LoggingNotificationDispatcher()
    return QueuedNotificationDispatcher()
