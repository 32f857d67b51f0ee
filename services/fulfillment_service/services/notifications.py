"""Best-effort notification delivery.

Machines collect ``PendingNotification`` records while they work and hand
them to a ``NotificationDispatcher`` only after the state transition has
committed. A sink failure is logged and never reaches the caller.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.service_client import post_notification
from libs.db.session import get_session_factory
from services.fulfillment_service.models import Notification, NotificationType
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

SERVICE_NAME = "fulfillment_service"


@dataclass(frozen=True)
class PendingNotification:
    notification_type: NotificationType
    message: str
    reference_id: Optional[str]
    recipient_auth_id: str


class NotificationSink:
    """Destination for notification records."""

    async def emit(
        self,
        notification_type: NotificationType,
        message: str,
        reference_id: Optional[str],
        recipient_auth_id: str,
    ) -> None:
        raise NotImplementedError


class DatabaseNotificationSink(NotificationSink):
    """Persist notifications as rows, in a session separate from the caller's."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def emit(self, notification_type, message, reference_id, recipient_auth_id):
        async with self.session_factory() as session:
            session.add(
                Notification(
                    recipient_auth_id=recipient_auth_id,
                    notification_type=notification_type,
                    message=message,
                    reference_id=reference_id,
                )
            )
            await session.commit()


class ServiceNotificationSink(NotificationSink):
    """Forward notifications to the communications service."""

    def __init__(self, calling_service: str = SERVICE_NAME):
        self.calling_service = calling_service

    async def emit(self, notification_type, message, reference_id, recipient_auth_id):
        await post_notification(
            notification_type=notification_type.value,
            message=message,
            reference_id=reference_id,
            recipient_auth_id=recipient_auth_id,
            calling_service=self.calling_service,
        )


class NotificationDispatcher:
    def __init__(self, sink: NotificationSink):
        self.sink = sink

    async def dispatch(self, notifications: Iterable[PendingNotification]) -> int:
        """Emit each notification; returns how many the sink accepted."""
        sent = 0
        for notification in notifications:
            try:
                await self.sink.emit(
                    notification.notification_type,
                    notification.message,
                    notification.reference_id,
                    notification.recipient_auth_id,
                )
                sent += 1
            except Exception as e:
                logger.error(
                    "Failed to emit %s notification to %s: %s",
                    notification.notification_type.value,
                    notification.recipient_auth_id,
                    e,
                )
        return sent


def build_sink(sink_name: str) -> NotificationSink:
    if sink_name == "service":
        return ServiceNotificationSink()
    return DatabaseNotificationSink(get_session_factory())


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency returning the configured dispatcher."""
    return NotificationDispatcher(build_sink(get_settings().NOTIFICATION_SINK))


async def dispatch_after_commit(
    notifier: Optional[NotificationDispatcher],
    notifications: list[PendingNotification],
) -> None:
    if notifier is None or not notifications:
        return
    await notifier.dispatch(notifications)
