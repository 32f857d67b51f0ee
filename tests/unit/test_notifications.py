"""Unit tests for notification sinks and the dispatcher."""

import logging

import pytest
from services.fulfillment_service.models import (
    DeliveryType,
    Notification,
    NotificationType,
    OrderStatus,
)
from services.fulfillment_service.services import notifications
from services.fulfillment_service.services import order_fulfillment as orders
from services.fulfillment_service.services.notifications import (
    DatabaseNotificationSink,
    NotificationDispatcher,
    PendingNotification,
    ServiceNotificationSink,
)
from sqlalchemy import select
from tests.factories import FailingSink, ListingFactory


def _pending(recipient="user-1", message="Hello") -> PendingNotification:
    return PendingNotification(
        notification_type=NotificationType.ORDER_UPDATE,
        message=message,
        reference_id="ref-1",
        recipient_auth_id=recipient,
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_dispatcher_logs_and_swallows_sink_failures(caplog):
    sink = FailingSink()
    dispatcher = NotificationDispatcher(sink)

    with caplog.at_level(logging.ERROR):
        sent = await dispatcher.dispatch([_pending("a"), _pending("b")])

    assert sent == 0
    assert sink.attempts == 2
    assert "Failed to emit order_update notification" in caplog.text


@pytest.mark.asyncio
@pytest.mark.unit
async def test_dispatcher_counts_delivered(notifier, notification_sink):
    sent = await notifier.dispatch([_pending("a"), _pending("b", "Second")])

    assert sent == 2
    assert [n["recipient_auth_id"] for n in notification_sink.sent] == ["a", "b"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_database_sink_persists_rows(session_factory):
    sink = DatabaseNotificationSink(session_factory)

    await sink.emit(NotificationType.CLAIM_UPDATE, "Claimed!", "claim-1", "donor-1")

    async with session_factory() as session:
        rows = (await session.execute(select(Notification))).scalars().all()
    assert len(rows) == 1
    assert rows[0].recipient_auth_id == "donor-1"
    assert rows[0].notification_type == NotificationType.CLAIM_UPDATE
    assert rows[0].is_read is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_service_sink_posts_to_communications(monkeypatch):
    calls = []

    async def fake_post_notification(**kwargs):
        calls.append(kwargs)

    monkeypatch.setattr(notifications, "post_notification", fake_post_notification)

    await ServiceNotificationSink().emit(
        NotificationType.DELIVERY_UPDATE, "On the way", "order-1", "buyer-1"
    )

    assert calls == [
        {
            "notification_type": "delivery_update",
            "message": "On the way",
            "reference_id": "order-1",
            "recipient_auth_id": "buyer-1",
            "calling_service": "fulfillment_service",
        }
    ]


@pytest.mark.unit
def test_build_sink_follows_setting():
    assert isinstance(notifications.build_sink("service"), ServiceNotificationSink)
    assert isinstance(notifications.build_sink("database"), DatabaseNotificationSink)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failing_sink_does_not_undo_transition(db_session):
    """The order is committed even when every notification fails."""
    listing = ListingFactory.create()
    db_session.add(listing)
    await db_session.commit()
    sink = FailingSink()

    order = await orders.create_order(
        db_session,
        listing_id=listing.id,
        buyer_auth_id="buyer-1",
        delivery_type=DeliveryType.SELF_PICKUP,
        notifier=NotificationDispatcher(sink),
    )

    assert sink.attempts == 2
    await db_session.refresh(order)
    assert order.status == OrderStatus.PENDING
