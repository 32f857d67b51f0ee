"""Order fulfillment: paid transactions against sale listings."""

import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from libs.common.datetime_utils import ensure_utc, utc_now
from libs.common.logging import get_logger
from services.fulfillment_service.errors import (
    AuthorizationViolation,
    InvalidDeliveryType,
    InvalidPrice,
    PreconditionViolation,
    ValidationFailure,
)
from services.fulfillment_service.models import (
    DeliveryPersonnelType,
    DeliveryType,
    Listing,
    ListingStatus,
    NotificationType,
    Order,
    OrderStatus,
    OwnerKind,
    OwnerRef,
    PaymentStatus,
)
from services.fulfillment_service.services import listing_ledger, pickup_codes
from services.fulfillment_service.services.fulfillment import (
    FulfillmentMachine,
    FulfillmentPolicy,
)
from services.fulfillment_service.services.notifications import (
    NotificationDispatcher,
    dispatch_after_commit,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Pricing constants
# ---------------------------------------------------------------------------
FRESHNESS_DISCOUNT_PER_HOUR = Decimal("0.05")
MAX_FRESHNESS_DISCOUNT = Decimal("0.50")
HOME_DELIVERY_FEE = Decimal("50.00")
CENTS = Decimal("0.01")

ORDER_POLICY = FulfillmentPolicy(
    label="order",
    model=Order,
    owner_kind=OwnerKind.ORDER,
    pending=OrderStatus.PENDING,
    ready=OrderStatus.CONFIRMED,
    completed=OrderStatus.COMPLETED,
    cancelled=OrderStatus.CANCELLED,
    requires_approval=False,
    listing_reserved=ListingStatus.PENDING,
    listing_final=ListingStatus.SOLD,
    personnel_type=DeliveryPersonnelType.INDEPENDENT,
    notification_type=NotificationType.ORDER_UPDATE,
    counterparty_attr="buyer_auth_id",
    provider_attr="seller_auth_id",
    counterparty_role="buyer",
    provider_role="seller",
    tracks_payment=True,
)

order_machine = FulfillmentMachine(ORDER_POLICY)


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


def freshness_discount(created_at: datetime, now: Optional[datetime] = None) -> Decimal:
    """5% off per hour since the listing went up, capped at 50%."""
    now = now or utc_now()
    elapsed_seconds = max((now - ensure_utc(created_at)).total_seconds(), 0)
    hours = Decimal(str(elapsed_seconds)) / Decimal(3600)
    return min(hours * FRESHNESS_DISCOUNT_PER_HOUR, MAX_FRESHNESS_DISCOUNT)


def quote_price(
    listing: Listing,
    proposed_price: Union[Decimal, str, int, None] = None,
    *,
    now: Optional[datetime] = None,
) -> Decimal:
    """Price the buyer pays for the goods, excluding delivery."""
    if listing.is_donation or listing.price is None or listing.price <= 0:
        raise InvalidPrice("Listing is not for sale")

    if proposed_price is not None:
        proposed = Decimal(str(proposed_price))
        if proposed <= 0 or proposed > listing.price:
            raise InvalidPrice(
                f"Proposed price must be above 0 and at most {listing.price}"
            )
        return proposed.quantize(CENTS, rounding=ROUND_HALF_UP)

    discount = freshness_discount(listing.created_at, now)
    return (listing.price * (1 - discount)).quantize(CENTS, rounding=ROUND_HALF_UP)


def delivery_fee_for(delivery_type: DeliveryType) -> Decimal:
    if delivery_type == DeliveryType.HOME_DELIVERY:
        return HOME_DELIVERY_FEE
    return Decimal("0.00")


def parse_delivery_type(value: Union[DeliveryType, str]) -> DeliveryType:
    try:
        return DeliveryType(value)
    except ValueError:
        raise InvalidDeliveryType(f"Unsupported delivery type: {value}")


# ---------------------------------------------------------------------------
# Creation and confirmation
# ---------------------------------------------------------------------------


async def create_order(
    db: AsyncSession,
    *,
    listing_id: uuid.UUID,
    buyer_auth_id: str,
    delivery_type: Union[DeliveryType, str],
    delivery_address: Optional[str] = None,
    proposed_price: Union[Decimal, str, int, None] = None,
    notes: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Order:
    """Place an order, reserving the listing and issuing its pickup code.

    HOME_DELIVERY orders get a courier and a SCHEDULED delivery in the same
    transaction.
    """
    listing = await listing_ledger.get_listing(db, listing_id)
    delivery_type = parse_delivery_type(delivery_type)
    final_price = quote_price(listing, proposed_price)

    courier = None
    if delivery_type == DeliveryType.HOME_DELIVERY:
        if not (delivery_address or "").strip():
            raise ValidationFailure("Delivery address is required for home delivery")
        courier = await order_machine.find_courier(db)

    reservation = await order_machine.reserve_listing(db, listing_id, buyer_auth_id)

    order_id = uuid.uuid4()
    code = await pickup_codes.issue(db, OwnerRef(kind=OwnerKind.ORDER, id=order_id))
    order = Order(
        id=order_id,
        listing=reservation.listing,
        listing_id=reservation.listing_id,
        buyer_auth_id=buyer_auth_id,
        seller_auth_id=reservation.owner_auth_id,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        delivery_type=delivery_type,
        delivery_address=delivery_address,
        final_price=final_price,
        delivery_fee=delivery_fee_for(delivery_type),
        pickup_code=code,
        notes=notes,
    )
    db.add(order)

    delivery = None
    if courier is not None:
        delivery = await order_machine.schedule_delivery(db, order, courier)

    described = order_machine.describe(order, sentence_start=True)
    notifications = [
        order_machine.notice(
            order,
            order.seller_auth_id,
            f"New {order_machine.describe(order)}. Total: {order.total}. "
            f"Delivery: {delivery_type.value}.",
        ),
        order_machine.notice(
            order,
            buyer_auth_id,
            f"{described} placed. Pickup code: {code}",
        ),
    ]
    if delivery is not None:
        notifications.append(
            order_machine.notice(
                order,
                delivery.personnel_auth_id,
                f"You have been assigned to deliver {order_machine.describe(order)} "
                f"to {delivery_address}. Pickup code: {code}",
                NotificationType.DELIVERY_UPDATE,
            )
        )

    await order_machine.commit(db, order)
    logger.info(
        "Created order %s on listing %s (buyer=%s, total=%s, delivery=%s)",
        order.id,
        order.listing_id,
        buyer_auth_id,
        order.total,
        delivery_type.value,
    )

    await dispatch_after_commit(notifier, notifications)
    return order


async def confirm_order(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    seller_auth_id: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> Order:
    """Explicit PENDING -> CONFIRMED by the seller."""
    order = await order_machine.load(db, order_id)
    if order.seller_auth_id != seller_auth_id:
        raise AuthorizationViolation("Only the seller can confirm this order")
    order_machine.check_not_completed(order)
    if order.status != OrderStatus.PENDING:
        raise PreconditionViolation(
            f"A {order.status.value} order cannot be confirmed",
            current_state=order.status,
        )

    order.status = OrderStatus.CONFIRMED
    notifications = [
        order_machine.notice(
            order,
            order.buyer_auth_id,
            f"Your {order_machine.describe(order)} has been confirmed by the seller.",
        )
    ]

    await order_machine.commit(db, order)
    logger.info("Order %s confirmed by %s", order.id, seller_auth_id)

    await dispatch_after_commit(notifier, notifications)
    return order


# ---------------------------------------------------------------------------
# Pickup, delivery and cancellation
# ---------------------------------------------------------------------------


async def authorize_order_pickup(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    seller_auth_id: str,
    pickup_code: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> Order:
    return await order_machine.authorize_pickup(
        db,
        transaction_id=order_id,
        provider_auth_id=seller_auth_id,
        pickup_code=pickup_code,
        notifier=notifier,
    )


async def complete_order_delivery(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    personnel_auth_id: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> Order:
    return await order_machine.complete_delivery(
        db,
        transaction_id=order_id,
        personnel_auth_id=personnel_auth_id,
        notifier=notifier,
    )


async def cancel_order(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    actor_auth_id: str,
    reason: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Order:
    return await order_machine.cancel(
        db,
        transaction_id=order_id,
        actor_auth_id=actor_auth_id,
        reason=reason,
        notifier=notifier,
    )


async def report_order_delivery_failure(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    personnel_auth_id: str,
    reason: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> Order:
    return await order_machine.report_delivery_failure(
        db,
        transaction_id=order_id,
        personnel_auth_id=personnel_auth_id,
        reason=reason,
        notifier=notifier,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_order_for_actor(
    db: AsyncSession, *, order_id: uuid.UUID, actor_auth_id: str
) -> Order:
    return await order_machine.get_for_actor(
        db, transaction_id=order_id, actor_auth_id=actor_auth_id
    )


async def list_orders_for_buyer(
    db: AsyncSession,
    *,
    buyer_auth_id: str,
    status: Optional[OrderStatus] = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Order]:
    query = select(Order).where(Order.buyer_auth_id == buyer_auth_id)
    if status is not None:
        query = query.where(Order.status == status)
    query = query.order_by(Order.created_at.desc()).offset(offset).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def list_sales_for_seller(
    db: AsyncSession,
    *,
    seller_auth_id: str,
    status: Optional[OrderStatus] = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Order]:
    query = select(Order).where(Order.seller_auth_id == seller_auth_id)
    if status is not None:
        query = query.where(Order.status == status)
    query = query.order_by(Order.created_at.desc()).offset(offset).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
