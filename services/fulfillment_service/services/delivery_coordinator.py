"""Delivery coordinator: scheduling, guarded advancement and courier assignment."""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.fulfillment_service.errors import (
    InvalidDeliveryState,
    NotFound,
    ResourceConflict,
    StaleDeliveryState,
)
from services.fulfillment_service.models import (
    Delivery,
    DeliveryPersonnelRef,
    DeliveryPersonnelType,
    DeliveryStatus,
    OwnerRef,
)
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)

LEGAL_ADVANCES = frozenset(
    {
        (DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT),
        (DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED),
    }
)
FAILABLE_STATUSES = frozenset({DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT})


async def _flush_delivery(db: AsyncSession, delivery: Delivery) -> None:
    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        logger.info("Lost update race on delivery %s", delivery.id)
        raise StaleDeliveryState()


async def get_delivery(db: AsyncSession, delivery_id: uuid.UUID) -> Delivery:
    delivery = await db.get(Delivery, delivery_id)
    if delivery is None:
        raise NotFound("Delivery not found")
    return delivery


async def get_for_owner(db: AsyncSession, owner: OwnerRef) -> Optional[Delivery]:
    result = await db.execute(
        select(Delivery).where(
            Delivery.owner_kind == owner.kind,
            Delivery.owner_id == owner.id,
        )
    )
    return result.scalar_one_or_none()


async def list_for_personnel(
    db: AsyncSession,
    personnel_auth_id: str,
    *,
    status: Optional[DeliveryStatus] = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Delivery]:
    query = select(Delivery).where(Delivery.personnel_auth_id == personnel_auth_id)
    if status is not None:
        query = query.where(Delivery.status == status)
    query = query.order_by(Delivery.created_at.desc()).offset(offset).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def assign_candidate(
    db: AsyncSession,
    personnel_type: DeliveryPersonnelType,
    organization_auth_id: Optional[str] = None,
) -> Optional[DeliveryPersonnelRef]:
    """Pick one verified, available candidate, highest rating first.

    Volunteers are restricted to the given organisation. Returns None when
    nobody qualifies.
    """
    query = select(DeliveryPersonnelRef).where(
        DeliveryPersonnelRef.personnel_type == personnel_type,
        DeliveryPersonnelRef.is_verified.is_(True),
        DeliveryPersonnelRef.is_available.is_(True),
    )
    if organization_auth_id is not None:
        query = query.where(
            DeliveryPersonnelRef.organization_auth_id == organization_auth_id
        )
    query = query.order_by(
        DeliveryPersonnelRef.rating.desc(), DeliveryPersonnelRef.auth_id
    ).limit(1)

    result = await db.execute(query)
    return result.scalar_one_or_none()


async def schedule(
    db: AsyncSession,
    owner: OwnerRef,
    personnel_type: DeliveryPersonnelType,
    personnel_auth_id: str,
) -> Delivery:
    """Create the SCHEDULED delivery for ``owner``. One delivery per owner."""
    if await get_for_owner(db, owner) is not None:
        raise ResourceConflict(f"A delivery already exists for {owner}")

    delivery = Delivery.for_owner(
        owner,
        personnel_type=personnel_type,
        personnel_auth_id=personnel_auth_id,
    )
    db.add(delivery)
    try:
        await db.flush()
    except (StaleDataError, IntegrityError):
        # another session scheduled this owner, or changed it underneath us
        await db.rollback()
        logger.info("Lost scheduling race for %s", owner)
        raise ResourceConflict()

    logger.info(
        "Scheduled delivery %s for %s (personnel=%s)",
        delivery.id,
        owner,
        personnel_auth_id,
    )
    return delivery


async def advance(
    db: AsyncSession,
    delivery_id: uuid.UUID,
    expected: DeliveryStatus,
    next_status: DeliveryStatus,
) -> Delivery:
    """Compare-and-set a delivery from ``expected`` to ``next_status``.

    Only SCHEDULED -> IN_TRANSIT and IN_TRANSIT -> DELIVERED are legal.
    """
    if (expected, next_status) not in LEGAL_ADVANCES:
        raise InvalidDeliveryState(
            f"Cannot move a delivery from {expected.value} to {next_status.value}",
            current_state=expected,
        )

    delivery = await get_delivery(db, delivery_id)
    if delivery.status != expected:
        raise StaleDeliveryState(current_state=delivery.status)

    delivery.status = next_status
    if next_status == DeliveryStatus.DELIVERED:
        delivery.delivered_at = utc_now()
    await _flush_delivery(db, delivery)

    logger.info(
        "Delivery %s advanced %s -> %s",
        delivery.id,
        expected.value,
        next_status.value,
    )
    return delivery


async def mark_failed(
    db: AsyncSession, delivery_id: uuid.UUID, reason: str
) -> Delivery:
    """Terminally fail a delivery. There is no automatic retry."""
    delivery = await get_delivery(db, delivery_id)
    if delivery.status not in FAILABLE_STATUSES:
        raise InvalidDeliveryState(current_state=delivery.status)

    previous = delivery.status
    delivery.status = DeliveryStatus.FAILED
    delivery.failure_reason = reason
    await _flush_delivery(db, delivery)

    logger.info(
        "Delivery %s failed from %s: %s", delivery.id, previous.value, reason
    )
    return delivery
