"""Listing ledger: the only writer of listing availability.

All writes are versioned compare-and-set updates flushed inside the caller's
transaction; the caller commits.
"""

import uuid
from dataclasses import dataclass

from libs.common.logging import get_logger
from services.fulfillment_service.errors import (
    ListingNotAvailable,
    NotFound,
    PreconditionViolation,
    ValidationFailure,
)
from services.fulfillment_service.models import (
    CLAIM_TERMINAL_STATUSES,
    ORDER_TERMINAL_STATUSES,
    DonationClaim,
    Listing,
    ListingStatus,
    Order,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)

RESERVED_STATUSES = frozenset({ListingStatus.PENDING, ListingStatus.CLAIMED})
FINAL_OUTCOMES = frozenset(
    {ListingStatus.SOLD, ListingStatus.COMPLETED, ListingStatus.CANCELLED}
)


@dataclass(frozen=True)
class Reservation:
    """Proof that a listing was moved out of ACTIVE for one transaction."""

    listing: Listing
    status: ListingStatus
    version: int

    @property
    def listing_id(self) -> uuid.UUID:
        return self.listing.id

    @property
    def owner_auth_id(self) -> str:
        return self.listing.owner_auth_id


async def get_listing(db: AsyncSession, listing_id: uuid.UUID) -> Listing:
    listing = await db.get(Listing, listing_id)
    if listing is None:
        raise NotFound("Listing not found")
    return listing


async def _has_open_transaction(db: AsyncSession, listing_id: uuid.UUID) -> bool:
    open_orders = await db.scalar(
        select(func.count())
        .select_from(Order)
        .where(
            Order.listing_id == listing_id,
            Order.status.not_in(ORDER_TERMINAL_STATUSES),
        )
    )
    if open_orders:
        return True

    open_claims = await db.scalar(
        select(func.count())
        .select_from(DonationClaim)
        .where(
            DonationClaim.listing_id == listing_id,
            DonationClaim.status.not_in(CLAIM_TERMINAL_STATUSES),
        )
    )
    return bool(open_claims)


async def reserve(
    db: AsyncSession,
    listing_id: uuid.UUID,
    actor_auth_id: str,
    *,
    for_donation: bool,
) -> Reservation:
    """Move an ACTIVE listing to PENDING (sale) or CLAIMED (donation).

    Raises ListingNotAvailable when the listing is not ACTIVE, already has an
    open transaction, or another session reserved it first.
    """
    listing = await get_listing(db, listing_id)

    if listing.owner_auth_id == actor_auth_id:
        raise ValidationFailure("You cannot order or claim your own listing")

    if listing.status != ListingStatus.ACTIVE:
        raise ListingNotAvailable(current_state=listing.status)

    if await _has_open_transaction(db, listing.id):
        raise ListingNotAvailable()

    reserved_status = ListingStatus.CLAIMED if for_donation else ListingStatus.PENDING
    listing.status = reserved_status

    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        logger.info("Lost reservation race for listing %s", listing_id)
        raise ListingNotAvailable()

    logger.info(
        "Reserved listing %s for %s (status=%s)",
        listing.id,
        actor_auth_id,
        reserved_status.value,
    )
    return Reservation(listing=listing, status=reserved_status, version=listing.version)


async def release(db: AsyncSession, listing_id: uuid.UUID) -> Listing:
    """Return a reserved listing to ACTIVE after its transaction was abandoned."""
    listing = await get_listing(db, listing_id)
    if listing.status not in RESERVED_STATUSES:
        raise PreconditionViolation(
            "Listing is not reserved", current_state=listing.status
        )

    listing.status = ListingStatus.ACTIVE
    logger.info("Released listing %s", listing.id)
    return listing


async def finalize(
    db: AsyncSession, listing_id: uuid.UUID, outcome: ListingStatus
) -> Listing:
    """Move a reserved listing to its terminal outcome."""
    if outcome not in FINAL_OUTCOMES:
        raise ValidationFailure(f"{outcome.value} is not a final listing outcome")

    listing = await get_listing(db, listing_id)
    if listing.status not in RESERVED_STATUSES:
        raise PreconditionViolation(
            "Listing is not reserved", current_state=listing.status
        )

    listing.status = outcome
    logger.info("Finalized listing %s as %s", listing.id, outcome.value)
    return listing
