"""Donation claim fulfillment: free transfers from donors to charities."""

import uuid
from typing import Optional, Union

from libs.common.logging import get_logger
from services.fulfillment_service.errors import (
    AuthorizationViolation,
    PreconditionViolation,
    ValidationFailure,
)
from services.fulfillment_service.models import (
    ClaimStatus,
    DeliveryPersonnelType,
    DeliveryType,
    DonationClaim,
    ListingStatus,
    NotificationType,
    OwnerKind,
    OwnerRef,
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
from services.fulfillment_service.services.order_fulfillment import (
    parse_delivery_type,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CLAIM_POLICY = FulfillmentPolicy(
    label="donation claim",
    model=DonationClaim,
    owner_kind=OwnerKind.CLAIM,
    pending=ClaimStatus.PENDING,
    ready=ClaimStatus.APPROVED,
    completed=ClaimStatus.COMPLETED,
    cancelled=ClaimStatus.CANCELLED,
    requires_approval=True,
    listing_reserved=ListingStatus.CLAIMED,
    listing_final=ListingStatus.COMPLETED,
    personnel_type=DeliveryPersonnelType.ORG_VOLUNTEER,
    notification_type=NotificationType.CLAIM_UPDATE,
    counterparty_attr="charity_auth_id",
    provider_attr="donor_auth_id",
    counterparty_role="charity",
    provider_role="donor",
    tracks_payment=False,
)

claim_machine = FulfillmentMachine(CLAIM_POLICY)


async def _load_pending_for_donor(
    db: AsyncSession, claim_id: uuid.UUID, donor_auth_id: str, action: str
) -> DonationClaim:
    claim = await claim_machine.load(db, claim_id)
    if claim.donor_auth_id != donor_auth_id:
        raise AuthorizationViolation(f"Only the donor can {action} this claim")
    claim_machine.check_not_completed(claim)
    if claim.status != ClaimStatus.PENDING:
        raise PreconditionViolation(
            f"A {claim.status.value} claim cannot be {action}d",
            current_state=claim.status,
        )
    return claim


# ---------------------------------------------------------------------------
# Creation and donor decisions
# ---------------------------------------------------------------------------


async def create_claim(
    db: AsyncSession,
    *,
    listing_id: uuid.UUID,
    charity_auth_id: str,
    delivery_type: Union[DeliveryType, str],
    delivery_address: Optional[str] = None,
    notes: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> DonationClaim:
    """Claim a donation listing. The delivery is only arranged on approval."""
    listing = await listing_ledger.get_listing(db, listing_id)
    if not listing.is_donation:
        raise ValidationFailure("Only donation listings can be claimed")

    delivery_type = parse_delivery_type(delivery_type)
    if delivery_type == DeliveryType.HOME_DELIVERY and not (delivery_address or "").strip():
        raise ValidationFailure("Delivery address is required for home delivery")

    reservation = await claim_machine.reserve_listing(db, listing_id, charity_auth_id)

    claim_id = uuid.uuid4()
    code = await pickup_codes.issue(db, OwnerRef(kind=OwnerKind.CLAIM, id=claim_id))
    claim = DonationClaim(
        id=claim_id,
        listing=reservation.listing,
        listing_id=reservation.listing_id,
        charity_auth_id=charity_auth_id,
        donor_auth_id=reservation.owner_auth_id,
        status=ClaimStatus.PENDING,
        delivery_type=delivery_type,
        delivery_address=delivery_address,
        pickup_code=code,
        notes=notes,
    )
    db.add(claim)

    notifications = [
        claim_machine.notice(
            claim,
            claim.donor_auth_id,
            f'Your donation "{listing.title}" has been claimed. '
            f"Review {claim_machine.describe(claim)}.",
        ),
        claim_machine.notice(
            claim,
            charity_auth_id,
            f"{claim_machine.describe(claim, sentence_start=True)} created. "
            f"Pickup code: {code}",
        ),
    ]

    await claim_machine.commit(db, claim)
    logger.info(
        "Created donation claim %s on listing %s (charity=%s, delivery=%s)",
        claim.id,
        claim.listing_id,
        charity_auth_id,
        delivery_type.value,
    )

    await dispatch_after_commit(notifier, notifications)
    return claim


async def approve_claim(
    db: AsyncSession,
    *,
    claim_id: uuid.UUID,
    donor_auth_id: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> DonationClaim:
    """PENDING -> APPROVED; HOME_DELIVERY claims get a volunteer of the charity."""
    claim = await _load_pending_for_donor(db, claim_id, donor_auth_id, "approve")

    delivery = None
    if claim.delivery_type == DeliveryType.HOME_DELIVERY:
        volunteer = await claim_machine.find_courier(
            db, organization_auth_id=claim.charity_auth_id
        )
        # Flushes the delivery insert; the claim must still be clean here
        delivery = await claim_machine.schedule_delivery(db, claim, volunteer)

    claim.status = ClaimStatus.APPROVED
    notifications = [
        claim_machine.notice(
            claim,
            claim.charity_auth_id,
            f"Your {claim_machine.describe(claim)} has been approved by the donor.",
        )
    ]
    if delivery is not None:
        notifications.append(
            claim_machine.notice(
                claim,
                delivery.personnel_auth_id,
                f"You have been assigned to deliver {claim_machine.describe(claim)} "
                f"to {claim.delivery_address}. Pickup code: {claim.pickup_code}",
                NotificationType.DELIVERY_UPDATE,
            )
        )

    await claim_machine.commit(db, claim)
    logger.info("Donation claim %s approved by %s", claim.id, donor_auth_id)

    await dispatch_after_commit(notifier, notifications)
    return claim


async def reject_claim(
    db: AsyncSession,
    *,
    claim_id: uuid.UUID,
    donor_auth_id: str,
    reason: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> DonationClaim:
    """PENDING -> REJECTED and the donation goes back on offer."""
    claim = await _load_pending_for_donor(db, claim_id, donor_auth_id, "reject")

    claim.status = ClaimStatus.REJECTED
    claim.rejection_reason = reason
    await listing_ledger.release(db, claim.listing_id)

    message = f"Your {claim_machine.describe(claim)} was declined by the donor."
    if reason:
        message = f"{message} Reason: {reason}"
    notifications = [claim_machine.notice(claim, claim.charity_auth_id, message)]

    await claim_machine.commit(db, claim)
    logger.info("Donation claim %s rejected by %s", claim.id, donor_auth_id)

    await dispatch_after_commit(notifier, notifications)
    return claim


# ---------------------------------------------------------------------------
# Pickup, delivery and cancellation
# ---------------------------------------------------------------------------


async def authorize_claim_pickup(
    db: AsyncSession,
    *,
    claim_id: uuid.UUID,
    donor_auth_id: str,
    pickup_code: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> DonationClaim:
    return await claim_machine.authorize_pickup(
        db,
        transaction_id=claim_id,
        provider_auth_id=donor_auth_id,
        pickup_code=pickup_code,
        notifier=notifier,
    )


async def complete_claim_delivery(
    db: AsyncSession,
    *,
    claim_id: uuid.UUID,
    personnel_auth_id: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> DonationClaim:
    return await claim_machine.complete_delivery(
        db,
        transaction_id=claim_id,
        personnel_auth_id=personnel_auth_id,
        notifier=notifier,
    )


async def cancel_claim(
    db: AsyncSession,
    *,
    claim_id: uuid.UUID,
    actor_auth_id: str,
    reason: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> DonationClaim:
    return await claim_machine.cancel(
        db,
        transaction_id=claim_id,
        actor_auth_id=actor_auth_id,
        reason=reason,
        notifier=notifier,
    )


async def report_claim_delivery_failure(
    db: AsyncSession,
    *,
    claim_id: uuid.UUID,
    personnel_auth_id: str,
    reason: str,
    notifier: Optional[NotificationDispatcher] = None,
) -> DonationClaim:
    return await claim_machine.report_delivery_failure(
        db,
        transaction_id=claim_id,
        personnel_auth_id=personnel_auth_id,
        reason=reason,
        notifier=notifier,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_claim_for_actor(
    db: AsyncSession, *, claim_id: uuid.UUID, actor_auth_id: str
) -> DonationClaim:
    return await claim_machine.get_for_actor(
        db, transaction_id=claim_id, actor_auth_id=actor_auth_id
    )


async def list_claims_for_charity(
    db: AsyncSession,
    *,
    charity_auth_id: str,
    status: Optional[ClaimStatus] = None,
    offset: int = 0,
    limit: int = 50,
) -> list[DonationClaim]:
    query = select(DonationClaim).where(DonationClaim.charity_auth_id == charity_auth_id)
    if status is not None:
        query = query.where(DonationClaim.status == status)
    query = query.order_by(DonationClaim.created_at.desc()).offset(offset).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def list_offers_for_donor(
    db: AsyncSession,
    *,
    donor_auth_id: str,
    status: Optional[ClaimStatus] = None,
    offset: int = 0,
    limit: int = 50,
) -> list[DonationClaim]:
    query = select(DonationClaim).where(DonationClaim.donor_auth_id == donor_auth_id)
    if status is not None:
        query = query.where(DonationClaim.status == status)
    query = query.order_by(DonationClaim.created_at.desc()).offset(offset).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def _count_by_status(db: AsyncSession, column, auth_id: str) -> dict[str, int]:
    counts = {status.value: 0 for status in ClaimStatus}
    result = await db.execute(
        select(DonationClaim.status, func.count())
        .where(column == auth_id)
        .group_by(DonationClaim.status)
    )
    for status, count in result.all():
        counts[status.value] = count
    return counts


async def claim_stats_for_user(db: AsyncSession, *, auth_id: str) -> dict:
    """Per-status counts of the user's claims (as charity) and offers (as donor)."""
    claims = await _count_by_status(db, DonationClaim.charity_auth_id, auth_id)
    offers = await _count_by_status(db, DonationClaim.donor_auth_id, auth_id)
    return {
        "claims": claims,
        "offers": offers,
        "total_claims": sum(claims.values()),
        "total_offers": sum(offers.values()),
    }
