"""Donation claim endpoints for charities, donors and volunteers."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import get_current_user, require_roles
from libs.auth.models import AuthUser, UserRole
from libs.common.rate_limit import pickup_code_limit
from libs.db.session import get_async_db
from services.fulfillment_service.models import ClaimStatus, DonationClaim
from services.fulfillment_service.schemas import (
    ClaimResponse,
    ClaimStatsResponse,
    CreateClaimRequest,
    FailureReportRequest,
    PickupCodeRequest,
    ReasonRequest,
)
from services.fulfillment_service.services import donation_fulfillment
from services.fulfillment_service.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["claims"])


def _claim_view(claim: DonationClaim, viewer_auth_id: str) -> ClaimResponse:
    """Serialize a claim, hiding the pickup code from the donor."""
    response = ClaimResponse.model_validate(claim)
    if viewer_auth_id == claim.donor_auth_id:
        response.pickup_code = None
    return response


@router.post(
    "/listings/{listing_id}/claims",
    response_model=ClaimResponse,
    status_code=status.HTTP_201_CREATED,
)
async def claim_donation(
    listing_id: uuid.UUID,
    body: CreateClaimRequest,
    current_user: AuthUser = Depends(require_roles(UserRole.CHARITY_ORG)),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Claim a donation listing on behalf of the current charity."""
    claim = await donation_fulfillment.create_claim(
        db,
        listing_id=listing_id,
        charity_auth_id=current_user.user_id,
        delivery_type=body.delivery_type,
        delivery_address=body.delivery_address,
        notes=body.claim_notes,
        notifier=notifier,
    )
    return _claim_view(claim, current_user.user_id)


# ---------------------------------------------------------------------------
# Listing and stats
# ---------------------------------------------------------------------------


@router.get("/claims/me", response_model=list[ClaimResponse])
async def list_my_claims(
    claim_status: Optional[ClaimStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    claims = await donation_fulfillment.list_claims_for_charity(
        db,
        charity_auth_id=current_user.user_id,
        status=claim_status,
        offset=offset,
        limit=limit,
    )
    return [_claim_view(claim, current_user.user_id) for claim in claims]


@router.get("/claims/offers", response_model=list[ClaimResponse])
async def list_my_offers(
    claim_status: Optional[ClaimStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Claims made against the current donor's listings."""
    claims = await donation_fulfillment.list_offers_for_donor(
        db,
        donor_auth_id=current_user.user_id,
        status=claim_status,
        offset=offset,
        limit=limit,
    )
    return [_claim_view(claim, current_user.user_id) for claim in claims]


@router.get("/claims/stats", response_model=ClaimStatsResponse)
async def get_my_claim_stats(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await donation_fulfillment.claim_stats_for_user(
        db, auth_id=current_user.user_id
    )


@router.get("/claims/{claim_id}", response_model=ClaimResponse)
async def get_claim(
    claim_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    claim = await donation_fulfillment.get_claim_for_actor(
        db, claim_id=claim_id, actor_auth_id=current_user.user_id
    )
    return _claim_view(claim, current_user.user_id)


# ---------------------------------------------------------------------------
# Donor decisions
# ---------------------------------------------------------------------------


@router.post("/claims/{claim_id}/approve", response_model=ClaimResponse)
async def approve_claim(
    claim_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    claim = await donation_fulfillment.approve_claim(
        db,
        claim_id=claim_id,
        donor_auth_id=current_user.user_id,
        notifier=notifier,
    )
    return _claim_view(claim, current_user.user_id)


@router.post("/claims/{claim_id}/reject", response_model=ClaimResponse)
async def reject_claim(
    claim_id: uuid.UUID,
    body: ReasonRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    claim = await donation_fulfillment.reject_claim(
        db,
        claim_id=claim_id,
        donor_auth_id=current_user.user_id,
        reason=body.reason,
        notifier=notifier,
    )
    return _claim_view(claim, current_user.user_id)


# ---------------------------------------------------------------------------
# Pickup, delivery and cancellation
# ---------------------------------------------------------------------------


@router.post("/claims/{claim_id}/authorize-pickup")
@pickup_code_limit
async def authorize_claim_pickup(
    request: Request,
    claim_id: uuid.UUID,
    body: PickupCodeRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Donor enters the code presented by the charity or its volunteer."""
    await donation_fulfillment.authorize_claim_pickup(
        db,
        claim_id=claim_id,
        donor_auth_id=current_user.user_id,
        pickup_code=body.pickup_code,
        notifier=notifier,
    )
    return {}


@router.post("/claims/{claim_id}/complete-delivery")
async def complete_claim_delivery(
    claim_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    await donation_fulfillment.complete_claim_delivery(
        db,
        claim_id=claim_id,
        personnel_auth_id=current_user.user_id,
        notifier=notifier,
    )
    return {}


@router.post("/claims/{claim_id}/cancel", response_model=ClaimResponse)
async def cancel_claim(
    claim_id: uuid.UUID,
    body: ReasonRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    claim = await donation_fulfillment.cancel_claim(
        db,
        claim_id=claim_id,
        actor_auth_id=current_user.user_id,
        reason=body.reason,
        notifier=notifier,
    )
    return _claim_view(claim, current_user.user_id)


@router.post("/claims/{claim_id}/report-failure", response_model=ClaimResponse)
async def report_claim_delivery_failure(
    claim_id: uuid.UUID,
    body: FailureReportRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    claim = await donation_fulfillment.report_claim_delivery_failure(
        db,
        claim_id=claim_id,
        personnel_auth_id=current_user.user_id,
        reason=body.reason,
        notifier=notifier,
    )
    return _claim_view(claim, current_user.user_id)
