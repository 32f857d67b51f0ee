"""Order endpoints for buyers, sellers and couriers."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from libs.auth.dependencies import get_current_user, require_roles
from libs.auth.models import AuthUser, UserRole
from libs.common.rate_limit import pickup_code_limit
from libs.db.session import get_async_db
from services.fulfillment_service.models import Order, OrderStatus
from services.fulfillment_service.schemas import (
    CreateOrderRequest,
    FailureReportRequest,
    OrderResponse,
    PickupCodeRequest,
    ReasonRequest,
)
from services.fulfillment_service.services import order_fulfillment
from services.fulfillment_service.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["orders"])


def _order_view(order: Order, viewer_auth_id: str) -> OrderResponse:
    """Serialize an order, hiding the pickup code from the seller."""
    response = OrderResponse.model_validate(order)
    if viewer_auth_id == order.seller_auth_id:
        response.pickup_code = None
    return response


# ---------------------------------------------------------------------------
# Placing orders
# ---------------------------------------------------------------------------


@router.post(
    "/listings/{listing_id}/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def place_order(
    listing_id: uuid.UUID,
    body: CreateOrderRequest,
    current_user: AuthUser = Depends(require_roles(UserRole.BUYER)),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Order a sale listing. Returns the order with the buyer's pickup code."""
    order = await order_fulfillment.create_order(
        db,
        listing_id=listing_id,
        buyer_auth_id=current_user.user_id,
        delivery_type=body.delivery_type,
        delivery_address=body.delivery_address,
        proposed_price=body.proposed_price,
        notes=body.order_notes,
        notifier=notifier,
    )
    return _order_view(order, current_user.user_id)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.get("/orders/me", response_model=list[OrderResponse])
async def list_my_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Orders placed by the current user, newest first."""
    orders = await order_fulfillment.list_orders_for_buyer(
        db,
        buyer_auth_id=current_user.user_id,
        status=order_status,
        offset=offset,
        limit=limit,
    )
    return [_order_view(order, current_user.user_id) for order in orders]


@router.get("/orders/sales", response_model=list[OrderResponse])
async def list_my_sales(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Orders against the current user's listings, newest first."""
    orders = await order_fulfillment.list_sales_for_seller(
        db,
        seller_auth_id=current_user.user_id,
        status=order_status,
        offset=offset,
        limit=limit,
    )
    return [_order_view(order, current_user.user_id) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_fulfillment.get_order_for_actor(
        db, order_id=order_id, actor_auth_id=current_user.user_id
    )
    return _order_view(order, current_user.user_id)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post("/orders/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    order = await order_fulfillment.confirm_order(
        db,
        order_id=order_id,
        seller_auth_id=current_user.user_id,
        notifier=notifier,
    )
    return _order_view(order, current_user.user_id)


@router.post("/orders/{order_id}/authorize-pickup")
@pickup_code_limit
async def authorize_order_pickup(
    request: Request,
    order_id: uuid.UUID,
    body: PickupCodeRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Seller enters the code presented by the buyer or courier."""
    await order_fulfillment.authorize_order_pickup(
        db,
        order_id=order_id,
        seller_auth_id=current_user.user_id,
        pickup_code=body.pickup_code,
        notifier=notifier,
    )
    return {}


@router.post("/orders/{order_id}/complete-delivery")
async def complete_order_delivery(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Assigned courier marks the order delivered."""
    await order_fulfillment.complete_order_delivery(
        db,
        order_id=order_id,
        personnel_auth_id=current_user.user_id,
        notifier=notifier,
    )
    return {}


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    body: ReasonRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    order = await order_fulfillment.cancel_order(
        db,
        order_id=order_id,
        actor_auth_id=current_user.user_id,
        reason=body.reason,
        notifier=notifier,
    )
    return _order_view(order, current_user.user_id)


@router.post("/orders/{order_id}/report-failure", response_model=OrderResponse)
async def report_order_delivery_failure(
    order_id: uuid.UUID,
    body: FailureReportRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Assigned courier reports that the delivery could not be made."""
    order = await order_fulfillment.report_order_delivery_failure(
        db,
        order_id=order_id,
        personnel_auth_id=current_user.user_id,
        reason=body.reason,
        notifier=notifier,
    )
    return _order_view(order, current_user.user_id)
