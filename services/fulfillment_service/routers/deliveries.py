"""Delivery endpoints for couriers and volunteers."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.fulfillment_service.models import DeliveryStatus
from services.fulfillment_service.schemas import DeliveryResponse
from services.fulfillment_service.services import delivery_coordinator
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.get("/me", response_model=list[DeliveryResponse])
async def list_my_deliveries(
    delivery_status: Optional[DeliveryStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Deliveries assigned to the current courier or volunteer."""
    return await delivery_coordinator.list_for_personnel(
        db,
        current_user.user_id,
        status=delivery_status,
        offset=offset,
        limit=limit,
    )
