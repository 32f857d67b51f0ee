"""Order and donation claim request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from services.fulfillment_service.models.enums import (
    ClaimStatus,
    DeliveryType,
    OrderStatus,
    PaymentStatus,
)

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateOrderRequest(BaseModel):
    delivery_type: DeliveryType
    delivery_address: Optional[str] = Field(None, max_length=500)
    proposed_price: Optional[Decimal] = None
    order_notes: Optional[str] = Field(None, max_length=1000)


class CreateClaimRequest(BaseModel):
    delivery_type: DeliveryType
    delivery_address: Optional[str] = Field(None, max_length=500)
    claim_notes: Optional[str] = Field(None, max_length=1000)


class PickupCodeRequest(BaseModel):
    """Code presented by the buyer, charity or courier at handover.

    Only normalized here. The pickup flow checks the format, so a malformed
    code is reported with the usual detail/code error payload.
    """

    pickup_code: str

    @field_validator("pickup_code", mode="before")
    @classmethod
    def normalize_pickup_code(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class FailureReportRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class OrderResponse(BaseModel):
    id: uuid.UUID
    listing_id: uuid.UUID
    buyer_auth_id: str
    seller_auth_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    delivery_type: DeliveryType
    delivery_address: Optional[str] = None
    final_price: Decimal
    delivery_fee: Decimal
    total: Decimal
    # Only shown to the buyer side; never to the seller
    pickup_code: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClaimResponse(BaseModel):
    id: uuid.UUID
    listing_id: uuid.UUID
    charity_auth_id: str
    donor_auth_id: str
    status: ClaimStatus
    delivery_type: DeliveryType
    delivery_address: Optional[str] = None
    pickup_code: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClaimStatsResponse(BaseModel):
    claims: dict[str, int]
    offers: dict[str, int]
    total_claims: int
    total_offers: int
