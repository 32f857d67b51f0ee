"""Fulfillment Service schemas package.

IMPORTANT: Every schema class must be listed here.
"""

from services.fulfillment_service.schemas.deliveries import (  # noqa: F401
    DeliveryResponse,
)
from services.fulfillment_service.schemas.transactions import (  # noqa: F401
    ClaimResponse,
    ClaimStatsResponse,
    CreateClaimRequest,
    CreateOrderRequest,
    FailureReportRequest,
    OrderResponse,
    PickupCodeRequest,
    ReasonRequest,
)

__all__ = [
    "ClaimResponse",
    "ClaimStatsResponse",
    "CreateClaimRequest",
    "CreateOrderRequest",
    "DeliveryResponse",
    "FailureReportRequest",
    "OrderResponse",
    "PickupCodeRequest",
    "ReasonRequest",
]
