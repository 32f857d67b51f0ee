"""Fulfillment Service models package.

Re-exports all models and enums so that SQLAlchemy's mapper registry sees
every model class on import.

IMPORTANT: Every model class AND enum must be listed here.
"""

from services.fulfillment_service.models.delivery import Delivery, OwnerRef  # noqa: F401
from services.fulfillment_service.models.enums import (  # noqa: F401
    CLAIM_TERMINAL_STATUSES,
    ORDER_TERMINAL_STATUSES,
    ClaimStatus,
    DeliveryPersonnelType,
    DeliveryStatus,
    DeliveryType,
    ListingStatus,
    NotificationType,
    OrderStatus,
    OwnerKind,
    PaymentStatus,
)
from services.fulfillment_service.models.listing import Listing  # noqa: F401
from services.fulfillment_service.models.notification import Notification  # noqa: F401
from services.fulfillment_service.models.personnel import (  # noqa: F401
    DeliveryPersonnelRef,
)
from services.fulfillment_service.models.pickup_code import PickupCode  # noqa: F401
from services.fulfillment_service.models.transaction import (  # noqa: F401
    DonationClaim,
    Order,
)

__all__ = [
    # Enums
    "ClaimStatus",
    "DeliveryPersonnelType",
    "DeliveryStatus",
    "DeliveryType",
    "ListingStatus",
    "NotificationType",
    "OrderStatus",
    "OwnerKind",
    "PaymentStatus",
    "CLAIM_TERMINAL_STATUSES",
    "ORDER_TERMINAL_STATUSES",
    # Models
    "Delivery",
    "DeliveryPersonnelRef",
    "DonationClaim",
    "Listing",
    "Notification",
    "Order",
    "OwnerRef",
    "PickupCode",
]
