"""Enums for the Fulfillment Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class ListingStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING = "pending"  # reserved by an order
    CLAIMED = "claimed"  # reserved by a donation claim
    SOLD = "sold"
    COMPLETED = "completed"
    EXPIRED = "expired"
    REMOVED = "removed"
    CANCELLED = "cancelled"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ClaimStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class DeliveryType(str, enum.Enum):
    SELF_PICKUP = "self_pickup"
    HOME_DELIVERY = "home_delivery"


class DeliveryPersonnelType(str, enum.Enum):
    INDEPENDENT = "independent"
    ORG_VOLUNTEER = "org_volunteer"


class DeliveryStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


class OwnerKind(str, enum.Enum):
    """Which transaction namespace a delivery or pickup code belongs to."""

    ORDER = "order"
    CLAIM = "claim"


class NotificationType(str, enum.Enum):
    NEW_LISTING = "new_listing"
    EXPIRY_ALERT = "expiry_alert"
    CLAIM_UPDATE = "claim_update"
    ORDER_UPDATE = "order_update"
    DELIVERY_UPDATE = "delivery_update"
    FEEDBACK_REQUEST = "feedback_request"


ORDER_TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.COMPLETED})
CLAIM_TERMINAL_STATUSES = frozenset(
    {ClaimStatus.REJECTED, ClaimStatus.CANCELLED, ClaimStatus.COMPLETED}
)
