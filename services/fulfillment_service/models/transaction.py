"""Order and DonationClaim models: the two fulfillment transaction kinds.

Both rows are never deleted, only driven into a terminal status. Each carries
a ``version`` counter so concurrent transitions resolve by compare-and-set.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.fulfillment_service.models.enums import (
    ClaimStatus,
    DeliveryType,
    OrderStatus,
    OwnerKind,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Order(Base):
    """Paid transaction against a sale listing."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False, index=True
    )
    buyer_auth_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    seller_auth_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            name="order_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="payment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    delivery_type: Mapped[DeliveryType] = mapped_column(
        SAEnum(
            DeliveryType,
            name="delivery_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    pickup_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    listing: Mapped["Listing"] = relationship(lazy="selectin")  # noqa: F821

    __mapper_args__ = {"version_id_col": version}

    owner_kind = OwnerKind.ORDER

    @property
    def total(self) -> Decimal:
        return self.final_price + self.delivery_fee

    def __repr__(self) -> str:
        return f"<Order {self.id} status={self.status.value} listing={self.listing_id}>"


class DonationClaim(Base):
    """No-payment transaction by a charity organisation against a donation."""

    __tablename__ = "donation_claims"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False, index=True
    )
    charity_auth_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    donor_auth_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    status: Mapped[ClaimStatus] = mapped_column(
        SAEnum(
            ClaimStatus,
            name="claim_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=ClaimStatus.PENDING,
        nullable=False,
    )
    delivery_type: Mapped[DeliveryType] = mapped_column(
        SAEnum(
            DeliveryType,
            name="delivery_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pickup_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    listing: Mapped["Listing"] = relationship(lazy="selectin")  # noqa: F821

    __mapper_args__ = {"version_id_col": version}

    owner_kind = OwnerKind.CLAIM

    @property
    def final_price(self) -> Decimal:
        return Decimal("0")

    def __repr__(self) -> str:
        return f"<DonationClaim {self.id} status={self.status.value} listing={self.listing_id}>"
