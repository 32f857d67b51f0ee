"""Local read-model of delivery personnel managed by the profiles service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.fulfillment_service.models.enums import (
    DeliveryPersonnelType,
    enum_values,
)
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class DeliveryPersonnelRef(Base):
    """Assignable courier or organisation volunteer."""

    __tablename__ = "delivery_personnel_refs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    auth_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    personnel_type: Mapped[DeliveryPersonnelType] = mapped_column(
        SAEnum(
            DeliveryPersonnelType,
            name="delivery_personnel_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    # Charity organisation a volunteer belongs to; NULL for independents
    organization_auth_id: Mapped[Optional[str]] = mapped_column(
        String, index=True, nullable=True
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), default=Decimal("0"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self) -> str:
        return f"<DeliveryPersonnelRef {self.auth_id} type={self.personnel_type.value}>"
