"""Delivery model: physical handoff record for a HOME_DELIVERY transaction."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.fulfillment_service.models.enums import (
    DeliveryPersonnelType,
    DeliveryStatus,
    OwnerKind,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column


@dataclass(frozen=True)
class OwnerRef:
    """Tagged reference to exactly one Order or DonationClaim."""

    kind: OwnerKind
    id: uuid.UUID

    @classmethod
    def of(cls, transaction) -> "OwnerRef":
        return cls(kind=transaction.owner_kind, id=transaction.id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class Delivery(Base):
    """One delivery per transaction, owned through a tagged reference."""

    __tablename__ = "deliveries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_kind: Mapped[OwnerKind] = mapped_column(
        SAEnum(
            OwnerKind,
            name="owner_kind_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    personnel_type: Mapped[DeliveryPersonnelType] = mapped_column(
        SAEnum(
            DeliveryPersonnelType,
            name="delivery_personnel_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    personnel_auth_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        SAEnum(
            DeliveryStatus,
            name="delivery_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=DeliveryStatus.SCHEDULED,
        nullable=False,
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("owner_kind", "owner_id", name="uq_delivery_owner"),
    )
    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def for_owner(
        cls,
        owner: OwnerRef,
        *,
        personnel_type: DeliveryPersonnelType,
        personnel_auth_id: str,
    ) -> "Delivery":
        return cls(
            owner_kind=owner.kind,
            owner_id=owner.id,
            personnel_type=personnel_type,
            personnel_auth_id=personnel_auth_id,
            status=DeliveryStatus.SCHEDULED,
        )

    @property
    def owner(self) -> OwnerRef:
        return OwnerRef(kind=self.owner_kind, id=self.owner_id)

    def __repr__(self) -> str:
        return f"<Delivery {self.id} owner={self.owner} status={self.status.value}>"
