"""PickupCode registry: one row per code ever issued."""

import uuid
from datetime import datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.fulfillment_service.models.enums import OwnerKind, enum_values
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class PickupCode(Base):
    """Codes share one namespace across orders and claims and are never
    deleted, so a code can never point at two transactions."""

    __tablename__ = "pickup_codes"

    code: Mapped[str] = mapped_column(String(8), primary_key=True)
    owner_kind: Mapped[OwnerKind] = mapped_column(
        SAEnum(
            OwnerKind,
            name="owner_kind_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("owner_kind", "owner_id", name="uq_pickup_code_owner"),
    )

    def __repr__(self) -> str:
        return f"<PickupCode owner={self.owner_kind.value}:{self.owner_id}>"
