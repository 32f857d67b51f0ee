"""Delivery response schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from services.fulfillment_service.models.enums import (
    DeliveryPersonnelType,
    DeliveryStatus,
    OwnerKind,
)


class DeliveryResponse(BaseModel):
    id: uuid.UUID
    owner_kind: OwnerKind
    owner_id: uuid.UUID
    personnel_type: DeliveryPersonnelType
    personnel_auth_id: str
    status: DeliveryStatus
    failure_reason: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
