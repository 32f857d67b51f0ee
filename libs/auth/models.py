from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRole(str, Enum):
    BUYER = "buyer"
    DONOR_SELLER = "donor_seller"
    CHARITY_ORG = "charity_org"
    INDEPENDENT_DELIVERY = "independent_delivery"
    ORG_VOLUNTEER = "org_volunteer"
    ADMIN = "admin"


class AuthUser(BaseModel):
    """
    Represents an authenticated actor decoded from the platform JWT.

    The fulfillment core trusts this identity and only checks ownership
    relative to the transaction being acted on.
    """

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"

    model_config = ConfigDict(populate_by_name=True)

    def has_role(self, *roles: UserRole) -> bool:
        return self.role in {r.value for r in roles}
