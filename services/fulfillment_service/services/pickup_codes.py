"""Pickup code issuer: mints and verifies single-use pickup secrets.

Codes are 8 characters from ``A-Z0-9`` drawn from the OS CSPRNG. They are
registered in ``pickup_codes`` so the namespace is shared by orders and
claims, and they are never rotated, re-issued or recycled.
"""

import hmac
import secrets
from typing import Optional

from libs.common.logging import get_logger
from services.fulfillment_service.errors import ResourceConflict
from services.fulfillment_service.models import OwnerRef, PickupCode
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CODE_LENGTH = 8
MAX_ISSUE_ATTEMPTS = 5


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(submitted: Optional[str]) -> str:
    """Codes are case-insensitive at submission and stored uppercase."""
    return (submitted or "").strip().upper()


def is_well_formed(submitted: Optional[str]) -> bool:
    code = normalize_code(submitted)
    return len(code) == CODE_LENGTH and all(c in CODE_ALPHABET for c in code)


async def issue(db: AsyncSession, owner: OwnerRef) -> str:
    """Mint a fresh code for ``owner`` and register it in the current transaction."""
    for _ in range(MAX_ISSUE_ATTEMPTS):
        code = generate_code()
        taken = await db.scalar(select(PickupCode.code).where(PickupCode.code == code))
        if taken is None:
            db.add(PickupCode(code=code, owner_kind=owner.kind, owner_id=owner.id))
            logger.info("Issued pickup code for %s", owner)
            return code

    logger.error("Could not mint a unique pickup code for %s", owner)
    raise ResourceConflict("Could not generate a pickup code; please retry")


async def verify(db: AsyncSession, owner: OwnerRef, submitted: Optional[str]) -> bool:
    """Check ``submitted`` against the code issued to ``owner``.

    Read-only and never raises for a bad code: mismatches, malformed input and
    unknown owners all return False.
    """
    result = await db.execute(
        select(PickupCode.code).where(
            PickupCode.owner_kind == owner.kind,
            PickupCode.owner_id == owner.id,
        )
    )
    stored = result.scalar_one_or_none()
    if stored is None:
        return False

    candidate = normalize_code(submitted)
    return hmac.compare_digest(candidate.encode(), stored.encode())
