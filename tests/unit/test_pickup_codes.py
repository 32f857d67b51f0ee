"""Unit tests for the pickup code issuer."""

import uuid

import pytest
from services.fulfillment_service.errors import ResourceConflict
from services.fulfillment_service.models import OwnerKind, OwnerRef, PickupCode
from services.fulfillment_service.services import pickup_codes
from sqlalchemy import select


def _order_ref() -> OwnerRef:
    return OwnerRef(kind=OwnerKind.ORDER, id=uuid.uuid4())


# ---------------------------------------------------------------------------
# Format helpers
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_generated_codes_are_eight_uppercase_alphanumerics():
    for _ in range(50):
        code = pickup_codes.generate_code()
        assert len(code) == 8
        assert pickup_codes.is_well_formed(code)
        assert code == code.upper()


@pytest.mark.unit
@pytest.mark.parametrize(
    "submitted,expected",
    [
        ("ab12cd34", True),
        (" AB12CD34 ", True),
        ("AB12CD3", False),
        ("AB12CD345", False),
        ("AB12-D34", False),
        ("", False),
        (None, False),
    ],
)
def test_is_well_formed(submitted, expected):
    assert pickup_codes.is_well_formed(submitted) is expected


# ---------------------------------------------------------------------------
# issue
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_issue_registers_code_for_owner(db_session):
    owner = _order_ref()

    code = await pickup_codes.issue(db_session, owner)
    await db_session.commit()

    row = await db_session.get(PickupCode, code)
    assert row is not None
    assert row.owner_kind == OwnerKind.ORDER
    assert row.owner_id == owner.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_issue_regenerates_on_collision(db_session, monkeypatch):
    """A code already in the registry is never handed out again."""
    taken = await pickup_codes.issue(db_session, _order_ref())
    await db_session.commit()

    candidates = iter([taken, "FRESH001"])
    monkeypatch.setattr(pickup_codes, "generate_code", lambda: next(candidates))

    code = await pickup_codes.issue(
        db_session, OwnerRef(kind=OwnerKind.CLAIM, id=uuid.uuid4())
    )

    assert code == "FRESH001"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_issue_gives_up_after_bounded_attempts(db_session, monkeypatch):
    taken = await pickup_codes.issue(db_session, _order_ref())
    await db_session.commit()

    monkeypatch.setattr(pickup_codes, "generate_code", lambda: taken)

    with pytest.raises(ResourceConflict):
        await pickup_codes.issue(db_session, _order_ref())

    result = await db_session.execute(select(PickupCode))
    assert len(result.scalars().all()) == 1


# ---------------------------------------------------------------------------
# verify
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_verify_accepts_matching_code_case_insensitively(db_session):
    owner = _order_ref()
    code = await pickup_codes.issue(db_session, owner)
    await db_session.commit()

    assert await pickup_codes.verify(db_session, owner, code)
    assert await pickup_codes.verify(db_session, owner, code.lower())


@pytest.mark.asyncio
@pytest.mark.unit
async def test_verify_rejects_without_raising(db_session):
    owner = _order_ref()
    code = await pickup_codes.issue(db_session, owner)
    await db_session.commit()

    wrong = "00000000" if code != "00000000" else "11111111"
    assert not await pickup_codes.verify(db_session, owner, wrong)
    assert not await pickup_codes.verify(db_session, owner, "")
    assert not await pickup_codes.verify(db_session, owner, None)
    # Right code, wrong namespace
    assert not await pickup_codes.verify(
        db_session, OwnerRef(kind=OwnerKind.CLAIM, id=owner.id), code
    )
    assert not await pickup_codes.verify(db_session, _order_ref(), code)
