"""Unit tests for delivery scheduling, advancement and assignment."""

import uuid
from decimal import Decimal

import pytest
from services.fulfillment_service.errors import (
    InvalidDeliveryState,
    NotFound,
    ResourceConflict,
    StaleDeliveryState,
)
from services.fulfillment_service.models import (
    Delivery,
    DeliveryPersonnelType,
    DeliveryStatus,
    OwnerKind,
    OwnerRef,
)
from services.fulfillment_service.services import delivery_coordinator
from tests.factories import CourierFactory, VolunteerFactory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _schedule(db, courier_auth_id="courier-1", kind=OwnerKind.ORDER):
    delivery = await delivery_coordinator.schedule(
        db,
        OwnerRef(kind=kind, id=uuid.uuid4()),
        DeliveryPersonnelType.INDEPENDENT,
        courier_auth_id,
    )
    await db.commit()
    return delivery


# ---------------------------------------------------------------------------
# schedule
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_schedule_creates_scheduled_delivery(db_session):
    delivery = await _schedule(db_session)

    assert delivery.status == DeliveryStatus.SCHEDULED
    assert delivery.owner.kind == OwnerKind.ORDER
    found = await delivery_coordinator.get_for_owner(db_session, delivery.owner)
    assert found.id == delivery.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_schedule_allows_one_delivery_per_owner(db_session):
    delivery = await _schedule(db_session)

    with pytest.raises(ResourceConflict):
        await delivery_coordinator.schedule(
            db_session,
            delivery.owner,
            DeliveryPersonnelType.INDEPENDENT,
            "courier-2",
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_schedule_duplicate_insert_is_resource_conflict(db_session):
    """A second delivery for the same owner that slips past the lookup still fails cleanly."""
    owner = OwnerRef(kind=OwnerKind.CLAIM, id=uuid.uuid4())
    db_session.add(
        Delivery.for_owner(
            owner,
            personnel_type=DeliveryPersonnelType.ORG_VOLUNTEER,
            personnel_auth_id="volunteer-1",
        )
    )

    with pytest.raises(ResourceConflict):
        await delivery_coordinator.schedule(
            db_session, owner, DeliveryPersonnelType.ORG_VOLUNTEER, "volunteer-2"
        )

    assert await delivery_coordinator.get_for_owner(db_session, owner) is None


# ---------------------------------------------------------------------------
# advance
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_advance_through_legal_path(db_session):
    delivery = await _schedule(db_session)

    await delivery_coordinator.advance(
        db_session, delivery.id, DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT
    )
    await delivery_coordinator.advance(
        db_session, delivery.id, DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED
    )
    await db_session.commit()

    assert delivery.status == DeliveryStatus.DELIVERED
    assert delivery.delivered_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "expected,next_status",
    [
        (DeliveryStatus.SCHEDULED, DeliveryStatus.DELIVERED),
        (DeliveryStatus.IN_TRANSIT, DeliveryStatus.SCHEDULED),
        (DeliveryStatus.DELIVERED, DeliveryStatus.IN_TRANSIT),
        (DeliveryStatus.SCHEDULED, DeliveryStatus.FAILED),
    ],
)
async def test_advance_rejects_illegal_transitions(db_session, expected, next_status):
    delivery = await _schedule(db_session)

    with pytest.raises(InvalidDeliveryState):
        await delivery_coordinator.advance(db_session, delivery.id, expected, next_status)

    assert delivery.status == DeliveryStatus.SCHEDULED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_advance_with_wrong_expected_state_is_stale(db_session):
    delivery = await _schedule(db_session)

    with pytest.raises(StaleDeliveryState) as exc_info:
        await delivery_coordinator.advance(
            db_session, delivery.id, DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED
        )

    assert exc_info.value.current_state == "scheduled"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_advance_loses_version_race(session_factory):
    async with session_factory() as setup:
        delivery = await _schedule(setup)

    async with session_factory() as slow:
        await slow.get(Delivery, delivery.id)
        await slow.commit()

        async with session_factory() as fast:
            await delivery_coordinator.advance(
                fast, delivery.id, DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT
            )
            await fast.commit()

        with pytest.raises(StaleDeliveryState):
            await delivery_coordinator.advance(
                slow, delivery.id, DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT
            )

    async with session_factory() as check:
        fresh = await check.get(Delivery, delivery.id)
        assert fresh.status == DeliveryStatus.IN_TRANSIT


@pytest.mark.asyncio
@pytest.mark.unit
async def test_advance_unknown_delivery(db_session):
    with pytest.raises(NotFound):
        await delivery_coordinator.advance(
            db_session, uuid.uuid4(), DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT
        )


# ---------------------------------------------------------------------------
# mark_failed
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_mark_failed_is_terminal(db_session):
    delivery = await _schedule(db_session)

    await delivery_coordinator.mark_failed(db_session, delivery.id, "Vehicle broke down")
    await db_session.commit()

    assert delivery.status == DeliveryStatus.FAILED
    assert delivery.failure_reason == "Vehicle broke down"

    with pytest.raises(InvalidDeliveryState):
        await delivery_coordinator.mark_failed(db_session, delivery.id, "again")
    with pytest.raises(StaleDeliveryState):
        await delivery_coordinator.advance(
            db_session, delivery.id, DeliveryStatus.SCHEDULED, DeliveryStatus.IN_TRANSIT
        )


# ---------------------------------------------------------------------------
# assign_candidate / list_for_personnel
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_assign_candidate_prefers_highest_rated_eligible_courier(db_session):
    best = CourierFactory.create(rating=Decimal("4.90"))
    db_session.add_all(
        [
            CourierFactory.create(rating=Decimal("3.10")),
            best,
            CourierFactory.create(rating=Decimal("5.00"), is_verified=False),
            CourierFactory.create(rating=Decimal("5.00"), is_available=False),
            VolunteerFactory.create(rating=Decimal("5.00")),
        ]
    )
    await db_session.commit()

    candidate = await delivery_coordinator.assign_candidate(
        db_session, DeliveryPersonnelType.INDEPENDENT
    )

    assert candidate.auth_id == best.auth_id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_assign_candidate_scopes_volunteers_to_organization(db_session):
    own = VolunteerFactory.create(organization_auth_id="charity-a", rating=Decimal("3.00"))
    db_session.add_all(
        [own, VolunteerFactory.create(organization_auth_id="charity-b", rating=Decimal("5.00"))]
    )
    await db_session.commit()

    candidate = await delivery_coordinator.assign_candidate(
        db_session, DeliveryPersonnelType.ORG_VOLUNTEER, "charity-a"
    )
    assert candidate.auth_id == own.auth_id

    nobody = await delivery_coordinator.assign_candidate(
        db_session, DeliveryPersonnelType.ORG_VOLUNTEER, "charity-c"
    )
    assert nobody is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_for_personnel_filters_by_courier_and_status(db_session):
    first = await _schedule(db_session, courier_auth_id="courier-x")
    await _schedule(db_session, courier_auth_id="courier-x")
    await _schedule(db_session, courier_auth_id="courier-y")
    await delivery_coordinator.mark_failed(db_session, first.id, "cancelled")
    await db_session.commit()

    mine = await delivery_coordinator.list_for_personnel(db_session, "courier-x")
    failed = await delivery_coordinator.list_for_personnel(
        db_session, "courier-x", status=DeliveryStatus.FAILED
    )

    assert len(mine) == 2
    assert [d.id for d in failed] == [first.id]
