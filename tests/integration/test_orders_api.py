"""Integration tests for the order endpoints."""

import uuid

import pytest
from libs.auth.models import UserRole
from services.fulfillment_service.app.main import app
from services.fulfillment_service.models import Listing, ListingStatus
from tests.factories import (
    CourierFactory,
    ListingFactory,
    make_user,
    override_auth,
)


async def _seed(db_session, *objects):
    db_session.add_all(objects)
    await db_session.commit()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "fulfillment"}


# ---------------------------------------------------------------------------
# Self pickup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_self_pickup_order_flow(client, db_session, notification_sink):
    """POST order -> seller authorizes with buyer's code -> order completed."""
    listing = ListingFactory.create()
    await _seed(db_session, listing)
    buyer = make_user(UserRole.BUYER)
    seller = make_user(UserRole.DONOR_SELLER, user_id=listing.owner_auth_id)

    with override_auth(app, buyer):
        response = await client.post(
            f"/listings/{listing.id}/orders",
            json={"delivery_type": "self_pickup", "order_notes": "Ring twice"},
        )
    assert response.status_code == 201, response.text
    order = response.json()
    assert order["status"] == "pending"
    assert order["notes"] == "Ring twice"
    code = order["pickup_code"]
    assert len(code) == 8

    with override_auth(app, seller):
        seller_view = await client.get(f"/orders/{order['id']}")
        assert seller_view.json()["pickup_code"] is None

        response = await client.post(
            f"/orders/{order['id']}/authorize-pickup",
            json={"pickup_code": code.lower()},
        )
    assert response.status_code == 200, response.text
    assert response.json() == {}

    with override_auth(app, buyer):
        final = (await client.get(f"/orders/{order['id']}")).json()
        mine = (await client.get("/orders/me")).json()
    assert final["status"] == "completed"
    assert final["payment_status"] == "paid"
    assert [o["id"] for o in mine] == [order["id"]]

    fresh = await db_session.get(Listing, listing.id)
    await db_session.refresh(fresh)
    assert fresh.status == ListingStatus.SOLD
    assert notification_sink.to(seller.user_id)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_wrong_code_returns_code_mismatch(client, db_session):
    listing = ListingFactory.create()
    await _seed(db_session, listing)
    buyer = make_user(UserRole.BUYER)
    seller = make_user(UserRole.DONOR_SELLER, user_id=listing.owner_auth_id)

    with override_auth(app, buyer):
        order = (
            await client.post(
                f"/listings/{listing.id}/orders", json={"delivery_type": "self_pickup"}
            )
        ).json()

    wrong = "ZZZZZZZZ" if order["pickup_code"] != "ZZZZZZZZ" else "YYYYYYYY"
    with override_auth(app, seller):
        response = await client.post(
            f"/orders/{order['id']}/authorize-pickup", json={"pickup_code": wrong}
        )
        status_after = (await client.get(f"/orders/{order['id']}")).json()["status"]

    assert response.status_code == 422
    assert response.json()["code"] == "CODE_MISMATCH"
    assert status_after == "pending"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_malformed_code_uses_validation_failure_payload(client, db_session):
    listing = ListingFactory.create()
    await _seed(db_session, listing)
    buyer = make_user(UserRole.BUYER)
    seller = make_user(UserRole.DONOR_SELLER, user_id=listing.owner_auth_id)

    with override_auth(app, buyer):
        order = (
            await client.post(
                f"/listings/{listing.id}/orders", json={"delivery_type": "self_pickup"}
            )
        ).json()

    with override_auth(app, seller):
        response = await client.post(
            f"/orders/{order['id']}/authorize-pickup", json={"pickup_code": "AB-12"}
        )
        status_after = (await client.get(f"/orders/{order['id']}")).json()["status"]

    assert response.status_code == 422
    assert response.json() == {
        "detail": "Pickup code must be 8 letters or digits",
        "code": "VALIDATION_FAILURE",
    }
    assert status_after == "pending"


# ---------------------------------------------------------------------------
# Home delivery
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_home_delivery_order_flow(client, db_session):
    listing = ListingFactory.create()
    courier_ref = CourierFactory.create()
    await _seed(db_session, listing, courier_ref)
    buyer = make_user(UserRole.BUYER)
    seller = make_user(UserRole.DONOR_SELLER, user_id=listing.owner_auth_id)
    courier = make_user(UserRole.INDEPENDENT_DELIVERY, user_id=courier_ref.auth_id)

    with override_auth(app, buyer):
        response = await client.post(
            f"/listings/{listing.id}/orders",
            json={
                "delivery_type": "home_delivery",
                "delivery_address": "12 Market Street",
                "proposed_price": "450.00",
            },
        )
    assert response.status_code == 201, response.text
    order = response.json()
    assert order["final_price"] == "450.00"
    assert order["delivery_fee"] == "50.00"
    assert order["total"] == "500.00"

    with override_auth(app, courier):
        deliveries = (await client.get("/deliveries/me")).json()
    assert len(deliveries) == 1
    assert deliveries[0]["status"] == "scheduled"
    assert deliveries[0]["owner_kind"] == "order"
    assert deliveries[0]["owner_id"] == order["id"]

    with override_auth(app, seller):
        response = await client.post(
            f"/orders/{order['id']}/authorize-pickup",
            json={"pickup_code": order["pickup_code"]},
        )
    assert response.status_code == 200, response.text

    with override_auth(app, courier):
        response = await client.post(f"/orders/{order['id']}/complete-delivery")
        assert response.status_code == 200, response.text
        again = await client.post(f"/orders/{order['id']}/complete-delivery")
        deliveries = (await client.get("/deliveries/me")).json()

    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_COMPLETED"
    assert again.json()["current_state"] == "completed"
    assert deliveries[0]["status"] == "delivered"

    with override_auth(app, seller):
        sales = (await client.get("/orders/sales")).json()
    assert sales[0]["status"] == "completed"
    assert sales[0]["pickup_code"] is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_courier_reports_failure(client, db_session):
    listing = ListingFactory.create()
    courier_ref = CourierFactory.create()
    await _seed(db_session, listing, courier_ref)
    buyer = make_user(UserRole.BUYER)
    courier = make_user(UserRole.INDEPENDENT_DELIVERY, user_id=courier_ref.auth_id)

    with override_auth(app, buyer):
        order = (
            await client.post(
                f"/listings/{listing.id}/orders",
                json={"delivery_type": "home_delivery", "delivery_address": "Flat 3"},
            )
        ).json()

    with override_auth(app, courier):
        response = await client.post(
            f"/orders/{order['id']}/report-failure", json={"reason": "Flat tyre"}
        )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "cancelled"
    assert body["payment_status"] == "failed"


# ---------------------------------------------------------------------------
# Errors and permissions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_only_buyers_can_order(client, db_session):
    listing = ListingFactory.create()
    await _seed(db_session, listing)

    with override_auth(app, make_user(UserRole.CHARITY_ORG)):
        response = await client.post(
            f"/listings/{listing.id}/orders", json={"delivery_type": "self_pickup"}
        )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_taken_listing_reports_conflict(client, db_session):
    listing = ListingFactory.create()
    await _seed(db_session, listing)

    with override_auth(app, make_user(UserRole.BUYER)):
        first = await client.post(
            f"/listings/{listing.id}/orders", json={"delivery_type": "self_pickup"}
        )
    with override_auth(app, make_user(UserRole.BUYER)):
        second = await client.post(
            f"/listings/{listing.id}/orders", json={"delivery_type": "self_pickup"}
        )

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["code"] == "LISTING_NOT_AVAILABLE"
    assert second.json()["current_state"] == "pending"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_order_is_404(client):
    with override_auth(app, make_user(UserRole.BUYER)):
        response = await client.get(f"/orders/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_buyer_cancels_pending_order(client, db_session, notification_sink):
    listing = ListingFactory.create()
    await _seed(db_session, listing)
    buyer = make_user(UserRole.BUYER)

    with override_auth(app, buyer):
        order = (
            await client.post(
                f"/listings/{listing.id}/orders", json={"delivery_type": "self_pickup"}
            )
        ).json()
        response = await client.post(
            f"/orders/{order['id']}/cancel", json={"reason": "Found it cheaper"}
        )

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "Found it cheaper"
    assert any(
        "Found it cheaper" in n["message"]
        for n in notification_sink.to(listing.owner_auth_id)
    )
