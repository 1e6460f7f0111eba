"""Tests for the H8 Marketplace API."""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import StubAssistant

from h8_marketplace.main import build_app


@pytest.fixture
def stub_assistant():
    return StubAssistant(reply="The Super Eagles jersey is available.")


@pytest.fixture
def app(settings, stub_assistant):
    return build_app(settings, assistant=stub_assistant)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def admin(client):
    resp = await client.post("/api/v1/admin/login", json={"password": "admin"})
    assert resp.status_code == 200
    return client


CUSTOMER = {
    "name": "Ada Obi",
    "email": "ada@example.com",
    "phone": "08030000000",
    "address": "12 Allen Avenue, Ikeja",
}


class TestHealth:
    async def test_health_check(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["service"] == "h8-marketplace"


class TestCatalog:
    async def test_list_products(self, client):
        resp = await client.get("/api/v1/products")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] > 0

    async def test_filter_by_category(self, client):
        resp = await client.get("/api/v1/products", params={"category": "Perfume"})
        assert all(p["category"] == "Perfume" for p in resp.json()["products"])

    async def test_unknown_product(self, client):
        resp = await client.get("/api/v1/products/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Product not found"

    async def test_select_and_review(self, client):
        resp = await client.post("/api/v1/products/p2/select")
        assert resp.json()["view"] == "PRODUCT_DETAIL"

        resp = await client.post(
            "/api/v1/products/p2/reviews",
            json={"user_name": "Ada", "rating": 5, "comment": "Superb"},
        )
        assert resp.status_code == 200
        product = (await client.get("/api/v1/products/p2")).json()
        assert product["reviews"][0]["comment"] == "Superb"

    async def test_invalid_rating(self, client):
        resp = await client.post(
            "/api/v1/products/p2/reviews",
            json={"user_name": "Ada", "rating": 9},
        )
        assert resp.status_code == 422


class TestCart:
    async def test_add_update_remove(self, client):
        await client.post("/api/v1/cart/items", json={"product_id": "p6", "color": "Green"})
        resp = await client.post("/api/v1/cart/items", json={"product_id": "p6", "color": "Green"})
        data = resp.json()
        assert len(data["items"]) == 1
        assert data["item_count"] == 2

        resp = await client.patch("/api/v1/cart/items/p6", json={"color": "Green", "delta": -2})
        assert resp.json()["items"] == []

        await client.post("/api/v1/cart/items", json={"product_id": "p8", "color": "Black"})
        resp = await client.delete("/api/v1/cart/items/p8", params={"color": "Black"})
        assert resp.json()["item_count"] == 0

    async def test_out_of_stock(self, client):
        resp = await client.post("/api/v1/cart/items", json={"product_id": "p9"})
        assert resp.status_code == 409


class TestCheckoutAndTracking:
    async def test_cart_checkout_flow(self, client):
        await client.post("/api/v1/cart/items", json={"product_id": "p6", "color": "Green"})
        resp = await client.post("/api/v1/checkout/cart")
        assert resp.json()["view"] == "CHECKOUT_FORM"

        resp = await client.post("/api/v1/checkout/submit", json=CUSTOMER)
        assert resp.status_code == 200
        data = resp.json()
        order = data["order"]
        assert data["view"] == "SUPPORT_DM"
        assert order["id"].startswith("TRK-")
        assert order["status"] == "PENDING"
        assert order["total_amount"] == pytest.approx(71500.0)

        cart = (await client.get("/api/v1/cart")).json()
        assert cart["items"] == []

        support = (await client.get("/api/v1/support")).json()
        assert support["messages"][-1]["is_invoice"] is True

        visible = (await client.get("/api/v1/orders")).json()
        assert [o["id"] for o in visible["orders"]] == [order["id"]]

    async def test_submit_without_items(self, client):
        resp = await client.post("/api/v1/checkout/submit", json=CUSTOMER)
        assert resp.status_code == 400

    async def test_buy_now_and_cancel(self, client):
        resp = await client.post("/api/v1/checkout/buy-now", json={"product_id": "p1", "color": "Black Titanium"})
        assert resp.json()["items"][0]["quantity"] == 1
        resp = await client.post("/api/v1/checkout/cancel")
        assert resp.json()["view"] == "PRODUCT_DETAIL"

    async def test_track_order(self, client):
        resp = await client.post("/api/v1/orders/track", json={"tracking_id": " trk-9j2m4 "})
        assert resp.status_code == 200
        assert resp.json()["id"] == "TRK-9J2M4"

    async def test_track_unknown_order_is_generic(self, client):
        resp = await client.post("/api/v1/orders/track", json={"tracking_id": "TRK-00000"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Order not found. Please verify your Tracking ID."


class TestSupport:
    async def test_ai_reply(self, client, stub_assistant):
        resp = await client.post("/api/v1/support/messages", json={"text": "Any jerseys?"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["mode"] == "AI_ASSISTED"
        assert data["messages"][-1]["content"] == "The Super Eagles jersey is available."
        assert len(stub_assistant.calls) == 1

    async def test_escalation_and_admin_inbox(self, client):
        resp = await client.post("/api/v1/support/messages", json={"text": "Get me a human"})
        data = resp.json()
        assert data["mode"] == "LIVE_SUPPORT"
        assert data["messages"][-1]["role"] == "system"

        resp = await client.post("/api/v1/support/messages", json={"text": "Hello?"})
        assert len(resp.json()["messages"]) == 1

        await client.post("/api/v1/admin/login", json={"password": "admin"})
        inbox = (await client.get("/api/v1/admin/support")).json()
        assert inbox["has_unread"] is True

        resp = await client.post("/api/v1/admin/support/reply", json={"text": "Hi, how can I help?"})
        assert resp.status_code == 200
        inbox = (await client.get("/api/v1/admin/support")).json()
        assert inbox["has_unread"] is False
        assert inbox["mode"] == "LIVE_SUPPORT"

        resp = await client.post("/api/v1/admin/support/resolve")
        assert resp.json() == {"resolved": True, "archived_sessions": 1}
        inbox = (await client.get("/api/v1/admin/support")).json()
        assert inbox["mode"] == "AI_ASSISTED"
        assert len(inbox["messages"]) == 1

    async def test_resolve_welcome_only(self, admin):
        resp = await admin.post("/api/v1/admin/support/resolve")
        assert resp.json() == {"resolved": False, "archived_sessions": 0}

    async def test_busy_session_refuses_send(self, client, app):
        app.state.storefront.support.is_typing = True
        resp = await client.post("/api/v1/support/messages", json={"text": "hello"})
        assert resp.status_code == 409


class TestSupportStream:
    async def test_admin_stream_requires_login(self, client):
        resp = await client.get("/api/v1/admin/support/stream")
        assert resp.status_code == 403

    async def test_feeds_end_when_transcript_resolved(self, admin, app):
        await admin.post("/api/v1/support/messages", json={"text": "Any jerseys?"})
        event_stream = app.state.storefront.event_stream
        transcript_id = app.state.storefront.support.transcript_id

        async def resolve_once_followed():
            while event_stream.follower_count(transcript_id) < 2:
                await asyncio.sleep(0.01)
            return await admin.post("/api/v1/admin/support/resolve")

        customer, inbox, resolved = await asyncio.wait_for(
            asyncio.gather(
                admin.get("/api/v1/support/stream"),
                admin.get("/api/v1/admin/support/stream"),
                resolve_once_followed(),
            ),
            timeout=5,
        )

        assert resolved.json()["resolved"] is True
        for resp in (customer, inbox):
            assert resp.status_code == 200
            assert resp.headers["content-type"].startswith("text/event-stream")
            assert resp.text.count("event: message") == 2
            assert "event: resolved" in resp.text
        assert event_stream.open_transcripts == [app.state.storefront.support.transcript_id]


class TestViewAndPreferences:
    async def test_navigation(self, client):
        resp = await client.post("/api/v1/view/marketplace", params={"category": "Socks"})
        assert resp.json() == {"view": "MARKETPLACE", "category": "Socks"}

        view = (await client.get("/api/v1/view")).json()
        assert view["title"] == "Marketplace: Socks"

        resp = await client.post("/api/v1/view/navigate", json={"view": "ORDER_TRACKING"})
        assert resp.json()["view"] == "ORDER_TRACKING"

    async def test_dark_mode_toggle(self, client):
        before = (await client.get("/api/v1/preferences")).json()["dark_mode"]
        resp = await client.post("/api/v1/preferences/dark-mode/toggle")
        assert resp.json()["dark_mode"] is (not before)


class TestAdmin:
    async def test_requires_login(self, client):
        resp = await client.get("/api/v1/admin/orders")
        assert resp.status_code == 403

    async def test_wrong_password(self, client):
        resp = await client.post("/api/v1/admin/login", json={"password": "hunter2"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid credentials"

    async def test_order_status_updates(self, admin):
        resp = await admin.patch(
            "/api/v1/admin/orders/TRK-9J2M4/status", json={"status": "SHIPPED"}
        )
        assert resp.json()["status"] == "SHIPPED"

        resp = await admin.post(
            "/api/v1/admin/orders/status",
            json={"order_ids": ["TRK-9J2M4"], "status": "REJECTED"},
        )
        assert resp.json()["updated"] == ["TRK-9J2M4"]

        resp = await admin.patch(
            "/api/v1/admin/orders/TRK-ZZZZZ/status", json={"status": "SHIPPED"}
        )
        assert resp.status_code == 404

    async def test_product_management(self, admin):
        resp = await admin.post(
            "/api/v1/admin/products",
            json={"name": "Adidas Predator", "price": 280000, "category": "Soccer Boots"},
        )
        product_id = resp.json()["id"]

        resp = await admin.put(f"/api/v1/admin/products/{product_id}/discount", json={"discount": 150})
        assert resp.json()["discount"] == 100

        resp = await admin.post(f"/api/v1/admin/products/{product_id}/toggle-stock")
        assert resp.json()["is_out_of_stock"] is True

        resp = await admin.delete(f"/api/v1/admin/products/{product_id}")
        assert resp.status_code == 400

        resp = await admin.delete(f"/api/v1/admin/products/{product_id}", params={"confirm": "true"})
        assert resp.json() == {"deleted": product_id}

    async def test_add_category(self, admin):
        await admin.post("/api/v1/admin/categories", json={"name": "Watches"})
        categories = (await admin.get("/api/v1/categories")).json()["categories"]
        assert {"id": "Watches", "label": "Watches"} in categories

    async def test_logout(self, admin):
        resp = await admin.post("/api/v1/admin/logout")
        assert resp.json() == {"is_admin": False, "view": "HOME"}
        resp = await admin.get("/api/v1/admin/support")
        assert resp.status_code == 403
