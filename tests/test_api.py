import time
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from storefront.api import deps
from storefront.main import app
from storefront.utils.settings import SESSION_COOKIE_NAME
from tests.helpers import FakePaymentClient, auth, line_item, session_event, signed_webhook, token_for

ADDRESS = {
    "name": "Home",
    "address_line_1": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "data": {"status": "ok"}}


def test_requests_without_session_are_rejected(client):
    for method, path in [("get", "/cart"), ("get", "/orders"), ("get", "/addresses"), ("post", "/cart/clear")]:
        resp = getattr(client, method)(path)
        assert resp.status_code == 401
        assert resp.json() == {
            "success": False,
            "error": "authentication_required",
            "message": "Wymagane logowanie",
        }


def test_invalid_token_is_rejected(client):
    resp = client.get("/cart", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_session_cookie_is_accepted(client):
    client.cookies.set(SESSION_COOKIE_NAME, token_for("u1"))
    resp = client.get("/cart")
    assert resp.status_code == 200
    assert resp.json()["data"]["items"] == []


def test_cart_flow(client):
    headers = auth("u1")

    resp = client.post("/cart/add", json={"product_id": "prod-1", "quantity": 2}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["item_count"] == 2
    assert Decimal(body["data"]["total"]) == Decimal("20")
    assert body["data"]["items"][0]["name"] == "Linen Shirt"
    assert body["data"]["items"][0]["image"] == "/img/1.jpg"

    resp = client.post("/cart/add", json={"product_id": "prod-2"}, headers=headers)
    assert resp.json()["data"]["item_count"] == 3

    resp = client.post("/cart/update", json={"product_id": "prod-2", "quantity": 5}, headers=headers)
    assert resp.json()["data"]["item_count"] == 7

    resp = client.post("/cart/remove", json={"product_id": "prod-1"}, headers=headers)
    assert [i["product_id"] for i in resp.json()["data"]["items"]] == ["prod-2"]

    resp = client.post("/cart/clear", headers=headers)
    assert resp.json()["data"]["items"] == []


def test_cart_errors_use_envelope(client):
    headers = auth("u1")

    resp = client.post("/cart/add", json={"product_id": "prod-1", "quantity": 0}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"

    resp = client.post("/cart/add", json={"product_id": "nope"}, headers=headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"

    resp = client.post("/cart/add", json={"product_id": "prod-3"}, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == "insufficient_stock"

    resp = client.post("/cart/add", json={"quantity": 1}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_checkout_create_session(client, payment_client):
    resp = client.post(
        "/checkout/create-session",
        json={"items": [{"id": "prod-1", "name": "Linen Shirt", "price": "10.00", "quantity": 1}]},
        headers={**auth("u1"), "Idempotency-Key": "abc"},
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["session_id"] == "cs_test_1"

    again = client.post(
        "/checkout/create-session",
        json={"items": [{"id": "prod-1", "name": "Linen Shirt", "price": "10.00", "quantity": 1}]},
        headers={**auth("u1"), "Idempotency-Key": "abc"},
    )
    assert again.json()["data"]["session_id"] == "cs_test_1"
    assert len(payment_client.created) == 1


def test_checkout_with_empty_cart_is_rejected(client, payment_client):
    resp = client.post("/checkout/create-session", json={}, headers=auth("u1"))
    assert resp.status_code == 400
    assert payment_client.created == []


def test_webhook_rejects_bad_signature(client):
    payload, headers = signed_webhook(session_event("cs_1", "u1"), secret="whsec_wrong")

    resp = client.post("/webhooks/stripe", content=payload, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


def test_webhook_records_order_once_and_session_details_follow(client, payment_client, notifier):
    payment_client.add_session("cs_1", "u1")
    payment_client.line_items["cs_1"] = [line_item("prod-1", "Linen Shirt", 2, 1000)]

    details = client.get("/checkout/session-details", params={"session_id": "cs_1"}, headers=auth("u1"))
    assert details.json()["data"]["checkout_status"] == "session_created"

    payload, headers = signed_webhook(session_event("cs_1", "u1"))
    for _ in range(2):
        resp = client.post("/webhooks/stripe", content=payload, headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    orders = client.get("/orders", headers=auth("u1")).json()["data"]
    assert orders["pagination"]["total"] == 1
    order = orders["orders"][0]
    assert order["status"] == "paid"
    assert order["items"][0]["quantity"] == 2
    assert len(notifier.sent) == 1

    details = client.get("/checkout/session-details", params={"session_id": "cs_1"}, headers=auth("u1"))
    data = details.json()["data"]
    assert data["checkout_status"] == "order_recorded"
    assert data["order"]["id"] == order["id"]

    foreign = client.get("/checkout/session-details", params={"session_id": "cs_1"}, headers=auth("u2"))
    assert foreign.status_code == 404


def test_unhandled_webhook_type_is_acknowledged(client):
    payload, headers = signed_webhook({"id": "evt_1", "type": "customer.created", "data": {"object": {}}})
    resp = client.post("/webhooks/stripe", content=payload, headers=headers)
    assert resp.status_code == 200


def test_order_status_update_is_admin_only(client):
    payload, headers = signed_webhook(session_event("cs_1", "u1"))
    client.post("/webhooks/stripe", content=payload, headers=headers)
    order_id = client.get("/orders", headers=auth("u1")).json()["data"]["orders"][0]["id"]

    resp = client.put(f"/orders/{order_id}/status", json={"status": "shipped"}, headers=auth("u1"))
    assert resp.status_code == 403
    assert resp.json()["error"] == "permission_denied"

    resp = client.put(
        f"/orders/{order_id}/status",
        json={"status": "shipped", "tracking_number": "TRK1"},
        headers=auth("admin", role="admin"),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["tracking_number"] == "TRK1"

    resp = client.put(f"/orders/{order_id}/status", json={"status": "paid"}, headers=auth("admin", role="admin"))
    assert resp.status_code == 409


def test_addresses_default_switch(client):
    headers = auth("u1")
    first = client.post("/addresses", json=ADDRESS, headers=headers)
    assert first.status_code == 201
    assert first.json()["data"]["is_default"] is True

    second = client.post("/addresses", json={**ADDRESS, "name": "Work"}, headers=headers).json()["data"]
    assert second["is_default"] is False

    resp = client.put(f"/addresses/{second['id']}/default", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["is_default"] is True
    assert resp.json()["message"] == "Adres domyslny zaktualizowany"

    resp = client.put(f"/addresses/{second['id']}/default", headers=headers)
    assert resp.json()["message"] == "Adres jest juz domyslny"

    listed = client.get("/addresses", headers=headers).json()["data"]
    assert [a["id"] for a in listed if a["is_default"]] == [second["id"]]

    resp = client.put(f"/addresses/{second['id']}/default", headers=auth("u2"))
    assert resp.status_code == 404

    resp = client.delete(f"/addresses/{first.json()['data']['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Adres usuniety"}


class SlowPaymentClient(FakePaymentClient):
    def list_line_items(self, session_id):
        time.sleep(1)
        return super().list_line_items(session_id)


def test_slow_webhook_does_not_block_other_requests(client):
    app.dependency_overrides[deps.get_payment_client] = lambda: SlowPaymentClient()
    payload, headers = signed_webhook(session_event("cs_slow", "u1"))

    # jeden event loop dla wszystkich watkow, jak na serwerze
    with client:
        with ThreadPoolExecutor(max_workers=1) as pool:
            webhook = pool.submit(client.post, "/webhooks/stripe", content=payload, headers=headers)
            time.sleep(0.2)
            started = time.monotonic()
            health = client.get("/health")
            elapsed = time.monotonic() - started
            assert webhook.result().status_code == 200

    assert health.status_code == 200
    assert elapsed < 0.5


def test_signed_webhook_without_session_object_is_rejected(client):
    for data in ({}, {"object": "cs_1"}, {"object": {"payment_status": "paid"}}):
        payload, headers = signed_webhook({"id": "evt_1", "type": "checkout.session.completed", "data": data})

        resp = client.post("/webhooks/stripe", content=payload, headers=headers)

        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"


def test_missing_jwt_secret_rejects_every_token(client, monkeypatch):
    monkeypatch.setattr(deps, "JWT_SECRET", "")

    resp = client.get("/cart", headers=auth("u1"))

    assert resp.status_code == 401
    assert resp.json()["error"] == "authentication_required"


def test_address_update(client):
    headers = auth("u1")
    home = client.post("/addresses", json=ADDRESS, headers=headers).json()["data"]
    billing = client.post("/addresses", json={**ADDRESS, "name": "Billing", "type": "billing"}, headers=headers)
    billing = billing.json()["data"]

    resp = client.put(f"/addresses/{home['id']}", json={"city": "Chicago", "type": "billing"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Adres zaktualizowany"
    data = resp.json()["data"]
    assert data["city"] == "Chicago"
    assert data["type"] == "billing"
    assert data["is_default"] is False

    resp = client.put(f"/addresses/{home['id']}", json={"is_default": True}, headers=headers)
    assert resp.json()["data"]["is_default"] is True
    listed = client.get("/addresses", params={"type": "billing"}, headers=headers).json()["data"]
    assert [a["id"] for a in listed if a["is_default"]] == [home["id"]]
    assert billing["id"] in [a["id"] for a in listed]

    resp = client.put(f"/addresses/{home['id']}", json={"city": "Boston"}, headers=auth("u2"))
    assert resp.status_code == 404

    resp = client.put(f"/addresses/{home['id']}", json={}, headers=headers)
    assert resp.status_code == 400


def test_order_status_history(client):
    payload, headers = signed_webhook(session_event("cs_1", "u1"))
    client.post("/webhooks/stripe", content=payload, headers=headers)
    order_id = client.get("/orders", headers=auth("u1")).json()["data"]["orders"][0]["id"]
    client.put(f"/orders/{order_id}/status", json={"status": "processing"}, headers=auth("admin", role="admin"))

    resp = client.get(f"/orders/{order_id}/status", headers=auth("u1"))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["order_id"] == order_id
    assert sorted(h["status"] for h in data["status_history"]) == ["paid", "processing"]

    resp = client.get(f"/orders/{order_id}/status", headers=auth("u2"))
    assert resp.status_code == 404
