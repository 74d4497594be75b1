"""
Test the HTTP API end to end with FastAPI's TestClient.
"""

from dormside.core.security import COOKIE_NAME
from tests.conftest import ADMIN_CREDENTIALS, order_payload

CART = {"items": [{"name": "Mac and Cheese", "price": "$9.50", "quantity": 2}]}


def close_store(admin_client):
    response = admin_client.put("/api/settings", json={"isOpen": False})
    assert response.status_code == 200
    assert response.json() == {"isOpen": False}


# ============================================================================
# Root & health
# ============================================================================

def test_root(client):
    body = client.get("/").json()
    assert body["health"] == "/health"


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "operational"
    assert body["storageBackend"] == "file"


# ============================================================================
# Orders
# ============================================================================

def test_place_cash_order(client, mailer):
    response = client.post("/api/orders", json=order_payload(paymentMethod="cash"))

    assert response.status_code == 200
    order = response.json()["order"]
    assert order["status"] == "cash_pending"
    assert order["total"] == 20.5
    assert order["paymentIntentId"] is None
    assert response.json()["clientSecret"] is None
    # Store copy plus customer copy, sent inline by the eager worker
    assert [m.to for m in mailer.outbox] == ["dormsideeats@gmail.com", "jamie@example.edu"]


def test_place_card_order_and_confirm(client, gateway):
    placed = client.post("/api/orders", json=order_payload()).json()
    order = placed["order"]
    assert order["status"] == "pending"
    assert placed["clientSecret"].startswith(order["paymentIntentId"])

    gateway.complete_intent(order["paymentIntentId"])
    response = client.patch(
        "/api/orders",
        json={"id": order["id"], "status": "paid", "paymentIntentId": order["paymentIntentId"]},
    )

    assert response.status_code == 200
    assert response.json()["order"]["status"] == "paid"
    assert response.json()["paymentStatus"] == "succeeded"


def test_resubmitting_with_order_id_reuses_order(client, admin_client, gateway):
    first = client.post("/api/orders", json=order_payload()).json()
    again = client.post(
        "/api/orders", json=order_payload(orderId=first["order"]["id"])
    ).json()

    assert again["order"]["id"] == first["order"]["id"]
    assert again["clientSecret"] == first["clientSecret"]
    assert len(admin_client.get("/api/orders").json()["orders"]) == 1
    assert len(gateway.intents) == 1


def test_total_mismatch_is_400(client):
    response = client.post("/api/orders", json=order_payload(total=1))
    assert response.status_code == 400
    assert "does not match" in response.json()["error"]


def test_malformed_body_is_400(client):
    response = client.post("/api/orders", json={"paymentMethod": "bitcoin"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_closed_store_is_403(admin_client):
    close_store(admin_client)

    response = admin_client.post("/api/orders", json=order_payload())
    assert response.status_code == 403
    assert response.json() == {"error": "Orders are closed"}

    response = admin_client.post("/api/checkout", json=CART)
    assert response.status_code == 403


def test_gateway_failure_response_carries_order_id(client, gateway):
    gateway.failure_rate = 1.0

    response = client.post("/api/orders", json=order_payload())

    assert response.status_code == 500
    assert response.json()["orderId"]


def test_patch_paid_on_unknown_order_is_404(client):
    response = client.patch(
        "/api/orders", json={"id": "missing", "status": "paid", "paymentIntentId": "pi_x"}
    )
    assert response.status_code == 404

    response = client.patch("/api/orders", json={"id": "missing", "status": "paid"})
    assert response.status_code == 404


def test_patch_with_wrong_intent_is_409(client, gateway):
    order = client.post("/api/orders", json=order_payload()).json()["order"]

    response = client.patch(
        "/api/orders", json={"id": order["id"], "status": "paid", "paymentIntentId": "pi_other"}
    )

    assert response.status_code == 409


def test_public_cannot_mark_cash_order_paid(client):
    order = client.post("/api/orders", json=order_payload(paymentMethod="cash")).json()["order"]

    response = client.patch("/api/orders", json={"id": order["id"], "status": "paid"})

    assert response.status_code == 409


def test_status_override_requires_admin(client):
    order = client.post("/api/orders", json=order_payload(paymentMethod="cash")).json()["order"]

    response = client.patch("/api/orders", json={"id": order["id"], "status": "pending"})

    assert response.status_code == 401


def test_admin_marks_cash_order_paid(admin_client):
    order = admin_client.post(
        "/api/orders", json=order_payload(paymentMethod="cash")
    ).json()["order"]

    response = admin_client.patch("/api/orders", json={"id": order["id"], "status": "paid"})
    assert response.json()["order"]["status"] == "paid"

    response = admin_client.patch("/api/orders", json={"id": order["id"], "status": "cash_pending"})
    assert response.status_code == 409


def test_admin_list_and_delete(admin_client):
    order = admin_client.post(
        "/api/orders", json=order_payload(paymentMethod="cash")
    ).json()["order"]

    orders = admin_client.get("/api/orders").json()["orders"]
    assert [o["id"] for o in orders] == [order["id"]]

    response = admin_client.request("DELETE", "/api/orders", json={"id": order["id"]})
    assert response.json() == {"removed": True}

    response = admin_client.request("DELETE", "/api/orders", json={"id": order["id"]})
    assert response.json() == {"removed": False}


def test_admin_endpoints_require_session(client):
    assert client.get("/api/orders").status_code == 401
    assert client.request("DELETE", "/api/orders", json={"id": "x"}).status_code == 401
    assert client.put("/api/settings", json={"isOpen": False}).status_code == 401
    assert client.put("/api/menu", json={"items": []}).status_code == 401


# ============================================================================
# Checkout
# ============================================================================

def test_checkout_for_bare_cart(client, gateway):
    response = client.post("/api/checkout", json={**CART, "deliveryOption": "delivery", "tip": 1.5})

    body = response.json()
    assert response.status_code == 200
    assert body["orderId"] is None
    assert gateway.intents[body["paymentIntentId"]].amount_minor == 2350


def test_checkout_empty_cart_is_400(client):
    response = client.post("/api/checkout", json={"items": []})
    assert response.status_code == 400
    assert response.json() == {"error": "Cart is empty"}


def test_checkout_for_order_reuses_intent(client):
    placed = client.post("/api/orders", json=order_payload()).json()

    body = client.post("/api/checkout", json={"orderId": placed["order"]["id"]}).json()

    assert body["paymentIntentId"] == placed["order"]["paymentIntentId"]
    assert body["orderId"] == placed["order"]["id"]


def test_checkout_return_finalizes(client, gateway):
    order = client.post("/api/orders", json=order_payload()).json()["order"]
    gateway.complete_intent(order["paymentIntentId"])

    response = client.get(
        "/api/checkout/return",
        params={"order_id": order["id"], "payment_intent": order["paymentIntentId"]},
    )

    assert response.json()["order"]["status"] == "paid"


def test_webhook_marks_order_paid(client, admin_client, gateway):
    order = client.post("/api/orders", json=order_payload()).json()["order"]
    gateway.complete_intent(order["paymentIntentId"])
    event = {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": order["paymentIntentId"], "metadata": {"order_id": order["id"]}}},
    }

    response = client.post("/webhook/stripe", json=event)

    assert response.json() == {"received": True}
    orders = admin_client.get("/api/orders").json()["orders"]
    assert orders[0]["status"] == "paid"


# ============================================================================
# Settings, menu & admin session
# ============================================================================

def test_store_status_defaults_open(client):
    assert client.get("/api/settings").json() == {"isOpen": True}


def test_settings_reject_non_boolean(admin_client):
    response = admin_client.put("/api/settings", json={"isOpen": "yes"})
    assert response.status_code == 400


def test_menu_round_trip(admin_client):
    response = admin_client.put(
        "/api/menu",
        json={"items": [
            {"name": "Mac and Cheese", "description": "Baked", "price": "$9.50"},
            {"name": "Half", "description": "", "price": "$1"},
        ]},
    )
    assert len(response.json()["items"]) == 1
    assert admin_client.get("/api/menu").json()["items"][0]["price"] == "$9.50"


def test_login_sets_cookie_and_logout_clears_it(client):
    response = client.post("/api/admin/login", json=ADMIN_CREDENTIALS)
    assert response.json() == {"ok": True}
    assert COOKIE_NAME in response.cookies
    assert client.get("/api/orders").status_code == 200

    client.post("/api/admin/logout")
    assert client.get("/api/orders").status_code == 401


def test_login_with_wrong_password(client):
    response = client.post("/api/admin/login", json={"username": "admin", "password": "nope"})
    assert response.status_code == 401
    assert COOKIE_NAME not in response.cookies
