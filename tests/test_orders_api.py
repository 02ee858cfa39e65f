"""Order creation, read paths and admin status updates"""
from decimal import Decimal

from storefront.models.order import FulfillmentStatus, Order, OrderItem, PaymentStatus
from storefront.services.order_service import OrderService

from conftest import auth_header, make_token


def test_create_order_persists_header_and_items(client, notifier, db_session):
    response = client.post(
        "/api/orders",
        json={"items": [{"productId": 1, "quantity": 2, "price": 9.99}], "total": 19.98},
        headers=auth_header(7, email="buyer@example.com")
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Order created successfully"

    order = db_session.get(Order, body["orderId"])
    assert order.user_id == 7
    assert order.customer_email == "buyer@example.com"
    assert order.total == Decimal("19.98")
    assert order.fulfillment_status == FulfillmentStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert len(order.items) == 1
    assert order.items[0].quantity == 2
    assert order.items[0].price == Decimal("9.99")

    assert notifier.kinds() == ["order_created"]


def test_create_order_with_several_items(client, db_session):
    items = [
        {"productId": 1, "quantity": 1, "price": 10.00},
        {"productId": 2, "quantity": 3, "price": 2.50},
        {"productId": 3, "quantity": 2, "price": 0.99},
    ]
    response = client.post(
        "/api/orders",
        json={"items": items, "total": 19.48},
        headers=auth_header(1)
    )

    assert response.status_code == 201
    assert db_session.query(Order).count() == 1
    assert db_session.query(OrderItem).count() == 3


def test_create_order_accepts_float_noise_in_total(client, db_session):
    response = client.post(
        "/api/orders",
        json={
            "items": [
                {"productId": 1, "quantity": 1, "price": 0.1},
                {"productId": 2, "quantity": 1, "price": 0.2},
            ],
            "total": 0.1 + 0.2,
        },
        headers=auth_header(1)
    )

    assert response.status_code == 201, response.text
    order = db_session.get(Order, response.json()["orderId"])
    assert order.total == Decimal("0.30")


def test_create_order_rejects_wrong_total(client, notifier, db_session):
    response = client.post(
        "/api/orders",
        json={"items": [{"productId": 1, "quantity": 2, "price": 9.99}], "total": 1.00},
        headers=auth_header(1)
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Total does not match order items"}
    assert db_session.query(Order).count() == 0
    assert notifier.calls == []


def test_create_order_rejects_empty_cart(client, db_session):
    response = client.post("/api/orders", json={"items": [], "total": 5}, headers=auth_header(1))

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request"
    assert db_session.query(Order).count() == 0


def test_create_order_rejects_non_positive_quantity(client):
    response = client.post(
        "/api/orders",
        json={"items": [{"productId": 1, "quantity": 0, "price": 9.99}], "total": 9.99},
        headers=auth_header(1)
    )

    assert response.status_code == 400


def test_create_order_requires_token(client):
    response = client.post(
        "/api/orders",
        json={"items": [{"productId": 1, "quantity": 1, "price": 1}], "total": 1}
    )

    assert response.status_code == 401
    assert response.json() == {"message": "No token, authorization denied"}


def test_create_order_rolls_back_when_an_item_fails(client, notifier, db_session, monkeypatch):
    original = OrderService._build_item
    calls = []

    def failing_build_item(order_id, item):
        calls.append(item)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return original(order_id, item)

    monkeypatch.setattr(OrderService, "_build_item", staticmethod(failing_build_item))

    response = client.post(
        "/api/orders",
        json={
            "items": [
                {"productId": 1, "quantity": 1, "price": 5.00},
                {"productId": 2, "quantity": 1, "price": 5.00},
            ],
            "total": 10.00,
        },
        headers=auth_header(1)
    )

    assert response.status_code == 500
    assert response.json() == {"message": "Server error"}
    assert db_session.query(Order).count() == 0
    assert db_session.query(OrderItem).count() == 0
    assert notifier.calls == []


def test_my_orders_only_returns_callers_orders(client, place_order):
    mine = place_order(user_id=1)
    place_order(user_id=2)

    response = client.get("/api/orders/my-orders", headers=auth_header(1))

    assert response.status_code == 200
    orders = response.json()
    assert [order["id"] for order in orders] == [mine]
    assert orders[0]["items"][0]["product_id"] == 1
    assert Decimal(orders[0]["total"]) == Decimal("19.98")


def test_my_orders_is_paginated(client, place_order):
    placed = [place_order(user_id=1) for _ in range(3)]
    headers = auth_header(1)

    first_page = client.get("/api/orders/my-orders", params={"limit": 2}, headers=headers).json()
    second_page = client.get("/api/orders/my-orders", params={"skip": 2, "limit": 2}, headers=headers).json()

    assert [order["id"] for order in first_page] == [placed[2], placed[1]]
    assert [order["id"] for order in second_page] == [placed[0]]


def test_get_order_hidden_from_other_users(client, place_order):
    order_id = place_order(user_id=1)

    assert client.get(f"/api/orders/{order_id}", headers=auth_header(1)).status_code == 200
    assert client.get(f"/api/orders/{order_id}", headers=auth_header(2)).status_code == 404
    assert client.get(f"/api/orders/{order_id}", headers=auth_header(99, is_admin=True)).status_code == 200


def test_admin_lists_orders_with_filters(client, place_order):
    place_order(user_id=1)
    place_order(user_id=2)
    place_order(user_id=2)

    response = client.get("/api/orders", params={"user_id": 2}, headers=auth_header(99, is_admin=True))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["page"] == 1
    assert {order["user_id"] for order in body["orders"]} == {2}


def test_list_orders_requires_admin(client, place_order):
    place_order()

    response = client.get("/api/orders", headers=auth_header(1))

    assert response.status_code == 403
    assert response.json() == {"message": "Admin access required"}


def test_token_cookie_is_accepted(client, place_order):
    place_order(user_id=5)

    response = client.get("/api/orders/my-orders", headers={"Cookie": f"token={make_token(5)}"})

    assert response.status_code == 200
    assert len(response.json()) == 1


def test_invalid_token_rejected(client):
    response = client.get("/api/orders/my-orders", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json() == {"message": "Token is not valid"}


def test_admin_status_update_rejects_unknown_status(client, place_order, db_session):
    order_id = place_order()

    response = client.put(
        f"/api/orders/{order_id}/status",
        json={"status": "bogus"},
        headers=auth_header(99, is_admin=True)
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid status"}
    assert db_session.get(Order, order_id).fulfillment_status == FulfillmentStatus.PENDING


def test_admin_status_update_unknown_order(client):
    response = client.put(
        "/api/orders/12345/status",
        json={"status": "processing"},
        headers=auth_header(99, is_admin=True)
    )

    assert response.status_code == 404
    assert response.json() == {"message": "Order not found"}


def test_admin_status_update_requires_admin(client, place_order):
    order_id = place_order()

    response = client.put(
        f"/api/orders/{order_id}/status",
        json={"status": "processing"},
        headers=auth_header(1)
    )

    assert response.status_code == 403


def test_admin_can_start_processing_unpaid_order(client, notifier, place_order, db_session):
    order_id = place_order()

    response = client.put(
        f"/api/orders/{order_id}/status",
        json={"status": "processing"},
        headers=auth_header(99, is_admin=True)
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Order status updated successfully"}
    order = db_session.get(Order, order_id)
    assert order.fulfillment_status == FulfillmentStatus.PROCESSING
    assert order.payment_status == PaymentStatus.PENDING
    assert notifier.kinds()[-1] == "status_changed"
    assert notifier.calls[-1][1].fulfillment_status == FulfillmentStatus.PROCESSING


def test_unpaid_order_cannot_ship(client, place_order, db_session):
    order_id = place_order()
    admin = auth_header(99, is_admin=True)
    client.put(f"/api/orders/{order_id}/status", json={"status": "processing"}, headers=admin)

    response = client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=admin)

    assert response.status_code == 409
    assert response.json() == {"message": "Invalid status transition"}
    assert db_session.get(Order, order_id).fulfillment_status == FulfillmentStatus.PROCESSING


def test_fulfillment_cannot_skip_or_go_back(client, place_order):
    order_id = place_order()
    admin = auth_header(99, is_admin=True)

    skip = client.put(f"/api/orders/{order_id}/status", json={"status": "delivered"}, headers=admin)
    assert skip.status_code == 409

    client.put(f"/api/orders/{order_id}/status", json={"status": "processing"}, headers=admin)
    back = client.put(f"/api/orders/{order_id}/status", json={"status": "pending"}, headers=admin)
    assert back.status_code == 409


def test_reapplying_current_status_is_accepted_without_mail(client, notifier, place_order):
    order_id = place_order()

    response = client.put(
        f"/api/orders/{order_id}/status",
        json={"status": "pending"},
        headers=auth_header(99, is_admin=True)
    )

    assert response.status_code == 200
    assert notifier.kinds() == ["order_created"]


def test_admin_marks_payment_failed(client, place_order, db_session):
    order_id = place_order()
    admin = auth_header(99, is_admin=True)

    response = client.put(f"/api/orders/{order_id}/payment-status", json={"status": "failed"}, headers=admin)

    assert response.status_code == 200
    assert db_session.get(Order, order_id).payment_status == PaymentStatus.FAILED

    again = client.put(f"/api/orders/{order_id}/payment-status", json={"status": "failed"}, headers=admin)
    assert again.status_code == 409


def test_admin_cannot_mark_payment_paid(client, place_order, db_session):
    order_id = place_order()

    response = client.put(
        f"/api/orders/{order_id}/payment-status",
        json={"status": "paid"},
        headers=auth_header(99, is_admin=True)
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid status"}
    assert db_session.get(Order, order_id).payment_status == PaymentStatus.PENDING


def test_processing_order_cannot_be_marked_failed(client, place_order):
    order_id = place_order()
    admin = auth_header(99, is_admin=True)
    client.put(f"/api/orders/{order_id}/status", json={"status": "processing"}, headers=admin)

    response = client.put(f"/api/orders/{order_id}/payment-status", json={"status": "failed"}, headers=admin)

    assert response.status_code == 409


def test_health_and_root(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    assert client.get("/ready").json()["database"] == "connected"
    assert client.get("/").json()["service"] == "order-service"
