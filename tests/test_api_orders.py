from app.core.config import get_settings
from app.services import orders as order_service

from conftest import make_user


def test_place_order_from_cart(client, user, products):
    a, b = products["ids"]
    r = client.post(
        "/api/orders",
        json={"items": [{"product_id": a, "quantity": 2}, {"product_id": b, "quantity": 1}]},
        headers=user["headers"],
    )
    assert r.status_code == 201, r.text
    order = r.json()
    assert order["status"] == "processing"
    assert order["status_label"] == "В обработке"
    assert order["user_id"] == user["id"]
    assert order["item_count"] == 3
    assert {(i["product_id"], i["quantity"]) for i in order["items"]} == {(a, 2), (b, 1)}
    assert {i["product_name"] for i in order["items"]} == {"Гречка", "Рис"}
    assert all(i["product_unit"] == "кг" for i in order["items"])

    r = client.get("/api/orders", headers=user["headers"])
    assert r.json()["total"] == 1
    assert r.json()["orders"][0]["id"] == order["id"]


def test_processing_order_blocks_new_checkout(client, user, admin, products):
    a = products["ids"][0]
    body = {"items": [{"product_id": a, "quantity": 1}]}

    r = client.post("/api/orders", json=body, headers=user["headers"])
    order_id = r.json()["id"]

    r = client.get("/api/orders/processing", headers=user["headers"])
    assert r.json() == {"has_processing_order": True, "order_id": order_id}

    r = client.post("/api/orders", json=body, headers=user["headers"])
    assert r.status_code == 409

    client.patch(f"/api/admin/orders/{order_id}/status", json={"status": "completed"}, headers=admin["headers"])

    r = client.get("/api/orders/processing", headers=user["headers"])
    assert r.json()["has_processing_order"] is False
    assert client.post("/api/orders", json=body, headers=user["headers"]).status_code == 201


def test_multiple_processing_orders_when_allowed(client, user, products, monkeypatch):
    monkeypatch.setattr(get_settings(), "allow_multiple_processing_orders", True)
    body = {"items": [{"product_id": products["ids"][0], "quantity": 1}]}

    assert client.post("/api/orders", json=body, headers=user["headers"]).status_code == 201
    assert client.post("/api/orders", json=body, headers=user["headers"]).status_code == 201


def test_racing_checkout_is_rejected_by_database(client, user, products, monkeypatch):
    body = {"items": [{"product_id": products["ids"][0], "quantity": 1}]}
    assert client.post("/api/orders", json=body, headers=user["headers"]).status_code == 201

    # a second request that passed the pending-order check before the first committed
    async def no_pending(db, user_id):
        return None

    monkeypatch.setattr(order_service, "processing_order_for", no_pending)
    r = client.post("/api/orders", json=body, headers=user["headers"])
    assert r.status_code == 409

    assert client.get("/api/orders", headers=user["headers"]).json()["total"] == 1


def test_rejected_carts_write_nothing(client, user, products):
    r = client.post("/api/orders", json={"items": []}, headers=user["headers"])
    assert r.status_code == 400

    r = client.post(
        "/api/orders",
        json={"items": [{"product_id": products["ids"][0], "quantity": 1}, {"product_id": 999, "quantity": 1}]},
        headers=user["headers"],
    )
    assert r.status_code == 400
    assert "999" in r.json()["detail"]

    r = client.post(
        "/api/orders",
        json={"items": [{"product_id": products["ids"][0], "quantity": 0}]},
        headers=user["headers"],
    )
    assert r.status_code == 422

    assert client.get("/api/orders", headers=user["headers"]).json()["total"] == 0


def test_checkout_requires_session(client, products):
    r = client.post("/api/orders", json={"items": [{"product_id": products["ids"][0], "quantity": 1}]})
    assert r.status_code == 401


def test_order_visible_to_owner_and_admin_only(client, user, admin, products):
    r = client.post(
        "/api/orders",
        json={"items": [{"product_id": products["ids"][0], "quantity": 1}]},
        headers=user["headers"],
    )
    order_id = r.json()["id"]
    stranger = make_user(client)

    assert client.get(f"/api/orders/{order_id}", headers=user["headers"]).status_code == 200
    assert client.get(f"/api/orders/{order_id}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/orders/{order_id}", headers=stranger["headers"]).status_code == 403
    assert client.get("/api/orders/999", headers=user["headers"]).status_code == 404


def test_deleted_product_keeps_order_line(client, user, admin, products):
    a = products["ids"][0]
    r = client.post("/api/orders", json={"items": [{"product_id": a, "quantity": 2}]}, headers=user["headers"])
    order_id = r.json()["id"]

    assert client.delete(f"/api/admin/products/{a}", headers=admin["headers"]).status_code == 200

    item = client.get(f"/api/orders/{order_id}", headers=user["headers"]).json()["items"][0]
    assert item["product_id"] is None
    assert item["product_name"] == "Гречка"
    assert item["quantity"] == 2
