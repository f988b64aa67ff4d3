import io

from openpyxl import load_workbook

from app.services import profiles as profile_service
from app.services.excel_manager import ExcelManager

from conftest import make_user


def place(client, customer, product_id, quantity=1):
    r = client.post(
        "/api/orders",
        json={"items": [{"product_id": product_id, "quantity": quantity}]},
        headers=customer["headers"],
    )
    assert r.status_code == 201, r.text
    return r.json()["id"]


def set_status(client, admin, order_id, status):
    return client.patch(f"/api/admin/orders/{order_id}/status", json={"status": status}, headers=admin["headers"])


def test_status_workflow(client, admin, user, products):
    order_id = place(client, user, products["ids"][0])

    r = set_status(client, admin, order_id, "confirmed")
    assert r.status_code == 200
    assert r.json()["status"] == "confirmed"
    assert r.json()["status_label"] == "Подтвержден"

    # same status again is a no-op
    assert set_status(client, admin, order_id, "confirmed").status_code == 200

    # going back to processing is not allowed
    assert set_status(client, admin, order_id, "processing").status_code == 409

    assert set_status(client, admin, order_id, "cancelled").status_code == 200
    assert set_status(client, admin, order_id, "archived").status_code == 200

    # archived is terminal
    assert set_status(client, admin, order_id, "completed").status_code == 409
    assert set_status(client, admin, order_id, "bogus").status_code == 422
    assert set_status(client, admin, 999, "confirmed").status_code == 404


def test_users_cannot_change_status(client, user, products):
    order_id = place(client, user, products["ids"][0])
    r = client.patch(f"/api/admin/orders/{order_id}/status", json={"status": "completed"}, headers=user["headers"])
    assert r.status_code == 403


def test_admin_list_filter_sort_and_search(client, admin, products):
    anna = make_user(client, first_name="Анна", last_name="Смирнова", email="anna@example.com")
    boris = make_user(client, first_name="Борис", last_name="Кузнецов", email="boris@example.com")
    first = place(client, anna, products["ids"][0], 2)
    second = place(client, boris, products["ids"][1], 1)
    set_status(client, admin, second, "completed")

    r = client.get("/api/admin/orders", headers=admin["headers"])
    assert r.status_code == 200
    assert [o["id"] for o in r.json()["orders"]] == [second, first]

    r = client.get("/api/admin/orders", params={"sort": "asc"}, headers=admin["headers"])
    assert [o["id"] for o in r.json()["orders"]] == [first, second]

    r = client.get("/api/admin/orders", params={"status": "completed"}, headers=admin["headers"])
    assert [o["id"] for o in r.json()["orders"]] == [second]

    r = client.get("/api/admin/orders", params={"q": "СМИРН"}, headers=admin["headers"])
    orders = r.json()["orders"]
    assert [o["id"] for o in orders] == [first]
    assert orders[0]["customer_name"] == "Анна Смирнова"
    assert orders[0]["customer_email"] == "anna@example.com"
    assert orders[0]["items"][0]["quantity"] == 2

    r = client.get("/api/admin/orders", params={"q": "BORIS@"}, headers=admin["headers"])
    assert [o["id"] for o in r.json()["orders"]] == [second]

    r = client.get("/api/admin/orders", params={"sort": "sideways"}, headers=admin["headers"])
    assert r.status_code == 422


def test_save_item_quantities(client, admin, user, products):
    a, b = products["ids"]
    r = client.post(
        "/api/orders",
        json={"items": [{"product_id": a, "quantity": 2}, {"product_id": b, "quantity": 1}]},
        headers=user["headers"],
    )
    order = r.json()
    item_ids = [i["id"] for i in order["items"]]
    url = f"/api/admin/orders/{order['id']}/items"

    r = client.put(url, json={"quantities": {str(item_ids[0]): 5, str(item_ids[1]): 3}}, headers=admin["headers"])
    assert r.status_code == 200
    assert {i["id"]: i["quantity"] for i in r.json()["items"]} == {item_ids[0]: 5, item_ids[1]: 3}
    assert r.json()["item_count"] == 8

    assert client.put(url, json={"quantities": {}}, headers=admin["headers"]).status_code == 400
    assert client.put(url, json={"quantities": {str(item_ids[0]): 0}}, headers=admin["headers"]).status_code == 422
    assert client.put(url, json={"quantities": {"99999": 1}}, headers=admin["headers"]).status_code == 400

    # the owner sees the saved quantities
    r = client.get(f"/api/orders/{order['id']}", headers=user["headers"])
    assert r.json()["item_count"] == 8


def test_export_completed_only(client, admin, products):
    anna = make_user(client, first_name="Анна", last_name="Смирнова", email="anna@example.com")
    boris = make_user(client, first_name="Борис", last_name="Кузнецов", email="boris@example.com")
    done = place(client, anna, products["ids"][0], 3)
    place(client, boris, products["ids"][1], 1)
    set_status(client, admin, done, "completed")

    r = client.get("/api/admin/orders/export", params={"status": "completed"}, headers=admin["headers"])
    assert r.status_code == 200
    assert r.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    disposition = r.headers["content-disposition"]
    assert disposition.startswith("attachment;")
    assert "filename*=UTF-8''" in disposition

    workbook = load_workbook(io.BytesIO(r.content))
    assert workbook.sheetnames == ["Заказы"]
    rows = list(workbook["Заказы"].iter_rows(values_only=True))
    assert list(rows[0]) == ExcelManager.ORDER_COLUMNS
    assert len(rows) == 2
    assert rows[1][0] == done
    assert rows[1][2] == "Анна Смирнова"
    assert rows[1][3] == "anna@example.com"
    assert rows[1][4] == 3
    assert {row[5] for row in rows[1:]} == {"Выполнен"}


def test_dashboard(client, admin, user, products):
    first = place(client, user, products["ids"][0])
    set_status(client, admin, first, "completed")
    place(client, user, products["ids"][1])

    r = client.get("/api/admin/dashboard", headers=admin["headers"])
    assert r.status_code == 200
    stats = r.json()
    assert stats["total_orders"] == 2
    assert stats["processing_orders"] == 1
    assert stats["completed_orders"] == 1
    assert stats["confirmed_orders"] == 0
    assert stats["total_products"] == 2
    assert stats["total_users"] == 2
    assert len(stats["recent_orders"]) == 2


def test_admin_user_management(client, admin):
    r = client.post(
        "/api/admin/users",
        json={
            "email": "new@example.com",
            "password": "secret123",
            "first_name": "Новый",
            "last_name": "Пользователь",
        },
        headers=admin["headers"],
    )
    assert r.status_code == 201
    new_id = r.json()["id"]
    assert r.json()["is_admin"] is False

    # the created account can sign in straight away
    r = client.post("/api/auth/login", json={"email": "new@example.com", "password": "secret123"})
    assert r.status_code == 200

    r = client.get("/api/admin/users", headers=admin["headers"])
    users = {u["id"]: u for u in r.json()}
    assert set(users) == {admin["id"], new_id}
    assert users[new_id]["document_count"] == 0

    r = client.put(
        f"/api/admin/users/{new_id}",
        json={"phone": "+7 999 999-99-99", "is_admin": True},
        headers=admin["headers"],
    )
    assert r.json()["phone"] == "+7 999 999-99-99"
    assert r.json()["is_admin"] is True

    r = client.get(f"/api/admin/users/{new_id}", headers=admin["headers"])
    assert r.status_code == 200
    assert r.json()["documents"] == []

    assert client.get("/api/admin/users/missing", headers=admin["headers"]).status_code == 404


def test_failed_user_creation_leaves_no_account(client, admin, monkeypatch):
    real_profile = profile_service.Profile

    def profile_without_first_name(**fields):
        return real_profile(**{**fields, "first_name": None})

    monkeypatch.setattr(profile_service, "Profile", profile_without_first_name)
    body = {
        "email": "broken@example.com",
        "password": "secret123",
        "first_name": "Новый",
        "last_name": "Пользователь",
    }
    r = client.post("/api/admin/users", json=body, headers=admin["headers"])
    assert r.status_code == 500

    r = client.post("/api/auth/login", json={"email": "broken@example.com", "password": "secret123"})
    assert r.status_code == 401

    monkeypatch.setattr(profile_service, "Profile", real_profile)
    assert client.post("/api/admin/users", json=body, headers=admin["headers"]).status_code == 201
