import httpx
import pytest

from app.client import ApiError, Cart, FoodOrderClient, LocalStorage
from app.client.cart import CART_KEY
from app.client.session import ADMIN_CAPABILITY_KEY
from app.core.documents import DocumentValidationError

from conftest import make_user


@pytest.fixture
def shopper(client, tmp_path):
    storage = LocalStorage(str(tmp_path / "browser.json"))
    api = FoodOrderClient(cart=Cart(storage), http_client=client)
    api.signup("shopper@example.com", "secret123")
    api.register("Анна", "Иванова", "shopper@example.com", phone="+7 900 000-00-00")
    return api, storage


def test_checkout_scenario(shopper, products):
    api, storage = shopper
    a, b = products["ids"]

    api.cart.add(a)
    api.cart.add(a)
    api.cart.add(b)

    order = api.checkout()
    assert order["status"] == "processing"
    assert sorted((i["product_id"], i["quantity"]) for i in order["items"]) == sorted([(a, 2), (b, 1)])
    assert api.cart.is_empty()
    assert storage.get_item(CART_KEY) is None
    assert api.has_processing_order() is True


def test_failed_checkout_keeps_cart(shopper, products):
    api, storage = shopper
    a = products["ids"][0]

    api.cart.add(a)
    api.checkout()

    api.cart.add(a)
    with pytest.raises(ApiError) as err:
        api.checkout()
    assert err.value.status_code == 409
    assert api.cart.items == {a: 1}
    assert storage.get_item(CART_KEY) is not None


def test_empty_cart_is_not_sent(shopper):
    api, _ = shopper
    with pytest.raises(ValueError):
        api.checkout()
    assert api.orders() == []


def test_document_round_trip(shopper):
    api, _ = shopper
    document = api.upload_document("паспорт.pdf", b"%PDF-1.4", "application/pdf")
    assert document["filename"] == "паспорт.pdf"

    filename, content = api.download_document(document["id"])
    assert filename == "паспорт.pdf"
    assert content == b"%PDF-1.4"

    assert api.delete_document(document["id"]) is True
    assert api.delete_document(document["id"]) is False


def test_invalid_documents_never_reach_the_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    api = FoodOrderClient(http_client=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://api"))
    api.session.sign_in("token", "u-1")

    with pytest.raises(DocumentValidationError):
        api.upload_document("big.pdf", b"0" * (5 * 1024 * 1024 + 1), "application/pdf")
    with pytest.raises(DocumentValidationError):
        api.upload_document("script.exe", b"MZ", "application/x-msdownload")
    assert calls == []


def test_admin_capability_is_cached(client, tmp_path, admin, products):
    api = FoodOrderClient(http_client=client)
    api.session.sign_in(admin["token"], admin["id"])

    assert api.is_admin() is True
    assert api.session.admin_capability.get(admin["id"]) is not None

    user = make_user(client)
    order_id = client.post(
        "/api/orders",
        json={"items": [{"product_id": products["ids"][0], "quantity": 1}]},
        headers=user["headers"],
    ).json()["id"]

    api.update_order_status(order_id, "completed")
    filename, content = api.export_orders(status="completed")
    assert filename.startswith("Заказы_AAS_") and filename.endswith(".xlsx")
    assert content[:2] == b"PK"

    api.sign_out()
    assert api.session.admin_capability.get(admin["id"]) is None
    assert api.is_admin() is False


def test_unauthorized_response_starts_login_redirect(client):
    api = FoodOrderClient(http_client=client)
    api.session.sign_in("expired-token", "u-1")

    with pytest.raises(ApiError) as err:
        api.me()
    assert err.value.status_code == 401
    assert api.session.navigation.state.value == "redirecting"


def signed_in_client(handler):
    api = FoodOrderClient(http_client=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://api"))
    api.session.sign_in("token", "u-1")
    return api


def test_admin_check_server_error_routes_to_login():
    api = signed_in_client(lambda request: httpx.Response(500, json={"detail": "boom"}))

    assert api.is_admin() is False
    assert api.session.navigation.state.value == "redirecting"


def test_admin_check_timeout_routes_to_login():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    api = signed_in_client(handler)

    assert api.is_admin() is False
    assert api.session.navigation.state.value == "redirecting"
    assert api.session.storage.get_item(ADMIN_CAPABILITY_KEY) is None


def test_admin_check_without_session_routes_to_login():
    api = FoodOrderClient(http_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)), base_url="http://api"))
    assert api.is_admin() is False
    assert api.session.navigation.state.value == "redirecting"


def test_non_admin_is_routed_to_login(client):
    user = make_user(client)
    api = FoodOrderClient(http_client=client)
    api.session.sign_in(user["token"], user["id"])

    assert api.is_admin() is False
    assert api.session.navigation.state.value == "redirecting"
