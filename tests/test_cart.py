import json

import pytest

from app.client.cart import CART_KEY, Cart
from app.client.storage import LocalStorage


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "local.json"))


def assert_mirrored(cart):
    assert cart.stored_items() == cart.items


def test_add_and_decrement_are_mirrored(storage):
    cart = Cart(storage)
    assert cart.is_empty()

    assert cart.add(1) == 1
    assert_mirrored(cart)
    assert cart.add(1) == 2
    assert cart.add(5) == 1
    assert_mirrored(cart)
    assert cart.items == {1: 2, 5: 1}
    assert cart.total_units == 3

    assert cart.decrement(1) == 1
    assert_mirrored(cart)
    assert cart.decrement(1) == 0
    assert cart.items == {5: 1}
    assert_mirrored(cart)

    # decrementing something that is not in the cart changes nothing
    assert cart.decrement(42) == 0
    assert cart.items == {5: 1}


def test_set_quantity_below_one_removes(storage):
    cart = Cart(storage)
    cart.set_quantity(3, 4)
    assert cart.items == {3: 4}
    cart.set_quantity(3, 0)
    assert cart.items == {}
    cart.set_quantity(7, -2)
    assert 7 not in cart.items
    assert_mirrored(cart)


def test_remove_and_clear(storage):
    cart = Cart(storage)
    cart.add(1)
    cart.add(2)
    cart.remove(1)
    assert cart.items == {2: 1}
    assert_mirrored(cart)

    cart.clear()
    assert cart.items == {}
    assert storage.get_item(CART_KEY) is None


def test_hydrates_from_storage(storage):
    storage.set_item(CART_KEY, json.dumps({"3": 2, "8": 1}))
    cart = Cart(storage)
    assert cart.items == {3: 2, 8: 1}


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '{"x": 1}', '{"1": "many"}'])
def test_corrupt_cart_is_discarded(storage, raw):
    storage.set_item(CART_KEY, raw)
    cart = Cart(storage)
    assert cart.items == {}
    assert storage.get_item(CART_KEY) is None


def test_other_tab_changes_reload_cart(tmp_path):
    path = str(tmp_path / "shared.json")
    tab_one = Cart(LocalStorage(path))
    tab_two = Cart(LocalStorage(path))

    tab_one.add(4)
    tab_one.add(4)
    assert tab_two.items == {4: 2}

    tab_two.clear()
    assert tab_one.items == {}


def test_order_payload(storage):
    cart = Cart(storage)
    cart.add(9)
    cart.set_quantity(2, 3)
    assert cart.order_payload() == {
        "items": [
            {"product_id": 2, "quantity": 3},
            {"product_id": 9, "quantity": 1},
        ]
    }
