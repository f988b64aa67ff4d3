"""
Shopping cart kept on the client.

Maps product id to quantity and mirrors every change into local storage
under the ``cart`` key, so the cart survives reloads and is shared by all
tabs. Quantities are always at least 1; an entry that would drop below 1
is removed.
"""

import json
import logging
from typing import Optional

from app.client.storage import LocalStorage, StorageEvent

logger = logging.getLogger(__name__)

CART_KEY = "cart"


class Cart:
    """Client cart with write-through persistence."""

    def __init__(self, storage: LocalStorage):
        self._storage = storage
        self._items: dict[int, int] = {}
        self.reload()
        storage.add_listener(self._on_storage_change)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    @staticmethod
    def _parse(raw: str) -> dict[int, int]:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("cart must be a JSON object")
        items = {}
        for product_id, quantity in data.items():
            if isinstance(quantity, bool) or not isinstance(quantity, int):
                raise ValueError(f"bad quantity for product {product_id}")
            if quantity >= 1:
                items[int(product_id)] = quantity
        return items

    def reload(self) -> None:
        """Hydrate from storage; corrupt data is dropped and the cart starts empty."""
        raw = self._storage.get_item(CART_KEY)
        if raw is None:
            self._items = {}
            return
        try:
            self._items = self._parse(raw)
        except ValueError as e:
            logger.warning(f"Discarding corrupt stored cart: {e}")
            self._items = {}
            self._storage.remove_item(CART_KEY)

    def _persist(self) -> None:
        payload = {str(pid): qty for pid, qty in self._items.items()}
        self._storage.set_item(CART_KEY, json.dumps(payload))

    def _on_storage_change(self, event: StorageEvent) -> None:
        if event.key in (CART_KEY, None):
            self.reload()

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    @property
    def items(self) -> dict[int, int]:
        return dict(self._items)

    def quantity(self, product_id: int) -> int:
        return self._items.get(product_id, 0)

    @property
    def total_units(self) -> int:
        return sum(self._items.values())

    def is_empty(self) -> bool:
        return not self._items

    def add(self, product_id: int) -> int:
        self._items[product_id] = self._items.get(product_id, 0) + 1
        self._persist()
        return self._items[product_id]

    def decrement(self, product_id: int) -> int:
        current = self._items.get(product_id)
        if current is None:
            return 0
        if current <= 1:
            del self._items[product_id]
            self._persist()
            return 0
        self._items[product_id] = current - 1
        self._persist()
        return current - 1

    def set_quantity(self, product_id: int, quantity: int) -> None:
        if quantity < 1:
            self.remove(product_id)
            return
        self._items[product_id] = quantity
        self._persist()

    def remove(self, product_id: int) -> None:
        if self._items.pop(product_id, None) is not None:
            self._persist()

    def clear(self) -> None:
        self._items = {}
        self._storage.remove_item(CART_KEY)

    def order_payload(self) -> dict:
        """Body for ``POST /api/orders``."""
        return {
            "items": [
                {"product_id": pid, "quantity": qty}
                for pid, qty in sorted(self._items.items())
            ]
        }

    def stored_items(self) -> Optional[dict[int, int]]:
        """What local storage currently holds (None when the key is absent)."""
        raw = self._storage.get_item(CART_KEY)
        return None if raw is None else self._parse(raw)
