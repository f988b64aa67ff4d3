"""
HTTP client for the Food Share Orders API.

Wraps ``httpx.Client`` with the session's bearer token, the configured
request timeout and the client-side rules (cart checkout, document
pre-validation, cached admin capability).

Example:
    >>> client = FoodOrderClient("http://localhost:8001", cart=Cart(LocalStorage("cart.json")))
    >>> client.login("anna@example.com", "secret123")
    >>> client.cart.add(3)
    >>> order = client.checkout()
"""

import logging
import os
import re
from typing import Any, Optional
from urllib.parse import unquote

import httpx

from app.client.cart import Cart
from app.client.session import Session
from app.core.config import get_settings
from app.core.documents import resolve_mime_type, validate_document

logger = logging.getLogger(__name__)

FILENAME_STAR = re.compile(r"filename\*=UTF-8''([^;]+)")


class ApiError(Exception):
    """Non-success response from the API."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class FoodOrderClient:
    """
    Args:
        base_url: API root, ignored when ``http_client`` is given
        session: Session state (token, session storage, navigation)
        cart: Cart checked out by ``checkout``
        http_client: Pre-built httpx client (e.g. a test client)
        timeout: Seconds per request, defaults to REQUEST_TIMEOUT_SECONDS
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8001",
        session: Optional[Session] = None,
        cart: Optional[Cart] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.session = session or Session()
        self.cart = cart
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            base_url=base_url,
            timeout=timeout or get_settings().request_timeout_seconds,
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "FoodOrderClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if self.session.access_token:
            headers["Authorization"] = f"Bearer {self.session.access_token}"

        response = self._http.request(method, path, headers=headers, **kwargs)

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            if response.status_code == 401:
                self.session.navigation.require_login()
            logger.debug(f"{method} {path} failed: {response.status_code} {detail}")
            raise ApiError(response.status_code, str(detail))
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        return self._request(method, path, **kwargs).json()

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    def signup(self, email: str, password: str) -> str:
        data = self._json("POST", "/api/auth/signup", json={"email": email, "password": password})
        self.session.sign_in(data["access_token"], data["user_id"])
        return data["user_id"]

    def login(self, email: str, password: str) -> str:
        data = self._json("POST", "/api/auth/login", json={"email": email, "password": password})
        self.session.sign_in(data["access_token"], data["user_id"])
        return data["user_id"]

    def sign_out(self) -> None:
        self.session.sign_out()

    def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> dict:
        """Create the profile of the signed-in account."""
        payload = {
            "id": self.session.user_id,
            "first_name": first_name,
            "last_name": last_name,
            "name": f"{first_name} {last_name}",
            "email": email,
            "phone": phone,
            "address": address,
        }
        return self._json("POST", "/api/register", json=payload)

    def me(self) -> dict:
        return self._json("GET", "/api/auth/me")

    def is_admin(self) -> bool:
        """
        Admin check with a session-scoped cache.

        A valid cached capability answers without a request; otherwise the
        server is asked and a granted capability is cached until it expires.
        A denial or any failure of the check clears the cache and starts the
        redirect to the login page.
        """
        if not self.session.is_authenticated:
            return self._deny_admin("no_session")
        if self.session.admin_capability.get(self.session.user_id) is not None:
            return True

        try:
            data = self._json("GET", "/api/auth/admin-check")
        except (ApiError, httpx.HTTPError) as e:
            logger.warning(f"Admin check failed: {e}")
            return self._deny_admin("check_failed")

        if not data["authorized"]:
            return self._deny_admin(data.get("reason"))

        self.session.admin_capability.store(
            data["user_id"], data["capability_token"], data["expires_at"]
        )
        return True

    def _deny_admin(self, reason: Optional[str]) -> bool:
        logger.info(f"Admin check denied: {reason}")
        self.session.admin_capability.clear()
        self.session.navigation.require_login()
        return False

    # =========================================================================
    # CATALOG & ORDERS
    # =========================================================================

    def categories(self) -> list[dict]:
        return self._json("GET", "/api/categories")

    def products(self, category_id: Optional[int] = None) -> list[dict]:
        params = {"category_id": category_id} if category_id is not None else None
        return self._json("GET", "/api/products", params=params)

    def checkout(self) -> dict:
        """
        Submit the cart as one order.

        The cart is cleared only after the server accepted the order.
        """
        if self.cart is None or self.cart.is_empty():
            raise ValueError("Cart is empty")

        order = self._json("POST", "/api/orders", json=self.cart.order_payload())
        self.cart.clear()
        logger.info(f"Order #{order['id']} placed")
        return order

    def orders(self) -> list[dict]:
        return self._json("GET", "/api/orders")["orders"]

    def has_processing_order(self) -> bool:
        return self._json("GET", "/api/orders/processing")["has_processing_order"]

    # =========================================================================
    # DOCUMENTS
    # =========================================================================

    def upload_document(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> dict:
        """
        Raises:
            DocumentValidationError: Before any request, if the file breaks the size/type rules
            ApiError: If the server rejects the upload
        """
        mime_type = validate_document(filename, len(data), content_type)
        response = self._json(
            "POST",
            "/api/upload",
            files={"file": (os.path.basename(filename), data, mime_type)},
            data={"user_id": user_id or self.session.user_id or ""},
        )
        return response["document"]

    def upload_document_file(self, path: str, user_id: Optional[str] = None) -> dict:
        with open(path, "rb") as fh:
            data = fh.read()
        return self.upload_document(path, data, resolve_mime_type(path, None), user_id)

    def documents(self) -> list[dict]:
        return self._json("GET", "/api/documents")

    def download_document(self, document_id: int) -> tuple[str, bytes]:
        """Return (filename, content) of a document."""
        response = self._request("GET", "/api/documents/download", params={"id": document_id})
        return _attachment_name(response, f"document-{document_id}"), response.content

    def delete_document(self, document_id: int) -> bool:
        """True when something was deleted, False when it was already gone."""
        return self._json("DELETE", f"/api/documents/{document_id}")["deleted"]

    # =========================================================================
    # ADMIN
    # =========================================================================

    def admin_orders(
        self,
        status: Optional[str] = None,
        sort: str = "desc",
        query: Optional[str] = None,
    ) -> list[dict]:
        return self._json("GET", "/api/admin/orders", params=_view_params(status, sort, query))["orders"]

    def update_order_status(self, order_id: int, status: str) -> dict:
        return self._json("PATCH", f"/api/admin/orders/{order_id}/status", json={"status": status})

    def save_quantities(self, order_id: int, quantities: dict[int, int]) -> dict:
        body = {"quantities": {str(item_id): qty for item_id, qty in quantities.items()}}
        return self._json("PUT", f"/api/admin/orders/{order_id}/items", json=body)

    def export_orders(
        self,
        status: Optional[str] = None,
        sort: str = "desc",
        query: Optional[str] = None,
    ) -> tuple[str, bytes]:
        response = self._request("GET", "/api/admin/orders/export", params=_view_params(status, sort, query))
        return _attachment_name(response, "orders.xlsx"), response.content


def _view_params(status: Optional[str], sort: str, query: Optional[str]) -> dict:
    params = {"sort": sort}
    if status:
        params["status"] = status
    if query:
        params["q"] = query
    return params


def _attachment_name(response: httpx.Response, default: str) -> str:
    match = FILENAME_STAR.search(response.headers.get("content-disposition", ""))
    return unquote(match.group(1)) if match else default
