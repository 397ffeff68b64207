import json
import socket
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .errors import NetworkFailure


def _rows(res: Any, key: str) -> list:
    # The shop server answers list endpoints with a bare array; tolerate the
    # {"<key>": [...]} envelope used by paginated deployments too.
    if isinstance(res, list):
        return res
    if isinstance(res, dict):
        return list(res.get(key) or [])
    return []


class RemoteClient:
    """JSON client for the shop server REST API."""

    def __init__(self, base_url: str, token: str = "", timeout_s: float = 10.0):
        self.base_url = (base_url or "").rstrip("/")
        self.token = (token or "").strip()
        self.timeout_s = float(timeout_s or 10.0)

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, url: str, data: Optional[bytes] = None, headers: Optional[dict] = None) -> bytes:
        req = Request(url, data=data, headers=headers or {}, method=method)
        try:
            with urlopen(req, timeout=self.timeout_s) as resp:
                return resp.read() if resp else b""
        except HTTPError as ex:
            # Non-2xx. Capture response body if possible.
            try:
                body = ex.read().decode("utf-8")
            except Exception:
                body = ""
            msg = f"http {ex.code} {ex.reason or ''}".strip()
            if body:
                msg = f"{msg}: {body[:500]}"
            raise NetworkFailure(msg, status=ex.code, url=url) from ex
        except (URLError, socket.timeout, ConnectionError) as ex:
            raise NetworkFailure(f"{method} {url} failed: {ex}", url=url) from ex

    def request_json(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        data = None
        if payload is not None:
            data = json.dumps(payload, default=str).encode("utf-8")
            headers["Content-Type"] = "application/json"
        body = self._request(method, url, data=data, headers=headers)
        if not body:
            return {}
        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as ex:
            raise NetworkFailure(f"invalid JSON from {url}", url=url) from ex

    def get_json(self, path: str) -> Any:
        return self.request_json("GET", path)

    def post_json(self, path: str, payload: Any) -> Any:
        return self.request_json("POST", path, payload)

    def patch_json(self, path: str, payload: Any) -> Any:
        return self.request_json("PATCH", path, payload)

    def delete(self, path: str) -> Any:
        return self.request_json("DELETE", path)

    def put_bytes(self, url: str, data: bytes, content_type: str) -> None:
        # Presigned object-storage URLs are absolute and must not carry our auth header.
        self._request("PUT", url, data=data or b"", headers={"Content-Type": content_type or "application/octet-stream"})

    # Catalog.

    def list_products(self) -> list:
        return _rows(self.get_json("/api/products"), "products")

    def create_product(self, data: dict) -> dict:
        return self.post_json("/api/products", data) or {}

    def update_product(self, product_id: str, patch: dict) -> dict:
        return self.patch_json(f"/api/products/{quote(str(product_id), safe='')}", patch) or {}

    def list_categories(self) -> list:
        return _rows(self.get_json("/api/categories"), "categories")

    def create_category(self, data: dict) -> dict:
        return self.post_json("/api/categories", data) or {}

    def update_category(self, category_id: str, patch: dict) -> dict:
        return self.patch_json(f"/api/categories/{quote(str(category_id), safe='')}", patch) or {}

    def delete_category(self, category_id: str) -> None:
        self.delete(f"/api/categories/{quote(str(category_id), safe='')}")

    # Sales.

    def list_transactions(self) -> list:
        return _rows(self.get_json("/api/transactions"), "transactions")

    def submit_transaction(self, payload: dict) -> dict:
        return self.post_json("/api/transactions", payload) or {}

    # Storefront orders.

    def list_orders(self) -> list:
        return _rows(self.get_json("/api/orders"), "orders")

    def create_order(self, payload: dict) -> dict:
        return self.post_json("/api/orders", payload) or {}

    def update_order_status(self, order_id: str, status: str) -> dict:
        return self.patch_json(f"/api/orders/{quote(str(order_id), safe='')}/status", {"status": status}) or {}

    # Uploads.

    def request_upload_url(self, filename: str, content_type: str) -> dict:
        return self.post_json("/api/r2/request-url", {"filename": filename, "contentType": content_type}) or {}
