from datetime import datetime, timezone
from typing import List, Optional

from .barcodes import normalize_barcode
from .errors import NetworkFailure, NotFound, ValidationFailure
from .logs import json_log
from .models import Product, ProductIn, ProductUpdate, new_id
from .store import LocalStore
from .sync import SyncEngine

NULLABLE_FIELDS = {"video_url", "sort_order"}


class ProductManager:
    """
    Product list and writes that work the same online and offline.

    Writes always land in the local cache first. When online they are also
    sent to the server; a server failure is logged and the cache write stands
    until the next catalog pull replaces it.
    """

    def __init__(self, store: LocalStore, sync: SyncEngine, max_age_s: float = 300):
        self.store = store
        self.sync = sync
        self.max_age_s = float(max_age_s)

    def _is_stale(self, now: Optional[datetime] = None) -> bool:
        last = self.sync.last_synced_at()
        if last is None:
            return True
        now = now or datetime.now(timezone.utc)
        return (now - last).total_seconds() > self.max_age_s

    def list_products(self) -> List[Product]:
        if self.sync.online and self._is_stale():
            # Freshest available; on failure the cache is the fallback.
            self.sync.refresh_catalog_quietly()
        return self.store.query("products")

    def get_product(self, product_id: str) -> Product:
        product = self.store.get("products", product_id)
        if product is None:
            raise NotFound("product", product_id)
        return product

    def find_by_barcode(self, code: str) -> Product:
        product = self.store.find_product_by_barcode(code)
        if product is None:
            raise NotFound("product", str(code))
        return product

    def search(self, query: str = "", category: str = "") -> List[Product]:
        q = (query or "").strip().lower()
        key = normalize_barcode(q) if q else ""
        out = []
        for p in self.store.query("products"):
            if category and p.category != category:
                continue
            if q and not (
                q in p.name.lower()
                or q in p.author.lower()
                or q in p.barcode
                or (key and key == normalize_barcode(p.barcode))
            ):
                continue
            out.append(p)
        return out

    def _check_barcode_unique(self, barcode: str, product_id: Optional[str] = None) -> None:
        if not normalize_barcode(barcode):
            return
        existing = self.store.find_product_by_barcode(barcode)
        if existing is not None and existing.id != product_id:
            raise ValidationFailure(f"barcode already used by {existing.name}")

    def _push(self, action: str, product_id: str, fn, *args) -> Optional[dict]:
        if not self.sync.online:
            json_log("info", "products.deferred", action=action, product_id=product_id)
            return None
        try:
            return fn(*args)
        except NetworkFailure as ex:
            json_log("warning", "products.remote_failed", action=action, product_id=product_id, exc=ex)
            return None

    def adjust_stock(self, product_id: str, delta: int) -> Product:
        product = self.store.adjust_stock(product_id, int(delta))
        if product is None:
            raise NotFound("product", product_id)
        self._push("stock", product_id, self.sync.remote.update_product, product_id, {"stock": product.stock})
        return product

    def create_product(self, data: ProductIn) -> Product:
        if not (data.name or "").strip():
            raise ValidationFailure("name is required")
        self._check_barcode_unique(data.barcode)
        product = Product(id=new_id(), **data.model_dump())
        self.store.put("products", product)
        created = self._push("create", product.id, self.sync.remote.create_product, data.to_wire())
        server_id = str((created or {}).get("id") or "")
        if server_id and server_id != product.id:
            local_id = product.id
            product = product.model_copy(update={"id": server_id})
            self.store.rekey_product(local_id, product)
        return product

    def update_product(self, product_id: str, data: ProductUpdate) -> Product:
        current = self.get_product(product_id)
        patch = {
            k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None or k in NULLABLE_FIELDS
        }
        if not patch:
            return current
        if "name" in patch and not (patch["name"] or "").strip():
            raise ValidationFailure("name cannot be empty")
        if "barcode" in patch:
            self._check_barcode_unique(patch["barcode"] or "", product_id)
        updated = current.model_copy(update=patch)
        self.store.put("products", updated)
        self._push(
            "update",
            product_id,
            self.sync.remote.update_product,
            product_id,
            ProductUpdate(**patch).to_wire(exclude_unset=True),
        )
        return updated
