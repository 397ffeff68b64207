"""
Offline-first sync between the local store and the shop server.

- Catalog (products + categories): the server is authoritative, so a pull
  replaces both collections wholesale. A failed fetch leaves the cache as it was.
- Transactions: the device is authoritative for sales recorded offline until
  they are pushed. Pending rows carry `synced = false`; each one is submitted
  independently and only the failing ones stay pending. Server-side history is
  merged additively and never overwrites a local row.
"""

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from .connectivity import Connectivity
from .errors import NetworkFailure
from .logs import json_log
from .models import Category, LineItem, Product, Transaction, parse_iso, utcnow_iso
from .remote import RemoteClient
from .store import META_CATALOG_VERSION, META_LAST_SYNC, LocalStore
from .tasks import TaskQueue

TASK_PUSH = "sync.push"
TASK_PULL = "sync.pull"


@dataclass
class CatalogSnapshot:
    products: List[Product]
    categories: List[Category]
    version: str


@dataclass
class PushResult:
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    # Product ids whose remote stock update failed after the sale was accepted.
    stock_errors: List[str] = field(default_factory=list)
    # Sales voided or refunded before they ever reached the server.
    local_only: List[str] = field(default_factory=list)
    skipped: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


def _server_line_item(raw: dict) -> LineItem:
    if isinstance(raw.get("product"), dict):
        return LineItem.model_validate(raw)
    product = Product(
        id=str(raw.get("productId") or raw.get("product_id") or ""),
        name=str(raw.get("productName") or raw.get("product_name") or ""),
        price=float(raw.get("price") or 0),
    )
    return LineItem(product=product, quantity=int(raw.get("quantity") or 1), discount=float(raw.get("discount") or 0))


def server_transaction(raw: dict) -> Transaction:
    """Build a local (already synced) Transaction from a server history row."""
    return Transaction(
        id=str(raw["id"]),
        date=str(raw.get("date") or raw.get("createdAt") or utcnow_iso()),
        items=[_server_line_item(it) for it in (raw.get("items") or [])],
        total_amount=float(raw.get("totalAmount") or 0),
        total_profit=float(raw.get("totalProfit") or 0),
        payment_method=raw.get("paymentMethod") or "cash",
        status=raw.get("status") or "completed",
        synced=True,
    )


class SyncEngine:
    def __init__(self, store: LocalStore, remote: RemoteClient, connectivity: Connectivity, queue: TaskQueue):
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.queue = queue
        # Manual sync and the background queue must not submit the same sale twice.
        self._push_lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def online(self) -> bool:
        return self.connectivity.online

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.connectivity.subscribe(self._on_connectivity_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            return
        # Reconnect: flush the sales made offline first, then refresh the catalog.
        self.queue.submit(TASK_PUSH, self.push_pending_transactions)
        self.queue.submit(TASK_PULL, self.refresh_catalog_quietly)

    def request_push(self) -> bool:
        if not self.online:
            return False
        return self.queue.submit(TASK_PUSH, self.push_pending_transactions)

    def request_pull(self) -> bool:
        if not self.online:
            return False
        return self.queue.submit(TASK_PULL, self.refresh_catalog_quietly)

    # Catalog.

    def pull_catalog(self) -> CatalogSnapshot:
        try:
            raw_products = self.remote.list_products()
            raw_categories = self.remote.list_categories()
        except NetworkFailure as ex:
            json_log("warning", "sync.pull.failed", exc=ex)
            raise
        try:
            products = [Product.model_validate(p) for p in raw_products]
            categories = [Category.model_validate(c) for c in raw_categories]
        except ValidationError as ex:
            json_log("warning", "sync.pull.invalid_payload", exc=ex)
            raise NetworkFailure(f"invalid catalog payload: {ex.error_count()} errors") from ex

        version = utcnow_iso()
        self.store.replace_catalog(products, categories, version)
        json_log("info", "sync.pull.done", products=len(products), categories=len(categories), version=version)
        return CatalogSnapshot(products=products, categories=categories, version=version)

    def refresh_catalog_quietly(self) -> Optional[CatalogSnapshot]:
        try:
            return self.pull_catalog()
        except NetworkFailure:
            # Already logged; background refreshes keep serving the cache.
            return None

    def last_synced_at(self) -> Optional[datetime]:
        raw = self.store.get_meta(META_LAST_SYNC)
        if not raw:
            return None
        try:
            return parse_iso(raw)
        except ValueError:
            return None

    # Transactions.

    def push_pending_transactions(self) -> PushResult:
        if not self.online:
            return PushResult(skipped=True)
        result = PushResult()
        with self._push_lock:
            for txn in self.store.pending_transactions():
                if txn.status != "completed":
                    # Reversed while offline: the server never saw the sale, so
                    # there is nothing to submit and no stock to move.
                    self.store.mark_synced(txn.id)
                    result.local_only.append(txn.id)
                    json_log("info", "sync.push.local_only", transaction_id=txn.id, status=txn.status)
                    continue
                try:
                    self.remote.submit_transaction(txn.to_server_payload())
                except NetworkFailure as ex:
                    result.failed.append(txn.id)
                    json_log("warning", "sync.push.failed", transaction_id=txn.id, exc=ex)
                    continue
                self.store.mark_synced(txn.id)
                result.sent.append(txn.id)
                for it in txn.items:
                    stock = max(0, it.product.stock - it.quantity)
                    try:
                        self.remote.update_product(it.product.id, {"stock": stock})
                    except NetworkFailure as ex:
                        result.stock_errors.append(it.product.id)
                        json_log(
                            "warning",
                            "sync.push.stock_failed",
                            transaction_id=txn.id,
                            product_id=it.product.id,
                            exc=ex,
                        )
        if result.sent or result.failed or result.local_only:
            json_log(
                "info",
                "sync.push.done",
                sent=len(result.sent),
                failed=len(result.failed),
                local_only=len(result.local_only),
            )
        return result

    def merge_server_transactions(self) -> int:
        rows = self.remote.list_transactions()
        txns = []
        for raw in rows:
            try:
                txns.append(server_transaction(raw))
            except (KeyError, ValueError, TypeError, AttributeError) as ex:
                raw_id = raw.get("id") if isinstance(raw, dict) else None
                json_log("warning", "sync.merge.skipped", transaction_id=raw_id, exc=ex)
        inserted = self.store.insert_missing_transactions(txns)
        if inserted:
            json_log("info", "sync.merge.done", inserted=inserted, seen=len(txns))
        return inserted

    # Trigger points.

    def initialize(self) -> Tuple[List[Product], List[Category]]:
        """
        App start. An empty cache while online is filled synchronously;
        otherwise the cache is served at once and refreshed in the background.
        """
        products = self.store.query("products")
        categories = self.store.query("categories")
        if not products and self.online:
            snap = self.pull_catalog()
            return snap.products, snap.categories
        self.request_pull()
        return products, categories

    def sync_now(self) -> dict:
        """
        Manual refresh: push, pull, merge. Each step reports its own failure.

        The pull runs after the push so the cached stock includes the sales
        that were waiting.
        """
        report = {"ok": True, "online": self.online}
        if not self.online:
            report.update(ok=False, error="offline")
            return report

        push = self.push_pending_transactions()
        report["push"] = push.as_dict()
        if push.failed:
            report["ok"] = False

        try:
            snap = self.pull_catalog()
            report["catalog"] = {"products": len(snap.products), "categories": len(snap.categories), "version": snap.version}
        except NetworkFailure as ex:
            report["ok"] = False
            report["catalog"] = {"error": str(ex)}

        try:
            report["merged"] = self.merge_server_transactions()
        except NetworkFailure as ex:
            report["ok"] = False
            report["merged"] = {"error": str(ex)}
        return report

    def status(self) -> dict:
        return {
            "online": self.online,
            "last_sync": self.store.get_meta(META_LAST_SYNC),
            "catalog_version": self.store.get_meta(META_CATALOG_VERSION),
            "pending_transactions": len(self.store.pending_transactions()),
            "queued_tasks": self.queue.pending(),
        }
