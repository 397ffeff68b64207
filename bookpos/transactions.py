from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError

from .errors import NotFound, ValidationFailure
from .logs import json_log
from .models import LineItem, Product, Transaction, new_id, parse_iso, utcnow_iso
from .store import LocalStore
from .sync import SyncEngine


PAYMENT_METHODS = {"cash", "card"}


def _money(v: float) -> float:
    return round(float(v or 0), 2)


def _line_item(raw) -> LineItem:
    # Accepts LineItem, cart items (objects with product/quantity/discount) or dicts.
    if isinstance(raw, dict):
        product, quantity, discount = raw.get("product"), raw.get("quantity"), raw.get("discount")
    else:
        product, quantity, discount = raw.product, raw.quantity, raw.discount
    if not isinstance(product, Product):
        product = Product.model_validate(product or {})
    # Snapshot: later edits to the live product must not reach the receipt.
    return LineItem(product=product.model_copy(deep=True), quantity=quantity, discount=discount or 0)


def build_line_items(raw_items: Iterable) -> List[LineItem]:
    items = []
    try:
        for raw in raw_items or []:
            items.append(_line_item(raw))
    except ValidationError as ex:
        raise ValidationFailure(f"invalid line item: {ex.errors()[0].get('msg')}") from ex
    if not items:
        raise ValidationFailure("empty cart")
    for it in items:
        if it.discount > it.gross:
            raise ValidationFailure(f"discount exceeds line total for {it.product.name or it.product.id}")
    return items


class TransactionManager:
    """Records sales, reverses them, and derives statistics from the local history."""

    def __init__(self, store: LocalStore, sync: SyncEngine):
        self.store = store
        self.sync = sync

    def record_sale(self, line_items: Iterable, total: Optional[float] = None, payment_method: str = "cash") -> Transaction:
        method = (payment_method or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationFailure(f"unsupported payment method: {payment_method}")
        items = [self._at_current_stock(it) for it in build_line_items(line_items)]
        net = sum(it.net for it in items)
        total_amount = _money(net if total is None else total)
        if total_amount < 0:
            raise ValidationFailure("total cannot be negative")

        txn = Transaction(
            id=new_id(),
            date=utcnow_iso(),
            items=items,
            total_amount=total_amount,
            total_profit=_money(sum(it.profit for it in items)),
            payment_method=method,
            status="completed",
            synced=False,
        )
        # Transaction row and stock decrement commit together or not at all.
        self.store.insert_sale(txn)
        json_log(
            "info",
            "sale.recorded",
            transaction_id=txn.id,
            total=txn.total_amount,
            items=len(txn.items),
            payment_method=txn.payment_method,
        )
        # Never block checkout on the server.
        self.sync.request_push()
        return txn

    def _at_current_stock(self, it: LineItem) -> LineItem:
        # The snapshot records the stock level at sale time; the server stock
        # update pushed later is derived from it.
        live = self.store.get("products", it.product.id)
        if live is None:
            return it
        return it.model_copy(update={"product": it.product.model_copy(update={"stock": live.stock})})

    def _reverse(self, txn_id: str, new_status: str) -> Tuple[str, Transaction]:
        outcome, txn = self.store.reverse_transaction(txn_id, new_status)
        if outcome == "not_found":
            raise NotFound("transaction", txn_id)
        if outcome == "conflict":
            raise ValidationFailure(f"transaction is {txn.status}; cannot mark {new_status}")
        if outcome == "unchanged":
            return f"already_{new_status}", txn
        json_log("info", f"sale.{new_status}", transaction_id=txn_id, items=len(txn.items))
        return new_status, txn

    def void_sale(self, txn_id: str) -> Tuple[str, Transaction]:
        """Returns ("voided" | "already_voided", transaction). Stock is restored at most once."""
        return self._reverse(txn_id, "voided")

    def refund_sale(self, txn_id: str) -> Tuple[str, Transaction]:
        return self._reverse(txn_id, "refunded")

    def get(self, txn_id: str) -> Transaction:
        txn = self.store.get("transactions", txn_id)
        if txn is None:
            raise NotFound("transaction", txn_id)
        return txn

    def list_transactions(self) -> List[Transaction]:
        return self.store.list_transactions()

    def _completed_with_dates(self):
        for t in self.store.list_transactions():
            if t.status != "completed":
                continue
            try:
                yield t, parse_iso(t.date)
            except ValueError:
                continue

    def get_statistics(self, now: Optional[datetime] = None) -> dict:
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        today = now.date()
        today_total = 0.0
        today_count = 0
        month_total = 0.0
        items_sold = 0
        for t, at in self._completed_with_dates():
            items_sold += sum(it.quantity for it in t.items)
            if at.year == today.year and at.month == today.month and at <= now:
                month_total += t.total_amount
            if at.date() == today:
                today_total += t.total_amount
                today_count += 1
        return {
            "today_total": _money(today_total),
            "today_count": today_count,
            "month_total": _money(month_total),
            "total_items_sold": items_sold,
        }

    def sold_items_today(self, now: Optional[datetime] = None) -> List[dict]:
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        agg = {}
        for t, at in self._completed_with_dates():
            if at.date() != now.date():
                continue
            for it in t.items:
                row = agg.setdefault(
                    it.product.id,
                    {"product_id": it.product.id, "name": it.product.name, "author": it.product.author, "quantity": 0, "revenue": 0.0},
                )
                row["quantity"] += it.quantity
                row["revenue"] = _money(row["revenue"] + it.net)
        return sorted(agg.values(), key=lambda r: (-r["quantity"], r["name"]))
