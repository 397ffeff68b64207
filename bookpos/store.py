import json
import os
import secrets
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from .barcodes import normalize_barcode
from .models import Category, LineItem, Product, SyncMeta, Transaction, utcnow_iso

SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  author TEXT NOT NULL DEFAULT '',
  category TEXT NOT NULL DEFAULT '',
  image TEXT NOT NULL DEFAULT '',
  price REAL NOT NULL DEFAULT 0,
  cost_price REAL NOT NULL DEFAULT 0,
  stock INTEGER NOT NULL DEFAULT 0,
  barcode TEXT NOT NULL DEFAULT '',
  barcode_key TEXT NOT NULL DEFAULT '',
  video_url TEXT,
  sort_order INTEGER,
  updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_products_barcode_key ON products(barcode_key);

CREATE TABLE IF NOT EXISTS categories (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  icon TEXT NOT NULL DEFAULT '',
  color TEXT NOT NULL DEFAULT '',
  updated_at TEXT
);

CREATE TABLE IF NOT EXISTS transactions (
  id TEXT PRIMARY KEY,
  date TEXT NOT NULL,
  items_json TEXT NOT NULL,
  total_amount REAL NOT NULL,
  total_profit REAL NOT NULL DEFAULT 0,
  payment_method TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'completed',
  synced INTEGER NOT NULL DEFAULT 0,
  updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_synced ON transactions(synced);

CREATE TABLE IF NOT EXISTS sync_meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS local_sessions (
  token TEXT PRIMARY KEY,
  created_at TEXT NOT NULL,
  expires_at TEXT
);
"""

META_LAST_SYNC = "lastSync"
META_CATALOG_VERSION = "catalogVersion"


def _product_row(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "author": p.author,
        "category": p.category,
        "image": p.image,
        "price": p.price,
        "cost_price": p.cost_price,
        "stock": p.stock,
        "barcode": p.barcode,
        "barcode_key": normalize_barcode(p.barcode),
        "video_url": p.video_url,
        "sort_order": p.sort_order,
        "updated_at": utcnow_iso(),
    }


def _row_product(r) -> Product:
    return Product(
        id=r["id"],
        name=r["name"],
        author=r["author"],
        category=r["category"],
        image=r["image"],
        price=r["price"],
        cost_price=r["cost_price"],
        stock=r["stock"],
        barcode=r["barcode"],
        video_url=r["video_url"],
        sort_order=r["sort_order"],
    )


def _category_row(c: Category) -> dict:
    return {"id": c.id, "name": c.name, "icon": c.icon, "color": c.color, "updated_at": utcnow_iso()}


def _row_category(r) -> Category:
    return Category(id=r["id"], name=r["name"], icon=r["icon"], color=r["color"])


def _transaction_row(t: Transaction) -> dict:
    return {
        "id": t.id,
        "date": t.date,
        "items_json": json.dumps([it.model_dump(mode="json") for it in t.items]),
        "total_amount": t.total_amount,
        "total_profit": t.total_profit,
        "payment_method": t.payment_method,
        "status": t.status,
        "synced": 1 if t.synced else 0,
        "updated_at": utcnow_iso(),
    }


def _row_transaction(r) -> Transaction:
    return Transaction(
        id=r["id"],
        date=r["date"],
        items=[LineItem.model_validate(it) for it in json.loads(r["items_json"] or "[]")],
        total_amount=r["total_amount"],
        total_profit=r["total_profit"],
        payment_method=r["payment_method"],
        status=r["status"],
        synced=bool(r["synced"]),
    )


def _meta_row(m: SyncMeta) -> dict:
    return {"key": m.key, "value": m.value, "updated_at": m.updated_at}


def _row_meta(r) -> SyncMeta:
    return SyncMeta(key=r["key"], value=r["value"], updated_at=r["updated_at"])


# collection name -> (table, key column, entity -> row, row -> entity, default ORDER BY)
COLLECTIONS = {
    "products": ("products", "id", _product_row, _row_product, "sort_order IS NULL, sort_order, name"),
    "categories": ("categories", "id", _category_row, _row_category, "name"),
    "transactions": ("transactions", "id", _transaction_row, _row_transaction, "date DESC"),
    "syncMeta": ("sync_meta", "key", _meta_row, _row_meta, "key"),
}


def _upsert_sql(table: str, key: str, cols: List[str]) -> str:
    updates = ",\n  ".join(f"{c}=excluded.{c}" for c in cols if c != key)
    return (
        f"INSERT INTO {table} ({', '.join(cols)})\n"
        f"VALUES ({', '.join('?' for _ in cols)})\n"
        f"ON CONFLICT({key}) DO UPDATE SET\n  {updates}"
    )


class LocalStore:
    """
    On-device SQLite cache for products, categories, transactions and sync meta.

    Every call opens its own connection so the store can be shared between the
    HTTP workers and the background sync thread. Multi-row changes that must
    not be observed half-done run inside a single SQLite transaction.
    """

    def __init__(self, path: str):
        self.path = path

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init(self) -> None:
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)

    # Generic collection access.

    def _collection(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"unknown collection: {collection}") from None

    def _put_rows(self, conn, collection: str, entities: Iterable) -> int:
        table, key, to_row, _, _ = self._collection(collection)
        rows = [to_row(e) for e in entities]
        if not rows:
            return 0
        cols = list(rows[0].keys())
        conn.executemany(_upsert_sql(table, key, cols), [tuple(r[c] for c in cols) for r in rows])
        return len(rows)

    def put(self, collection: str, entity) -> None:
        with self._connect() as conn:
            self._put_rows(conn, collection, [entity])

    def bulk_put(self, collection: str, entities: Iterable) -> int:
        with self._connect() as conn:
            return self._put_rows(conn, collection, entities)

    def get(self, collection: str, entity_id: str):
        table, key, _, from_row, _ = self._collection(collection)
        with self._connect() as conn:
            row = conn.execute(f"SELECT * FROM {table} WHERE {key} = ?", (entity_id,)).fetchone()
            return from_row(row) if row else None

    def query(self, collection: str, predicate: Optional[Callable] = None) -> list:
        table, _, _, from_row, order_by = self._collection(collection)
        with self._connect() as conn:
            rows = conn.execute(f"SELECT * FROM {table} ORDER BY {order_by}").fetchall()
        out = [from_row(r) for r in rows]
        if predicate is None:
            return out
        return [e for e in out if predicate(e)]

    def delete(self, collection: str, entity_id: str) -> bool:
        table, key, _, _, _ = self._collection(collection)
        with self._connect() as conn:
            cur = conn.execute(f"DELETE FROM {table} WHERE {key} = ?", (entity_id,))
            return cur.rowcount > 0

    def clear(self, collection: str) -> None:
        table, _, _, _, _ = self._collection(collection)
        with self._connect() as conn:
            conn.execute(f"DELETE FROM {table}")

    def count(self, collection: str) -> int:
        table, _, _, _, _ = self._collection(collection)
        with self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(1) FROM {table}").fetchone()
            return int(row[0] if row else 0)

    # Sync meta.

    def get_meta(self, key: str) -> Optional[str]:
        meta = self.get("syncMeta", key)
        return meta.value if meta else None

    def set_meta(self, key: str, value: str) -> None:
        self.put("syncMeta", SyncMeta(key=key, value=value, updated_at=utcnow_iso()))

    # Catalog.

    def replace_catalog(self, products: List[Product], categories: List[Category], version: str) -> None:
        """Clear and refill products and categories; all-or-nothing."""
        now = utcnow_iso()
        with self._connect() as conn:
            conn.execute("DELETE FROM products")
            self._put_rows(conn, "products", products)
            conn.execute("DELETE FROM categories")
            self._put_rows(conn, "categories", categories)
            self._put_rows(
                conn,
                "syncMeta",
                [
                    SyncMeta(key=META_CATALOG_VERSION, value=version, updated_at=now),
                    SyncMeta(key=META_LAST_SYNC, value=version, updated_at=now),
                ],
            )

    def find_product_by_barcode(self, code: str) -> Optional[Product]:
        key = normalize_barcode(code)
        if not key:
            return None
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM products WHERE barcode_key = ? ORDER BY id LIMIT 1",
                (key,),
            ).fetchone()
            return _row_product(row) if row else None

    def adjust_stock(self, product_id: str, delta: int) -> Optional[Product]:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE products SET stock = MAX(0, stock + ?), updated_at = ? WHERE id = ?",
                (int(delta), utcnow_iso(), product_id),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
            return _row_product(row)

    def rekey_product(self, old_id: str, product: Product) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM products WHERE id = ?", (old_id,))
            self._put_rows(conn, "products", [product])

    # Transactions.

    def insert_sale(self, txn: Transaction) -> None:
        """Persist a new sale and take its quantities out of stock (never below 0)."""
        now = utcnow_iso()
        row = _transaction_row(txn)
        cols = list(row.keys())
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO transactions ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
                tuple(row[c] for c in cols),
            )
            for it in txn.items:
                conn.execute(
                    "UPDATE products SET stock = MAX(0, stock - ?), updated_at = ? WHERE id = ?",
                    (it.quantity, now, it.product.id),
                )

    def reverse_transaction(self, txn_id: str, new_status: str) -> Tuple[str, Optional[Transaction]]:
        """
        Move a completed sale to `new_status` and put its quantities back in stock.

        Returns (outcome, transaction) where outcome is one of:
        - "not_found"
        - "unchanged": already in `new_status`, nothing restocked
        - "conflict": in another non-completed status
        - "reversed"
        """
        now = utcnow_iso()
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM transactions WHERE id = ?", (txn_id,)).fetchone()
            if not row:
                return "not_found", None
            txn = _row_transaction(row)
            if txn.status == new_status:
                return "unchanged", txn
            if txn.status != "completed":
                return "conflict", txn
            # The status guard makes a concurrent second call a no-op.
            cur = conn.execute(
                "UPDATE transactions SET status = ?, updated_at = ? WHERE id = ? AND status = 'completed'",
                (new_status, now, txn_id),
            )
            if cur.rowcount == 0:
                return "unchanged", txn
            for it in txn.items:
                conn.execute(
                    "UPDATE products SET stock = stock + ?, updated_at = ? WHERE id = ?",
                    (it.quantity, now, it.product.id),
                )
            return "reversed", txn.model_copy(update={"status": new_status})

    def list_transactions(self) -> List[Transaction]:
        return self.query("transactions")

    def pending_transactions(self) -> List[Transaction]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM transactions WHERE synced = 0 ORDER BY date ASC").fetchall()
            return [_row_transaction(r) for r in rows]

    def mark_synced(self, txn_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE transactions SET synced = 1, updated_at = ? WHERE id = ?",
                (utcnow_iso(), txn_id),
            )

    def insert_missing_transactions(self, txns: Iterable[Transaction]) -> int:
        inserted = 0
        with self._connect() as conn:
            for t in txns:
                row = _transaction_row(t)
                cols = list(row.keys())
                cur = conn.execute(
                    f"""
                    INSERT INTO transactions ({', '.join(cols)})
                    VALUES ({', '.join('?' for _ in cols)})
                    ON CONFLICT(id) DO NOTHING
                    """,
                    tuple(row[c] for c in cols),
                )
                inserted += cur.rowcount
        return inserted

    # Admin sessions.

    def create_session(self, hours: int) -> dict:
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        expires_at = (now + timedelta(hours=max(1, int(hours or 12)))).isoformat()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO local_sessions (token, created_at, expires_at) VALUES (?, ?, ?)",
                (token, now.isoformat(), expires_at),
            )
        return {"token": token, "expires_at": expires_at}

    def validate_session(self, token: str) -> bool:
        token = (token or "").strip()
        if not token:
            return False
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM local_sessions WHERE expires_at IS NOT NULL AND expires_at < ?",
                (datetime.now(timezone.utc).isoformat(),),
            )
            row = conn.execute("SELECT 1 FROM local_sessions WHERE token = ? LIMIT 1", (token,)).fetchone()
            return row is not None
