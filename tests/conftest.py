import copy
import os
import sys

import pytest

# Allow running pytest without installing the package.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from bookpos.config import DEFAULT_CONFIG  # noqa: E402
from bookpos.connectivity import Connectivity  # noqa: E402
from bookpos.errors import NetworkFailure  # noqa: E402
from bookpos.models import Category, Product  # noqa: E402
from bookpos.products import ProductManager  # noqa: E402
from bookpos.services import PosServices  # noqa: E402
from bookpos.store import LocalStore  # noqa: E402
from bookpos.sync import SyncEngine  # noqa: E402
from bookpos.tasks import TaskQueue  # noqa: E402
from bookpos.transactions import TransactionManager  # noqa: E402


class FakeRemote:
    """
    In-memory stand-in for the shop server.

    `fail` holds method names that raise NetworkFailure; `fail_submit_ids`
    rejects individual transactions so partial pushes can be exercised.
    Every call is recorded in `calls` as (method, args).
    """

    def __init__(self, products=None, categories=None, transactions=None, orders=None):
        self.base_url = "http://shop.test"
        self.token = ""
        self.timeout_s = 10.0
        self.products = list(products or [])
        self.categories = list(categories or [])
        self.transactions = list(transactions or [])
        self.orders = list(orders or [])
        self.submitted = []
        self.stock_updates = []
        self.uploads = []
        self.fail = set()
        self.fail_submit_ids = set()
        self.calls = []
        self._next_id = 1000

    def _call(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail:
            raise NetworkFailure(f"{name} failed", status=503, url=f"{self.base_url}/{name}")

    def _new_id(self) -> str:
        self._next_id += 1
        return f"srv-{self._next_id}"

    def list_products(self):
        self._call("list_products")
        return copy.deepcopy(self.products)

    def create_product(self, data):
        self._call("create_product", data)
        row = {**data, "id": self._new_id()}
        self.products.append(row)
        return row

    def update_product(self, product_id, patch):
        self._call("update_product", product_id, patch)
        if set(patch) == {"stock"}:
            self.stock_updates.append((product_id, patch["stock"]))
        for p in self.products:
            if p["id"] == product_id:
                p.update(patch)
                return dict(p)
        return {"id": product_id, **patch}

    def list_categories(self):
        self._call("list_categories")
        return copy.deepcopy(self.categories)

    def create_category(self, data):
        self._call("create_category", data)
        row = {**data, "id": self._new_id()}
        self.categories.append(row)
        return row

    def update_category(self, category_id, patch):
        self._call("update_category", category_id, patch)
        return {"id": category_id, **patch}

    def delete_category(self, category_id):
        self._call("delete_category", category_id)
        self.categories = [c for c in self.categories if c["id"] != category_id]

    def list_transactions(self):
        self._call("list_transactions")
        return copy.deepcopy(self.transactions)

    def submit_transaction(self, payload):
        self._call("submit_transaction", payload)
        if payload["id"] in self.fail_submit_ids:
            raise NetworkFailure("http 500 Internal Server Error", status=500)
        self.submitted.append(payload)
        return {"id": payload["id"]}

    def list_orders(self):
        self._call("list_orders")
        return copy.deepcopy(self.orders)

    def create_order(self, payload):
        self._call("create_order", payload)
        row = {**payload, "id": self._new_id(), "status": "new", "createdAt": "2026-03-01T10:00:00+00:00"}
        self.orders.append(row)
        return row

    def update_order_status(self, order_id, status):
        self._call("update_order_status", order_id, status)
        for o in self.orders:
            if o["id"] == order_id:
                o["status"] = status
                return dict(o)
        raise NetworkFailure("http 404 Not Found", status=404)

    def request_upload_url(self, filename, content_type):
        self._call("request_upload_url", filename, content_type)
        key = f"uploads/{filename}"
        return {
            "uploadUrl": f"https://storage.test/{key}?sig=abc",
            "objectKey": key,
            "publicUrl": f"https://cdn.test/{key}",
        }

    def put_bytes(self, url, data, content_type):
        self._call("put_bytes", url, content_type)
        self.uploads.append((url, data, content_type))


def make_product(pid="p1", **kw) -> Product:
    data = {"id": pid, "name": f"Book {pid}", "price": 100000, "cost_price": 60000, "stock": 10}
    data.update(kw)
    return Product(**data)


def wire_product(pid="p1", **kw) -> dict:
    return make_product(pid, **kw).to_wire()


@pytest.fixture
def remote():
    return FakeRemote(
        products=[wire_product("p1", barcode="978-0-06-112008-4"), wire_product("p2", name="Second Book", stock=3)],
        categories=[Category(id="c1", name="Fiction").to_wire()],
    )


@pytest.fixture
def store(tmp_path):
    s = LocalStore(str(tmp_path / "pos.sqlite"))
    s.init()
    return s


@pytest.fixture
def connectivity():
    return Connectivity(online=True)


@pytest.fixture
def queue():
    # Not started: tests drain it with run_pending().
    return TaskQueue("test")


@pytest.fixture
def sync(store, remote, connectivity, queue):
    engine = SyncEngine(store, remote, connectivity, queue)
    engine.attach()
    return engine


@pytest.fixture
def products(store, sync):
    return ProductManager(store, sync, max_age_s=300)


@pytest.fixture
def transactions(store, sync):
    return TransactionManager(store, sync)


@pytest.fixture
def services(tmp_path, remote):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    svc = PosServices(
        cfg,
        db_path=str(tmp_path / "agent.sqlite"),
        config_path=str(tmp_path / "config.json"),
        remote=remote,
    )
    svc.init_db()
    svc.sync.attach()
    return svc
