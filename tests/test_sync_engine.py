import pytest

from bookpos.errors import NetworkFailure
from bookpos.models import Category
from bookpos.store import META_LAST_SYNC
from bookpos.sync import TASK_PULL, TASK_PUSH, server_transaction

from conftest import make_product


def _seed_cache(store):
    store.replace_catalog(
        [make_product("p1", stock=10), make_product("p2", stock=3)],
        [Category(id="c-old", name="Old")],
        "v0",
    )


def test_pull_catalog_replaces_cache(store, sync, remote):
    store.put("products", make_product("stale"))
    snap = sync.pull_catalog()
    assert {p.id for p in snap.products} == {"p1", "p2"}
    assert {p.id for p in store.query("products")} == {"p1", "p2"}
    assert [c.id for c in store.query("categories")] == ["c1"]
    assert store.get_meta(META_LAST_SYNC) == snap.version
    assert sync.last_synced_at() is not None


def test_pull_failure_keeps_cache(store, sync, remote):
    _seed_cache(store)
    remote.fail.add("list_products")
    with pytest.raises(NetworkFailure):
        sync.pull_catalog()
    assert {p.id for p in store.query("products")} == {"p1", "p2"}
    assert store.get_meta(META_LAST_SYNC) == "v0"


def test_pull_failure_on_categories_only_keeps_products(store, sync, remote):
    _seed_cache(store)
    remote.products = [make_product("new").to_wire()]
    remote.fail.add("list_categories")
    with pytest.raises(NetworkFailure):
        sync.pull_catalog()
    assert {p.id for p in store.query("products")} == {"p1", "p2"}
    assert [c.id for c in store.query("categories")] == ["c-old"]


def test_pull_rejects_invalid_payload(store, sync, remote):
    _seed_cache(store)
    remote.products = [{"name": "no id"}]
    with pytest.raises(NetworkFailure):
        sync.pull_catalog()
    assert store.count("products") == 2


def test_refresh_quietly_swallows_network_failure(sync, remote):
    remote.fail.add("list_products")
    assert sync.refresh_catalog_quietly() is None


def test_push_isolates_failures(store, sync, remote, transactions):
    _seed_cache(store)
    t1 = transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    t2 = transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    t3 = transactions.record_sale([{"product": make_product("p2"), "quantity": 1}])
    remote.fail_submit_ids.add(t2.id)

    result = sync.push_pending_transactions()

    assert result.sent == [t1.id, t3.id]
    assert result.failed == [t2.id]
    assert store.get("transactions", t1.id).synced is True
    assert store.get("transactions", t2.id).synced is False
    assert store.get("transactions", t3.id).synced is True
    assert [t.id for t in store.pending_transactions()] == [t2.id]

    # Retry once the server recovers.
    remote.fail_submit_ids.clear()
    assert sync.push_pending_transactions().sent == [t2.id]
    assert store.pending_transactions() == []


def test_push_sends_server_payload_and_stock_patch(store, sync, remote, transactions):
    _seed_cache(store)
    txn = transactions.record_sale([{"product": make_product("p1"), "quantity": 2}], payment_method="card")
    sync.push_pending_transactions()

    payload = remote.submitted[0]
    assert payload == {
        "id": txn.id,
        "date": txn.date,
        "items": [{"productId": "p1", "productName": "Book p1", "quantity": 2, "price": 100000}],
        "totalAmount": 200000,
        "paymentMethod": "card",
    }
    # Snapshot stock (10) minus quantity.
    assert remote.stock_updates == [("p1", 8)]


def test_stock_patch_failure_keeps_sale_synced(store, sync, remote, transactions):
    _seed_cache(store)
    txn = transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    remote.fail.add("update_product")
    result = sync.push_pending_transactions()
    assert result.sent == [txn.id]
    assert result.stock_errors == ["p1"]
    assert store.get("transactions", txn.id).synced is True


def test_push_is_skipped_offline(store, sync, connectivity, transactions, remote):
    _seed_cache(store)
    transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    connectivity.went_offline()
    assert sync.push_pending_transactions().skipped is True
    assert remote.submitted == []


def test_offline_sale_then_reconnect_pushes(store, sync, connectivity, queue, remote, transactions):
    _seed_cache(store)
    connectivity.went_offline()
    txn = transactions.record_sale(
        [{"product": make_product("p1"), "quantity": 1}, {"product": make_product("p2"), "quantity": 1}],
        total=200000,
        payment_method="cash",
    )
    assert txn.synced is False
    assert txn.total_amount == 200000
    assert queue.pending() == 0
    assert len(store.pending_transactions()) == 1
    assert store.get("products", "p1").stock == 9
    assert store.get("products", "p2").stock == 2

    connectivity.went_online()
    assert queue.pending() == 2
    queue.run_pending()

    assert [p["id"] for p in remote.submitted] == [txn.id]
    assert store.get("transactions", txn.id).synced is True
    assert sorted(remote.stock_updates) == [("p1", 9), ("p2", 2)]


def test_reconnect_queues_push_before_pull(sync, connectivity, queue):
    connectivity.went_offline()
    connectivity.went_online()
    assert [t.name for t in queue._pending] == [TASK_PUSH, TASK_PULL]


def test_merge_server_transactions_is_additive(store, sync, remote, transactions):
    _seed_cache(store)
    local = transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    remote.transactions = [
        {"id": local.id, "date": local.date, "items": [], "totalAmount": 1, "paymentMethod": "card"},
        {
            "id": "srv-1",
            "date": "2026-02-01T09:00:00Z",
            "items": [{"productId": "p2", "productName": "Second", "quantity": 2, "price": 50}],
            "totalAmount": 100,
            "paymentMethod": "cash",
        },
    ]
    assert sync.merge_server_transactions() == 1
    kept = store.get("transactions", local.id)
    assert kept.total_amount == local.total_amount
    assert kept.payment_method == "cash"
    merged = store.get("transactions", "srv-1")
    assert merged.synced is True
    assert merged.items[0].product.id == "p2"
    assert merged.items[0].quantity == 2


def test_server_transaction_requires_id():
    with pytest.raises(KeyError):
        server_transaction({"totalAmount": 1})


def test_initialize_with_empty_cache_pulls_synchronously(store, sync, queue):
    products, categories = sync.initialize()
    assert {p.id for p in products} == {"p1", "p2"}
    assert [c.id for c in categories] == ["c1"]
    assert queue.pending() == 0


def test_initialize_with_cache_serves_cache_and_refreshes_in_background(store, sync, queue, remote):
    _seed_cache(store)
    remote.products = [make_product("p9").to_wire()]
    products, _ = sync.initialize()
    assert {p.id for p in products} == {"p1", "p2"}
    assert queue.pending() == 1
    queue.run_pending()
    assert [p.id for p in store.query("products")] == ["p9"]


def test_initialize_offline_does_not_touch_network(store, sync, connectivity, remote, queue):
    connectivity.went_offline()
    remote.calls.clear()
    products, categories = sync.initialize()
    assert products == [] and categories == []
    assert remote.calls == []
    assert queue.pending() == 0


def test_sync_now_reports_each_step(store, sync, remote, transactions):
    _seed_cache(store)
    transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    remote.fail.add("list_transactions")
    report = sync.sync_now()
    assert report["ok"] is False
    assert report["catalog"]["products"] == 2
    assert len(report["push"]["sent"]) == 1
    assert "error" in report["merged"]


def test_sync_now_offline(sync, connectivity):
    connectivity.went_offline()
    assert sync.sync_now() == {"ok": False, "online": False, "error": "offline"}


def test_status(store, sync, transactions):
    _seed_cache(store)
    transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    status = sync.status()
    assert status["online"] is True
    assert status["pending_transactions"] == 1
    assert status["catalog_version"] == "v0"
    assert status["queued_tasks"] == 1


@pytest.mark.parametrize("reverse", ["void_sale", "refund_sale"])
def test_sale_reversed_offline_never_reaches_server(store, sync, connectivity, queue, remote, transactions, reverse):
    _seed_cache(store)
    connectivity.went_offline()
    txn = transactions.record_sale([{"product": make_product("p1"), "quantity": 2}])
    assert store.get("products", "p1").stock == 8
    getattr(transactions, reverse)(txn.id)
    assert store.get("products", "p1").stock == 10

    connectivity.went_online()
    queue.run_pending()

    assert remote.submitted == []
    assert remote.stock_updates == []
    # The pull after the push must not undo the restock.
    assert store.get("products", "p1").stock == 10
    assert store.get("transactions", txn.id).synced is True
    assert store.pending_transactions() == []


def test_push_reports_reversed_sales_as_local_only(store, sync, connectivity, remote, transactions):
    _seed_cache(store)
    connectivity.went_offline()
    voided = transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    kept = transactions.record_sale([{"product": make_product("p2"), "quantity": 1}])
    transactions.void_sale(voided.id)
    connectivity.went_online()

    result = sync.push_pending_transactions()

    assert result.local_only == [voided.id]
    assert result.sent == [kept.id]
    assert [p["id"] for p in remote.submitted] == [kept.id]
    assert remote.stock_updates == [("p2", 2)]


def test_sync_now_pushes_before_pulling(store, sync, connectivity, remote, transactions):
    _seed_cache(store)
    connectivity.went_offline()
    transactions.record_sale([{"product": make_product("p1"), "quantity": 1}])
    assert store.get("products", "p1").stock == 9
    connectivity.went_online()

    report = sync.sync_now()

    assert report["ok"] is True
    assert remote.stock_updates == [("p1", 9)]
    # The refreshed cache already reflects the sale that was waiting.
    assert store.get("products", "p1").stock == 9
    assert [name for name, _ in remote.calls[:3]] == ["submit_transaction", "update_product", "list_products"]


def test_merge_skips_rows_that_are_not_objects(store, sync, remote):
    remote.transactions = [
        "garbage",
        None,
        {"id": "srv-2", "date": "2026-02-01T09:00:00Z", "items": [], "totalAmount": 5, "paymentMethod": "cash"},
    ]
    assert sync.merge_server_transactions() == 1
    assert store.get("transactions", "srv-2").total_amount == 5
