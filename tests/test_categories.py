import pytest

from bookpos.categories import CategoryManager
from bookpos.errors import NotFound, ValidationFailure
from bookpos.models import Category, CategoryIn, CategoryUpdate


@pytest.fixture
def categories(store, sync):
    return CategoryManager(store, sync)


def test_create_online_takes_server_id(categories, store, remote):
    created = categories.create_category(CategoryIn(name=" Poetry ", icon="book"))
    assert created.id.startswith("srv-")
    assert created.name == "Poetry"
    assert [c.id for c in categories.list_categories()] == [created.id]


def test_create_offline_and_server_failure_keep_local_row(categories, store, remote, connectivity):
    remote.fail.add("create_category")
    first = categories.create_category(CategoryIn(name="A"))
    connectivity.went_offline()
    second = categories.create_category(CategoryIn(name="B"))
    assert {c.id for c in store.query("categories")} == {first.id, second.id}


def test_update_and_delete(categories, store, remote):
    store.put("categories", Category(id="c1", name="Fiction"))
    updated = categories.update_category("c1", CategoryUpdate(color="#f00"))
    assert updated.color == "#f00"
    assert updated.name == "Fiction"
    assert remote.calls[-1] == ("update_category", ("c1", {"color": "#f00"}))

    categories.delete_category("c1")
    assert store.get("categories", "c1") is None
    assert remote.calls[-1] == ("delete_category", ("c1",))
    with pytest.raises(NotFound):
        categories.delete_category("c1")


def test_validation(categories, store):
    with pytest.raises(ValidationFailure):
        categories.create_category(CategoryIn(name=""))
    store.put("categories", Category(id="c1", name="Fiction"))
    with pytest.raises(ValidationFailure):
        categories.update_category("c1", CategoryUpdate(name="  "))
    with pytest.raises(NotFound):
        categories.update_category("missing", CategoryUpdate(name="x"))
