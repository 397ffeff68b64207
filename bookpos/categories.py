from typing import List, Optional

from .errors import NetworkFailure, NotFound, ValidationFailure
from .logs import json_log
from .models import Category, CategoryIn, CategoryUpdate, new_id
from .store import LocalStore
from .sync import SyncEngine


class CategoryManager:
    """Category cache with the same write rules as products: cache first, server when online."""

    def __init__(self, store: LocalStore, sync: SyncEngine):
        self.store = store
        self.sync = sync

    def _push(self, action: str, category_id: str, fn, *args) -> Optional[dict]:
        if not self.sync.online:
            json_log("info", "categories.deferred", action=action, category_id=category_id)
            return None
        try:
            return fn(*args)
        except NetworkFailure as ex:
            json_log("warning", "categories.remote_failed", action=action, category_id=category_id, exc=ex)
            return None

    def list_categories(self) -> List[Category]:
        return self.store.query("categories")

    def get_category(self, category_id: str) -> Category:
        category = self.store.get("categories", category_id)
        if category is None:
            raise NotFound("category", category_id)
        return category

    def create_category(self, data: CategoryIn) -> Category:
        name = (data.name or "").strip()
        if not name:
            raise ValidationFailure("name is required")
        category = Category(id=new_id(), name=name, icon=data.icon, color=data.color)
        self.store.put("categories", category)
        created = self._push("create", category.id, self.sync.remote.create_category, data.to_wire())
        server_id = str((created or {}).get("id") or "")
        if server_id and server_id != category.id:
            self.store.delete("categories", category.id)
            category = category.model_copy(update={"id": server_id})
            self.store.put("categories", category)
        return category

    def update_category(self, category_id: str, data: CategoryUpdate) -> Category:
        current = self.get_category(category_id)
        patch = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if not patch:
            return current
        if "name" in patch:
            patch["name"] = patch["name"].strip()
            if not patch["name"]:
                raise ValidationFailure("name cannot be empty")
        updated = current.model_copy(update=patch)
        self.store.put("categories", updated)
        self._push("update", category_id, self.sync.remote.update_category, category_id, CategoryUpdate(**patch).to_wire(exclude_unset=True))
        return updated

    def delete_category(self, category_id: str) -> None:
        if not self.store.delete("categories", category_id):
            raise NotFound("category", category_id)
        self._push("delete", category_id, self.sync.remote.delete_category, category_id)
