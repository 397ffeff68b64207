import json
import os
from typing import List

DB_PATH = os.path.join(os.getcwd(), "bookpos.sqlite")
CONFIG_PATH = os.path.join(os.getcwd(), "bookpos.config.json")

DEFAULT_CONFIG = {
    "api_base_url": "http://localhost:5000",
    # Optional bearer token sent to the shop server.
    "api_token": "",
    "http_timeout_s": 10,
    # Cached catalog older than this is refreshed by list_products when online.
    "catalog_max_age_s": 300,
    # Initial connectivity state until the UI reports otherwise.
    "start_online": True,
    # Optional admin PIN protecting catalog/order writes.
    # Stored as bcrypt hash string.
    "admin_pin_hash": "",
    "require_admin_pin": False,
    "admin_session_hours": 12,
    # Receipt / storefront details shown by the cashier UI.
    # Shallow-merged on update.
    "store": {
        "name": "Ixlos Books",
        "phone": "+998 93 678 55 52",
        "address": "Namangan, Uychi",
        "auto_print": False,
        "sound_enabled": True,
        "notifications": True,
    },
}


def load_config(path: str = CONFIG_PATH) -> dict:
    if not os.path.exists(path):
        save_config(DEFAULT_CONFIG, path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    cfg = {**DEFAULT_CONFIG, **data}
    cfg["store"] = {**DEFAULT_CONFIG["store"], **(data.get("store") or {})}
    # Allow ops to override without rewriting the on-disk config.
    if os.environ.get("BOOKPOS_API_BASE_URL"):
        cfg["api_base_url"] = os.environ["BOOKPOS_API_BASE_URL"]
    if os.environ.get("BOOKPOS_API_TOKEN"):
        cfg["api_token"] = os.environ["BOOKPOS_API_TOKEN"]
    return cfg


def save_config(data: dict, path: str = CONFIG_PATH) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def public_config(cfg: dict) -> dict:
    safe = dict(cfg or {})
    safe.pop("admin_pin_hash", None)
    if safe.get("api_token"):
        safe["api_token"] = "***"
    safe["admin_pin_set"] = bool((cfg or {}).get("admin_pin_hash"))
    return safe


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv("APP_ENV", "local")
        # Comma-separated list of allowed CORS origins for the cashier UI.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:5173", "http://127.0.0.1:5173"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"


settings = Settings()
