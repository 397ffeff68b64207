from typing import Optional

from .categories import CategoryManager
from .config import CONFIG_PATH, DB_PATH, load_config
from .connectivity import Connectivity
from .errors import NetworkFailure
from .logs import json_log
from .orders import OrderManager
from .products import ProductManager
from .remote import RemoteClient
from .store import LocalStore
from .sync import SyncEngine
from .tasks import TaskQueue
from .transactions import TransactionManager
from .uploads import ImageUploader


class PosServices:
    """
    Wires the POS components together.

    Everything is constructed here and passed down explicitly; the HTTP app
    and the CLI only ever talk to one PosServices instance.
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        db_path: str = DB_PATH,
        config_path: str = CONFIG_PATH,
        remote: Optional[RemoteClient] = None,
    ):
        self.config_path = config_path
        self.config = config if config is not None else load_config(config_path)
        self.store = LocalStore(db_path)
        self.remote = remote or RemoteClient(
            self.config.get("api_base_url") or "",
            token=self.config.get("api_token") or "",
            timeout_s=float(self.config.get("http_timeout_s") or 10),
        )
        self.connectivity = Connectivity(online=bool(self.config.get("start_online", True)))
        self.queue = TaskQueue("sync")
        self.sync = SyncEngine(self.store, self.remote, self.connectivity, self.queue)
        self.products = ProductManager(self.store, self.sync, max_age_s=float(self.config.get("catalog_max_age_s") or 300))
        self.categories = CategoryManager(self.store, self.sync)
        self.transactions = TransactionManager(self.store, self.sync)
        self.orders = OrderManager(self.remote)
        self.uploads = ImageUploader(self.remote)

    def init_db(self) -> None:
        self.store.init()

    def start(self, background: bool = True) -> None:
        self.store.init()
        self.sync.attach()
        if background:
            self.queue.start()
        try:
            products, categories = self.sync.initialize()
            json_log("info", "services.started", products=len(products), categories=len(categories), online=self.sync.online)
        except NetworkFailure as ex:
            # Empty cache and the server is down: serve what we have (nothing) and retry on reconnect.
            json_log("warning", "services.initial_pull_failed", exc=ex)

    def stop(self) -> None:
        self.sync.detach()
        self.queue.stop()
        json_log("info", "services.stopped")
