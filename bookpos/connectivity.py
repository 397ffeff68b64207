import threading
from typing import Callable, List

from .logs import json_log

Listener = Callable[[bool], None]


class Connectivity:
    """
    Online/offline flag fed by an external source (the cashier UI reports the
    browser's online/offline events; the CLI can force either state).

    Listeners are called only on transitions, in subscription order. A failing
    listener is logged and does not stop the others.
    """

    def __init__(self, online: bool = True):
        self._online = bool(online)
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def set_online(self, online: bool) -> bool:
        """Returns True when the state changed."""
        online = bool(online)
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            listeners = list(self._listeners)
        json_log("info", "connectivity.changed", online=online)
        for listener in listeners:
            try:
                listener(online)
            except Exception as ex:
                json_log("error", "connectivity.listener.error", online=online, exc=ex)
        return True

    def went_online(self) -> bool:
        return self.set_online(True)

    def went_offline(self) -> bool:
        return self.set_online(False)
