import sys
import threading
import traceback
from collections import deque
from dataclasses import dataclass
from functools import partial
from typing import Callable, Deque, Optional

from .logs import json_log


@dataclass
class Task:
    name: str
    fn: Callable[[], object]


class TaskQueue:
    """
    Background work queue with concurrency 1.

    Tasks run one at a time in submission order on a single worker thread.
    A task that raises is logged and the queue moves on. Submitting a task
    whose name is already waiting in the queue is a no-op, so bursts of
    "push now" requests collapse into one run.

    Without `start()` nothing runs in the background; `run_pending()` drains
    the queue in the calling thread (tests and one-shot CLI runs use this).
    """

    def __init__(self, name: str = "sync"):
        self.name = name
        self._cond = threading.Condition()
        self._pending: Deque[Task] = deque()
        self._thread: Optional[threading.Thread] = None
        self._stopping = False

    def submit(self, name: str, fn: Callable, *args, **kwargs) -> bool:
        with self._cond:
            if any(t.name == name for t in self._pending):
                return False
            self._pending.append(Task(name=name, fn=partial(fn, *args, **kwargs)))
            self._cond.notify()
            return True

    def pending(self) -> int:
        with self._cond:
            return len(self._pending)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        with self._cond:
            self._stopping = False
        self._thread = threading.Thread(target=self._worker, name=f"{self.name}-tasks", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None

    def run_pending(self) -> int:
        ran = 0
        while True:
            with self._cond:
                if not self._pending:
                    return ran
                task = self._pending.popleft()
            self._run(task)
            ran += 1

    def _run(self, task: Task) -> None:
        try:
            task.fn()
        except Exception as ex:
            # Never crash the queue due to one failing task.
            json_log("error", "tasks.failed", queue=self.name, task=task.name, exc=ex)
            traceback.print_exc(file=sys.stderr)

    def _worker(self) -> None:
        while True:
            with self._cond:
                while not self._pending and not self._stopping:
                    self._cond.wait()
                if self._stopping:
                    return
                task = self._pending.popleft()
            self._run(task)
