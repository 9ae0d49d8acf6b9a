from __future__ import annotations

import logging
import threading
from typing import Callable, Set

from core import config
from core.models import TaskStatus

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], None]


def timer_schedule(delay_s: float, fn: Callable[[], None]) -> None:
    t = threading.Timer(delay_s, fn)
    t.daemon = True
    t.start()


class CompletionQueue:
    """
    Checkbox toggling with a short grace period before "completed" is written.

    Unchecking during the grace period drops the key from the pending set; the
    timer still fires but finds nothing to commit. No request is cancelled.
    """

    def __init__(self, store, delay_s: float = config.COMPLETE_DELAY_MS / 1000.0,
                 schedule: Scheduler = timer_schedule):
        self.store = store
        self.delay_s = delay_s
        self.schedule = schedule
        self._pending: Set[str] = set()
        self._lock = threading.Lock()

    def is_completing(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def toggle(self, key: str) -> None:
        with self._lock:
            if key in self._pending:
                self._pending.discard(key)
                logger.debug("Completion of %s cancelled", key)
                return

        task = self.store.get(key)
        if task is None:
            return
        if task.status == TaskStatus.COMPLETED:
            # undo is immediate
            self.store.update_status(key, TaskStatus.WAITING)
            return

        with self._lock:
            self._pending.add(key)
        self.schedule(self.delay_s, lambda: self._fire(key))

    def _fire(self, key: str) -> None:
        with self._lock:
            if key not in self._pending:
                return
            self._pending.discard(key)
        self.store.update_status(key, TaskStatus.COMPLETED)
