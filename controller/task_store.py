"""
In-memory task lists of the signed-in user, mirrored to the hosted tables.

Every mutation is applied locally first, then written remotely:
- a failed insert removes its placeholder and alerts the user
- any other failed write reloads the authoritative lists (no fine-grained undo)
"""
from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import threading
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from core import config
from core.dates import as_utc, local_date, local_noon, utc_now
from core.exceptions import BackendError
from core.models import Pending, Profile, RecurringTask, Task, TaskStatus
from services import agenda

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]
ErrorHandler = Callable[[str, str], None]
Listener = Callable[["TaskStore"], None]

TASK_FIELDS: FrozenSet[str] = frozenset(
    {"title", "status", "created_at", "is_archived", "description", "assigned_to"}
)
RECURRING_FIELDS: FrozenSet[str] = frozenset({"title", "created_at", "last_completed_at"})


@dataclasses.dataclass(frozen=True)
class _Collection:
    attr: str          # list attribute on the store
    label: str         # for logs and alerts
    fields: FrozenSet[str]


_TASKS = _Collection("_tasks", "task", TASK_FIELDS)
_RECURRING = _Collection("_recurring", "recurring task", RECURRING_FIELDS)


def _sort_key(item) -> Tuple[dt.datetime, str]:
    return item.created_at, item.key


class TaskStore:
    def __init__(self, tasks_repo, recurring_repo, owner: Profile, *,
                 clock: Clock = utc_now,
                 on_error: Optional[ErrorHandler] = None,
                 offset_hours: int = config.TZ_OFFSET_HOURS):
        self.tasks_repo = tasks_repo
        self.recurring_repo = recurring_repo
        self.owner = owner
        self.clock = clock
        self.offset_hours = offset_hours
        self._on_error = on_error
        self._lock = threading.RLock()
        self._tasks: List[Task] = []
        self._recurring: List[RecurringTask] = []
        self._listeners: List[Listener] = []
        self.loading = False

    # ---------- state ----------
    @property
    def tasks(self) -> List[Task]:
        with self._lock:
            return list(self._tasks)

    @property
    def recurring(self) -> List[RecurringTask]:
        with self._lock:
            return list(self._recurring)

    def get(self, key: str) -> Optional[Task]:
        return self._find(_TASKS, key)

    def get_recurring(self, key: str) -> Optional[RecurringTask]:
        return self._find(_RECURRING, key)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(store)`` after every local change. Returns the unsubscribe hook."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("Store listener %r failed", listener)

    def _alert(self, title: str, message: str) -> None:
        if self._on_error:
            self._on_error(title, message)

    def clear(self) -> None:
        with self._lock:
            self._tasks = []
            self._recurring = []
        self._notify()

    # ---------- internals ----------
    def _items(self, coll: _Collection) -> list:
        return getattr(self, coll.attr)

    def _find(self, coll: _Collection, key: str):
        with self._lock:
            for item in self._items(coll):
                if item.key == key:
                    return item
        return None

    def _replace(self, coll: _Collection, key: str, new_item) -> bool:
        with self._lock:
            items = self._items(coll)
            for i, item in enumerate(items):
                if item.key == key:
                    items[i] = new_item
                    return True
        return False

    def _remove(self, coll: _Collection, key: str) -> bool:
        with self._lock:
            items = self._items(coll)
            kept = [i for i in items if i.key != key]
            setattr(self, coll.attr, kept)
            return len(kept) != len(items)

    def _repo(self, coll: _Collection):
        return self.tasks_repo if coll is _TASKS else self.recurring_repo

    def _writable(self, coll: _Collection, key: str):
        item = self._find(coll, key)
        if item is None:
            logger.warning("No %s with key=%s", coll.label, key)
            return None
        if item.is_pending:
            logger.warning("Skipping write to unconfirmed %s key=%s", coll.label, key)
            return None
        return item

    def _insert(self, coll: _Collection, placeholder):
        temp_key = placeholder.key
        with self._lock:
            self._items(coll).append(placeholder)
        self._notify()

        try:
            confirmed = self._repo(coll).insert(placeholder)
        except BackendError:
            logger.exception("Insert %s failed temp=%s", coll.label, temp_key)
            self._remove(coll, temp_key)
            self._notify()
            self._alert("Error", f"Could not add the {coll.label}.")
            return None

        with self._lock:
            if not self._replace(coll, temp_key, confirmed) and self._find(coll, confirmed.key) is None:
                # a reload dropped the placeholder before the insert returned
                self._items(coll).append(confirmed)
        self._notify()
        logger.debug("Inserted %s id=%s (was %s)", coll.label, confirmed.id, temp_key)
        return confirmed

    def _normalize_times(self, fields: Dict[str, Any], *names: str) -> None:
        for name in names:
            if name not in fields:
                continue
            value = fields[name]
            if value is not None:
                fields[name] = as_utc(value)
            elif name == "created_at":
                # a task always belongs to some day; "no date" means now
                fields[name] = self.clock()

    def _update(self, coll: _Collection, key: str, fields: Dict[str, Any]) -> bool:
        unknown = set(fields) - coll.fields
        if unknown:
            raise ValueError(f"cannot update {sorted(unknown)} on a {coll.label}")
        item = self._writable(coll, key)
        if item is None:
            return False

        self._replace(coll, key, dataclasses.replace(item, **fields))
        self._notify()
        try:
            self._repo(coll).update(item.id, fields)
        except BackendError:
            logger.exception("Update %s id=%s failed; reloading", coll.label, item.id)
            self.load()
            return False
        return True

    def _delete(self, coll: _Collection, key: str) -> bool:
        item = self._writable(coll, key)
        if item is None:
            return False

        self._remove(coll, key)
        self._notify()
        try:
            self._repo(coll).delete(item.id)
        except BackendError:
            logger.exception("Delete %s id=%s failed; reloading", coll.label, item.id)
            self._alert("Error", f"Could not delete the {coll.label}.")
            self.load()
            return False
        return True

    # ---------- load ----------
    def load(self) -> bool:
        """Replace local state with what the backend holds. False if the read failed."""
        owner_filter = None if self.owner.is_admin else self.owner.id
        self.loading = True
        try:
            tasks = self.tasks_repo.list_for(owner_filter)
            recurring = self.recurring_repo.list_for(self.owner.id)
        except BackendError:
            logger.exception("Loading tasks failed; keeping previous state")
            return False
        finally:
            self.loading = False

        with self._lock:
            self._tasks = sorted(tasks, key=_sort_key)
            self._recurring = sorted(recurring, key=_sort_key)
        logger.info("Loaded tasks=%d recurring=%d", len(tasks), len(recurring))
        self._notify()
        return True

    # ---------- tasks ----------
    def add(self, title: str, created_at: Optional[dt.datetime] = None,
            description: str = "", assigned_to: Optional[List[str]] = None) -> Optional[Task]:
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        placeholder = Task(
            ref=Pending.new(),
            title=title,
            status=TaskStatus.WAITING,
            created_at=as_utc(created_at) if created_at else self.clock(),
            created_by=self.owner.id,
            description=description,
            assigned_to=list(dict.fromkeys(assigned_to or [])),
        )
        return self._insert(_TASKS, placeholder)

    def update(self, key: str, **fields: Any) -> bool:
        if "status" in fields:
            fields["status"] = TaskStatus(fields["status"])
        if "assigned_to" in fields:
            fields["assigned_to"] = list(dict.fromkeys(fields["assigned_to"] or []))
        self._normalize_times(fields, "created_at")
        return self._update(_TASKS, key, fields)

    def update_status(self, key: str, status: TaskStatus | str) -> bool:
        return self.update(key, status=status)

    def archive(self, key: str) -> bool:
        return self.update(key, is_archived=True)

    def move_to_today(self, key: str) -> bool:
        """Re-date an overdue task to midday of the current local day."""
        today = local_date(self.clock(), self.offset_hours)
        return self.update(key, created_at=local_noon(today, self.offset_hours))

    def delete(self, key: str) -> bool:
        return self._delete(_TASKS, key)

    # ---------- recurring ----------
    def add_recurring(self, title: str) -> Optional[RecurringTask]:
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        placeholder = RecurringTask(
            ref=Pending.new(),
            title=title,
            created_by=self.owner.id,
            created_at=self.clock(),
        )
        return self._insert(_RECURRING, placeholder)

    def update_recurring(self, key: str, **fields: Any) -> bool:
        self._normalize_times(fields, "created_at", "last_completed_at")
        return self._update(_RECURRING, key, fields)

    def complete_recurring(self, key: str) -> bool:
        return self.update_recurring(key, last_completed_at=self.clock())

    def uncomplete_recurring(self, key: str) -> bool:
        return self.update_recurring(key, last_completed_at=None)

    def delete_recurring(self, key: str) -> bool:
        return self._delete(_RECURRING, key)

    # ---------- conversions ----------
    def _convert(self, src: _Collection, dst: _Collection, key: str, new_item):
        """Insert into ``dst`` first, then delete from ``src``; a failure reloads both."""
        old = self._writable(src, key)
        if old is None:
            return None

        self._remove(src, key)
        with self._lock:
            self._items(dst).append(new_item)
        self._notify()

        confirmed = None
        try:
            confirmed = self._repo(dst).insert(new_item)
            self._repo(src).delete(old.id)
        except BackendError:
            logger.exception("Converting %s id=%s failed; reloading", src.label, old.id)
            # if the reload fails too, keep the source row and any inserted copy
            with self._lock:
                self._remove(dst, new_item.key)
                if confirmed is not None and self._find(dst, confirmed.key) is None:
                    self._items(dst).append(confirmed)
                if self._find(src, key) is None:
                    self._items(src).append(old)
                self._items(dst).sort(key=_sort_key)
                self._items(src).sort(key=_sort_key)
            self._alert("Error", f"Could not convert the {src.label}.")
            self.load()
            self._notify()
            return None

        with self._lock:
            if not self._replace(dst, new_item.key, confirmed) and self._find(dst, confirmed.key) is None:
                self._items(dst).append(confirmed)
        self._notify()
        return confirmed

    def convert_task_to_recurring(self, key: str, title: Optional[str] = None) -> Optional[RecurringTask]:
        task = self.get(key)
        if task is None:
            logger.warning("No task with key=%s", key)
            return None
        recurring = RecurringTask(
            ref=Pending.new(),
            title=(title or task.title).strip(),
            created_by=self.owner.id,
            created_at=self.clock(),
        )
        return self._convert(_TASKS, _RECURRING, key, recurring)

    def convert_recurring_to_task(self, key: str, title: Optional[str] = None) -> Optional[Task]:
        recurring = self.get_recurring(key)
        if recurring is None:
            logger.warning("No recurring task with key=%s", key)
            return None
        task = Task(
            ref=Pending.new(),
            title=(title or recurring.title).strip(),
            status=TaskStatus.WAITING,
            created_at=self.clock(),
            created_by=self.owner.id,
        )
        return self._convert(_RECURRING, _TASKS, key, task)

    # ---------- views ----------
    def todays_duties(self) -> Tuple[List[Task], List[RecurringTask]]:
        return agenda.todays_duties(self.tasks, self.recurring, self.clock(), self.offset_hours)

    def overdue(self) -> List[Task]:
        return agenda.overdue(self.tasks, self.clock(), self.offset_hours)

    def overdue_count(self) -> int:
        return len(self.overdue())

    def upcoming(self) -> Dict[dt.date, List[Task]]:
        return agenda.upcoming(self.tasks, self.offset_hours)


