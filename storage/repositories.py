"""
Row <-> model mapping for each table.

Defaults, column aliases and the timestamp convention are applied here and
nowhere else; above this layer everything is a model from ``core.models``.
"""
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

from core import config
from core.dates import encode_timestamp, utc_now
from core.exceptions import BackendError
from core.models import Notification, Profile, RecurringTask, Task
from storage.supabase import SupabaseClient, eq, in_

Clock = Callable[[], dt.datetime]
M = TypeVar("M")


# model attribute -> column
COLUMNS = {
    "title": "title",
    "status": "status",
    "created_at": "createdAt",
    "created_by": "createdBy",
    "is_archived": "isArchived",
    "description": "description",
    "assigned_to": "assignedTo",
    "last_completed_at": "lastCompletedAt",
}


def _encode_fields(fields: Dict[str, Any], offset_hours: int) -> Dict[str, Any]:
    """Partial update in model terms -> columns, with the same encoding as full rows."""
    out: Dict[str, Any] = {}
    for k, v in fields.items():
        if k not in COLUMNS:
            raise ValueError(f"unknown field {k!r}")
        if isinstance(v, dt.datetime):
            v = encode_timestamp(v, offset_hours)
        elif isinstance(v, Enum):
            v = v.value
        elif isinstance(v, (list, tuple)):
            v = list(v)
        out[COLUMNS[k]] = v
    return out


def _decode(build: Callable[..., M], row: Any, *args: Any) -> M:
    """A row the backend sent but that cannot be mapped is a backend failure."""
    try:
        return build(row, *args)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise BackendError(f"Unmappable row {row!r}: {e!r}", body=row) from e


class TaskRepository:
    table = config.TABLE_TASKS

    def __init__(self, client: SupabaseClient, offset_hours: int = config.TZ_OFFSET_HOURS,
                 clock: Clock = utc_now):
        self.client = client
        self.offset_hours = offset_hours
        self.clock = clock

    def _model(self, row: Dict[str, Any]) -> Task:
        return _decode(Task.from_row, row, self.offset_hours, self.clock())

    def _owner_filter(self, owner_id: str) -> Dict[str, str]:
        # own tasks plus the ones an admin assigned to this user
        return {"or": f"(createdBy.eq.{owner_id},assignedTo.cs.{{{owner_id}}})"}

    def list_for(self, owner_id: Optional[str]) -> List[Task]:
        """Tasks visible to ``owner_id``; every task when ``owner_id`` is None (admins)."""
        filters = self._owner_filter(owner_id) if owner_id else {}
        return [self._model(r) for r in self.client.select(self.table, filters)]

    def insert(self, task: Task) -> Task:
        return self._model(self.client.insert(self.table, task.to_row(self.offset_hours)))

    def update(self, task_id: str, fields: Dict[str, Any]) -> None:
        self.client.update(self.table, {"id": eq(task_id)}, _encode_fields(fields, self.offset_hours))

    def delete(self, task_id: str) -> None:
        self.client.delete(self.table, {"id": eq(task_id)})


class RecurringTaskRepository(TaskRepository):
    table = config.TABLE_RECURRING

    def _model(self, row: Dict[str, Any]) -> RecurringTask:  # type: ignore[override]
        return _decode(RecurringTask.from_row, row, self.offset_hours, self.clock())

    def _owner_filter(self, owner_id: str) -> Dict[str, str]:
        return {"createdBy": eq(owner_id)}

    def insert(self, task: RecurringTask) -> RecurringTask:  # type: ignore[override]
        return self._model(self.client.insert(self.table, task.to_row(self.offset_hours)))


class ProfileRepository:
    table = config.TABLE_PROFILES

    def __init__(self, client: SupabaseClient):
        self.client = client

    def get(self, profile_id: str) -> Profile:
        return _decode(Profile.from_row, self.client.select_one(self.table, {"id": eq(profile_id)}))

    def get_by_email(self, email: str) -> Profile:
        return _decode(Profile.from_row, self.client.select_one(self.table, {"email": eq(email)}))

    def list_all(self) -> List[Profile]:
        return [_decode(Profile.from_row, r) for r in self.client.select(self.table)]

    def list_by_ids(self, ids: List[str]) -> List[Profile]:
        if not ids:
            return []
        return [_decode(Profile.from_row, r) for r in self.client.select(self.table, {"id": in_(ids)})]

    def insert(self, profile: Profile) -> Profile:
        return _decode(Profile.from_row, self.client.insert(self.table, profile.to_row()))

    def update(self, profile_id: str, fields: Dict[str, Any]) -> None:
        self.client.update(self.table, {"id": eq(profile_id)}, fields)


class NotificationRepository:
    table = config.TABLE_NOTIFICATIONS

    def __init__(self, client: SupabaseClient, offset_hours: int = config.TZ_OFFSET_HOURS,
                 clock: Clock = utc_now):
        self.client = client
        self.offset_hours = offset_hours
        self.clock = clock

    def insert(self, title: str, message: str, kind: str = "system") -> Notification:
        row = {
            "title": title,
            "message": message,
            "type": kind,
            "createdAt": encode_timestamp(self.clock(), self.offset_hours),
        }
        return _decode(Notification.from_row, self.client.insert(self.table, row),
                       self.offset_hours, self.clock())

    def list_by_ids(self, ids: List[str]) -> List[Notification]:
        if not ids:
            return []
        rows = self.client.select(self.table, {"id": in_(ids)}, order="createdAt.desc")
        now = self.clock()
        return [_decode(Notification.from_row, r, self.offset_hours, now) for r in rows]
