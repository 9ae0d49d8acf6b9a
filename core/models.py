from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from core.dates import decode_timestamp, encode_timestamp


class TaskStatus(str, Enum):
    WAITING = "waiting"
    COMPLETED = "completed"
    PAST_DUE = "past_due"

    @classmethod
    def from_db(cls, raw: Optional[str]) -> "TaskStatus":
        if not raw:
            return cls.WAITING
        try:
            return cls(raw)
        except ValueError:
            return cls.WAITING


# ---------- row references ----------
@dataclass(frozen=True)
class Pending:
    """Optimistic copy not yet confirmed by the backend."""
    temp_id: str

    @classmethod
    def new(cls) -> "Pending":
        return cls(f"tmp-{uuid.uuid4().hex}")


@dataclass(frozen=True)
class Confirmed:
    id: str


RowRef = Union[Pending, Confirmed]


class _Referenced:
    ref: RowRef

    @property
    def id(self) -> Optional[str]:
        return self.ref.id if isinstance(self.ref, Confirmed) else None

    @property
    def key(self) -> str:
        return self.ref.id if isinstance(self.ref, Confirmed) else self.ref.temp_id

    @property
    def is_pending(self) -> bool:
        return isinstance(self.ref, Pending)


def _first(row: Dict[str, Any], *names: str, default: Any = None) -> Any:
    for n in names:
        if row.get(n) is not None:
            return row[n]
    return default


# ---------- tasks ----------
@dataclass
class Task(_Referenced):
    ref: RowRef
    title: str
    status: TaskStatus
    created_at: dt.datetime  # aware UTC
    created_by: str
    is_archived: bool = False
    description: str = ""
    assigned_to: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any], offset_hours: int, now: dt.datetime) -> "Task":
        return cls(
            ref=Confirmed(str(row["id"])),
            title=str(row.get("title") or ""),
            status=TaskStatus.from_db(row.get("status")),
            created_at=decode_timestamp(row.get("createdAt"), offset_hours, default=now),
            created_by=str(_first(row, "createdBy", "createdby", default="")),
            is_archived=bool(_first(row, "isArchived", "isarchived", default=False)),
            description=str(row.get("description") or ""),
            assigned_to=[str(u) for u in (_first(row, "assignedTo", "assignedto") or [])],
        )

    def to_row(self, offset_hours: int) -> Dict[str, Any]:
        return {
            "title": self.title,
            "status": self.status.value,
            "createdAt": encode_timestamp(self.created_at, offset_hours),
            "createdBy": self.created_by,
            "isArchived": self.is_archived,
            "description": self.description,
            "assignedTo": list(self.assigned_to),
        }


@dataclass
class RecurringTask(_Referenced):
    ref: RowRef
    title: str
    created_by: str
    created_at: dt.datetime
    last_completed_at: Optional[dt.datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], offset_hours: int, now: dt.datetime) -> "RecurringTask":
        return cls(
            ref=Confirmed(str(row["id"])),
            title=str(row.get("title") or ""),
            created_by=str(_first(row, "createdBy", "createdby", default="")),
            created_at=decode_timestamp(row.get("createdAt"), offset_hours, default=now),
            last_completed_at=decode_timestamp(
                _first(row, "lastCompletedAt", "lastcompletedat"), offset_hours
            ),
        )

    def to_row(self, offset_hours: int) -> Dict[str, Any]:
        last = self.last_completed_at
        return {
            "title": self.title,
            "createdBy": self.created_by,
            "createdAt": encode_timestamp(self.created_at, offset_hours),
            "lastCompletedAt": encode_timestamp(last, offset_hours) if last else None,
        }


# ---------- people ----------
@dataclass
class Profile:
    id: str
    name: str
    email: str
    is_admin: bool = False
    uid: str = ""
    created_at: Optional[str] = None
    unseen: List[str] = field(default_factory=list)
    seen: List[str] = field(default_factory=list)
    push_token: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            email=str(row.get("email") or ""),
            is_admin=bool(_first(row, "isAdmin", "isadmin", default=False)),
            uid=str(_first(row, "uid", "user_id", default="")),
            created_at=_first(row, "createdAt", "createdat"),
            unseen=[str(i) for i in (row.get("unseen") or [])],
            seen=[str(i) for i in (row.get("seen") or [])],
            push_token=_first(row, "expoPushToken", "expopushtoken"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "isAdmin": self.is_admin,
            "uid": self.uid,
            "createdAt": self.created_at,
            "unseen": list(self.unseen),
            "seen": list(self.seen),
            "expoPushToken": self.push_token,
        }


@dataclass
class Notification:
    id: str
    title: str
    message: str
    created_at: dt.datetime
    type: str = "system"  # task | system
    users: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any], offset_hours: int, now: dt.datetime) -> "Notification":
        kind = row.get("type") or "system"
        return cls(
            id=str(row["id"]),
            title=str(row.get("title") or ""),
            message=str(row.get("message") or ""),
            created_at=decode_timestamp(row.get("createdAt"), offset_hours, default=now),
            type=kind if kind in ("task", "system") else "system",
            users=[str(u) for u in (row.get("users") or [])],
        )
