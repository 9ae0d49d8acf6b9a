# tests/test_repositories.py

from __future__ import annotations

import datetime as dt

import pytest

from core.exceptions import BackendError
from core.models import Pending, RecurringTask, Task, TaskStatus
from storage.repositories import (
    NotificationRepository,
    ProfileRepository,
    RecurringTaskRepository,
    TaskRepository,
)
from storage.supabase import SupabaseClient

from .conftest import NOW, OFFSET
from .fakes import FakeResponse, FakeSession

UTC = dt.timezone.utc


def _client(*responses):
    session = FakeSession(list(responses))
    return SupabaseClient("https://db.example.com", "anon", session=session), session


def test_rows_get_defaults_and_aliases() -> None:
    client, _ = _client(FakeResponse(200, [
        {"id": 7, "title": "Legacy", "createdby": "u1", "isarchived": True,
         "createdAt": "2024-05-10T12:00:00.000Z"},
        {"id": 8, "title": "Bare", "status": "weird"},
    ]))
    repo = TaskRepository(client, OFFSET, clock=lambda: NOW)

    legacy, bare = repo.list_for("u1")

    assert legacy.id == "7" and legacy.created_by == "u1" and legacy.is_archived is True
    assert legacy.created_at == dt.datetime(2024, 5, 10, 9, 0, tzinfo=UTC)
    assert bare.status == TaskStatus.WAITING
    assert bare.created_at == NOW
    assert bare.description == ""


def test_admin_listing_has_no_owner_filter() -> None:
    client, session = _client(FakeResponse(200, []))
    TaskRepository(client, OFFSET).list_for(None)
    assert session.requests[0]["params"] == {"select": "*"}


def test_insert_encodes_timestamps_in_app_zone() -> None:
    client, session = _client(FakeResponse(201, [{
        "id": "42", "title": "Call mom", "status": "waiting",
        "createdAt": "2024-05-10T12:00:00.000Z", "createdBy": "u1",
    }]))
    repo = TaskRepository(client, OFFSET, clock=lambda: NOW)
    task = Task(ref=Pending.new(), title="Call mom", status=TaskStatus.WAITING,
                created_at=NOW, created_by="u1")

    saved = repo.insert(task)

    sent = session.requests[0]["json"][0]
    assert sent["createdAt"] == "2024-05-10T12:00:00.000Z"
    assert sent["status"] == "waiting"
    assert saved.id == "42" and not saved.is_pending
    assert saved.created_at == NOW


def test_partial_update_maps_columns() -> None:
    client, session = _client(FakeResponse(200, []))
    repo = TaskRepository(client, OFFSET)

    repo.update("42", {"status": TaskStatus.COMPLETED, "created_at": NOW, "is_archived": True})

    req = session.requests[0]
    assert req["params"] == {"id": "eq.42"}
    assert req["json"] == {
        "status": "completed",
        "createdAt": "2024-05-10T12:00:00.000Z",
        "isArchived": True,
    }


def test_partial_update_rejects_unknown_field() -> None:
    client, session = _client()
    with pytest.raises(ValueError):
        TaskRepository(client, OFFSET).update("42", {"owner": "u2"})
    assert session.requests == []


def test_recurring_rows_round_trip_last_completed() -> None:
    client, session = _client(FakeResponse(201, [{
        "id": "r1", "title": "Meds", "createdBy": "u1",
        "createdAt": "2024-05-01T08:00:00.000Z", "lastCompletedAt": None,
    }]))
    repo = RecurringTaskRepository(client, OFFSET, clock=lambda: NOW)

    saved = repo.insert(RecurringTask(ref=Pending.new(), title="Meds", created_by="u1",
                                      created_at=NOW))

    assert session.requests[0]["url"].endswith("/rest/v1/recurring_tasks")
    assert session.requests[0]["json"][0]["lastCompletedAt"] is None
    assert isinstance(saved, RecurringTask)
    assert saved.last_completed_at is None


def test_clearing_last_completed_sends_null() -> None:
    client, session = _client(FakeResponse(200, []))
    RecurringTaskRepository(client, OFFSET).update("r1", {"last_completed_at": None})
    assert session.requests[0]["json"] == {"lastCompletedAt": None}


def test_profile_defaults() -> None:
    client, _ = _client(FakeResponse(200, [{"id": "u1", "email": "ann@example.com"}]))
    profile = ProfileRepository(client).get_by_email("ann@example.com")
    assert profile.is_admin is False
    assert profile.unseen == [] and profile.seen == []
    assert profile.push_token is None


def test_notifications_by_ids() -> None:
    client, session = _client(FakeResponse(200, [
        {"id": "n1", "title": "Hi", "message": "m", "type": "bogus",
         "createdAt": "2024-05-10T12:00:00.000Z"},
    ]))
    repo = NotificationRepository(client, OFFSET, clock=lambda: NOW)

    notes = repo.list_by_ids(["n1", "n2"])

    assert notes[0].type == "system"
    assert session.requests[0]["params"]["id"] == 'in.("n1","n2")'
    assert session.requests[0]["params"]["order"] == "createdAt.desc"
    assert repo.list_by_ids([]) == []
    assert len(session.requests) == 1


def test_user_listing_includes_assigned_tasks() -> None:
    client, session = _client(FakeResponse(200, [
        {"id": "t9", "title": "Inventory", "createdBy": "admin", "assignedTo": ["u1", "u2"],
         "createdAt": "2024-05-10T12:00:00.000Z"},
    ]))

    (task,) = TaskRepository(client, OFFSET, clock=lambda: NOW).list_for("u1")

    assert session.requests[0]["params"]["or"] == "(createdBy.eq.u1,assignedTo.cs.{u1})"
    assert task.created_by == "admin" and task.assigned_to == ["u1", "u2"]


def test_recurring_listing_stays_owner_only() -> None:
    client, session = _client(FakeResponse(200, []))
    RecurringTaskRepository(client, OFFSET).list_for("u1")
    assert session.requests[0]["params"] == {"select": "*", "createdBy": "eq.u1"}


def test_assignees_are_written_as_a_list() -> None:
    client, session = _client(FakeResponse(201, [{
        "id": "42", "title": "Inventory", "createdBy": "admin", "assignedTo": ["u2"],
    }]), FakeResponse(200, []))
    repo = TaskRepository(client, OFFSET, clock=lambda: NOW)

    repo.insert(Task(ref=Pending.new(), title="Inventory", status=TaskStatus.WAITING,
                     created_at=NOW, created_by="admin", assigned_to=["u2"]))
    repo.update("42", {"assigned_to": ("u2", "u3")})

    assert session.requests[0]["json"][0]["assignedTo"] == ["u2"]
    assert session.requests[1]["json"] == {"assignedTo": ["u2", "u3"]}


def test_row_without_id_is_a_backend_error() -> None:
    client, _ = _client(FakeResponse(201, [{"title": "no id", "status": "waiting"}]))
    repo = TaskRepository(client, OFFSET, clock=lambda: NOW)

    with pytest.raises(BackendError) as exc:
        repo.insert(Task(ref=Pending.new(), title="no id", status=TaskStatus.WAITING,
                         created_at=NOW, created_by="u1"))
    assert exc.value.body == {"title": "no id", "status": "waiting"}


def test_profiles_by_ids() -> None:
    client, session = _client(FakeResponse(200, [{"id": "u2", "email": "bob@example.com"}]))
    repo = ProfileRepository(client)

    assert [p.id for p in repo.list_by_ids(["u2", "u3"])] == ["u2"]
    assert session.requests[0]["params"]["id"] == 'in.("u2","u3")'
    assert repo.list_by_ids([]) == []
    assert len(session.requests) == 1
