# tests/conftest.py

from __future__ import annotations

import datetime as dt

import pytest

from controller.task_store import TaskStore
from core.models import Confirmed, Profile, RecurringTask, Task, TaskStatus

from .fakes import FakeClock, FakeTaskRepo

UTC = dt.timezone.utc
OFFSET = 3

# 12:00 local (UTC+3) on 2024-05-10
NOW = dt.datetime(2024, 5, 10, 9, 0, tzinfo=UTC)


def make_task(id_: str, title: str = "task", *, created_at: dt.datetime = NOW,
              status: TaskStatus = TaskStatus.WAITING, owner: str = "u1",
              archived: bool = False) -> Task:
    return Task(ref=Confirmed(id_), title=title, status=status, created_at=created_at,
                created_by=owner, is_archived=archived)


def make_recurring(id_: str, title: str = "routine", *, owner: str = "u1",
                   last_completed_at=None) -> RecurringTask:
    return RecurringTask(ref=Confirmed(id_), title=title, created_by=owner,
                         created_at=NOW - dt.timedelta(days=30),
                         last_completed_at=last_completed_at)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture()
def owner() -> Profile:
    return Profile(id="u1", name="Ann", email="ann@example.com")


@pytest.fixture()
def tasks_repo() -> FakeTaskRepo:
    return FakeTaskRepo()


@pytest.fixture()
def recurring_repo() -> FakeTaskRepo:
    return FakeTaskRepo()


@pytest.fixture()
def alerts() -> list:
    return []


@pytest.fixture()
def store(tasks_repo, recurring_repo, owner, clock, alerts) -> TaskStore:
    return TaskStore(tasks_repo, recurring_repo, owner, clock=clock,
                     on_error=lambda title, msg: alerts.append((title, msg)),
                     offset_hours=OFFSET)
