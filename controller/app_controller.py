from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, List, Optional

from core import config
from core.exceptions import BackendError
from core.models import Profile, Task
from controller.completion import CompletionQueue
from controller.task_store import ErrorHandler, TaskStore
from services.admin_service import AdminService
from services.auth_service import AuthService
from services.notification_service import NotificationService, PushRelay
from services.preferences import Preferences
from storage.local_store import LocalStore
from storage.repositories import (
    NotificationRepository,
    ProfileRepository,
    RecurringTaskRepository,
    TaskRepository,
)
from storage.supabase import SupabaseClient

logger = logging.getLogger(__name__)


def _log_alert(title: str, message: str) -> None:
    logger.error("%s: %s", title, message)


class AppController:
    """Wires the backend client, repositories and services for one device."""

    def __init__(self, client: SupabaseClient, local_store: LocalStore, *,
                 relay: Optional[PushRelay] = None,
                 on_error: ErrorHandler = _log_alert,
                 offset_hours: int = config.TZ_OFFSET_HOURS,
                 store_factory: Optional[Callable[[Profile], TaskStore]] = None,
                 push_token: Optional[Callable[[], Optional[str]]] = None,
                 is_device: bool = True,
                 push_permission: bool = True):
        self.client = client
        self.local_store = local_store
        self.on_error = on_error
        self.offset_hours = offset_hours
        self._push_token = push_token
        self._is_device = is_device
        self._push_permission = push_permission

        self.profiles = ProfileRepository(client)
        self.tasks_repo = TaskRepository(client, offset_hours)
        self.recurring_repo = RecurringTaskRepository(client, offset_hours)
        self.notifications_repo = NotificationRepository(client, offset_hours)

        self.notifications = NotificationService(self.notifications_repo, self.profiles, relay)
        self.auth = AuthService(client, self.profiles, local_store, push_registrar=self._register_push)
        self.preferences = Preferences(local_store)
        self.admin = AdminService(self.profiles, self.tasks_repo)

        self._store_factory = store_factory or self._make_store
        self.store: Optional[TaskStore] = None
        self.completion: Optional[CompletionQueue] = None
        self.auth.on_auth_state_change(self._on_auth_event)

    # ---------- session ----------
    def _make_store(self, owner: Profile) -> TaskStore:
        return TaskStore(self.tasks_repo, self.recurring_repo, owner,
                         on_error=self.on_error, offset_hours=self.offset_hours)

    def _on_auth_event(self, event: str, profile: Optional[Profile]) -> None:
        if event == "SIGNED_OUT" or profile is None:
            if self.store:
                self.store.clear()
            self.store = None
            self.completion = None
            return
        if self.store is None or self.store.owner.id != profile.id:
            self.store = self._store_factory(profile)
            self.completion = CompletionQueue(self.store)
        else:
            self.store.owner = profile

    def start(self) -> Optional[Profile]:
        """Restore the previous session and load its tasks."""
        profile = self.auth.restore()
        if profile and self.store is None:
            # network failure on restore: keep working from the cached profile
            self._on_auth_event("SIGNED_IN", profile)
        if self.store:
            self.store.load()
        return profile

    def login(self, email: str, password: str) -> Profile:
        profile = self.auth.sign_in(email, password)
        if self.store:
            self.store.load()
        return profile

    def logout(self) -> None:
        self.auth.sign_out()

    @property
    def is_admin(self) -> bool:
        user = self.auth.current_user
        return bool(user and user.is_admin)

    # ---------- push ----------
    def _register_push(self, profile: Profile) -> Optional[str]:
        token = self._push_token() if self._push_token else None
        return self.notifications.register_push_token(
            profile.id, token, is_device=self._is_device, permission_granted=self._push_permission)

    # ---------- tasks ----------
    def create_task(self, title: str, created_at: Optional[dt.datetime] = None,
                    description: str = "", assigned_to: Optional[List[str]] = None) -> Optional[Task]:
        """Add a task and notify its assignees once the row exists."""
        if self.store is None:
            raise RuntimeError("not signed in")
        task = self.store.add(title, created_at, description, assigned_to)
        if task is None or not task.assigned_to:
            return task
        try:
            self.notifications.send_new_task_notification(task)
        except BackendError:
            logger.exception("Could not notify assignees of task %s", task.id)
        return task
