from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from core import config
from core.exceptions import BackendError
from core.models import Notification, Profile, Task

logger = logging.getLogger(__name__)


class PushRelay:
    """Posts one message per device token to the push relay."""

    def __init__(self, url: str = config.PUSH_URL, session: Optional[requests.Session] = None,
                 timeout: float = config.REQUEST_TIMEOUT):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
        payload = {
            "to": token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data or {},
        }
        try:
            r = self.session.post(self.url, json=payload, timeout=self.timeout,
                                  headers={"Accept": "application/json"})
        except requests.RequestException as e:
            raise BackendError(f"push to {token} failed: {e}") from e
        if not r.ok:
            raise BackendError(f"push: {r.status_code} {r.text}", status=r.status_code, body=r.text)


class NotificationService:
    def __init__(self, notifications, profiles, relay: Optional[PushRelay] = None):
        self.notifications = notifications
        self.profiles = profiles
        self.relay = relay

    # ---------- admin ----------
    def send_admin_notification(self, title: str, message: str) -> Notification:
        """
        Store a system notification, add it to every user's unseen list and push
        it to users with a registered device. Only the insert is fatal; failures
        for individual users are logged and skipped.
        """
        title, message = (title or "").strip(), (message or "").strip()
        if not title or not message:
            raise ValueError("title and message are required")

        note = self.notifications.insert(title, message, kind="system")
        profiles: List[Profile] = self.profiles.list_all()
        delivered = 0
        for p in profiles:
            try:
                self.profiles.update(p.id, {"unseen": [*p.unseen, note.id]})
            except BackendError:
                logger.exception("Could not add notification %s to user %s", note.id, p.id)
                continue
            if p.push_token and self.relay:
                try:
                    self.relay.send(p.push_token, title, message, {"notificationId": note.id})
                    delivered += 1
                except BackendError:
                    logger.warning("Push to user %s failed", p.id, exc_info=True)
        logger.info("Notification %s sent to %d users (%d pushed)", note.id, len(profiles), delivered)
        return note

    # ---------- tasks ----------
    def send_new_task_notification(self, task: Task,
                                   assignee_ids: Optional[List[str]] = None) -> Optional[Notification]:
        """Tell the users a task was assigned to. Returns None when nobody is assigned."""
        ids = list(dict.fromkeys(assignee_ids if assignee_ids is not None else task.assigned_to))
        if not ids:
            return None

        title, message = "New task", f"{task.title} was assigned to you"
        note = self.notifications.insert(title, message, kind="task")
        assignees: List[Profile] = self.profiles.list_by_ids(ids)
        pushed = 0
        for p in assignees:
            try:
                self.profiles.update(p.id, {"unseen": [*p.unseen, note.id]})
            except BackendError:
                logger.exception("Could not add notification %s to user %s", note.id, p.id)
                continue
            if p.push_token and self.relay:
                try:
                    self.relay.send(p.push_token, title, message,
                                    {"notificationId": note.id, "taskId": task.id})
                    pushed += 1
                except BackendError:
                    logger.warning("Push to user %s failed", p.id, exc_info=True)
        logger.info("Task notification %s sent to %d assignees (%d pushed)", note.id, len(assignees), pushed)
        return note

    # ---------- user ----------
    def mark_as_seen(self, user_id: str, notification_id: str) -> Profile:
        # re-read so concurrent sends are not lost
        p = self.profiles.get(user_id)
        if notification_id not in p.unseen:
            return p
        unseen = [i for i in p.unseen if i != notification_id]
        seen = p.seen if notification_id in p.seen else [*p.seen, notification_id]
        self.profiles.update(user_id, {"unseen": unseen, "seen": seen})
        p.unseen, p.seen = unseen, seen
        return p

    def list_for(self, profile: Profile) -> List[Notification]:
        """Every notification the user received, newest first."""
        ids = list(dict.fromkeys([*profile.unseen, *profile.seen]))
        notes = self.notifications.list_by_ids(ids)
        return sorted(notes, key=lambda n: n.created_at, reverse=True)

    @staticmethod
    def unseen_count(profile: Profile) -> int:
        return len(profile.unseen)

    def register_push_token(self, user_id: str, token: Optional[str], *,
                            is_device: bool = True, permission_granted: bool = True) -> Optional[str]:
        """Save the device token on the profile. Returns None when it cannot be registered."""
        if not is_device:
            logger.info("Push notifications need a physical device")
            return None
        if not permission_granted:
            logger.info("Push permission not granted for user %s", user_id)
            return None
        if not token:
            return None
        self.profiles.update(user_id, {"expoPushToken": token})
        logger.debug("Registered push token for user %s", user_id)
        return token
