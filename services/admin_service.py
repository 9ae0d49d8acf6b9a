from __future__ import annotations

import logging
from typing import Dict, List

from core.models import Profile
from services import agenda

logger = logging.getLogger(__name__)


class AdminService:
    """Read-only overview for admin accounts."""

    def __init__(self, profiles, tasks):
        self.profiles = profiles
        self.tasks = tasks

    def list_users(self) -> List[Profile]:
        return sorted(self.profiles.list_all(), key=lambda p: (p.name.lower(), p.email))

    def stats(self) -> Dict[str, int]:
        users = self.profiles.list_all()
        tasks = self.tasks.list_for(None)
        counts = agenda.status_counts(tasks)
        out = {
            "users": len(users),
            "tasks": len(tasks),
            "completed": counts["completed"],
            "waiting": counts["waiting"],
            "past_due": counts["past_due"],
        }
        logger.debug("Admin stats %s", out)
        return out
