from __future__ import annotations

import dataclasses
import logging
from typing import Callable, List, Optional

from core import config
from core.dates import encode_timestamp, utc_now
from core.exceptions import AuthError, BackendError, NotFoundError
from core.models import Profile
from storage.local_store import LocalStore
from storage.supabase import AuthSession, SupabaseClient

logger = logging.getLogger(__name__)

AuthListener = Callable[[str, Optional[Profile]], None]
PushRegistrar = Callable[[Profile], Optional[str]]

USER_KEY = "user"
SESSION_KEY = "session"


class AuthService:
    """Session handling on top of the hosted auth API, with the profile cached on the device."""

    def __init__(self, client: SupabaseClient, profiles, local_store: LocalStore,
                 push_registrar: Optional[PushRegistrar] = None):
        self.client = client
        self.profiles = profiles
        self.local_store = local_store
        self.push_registrar = push_registrar
        self._user: Optional[Profile] = None
        self._listeners: List[AuthListener] = []

    @property
    def current_user(self) -> Optional[Profile]:
        return self._user

    # ---------- listeners ----------
    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self._user)
            except Exception:
                logger.exception("Auth listener %r failed on %s", listener, event)

    def _set_user(self, profile: Profile, event: str) -> None:
        self._user = profile
        self.local_store.set(USER_KEY, profile.to_row())
        self._emit(event)

    def _signed_out(self) -> None:
        had_user = self._user is not None
        self._user = None
        self.local_store.remove(USER_KEY)
        self.local_store.remove(SESSION_KEY)
        self.client.set_session(None)
        if had_user:
            self._emit("SIGNED_OUT")

    def _save_session(self, auth: AuthSession) -> None:
        self.local_store.set(SESSION_KEY, auth.to_dict())

    # ---------- flows ----------
    def restore(self) -> Optional[Profile]:
        """
        Startup: show the cached profile right away, then confirm the stored
        session. An invalid or missing session signs the user out; a network
        failure keeps the cached profile.
        """
        cached = self.local_store.get(USER_KEY)
        if cached:
            try:
                self._user = Profile.from_row(cached)
            except (KeyError, TypeError):
                logger.warning("Discarding malformed cached profile")
                self.local_store.remove(USER_KEY)

        stored = self.local_store.get(SESSION_KEY) or {}
        if not stored.get("refresh_token"):
            self._signed_out()
            return None

        try:
            auth = self.client.refresh(stored["refresh_token"])
            self._save_session(auth)
            profile = self.profiles.get_by_email(auth.email)
        except (AuthError, NotFoundError):
            logger.info("Stored session is no longer valid")
            self._signed_out()
            return None
        except BackendError:
            logger.exception("Could not confirm session; using cached profile")
            return self._user

        self._set_user(profile, "TOKEN_REFRESHED")
        return profile

    def sign_in(self, email: str, password: str) -> Profile:
        auth = self.client.sign_in(email, password)
        self._save_session(auth)
        try:
            profile = self.profiles.get_by_email(email)
        except NotFoundError as e:
            self._signed_out()
            raise AuthError(f"No profile for {email}") from e
        self._set_user(profile, "SIGNED_IN")

        if self.push_registrar:
            try:
                token = self.push_registrar(profile)
            except BackendError:
                logger.exception("Push registration failed for %s", profile.id)
                token = None
            if token and token != profile.push_token:
                self._set_user(dataclasses.replace(profile, push_token=token), "USER_UPDATED")
        return self._user  # type: ignore[return-value]

    def sign_up(self, email: str, password: str, name: str, is_admin: bool = False) -> Profile:
        """Create the auth user and its profile row. Does not sign the new user in."""
        auth = self.client.sign_up(email, password, name)
        profile = Profile(
            id=auth.user_id,
            name=name,
            email=email,
            is_admin=is_admin,
            uid=auth.user_id,
            created_at=encode_timestamp(utc_now(), config.TZ_OFFSET_HOURS),
        )
        return self.profiles.insert(profile)

    def sign_out(self) -> None:
        try:
            self.client.sign_out()
        except BackendError:
            logger.exception("Remote sign-out failed; clearing local session anyway")
        finally:
            self._signed_out()

    def reset_password(self, email: str) -> None:
        self.client.reset_password(email)

    def refresh_profile(self) -> Optional[Profile]:
        if not self._user:
            return None
        try:
            profile = self.profiles.get(self._user.id)
        except BackendError:
            logger.exception("Reloading profile %s failed", self._user.id)
            return self._user
        self._set_user(profile, "USER_UPDATED")
        return profile
