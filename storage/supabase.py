from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from core.exceptions import AuthError, BackendError, NotFoundError

logger = logging.getLogger(__name__)

Filters = Dict[str, str]


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    user_id: str
    email: str

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "AuthSession":
        user = data.get("user") or {}
        token = data.get("access_token")
        if not token or not user.get("id"):
            raise AuthError("Missing token or user id in auth response", body=data)
        return cls(
            access_token=token,
            refresh_token=data.get("refresh_token") or "",
            user_id=str(user["id"]),
            email=str(user.get("email") or ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user_id": self.user_id,
            "email": self.email,
        }


def eq(value: Any) -> str:
    """PostgREST equality filter."""
    return f"eq.{value}"


def in_(values: List[str]) -> str:
    quoted = ",".join(f'"{v}"' for v in values)
    return f"in.({quoted})"


class SupabaseClient:
    """Thin client over the hosted auth (``/auth/v1``) and row (``/rest/v1``) APIs."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"apikey": api_key, "Authorization": f"Bearer {api_key}"})
        self.auth: Optional[AuthSession] = None

    # ---------- plumbing ----------
    def _request(self, method: str, path: str, *, error_cls=BackendError, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise BackendError(f"{method} {path} failed: {e}") from e
        if not r.ok:
            # 5xx is an outage, not a rejected credential
            cls = error_cls if r.status_code < 500 else BackendError
            raise cls(f"{method} {path}: {r.status_code} {r.text}", status=r.status_code, body=r.text)
        return r

    @staticmethod
    def _json(r: requests.Response) -> Any:
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            # gateway error pages and truncated bodies still come back as 2xx
            raise BackendError(f"Unreadable reply ({r.status_code}): {e}",
                               status=r.status_code, body=r.text) from e

    # ---------- auth ----------
    def set_session(self, auth: Optional[AuthSession]) -> None:
        self.auth = auth
        token = auth.access_token if auth else self.api_key
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def sign_in(self, email: str, password: str) -> AuthSession:
        r = self._request("POST", "/auth/v1/token", params={"grant_type": "password"},
                          json={"email": email, "password": password}, error_cls=AuthError)
        auth = AuthSession.from_response(self._json(r) or {})
        self.set_session(auth)
        logger.info("Signed in user=%s", auth.user_id)
        return auth

    def sign_up(self, email: str, password: str, name: str = "") -> AuthSession:
        r = self._request("POST", "/auth/v1/signup",
                          json={"email": email, "password": password, "data": {"name": name}},
                          error_cls=AuthError)
        data = self._json(r) or {}
        # with email confirmation on, signup returns the bare user and no session
        if "access_token" not in data:
            user = data.get("user") or data
            if not user.get("id"):
                raise AuthError("Missing user id in signup response", body=data)
            return AuthSession(access_token="", refresh_token="", user_id=str(user["id"]),
                               email=str(user.get("email") or email))
        auth = AuthSession.from_response(data)
        self.set_session(auth)
        return auth

    def refresh(self, refresh_token: str) -> AuthSession:
        r = self._request("POST", "/auth/v1/token", params={"grant_type": "refresh_token"},
                          json={"refresh_token": refresh_token}, error_cls=AuthError)
        auth = AuthSession.from_response(self._json(r) or {})
        self.set_session(auth)
        return auth

    def get_user(self) -> Dict[str, Any]:
        if not self.auth:
            raise AuthError("No active session")
        return self._json(self._request("GET", "/auth/v1/user", error_cls=AuthError)) or {}

    def sign_out(self) -> None:
        try:
            if self.auth:
                self._request("POST", "/auth/v1/logout", error_cls=AuthError)
        finally:
            self.set_session(None)

    def reset_password(self, email: str) -> None:
        self._request("POST", "/auth/v1/recover", json={"email": email}, error_cls=AuthError)

    # ---------- rows ----------
    def select(self, table: str, filters: Optional[Filters] = None,
               order: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"select": "*"}
        params.update(filters or {})
        if order:
            params["order"] = order
        return self._json(self._request("GET", f"/rest/v1/{table}", params=params)) or []

    def select_one(self, table: str, filters: Filters) -> Dict[str, Any]:
        rows = self.select(table, filters)
        if not rows:
            raise NotFoundError(f"No row in {table} for {filters}", status=404)
        return rows[0]

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        r = self._request("POST", f"/rest/v1/{table}", json=[row],
                          headers={"Prefer": "return=representation"})
        rows = self._json(r) or []
        if isinstance(rows, dict):
            rows = [rows]
        if not rows:
            raise BackendError(f"Insert into {table} returned no row", status=r.status_code)
        return rows[0]

    def update(self, table: str, filters: Filters, fields: Dict[str, Any]) -> List[Dict[str, Any]]:
        r = self._request("PATCH", f"/rest/v1/{table}", params=filters, json=fields,
                          headers={"Prefer": "return=representation"})
        return self._json(r) or []

    def delete(self, table: str, filters: Filters) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("refusing to delete without filters")
        r = self._request("DELETE", f"/rest/v1/{table}", params=filters,
                          headers={"Prefer": "return=representation"})
        return self._json(r) or []
