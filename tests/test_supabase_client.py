# tests/test_supabase_client.py

from __future__ import annotations

import pytest
import requests

from core.exceptions import AuthError, BackendError, NotFoundError
from storage.supabase import SupabaseClient, eq, in_

from .fakes import FakeResponse, FakeSession

AUTH_PAYLOAD = {
    "access_token": "jwt-1",
    "refresh_token": "ref-1",
    "user": {"id": "u1", "email": "ann@example.com"},
}


def _client(*responses) -> tuple[SupabaseClient, FakeSession]:
    session = FakeSession(list(responses))
    return SupabaseClient("https://db.example.com/", "anon", timeout=5, session=session), session


def test_filters() -> None:
    assert eq("abc") == "eq.abc"
    assert in_(["a", "b"]) == 'in.("a","b")'


def test_sign_in_switches_bearer_to_user_token() -> None:
    client, session = _client(FakeResponse(200, AUTH_PAYLOAD))
    assert session.headers["Authorization"] == "Bearer anon"

    auth = client.sign_in("ann@example.com", "pw")

    req = session.requests[0]
    assert req["method"] == "POST"
    assert req["url"] == "https://db.example.com/auth/v1/token"
    assert req["params"] == {"grant_type": "password"}
    assert req["timeout"] == 5
    assert auth.user_id == "u1" and auth.refresh_token == "ref-1"
    assert session.headers["Authorization"] == "Bearer jwt-1"
    assert session.headers["apikey"] == "anon"


def test_sign_in_rejection_raises_auth_error() -> None:
    client, _ = _client(FakeResponse(400, {"error": "invalid_grant"}))
    with pytest.raises(AuthError) as exc:
        client.sign_in("ann@example.com", "bad")
    assert exc.value.status == 400


def test_sign_up_without_session_returns_user_only() -> None:
    client, session = _client(FakeResponse(200, {"id": "u9", "email": "new@example.com"}))
    auth = client.sign_up("new@example.com", "pw", "New")
    assert auth.user_id == "u9" and auth.access_token == ""
    assert session.requests[0]["json"]["data"] == {"name": "New"}
    assert session.headers["Authorization"] == "Bearer anon"


def test_sign_out_resets_token_even_on_failure() -> None:
    client, session = _client(FakeResponse(200, AUTH_PAYLOAD), FakeResponse(401, {"msg": "expired"}))
    client.sign_in("ann@example.com", "pw")

    with pytest.raises(AuthError):
        client.sign_out()

    assert client.auth is None
    assert session.headers["Authorization"] == "Bearer anon"


def test_select_passes_filters_and_order() -> None:
    client, session = _client(FakeResponse(200, [{"id": "1"}]))

    rows = client.select("tasks", {"createdBy": eq("u1")}, order="createdAt.desc")

    assert rows == [{"id": "1"}]
    assert session.requests[0]["params"] == {
        "select": "*",
        "createdBy": "eq.u1",
        "order": "createdAt.desc",
    }


def test_select_one_raises_not_found() -> None:
    client, _ = _client(FakeResponse(200, []))
    with pytest.raises(NotFoundError):
        client.select_one("profiles", {"email": eq("x@example.com")})


def test_insert_asks_for_representation() -> None:
    client, session = _client(FakeResponse(201, [{"id": "9", "title": "t"}]))

    row = client.insert("tasks", {"title": "t"})

    assert row == {"id": "9", "title": "t"}
    req = session.requests[0]
    assert req["json"] == [{"title": "t"}]
    assert req["headers"] == {"Prefer": "return=representation"}


def test_update_and_delete_target_rows() -> None:
    client, session = _client(FakeResponse(200, []), FakeResponse(204))

    client.update("tasks", {"id": eq("9")}, {"status": "completed"})
    assert client.delete("tasks", {"id": eq("9")}) == []

    assert [r["method"] for r in session.requests] == ["PATCH", "DELETE"]
    assert session.requests[1]["params"] == {"id": "eq.9"}


def test_delete_without_filters_is_refused() -> None:
    client, session = _client()
    with pytest.raises(ValueError):
        client.delete("tasks", {})
    assert session.requests == []


def test_network_errors_become_backend_errors() -> None:
    client, _ = _client(requests.ConnectionError("offline"))
    with pytest.raises(BackendError) as exc:
        client.select("tasks")
    assert exc.value.status is None


def test_server_errors_carry_status_and_body() -> None:
    client, _ = _client(FakeResponse(503, {"message": "maintenance"}))
    with pytest.raises(BackendError) as exc:
        client.update("tasks", {"id": eq("1")}, {"title": "x"})
    assert exc.value.status == 503
    assert "maintenance" in exc.value.body


def test_auth_outage_is_not_an_auth_error() -> None:
    client, _ = _client(FakeResponse(502, {"msg": "bad gateway"}))
    with pytest.raises(BackendError) as exc:
        client.refresh("ref-1")
    assert not isinstance(exc.value, AuthError)


def test_unreadable_success_body_is_a_backend_error() -> None:
    client, _ = _client(FakeResponse(201, text="<html>gateway</html>"))
    with pytest.raises(BackendError) as exc:
        client.insert("tasks", {"title": "x"})
    assert exc.value.status == 201
    assert "gateway" in exc.value.body


def test_unreadable_sign_in_body_is_not_an_auth_error() -> None:
    client, _ = _client(FakeResponse(200, text="{truncated"))
    with pytest.raises(BackendError) as exc:
        client.sign_in("ann@example.com", "pw")
    assert not isinstance(exc.value, AuthError)
    assert client.auth is None
