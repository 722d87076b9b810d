"""Tests for the authenticated session."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pocket_calendar.auth.exceptions import (
    AuthenticationError,
    MissingCredentialError,
    is_session_expired,
)
from pocket_calendar.auth.identity import UserProfile
from pocket_calendar.auth.session import AuthSession, build_auth_headers
from pocket_calendar.auth.token_storage import TokenStore
from pocket_calendar.storage.key_value import InMemoryKeyValueStore

from tests.conftest import ScriptedBackend, make_tokens

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"


class TestBuildAuthHeaders:
    """Tests for header merging."""

    def test_adds_bearer_and_json_default(self):
        """Should add Authorization and default Content-Type."""
        headers = build_auth_headers(None, "abc")
        assert headers["Authorization"] == "Bearer abc"
        assert headers["Content-Type"] == "application/json"

    def test_preserves_caller_headers(self):
        """Should keep caller headers alongside the token."""
        headers = build_auth_headers({"X-Trace": "42"}, "abc")
        assert headers["X-Trace"] == "42"
        assert headers["Authorization"] == "Bearer abc"

    def test_caller_content_type_wins(self):
        """Should not override a caller-supplied Content-Type."""
        headers = build_auth_headers({"content-type": "text/plain"}, "abc")
        assert headers["Content-Type"] == "text/plain"

    def test_replaces_caller_authorization(self):
        """Should always use the session token."""
        headers = build_auth_headers({"Authorization": "Bearer stale"}, "fresh")
        assert headers["Authorization"] == "Bearer fresh"


class TestMakeAuthenticatedRequest:
    """Tests for the retry-on-401 request flow."""

    @pytest.mark.asyncio
    async def test_no_token_short_circuits(self, identity_provider, backend, http_client):
        """Should fail without network calls and notify once when no token is stored."""
        session = AuthSession(TokenStore(InMemoryKeyValueStore()), identity_provider, http_client)
        callback = MagicMock()
        session.set_expired_callback(callback)

        with pytest.raises(MissingCredentialError) as exc_info:
            await session.make_authenticated_request(EVENTS_URL)

        assert exc_info.value.kind == AuthenticationError.MISSING_CREDENTIAL
        assert "No access token found" in str(exc_info.value)
        callback.assert_called_once_with()
        assert backend.call_count == 0
        identity_provider.is_signed_in.assert_not_called()

    @pytest.mark.asyncio
    async def test_success_returns_response(self, auth_session, backend):
        """Should attach the stored token and return the response."""
        backend.queue(httpx.Response(200, json={"items": []}))

        response = await auth_session.make_authenticated_request(EVENTS_URL)

        assert response.status_code == 200
        assert backend.call_count == 1
        request = backend.requests[0]
        assert request.headers["Authorization"] == "Bearer T1"
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_passes_method_body_and_headers(self, auth_session, backend):
        """Should forward method, JSON body and caller headers."""
        backend.queue(httpx.Response(200, json={"id": "e1"}))

        await auth_session.make_authenticated_request(
            EVENTS_URL,
            method="POST",
            headers={"X-Client": "pocket"},
            json={"summary": "Standup"},
        )

        request = backend.requests[0]
        assert request.method == "POST"
        assert request.headers["X-Client"] == "pocket"
        assert json.loads(request.content) == {"summary": "Standup"}

    @pytest.mark.asyncio
    async def test_retries_once_with_refreshed_token(self, auth_session, backend, token_store):
        """Should refresh on 401 and retry with the new bearer token."""
        backend.queue(httpx.Response(401), httpx.Response(200, json={"ok": True}))
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        response = await auth_session.make_authenticated_request(EVENTS_URL)

        assert response.status_code == 200
        assert backend.call_count == 2
        assert backend.requests[0].headers["Authorization"] == "Bearer T1"
        assert backend.requests[1].headers["Authorization"] == "Bearer T2"
        assert await token_store.get_token() == "T2"
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_retry_preserves_method_and_body(self, auth_session, backend):
        """Should resend the same method and body on retry."""
        backend.queue(httpx.Response(401), httpx.Response(200))

        await auth_session.make_authenticated_request(
            EVENTS_URL, method="PUT", json={"summary": "Moved"}
        )

        first, second = backend.requests
        assert second.method == "PUT"
        assert second.content == first.content

    @pytest.mark.asyncio
    async def test_double_401_is_terminal(self, auth_session, backend, identity_provider):
        """Should fail after one retry and notify exactly once."""
        backend.queue(httpx.Response(401), httpx.Response(401))
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_session.make_authenticated_request(EVENTS_URL)

        assert exc_info.value.kind == AuthenticationError.REJECTED_AFTER_REFRESH
        assert "Authentication failed" in str(exc_info.value)
        assert backend.call_count == 2
        identity_provider.get_tokens.assert_awaited_once()
        callback.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_refresh_failure_skips_retry(self, auth_session, backend, identity_provider):
        """Should fail without a retry when the provider reports signed out."""
        identity_provider.is_signed_in.return_value = False
        backend.queue(httpx.Response(401))
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_session.make_authenticated_request(EVENTS_URL)

        assert exc_info.value.kind == AuthenticationError.REFRESH_FAILED
        assert backend.call_count == 1
        callback.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_non_auth_errors_returned_unmodified(self, auth_session, backend, identity_provider):
        """Should return 4xx/5xx responses other than 401 as they are."""
        backend.queue(httpx.Response(404, json={"error": "nope"}), httpx.Response(503))

        first = await auth_session.make_authenticated_request(EVENTS_URL)
        second = await auth_session.make_authenticated_request(EVENTS_URL)

        assert first.status_code == 404
        assert first.json() == {"error": "nope"}
        assert second.status_code == 503
        identity_provider.is_signed_in.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, auth_session, backend, identity_provider):
        """Should propagate network failures without notifying expiry."""
        backend.queue(httpx.ConnectError("Network unreachable"))
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        with pytest.raises(httpx.ConnectError):
            await auth_session.make_authenticated_request(EVENTS_URL)

        callback.assert_not_called()
        identity_provider.is_signed_in.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_error_on_retry_propagates(self, auth_session, backend):
        """Should propagate a network failure during the retry unchanged."""
        backend.queue(httpx.Response(401), httpx.ReadTimeout("timed out"))
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        with pytest.raises(httpx.ReadTimeout):
            await auth_session.make_authenticated_request(EVENTS_URL)

        callback.assert_not_called()


class TestRefreshToken:
    """Tests for silent token refresh."""

    @pytest.mark.asyncio
    async def test_stores_new_token(self, auth_session, token_store):
        """Should persist and return the refreshed token."""
        assert await auth_session.refresh_token() == "T2"
        assert await token_store.get_token() == "T2"

    @pytest.mark.asyncio
    async def test_not_signed_in(self, auth_session, identity_provider, token_store):
        """Should notify and return None when the provider is signed out."""
        identity_provider.is_signed_in.return_value = False
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        assert await auth_session.refresh_token() is None

        callback.assert_called_once_with()
        identity_provider.get_tokens.assert_not_called()
        assert await token_store.get_token() == "T1"

    @pytest.mark.asyncio
    async def test_no_usable_token(self, auth_session, identity_provider):
        """Should notify when the provider returns no access token."""
        identity_provider.get_tokens.return_value = make_tokens(access_token="")
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        assert await auth_session.refresh_token() is None
        callback.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_provider_exception_is_swallowed(self, auth_session, identity_provider):
        """Should treat provider errors as refresh failure and never raise."""
        identity_provider.get_tokens.side_effect = RuntimeError("boom")
        callback = MagicMock()
        auth_session.set_expired_callback(callback)

        assert await auth_session.refresh_token() is None
        callback.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_sign_in_check_exception_is_swallowed(self, auth_session, identity_provider):
        """Should handle errors from is_signed_in the same way."""
        identity_provider.is_signed_in.side_effect = httpx.ConnectError("offline")

        assert await auth_session.refresh_token() is None

    @pytest.mark.asyncio
    async def test_no_listener_registered(self, auth_session, identity_provider):
        """Should succeed quietly when nobody listens for expiry."""
        identity_provider.is_signed_in.return_value = False
        assert await auth_session.refresh_token() is None


class TestExpiredCallback:
    """Tests for expiry listener registration."""

    @pytest.mark.asyncio
    async def test_last_registration_wins(self, auth_session, identity_provider):
        """Should only notify the most recently registered callback."""
        identity_provider.is_signed_in.return_value = False
        first = MagicMock()
        second = MagicMock()

        auth_session.set_expired_callback(first)
        auth_session.set_expired_callback(second)
        await auth_session.refresh_token()

        first.assert_not_called()
        second.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_clear_with_none(self, auth_session, identity_provider):
        """Should stop notifying after the callback is cleared."""
        identity_provider.is_signed_in.return_value = False
        callback = MagicMock()

        auth_session.set_expired_callback(callback)
        auth_session.set_expired_callback(None)
        await auth_session.refresh_token()

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_listener_context_clears_on_exit(self, auth_session, identity_provider):
        """Should register for the block and clear afterwards."""
        identity_provider.is_signed_in.return_value = False
        callback = MagicMock()

        with auth_session.expiry_listener(callback):
            await auth_session.refresh_token()
        await auth_session.refresh_token()

        callback.assert_called_once_with()

    def test_listener_context_keeps_newer_listener(self, auth_session):
        """Should not clear a listener registered by someone else."""
        old = MagicMock()
        new = MagicMock()

        with auth_session.expiry_listener(old):
            auth_session.set_expired_callback(new)

        assert auth_session._expired_callback is new

    @pytest.mark.asyncio
    async def test_raising_listener_does_not_change_outcome(self, auth_session, backend):
        """Should still raise AuthenticationError if the listener fails."""
        backend.queue(httpx.Response(401), httpx.Response(401))
        auth_session.set_expired_callback(MagicMock(side_effect=RuntimeError("disposed")))

        with pytest.raises(AuthenticationError):
            await auth_session.make_authenticated_request(EVENTS_URL)


class TestLogout:
    """Tests for logout."""

    @pytest.mark.asyncio
    async def test_clears_session(self, auth_session, kv_store, identity_provider):
        """Should sign out and remove both session keys."""
        await kv_store.set("userInfo", '{"email": "a@example.com"}')

        assert await auth_session.logout() is True

        identity_provider.sign_out.assert_awaited_once()
        assert "token" not in kv_store
        assert "userInfo" not in kv_store

    @pytest.mark.asyncio
    async def test_provider_failure_still_clears(self, auth_session, kv_store, identity_provider):
        """Should succeed and clear storage when provider sign-out fails."""
        await kv_store.set("userInfo", '{"email": "a@example.com"}')
        identity_provider.sign_out.side_effect = httpx.ConnectError("offline")

        assert await auth_session.logout() is True

        assert "token" not in kv_store
        assert "userInfo" not in kv_store

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self, identity_provider, http_client):
        """Should succeed even if the store cannot remove keys."""
        store = MagicMock()
        store.multi_remove = AsyncMock(side_effect=OSError("disk full"))
        session = AuthSession(TokenStore(store), identity_provider, http_client)

        assert await session.logout() is True


class TestSessionState:
    """Tests for sign-in state helpers."""

    @pytest.mark.asyncio
    async def test_complete_sign_in(self, identity_provider, http_client):
        """Should persist token and profile."""
        store = InMemoryKeyValueStore()
        session = AuthSession(TokenStore(store), identity_provider, http_client)
        profile = UserProfile(name="Ada", email="ada@example.com", photo_url=None)

        assert await session.is_authenticated() is False
        await session.complete_sign_in("T9", profile)

        assert await session.is_authenticated() is True
        assert await session.current_user() == profile
        assert await store.get("token") == "T9"


class TestCoalescedRefresh:
    """Tests for optional single-flight refresh."""

    @pytest.mark.asyncio
    async def test_independent_refreshes_by_default(self, auth_session, identity_provider):
        """Should refresh once per caller without coalescing."""
        await asyncio.gather(auth_session.refresh_token(), auth_session.refresh_token())
        assert identity_provider.get_tokens.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_refresh(self, token_store, identity_provider, http_client):
        """Should run one refresh for concurrent callers when enabled."""
        release = asyncio.Event()

        async def slow_tokens():
            await release.wait()
            return make_tokens("T3")

        identity_provider.get_tokens.side_effect = slow_tokens
        session = AuthSession(token_store, identity_provider, http_client, coalesce_refreshes=True)

        first = asyncio.ensure_future(session.refresh_token())
        second = asyncio.ensure_future(session.refresh_token())
        await asyncio.sleep(0)
        release.set()

        assert await asyncio.gather(first, second) == ["T3", "T3"]
        assert identity_provider.get_tokens.await_count == 1

    @pytest.mark.asyncio
    async def test_new_refresh_after_completion(self, token_store, identity_provider, http_client):
        """Should start a fresh refresh once the previous one finished."""
        session = AuthSession(token_store, identity_provider, http_client, coalesce_refreshes=True)

        await session.refresh_token()
        await session.refresh_token()

        assert identity_provider.get_tokens.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_notify_once(self, token_store, identity_provider):
        """Should notify once when a shared refresh fails."""
        backend = ScriptedBackend(httpx.Response(401), httpx.Response(401))
        release = asyncio.Event()

        async def slow_sign_in_check():
            await release.wait()
            return False

        identity_provider.is_signed_in.side_effect = slow_sign_in_check
        client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
        session = AuthSession(token_store, identity_provider, client, coalesce_refreshes=True)
        callback = MagicMock()
        session.set_expired_callback(callback)

        pending = asyncio.gather(
            session.make_authenticated_request(EVENTS_URL),
            session.make_authenticated_request(EVENTS_URL),
            return_exceptions=True,
        )
        while backend.call_count < 2:
            await asyncio.sleep(0)
        release.set()
        results = await pending

        assert all(isinstance(result, AuthenticationError) for result in results)
        callback.assert_called_once_with()


def test_is_session_expired():
    """Should recognise authentication errors only."""
    assert is_session_expired(AuthenticationError("Token refresh failed")) is True
    assert is_session_expired(MissingCredentialError()) is True
    assert is_session_expired(httpx.ConnectError("offline")) is False
    assert is_session_expired(ValueError("other")) is False
