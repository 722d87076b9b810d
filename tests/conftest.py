"""
Pytest configuration and fixtures for Pocket Calendar tests.

Provides an in-memory key-value store, a scripted HTTP backend and a
mocked identity provider for session tests.
"""

from typing import Callable, Union
from unittest.mock import AsyncMock

import httpx
import pytest

from pocket_calendar.auth.identity import OAuthTokens
from pocket_calendar.auth.session import AuthSession
from pocket_calendar.auth.token_storage import TokenStore
from pocket_calendar.storage.key_value import InMemoryKeyValueStore

ScriptedReply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class ScriptedBackend:
    """
    HTTP handler for httpx.MockTransport that replays queued replies.

    Each reply is a response, an exception to raise, or a callable
    receiving the request. Every request is recorded.
    """

    def __init__(self, *replies: ScriptedReply):
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    def queue(self, *replies: ScriptedReply) -> None:
        self.replies.extend(replies)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply

    @property
    def call_count(self) -> int:
        return len(self.requests)


def make_tokens(access_token: str = "T2", refresh_token: str = "refresh-1") -> OAuthTokens:
    """Create an OAuthTokens value for tests."""
    return OAuthTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=3600,
        token_type="Bearer",
        scope="https://www.googleapis.com/auth/calendar",
    )


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    """Key-value store holding a signed-in session with token T1."""
    return InMemoryKeyValueStore({"token": "T1"})


@pytest.fixture
def token_store(kv_store) -> TokenStore:
    return TokenStore(kv_store)


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def http_client(backend) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(backend))


@pytest.fixture
def identity_provider() -> AsyncMock:
    """Identity provider that is signed in and refreshes to token T2."""
    provider = AsyncMock()
    provider.is_signed_in.return_value = True
    provider.get_tokens.return_value = make_tokens("T2")
    provider.sign_out.return_value = None
    return provider


@pytest.fixture
def auth_session(token_store, identity_provider, http_client) -> AuthSession:
    return AuthSession(
        token_store=token_store,
        identity_provider=identity_provider,
        http_client=http_client,
    )
