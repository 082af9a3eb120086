"""Shared fixtures for auth unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
import pytest

from edge_gallery.auth import (
    AccessToken,
    AuthConfig,
    AuthCoordinator,
    AuthorizationResponse,
    TokenStore,
)
from edge_gallery.catalog import ModelDescriptor
from edge_gallery.utils.misc import now_ms

TOKEN_ENDPOINT = "https://huggingface.co/oauth/token"


class FakeLauncher:
    """
    Launcher that answers the authorization page without a browser.

    Echoes the request's state back with a code unless told otherwise.
    """

    def __init__(self):
        self.urls: list[str] = []
        self.response: AuthorizationResponse | None = None

    async def authorize(self, url: str) -> AuthorizationResponse:
        self.urls.append(url)
        if self.response is not None:
            return self.response
        state = httpx.URL(url).params.get("state")
        return AuthorizationResponse(code="auth-code", state=state)


class FakeHub:
    """
    MockTransport handler standing in for the model host and token endpoint.

    HEAD requests answer ``anonymous_status`` without a bearer token and
    ``token_status`` with one.
    """

    def __init__(self):
        self.anonymous_status = 401
        self.token_status = 200
        self.token_response: dict[str, Any] = {
            "access_token": "hf_new",
            "refresh_token": "hf_refresh",
            "expires_in": 3600,
        }
        self.token_http_status = 200
        self.requests: list[httpx.Request] = []
        self.offline = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("offline", request=request)
        if request.method == "POST":
            return httpx.Response(self.token_http_status, json=self.token_response)
        if "Authorization" in request.headers:
            return httpx.Response(self.token_status)
        return httpx.Response(self.anonymous_status)

    def posted_form(self) -> dict[str, str]:
        post = next(r for r in self.requests if r.method == "POST")
        return dict(httpx.QueryParams(post.content.decode()))


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def token_store(data_dir: Path) -> TokenStore:
    """Token store over the temp data dir."""
    return TokenStore(data_dir)


@pytest.fixture
def launcher() -> FakeLauncher:
    """Authorization launcher that approves by default."""
    return FakeLauncher()


@pytest.fixture
def hub() -> FakeHub:
    """Fake model host."""
    return FakeHub()


@pytest.fixture
def coordinator(token_store: TokenStore, launcher: FakeLauncher, hub: FakeHub) -> AuthCoordinator:
    """Auth coordinator wired to the fake host."""
    return AuthCoordinator(
        AuthConfig(client_id="client-123", redirect_uri="gallery://oauth"),
        token_store,
        launcher,
        transport=httpx.MockTransport(hub),
    )


@pytest.fixture
def gated_model() -> ModelDescriptor:
    """Model hosted on the gated host."""
    return ModelDescriptor(
        name="Gated",
        url="https://huggingface.co/google/gated/resolve/main/model.task?download=true",
        size_in_bytes=10,
        download_file_name="model.task",
        learn_more_url="https://huggingface.co/google/gated",
    )


@pytest.fixture
def valid_token() -> AccessToken:
    """Token expiring in an hour."""
    return AccessToken(
        access_token="hf_stored",
        refresh_token="hf_refresh",
        expires_at_ms=now_ms() + 3_600_000,
    )
