"""Authorization launchers: hand the user an authorization URL, collect the redirect."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Protocol

import httpx

from .models import AuthorizationResponse

logger = logging.getLogger(__name__)


class AuthorizationLauncher(Protocol):
    async def authorize(self, url: str) -> AuthorizationResponse: ...


def parse_redirect(redirect_url: str) -> AuthorizationResponse:
    """Pull code/state/error out of the redirect URI query string."""
    params = httpx.URL(redirect_url.strip()).params
    return AuthorizationResponse(
        code=params.get("code") or None,
        state=params.get("state") or None,
        error=params.get("error") or None,
    )


class ConsoleAuthorizationLauncher:
    """
    Open the authorization page in a browser and read the redirect URL
    the user pastes back into the terminal.

    An empty line counts as the user cancelling the flow.
    """

    def __init__(self, open_browser: bool = True):
        self._open_browser = open_browser

    async def authorize(self, url: str) -> AuthorizationResponse:
        print(f"Open this URL to authorize access:\n  {url}")
        if self._open_browser:
            await asyncio.to_thread(webbrowser.open, url)
        line = await asyncio.to_thread(input, "Paste the redirect URL (empty to cancel): ")
        if not line.strip():
            logger.info("Authorization cancelled at the prompt")
            return AuthorizationResponse()
        return parse_redirect(line)
