"""Auth coordinator for gated model downloads (OAuth authorization-code flow)."""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass

import httpx

from ..catalog.models import ModelDescriptor
from ..downloads.errors import NetworkError
from ..utils.misc import now_ms
from .errors import AuthExchangeError, TokenStoreError
from .launcher import AuthorizationLauncher
from .models import (
    AccessToken,
    AuthOutcome,
    AuthOutcomeType,
    AuthState,
    TokenRequestResult,
    TokenRequestResultType,
    TokenStatus,
)
from .token_store import TokenStore

logger = logging.getLogger(__name__)

UNKNOWN_NETWORK_ERROR = "Unknown network error"
USER_CANCELLED_MESSAGE = "User cancelled flow"


@dataclass(frozen=True)
class AuthConfig:
    """OAuth client configuration."""

    client_id: str
    redirect_uri: str
    authorization_endpoint: str = "https://huggingface.co/oauth/authorize"
    token_endpoint: str = "https://huggingface.co/oauth/token"
    scope: str = "read-repos"
    gated_host: str = "https://huggingface.co"
    timeout: float = 30.0


def _pkce_pair() -> tuple[str, str]:
    """Return (code_verifier, S256 code_challenge)."""
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


class AuthCoordinator:
    """
    Decide whether a download needs a token and obtain one when it does.

    Flow for prepare_download():
    1. Non-gated host -> proceed without token
    2. Anonymous probe answers 200 -> proceed without token
    3. Stored token still valid and probe with it answers 200 -> proceed
    4. Otherwise run the authorization-code flow, then probe again:
       403 means the model's license must be acknowledged first
    """

    def __init__(
        self,
        config: AuthConfig,
        token_store: TokenStore,
        launcher: AuthorizationLauncher,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize auth coordinator.

        Args:
            config: OAuth client configuration
            token_store: Where tokens are persisted (this class is its only writer)
            launcher: Presents the authorization page to the user
            transport: Optional httpx transport (tests)
        """
        self._config = config
        self._store = token_store
        self._launcher = launcher
        self._transport = transport
        self._state = AuthState.IDLE

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def token_store(self) -> TokenStore:
        return self._store

    def _set_state(self, state: AuthState) -> None:
        logger.debug(f"Auth state: {self._state.value} -> {state.value}")
        self._state = state

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._config.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    def needs_auth_check(self, descriptor: ModelDescriptor) -> bool:
        return descriptor.url.startswith(self._config.gated_host)

    async def probe(self, url: str, access_token: str | None = None) -> int:
        """
        Return the HTTP status a HEAD request for ``url`` gets.

        Raises:
            NetworkError: If the host could not be reached
        """
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        async with self._client() as client:
            try:
                response = await client.head(url, headers=headers)
            except httpx.RequestError as e:
                raise NetworkError(f"Probe of {url} failed: {e}") from e
        logger.info(f"Probe {url} -> {response.status_code}")
        return response.status_code

    async def prepare_download(self, descriptor: ModelDescriptor) -> AuthOutcome:
        """
        Work out how (and whether) a model can be downloaded.

        Returns:
            AuthOutcome telling the caller to proceed (with the token to
            use, if any), to show the license acknowledgement, or why not
        """
        self._set_state(AuthState.CHECKING_TOKEN_NEED)
        if not self.needs_auth_check(descriptor):
            self._set_state(AuthState.NO_AUTH_NEEDED)
            return AuthOutcome(type=AuthOutcomeType.PROCEED)

        try:
            code = await self.probe(descriptor.url)
            if code == 200:
                self._set_state(AuthState.NO_AUTH_NEEDED)
                return AuthOutcome(type=AuthOutcomeType.PROCEED)

            token_status = self._store.get_status()
            if token_status.status == TokenStatus.NOT_EXPIRED and token_status.token:
                token = token_status.token.access_token
                code = await self.probe(descriptor.url, token)
                if code == 200:
                    self._set_state(AuthState.TOKEN_VALID)
                    return AuthOutcome(type=AuthOutcomeType.PROCEED, access_token=token)
                logger.info(f"Stored token rejected with {code}, re-authorizing")
            else:
                logger.info(f"Token {token_status.status.value}, authorizing")
            self._set_state(AuthState.TOKEN_EXPIRED_OR_ABSENT)

            result = await self.request_token()
            if result.status == TokenRequestResultType.USER_CANCELLED:
                return AuthOutcome(
                    type=AuthOutcomeType.USER_CANCELLED, error_message=result.error_message
                )
            if result.status == TokenRequestResultType.FAILED:
                return AuthOutcome(
                    type=AuthOutcomeType.FAILED, error_message=result.error_message
                )

            outcome = await self.complete_acknowledgement(descriptor)
            if outcome.type == AuthOutcomeType.FAILED:
                self._set_state(AuthState.FAILED)
            return outcome
        except NetworkError as e:
            logger.error(f"Auth check for {descriptor.name} failed: {e}")
            self._set_state(AuthState.FAILED)
            return AuthOutcome(type=AuthOutcomeType.FAILED, error_message=UNKNOWN_NETWORK_ERROR)

    async def complete_acknowledgement(self, descriptor: ModelDescriptor) -> AuthOutcome:
        """
        Re-probe with the stored token, e.g. after the user accepted a license.

        Raises:
            NetworkError: If the host could not be reached
        """
        token = self._store.read()
        if token is None:
            return AuthOutcome(type=AuthOutcomeType.FAILED, error_message="No access token")
        code = await self.probe(descriptor.url, token.access_token)
        if code == 403:
            logger.info(f"{descriptor.name} requires license acknowledgement")
            return AuthOutcome(
                type=AuthOutcomeType.NEEDS_ACKNOWLEDGEMENT, access_token=token.access_token
            )
        if code != 200:
            logger.error(f"Access check for {descriptor.name} failed with HTTP {code}")
            return AuthOutcome(
                type=AuthOutcomeType.FAILED,
                error_message=f"Model host answered HTTP {code}",
            )
        return AuthOutcome(type=AuthOutcomeType.PROCEED, access_token=token.access_token)

    def acknowledgement_url(self, descriptor: ModelDescriptor) -> str:
        """Page where the user accepts the model's license."""
        return descriptor.learn_more_url or descriptor.url

    def authorization_url(self, state: str, code_challenge: str) -> str:
        url = httpx.URL(
            self._config.authorization_endpoint,
            params={
                "response_type": "code",
                "client_id": self._config.client_id,
                "redirect_uri": self._config.redirect_uri,
                "scope": self._config.scope,
                "state": state,
                "code_challenge": code_challenge,
                "code_challenge_method": "S256",
            },
        )
        return str(url)

    async def request_token(self) -> TokenRequestResult:
        """Run the authorization-code flow and store the resulting token."""
        verifier, challenge = _pkce_pair()
        state = secrets.token_urlsafe(16)

        self._set_state(AuthState.AWAITING_AUTHORIZATION)
        response = await self._launcher.authorize(self.authorization_url(state, challenge))

        if response.error == "access_denied" or (not response.code and not response.error):
            self._set_state(AuthState.USER_CANCELLED)
            return TokenRequestResult(
                status=TokenRequestResultType.USER_CANCELLED,
                error_message=USER_CANCELLED_MESSAGE,
            )
        if response.error:
            return self._failed(f"Authorization failed: {response.error}")
        if response.state != state:
            return self._failed("Authorization state mismatch")

        self._set_state(AuthState.EXCHANGING_CODE)
        try:
            token = await self.exchange_code(response.code, verifier)
            self._store.save(token)
        except AuthExchangeError as e:
            if e.result_type == TokenRequestResultType.USER_CANCELLED:
                self._set_state(AuthState.USER_CANCELLED)
                return TokenRequestResult(status=e.result_type, error_message=str(e))
            return self._failed(str(e))
        except TokenStoreError as e:
            return self._failed(str(e))

        self._set_state(AuthState.SUCCEEDED)
        return TokenRequestResult(status=TokenRequestResultType.SUCCEEDED)

    async def exchange_code(self, code: str, code_verifier: str) -> AccessToken:
        """
        Exchange an authorization code for a token.

        Raises:
            AuthExchangeError: If the endpoint fails or the response is incomplete
        """
        async with self._client() as client:
            try:
                response = await client.post(
                    self._config.token_endpoint,
                    data={
                        "grant_type": "authorization_code",
                        "code": code,
                        "redirect_uri": self._config.redirect_uri,
                        "client_id": self._config.client_id,
                        "code_verifier": code_verifier,
                    },
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise AuthExchangeError(
                    f"Token exchange failed: {e.response.status_code} - {e.response.text}",
                    TokenRequestResultType.FAILED,
                ) from e
            except httpx.RequestError as e:
                raise AuthExchangeError(
                    f"Token exchange failed: {e}", TokenRequestResultType.FAILED
                ) from e
            except ValueError as e:
                raise AuthExchangeError(
                    f"Token exchange failed: invalid JSON ({e})",
                    TokenRequestResultType.FAILED,
                ) from e

        if not data.get("access_token"):
            raise AuthExchangeError("Empty access token", TokenRequestResultType.FAILED)
        if not data.get("refresh_token"):
            raise AuthExchangeError("Empty refresh token", TokenRequestResultType.FAILED)
        if not data.get("expires_in"):
            raise AuthExchangeError("Empty expiration time", TokenRequestResultType.FAILED)

        return AccessToken(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at_ms=now_ms() + int(data["expires_in"]) * 1000,
        )

    def clear_token(self) -> None:
        self._store.clear()
        self._set_state(AuthState.IDLE)

    def _failed(self, message: str) -> TokenRequestResult:
        logger.error(f"Token request failed: {message}")
        self._set_state(AuthState.FAILED)
        return TokenRequestResult(status=TokenRequestResultType.FAILED, error_message=message)
