"""Auth module: token storage and the OAuth flow for gated downloads."""

from .coordinator import AuthConfig, AuthCoordinator
from .errors import AuthError, AuthExchangeError, TokenStoreError
from .launcher import AuthorizationLauncher, ConsoleAuthorizationLauncher, parse_redirect
from .models import (
    EXPIRY_MARGIN_MS,
    AccessToken,
    AuthorizationResponse,
    AuthOutcome,
    AuthOutcomeType,
    AuthState,
    TokenRequestResult,
    TokenRequestResultType,
    TokenStatus,
    TokenStatusAndData,
)
from .token_store import TokenStore

__all__ = [
    # Errors
    "AuthError",
    "AuthExchangeError",
    "TokenStoreError",
    # Models
    "AccessToken",
    "AuthorizationResponse",
    "AuthOutcome",
    "AuthOutcomeType",
    "AuthState",
    "TokenRequestResult",
    "TokenRequestResultType",
    "TokenStatus",
    "TokenStatusAndData",
    "EXPIRY_MARGIN_MS",
    # Config
    "AuthConfig",
    # Components
    "AuthCoordinator",
    "AuthorizationLauncher",
    "ConsoleAuthorizationLauncher",
    "TokenStore",
    "parse_redirect",
]
