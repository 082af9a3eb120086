"""Data models for the auth module."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

EXPIRY_MARGIN_MS = 5 * 60 * 1000


class TokenStatus(Enum):
    NOT_STORED = "not_stored"
    EXPIRED = "expired"
    NOT_EXPIRED = "not_expired"


class TokenRequestResultType(Enum):
    FAILED = "failed"
    SUCCEEDED = "succeeded"
    USER_CANCELLED = "user_cancelled"


class AuthState(Enum):
    """Where the coordinator is in the gated-download flow."""

    IDLE = "idle"
    CHECKING_TOKEN_NEED = "checking_token_need"
    NO_AUTH_NEEDED = "no_auth_needed"
    TOKEN_VALID = "token_valid"
    TOKEN_EXPIRED_OR_ABSENT = "token_expired_or_absent"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    EXCHANGING_CODE = "exchanging_code"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    USER_CANCELLED = "user_cancelled"


class AuthOutcomeType(Enum):
    """What the caller should do after prepare_download()."""

    PROCEED = "proceed"
    NEEDS_ACKNOWLEDGEMENT = "needs_acknowledgement"
    FAILED = "failed"
    USER_CANCELLED = "user_cancelled"


@dataclass(frozen=True)
class AccessToken:
    """OAuth token pair with absolute expiry in epoch milliseconds."""

    access_token: str
    refresh_token: str
    expires_at_ms: int

    def __repr__(self) -> str:
        return f"AccessToken(access_token='***', refresh_token='***', expires_at_ms={self.expires_at_ms})"

    def status_at(self, now_ms: int, margin_ms: int = EXPIRY_MARGIN_MS) -> TokenStatus:
        """Expired once ``now`` is within ``margin_ms`` of the expiry."""
        if now_ms >= self.expires_at_ms - margin_ms:
            return TokenStatus.EXPIRED
        return TokenStatus.NOT_EXPIRED

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at_ms": self.expires_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessToken:
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at_ms=int(data["expires_at_ms"]),
        )


@dataclass(frozen=True)
class TokenStatusAndData:
    status: TokenStatus
    token: AccessToken | None = None


@dataclass(frozen=True)
class TokenRequestResult:
    status: TokenRequestResultType
    error_message: str = ""


@dataclass(frozen=True)
class AuthorizationResponse:
    """What came back on the redirect URI."""

    code: str | None = None
    state: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class AuthOutcome:
    type: AuthOutcomeType
    access_token: str | None = None
    error_message: str = ""

    def __repr__(self) -> str:
        token = "'***'" if self.access_token else None
        return (
            f"AuthOutcome(type={self.type}, access_token={token}, "
            f"error_message={self.error_message!r})"
        )
