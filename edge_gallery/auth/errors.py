"""Custom exceptions for the auth module."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TokenRequestResultType


class AuthError(Exception):
    """Base exception for authentication errors."""

    pass


class AuthExchangeError(AuthError):
    """
    Raised when the authorization-code flow does not yield a usable token.

    This can happen when:
    - User closed the authorization page (USER_CANCELLED)
    - Token endpoint rejected the code (FAILED)
    - Token response lacks the access token, refresh token or expiry (FAILED)
    """

    def __init__(self, message: str, result_type: TokenRequestResultType):
        super().__init__(message)
        self.result_type = result_type


class TokenStoreError(AuthError):
    """
    Raised when the stored token cannot be written.

    This can happen when:
    - Data directory is read-only
    - Disk is full
    """

    pass
