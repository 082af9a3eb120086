"""On-disk storage of the OAuth access token."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..utils.misc import now_ms, write_json_atomic
from .errors import TokenStoreError
from .models import EXPIRY_MARGIN_MS, AccessToken, TokenStatus, TokenStatusAndData

logger = logging.getLogger(__name__)

TOKEN_FILENAME = "access_token.json"


class TokenStore:
    """
    Single-slot token storage.

    Only the auth coordinator writes here; readers get immutable
    AccessToken values.
    """

    def __init__(self, data_dir: Path, margin_ms: int = EXPIRY_MARGIN_MS):
        """
        Initialize token store.

        Args:
            data_dir: Directory holding the token file
            margin_ms: Safety margin before expiry at which a token counts as expired
        """
        self._path = data_dir / TOKEN_FILENAME
        self._margin_ms = margin_ms

    def read(self) -> AccessToken | None:
        if not self._path.exists():
            return None
        try:
            with open(self._path) as f:
                return AccessToken.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Corrupted token file {self._path}: {e}")
            return None

    def save(self, token: AccessToken) -> None:
        """
        Persist a token, replacing any previous one.

        Raises:
            TokenStoreError: If the file cannot be written
        """
        try:
            write_json_atomic(self._path, token.to_dict())
            self._path.chmod(0o600)
        except OSError as e:
            raise TokenStoreError(f"Failed to save access token: {e}") from e
        logger.info("Access token saved")

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
        logger.info("Access token cleared")

    def get_status(self, now: int | None = None) -> TokenStatusAndData:
        """Classify the stored token as absent, expired or usable."""
        token = self.read()
        if token is None:
            return TokenStatusAndData(status=TokenStatus.NOT_STORED)
        now = now_ms() if now is None else now
        return TokenStatusAndData(status=token.status_at(now, self._margin_ms), token=token)
