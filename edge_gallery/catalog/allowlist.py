"""Model allow-list client with retry and on-disk cache fallback."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..utils.misc import write_text_atomic
from .errors import AllowlistFormatError, AllowlistLoadError
from .models import ModelAllowlist

logger = logging.getLogger(__name__)

ALLOWLIST_BASE_URL = (
    "https://raw.githubusercontent.com/google-ai-edge/gallery/refs/heads/main"
    "/model_allowlists"
)
CACHE_FILENAME = "model_allowlist.json"
TEST_FILENAME = "model_allowlist_test.json"
LOAD_FAILED_MESSAGE = "Failed to load model list"


@dataclass(frozen=True)
class AllowlistConfig:
    """Configuration for allow-list loading."""

    version: str = "1.0.4"
    url: str = ""  # Overrides the versioned URL when set
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    # Test mode: load from local file instead of network
    test_allowlist_path: str = ""

    @property
    def resolved_url(self) -> str:
        if self.url:
            return self.url
        return f"{ALLOWLIST_BASE_URL}/{self.version.replace('.', '_')}.json"


class _FetchError(Exception):
    """Retryable allow-list fetch failure."""


class AllowlistClient:
    """
    Load the model allow-list.

    Order:
    1. Local test file (when configured or present in the data dir)
    2. Remote URL, retried; successful text is cached to disk
    3. Cached copy from a previous successful fetch
    """

    def __init__(
        self,
        config: AllowlistConfig,
        data_dir: Path,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize allow-list client.

        Args:
            config: Allow-list configuration
            data_dir: Directory holding the cached allow-list
            transport: Optional httpx transport (tests)
        """
        self._config = config
        self._data_dir = data_dir
        self._transport = transport

    @property
    def cache_path(self) -> Path:
        return self._data_dir / CACHE_FILENAME

    def _test_path(self) -> Path | None:
        if self._config.test_allowlist_path:
            return Path(self._config.test_allowlist_path)
        candidate = self._data_dir / TEST_FILENAME
        return candidate if candidate.exists() else None

    async def load(self) -> ModelAllowlist:
        """
        Load the allow-list from the first source that yields one.

        Returns:
            Parsed allow-list

        Raises:
            AllowlistLoadError: If no source produced a valid allow-list
        """
        test_path = self._test_path()
        if test_path is not None:
            logger.info(f"TEST ALLOWLIST: Loading models from {test_path}")
            try:
                return self._parse(test_path.read_text())
            except (OSError, AllowlistFormatError) as e:
                logger.warning(f"Failed to read test allow-list {test_path}: {e}")

        url = self._config.resolved_url
        try:
            text = await self._fetch_with_retry(url)
            allowlist = self._parse(text)
            self._save_cache(text)
            logger.info(f"Loaded {len(allowlist.models)} models from {url}")
            return allowlist
        except (_FetchError, AllowlistFormatError) as e:
            logger.warning(f"Allow-list fetch failed: {e}. Falling back to cache")

        try:
            allowlist = self._parse(self.cache_path.read_text())
            logger.info(f"Loaded {len(allowlist.models)} models from cache")
            return allowlist
        except FileNotFoundError:
            logger.error("No cached allow-list available")
        except (OSError, AllowlistFormatError) as e:
            logger.error(f"Cached allow-list unreadable: {e}")

        raise AllowlistLoadError(LOAD_FAILED_MESSAGE)

    async def _fetch(self, url: str) -> str:
        async with httpx.AsyncClient(
            timeout=self._config.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
            except httpx.HTTPStatusError as e:
                raise _FetchError(
                    f"Request failed: {e.response.status_code}"
                ) from e
            except httpx.RequestError as e:
                raise _FetchError(f"Connection error: {e}") from e

    async def _fetch_with_retry(self, url: str) -> str:
        def _log_retry(retry_state):
            exc = retry_state.outcome.exception()
            wait_time = retry_state.next_action.sleep
            logger.warning(
                f"Allow-list fetch failed: {exc}. "
                f"Retrying in {wait_time:.0f}s (attempt {retry_state.attempt_number}/{self._config.max_retries})"
            )

        async for attempt in AsyncRetrying(
            wait=wait_fixed(self._config.retry_delay_seconds),
            stop=stop_after_attempt(self._config.max_retries),
            retry=retry_if_exception_type(_FetchError),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                return await self._fetch(url)

        # Unreachable with reraise=True
        raise _FetchError(f"No attempts made for {url}")

    @staticmethod
    def _parse(text: str) -> ModelAllowlist:
        try:
            data = json.loads(text)
        except ValueError as e:
            raise AllowlistFormatError(f"Invalid JSON: {e}") from e
        return ModelAllowlist.from_dict(data)

    def _save_cache(self, text: str) -> None:
        """Write cache atomically; a failed write keeps the previous copy."""
        try:
            write_text_atomic(self.cache_path, text)
        except OSError as e:
            logger.warning(f"Failed to cache allow-list: {e}")
