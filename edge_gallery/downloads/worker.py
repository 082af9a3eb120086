"""Resumable HTTP download worker for model artifacts."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import time
import zipfile
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..utils.misc import invoke_callback
from .errors import (
    ArchiveExtractionError,
    DownloadError,
    HttpStatusError,
    InsufficientDiskSpaceError,
    NetworkError,
    PartialArtifactError,
)
from .models import DownloadProgress, DownloadRequest

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DownloadProgress], Awaitable[None] | None]
UnzipCallback = Callable[[], Awaitable[None] | None]

_CONTENT_RANGE_RE = re.compile(r"bytes\s+(\d+)-(\d+)/(\d+|\*)")
_UNSATISFIED_RANGE_RE = re.compile(r"bytes\s+\*/(\d+)")


@dataclass
class WorkerConfig:
    """Configuration for the download worker."""

    connect_timeout_seconds: float = 30.0
    read_timeout_seconds: float = 60.0
    chunk_size: int = 64 * 1024
    progress_interval_seconds: float = 0.2
    rate_window: int = 5  # samples averaged for the transfer rate
    max_resume_attempts: int = 3
    resume_delay_seconds: float = 2.0
    disk_buffer_bytes: int = 100_000_000  # 100MB safety margin
    check_disk_space: bool = True


def parse_content_range(header: str | None) -> tuple[int, int, int | None] | None:
    """
    Parse ``Content-Range: bytes start-end/total``.

    Returns:
        (start, end, total) with total None when the server sends "*",
        or None if the header is absent or malformed
    """
    if not header:
        return None
    match = _CONTENT_RANGE_RE.match(header.strip())
    if match is None:
        return None
    start, end, total = match.groups()
    return int(start), int(end), None if total == "*" else int(total)


class _ProgressTracker:
    """Aggregates bytes over every file of a job and throttles reports."""

    def __init__(self, total_bytes: int, config: WorkerConfig, callback: ProgressCallback | None):
        self._total = total_bytes
        self._interval = config.progress_interval_seconds
        self._callback = callback
        self._completed_files_bytes = 0
        self._current_file_bytes = 0
        self._samples: deque[tuple[int, float]] = deque(maxlen=config.rate_window)
        self._last_ts = time.monotonic()
        self._last_bytes = 0
        self._last_reported = 0

    @property
    def received(self) -> int:
        return self._completed_files_bytes + self._current_file_bytes

    def begin_file(self, offset: int) -> None:
        self._current_file_bytes = offset

    def finish_file(self, size: int) -> None:
        self._completed_files_bytes += size
        self._current_file_bytes = 0

    async def advance(self, count: int) -> None:
        self._current_file_bytes += count
        if time.monotonic() - self._last_ts >= self._interval:
            await self.report()

    async def report(self) -> None:
        """Emit a sample if bytes moved forward since the last one."""
        now = time.monotonic()
        received = self.received
        if received <= self._last_reported:
            return

        self._samples.append((received - self._last_bytes, now - self._last_ts))
        self._last_ts = now
        self._last_bytes = received
        self._last_reported = received

        total_delta = sum(d for d, _ in self._samples)
        total_seconds = sum(s for _, s in self._samples)
        bytes_per_ms = total_delta / (total_seconds * 1000) if total_seconds > 0 else 0.0
        remaining_ms = (
            int(max(0, self._total - received) / bytes_per_ms) if bytes_per_ms > 0 else 0
        )

        if self._callback is not None:
            await invoke_callback(
                self._callback,
                DownloadProgress(
                    received_bytes=received,
                    total_bytes=self._total,
                    bytes_per_second=int(bytes_per_ms * 1000),
                    remaining_ms=remaining_ms,
                ),
            )


class DownloadWorker:
    """
    Fetch every file of a model into its versioned directory.

    Features:
    - HTTP Range resume from bytes already on disk
    - Sequential multi-file download with aggregate progress
    - Throttled progress with a moving-average rate
    - Automatic resume when a stream is cut short
    - Zip extraction off the event loop

    Failures other than a cut-short stream are raised to the caller;
    the worker never retries them.
    """

    def __init__(
        self,
        config: WorkerConfig,
        base_dir: Path,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize worker.

        Args:
            config: Worker configuration
            base_dir: Root directory for model artifacts
            transport: Optional httpx transport (tests)
        """
        self._config = config
        self._base_dir = base_dir
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(
                self._config.read_timeout_seconds,
                connect=self._config.connect_timeout_seconds,
            ),
            follow_redirects=True,
            transport=self._transport,
        )

    def model_dir(self, request: DownloadRequest) -> Path:
        return self._base_dir / request.model_dir / request.commit_hash

    async def download(
        self,
        request: DownloadRequest,
        access_token: str | None = None,
        on_progress: ProgressCallback | None = None,
        on_unzip: UnzipCallback | None = None,
    ) -> Path:
        """
        Download (or resume) every file of a request.

        Args:
            request: What to download and where
            access_token: Bearer token for gated hosts
            on_progress: Called with throttled progress samples
            on_unzip: Called once before extraction starts

        Returns:
            Path of the primary artifact (or its extraction directory)

        Raises:
            InsufficientDiskSpaceError: If the remaining bytes don't fit
            NetworkError: If the host cannot be reached
            HttpStatusError: If the host answers other than 200/206
            PartialArtifactError: If resuming kept failing
            ArchiveExtractionError: If the zip artifact is unusable
        """
        model_dir = self.model_dir(request)
        model_dir.mkdir(parents=True, exist_ok=True)

        extras_size = sum(f.size_in_bytes for f in request.extra_files)
        files = [(request.url, request.file_name, request.total_bytes - extras_size)] + [
            (f.url, f.download_file_name, f.size_in_bytes) for f in request.extra_files
        ]

        if self._config.check_disk_space:
            self._check_disk_space(model_dir, files, request.total_bytes)

        headers = {}
        if access_token:
            logger.debug("Attaching bearer token to artifact requests")
            headers["Authorization"] = f"Bearer {access_token}"

        tracker = _ProgressTracker(request.total_bytes, self._config, on_progress)

        async with self._client() as client:
            for url, file_name, declared_size in files:
                path = model_dir / file_name
                path.parent.mkdir(parents=True, exist_ok=True)
                logger.info(f"Downloading {url} -> {path}")
                await self._fetch_with_resume(client, url, path, headers, tracker, declared_size)
                tracker.finish_file(path.stat().st_size)

        await tracker.report()

        primary = model_dir / request.file_name
        if request.is_zip and request.unzip_dir:
            if on_unzip is not None:
                await invoke_callback(on_unzip)
            target = model_dir / request.unzip_dir
            await asyncio.to_thread(extract_zip, primary, target)
            return target

        return primary

    def _check_disk_space(
        self, model_dir: Path, files: list[tuple[str, str, int]], total_bytes: int
    ) -> None:
        on_disk = sum(
            (model_dir / name).stat().st_size
            for _, name, _ in files
            if (model_dir / name).exists()
        )
        needed = max(0, total_bytes - on_disk) + self._config.disk_buffer_bytes
        free_space = shutil.disk_usage(model_dir).free
        if free_space < needed:
            raise InsufficientDiskSpaceError(
                f"Insufficient disk space: {free_space} bytes free, "
                f"need {needed} bytes ({needed - self._config.disk_buffer_bytes} + "
                f"{self._config.disk_buffer_bytes} buffer)"
            )

    async def _fetch_with_resume(
        self,
        client: httpx.AsyncClient,
        url: str,
        path: Path,
        headers: dict[str, str],
        tracker: _ProgressTracker,
        declared_size: int,
    ) -> None:
        def _log_resume(retry_state):
            exc = retry_state.outcome.exception()
            logger.warning(
                f"Transfer of {path.name} interrupted: {exc}. Resuming "
                f"(attempt {retry_state.attempt_number}/{self._config.max_resume_attempts})"
            )

        async for attempt in AsyncRetrying(
            wait=wait_fixed(self._config.resume_delay_seconds),
            stop=stop_after_attempt(self._config.max_resume_attempts),
            retry=retry_if_exception_type(PartialArtifactError),
            before_sleep=_log_resume,
            reraise=True,
        ):
            with attempt:
                await self._fetch_file(client, url, path, headers, tracker, declared_size)

    async def _fetch_file(
        self,
        client: httpx.AsyncClient,
        url: str,
        path: Path,
        headers: dict[str, str],
        tracker: _ProgressTracker,
        declared_size: int,
    ) -> None:
        offset = path.stat().st_size if path.exists() else 0
        request_headers = dict(headers)
        if offset > 0:
            request_headers["Range"] = f"bytes={offset}-"
            logger.info(f"File {path.name} partially downloaded, resuming from {offset}")

        streaming = False
        try:
            async with client.stream("GET", url, headers=request_headers) as response:
                if response.status_code == 416 and offset > 0:
                    if self._is_already_complete(response, offset):
                        tracker.begin_file(offset)
                        return
                if response.status_code not in (200, 206):
                    raise HttpStatusError(response.status_code)

                if response.status_code == 206:
                    content_range = parse_content_range(response.headers.get("Content-Range"))
                    start = content_range[0] if content_range else offset
                    if start > offset:
                        raise DownloadError(
                            f"Server resumed {path.name} at byte {start}, expected {offset}"
                        )
                    mode = "r+b" if offset > 0 else "wb"
                else:
                    # Range ignored by server: start the file over
                    start = 0
                    mode = "wb"

                content_length = response.headers.get("Content-Length")
                expected_end = start + int(content_length) if content_length else None

                tracker.begin_file(start)
                streaming = True
                with open(path, mode) as f:
                    f.seek(start)
                    f.truncate()
                    async for chunk in response.aiter_bytes(self._config.chunk_size):
                        f.write(chunk)
                        await tracker.advance(len(chunk))
        except httpx.TransportError as e:
            if streaming:
                raise PartialArtifactError(f"Stream for {path.name} interrupted: {e}") from e
            raise NetworkError(f"Connection error for {url}: {e}") from e

        written = path.stat().st_size
        if expected_end is not None and written < expected_end:
            raise PartialArtifactError(
                f"{path.name}: received {written} of {expected_end} bytes"
            )
        if declared_size > 0 and written < declared_size:
            raise PartialArtifactError(
                f"{path.name}: received {written} of {declared_size} declared bytes"
            )

    @staticmethod
    def _is_already_complete(response: httpx.Response, offset: int) -> bool:
        match = _UNSATISFIED_RANGE_RE.match(response.headers.get("Content-Range", ""))
        return match is not None and int(match.group(1)) == offset


def extract_zip(archive: Path, target: Path) -> None:
    """
    Extract ``archive`` into ``target`` and delete the archive.

    Raises:
        ArchiveExtractionError: If the archive is corrupted or an entry
            would land outside ``target``
    """
    logger.info(f"Unzipping {archive} -> {target}")
    target.mkdir(parents=True, exist_ok=True)
    root = target.resolve()
    try:
        with zipfile.ZipFile(archive) as zf:
            for member in zf.infolist():
                destination = (target / member.filename).resolve()
                if not destination.is_relative_to(root):
                    raise ArchiveExtractionError(
                        f"Archive entry escapes target directory: {member.filename}"
                    )
            zf.extractall(target)
    except zipfile.BadZipFile as e:
        raise ArchiveExtractionError(f"Corrupted archive {archive}: {e}") from e
    archive.unlink()
    logger.info(f"Unzipped {archive.name}")
