"""Shared fixtures for downloads unit tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from edge_gallery.catalog import ModelDataFile, ModelDescriptor
from edge_gallery.downloads import (
    DownloadError,
    DownloadProgress,
    DownloadRequest,
    JobStore,
    WorkerConfig,
)

PAYLOAD = b"0123456789" * 10  # 100 bytes


class FakeWorker:
    """
    Worker whose downloads block until released by the test.

    Each call records its request and token, reports one progress sample,
    then waits on a per-model gate. A successful call reports ``complete_bytes``
    (the full size unless overridden per model) before returning.
    """

    def __init__(self):
        self.calls: list[tuple[DownloadRequest, str | None]] = []
        self.started: dict[str, asyncio.Event] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, Exception] = {}
        self.complete_bytes: dict[str, int] = {}

    def gate(self, model_name: str) -> asyncio.Event:
        return self.gates.setdefault(model_name, asyncio.Event())

    def started_event(self, model_name: str) -> asyncio.Event:
        return self.started.setdefault(model_name, asyncio.Event())

    async def download(self, request, access_token=None, on_progress=None, on_unzip=None):
        self.calls.append((request, access_token))
        self.started_event(request.model_name).set()
        if on_progress is not None:
            await on_progress(
                DownloadProgress(
                    received_bytes=request.total_bytes // 2,
                    total_bytes=request.total_bytes,
                    bytes_per_second=1000,
                    remaining_ms=50,
                )
            )
        await self.gate(request.model_name).wait()
        if request.model_name in self.failures:
            raise self.failures[request.model_name]
        if on_progress is not None:
            await on_progress(
                DownloadProgress(
                    received_bytes=self.complete_bytes.get(
                        request.model_name, request.total_bytes
                    ),
                    total_bytes=request.total_bytes,
                    bytes_per_second=1000,
                    remaining_ms=0,
                )
            )
        return Path("/unused")


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    """Temporary model artifacts directory."""
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def worker_config() -> WorkerConfig:
    """Worker config with fast settings for tests."""
    return WorkerConfig(
        chunk_size=16,
        progress_interval_seconds=0,
        max_resume_attempts=3,
        resume_delay_seconds=0,  # Fast tests
        disk_buffer_bytes=0,
    )


@pytest.fixture
def descriptor() -> ModelDescriptor:
    """Single-file model descriptor."""
    return ModelDescriptor(
        name="Test Model",
        url="https://example.com/test/model.task",
        size_in_bytes=len(PAYLOAD),
        download_file_name="model.task",
        commit_hash="abc123",
    )


@pytest.fixture
def make_descriptor():
    """Factory for named single-file descriptors."""

    def _make(name: str, size: int = len(PAYLOAD)) -> ModelDescriptor:
        return ModelDescriptor(
            name=name,
            url=f"https://example.com/{name}/model.task",
            size_in_bytes=size,
            download_file_name="model.task",
            commit_hash="abc123",
        )

    return _make


@pytest.fixture
def multi_file_descriptor() -> ModelDescriptor:
    """Model with one primary artifact and one extra data file."""
    return ModelDescriptor(
        name="Multi",
        url="https://example.com/multi/model.task",
        size_in_bytes=len(PAYLOAD),
        download_file_name="model.task",
        commit_hash="main",
        extra_data_files=(
            ModelDataFile(
                name="vocab",
                url="https://example.com/multi/vocab.json",
                download_file_name="vocab.json",
                size_in_bytes=20,
            ),
        ),
    )


@pytest.fixture
def store(data_dir: Path) -> JobStore:
    """JobStore over the temp data dir."""
    return JobStore(data_dir)


@pytest.fixture
def fake_worker() -> FakeWorker:
    """Worker that blocks until released."""
    return FakeWorker()


@pytest.fixture
def mock_notifier() -> MagicMock:
    """Mock download notifier."""
    return MagicMock()


@pytest.fixture
def download_failure() -> Exception:
    """Failure raised by the fake worker."""
    return DownloadError("HTTP error code: 404")
