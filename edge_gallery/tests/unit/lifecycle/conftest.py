"""Shared fixtures for lifecycle unit tests."""

from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from edge_gallery.auth import AuthCoordinator, TokenStore
from edge_gallery.catalog import (
    AllowlistClient,
    AllowlistConfig,
    ImportedModelStore,
    ModelDescriptor,
    ModelRegistry,
    create_llm_chat_configs,
)
from edge_gallery.catalog.tasks import SIGN_LANGUAGE_CONFIGS
from edge_gallery.downloads import DownloadScheduler, JobStore, SchedulerConfig
from edge_gallery.inference import InferenceSessionGateway
from edge_gallery.lifecycle import (
    InitializationConfig,
    ModelLifecycleCoordinator,
    ModelManager,
)

# --- Inference fakes ---


class FakeSession:
    def __init__(self):
        self.closed = False

    def add_query_chunk(self, text: str) -> None:
        self.text = text

    def add_image(self, image) -> None:
        pass

    def add_audio(self, audio: bytes) -> None:
        pass

    def generate_response_async(self, listener) -> None:
        listener(f"echo: {self.text}", True)

    def cancel_generate_response_async(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeEngine:
    def __init__(self, close_entered: threading.Event, close_release: threading.Event):
        self.closed = False
        self._close_entered = close_entered
        self._close_release = close_release

    def close(self) -> None:
        self._close_entered.set()
        self._close_release.wait(timeout=5)
        self.closed = True


class BlockingBackend:
    """
    Backend whose engine construction can be held open by the test.

    ``entered`` is set once construction starts; construction finishes
    when ``release`` is set (it is set by default). Engine teardown is
    gated the same way by ``close_entered`` and ``close_release``.
    """

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.release.set()
        self.close_entered = threading.Event()
        self.close_release = threading.Event()
        self.close_release.set()
        self.engines: list[FakeEngine] = []
        self.sessions: list[FakeSession] = []
        self.engine_error: str | None = None
        self.session_error: str | None = None

    def create_engine(self, options) -> FakeEngine:
        self.entered.set()
        self.release.wait(timeout=5)
        if self.engine_error is not None:
            raise RuntimeError(self.engine_error)
        engine = FakeEngine(self.close_entered, self.close_release)
        self.engines.append(engine)
        return engine

    def create_session(self, engine, options) -> FakeSession:
        if self.session_error is not None:
            raise RuntimeError(self.session_error)
        session = FakeSession()
        self.sessions.append(session)
        return session


# --- Download fakes ---


class WritingWorker:
    """
    Worker that writes the requested files instead of fetching them.

    Downloads for models listed in ``blocked`` wait until their gate is set;
    models in ``failures`` raise after writing a partial file.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        self.calls: list[tuple[str, str | None]] = []
        self.blocked: dict[str, asyncio.Event] = {}
        self.failures: dict[str, Exception] = {}

    async def download(self, request, access_token=None, on_progress=None, on_unzip=None):
        self.calls.append((request.model_name, access_token))
        model_dir = self.base_dir / request.model_dir / request.commit_hash
        model_dir.mkdir(parents=True, exist_ok=True)
        path = model_dir / request.file_name
        if request.model_name in self.failures:
            path.write_bytes(b"partial")
            raise self.failures[request.model_name]
        if request.model_name in self.blocked:
            await self.blocked[request.model_name].wait()
        path.write_bytes(b"x" * request.total_bytes)
        return path


# --- Fixtures ---


@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    """Temporary model artifacts directory."""
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def backend() -> BlockingBackend:
    """Inference backend that can be held mid-construction."""
    return BlockingBackend()


@pytest.fixture
def coordinator(backend: BlockingBackend, artifacts_dir: Path) -> ModelLifecycleCoordinator:
    """Lifecycle coordinator with a short status delay."""
    return ModelLifecycleCoordinator(
        InferenceSessionGateway(backend),
        artifacts_dir,
        InitializationConfig(status_delay_seconds=0.05),
    )


@pytest.fixture
def llm_model(artifacts_dir: Path) -> ModelDescriptor:
    """Downloaded LLM with one parameter that applies without reinitialization."""
    model = ModelDescriptor(
        name="Chat Model",
        url="https://example.com/chat.task",
        size_in_bytes=4,
        download_file_name="chat.task",
        commit_hash="c1",
        configs=create_llm_chat_configs() + SIGN_LANGUAGE_CONFIGS[:1],
    )
    path = model.get_path(artifacts_dir)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"data")
    return model


@pytest.fixture
def allowlist_file(data_dir: Path) -> Path:
    """Local allow-list with two chat models."""
    entries = [
        {
            "name": name,
            "modelId": f"litert-community/{name}",
            "modelFile": "model.task",
            "sizeInBytes": 8,
            "commitHash": "rev1",
            "taskTypes": ["llm_chat"],
        }
        for name in ("Alpha", "Beta")
    ]
    path = data_dir / "allowlist.json"
    path.write_text(json.dumps({"models": entries}))
    return path


@pytest.fixture
def registry(data_dir: Path, allowlist_file: Path) -> ModelRegistry:
    """Registry over the local allow-list."""
    return ModelRegistry(
        AllowlistClient(AllowlistConfig(test_allowlist_path=str(allowlist_file)), data_dir),
        ImportedModelStore(data_dir),
    )


@pytest.fixture
def worker(artifacts_dir: Path) -> WritingWorker:
    """Worker writing files into the artifacts dir."""
    return WritingWorker(artifacts_dir)


@pytest.fixture
def job_store(data_dir: Path) -> JobStore:
    """Persistent job store."""
    return JobStore(data_dir)


@pytest.fixture
def scheduler(job_store: JobStore, worker: WritingWorker) -> DownloadScheduler:
    """Scheduler over the writing worker."""
    return DownloadScheduler(SchedulerConfig(), job_store, worker, notifier=MagicMock())


@pytest.fixture
def token_store(data_dir: Path) -> TokenStore:
    """Token store over the temp data dir."""
    return TokenStore(data_dir)


@pytest.fixture
def mock_auth(token_store: TokenStore) -> MagicMock:
    """Mock auth coordinator backed by a real token store."""
    auth = MagicMock(spec=AuthCoordinator)
    auth.token_store = token_store
    auth.prepare_download = AsyncMock()
    auth.complete_acknowledgement = AsyncMock()
    return auth


@pytest.fixture
def mock_lifecycle() -> MagicMock:
    """Mock lifecycle coordinator."""
    lifecycle = MagicMock(spec=ModelLifecycleCoordinator)
    lifecycle.delete = AsyncMock()
    return lifecycle


@pytest.fixture
def manager(
    registry: ModelRegistry,
    scheduler: DownloadScheduler,
    mock_auth: MagicMock,
    mock_lifecycle: MagicMock,
    artifacts_dir: Path,
) -> ModelManager:
    """Model manager over real registry and scheduler."""
    return ModelManager(registry, scheduler, mock_auth, mock_lifecycle, artifacts_dir)
