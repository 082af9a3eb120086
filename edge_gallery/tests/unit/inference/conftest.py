"""Shared fixtures for inference unit tests."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from edge_gallery.inference import (
    EngineOptions,
    InferenceConfig,
    InferenceSessionGateway,
    SessionOptions,
)


class FakeSession:
    """
    Session that records inputs and answers from a background thread.

    ``chunks`` are emitted in order, the last one flagged done. With
    ``auto_finish`` off the listener is kept for the test to drive.
    """

    def __init__(self, options: SessionOptions, chunks: list[str], auto_finish: bool = True):
        self.options = options
        self.inputs: list[tuple[str, object]] = []
        self.chunks = chunks
        self.auto_finish = auto_finish
        self.listener = None
        self.cancelled = False
        self.closed = False

    def add_query_chunk(self, text: str) -> None:
        self.inputs.append(("text", text))

    def add_image(self, image) -> None:
        self.inputs.append(("image", image))

    def add_audio(self, audio: bytes) -> None:
        self.inputs.append(("audio", audio))

    def generate_response_async(self, listener) -> None:
        self.listener = listener
        if not self.auto_finish:
            return

        def _run() -> None:
            for i, chunk in enumerate(self.chunks):
                listener(chunk, i == len(self.chunks) - 1)

        threading.Thread(target=_run).start()

    def cancel_generate_response_async(self) -> None:
        self.cancelled = True
        if self.listener is not None:
            self.listener("", True)

    def close(self) -> None:
        self.closed = True


class FakeEngine:
    def __init__(self, options: EngineOptions):
        self.options = options
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeBackend:
    """Backend producing fake engines; failures are injected by message."""

    def __init__(self):
        self.engines: list[FakeEngine] = []
        self.sessions: list[FakeSession] = []
        self.engine_error: str | None = None
        self.session_error: str | None = None
        self.chunks = ["Hel", "lo", ""]
        self.auto_finish = True

    def create_engine(self, options: EngineOptions) -> FakeEngine:
        if self.engine_error is not None:
            raise RuntimeError(self.engine_error)
        engine = FakeEngine(options)
        self.engines.append(engine)
        return engine

    def create_session(self, engine: FakeEngine, options: SessionOptions) -> FakeSession:
        if self.session_error is not None:
            raise RuntimeError(self.session_error)
        session = FakeSession(options, list(self.chunks), self.auto_finish)
        self.sessions.append(session)
        return session


@pytest.fixture
def backend() -> FakeBackend:
    """Fake inference backend."""
    return FakeBackend()


@pytest.fixture
def gateway(backend: FakeBackend) -> InferenceSessionGateway:
    """Gateway over the fake backend."""
    return InferenceSessionGateway(backend)


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    """Model artifact present on disk."""
    path = tmp_path / "model.task"
    path.write_bytes(b"weights")
    return path


@pytest.fixture
def config() -> InferenceConfig:
    """Default inference config."""
    return InferenceConfig()
