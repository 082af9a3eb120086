"""Inference session gateway over an opaque on-device engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..utils.misc import invoke_callback
from .errors import (
    EngineConstructionError,
    QueryError,
    SessionCloseError,
    SessionResetError,
    clean_error_message,
)
from .models import EngineBackend, InferenceConfig, ModelInstance, PartialResult

logger = logging.getLogger(__name__)

PartialCallback = Callable[[PartialResult], Awaitable[None] | None]


class InferenceSessionGateway:
    """
    Create, reset, query and close engine sessions.

    Engine construction is blocking; callers run create_session() and
    reset_session() in a worker thread. Partial results produced on the
    engine's own thread are handed to the event loop before callers see
    them.
    """

    def __init__(self, backend: EngineBackend):
        self._backend = backend

    def create_session(self, artifact_path: Path, config: InferenceConfig) -> ModelInstance:
        """
        Build an engine for the artifact and open its first session.

        Raises:
            EngineConstructionError: If the artifact is missing or the
                backend fails; no half-built engine is kept
        """
        if not artifact_path.exists():
            raise EngineConstructionError(f"Model artifact not found: {artifact_path}")

        logger.info(f"Creating engine for {artifact_path} on {config.accelerator.value}")
        try:
            engine = self._backend.create_engine(config.engine_options(artifact_path))
        except Exception as e:
            raise EngineConstructionError(clean_error_message(str(e)) or "Unknown error") from e

        try:
            session = self._backend.create_session(engine, config.session_options())
        except Exception as e:
            self._close_quietly(engine.close, "engine")
            raise EngineConstructionError(clean_error_message(str(e)) or "Unknown error") from e

        return ModelInstance(engine=engine, session=session)

    def reset_session(self, instance: ModelInstance, config: InferenceConfig) -> None:
        """
        Replace the instance's session with a fresh one on the same engine.

        Raises:
            SessionResetError: If the new session cannot be opened; the old
                one stays closed
        """
        if instance.session is not None:
            self._close_quietly(instance.session.close, "session")
            instance.session = None
        try:
            instance.session = self._backend.create_session(
                instance.engine, config.session_options()
            )
        except Exception as e:
            raise SessionResetError(clean_error_message(str(e)) or "Unknown error") from e
        logger.debug("Session reset done")

    async def stream_query(
        self,
        instance: ModelInstance,
        text: str,
        images: Sequence[Any] = (),
        audio_clips: Sequence[bytes] = (),
    ) -> AsyncIterator[PartialResult]:
        """
        Submit a query and yield partial results until the single done result.

        Text goes in before any image, images before any audio clip.

        Raises:
            QueryError: If the session is closed or rejects the input
        """
        session = instance.session
        if session is None:
            raise QueryError("No open session")

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[PartialResult] = asyncio.Queue()

        def _on_result(partial: str, done: bool) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, PartialResult(partial, done))

        instance.cleanup_listener = lambda: _on_result("", True)
        try:
            if text.strip():
                session.add_query_chunk(text)
            for image in images:
                session.add_image(image)
            for clip in audio_clips:
                session.add_audio(clip)
            session.generate_response_async(_on_result)
        except Exception as e:
            instance.cleanup_listener = None
            raise QueryError(clean_error_message(str(e))) from e

        response = ""
        try:
            while True:
                result = await queue.get()
                response += result.text
                yield replace(result, response=response)
                if result.done:
                    break
        finally:
            instance.cleanup_listener = None

    async def run_query(
        self,
        instance: ModelInstance,
        text: str,
        images: Sequence[Any] = (),
        audio_clips: Sequence[bytes] = (),
        on_partial: PartialCallback | None = None,
    ) -> str:
        """
        Submit a query and wait for it to finish.

        Returns:
            The full response text
        """
        response = ""
        async for result in self.stream_query(instance, text, images, audio_clips):
            response = result.response
            if on_partial is not None:
                await invoke_callback(on_partial, result)
        return response

    def cancel(self, instance: ModelInstance) -> None:
        """Ask the engine to stop generating; completion still arrives as done."""
        if instance.session is None:
            return
        try:
            instance.session.cancel_generate_response_async()
        except Exception as e:
            logger.error(f"Failed to cancel generation: {e}")

    def close(self, instance: ModelInstance) -> None:
        """Close session then engine; failures are logged, never raised."""
        if instance.session is not None:
            self._close_quietly(instance.session.close, "session")
            instance.session = None
        self._close_quietly(instance.engine.close, "engine")

        listener = instance.cleanup_listener
        instance.cleanup_listener = None
        if listener is not None:
            listener()
        logger.debug("Clean up done")

    @staticmethod
    def _close_quietly(close: Callable[[], None], what: str) -> None:
        try:
            close()
        except Exception as e:
            error = SessionCloseError(f"Failed to close the {what}: {e}")
            logger.error(str(error))
