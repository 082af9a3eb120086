"""Model lifecycle coordinator: initialize and clean up engine instances."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..catalog.models import ModelDescriptor
from ..inference.errors import EngineConstructionError, SessionResetError
from ..inference.gateway import InferenceSessionGateway, PartialCallback
from ..inference.models import InferenceConfig, ModelInstance, PartialResult
from ..utils.misc import invoke_callback
from .errors import ModelNotInitializedError
from .models import (
    NOT_INITIALIZED,
    ModelInitializationStatus,
    ModelInitializationStatusType,
    ModelRuntime,
)

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, ModelInitializationStatus], Awaitable[None] | None]


@dataclass
class InitializationConfig:
    """Configuration for model initialization."""

    # Fast initializations never flash an "initializing" state
    status_delay_seconds: float = 0.5


class ModelLifecycleCoordinator:
    """
    Guard engine construction and teardown per model.

    Rules:
    - initialize() is a no-op for an initialized model unless forced
    - A second initialize() while one is running returns at once and
      withdraws any cleanup requested in between
    - cleanup() during initialization is deferred; the fresh engine is
      torn down before anyone can see it
    - initialize() during a teardown waits for the old engine to close,
      then builds a new one
    - INITIALIZING is only published when construction takes longer
      than status_delay_seconds

    All state changes happen on the event loop; only engine construction
    and teardown run in worker threads.
    """

    def __init__(
        self,
        gateway: InferenceSessionGateway,
        artifacts_dir: Path,
        config: InitializationConfig | None = None,
    ):
        """
        Initialize coordinator.

        Args:
            gateway: Session gateway over the inference backend
            artifacts_dir: Root directory of downloaded models
            config: Initialization configuration
        """
        self._gateway = gateway
        self._artifacts_dir = artifacts_dir
        self._config = config or InitializationConfig()
        self._runtimes: dict[str, ModelRuntime] = {}
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register for (model name, status) events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def status(self, model_name: str) -> ModelInitializationStatus:
        runtime = self._runtimes.get(model_name)
        return runtime.status if runtime else NOT_INITIALIZED

    def get_instance(self, model_name: str) -> ModelInstance | None:
        runtime = self._runtimes.get(model_name)
        return runtime.instance if runtime else None

    def config_values(self, descriptor: ModelDescriptor) -> dict[str, Any]:
        return dict(self._runtime(descriptor).config_values)

    def _runtime(self, descriptor: ModelDescriptor) -> ModelRuntime:
        runtime = self._runtimes.get(descriptor.name)
        if runtime is None:
            runtime = ModelRuntime(config_values=descriptor.default_config_values())
            self._runtimes[descriptor.name] = runtime
        return runtime

    def _inference_config(self, descriptor: ModelDescriptor, runtime: ModelRuntime) -> InferenceConfig:
        return InferenceConfig.from_values(runtime.config_values, descriptor.llm_support_image)

    async def _set_status(
        self,
        model_name: str,
        runtime: ModelRuntime,
        status: ModelInitializationStatusType,
        error: str = "",
    ) -> None:
        runtime.status = ModelInitializationStatus(status=status, error=error)
        logger.info(f"Model {model_name}: {status.value}{f' ({error})' if error else ''}")
        for listener in list(self._listeners):
            try:
                await invoke_callback(listener, model_name, runtime.status)
            except Exception as e:
                logger.error(f"Lifecycle listener raised: {e}", exc_info=True)

    async def initialize(self, descriptor: ModelDescriptor, force: bool = False) -> None:
        """
        Build an engine and session for a downloaded model.

        Failures end in ERROR status with the engine's message; nothing
        is raised.
        """
        name = descriptor.name
        runtime = self._runtime(descriptor)

        if runtime.closing is not None:
            logger.info(f"Waiting for the previous engine of {name} to close")
            await runtime.closing.wait()

        if (
            not force
            and runtime.instance is not None
            and runtime.status.status == ModelInitializationStatusType.INITIALIZED
        ):
            logger.info(f"Model {name} already initialized, skipping")
            return

        if runtime.initializing:
            runtime.cleanup_after_init = False
            logger.info(f"Model {name} is being initialized, skipping")
            return

        await self.cleanup(descriptor)

        runtime.initializing = True
        runtime.cleanup_after_init = False
        show_initializing = asyncio.create_task(self._show_initializing_later(name, runtime))

        instance: ModelInstance | None = None
        error = ""
        try:
            instance = await asyncio.to_thread(
                self._gateway.create_session,
                descriptor.get_path(self._artifacts_dir),
                self._inference_config(descriptor, runtime),
            )
        except EngineConstructionError as e:
            error = str(e)
        finally:
            runtime.initializing = False
            show_initializing.cancel()

        if instance is None:
            await self._set_status(name, runtime, ModelInitializationStatusType.ERROR, error)
            return

        if runtime.cleanup_after_init:
            runtime.cleanup_after_init = False
            logger.info(f"Cleanup requested during initialization of {name}")
            await asyncio.to_thread(self._gateway.close, instance)
            await self._set_status(name, runtime, ModelInitializationStatusType.NOT_INITIALIZED)
            return

        runtime.instance = instance
        await self._set_status(name, runtime, ModelInitializationStatusType.INITIALIZED)

    async def _show_initializing_later(self, name: str, runtime: ModelRuntime) -> None:
        await asyncio.sleep(self._config.status_delay_seconds)
        if runtime.instance is None and runtime.initializing:
            await self._set_status(name, runtime, ModelInitializationStatusType.INITIALIZING)

    async def cleanup(self, descriptor: ModelDescriptor) -> None:
        """Release the model's engine, or defer until initialization finishes."""
        runtime = self._runtimes.get(descriptor.name)
        if runtime is None:
            return

        if runtime.instance is not None:
            instance = runtime.instance
            runtime.instance = None
            closed = asyncio.Event()
            runtime.closing = closed
            try:
                await asyncio.to_thread(self._gateway.close, instance)
                await self._set_status(
                    descriptor.name, runtime, ModelInitializationStatusType.NOT_INITIALIZED
                )
            finally:
                runtime.closing = None
                closed.set()
        elif runtime.initializing:
            runtime.cleanup_after_init = True
            logger.info(f"Deferring cleanup of {descriptor.name} until initialization ends")

    async def reset_session(self, descriptor: ModelDescriptor) -> None:
        """
        Start a fresh conversation on the existing engine.

        Raises:
            ModelNotInitializedError: If the model has no engine
            SessionResetError: If no new session could be opened; the
                engine is released and the status becomes ERROR
        """
        runtime = self._runtime(descriptor)
        instance = runtime.instance
        if instance is None:
            raise ModelNotInitializedError(f"Model {descriptor.name} is not initialized")

        logger.debug(f"Resetting session for model '{descriptor.name}'")
        try:
            await asyncio.to_thread(
                self._gateway.reset_session, instance, self._inference_config(descriptor, runtime)
            )
        except SessionResetError as e:
            runtime.instance = None
            await asyncio.to_thread(self._gateway.close, instance)
            await self._set_status(
                descriptor.name, runtime, ModelInitializationStatusType.ERROR, str(e)
            )
            raise

    async def update_config(self, descriptor: ModelDescriptor, values: dict[str, Any]) -> None:
        """
        Change config values by label.

        A live engine is rebuilt when a changed parameter needs
        reinitialization; other changes only start a fresh session.

        Raises:
            ValueError: If a label is unknown or a value is out of range
        """
        params = {c.key.label: c for c in descriptor.configs}
        runtime = self._runtime(descriptor)
        updated = dict(runtime.config_values)
        changed = False
        needs_reinit = False
        for label, value in values.items():
            param = params.get(label)
            if param is None:
                raise ValueError(f"Unknown config {label!r} for {descriptor.name}")
            converted = param.validate(value)
            if updated.get(label) != converted:
                updated[label] = converted
                changed = True
                needs_reinit = needs_reinit or param.need_reinitialization
        runtime.config_values = updated

        if not changed or runtime.instance is None:
            return
        if needs_reinit:
            await self.initialize(descriptor, force=True)
        else:
            await self.reset_session(descriptor)

    async def delete(self, descriptor: ModelDescriptor) -> None:
        """Release everything held for a model that is being deleted."""
        await self.cleanup(descriptor)
        self._runtimes.pop(descriptor.name, None)

    def _require_instance(self, descriptor: ModelDescriptor) -> ModelInstance:
        instance = self.get_instance(descriptor.name)
        if instance is None:
            raise ModelNotInitializedError(f"Model {descriptor.name} is not initialized")
        return instance

    async def run_query(
        self,
        descriptor: ModelDescriptor,
        text: str,
        images: Sequence[Any] = (),
        audio_clips: Sequence[bytes] = (),
        on_partial: PartialCallback | None = None,
    ) -> str:
        """
        Run a query to completion on the model's session.

        Raises:
            ModelNotInitializedError: If the model has no engine
        """
        instance = self._require_instance(descriptor)
        return await self._gateway.run_query(instance, text, images, audio_clips, on_partial)

    async def stream_query(
        self,
        descriptor: ModelDescriptor,
        text: str,
        images: Sequence[Any] = (),
        audio_clips: Sequence[bytes] = (),
    ) -> AsyncIterator[PartialResult]:
        instance = self._require_instance(descriptor)
        async for result in self._gateway.stream_query(instance, text, images, audio_clips):
            yield result

    def cancel_query(self, descriptor: ModelDescriptor) -> None:
        instance = self.get_instance(descriptor.name)
        if instance is not None:
            self._gateway.cancel(instance)
