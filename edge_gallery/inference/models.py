"""Data models and backend protocol for the inference module."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from ..catalog.configs import (
    DEFAULT_MAX_TOKEN,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOPK,
    DEFAULT_TOPP,
    Accelerator,
    ConfigKey,
    ValueType,
    convert_value,
)

MAX_IMAGE_COUNT = 10

ResultListener = Callable[[str, bool], None]


@dataclass(frozen=True)
class EngineOptions:
    model_path: Path
    max_tokens: int
    preferred_backend: Accelerator
    max_num_images: int


@dataclass(frozen=True)
class SessionOptions:
    top_k: int
    top_p: float
    temperature: float
    enable_vision: bool


class Session(Protocol):
    def add_query_chunk(self, text: str) -> None: ...

    def add_image(self, image: Any) -> None: ...

    def add_audio(self, audio: bytes) -> None: ...

    def generate_response_async(self, listener: ResultListener) -> None:
        """Start generation; ``listener(partial, done)`` may fire from any thread."""
        ...

    def cancel_generate_response_async(self) -> None: ...

    def close(self) -> None: ...


class Engine(Protocol):
    def close(self) -> None: ...


class EngineBackend(Protocol):
    """Opaque on-device inference runtime."""

    def create_engine(self, options: EngineOptions) -> Engine: ...

    def create_session(self, engine: Engine, options: SessionOptions) -> Session: ...


def _typed(values: dict[str, Any], key: ConfigKey, value_type: ValueType, default: Any) -> Any:
    value = convert_value(values.get(key.label, default), value_type)
    return default if value == "" else value


@dataclass(frozen=True)
class InferenceConfig:
    """Engine and sampling settings resolved from a model's config values."""

    max_tokens: int = DEFAULT_MAX_TOKEN
    top_k: int = DEFAULT_TOPK
    top_p: float = DEFAULT_TOPP
    temperature: float = DEFAULT_TEMPERATURE
    accelerator: Accelerator = Accelerator.GPU
    support_image: bool = False

    @classmethod
    def from_values(cls, values: dict[str, Any], support_image: bool = False) -> InferenceConfig:
        label = _typed(values, ConfigKey.ACCELERATOR, ValueType.STRING, Accelerator.GPU.value)
        try:
            accelerator = Accelerator.from_label(label)
        except ValueError:
            accelerator = Accelerator.GPU
        return cls(
            max_tokens=_typed(values, ConfigKey.MAX_TOKENS, ValueType.INT, DEFAULT_MAX_TOKEN),
            top_k=_typed(values, ConfigKey.TOPK, ValueType.INT, DEFAULT_TOPK),
            top_p=_typed(values, ConfigKey.TOPP, ValueType.FLOAT, DEFAULT_TOPP),
            temperature=_typed(
                values, ConfigKey.TEMPERATURE, ValueType.FLOAT, DEFAULT_TEMPERATURE
            ),
            accelerator=accelerator,
            support_image=support_image,
        )

    def engine_options(self, model_path: Path) -> EngineOptions:
        return EngineOptions(
            model_path=model_path,
            max_tokens=self.max_tokens,
            preferred_backend=self.accelerator,
            max_num_images=MAX_IMAGE_COUNT if self.support_image else 0,
        )

    def session_options(self) -> SessionOptions:
        return SessionOptions(
            top_k=self.top_k,
            top_p=self.top_p,
            temperature=self.temperature,
            enable_vision=self.support_image,
        )


@dataclass
class ModelInstance:
    """A live engine and its current session."""

    engine: Engine
    session: Session | None
    cleanup_listener: Callable[[], None] | None = None


@dataclass(frozen=True)
class PartialResult:
    """One chunk of a streamed response; ``response`` is every chunk so far."""

    text: str
    done: bool
    response: str = ""
