"""Inference module: engine sessions behind a small gateway."""

from .errors import (
    TRACE_MARKER,
    EngineConstructionError,
    InferenceError,
    QueryError,
    SessionCloseError,
    SessionResetError,
    clean_error_message,
)
from .gateway import InferenceSessionGateway
from .models import (
    MAX_IMAGE_COUNT,
    Engine,
    EngineBackend,
    EngineOptions,
    InferenceConfig,
    ModelInstance,
    PartialResult,
    Session,
    SessionOptions,
)

__all__ = [
    # Errors
    "InferenceError",
    "EngineConstructionError",
    "SessionResetError",
    "SessionCloseError",
    "QueryError",
    "clean_error_message",
    "TRACE_MARKER",
    # Models
    "EngineOptions",
    "SessionOptions",
    "InferenceConfig",
    "ModelInstance",
    "PartialResult",
    "MAX_IMAGE_COUNT",
    # Backend protocol
    "Engine",
    "EngineBackend",
    "Session",
    # Components
    "InferenceSessionGateway",
]
