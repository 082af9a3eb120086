"""Data models for the lifecycle module."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..inference.models import ModelInstance


class ModelInitializationStatusType(Enum):
    NOT_INITIALIZED = "not_initialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    ERROR = "error"


@dataclass(frozen=True)
class ModelInitializationStatus:
    status: ModelInitializationStatusType
    error: str = ""


NOT_INITIALIZED = ModelInitializationStatus(ModelInitializationStatusType.NOT_INITIALIZED)


@dataclass
class ModelRuntime:
    """Per-model runtime record; only the lifecycle coordinator mutates it."""

    status: ModelInitializationStatus = NOT_INITIALIZED
    instance: ModelInstance | None = None
    initializing: bool = False
    cleanup_after_init: bool = False
    # Set while the previous engine is being closed
    closing: asyncio.Event | None = None
    config_values: dict[str, Any] = field(default_factory=dict)
