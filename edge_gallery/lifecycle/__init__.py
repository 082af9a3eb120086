"""Lifecycle module: engine initialization guard and model manager."""

from .coordinator import InitializationConfig, ModelLifecycleCoordinator
from .errors import LifecycleError, ModelNotInitializedError
from .manager import ModelManager
from .models import (
    NOT_INITIALIZED,
    ModelInitializationStatus,
    ModelInitializationStatusType,
    ModelRuntime,
)

__all__ = [
    # Errors
    "LifecycleError",
    "ModelNotInitializedError",
    # Models
    "ModelInitializationStatus",
    "ModelInitializationStatusType",
    "ModelRuntime",
    "NOT_INITIALIZED",
    # Config
    "InitializationConfig",
    # Components
    "ModelLifecycleCoordinator",
    "ModelManager",
]
