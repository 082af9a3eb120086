"""Model catalog: allow-list loading, tasks, imported models."""

from .allowlist import AllowlistClient, AllowlistConfig
from .configs import (
    Accelerator,
    BooleanConfig,
    ConfigKey,
    ConfigParam,
    LabelConfig,
    NumberConfig,
    OptionConfig,
    ValueType,
    convert_value,
    create_llm_chat_configs,
)
from .errors import (
    AllowlistFormatError,
    AllowlistLoadError,
    CatalogError,
    UnknownModelError,
)
from .imports import ImportedModelStore
from .models import (
    AllowedModel,
    ImportedLlmConfig,
    ImportedModel,
    ModelAllowlist,
    ModelDataFile,
    ModelDescriptor,
    Task,
    TaskSnapshot,
    TaskType,
)
from .registry import ModelRegistry

__all__ = [
    # Errors
    "CatalogError",
    "AllowlistLoadError",
    "AllowlistFormatError",
    "UnknownModelError",
    # Models
    "ModelDescriptor",
    "ModelDataFile",
    "Task",
    "TaskSnapshot",
    "TaskType",
    "AllowedModel",
    "ModelAllowlist",
    "ImportedModel",
    "ImportedLlmConfig",
    # Config params
    "Accelerator",
    "ConfigKey",
    "ConfigParam",
    "LabelConfig",
    "NumberConfig",
    "BooleanConfig",
    "OptionConfig",
    "ValueType",
    "convert_value",
    "create_llm_chat_configs",
    # Config
    "AllowlistConfig",
    # Components
    "AllowlistClient",
    "ImportedModelStore",
    "ModelRegistry",
]
