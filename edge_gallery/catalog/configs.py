"""Model configuration parameters with defaults and allowed ranges."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_MAX_TOKEN = 1024
DEFAULT_TOPK = 40
DEFAULT_TOPP = 0.9
DEFAULT_TEMPERATURE = 1.0


class Accelerator(Enum):
    """Hardware an engine may run on."""

    CPU = "CPU"
    GPU = "GPU"

    @classmethod
    def from_label(cls, label: str) -> Accelerator:
        """Parse a case-insensitive accelerator label ("cpu", "GPU", ...)."""
        try:
            return cls(label.strip().upper())
        except ValueError as e:
            raise ValueError(f"Unknown accelerator: {label!r}") from e


DEFAULT_ACCELERATORS = (Accelerator.GPU,)


class ValueType(Enum):
    INT = "int"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    BOOLEAN = "boolean"


class ConfigKey(Enum):
    """Configuration parameters, keyed by their display label."""

    MAX_TOKENS = "Max tokens"
    TOPK = "TopK"
    TOPP = "TopP"
    TEMPERATURE = "Temperature"
    DEFAULT_MAX_TOKENS = "Default max tokens"
    DEFAULT_TOPK = "Default TopK"
    DEFAULT_TOPP = "Default TopP"
    DEFAULT_TEMPERATURE = "Default temperature"
    SUPPORT_IMAGE = "Support image"
    SUPPORT_AUDIO = "Support audio"
    MAX_RESULT_COUNT = "Max result count"
    USE_GPU = "Use GPU"
    ACCELERATOR = "Choose accelerator"
    COMPATIBLE_ACCELERATORS = "Compatible accelerators"
    CONFIDENCE_THRESHOLD = "Confidence threshold"
    REAL_TIME_MODE = "Real-time mode"

    @property
    def label(self) -> str:
        return self.value


def convert_value(value: Any, value_type: ValueType) -> Any:
    """
    Coerce a raw config value to the parameter's value type.

    Strings that fail to parse as numbers convert to "" so callers can
    tell "unset" apart from zero.
    """
    if value_type == ValueType.STRING:
        return str(value)

    if value_type == ValueType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        if isinstance(value, float):
            return abs(value) > 1e-6
        if isinstance(value, str):
            return value != ""
        return False

    target = int if value_type == ValueType.INT else float
    if isinstance(value, bool):
        return target(1 if value else 0)
    if isinstance(value, (int, float)):
        return target(value)
    if isinstance(value, str):
        try:
            return target(float(value)) if target is int else target(value)
        except ValueError:
            return ""
    return ""


@dataclass(frozen=True)
class ConfigParam:
    """Base class for a model configuration parameter."""

    key: ConfigKey
    default_value: Any
    value_type: ValueType
    need_reinitialization: bool = True

    def validate(self, value: Any) -> Any:
        """
        Convert value to this parameter's type and check it is allowed.

        Returns:
            Converted value

        Raises:
            ValueError: If the value cannot be converted or is out of range
        """
        converted = convert_value(value, self.value_type)
        if converted == "" and self.value_type != ValueType.STRING:
            raise ValueError(f"{self.key.label}: cannot convert {value!r}")
        return converted


@dataclass(frozen=True)
class LabelConfig(ConfigParam):
    default_value: str = ""
    value_type: ValueType = ValueType.STRING


@dataclass(frozen=True)
class NumberConfig(ConfigParam):
    """Numeric parameter bounded to [min_value, max_value]."""

    min_value: float = 0.0
    max_value: float = 1.0

    def validate(self, value: Any) -> Any:
        converted = super().validate(value)
        if not self.min_value <= converted <= self.max_value:
            raise ValueError(
                f"{self.key.label}: {converted} outside "
                f"[{self.min_value}, {self.max_value}]"
            )
        return converted


@dataclass(frozen=True)
class BooleanConfig(ConfigParam):
    default_value: bool = False
    value_type: ValueType = ValueType.BOOLEAN


@dataclass(frozen=True)
class OptionConfig(ConfigParam):
    """String parameter restricted to a fixed set of options."""

    default_value: str = ""
    value_type: ValueType = ValueType.STRING
    options: tuple[str, ...] = field(default_factory=tuple)

    def validate(self, value: Any) -> Any:
        converted = super().validate(value)
        if converted not in self.options:
            raise ValueError(
                f"{self.key.label}: {converted!r} not one of {list(self.options)}"
            )
        return converted


def create_llm_chat_configs(
    max_tokens: int = DEFAULT_MAX_TOKEN,
    top_k: int = DEFAULT_TOPK,
    top_p: float = DEFAULT_TOPP,
    temperature: float = DEFAULT_TEMPERATURE,
    accelerators: tuple[Accelerator, ...] | list[Accelerator] = DEFAULT_ACCELERATORS,
) -> tuple[ConfigParam, ...]:
    """Build the parameter set shared by every LLM model."""
    accelerators = tuple(accelerators) or DEFAULT_ACCELERATORS
    return (
        LabelConfig(key=ConfigKey.MAX_TOKENS, default_value=str(max_tokens)),
        NumberConfig(
            key=ConfigKey.TOPK,
            default_value=float(top_k),
            value_type=ValueType.INT,
            min_value=5.0,
            max_value=100.0,
        ),
        NumberConfig(
            key=ConfigKey.TOPP,
            default_value=float(top_p),
            value_type=ValueType.FLOAT,
            min_value=0.0,
            max_value=1.0,
        ),
        NumberConfig(
            key=ConfigKey.TEMPERATURE,
            default_value=float(temperature),
            value_type=ValueType.FLOAT,
            min_value=0.0,
            max_value=2.0,
        ),
        OptionConfig(
            key=ConfigKey.ACCELERATOR,
            default_value=accelerators[0].value,
            options=tuple(a.value for a in accelerators),
        ),
    )
