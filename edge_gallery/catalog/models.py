"""Data models for the model catalog."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from huggingface_hub import hf_hub_url

from .configs import (
    DEFAULT_MAX_TOKEN,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOPK,
    DEFAULT_TOPP,
    Accelerator,
    ConfigKey,
    ConfigParam,
    create_llm_chat_configs,
)
from .errors import AllowlistFormatError

IMPORTS_DIR = "__imports"
DEFAULT_ENDPOINT = "https://huggingface.co"

_NORMALIZE_NAME_RE = re.compile(r"[^a-zA-Z0-9]")


class TaskType(Enum):
    """Tasks a model can serve, with allow-list id and display label."""

    LLM_CHAT = ("llm_chat", "AI Chat")
    LLM_PROMPT_LAB = ("llm_prompt_lab", "Prompt Lab")
    LLM_ASK_IMAGE = ("llm_ask_image", "Ask Image")
    LLM_ASK_AUDIO = ("llm_ask_audio", "Audio Scribe")
    SIGN_LANGUAGE_TRANSLATE = ("sign_language_translate", "Sign Language Translation")

    @property
    def id(self) -> str:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]

    @classmethod
    def from_id(cls, task_id: str) -> TaskType | None:
        for task_type in cls:
            if task_type.id == task_id:
                return task_type
        return None


LLM_TASK_TYPES = (TaskType.LLM_CHAT, TaskType.LLM_PROMPT_LAB)


@dataclass(frozen=True)
class ModelDataFile:
    """An extra file downloaded alongside a model's primary artifact."""

    name: str
    url: str
    download_file_name: str
    size_in_bytes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "download_file_name": self.download_file_name,
            "size_in_bytes": self.size_in_bytes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelDataFile:
        return cls(
            name=data["name"],
            url=data["url"],
            download_file_name=data["download_file_name"],
            size_in_bytes=int(data["size_in_bytes"]),
        )


@dataclass
class ModelDescriptor:
    """
    A downloadable (or imported) model.

    Fields are not modified after construction, except ``access_token``
    which is set right before a download attempt and never logged.
    """

    name: str
    url: str
    size_in_bytes: int
    download_file_name: str
    commit_hash: str = "_"
    extra_data_files: tuple[ModelDataFile, ...] = ()
    info: str = ""
    learn_more_url: str = ""
    configs: tuple[ConfigParam, ...] = ()
    is_zip: bool = False
    unzip_dir: str = ""
    llm_support_image: bool = False
    llm_support_audio: bool = False
    imported: bool = False
    estimated_peak_memory_in_bytes: int | None = None
    access_token: str | None = field(default=None, repr=False, compare=False)

    @property
    def normalized_name(self) -> str:
        """Name with every non-alphanumeric character replaced by "_"."""
        return _NORMALIZE_NAME_RE.sub("_", self.name)

    @property
    def total_bytes(self) -> int:
        """Primary artifact size plus every extra file."""
        return self.size_in_bytes + sum(f.size_in_bytes for f in self.extra_data_files)

    @property
    def is_llm(self) -> bool:
        return any(c.key == ConfigKey.TOPK for c in self.configs)

    def default_config_values(self) -> dict[str, Any]:
        """Map of config label -> default value."""
        return {c.key.label: c.default_value for c in self.configs}

    def artifact_dir(self, base_dir: Path) -> Path:
        """Directory holding every file of this model version."""
        if self.imported:
            return base_dir / IMPORTS_DIR
        return base_dir / self.normalized_name / self.commit_hash

    def get_path(self, base_dir: Path, file_name: str | None = None) -> Path:
        """
        Local path of the model's artifact.

        Imported models live directly under ``base_dir``; zip artifacts
        resolve to their extraction directory.
        """
        file_name = file_name or self.download_file_name
        if self.imported:
            return base_dir / file_name
        model_dir = self.artifact_dir(base_dir)
        if self.is_zip and self.unzip_dir:
            return model_dir / self.unzip_dir
        return model_dir / file_name

    def get_extra_data_file(self, name: str) -> ModelDataFile | None:
        return next((f for f in self.extra_data_files if f.name == name), None)


@dataclass
class Task:
    """A task and the models that can serve it."""

    type: TaskType
    description: str
    models: list[ModelDescriptor] = field(default_factory=list)


@dataclass(frozen=True)
class TaskSnapshot:
    """Read-only view of a task handed to consumers."""

    type: TaskType
    description: str
    models: tuple[ModelDescriptor, ...]


# --- Allow-list ---


@dataclass(frozen=True)
class DefaultConfig:
    top_k: int | None = None
    top_p: float | None = None
    temperature: float | None = None
    accelerators: str | None = None
    max_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DefaultConfig:
        data = data or {}
        return cls(
            top_k=data.get("topK"),
            top_p=data.get("topP"),
            temperature=data.get("temperature"),
            accelerators=data.get("accelerators"),
            max_tokens=data.get("maxTokens"),
        )

    def parsed_accelerators(self) -> tuple[Accelerator, ...]:
        """Comma-separated accelerator list; unknown entries are ignored."""
        if self.accelerators is None:
            return ()
        result = []
        for item in self.accelerators.split(","):
            item = item.strip().lower()
            if item == "cpu":
                result.append(Accelerator.CPU)
            elif item == "gpu":
                result.append(Accelerator.GPU)
        return tuple(result)


@dataclass(frozen=True)
class AllowedModel:
    """One entry of the remote model allow-list."""

    name: str
    model_id: str
    model_file: str
    description: str
    size_in_bytes: int
    commit_hash: str
    default_config: DefaultConfig
    task_types: tuple[str, ...]
    disabled: bool = False
    llm_support_image: bool = False
    llm_support_audio: bool = False
    estimated_peak_memory_in_bytes: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AllowedModel:
        """
        Parse an allow-list entry.

        Raises:
            AllowlistFormatError: If a required field is missing or malformed
        """
        try:
            return cls(
                name=data["name"],
                model_id=data["modelId"],
                model_file=data["modelFile"],
                description=data.get("description", ""),
                size_in_bytes=int(data["sizeInBytes"]),
                commit_hash=data["commitHash"],
                default_config=DefaultConfig.from_dict(data.get("defaultConfig")),
                task_types=tuple(data.get("taskTypes", [])),
                disabled=bool(data.get("disabled") or False),
                llm_support_image=bool(data.get("llmSupportImage") or False),
                llm_support_audio=bool(data.get("llmSupportAudio") or False),
                estimated_peak_memory_in_bytes=data.get("estimatedPeakMemoryInBytes"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AllowlistFormatError(f"Invalid allow-list entry {data!r}: {e}") from e

    @property
    def is_llm(self) -> bool:
        return any(t.id in self.task_types for t in LLM_TASK_TYPES)

    def to_descriptor(self, endpoint: str = DEFAULT_ENDPOINT) -> ModelDescriptor:
        """Build a descriptor whose url resolves the model file on the hub."""
        url = hf_hub_url(
            repo_id=self.model_id,
            filename=self.model_file,
            revision="main",
            endpoint=endpoint,
        )
        configs: tuple[ConfigParam, ...] = ()
        if self.is_llm:
            dc = self.default_config
            configs = create_llm_chat_configs(
                max_tokens=dc.max_tokens if dc.max_tokens is not None else DEFAULT_MAX_TOKEN,
                top_k=dc.top_k if dc.top_k is not None else DEFAULT_TOPK,
                top_p=dc.top_p if dc.top_p is not None else DEFAULT_TOPP,
                temperature=(
                    dc.temperature if dc.temperature is not None else DEFAULT_TEMPERATURE
                ),
                accelerators=dc.parsed_accelerators(),
            )
        return ModelDescriptor(
            name=self.name,
            url=f"{url}?download=true",
            size_in_bytes=self.size_in_bytes,
            download_file_name=self.model_file,
            commit_hash=self.commit_hash,
            info=self.description,
            learn_more_url=f"{endpoint.rstrip('/')}/{self.model_id}",
            configs=configs,
            llm_support_image=self.llm_support_image,
            llm_support_audio=self.llm_support_audio,
            estimated_peak_memory_in_bytes=self.estimated_peak_memory_in_bytes,
        )


@dataclass(frozen=True)
class ModelAllowlist:
    models: tuple[AllowedModel, ...]

    @classmethod
    def from_dict(cls, data: Any) -> ModelAllowlist:
        if not isinstance(data, dict) or not isinstance(data.get("models"), list):
            raise AllowlistFormatError("Allow-list must be an object with a 'models' list")
        return cls(models=tuple(AllowedModel.from_dict(m) for m in data["models"]))


# --- Imported models ---


@dataclass(frozen=True)
class ImportedLlmConfig:
    compatible_accelerators: tuple[Accelerator, ...] = (Accelerator.CPU,)
    default_max_tokens: int = DEFAULT_MAX_TOKEN
    default_top_k: int = DEFAULT_TOPK
    default_top_p: float = DEFAULT_TOPP
    default_temperature: float = DEFAULT_TEMPERATURE
    support_image: bool = False
    support_audio: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "compatible_accelerators": [a.value for a in self.compatible_accelerators],
            "default_max_tokens": self.default_max_tokens,
            "default_top_k": self.default_top_k,
            "default_top_p": self.default_top_p,
            "default_temperature": self.default_temperature,
            "support_image": self.support_image,
            "support_audio": self.support_audio,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImportedLlmConfig:
        return cls(
            compatible_accelerators=tuple(
                Accelerator.from_label(a) for a in data.get("compatible_accelerators", [])
            ),
            default_max_tokens=int(data.get("default_max_tokens", DEFAULT_MAX_TOKEN)),
            default_top_k=int(data.get("default_top_k", DEFAULT_TOPK)),
            default_top_p=float(data.get("default_top_p", DEFAULT_TOPP)),
            default_temperature=float(
                data.get("default_temperature", DEFAULT_TEMPERATURE)
            ),
            support_image=bool(data.get("support_image", False)),
            support_audio=bool(data.get("support_audio", False)),
        )


@dataclass(frozen=True)
class ImportedModel:
    """A model file the user placed on disk themselves."""

    file_name: str
    file_size: int
    llm_config: ImportedLlmConfig = field(default_factory=ImportedLlmConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "file_size": self.file_size,
            "llm_config": self.llm_config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImportedModel:
        return cls(
            file_name=data["file_name"],
            file_size=int(data["file_size"]),
            llm_config=ImportedLlmConfig.from_dict(data.get("llm_config", {})),
        )

    def to_descriptor(self) -> ModelDescriptor:
        cfg = self.llm_config
        return ModelDescriptor(
            name=self.file_name,
            url="",
            size_in_bytes=self.file_size,
            download_file_name=f"{IMPORTS_DIR}/{self.file_name}",
            configs=create_llm_chat_configs(
                max_tokens=cfg.default_max_tokens,
                top_k=cfg.default_top_k,
                top_p=cfg.default_top_p,
                temperature=cfg.default_temperature,
                accelerators=cfg.compatible_accelerators,
            ),
            llm_support_image=cfg.support_image,
            llm_support_audio=cfg.support_audio,
            imported=True,
        )
