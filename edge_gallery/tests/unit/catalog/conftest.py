"""Shared fixtures for catalog unit tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from edge_gallery.catalog import AllowlistClient, AllowlistConfig, ImportedModelStore


def allowed_entry(**overrides: Any) -> dict[str, Any]:
    """One allow-list entry in its wire format."""
    entry = {
        "name": "Gemma3-1B-IT",
        "modelId": "litert-community/Gemma3-1B-IT",
        "modelFile": "gemma3-1b-it-int4.task",
        "description": "A variant of google/Gemma-3-1B-IT",
        "sizeInBytes": 554661246,
        "commitHash": "42d538a932e8d5b12e6b3b455f5572560bd60b2c",
        "defaultConfig": {
            "topK": 64,
            "topP": 0.95,
            "temperature": 1.0,
            "maxTokens": 4096,
            "accelerators": "gpu,cpu",
        },
        "taskTypes": ["llm_chat", "llm_prompt_lab"],
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def allowlist_data() -> dict[str, Any]:
    """Allow-list with a chat model, an image model and a disabled model."""
    return {
        "models": [
            allowed_entry(),
            allowed_entry(
                name="Gemma-3n-E2B-it",
                modelId="google/gemma-3n-E2B-it-litert-preview",
                modelFile="gemma-3n-E2B-it-int4.task",
                sizeInBytes=3136226711,
                commitHash="abc123",
                taskTypes=["llm_chat", "llm_ask_image", "llm_ask_audio"],
                llmSupportImage=True,
                llmSupportAudio=True,
            ),
            allowed_entry(name="Retired", disabled=True),
        ]
    }


@pytest.fixture
def allowlist_config() -> AllowlistConfig:
    """Allow-list config with fast retries for tests."""
    return AllowlistConfig(
        url="https://example.com/allowlist.json",
        max_retries=2,
        retry_delay_seconds=0,
    )


@pytest.fixture
def test_file(data_dir: Path, allowlist_data: dict[str, Any]) -> Path:
    """Allow-list written to a local file."""
    path = data_dir / "local_allowlist.json"
    path.write_text(json.dumps(allowlist_data))
    return path


@pytest.fixture
def imported_store(data_dir: Path) -> ImportedModelStore:
    """Imported model store over the temp data dir."""
    return ImportedModelStore(data_dir)


@pytest.fixture
def local_client(data_dir: Path, test_file: Path) -> AllowlistClient:
    """Allow-list client that reads the local test file."""
    return AllowlistClient(
        AllowlistConfig(test_allowlist_path=str(test_file)),
        data_dir,
    )


@pytest.fixture
def make_entry():
    """Factory for allow-list entries with overrides."""
    return allowed_entry
