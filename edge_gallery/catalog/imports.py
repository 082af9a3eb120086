"""Persistence of user-imported models."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..utils.misc import write_json_atomic
from .models import ImportedModel

logger = logging.getLogger(__name__)

IMPORTS_FILENAME = "imported_models.json"


class ImportedModelStore:
    """JSON file holding the list of imported models."""

    def __init__(self, data_dir: Path):
        self._path = data_dir / IMPORTS_FILENAME

    def read(self) -> list[ImportedModel]:
        """Stored imports; a missing or corrupted file reads as empty."""
        if not self._path.exists():
            return []
        try:
            with open(self._path) as f:
                return [ImportedModel.from_dict(d) for d in json.load(f)]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Corrupted imported models file {self._path}: {e}")
            return []

    def save(self, models: list[ImportedModel]) -> None:
        write_json_atomic(self._path, [m.to_dict() for m in models])
