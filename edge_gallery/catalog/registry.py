"""Model registry: the tasks and the models available for each."""

from __future__ import annotations

import logging

from .allowlist import LOAD_FAILED_MESSAGE, AllowlistClient
from .errors import AllowlistLoadError, UnknownModelError
from .imports import ImportedModelStore
from .models import ImportedModel, ModelDescriptor, Task, TaskSnapshot, TaskType
from .tasks import default_tasks

logger = logging.getLogger(__name__)

IMPORT_TASK_TYPES = (TaskType.LLM_CHAT, TaskType.LLM_PROMPT_LAB)


class ModelRegistry:
    """
    Owns the task -> models mapping.

    Consumers get snapshots; every mutation goes through this class and
    happens on the event loop that owns it.
    """

    def __init__(
        self,
        allowlist_client: AllowlistClient,
        imported_store: ImportedModelStore,
        endpoint: str = "https://huggingface.co",
    ):
        """
        Initialize registry.

        Args:
            allowlist_client: Source of the remote model list
            imported_store: Persistence for user-imported models
            endpoint: Hub endpoint used to build model URLs
        """
        self._allowlist_client = allowlist_client
        self._imported_store = imported_store
        self._endpoint = endpoint
        self._tasks: list[Task] = default_tasks()
        self._load_error = ""

    @property
    def load_error(self) -> str:
        """Empty when the last refresh succeeded."""
        return self._load_error

    async def refresh(self) -> None:
        """
        Rebuild every task list from the allow-list and the stored imports.

        Raises:
            AllowlistLoadError: If the allow-list could not be loaded; the
                registry is left with no models
        """
        try:
            allowlist = await self._allowlist_client.load()
        except AllowlistLoadError:
            for task in self._tasks:
                task.models.clear()
            self._load_error = LOAD_FAILED_MESSAGE
            logger.error(LOAD_FAILED_MESSAGE)
            raise

        tasks = default_tasks()
        by_id = {task.type.id: task for task in tasks}
        for allowed in allowlist.models:
            if allowed.disabled:
                logger.debug(f"Skipping disabled model {allowed.name}")
                continue
            descriptor = allowed.to_descriptor(self._endpoint)
            for task_id in allowed.task_types:
                task = by_id.get(task_id)
                if task is None:
                    logger.debug(f"Unknown task type {task_id} for {allowed.name}")
                    continue
                task.models.append(descriptor)

        self._tasks = tasks
        self._load_error = ""

        for imported in self._imported_store.read():
            self._add_imported(imported)

        logger.info(f"Registry refreshed: {len(self.all_models())} models")

    def tasks(self) -> tuple[TaskSnapshot, ...]:
        return tuple(
            TaskSnapshot(type=t.type, description=t.description, models=tuple(t.models))
            for t in self._tasks
        )

    def task(self, task_type: TaskType) -> TaskSnapshot:
        for snapshot in self.tasks():
            if snapshot.type == task_type:
                return snapshot
        raise KeyError(task_type)

    def all_models(self) -> list[ModelDescriptor]:
        """Every distinct model, in task order."""
        seen: dict[str, ModelDescriptor] = {}
        for task in self._tasks:
            for model in task.models:
                seen.setdefault(model.name, model)
        return list(seen.values())

    def get_model(self, name: str) -> ModelDescriptor:
        """
        Look up a model by name.

        Raises:
            UnknownModelError: If no task holds a model with that name
        """
        for task in self._tasks:
            for model in task.models:
                if model.name == name:
                    return model
        raise UnknownModelError(f"Unknown model: {name}")

    def find_model(self, name: str) -> ModelDescriptor | None:
        try:
            return self.get_model(name)
        except UnknownModelError:
            return None

    def add_imported_model(self, info: ImportedModel) -> ModelDescriptor:
        """
        Register an imported model and persist the import list.

        A previous import with the same file name is replaced.
        """
        descriptor = self._add_imported(info)
        stored = [m for m in self._imported_store.read() if m.file_name != info.file_name]
        stored.append(info)
        self._imported_store.save(stored)
        logger.info(f"Imported model {info.file_name}")
        return descriptor

    def remove_model(self, name: str) -> None:
        """Remove a model from every task; imported models also leave the store."""
        imported = False
        for task in self._tasks:
            for model in [m for m in task.models if m.name == name]:
                imported = imported or model.imported
                task.models.remove(model)
        if imported:
            stored = self._imported_store.read()
            self._imported_store.save([m for m in stored if m.file_name != name])
            logger.info(f"Removed imported model {name}")

    def _add_imported(self, info: ImportedModel) -> ModelDescriptor:
        descriptor = info.to_descriptor()
        task_types = list(IMPORT_TASK_TYPES)
        if info.llm_config.support_image:
            task_types.append(TaskType.LLM_ASK_IMAGE)
        if info.llm_config.support_audio:
            task_types.append(TaskType.LLM_ASK_AUDIO)

        for task in self._tasks:
            if task.type not in task_types:
                continue
            task.models[:] = [m for m in task.models if m.name != descriptor.name]
            task.models.append(descriptor)
        return descriptor
