"""Model manager: download status per model on top of registry, scheduler and auth."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..auth.coordinator import UNKNOWN_NETWORK_ERROR, AuthCoordinator
from ..auth.models import AuthOutcome, AuthOutcomeType, TokenStatus
from ..catalog.errors import AllowlistLoadError
from ..catalog.models import IMPORTS_DIR, ImportedModel, ModelDescriptor
from ..catalog.registry import ModelRegistry
from ..downloads.errors import NetworkError
from ..downloads.models import DownloadStatus, DownloadStatusType, JobHandle
from ..downloads.scheduler import DownloadScheduler
from ..utils.misc import invoke_callback
from .coordinator import ModelLifecycleCoordinator

logger = logging.getLogger(__name__)

DownloadStatusListener = Callable[[str, DownloadStatus], Awaitable[None] | None]

NOT_DOWNLOADED = DownloadStatus(status=DownloadStatusType.NOT_DOWNLOADED)

# Statuses after which whatever is on disk for the model is discarded
DISCARD_STATUSES = (DownloadStatusType.FAILED, DownloadStatusType.NOT_DOWNLOADED)


class ModelManager:
    """
    Track the download status of every model and drive downloads.

    Usage:
        manager = ModelManager(registry, scheduler, auth, lifecycle, artifacts_dir)
        await manager.load()
        outcome = await manager.request_download(descriptor)
    """

    def __init__(
        self,
        registry: ModelRegistry,
        scheduler: DownloadScheduler,
        auth: AuthCoordinator,
        lifecycle: ModelLifecycleCoordinator,
        artifacts_dir: Path,
    ):
        self._registry = registry
        self._scheduler = scheduler
        self._auth = auth
        self._lifecycle = lifecycle
        self._artifacts_dir = artifacts_dir
        self._statuses: dict[str, DownloadStatus] = {}
        self._listeners: list[DownloadStatusListener] = []

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def lifecycle(self) -> ModelLifecycleCoordinator:
        return self._lifecycle

    # --- Status ---

    def download_status(self, model_name: str) -> DownloadStatus:
        return self._statuses.get(model_name, NOT_DOWNLOADED)

    def download_statuses(self) -> dict[str, DownloadStatus]:
        return dict(self._statuses)

    def subscribe(self, listener: DownloadStatusListener) -> Callable[[], None]:
        """Register for (model name, status) events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_app_in_foreground(self, in_foreground: bool) -> None:
        self._scheduler.lifecycle.in_foreground = in_foreground

    def is_model_downloaded(self, descriptor: ModelDescriptor) -> bool:
        """True when every file of the model is on disk and no job is pending for it."""
        if not descriptor.get_path(self._artifacts_dir).exists():
            return False
        if descriptor.imported:
            return True
        model_dir = descriptor.artifact_dir(self._artifacts_dir)
        if any(not (model_dir / f.download_file_name).exists() for f in descriptor.extra_data_files):
            return False
        return not self._scheduler.is_downloading(descriptor.name)

    async def _set_status(self, model_name: str, status: DownloadStatus) -> None:
        self._statuses[model_name] = status
        for listener in list(self._listeners):
            try:
                await invoke_callback(listener, model_name, status)
            except Exception as e:
                logger.error(f"Download status listener raised: {e}", exc_info=True)

    # --- Loading ---

    async def load(self) -> None:
        """
        Load the model list, compute each model's status and resume
        downloads a previous process left unfinished.

        A failed allow-list load leaves the registry empty; the error is
        available as ``registry.load_error``.
        """
        try:
            await self._registry.refresh()
        except AllowlistLoadError as e:
            logger.error(f"Model list unavailable: {e}")

        self._statuses = {m.name: self._initial_status(m) for m in self._registry.all_models()}
        await self.process_pending_downloads()

    def _initial_status(self, descriptor: ModelDescriptor) -> DownloadStatus:
        if self._scheduler.is_downloading(descriptor.name):
            # Zip models are still an archive until extraction
            archive = descriptor.artifact_dir(self._artifacts_dir) / descriptor.download_file_name
            if archive.exists():
                return DownloadStatus(
                    status=DownloadStatusType.PARTIALLY_DOWNLOADED,
                    total_bytes=descriptor.total_bytes,
                )
            return NOT_DOWNLOADED
        if self.is_model_downloaded(descriptor):
            return DownloadStatus(
                status=DownloadStatusType.SUCCEEDED,
                total_bytes=descriptor.total_bytes,
                received_bytes=descriptor.total_bytes,
            )
        return NOT_DOWNLOADED

    async def process_pending_downloads(self) -> list[JobHandle]:
        """
        Re-submit jobs found in the store at startup.

        The stale jobs are cancelled first; files already on disk are kept
        so the worker resumes from them. The stored token is only reused
        while it is not expired.
        """
        pending = self._scheduler.list_active_or_queued()
        if not pending:
            return []

        names = list(dict.fromkeys(job.model_name for job in pending))
        logger.info(f"Resuming {len(names)} pending downloads: {names}")
        await self._scheduler.cancel_all(names)

        token_status = self._auth.token_store.get_status()
        access_token = None
        if token_status.status == TokenStatus.NOT_EXPIRED and token_status.token:
            access_token = token_status.token.access_token

        handles = []
        for name in names:
            descriptor = self._registry.find_model(name)
            if descriptor is None:
                logger.warning(f"Pending download of unknown model {name} dropped")
                continue
            handles.append(await self._submit(descriptor, access_token))
        return handles

    def start_scheduled_refresh(self, interval_minutes: int = 60) -> AsyncIOScheduler:
        """
        Periodically reload the model list using APScheduler.

        Returns:
            The scheduler instance (call scheduler.shutdown() to stop)
        """
        scheduler = AsyncIOScheduler(timezone="UTC")

        async def _scheduled_refresh():
            logger.info("Running scheduled model list refresh...")
            try:
                await self._registry.refresh()
            except AllowlistLoadError as e:
                logger.error(f"Scheduled refresh failed: {e}")
                return
            for model in self._registry.all_models():
                if model.name not in self._statuses:
                    self._statuses[model.name] = self._initial_status(model)

        scheduler.add_job(
            _scheduled_refresh,
            IntervalTrigger(minutes=interval_minutes, timezone="UTC"),
            id="model_list_refresh",
            name="Model list refresh",
        )

        scheduler.start()
        logger.info(f"Scheduled model list refresh started - every {interval_minutes} minutes")

        return scheduler

    # --- Downloads ---

    async def request_download(self, descriptor: ModelDescriptor) -> AuthOutcome:
        """
        Check access to the model and start the download when allowed.

        Returns:
            The auth outcome; NEEDS_ACKNOWLEDGEMENT means the caller should
            send the user to ``auth.acknowledgement_url`` and then call
            acknowledge_and_download()
        """
        outcome = await self._auth.prepare_download(descriptor)
        await self._handle_outcome(descriptor, outcome)
        return outcome

    async def acknowledge_and_download(self, descriptor: ModelDescriptor) -> AuthOutcome:
        """Re-check access after the user accepted the model's license."""
        try:
            outcome = await self._auth.complete_acknowledgement(descriptor)
        except NetworkError as e:
            logger.error(f"Acknowledgement check for {descriptor.name} failed: {e}")
            outcome = AuthOutcome(type=AuthOutcomeType.FAILED, error_message=UNKNOWN_NETWORK_ERROR)
        await self._handle_outcome(descriptor, outcome)
        return outcome

    async def _handle_outcome(self, descriptor: ModelDescriptor, outcome: AuthOutcome) -> None:
        if outcome.type == AuthOutcomeType.PROCEED:
            await self.download_model(descriptor, outcome.access_token)
        elif outcome.type == AuthOutcomeType.FAILED:
            await self._set_status(
                descriptor.name,
                DownloadStatus(
                    status=DownloadStatusType.FAILED,
                    total_bytes=descriptor.total_bytes,
                    error_message=outcome.error_message,
                ),
            )

    async def download_model(
        self, descriptor: ModelDescriptor, access_token: str | None = None
    ) -> JobHandle:
        """Start a fresh download, discarding anything on disk for the model."""
        await self._scheduler.cancel(descriptor.name)
        await self._delete_files(descriptor)
        return await self._submit(descriptor, access_token)

    async def _submit(self, descriptor: ModelDescriptor, access_token: str | None) -> JobHandle:
        await self._set_status(
            descriptor.name,
            DownloadStatus(
                status=DownloadStatusType.IN_PROGRESS,
                total_bytes=descriptor.total_bytes,
            ),
        )

        async def _on_status(status: DownloadStatus) -> None:
            await self._on_download_status(descriptor, status)

        return await self._scheduler.submit(descriptor, access_token, on_status=_on_status)

    async def _on_download_status(self, descriptor: ModelDescriptor, status: DownloadStatus) -> None:
        if status.status in DISCARD_STATUSES:
            await self._delete_files(descriptor)
        await self._set_status(descriptor.name, status)

    async def cancel_download(self, descriptor: ModelDescriptor) -> None:
        await self._scheduler.cancel(descriptor.name)
        if self.download_status(descriptor.name).status != DownloadStatusType.NOT_DOWNLOADED:
            await self._delete_files(descriptor)
            await self._set_status(descriptor.name, NOT_DOWNLOADED)

    async def delete_model(self, descriptor: ModelDescriptor) -> None:
        """
        Remove a model's files and release its engine.

        Imported models also leave the registry.
        """
        await self._scheduler.cancel(descriptor.name)
        await self._lifecycle.delete(descriptor)
        await self._delete_files(descriptor)

        if descriptor.imported:
            self._registry.remove_model(descriptor.name)
            self._statuses.pop(descriptor.name, None)
            logger.info(f"Deleted imported model {descriptor.name}")
            return

        await self._set_status(descriptor.name, NOT_DOWNLOADED)
        logger.info(f"Deleted model {descriptor.name}")

    async def import_model(
        self, info: ImportedModel, source_path: Path | None = None
    ) -> ModelDescriptor:
        """
        Register a model file supplied by the user.

        Args:
            info: Import metadata; ``file_name`` names the file under the
                imports directory
            source_path: File to copy there first, if it is not in place yet

        Returns:
            Descriptor of the imported model
        """
        target = self._artifacts_dir / IMPORTS_DIR / info.file_name
        if source_path is not None:
            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, source_path, target)
            logger.info(f"Copied {source_path} to {target}")

        descriptor = self._registry.add_imported_model(info)
        await self._set_status(
            descriptor.name,
            DownloadStatus(
                status=DownloadStatusType.SUCCEEDED,
                total_bytes=info.file_size,
                received_bytes=info.file_size,
            ),
        )
        return descriptor

    async def _delete_files(self, descriptor: ModelDescriptor) -> None:
        if descriptor.imported:
            path = descriptor.get_path(self._artifacts_dir)
            await asyncio.to_thread(path.unlink, missing_ok=True)
            return
        model_dir = self._artifacts_dir / descriptor.normalized_name
        if model_dir.exists():
            await asyncio.to_thread(shutil.rmtree, model_dir, ignore_errors=True)
            logger.debug(f"Removed {model_dir}")
