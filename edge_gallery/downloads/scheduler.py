"""Download scheduling: one persisted job per model, bounded concurrency."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..catalog.models import ModelDescriptor
from ..utils.misc import invoke_callback, now_ms
from .errors import DownloadError, JobNotFoundError
from .job_store import JobStore
from .models import (
    DownloadJob,
    DownloadProgress,
    DownloadRequest,
    DownloadStatus,
    JobHandle,
    JobInfo,
    JobState,
)
from .notifier import AppLifecycle, DownloadNotifier, LoggingNotifier
from .worker import DownloadWorker

logger = logging.getLogger(__name__)

StatusListener = Callable[[DownloadStatus], Awaitable[None] | None]

ACTIVE_STATES = (JobState.ENQUEUED, JobState.RUNNING)


@dataclass
class SchedulerConfig:
    """Configuration for download scheduler."""

    max_concurrent_downloads: int = 2


@dataclass
class _ActiveJob:
    """In-memory companion of a persisted job while its task is alive."""

    job: DownloadJob
    done: asyncio.Future[DownloadJob]
    listeners: list[StatusListener] = field(default_factory=list)
    task: asyncio.Task | None = None
    terminal_sent: bool = False


class DownloadScheduler:
    """
    Run model downloads as persisted jobs.

    Guarantees:
    - At most one active or queued job per model name; submitting again
      cancels the previous job first
    - Listeners see non-decreasing progress and exactly one terminal
      event (succeeded, failed, or cancelled as NOT_DOWNLOADED)
    - Jobs left in the store by a previous process are listed by
      list_active_or_queued() so the caller can re-submit them
    """

    def __init__(
        self,
        config: SchedulerConfig,
        store: JobStore,
        worker: DownloadWorker,
        notifier: DownloadNotifier | None = None,
        lifecycle: AppLifecycle | None = None,
    ):
        """
        Initialize scheduler.

        Args:
            config: Scheduler configuration
            store: Persistent job store
            worker: Worker that performs transfers
            notifier: Local notification sink (defaults to logging)
            lifecycle: Foreground flag consulted before notifying
        """
        self._config = config
        self._store = store
        self._worker = worker
        self._notifier = notifier or LoggingNotifier()
        self._lifecycle = lifecycle or AppLifecycle()
        self._semaphore = asyncio.Semaphore(config.max_concurrent_downloads)
        self._lock = asyncio.Lock()
        self._active: dict[str, _ActiveJob] = {}
        self._shutting_down = False

    @property
    def lifecycle(self) -> AppLifecycle:
        return self._lifecycle

    async def submit(
        self,
        descriptor: ModelDescriptor,
        access_token: str | None = None,
        on_status: StatusListener | None = None,
    ) -> JobHandle:
        """
        Enqueue a download, replacing any existing job for the same model.

        Args:
            descriptor: Model to download
            access_token: Bearer token for gated hosts (never persisted)
            on_status: Listener for status events of the new job

        Returns:
            Handle whose wait() resolves with the terminal job
        """
        async with self._lock:
            await self._cancel_model(descriptor.name)

            job = DownloadJob.create(DownloadRequest.from_descriptor(descriptor))
            self._store.put(job)
            self._store.record_start_time(descriptor.name, now_ms())

            active = _ActiveJob(
                job=job,
                done=asyncio.get_running_loop().create_future(),
                listeners=[on_status] if on_status else [],
            )
            self._active[job.job_id] = active
            active.task = asyncio.create_task(
                self._run(active, access_token), name=f"download:{descriptor.name}"
            )
            logger.info(f"Enqueued download of {descriptor.name} (job {job.job_id})")

        return JobHandle(job_id=job.job_id, model_name=descriptor.name, _done=active.done)

    def observe(self, job_id: str, on_update: StatusListener) -> Callable[[], None]:
        """
        Subscribe to status events of a live job.

        Returns:
            Callable that removes the listener

        Raises:
            JobNotFoundError: If the job is not running in this process
        """
        active = self._active.get(job_id)
        if active is None:
            raise JobNotFoundError(f"No live job {job_id}")
        active.listeners.append(on_update)

        def _unsubscribe() -> None:
            if on_update in active.listeners:
                active.listeners.remove(on_update)

        return _unsubscribe

    async def cancel(self, model_name: str) -> None:
        """Cancel every job tagged with the model; returns once they are terminal."""
        async with self._lock:
            await self._cancel_model(model_name)

    async def cancel_all(self, model_names: list[str]) -> None:
        """Cancel jobs for each model; completes immediately for an empty list."""
        if not model_names:
            return
        async with self._lock:
            for model_name in model_names:
                await self._cancel_model(model_name)

    def list_active_or_queued(self) -> list[JobInfo]:
        """Jobs not yet terminal, including those left by a previous process."""
        return [
            JobInfo(model_name=job.model_name, job_id=job.job_id)
            for job in self._store.list_by_states(ACTIVE_STATES)
        ]

    def is_downloading(self, model_name: str) -> bool:
        return any(job.state in ACTIVE_STATES for job in self._store.find_by_model(model_name))

    async def join(self) -> None:
        """Wait until every live job has reached a terminal state."""
        while self._active:
            await asyncio.gather(
                *(asyncio.shield(a.done) for a in list(self._active.values())),
                return_exceptions=True,
            )

    async def shutdown(self) -> None:
        """
        Stop in-flight jobs without finishing them.

        Their store entries stay, so the next process can resume them.
        """
        self._shutting_down = True
        tasks = [a.task for a in self._active.values() if a.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._active.clear()
        logger.info(f"Download scheduler stopped ({len(tasks)} jobs left resumable)")

    # --- Internals ---

    async def _cancel_model(self, model_name: str) -> None:
        actives = [a for a in self._active.values() if a.job.model_name == model_name]
        for active in actives:
            if active.task is not None:
                active.task.cancel()
        if actives:
            await asyncio.gather(
                *(a.task for a in actives if a.task is not None), return_exceptions=True
            )
            for active in actives:
                # Task cancelled before it ever ran
                if not active.terminal_sent:
                    await self._finish(active, active.job.with_changes(state=JobState.CANCELLED))
            logger.info(f"Cancelled download of {model_name}")

        for job in self._store.find_by_model(model_name):
            if job.job_id not in self._active:
                self._store.remove(job.job_id)
                logger.info(f"Removed stale job {job.job_id} for {model_name}")

    async def _run(self, active: _ActiveJob, access_token: str | None) -> None:
        model_name = active.job.model_name
        try:
            async with self._semaphore:
                active.job = active.job.with_changes(state=JobState.RUNNING)
                self._store.put(active.job)
                logger.info(f"Download of {model_name} started")
                await self._worker.download(
                    active.job.request,
                    access_token=access_token,
                    on_progress=lambda p: self._on_progress(active, p),
                    on_unzip=lambda: self._on_unzip(active),
                )
        except asyncio.CancelledError:
            if not self._shutting_down:
                await self._finish(
                    active,
                    active.job.with_changes(state=JobState.CANCELLED, error_message=""),
                )
            raise
        except DownloadError as e:
            logger.error(f"Download of {model_name} failed: {e}")
            await self._finish(
                active, active.job.with_changes(state=JobState.FAILED, error_message=str(e))
            )
        except Exception as e:
            logger.error(f"Unexpected error downloading {model_name}: {e}", exc_info=True)
            await self._finish(
                active, active.job.with_changes(state=JobState.FAILED, error_message=str(e))
            )
        else:
            await self._finish(
                active,
                active.job.with_changes(
                    state=JobState.SUCCEEDED,
                    remaining_ms=0,
                    unzipping=False,
                ),
            )

    async def _on_progress(self, active: _ActiveJob, progress: DownloadProgress) -> None:
        if active.terminal_sent or progress.received_bytes <= active.job.received_bytes:
            return
        active.job = active.job.with_changes(
            received_bytes=progress.received_bytes,
            bytes_per_second=progress.bytes_per_second,
            remaining_ms=progress.remaining_ms,
        )
        self._store.put(active.job)
        await self._publish(active, active.job.to_status())

    async def _on_unzip(self, active: _ActiveJob) -> None:
        if active.terminal_sent:
            return
        active.job = active.job.with_changes(unzipping=True)
        self._store.put(active.job)
        await self._publish(active, active.job.to_status())

    async def _finish(self, active: _ActiveJob, job: DownloadJob) -> None:
        if active.terminal_sent:
            return
        active.terminal_sent = True
        active.job = job
        self._active.pop(job.job_id, None)
        self._store.remove(job.job_id)

        started = self._store.pop_start_time(job.model_name)
        if started is not None:
            logger.info(
                f"Download of {job.model_name} {job.state.value} after {now_ms() - started} ms"
            )

        if job.state != JobState.CANCELLED and not self._lifecycle.in_foreground:
            if job.state == JobState.SUCCEEDED:
                self._notifier.notify(
                    "Download succeeded",
                    f"{job.model_name} is ready to use",
                    job.model_name,
                )
            else:
                self._notifier.notify(
                    "Download failed",
                    f"{job.model_name}: {job.error_message}",
                    job.model_name,
                )

        await self._publish(active, job.to_status())
        if not active.done.done():
            active.done.set_result(job)

    async def _publish(self, active: _ActiveJob, status: DownloadStatus) -> None:
        for listener in list(active.listeners):
            try:
                await invoke_callback(listener, status)
            except Exception as e:
                logger.error(
                    f"Download listener for {active.job.model_name} raised: {e}",
                    exc_info=True,
                )
