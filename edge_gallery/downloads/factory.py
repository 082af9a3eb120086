"""Factory functions for creating download components."""

from __future__ import annotations

from pathlib import Path

import httpx

from .job_store import JobStore
from .notifier import AppLifecycle, DownloadNotifier
from .scheduler import DownloadScheduler, SchedulerConfig
from .worker import DownloadWorker, WorkerConfig


def create_download_scheduler(
    data_dir: Path,
    artifacts_dir: Path,
    worker_config: WorkerConfig | None = None,
    scheduler_config: SchedulerConfig | None = None,
    notifier: DownloadNotifier | None = None,
    lifecycle: AppLifecycle | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DownloadScheduler:
    """
    Create a fully-wired DownloadScheduler.

    This is the main entry point for the downloads module.
    Handles all internal wiring of job store and worker.

    Args:
        data_dir: Directory for the persistent job store
        artifacts_dir: Root directory for downloaded model files
        worker_config: Optional custom worker config (uses defaults if None)
        scheduler_config: Optional custom scheduler config (uses defaults if None)
        notifier: Optional local notification sink
        lifecycle: Optional foreground flag shared with the host app
        transport: Optional httpx transport (tests)

    Returns:
        Ready-to-use DownloadScheduler

    Example:
        scheduler = create_download_scheduler(Path("./data"), Path("./models"))
        handle = await scheduler.submit(descriptor)
        job = await handle.wait()
    """
    store = JobStore(data_dir)
    worker = DownloadWorker(
        config=worker_config or WorkerConfig(),
        base_dir=artifacts_dir,
        transport=transport,
    )
    return DownloadScheduler(
        config=scheduler_config or SchedulerConfig(),
        store=store,
        worker=worker,
        notifier=notifier,
        lifecycle=lifecycle,
    )
