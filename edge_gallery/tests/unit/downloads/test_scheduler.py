"""Unit tests for DownloadScheduler."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from edge_gallery.catalog import ModelDescriptor
from edge_gallery.downloads import (
    AppLifecycle,
    DownloadScheduler,
    DownloadStatus,
    DownloadStatusType,
    JobNotFoundError,
    JobState,
    JobStore,
    SchedulerConfig,
)

TERMINAL = (
    DownloadStatusType.SUCCEEDED,
    DownloadStatusType.FAILED,
    DownloadStatusType.NOT_DOWNLOADED,
)


@pytest.fixture
def scheduler(store: JobStore, fake_worker, mock_notifier: MagicMock) -> DownloadScheduler:
    """Scheduler over the fake worker, app in foreground."""
    return DownloadScheduler(
        SchedulerConfig(max_concurrent_downloads=2),
        store,
        fake_worker,
        notifier=mock_notifier,
    )


class TestSubmit:
    """Tests for submitting downloads."""

    @pytest.mark.asyncio
    async def test_success_flow(
        self, scheduler: DownloadScheduler, fake_worker, store: JobStore, descriptor: ModelDescriptor
    ) -> None:
        """Progress then a single SUCCEEDED event; the job leaves the store."""
        events: list[DownloadStatus] = []
        handle = await scheduler.submit(descriptor, on_status=events.append)
        await fake_worker.started_event(descriptor.name).wait()

        assert scheduler.is_downloading(descriptor.name)
        fake_worker.gate(descriptor.name).set()
        job = await handle.wait()

        assert job.state == JobState.SUCCEEDED
        assert [e.status for e in events] == [
            DownloadStatusType.IN_PROGRESS,
            DownloadStatusType.IN_PROGRESS,
            DownloadStatusType.SUCCEEDED,
        ]
        assert events[0].received_bytes == descriptor.total_bytes // 2
        assert events[-1].received_bytes == descriptor.total_bytes
        assert store.find_by_model(descriptor.name) == []
        assert not scheduler.is_downloading(descriptor.name)

    @pytest.mark.asyncio
    async def test_success_reports_bytes_actually_received(
        self, scheduler: DownloadScheduler, fake_worker, descriptor: ModelDescriptor
    ) -> None:
        """The SUCCEEDED event carries the worker's last count, not the declared size."""
        fake_worker.complete_bytes[descriptor.name] = descriptor.total_bytes - 1
        events: list[DownloadStatus] = []
        handle = await scheduler.submit(descriptor, on_status=events.append)

        fake_worker.gate(descriptor.name).set()
        await handle.wait()

        assert events[-1].status == DownloadStatusType.SUCCEEDED
        assert events[-1].received_bytes == descriptor.total_bytes - 1

    @pytest.mark.asyncio
    async def test_token_reaches_worker_but_not_store(
        self, scheduler: DownloadScheduler, fake_worker, data_dir, descriptor: ModelDescriptor
    ) -> None:
        """The access token is handed to the worker and never persisted."""
        handle = await scheduler.submit(descriptor, access_token="hf_secret")
        await fake_worker.started_event(descriptor.name).wait()

        assert fake_worker.calls[0][1] == "hf_secret"
        assert "hf_secret" not in (data_dir / "download_jobs.json").read_text()

        fake_worker.gate(descriptor.name).set()
        await handle.wait()

    @pytest.mark.asyncio
    async def test_resubmit_replaces_existing_job(
        self, scheduler: DownloadScheduler, fake_worker, store: JobStore, descriptor: ModelDescriptor
    ) -> None:
        """Submitting the same model again cancels the first job."""
        first_events: list[DownloadStatus] = []
        first = await scheduler.submit(descriptor, on_status=first_events.append)
        await fake_worker.started_event(descriptor.name).wait()

        second = await scheduler.submit(descriptor)

        first_job = await first.wait()
        assert first_job.state == JobState.CANCELLED
        assert [e.status for e in first_events if e.status in TERMINAL] == [
            DownloadStatusType.NOT_DOWNLOADED
        ]
        assert [j.job_id for j in store.find_by_model(descriptor.name)] == [second.job_id]

        fake_worker.gate(descriptor.name).set()
        assert (await second.wait()).state == JobState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_failure_reported_once(
        self,
        scheduler: DownloadScheduler,
        fake_worker,
        descriptor: ModelDescriptor,
        download_failure: Exception,
    ) -> None:
        """A worker failure yields exactly one FAILED event with its message."""
        events: list[DownloadStatus] = []
        fake_worker.failures[descriptor.name] = download_failure
        handle = await scheduler.submit(descriptor, on_status=events.append)
        fake_worker.gate(descriptor.name).set()

        job = await handle.wait()
        await scheduler.cancel(descriptor.name)

        assert job.state == JobState.FAILED
        terminal = [e for e in events if e.status in TERMINAL]
        assert len(terminal) == 1
        assert terminal[0].status == DownloadStatusType.FAILED
        assert terminal[0].error_message == "HTTP error code: 404"

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_job(
        self, scheduler: DownloadScheduler, fake_worker, descriptor: ModelDescriptor
    ) -> None:
        """A raising listener is logged and the job still completes."""

        def bad_listener(status: DownloadStatus) -> None:
            raise RuntimeError("boom")

        handle = await scheduler.submit(descriptor, on_status=bad_listener)
        fake_worker.gate(descriptor.name).set()

        assert (await handle.wait()).state == JobState.SUCCEEDED


class TestCancel:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_reports_not_downloaded(
        self, scheduler: DownloadScheduler, fake_worker, store: JobStore, descriptor: ModelDescriptor
    ) -> None:
        """Cancelling a running job ends it as NOT_DOWNLOADED."""
        events: list[DownloadStatus] = []
        handle = await scheduler.submit(descriptor, on_status=events.append)
        await fake_worker.started_event(descriptor.name).wait()

        await scheduler.cancel(descriptor.name)

        assert (await handle.wait()).state == JobState.CANCELLED
        assert events[-1].status == DownloadStatusType.NOT_DOWNLOADED
        assert store.find_by_model(descriptor.name) == []

    @pytest.mark.asyncio
    async def test_cancel_queued_job(
        self, store: JobStore, fake_worker, mock_notifier: MagicMock, make_descriptor
    ) -> None:
        """A job still waiting for a slot is cancelled without running."""
        scheduler = DownloadScheduler(
            SchedulerConfig(max_concurrent_downloads=1), store, fake_worker, mock_notifier
        )
        first, second = make_descriptor("First"), make_descriptor("Second")
        await scheduler.submit(first)
        await fake_worker.started_event("First").wait()
        queued = await scheduler.submit(second)

        await scheduler.cancel("Second")

        assert (await queued.wait()).state == JobState.CANCELLED
        assert [call[0].model_name for call in fake_worker.calls] == ["First"]

        fake_worker.gate("First").set()
        await scheduler.join()

    @pytest.mark.asyncio
    async def test_cancel_all_empty_returns(self, scheduler: DownloadScheduler) -> None:
        """Cancelling an empty list completes immediately."""
        await asyncio.wait_for(scheduler.cancel_all([]), timeout=1)

    @pytest.mark.asyncio
    async def test_cancel_all(
        self, scheduler: DownloadScheduler, fake_worker, make_descriptor
    ) -> None:
        """Every named model's job is cancelled."""
        handles = [await scheduler.submit(make_descriptor(n)) for n in ("A", "B")]

        await scheduler.cancel_all(["A", "B"])

        for handle in handles:
            assert (await handle.wait()).state == JobState.CANCELLED
        assert scheduler.list_active_or_queued() == []

    def test_observe_unknown_job(self, scheduler: DownloadScheduler) -> None:
        """Observing a job that is not live raises JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            scheduler.observe("missing", lambda status: None)


class TestQueue:
    """Tests for concurrency and listing."""

    @pytest.mark.asyncio
    async def test_list_active_or_queued(
        self, store: JobStore, fake_worker, mock_notifier: MagicMock, make_descriptor
    ) -> None:
        """Running and queued jobs are both listed."""
        scheduler = DownloadScheduler(
            SchedulerConfig(max_concurrent_downloads=1), store, fake_worker, mock_notifier
        )
        await scheduler.submit(make_descriptor("A"))
        await fake_worker.started_event("A").wait()
        await scheduler.submit(make_descriptor("B"))

        listed = scheduler.list_active_or_queued()

        assert [info.model_name for info in listed] == ["A", "B"]
        assert store.find_by_model("B")[0].state == JobState.ENQUEUED

        fake_worker.gate("A").set()
        fake_worker.gate("B").set()
        await scheduler.join()
        assert scheduler.list_active_or_queued() == []

    @pytest.mark.asyncio
    async def test_observe_live_job(
        self, scheduler: DownloadScheduler, fake_worker, descriptor: ModelDescriptor
    ) -> None:
        """An observer added later receives the terminal event."""
        handle = await scheduler.submit(descriptor)
        events: list[DownloadStatus] = []
        scheduler.observe(handle.job_id, events.append)

        fake_worker.gate(descriptor.name).set()
        await handle.wait()

        assert events[-1].status == DownloadStatusType.SUCCEEDED


class TestNotifications:
    """Tests for background notifications."""

    @pytest.mark.asyncio
    async def test_no_notification_in_foreground(
        self, scheduler: DownloadScheduler, fake_worker, mock_notifier: MagicMock, descriptor: ModelDescriptor
    ) -> None:
        """Nothing is posted while the app is in the foreground."""
        handle = await scheduler.submit(descriptor)
        fake_worker.gate(descriptor.name).set()
        await handle.wait()

        mock_notifier.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_notification_in_background(
        self, store: JobStore, fake_worker, mock_notifier: MagicMock, descriptor: ModelDescriptor
    ) -> None:
        """A background success posts a notification for the model."""
        scheduler = DownloadScheduler(
            SchedulerConfig(),
            store,
            fake_worker,
            notifier=mock_notifier,
            lifecycle=AppLifecycle(in_foreground=False),
        )
        handle = await scheduler.submit(descriptor)
        fake_worker.gate(descriptor.name).set()
        await handle.wait()

        mock_notifier.notify.assert_called_once()
        title, _, model_name = mock_notifier.notify.call_args[0]
        assert title == "Download succeeded"
        assert model_name == descriptor.name

    @pytest.mark.asyncio
    async def test_cancel_never_notifies(
        self, store: JobStore, fake_worker, mock_notifier: MagicMock, descriptor: ModelDescriptor
    ) -> None:
        """Cancellation is silent even in the background."""
        scheduler = DownloadScheduler(
            SchedulerConfig(),
            store,
            fake_worker,
            notifier=mock_notifier,
            lifecycle=AppLifecycle(in_foreground=False),
        )
        await scheduler.submit(descriptor)
        await fake_worker.started_event(descriptor.name).wait()

        await scheduler.cancel(descriptor.name)

        mock_notifier.notify.assert_not_called()


class TestShutdown:
    """Tests for process shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_keeps_jobs_for_next_process(
        self, scheduler: DownloadScheduler, fake_worker, data_dir, descriptor: ModelDescriptor
    ) -> None:
        """In-flight jobs stay in the store and are listed after restart."""
        events: list[DownloadStatus] = []
        await scheduler.submit(descriptor, on_status=events.append)
        await fake_worker.started_event(descriptor.name).wait()

        await scheduler.shutdown()

        assert all(e.status not in TERMINAL for e in events)
        restarted = DownloadScheduler(SchedulerConfig(), JobStore(data_dir), fake_worker)
        assert [i.model_name for i in restarted.list_active_or_queued()] == [descriptor.name]
        assert restarted.is_downloading(descriptor.name)
