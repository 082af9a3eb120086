"""Download module: persisted jobs, resumable worker, scheduler."""

from .errors import (
    ArchiveExtractionError,
    DownloadError,
    HttpStatusError,
    InsufficientDiskSpaceError,
    JobNotFoundError,
    NetworkError,
    PartialArtifactError,
)
from .factory import create_download_scheduler
from .job_store import JobStore
from .models import (
    DownloadJob,
    DownloadProgress,
    DownloadRequest,
    DownloadStatus,
    DownloadStatusType,
    JobHandle,
    JobInfo,
    JobState,
    model_tag,
)
from .notifier import AppLifecycle, DownloadNotifier, LoggingNotifier
from .scheduler import DownloadScheduler, SchedulerConfig
from .worker import DownloadWorker, WorkerConfig, extract_zip, parse_content_range

__all__ = [
    # Factory (main entry point)
    "create_download_scheduler",
    # Errors
    "DownloadError",
    "NetworkError",
    "HttpStatusError",
    "PartialArtifactError",
    "InsufficientDiskSpaceError",
    "ArchiveExtractionError",
    "JobNotFoundError",
    # Models
    "DownloadJob",
    "DownloadProgress",
    "DownloadRequest",
    "DownloadStatus",
    "DownloadStatusType",
    "JobHandle",
    "JobInfo",
    "JobState",
    "model_tag",
    # Config
    "WorkerConfig",
    "SchedulerConfig",
    # Components (for advanced usage/testing)
    "JobStore",
    "DownloadWorker",
    "DownloadScheduler",
    "AppLifecycle",
    "DownloadNotifier",
    "LoggingNotifier",
    "extract_zip",
    "parse_content_range",
]
