"""Data models for the downloads module."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..catalog.models import ModelDataFile, ModelDescriptor
from ..utils.misc import now_ms

TAG_PREFIX = "modelName:"


def model_tag(model_name: str) -> str:
    return f"{TAG_PREFIX}{model_name}"


class JobState(Enum):
    """Lifecycle of a persisted download job."""

    ENQUEUED = "enqueued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


class DownloadStatusType(Enum):
    """Model-level download status shown to callers."""

    NOT_DOWNLOADED = "not_downloaded"
    PARTIALLY_DOWNLOADED = "partially_downloaded"
    IN_PROGRESS = "in_progress"
    UNZIPPING = "unzipping"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class DownloadStatus:
    status: DownloadStatusType
    total_bytes: int = 0
    received_bytes: int = 0
    error_message: str = ""
    bytes_per_second: int = 0
    remaining_ms: int = 0


@dataclass(frozen=True)
class DownloadRequest:
    """
    Everything the worker needs to fetch a model.

    Persisted with the job so it can be re-run after a restart.
    Credentials are never part of it.
    """

    model_name: str
    url: str
    model_dir: str
    commit_hash: str
    file_name: str
    total_bytes: int
    is_zip: bool = False
    unzip_dir: str = ""
    extra_files: tuple[ModelDataFile, ...] = ()

    @classmethod
    def from_descriptor(cls, descriptor: ModelDescriptor) -> DownloadRequest:
        return cls(
            model_name=descriptor.name,
            url=descriptor.url,
            model_dir=descriptor.normalized_name,
            commit_hash=descriptor.commit_hash,
            file_name=descriptor.download_file_name,
            total_bytes=descriptor.total_bytes,
            is_zip=descriptor.is_zip,
            unzip_dir=descriptor.unzip_dir,
            extra_files=descriptor.extra_data_files,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "url": self.url,
            "model_dir": self.model_dir,
            "commit_hash": self.commit_hash,
            "file_name": self.file_name,
            "total_bytes": self.total_bytes,
            "is_zip": self.is_zip,
            "unzip_dir": self.unzip_dir,
            "extra_files": [f.to_dict() for f in self.extra_files],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DownloadRequest:
        return cls(
            model_name=data["model_name"],
            url=data["url"],
            model_dir=data["model_dir"],
            commit_hash=data["commit_hash"],
            file_name=data["file_name"],
            total_bytes=int(data["total_bytes"]),
            is_zip=bool(data.get("is_zip", False)),
            unzip_dir=data.get("unzip_dir", ""),
            extra_files=tuple(
                ModelDataFile.from_dict(f) for f in data.get("extra_files", [])
            ),
        )


@dataclass(frozen=True)
class DownloadJob:
    """A persisted unit of download work."""

    job_id: str
    model_name: str
    request: DownloadRequest
    state: JobState = JobState.ENQUEUED
    tags: tuple[str, ...] = ()
    received_bytes: int = 0
    bytes_per_second: int = 0
    remaining_ms: int = 0
    unzipping: bool = False
    error_message: str = ""
    created_at_ms: int = field(default_factory=now_ms)

    @classmethod
    def create(cls, request: DownloadRequest) -> DownloadJob:
        return cls(
            job_id=str(uuid.uuid4()),
            model_name=request.model_name,
            request=request,
            tags=(model_tag(request.model_name),),
        )

    @property
    def total_bytes(self) -> int:
        return self.request.total_bytes

    def with_changes(self, **changes: Any) -> DownloadJob:
        return replace(self, **changes)

    def to_status(self) -> DownloadStatus:
        """Map job state onto the model-level status callers observe."""
        if self.state == JobState.SUCCEEDED:
            status = DownloadStatusType.SUCCEEDED
        elif self.state == JobState.FAILED:
            status = DownloadStatusType.FAILED
        elif self.state == JobState.CANCELLED:
            status = DownloadStatusType.NOT_DOWNLOADED
        elif self.unzipping:
            status = DownloadStatusType.UNZIPPING
        else:
            status = DownloadStatusType.IN_PROGRESS
        return DownloadStatus(
            status=status,
            total_bytes=self.total_bytes,
            received_bytes=self.received_bytes,
            error_message=self.error_message,
            bytes_per_second=self.bytes_per_second,
            remaining_ms=self.remaining_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "model_name": self.model_name,
            "request": self.request.to_dict(),
            "state": self.state.value,
            "tags": list(self.tags),
            "received_bytes": self.received_bytes,
            "bytes_per_second": self.bytes_per_second,
            "remaining_ms": self.remaining_ms,
            "unzipping": self.unzipping,
            "error_message": self.error_message,
            "created_at_ms": self.created_at_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DownloadJob:
        return cls(
            job_id=data["job_id"],
            model_name=data["model_name"],
            request=DownloadRequest.from_dict(data["request"]),
            state=JobState(data["state"]),
            tags=tuple(data.get("tags", [])),
            received_bytes=int(data.get("received_bytes", 0)),
            bytes_per_second=int(data.get("bytes_per_second", 0)),
            remaining_ms=int(data.get("remaining_ms", 0)),
            unzipping=bool(data.get("unzipping", False)),
            error_message=data.get("error_message", ""),
            created_at_ms=int(data.get("created_at_ms", 0)),
        )


@dataclass(frozen=True)
class DownloadProgress:
    """Progress sample emitted by the worker."""

    received_bytes: int
    total_bytes: int
    bytes_per_second: int
    remaining_ms: int


@dataclass(frozen=True)
class JobInfo:
    model_name: str
    job_id: str


@dataclass
class JobHandle:
    """Returned by submit; ``wait()`` resolves with the terminal job."""

    job_id: str
    model_name: str
    _done: asyncio.Future[DownloadJob] = field(repr=False)

    async def wait(self) -> DownloadJob:
        return await asyncio.shield(self._done)
