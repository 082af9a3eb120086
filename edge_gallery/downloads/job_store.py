"""Persistent store of download jobs and download start times."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from ..utils.misc import write_json_atomic
from .models import DownloadJob, JobState, model_tag

logger = logging.getLogger(__name__)

JOBS_FILENAME = "download_jobs.json"


class JobStore:
    """
    Durable record of download jobs.

    File structure:
        {
          "jobs": {"<job_id>": {...job...}, ...},
          "start_times": {"<model name>": <epoch ms>, ...}
        }

    Every mutation rewrites the file atomically, so the store survives a
    process restart and a crash mid-write.
    """

    def __init__(self, data_dir: Path):
        """
        Initialize job store.

        Args:
            data_dir: Directory holding the jobs file
        """
        self._path = data_dir / JOBS_FILENAME
        self._jobs: dict[str, DownloadJob] = {}
        self._start_times: dict[str, int] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path) as f:
                data = json.load(f)
            self._jobs = {
                job_id: DownloadJob.from_dict(raw)
                for job_id, raw in data.get("jobs", {}).items()
            }
            self._start_times = {k: int(v) for k, v in data.get("start_times", {}).items()}
            logger.info(f"Loaded {len(self._jobs)} download jobs from {self._path}")
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Corrupted job store {self._path}, starting empty: {e}")
            self._jobs = {}
            self._start_times = {}

    def _flush(self) -> None:
        write_json_atomic(
            self._path,
            {
                "jobs": {job_id: job.to_dict() for job_id, job in self._jobs.items()},
                "start_times": self._start_times,
            },
        )

    # --- Jobs ---

    def put(self, job: DownloadJob) -> None:
        self._jobs[job.job_id] = job
        self._flush()

    def get(self, job_id: str) -> DownloadJob | None:
        return self._jobs.get(job_id)

    def remove(self, job_id: str) -> bool:
        """
        Remove a job.

        Returns:
            True if removed, False if not found
        """
        if self._jobs.pop(job_id, None) is None:
            return False
        self._flush()
        return True

    def find_by_tag(self, tag: str) -> list[DownloadJob]:
        return [job for job in self._jobs.values() if tag in job.tags]

    def find_by_model(self, model_name: str) -> list[DownloadJob]:
        return self.find_by_tag(model_tag(model_name))

    def list_by_states(self, states: Iterable[JobState]) -> list[DownloadJob]:
        wanted = set(states)
        return sorted(
            (job for job in self._jobs.values() if job.state in wanted),
            key=lambda job: job.created_at_ms,
        )

    # --- Start times ---

    def record_start_time(self, model_name: str, started_at_ms: int) -> None:
        self._start_times[model_name] = started_at_ms
        self._flush()

    def get_start_time(self, model_name: str) -> int | None:
        return self._start_times.get(model_name)

    def pop_start_time(self, model_name: str) -> int | None:
        started = self._start_times.pop(model_name, None)
        if started is not None:
            self._flush()
        return started
