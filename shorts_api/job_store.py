# file: shorts_api/job_store.py
"""
Job Store: the registry of Job records.

The orchestrator is the only writer. Every backend applies updates through
`merge_job_fields`, so the record invariants live in one place:
  - id, topic, duration, created_at and logs never change through `update`
  - status, video_path, completed_at, error and progress are frozen once the
    job is terminal
  - progress never decreases
  - metadata is merged key by key, earlier stages' keys survive later updates
"""

import abc
import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from shorts_api.exceptions import DuplicateJobId
from shorts_api.schemas import Job, JobMetadata

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = {"id", "topic", "duration", "created_at", "logs"}
FROZEN_WHEN_TERMINAL = {"status", "progress", "video_path", "completed_at", "error"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_log_entry(text: str, at: Optional[datetime] = None) -> str:
    return f"[{(at or utcnow()).isoformat()}] {text}"


def _apply_field(data: Dict[str, Any], key: str, value: Any) -> Dict[str, Any]:
    """Returns a copy of `data` with one field applied. Raises on values a Job rejects."""
    updated = dict(data)
    if key == "metadata":
        if isinstance(value, JobMetadata):
            patch = value.model_dump(exclude_unset=True)
        else:
            patch = JobMetadata.model_validate(value or {}).model_dump(exclude_unset=True)
        updated["metadata"] = {**data["metadata"], **patch}
    elif key == "progress":
        updated["progress"] = max(data["progress"], min(100, max(0, int(value))))
    else:
        updated[key] = value
    return Job.model_validate(updated).model_dump()


def merge_job_fields(job: Job, fields: Dict[str, Any]) -> Job:
    """Returns a new Job with `fields` merged into `job`. Never raises: bad keys and values are skipped."""
    data = job.model_dump()
    for key, value in fields.items():
        if key in IMMUTABLE_FIELDS:
            logger.warning(f"Ignoring update of immutable field '{key}' on job {job.id}")
            continue
        if job.status.is_terminal and key in FROZEN_WHEN_TERMINAL:
            logger.warning(f"Ignoring update of '{key}' on terminal job {job.id} ({job.status.value})")
            continue
        if key not in data:
            logger.warning(f"Ignoring unknown field '{key}' on job {job.id}")
            continue
        try:
            data = _apply_field(data, key, value)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid value for '{key}' on job {job.id}: {e}")
    return Job.model_validate(data)


class JobStore(abc.ABC):
    """Interface every job store backend implements."""

    @abc.abstractmethod
    async def create(self, job: Job) -> Job:
        """Inserts a new record. Raises DuplicateJobId if the id is taken."""

    @abc.abstractmethod
    async def get(self, job_id: str) -> Optional[Job]:
        ...

    @abc.abstractmethod
    async def get_all(self) -> List[Job]:
        """All records, most recent first."""

    @abc.abstractmethod
    async def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        """Merges `fields` into the record. No-op if the id is absent."""

    @abc.abstractmethod
    async def add_log(self, job_id: str, text: str) -> None:
        """Appends a timestamped entry. No-op if the id is absent."""

    @abc.abstractmethod
    async def delete(self, job_id: str) -> None:
        ...

    async def close(self) -> None:
        pass


class InMemoryJobStore(JobStore):
    """Dict-backed store. Readers always receive copies."""

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    async def create(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateJobId(job.id)
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    async def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def get_all(self) -> List[Job]:
        with self._lock:
            jobs = [job.model_copy(deep=True) for job in self._jobs.values()]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    async def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            self._jobs[job_id] = merge_job_fields(job, copy.deepcopy(fields))

    async def add_log(self, job_id: str, text: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.logs.append(format_log_entry(text))

    async def delete(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)
