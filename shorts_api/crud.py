# file: shorts_api/crud.py

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from shorts_api import models
from shorts_api.database import create_session_factory
from shorts_api.exceptions import DuplicateJobId
from shorts_api.job_store import JobStore, format_log_entry, merge_job_fields
from shorts_api.schemas import Job, JobMetadata

logger = logging.getLogger(__name__)


def record_to_job(record: models.JobRecord) -> Job:
    return Job(
        id=record.id,
        topic=record.topic,
        duration=record.duration,
        status=record.status,
        progress=record.progress,
        created_at=record.created_at,
        completed_at=record.completed_at,
        video_path=record.video_path,
        error=record.error,
        logs=list(record.logs or []),
        metadata=JobMetadata.model_validate(record.job_metadata or {}),
    )


def _write_job_to_record(job: Job, record: models.JobRecord) -> None:
    """Copies mutable fields back. JSON columns get fresh objects so the change is tracked."""
    record.status = job.status
    record.progress = job.progress
    record.completed_at = job.completed_at
    record.video_path = job.video_path
    record.error = job.error
    record.logs = list(job.logs)
    record.job_metadata = job.metadata.model_dump(mode="json", exclude_none=True)


class SqlJobStore(JobStore):
    """
    SQLAlchemy-backed store, shared by the API process and arq workers.
    Each operation runs in its own short transaction.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self._lock = asyncio.Lock()

    async def create(self, job: Job) -> Job:
        async with self._lock, self.session_factory() as db:
            existing = await db.get(models.JobRecord, job.id)
            if existing is not None:
                raise DuplicateJobId(job.id)
            record = models.JobRecord(
                id=job.id,
                topic=job.topic,
                duration=job.duration,
                created_at=job.created_at,
            )
            _write_job_to_record(job, record)
            db.add(record)
            await db.commit()
            logger.info(f"Stored new job record {job.id}")
            return job.model_copy(deep=True)

    async def get(self, job_id: str) -> Optional[Job]:
        async with self.session_factory() as db:
            record = await db.get(models.JobRecord, job_id)
            return record_to_job(record) if record else None

    async def get_all(self) -> List[Job]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(models.JobRecord).order_by(models.JobRecord.created_at.desc())
            )
            return [record_to_job(r) for r in result.scalars().all()]

    async def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        async with self._lock, self.session_factory() as db:
            record = await db.get(models.JobRecord, job_id)
            if record is None:
                return
            merged = merge_job_fields(record_to_job(record), fields)
            _write_job_to_record(merged, record)
            await db.commit()

    async def add_log(self, job_id: str, text: str) -> None:
        async with self._lock, self.session_factory() as db:
            record = await db.get(models.JobRecord, job_id)
            if record is None:
                return
            record.logs = list(record.logs or []) + [format_log_entry(text)]
            await db.commit()

    async def delete(self, job_id: str) -> None:
        async with self._lock, self.session_factory() as db:
            record = await db.get(models.JobRecord, job_id)
            if record is None:
                return
            await db.delete(record)
            await db.commit()
            logger.info(f"Deleted job record {job_id}")

    async def close(self) -> None:
        await self.engine.dispose()
