import enum

from sqlalchemy import JSON, Column, DateTime, Enum, Integer, String, Text

from shorts_api.database import Base


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobRecord(Base):
    """Row backing SqlJobStore. `logs` and `job_metadata` are JSON documents."""

    __tablename__ = "jobs"
    id = Column(String(64), primary_key=True, index=True)
    topic = Column(Text, nullable=False)
    duration = Column(Integer, nullable=False)
    status = Column(Enum(JobStatus), default=JobStatus.PENDING, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    video_path = Column(String(500), nullable=True)
    error = Column(Text, nullable=True)
    logs = Column(JSON, nullable=False, default=list)
    # "metadata" is reserved on declarative classes
    job_metadata = Column("metadata", JSON, nullable=False, default=dict)
