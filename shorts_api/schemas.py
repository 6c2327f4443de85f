from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shorts_api.models import JobStatus


class _CamelModel(BaseModel):
    # Snake case in Python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Job Schemas ---
class Scene(_CamelModel):
    index: int = Field(..., ge=1)
    text: str
    image_prompt: str
    duration: float
    image_path: Optional[str] = None


class JobMetadata(_CamelModel):
    script: Optional[str] = None
    scenes: Optional[List[Scene]] = None
    audio_path: Optional[str] = None
    image_paths: Optional[List[str]] = None
    subtitle_path: Optional[str] = None


class Job(_CamelModel):
    id: str
    topic: str
    duration: int
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime
    completed_at: Optional[datetime] = None
    video_path: Optional[str] = None
    error: Optional[str] = None
    logs: List[str] = []
    metadata: JobMetadata = Field(default_factory=JobMetadata)


class JobCreateRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    duration: int = Field(..., gt=0, description="Requested video length in seconds")

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Topic cannot be blank.")
        return value.strip()


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
