"""
Job Data Models
Represents a video generation job and the events streamed to its observers
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime
import uuid


class JobStatus(str, Enum):
    """Job generation status"""
    PENDING = "pending"
    PROGRESS = "progress"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.FINISHED, JobStatus.CANCELLED, JobStatus.FAILED})


class JobCreate(BaseModel):
    """Request model for creating a new job"""
    prompt: Optional[str] = Field(None, description="What the video should be about")


class JobAccepted(BaseModel):
    """Response returned as soon as a job is scheduled"""
    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId")
    message: str = "Video generation started."


class VideoResult(BaseModel):
    """Final artifact of a finished job"""
    final_video_path: str
    output_dir: str
    video_url: Optional[str] = None
    title: str
    plan: Dict[str, Any] = Field(default_factory=dict)


class JobEvent(BaseModel):
    """One message on a job's progress stream"""
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    status: Optional[JobStatus] = None
    video_data: Optional[VideoResult] = Field(None, alias="videoData")
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not None and self.status.is_terminal

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with camel-cased keys, omitting unset fields"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Job(BaseModel):
    """Complete job model with all fields"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    prompt: str = ""
    status: JobStatus = JobStatus.PENDING
    logs: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    video_data: Optional[VideoResult] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None


class JobSummary(BaseModel):
    """Job snapshot without the full log buffer"""
    id: str
    status: JobStatus
    log_count: int
    error_message: Optional[str] = None
    video_data: Optional[VideoResult] = None
    created_at: datetime
    finished_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobSummary":
        return cls(
            id=job.id,
            status=job.status,
            log_count=len(job.logs),
            error_message=job.error_message,
            video_data=job.video_data,
            created_at=job.created_at,
            finished_at=job.finished_at,
        )
