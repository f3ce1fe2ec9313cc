import base64
import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, ValidationInfo, field_serializer, field_validator, model_validator


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    # Reported for ids with no readable record; never stored
    UNKNOWN = "unknown"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)

_ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


# Validation context flag for records whose file content is base64 text
# outside of a JSON document, e.g. DynamoDB items
ENCODED_CONTENT = {"encoded_content": True}


class FileBlob(BaseModel):
    name: str = Field(..., min_length=1)
    content: bytes = b""
    type: str = Field("", description="Declared media type")
    size: int = Field(0, ge=0, description="Defaults to the content length")

    class Config:
        frozen = True

    @field_validator("content", mode="before")
    @classmethod
    def decode_content(cls, value, info: ValidationInfo):
        if not isinstance(value, str):
            return value
        # Stored records carry the payload as base64; anything else is plain text
        if info.mode == "json" or (info.context or {}).get("encoded_content"):
            return base64.b64decode(value)
        return value.encode("utf-8")

    @model_validator(mode="after")
    def default_size(self) -> "FileBlob":
        if "size" not in self.model_fields_set:
            object.__setattr__(self, "size", len(self.content))
        return self

    @field_serializer("content", when_used="json")
    def encode_content(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")


class Job(BaseModel):
    job_id: str = Field(..., description="Unique job identifier (UUID4)")
    status: JobStatus = JobStatus.PENDING
    output: Optional[str] = None
    error: Optional[str] = None
    files: List[FileBlob] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    expires_at: Optional[int] = Field(None, description="Epoch seconds after which the record may be purged")

    @field_validator("status")
    @classmethod
    def never_store_unknown(cls, value: JobStatus) -> JobStatus:
        if value == JobStatus.UNKNOWN:
            raise ValueError("'unknown' is not a storable job status")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: JobStatus) -> None:
        """
        Moves the job to `status`, refusing anything that would leave a
        terminal state or step backwards.
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"Illegal job transition {self.status.value} -> {status.value}")
        self.status = status
        if status in TERMINAL_STATUSES:
            self.completed_at = datetime.now(timezone.utc)

    def set_retention(self, days: int) -> None:
        self.expires_at = int(time.time()) + (days * 24 * 60 * 60)

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at


class SubmitResult(BaseModel):
    success: bool
    job_id: Optional[str] = None
    error: Optional[str] = None


class JobStatusView(BaseModel):
    status: JobStatus
    output: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: Optional[Job]) -> "JobStatusView":
        if job is None:
            return cls(status=JobStatus.UNKNOWN, error="Job not found")
        return cls(status=job.status, output=job.output, error=job.error)
