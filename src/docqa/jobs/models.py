"""Job records for the ingestion queue."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentSubmission(BaseModel):
    """What a client hands to the submission boundary.

    Only the *shape* is checked here; whether the document exists or can be
    decoded is found out when a worker runs the job.
    """

    model_config = ConfigDict(frozen=True)

    location: str = Field(min_length=1)
    media_type: str | None = None
    document_id: str | None = None

    @field_validator("location")
    @classmethod
    def _strip_location(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location must not be blank")
        return value


class IngestionJob(BaseModel):
    """State of one ingestion job.

    Attributes
    ----------
    job_id:
        Identifier returned to the submitter.
    location:
        Path of the document to index.
    media_type:
        Declared media type, guessed from the extension when absent.
    document_id:
        Caller-supplied document identity; derived from content when absent.
    status:
        ``queued -> running -> completed | failed``. A running job whose
        lease expires goes back to ``queued`` for redelivery.
    deliveries:
        How many times a worker has claimed this job.
    worker_id:
        Worker currently (or last) holding the job.
    error_code / error_message:
        The error that failed the job, kept for diagnosis.
    chunk_count:
        Number of points written on completion.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: uuid4().hex)
    location: str
    media_type: str | None = None
    document_id: str | None = None
    status: JobStatus = JobStatus.QUEUED
    deliveries: int = 0
    worker_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    chunk_count: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_submission(cls, submission: DocumentSubmission) -> IngestionJob:
        return cls(
            location=submission.location,
            media_type=submission.media_type,
            document_id=submission.document_id,
        )


class IngestionOutcome(BaseModel):
    """What a successful pipeline run produced."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_count: int
    point_ids: list[str]
