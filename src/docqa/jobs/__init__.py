"""
Jobs — asynchronous document ingestion.

A submission enqueues one :class:`IngestionJob`; a :class:`Worker` later
claims it and runs the :class:`IngestionPipeline`
(load → chunk → embed → ensure collection → upsert).
"""

from docqa.jobs.models import DocumentSubmission, IngestionJob, IngestionOutcome, JobStatus
from docqa.jobs.pipeline import IngestionPipeline
from docqa.jobs.queue import InMemoryJobQueue, JobQueue, submit_directory
from docqa.jobs.worker import Worker, WorkerPool

__all__ = [
    "DocumentSubmission",
    "InMemoryJobQueue",
    "IngestionJob",
    "IngestionOutcome",
    "IngestionPipeline",
    "JobQueue",
    "JobStatus",
    "Worker",
    "WorkerPool",
    "submit_directory",
]
