"""Job queue with leased, at-least-once delivery."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from pathlib import Path

from docqa.jobs.models import DocumentSubmission, IngestionJob, JobStatus, utcnow

logger = logging.getLogger(__name__)


class JobQueue(ABC):
    """Accepts submissions and hands them to workers.

    Delivery is at-least-once: a claimed job is leased to one worker; if the
    worker neither completes nor fails it before the lease runs out, the job
    is handed to the next claimant.
    """

    @abstractmethod
    def submit(self, submission: DocumentSubmission) -> str:
        """Enqueue one job for *submission* and return its id."""
        ...

    @abstractmethod
    def claim(self, worker_id: str, timeout: float | None = None) -> IngestionJob | None:
        """Lease the next queued job to *worker_id*; ``None`` on timeout."""
        ...

    @abstractmethod
    def complete(self, job_id: str, chunk_count: int) -> IngestionJob:
        """Mark a running job completed."""
        ...

    @abstractmethod
    def fail(self, job_id: str, error_code: str, error_message: str) -> IngestionJob:
        """Mark a running job failed, keeping the error."""
        ...

    @abstractmethod
    def get(self, job_id: str) -> IngestionJob | None:
        ...

    @abstractmethod
    def list_jobs(self, status: JobStatus | None = None) -> list[IngestionJob]:
        ...


class InMemoryJobQueue(JobQueue):
    """Thread-safe in-process queue.

    Parameters
    ----------
    lease_seconds:
        How long a claimed job may stay unacknowledged before it is
        redelivered.
    clock:
        Monotonic time source; injectable so tests can expire leases.
    """

    def __init__(
        self,
        *,
        lease_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lease_seconds = lease_seconds
        self._clock = clock
        self._cond = threading.Condition()
        self._jobs: dict[str, IngestionJob] = {}
        self._pending: deque[str] = deque()
        self._leases: dict[str, float] = {}

    def submit(self, submission: DocumentSubmission) -> str:
        job = IngestionJob.from_submission(submission)
        with self._cond:
            self._jobs[job.job_id] = job
            self._pending.append(job.job_id)
            self._cond.notify()
        logger.info("Queued job %s for %s", job.job_id, job.location)
        return job.job_id

    def claim(self, worker_id: str, timeout: float | None = None) -> IngestionJob | None:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                self._requeue_expired()
                if self._pending:
                    break
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                # Wake up periodically so expired leases are noticed.
                wait = min(remaining, 1.0) if remaining is not None else 1.0
                self._cond.wait(wait)

            job_id = self._pending.popleft()
            job = self._jobs[job_id].model_copy(
                update={
                    "status": JobStatus.RUNNING,
                    "worker_id": worker_id,
                    "deliveries": self._jobs[job_id].deliveries + 1,
                    "started_at": utcnow(),
                }
            )
            self._jobs[job_id] = job
            self._leases[job_id] = self._clock() + self._lease_seconds

        logger.info("Worker %s claimed job %s (delivery %d)", worker_id, job_id, job.deliveries)
        return job

    def complete(self, job_id: str, chunk_count: int) -> IngestionJob:
        job = self._finish(
            job_id,
            status=JobStatus.COMPLETED,
            chunk_count=chunk_count,
            error_code=None,
            error_message=None,
        )
        logger.info("Job %s completed with %d chunk(s)", job_id, chunk_count)
        return job

    def fail(self, job_id: str, error_code: str, error_message: str) -> IngestionJob:
        job = self._finish(
            job_id,
            status=JobStatus.FAILED,
            error_code=error_code,
            error_message=error_message,
        )
        logger.error("Job %s failed [%s]: %s", job_id, error_code, error_message)
        return job

    def get(self, job_id: str) -> IngestionJob | None:
        with self._cond:
            return self._jobs.get(job_id)

    def list_jobs(self, status: JobStatus | None = None) -> list[IngestionJob]:
        with self._cond:
            jobs = list(self._jobs.values())
        if status is not None:
            jobs = [job for job in jobs if job.status is status]
        return sorted(jobs, key=lambda job: job.created_at)

    # -- internals ------------------------------------------------------------

    def _finish(self, job_id: str, **update: object) -> IngestionJob:
        with self._cond:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            if job.status.terminal:
                # A redelivered copy already settled the job.
                logger.warning("Ignoring late acknowledgement for %s job %s", job.status.value, job_id)
                return job
            if job.status is JobStatus.QUEUED:
                # Lease expired and the job is waiting for redelivery; the
                # slow worker finished after all, so settle it here.
                self._pending.remove(job_id)
            self._leases.pop(job_id, None)
            job = job.model_copy(update={**update, "finished_at": utcnow()})
            self._jobs[job_id] = job
            return job

    def _requeue_expired(self) -> None:
        now = self._clock()
        for job_id, expires_at in list(self._leases.items()):
            if expires_at > now:
                continue
            del self._leases[job_id]
            job = self._jobs[job_id]
            logger.warning(
                "Lease on job %s held by %s expired; requeueing", job_id, job.worker_id
            )
            self._jobs[job_id] = job.model_copy(update={"status": JobStatus.QUEUED})
            self._pending.append(job_id)


def submit_directory(
    queue: JobQueue,
    folder: str | Path,
    pattern: str = "*.pdf",
) -> list[str]:
    """Enqueue one job per file in *folder* matching *pattern*.

    Returns the job ids in file-name order. A missing folder raises
    ``FileNotFoundError``; an empty one returns an empty list.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise FileNotFoundError(f"Folder not found: {folder}")

    files = sorted(p for p in folder.glob(pattern) if p.is_file())
    if not files:
        logger.info("No files matching %r in %s", pattern, folder)
        return []

    return [queue.submit(DocumentSubmission(location=str(path))) for path in files]
