"""Workers that drain the job queue through the ingestion pipeline."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from docqa.errors import DocQAError

if TYPE_CHECKING:
    from docqa.jobs.models import IngestionJob
    from docqa.jobs.pipeline import IngestionPipeline
    from docqa.jobs.queue import JobQueue

logger = logging.getLogger(__name__)


class Worker:
    """Claims one job at a time and records its outcome on the queue.

    A failed job is recorded as ``failed`` with the originating error code
    and message; it is never resubmitted automatically.
    """

    def __init__(
        self,
        queue: JobQueue,
        pipeline: IngestionPipeline,
        worker_id: str = "worker-0",
        *,
        poll_interval: float = 1.0,
    ) -> None:
        self.worker_id = worker_id
        self._queue = queue
        self._pipeline = pipeline
        self._poll_interval = poll_interval

    def run_once(self, timeout: float | None = 0.0) -> IngestionJob | None:
        """Process at most one job; return its final record, or ``None`` if idle."""
        job = self._queue.claim(self.worker_id, timeout=timeout)
        if job is None:
            return None
        return self.process(job)

    def process(self, job: IngestionJob) -> IngestionJob:
        try:
            outcome = self._pipeline.run(job)
        except DocQAError as exc:
            return self._queue.fail(job.job_id, exc.error_code, str(exc))
        except Exception as exc:
            logger.exception("Job %s crashed in %s", job.job_id, self.worker_id)
            return self._queue.fail(job.job_id, "INTERNAL_ERROR", f"{type(exc).__name__}: {exc}")
        return self._queue.complete(job.job_id, outcome.chunk_count)

    def run_forever(self, stop: threading.Event) -> None:
        logger.info("%s started", self.worker_id)
        while not stop.is_set():
            try:
                self.run_once(timeout=self._poll_interval)
            except Exception:
                # The lease on a half-recorded job expires and it is redelivered.
                logger.exception("%s: job queue call failed", self.worker_id)
                stop.wait(self._poll_interval)
        logger.info("%s stopped", self.worker_id)


class WorkerPool:
    """Run ``size`` :class:`Worker` threads over one shared queue and pipeline."""

    def __init__(
        self,
        queue: JobQueue,
        pipeline: IngestionPipeline,
        size: int = 2,
        *,
        poll_interval: float = 1.0,
    ) -> None:
        self.workers = [
            Worker(queue, pipeline, f"worker-{i}", poll_interval=poll_interval)
            for i in range(size)
        ]
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(target=w.run_forever, args=(self._stop,), name=w.worker_id, daemon=True)
            for w in self.workers
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Started %d ingestion worker(s)", len(self._threads))

    def stop(self, timeout: float | None = 10.0) -> None:
        """Signal workers to stop after their current job and wait for them."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
