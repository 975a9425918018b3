"""Unit tests for the job queue, ingestion pipeline and workers."""

from __future__ import annotations

import math
import threading
import time
from pathlib import Path

import pydantic
import pytest
from fakes import DIMENSION, FlakyEmbeddings

from docqa.config import PipelineConfig
from docqa.ingestion.embedder import EmbeddingAdapter
from docqa.ingestion.loader import load_document
from docqa.jobs.models import DocumentSubmission, IngestionJob, JobStatus
from docqa.jobs.pipeline import IngestionPipeline, location_document_id
from docqa.jobs.queue import InMemoryJobQueue, submit_directory
from docqa.jobs.worker import Worker, WorkerPool
from docqa.retrieval.memory_store import InMemoryVectorIndex
from docqa.retrieval.models import IndexPoint, UpsertResult, point_id

# ── Helpers ─────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class CountingLoader:
    """Wraps :func:`load_document` and counts calls."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, location: str, media_type: str | None = None):  # noqa: ANN204
        self.calls += 1
        return load_document(location, media_type)


class FlakyUpsertIndex(InMemoryVectorIndex):
    """Fails every other point on the first upsert call."""

    def __init__(self) -> None:
        super().__init__()
        self.upsert_calls: list[list[str]] = []

    def upsert(self, collection_name: str, points: list[IndexPoint]) -> UpsertResult:
        self.upsert_calls.append([p.id for p in points])
        if len(self.upsert_calls) > 1:
            return super().upsert(collection_name, points)
        written = super().upsert(collection_name, points[::2])
        written.failed.update({p.id: "shard unavailable" for p in points[1::2]})
        return written


class RejectingIndex(InMemoryVectorIndex):
    """Refuses every point for good, as a backend does for an invalid request."""

    def __init__(self) -> None:
        super().__init__()
        self.upsert_calls = 0

    def upsert(self, collection_name: str, points: list[IndexPoint]) -> UpsertResult:
        self.upsert_calls += 1
        return UpsertResult(
            failed={p.id: "invalid metadata" for p in points},
            rejected_ids={p.id for p in points},
        )


class BrokenClaimQueue(InMemoryJobQueue):
    """Raises from the first ``claim`` call only."""

    def __init__(self) -> None:
        super().__init__()
        self.claims = 0

    def claim(self, worker_id: str, timeout: float | None = None) -> IngestionJob | None:
        self.claims += 1
        if self.claims == 1:
            raise RuntimeError("queue store unavailable")
        return super().claim(worker_id, timeout)


def expected_chunks(text: str, config: PipelineConfig) -> int:
    return 1 + math.ceil(max(0, len(text) - config.chunk_size) / config.chunk_step)


def adapter(embeddings=None, **kwargs) -> EmbeddingAdapter:  # noqa: ANN001
    kwargs.setdefault("dimension", DIMENSION)
    kwargs.setdefault("batch_size", 64)
    return EmbeddingAdapter(embeddings or FlakyEmbeddings(), "fake", **kwargs)


def submit(queue: InMemoryJobQueue, path: Path, **kwargs: str) -> str:
    return queue.submit(DocumentSubmission(location=str(path), **kwargs))


def wait_for(predicate, timeout: float = 5.0) -> None:  # noqa: ANN001
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


@pytest.fixture()
def queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture()
def pipeline(config: PipelineConfig, index: InMemoryVectorIndex, embedder: EmbeddingAdapter) -> IngestionPipeline:
    return IngestionPipeline(config, index, embedder)


# ── Submission & queue ──────────────────────────────────────────────────


class TestJobQueue:
    def test_submit_records_queued_job(self, queue: InMemoryJobQueue) -> None:
        job_id = queue.submit(DocumentSubmission(location="/data/a.pdf", media_type="application/pdf"))
        job = queue.get(job_id)
        assert job.status is JobStatus.QUEUED
        assert job.location == "/data/a.pdf"
        assert job.deliveries == 0

    def test_blank_location_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            DocumentSubmission(location="   ")

    def test_claim_is_fifo_and_marks_running(self, queue: InMemoryJobQueue) -> None:
        first = queue.submit(DocumentSubmission(location="a"))
        second = queue.submit(DocumentSubmission(location="b"))

        job = queue.claim("w1", timeout=0)

        assert job.job_id == first
        assert job.status is JobStatus.RUNNING
        assert job.worker_id == "w1"
        assert job.deliveries == 1
        assert job.started_at is not None
        assert queue.claim("w2", timeout=0).job_id == second

    def test_claim_times_out_when_empty(self, queue: InMemoryJobQueue) -> None:
        assert queue.claim("w1", timeout=0) is None

    def test_claim_wakes_on_submit(self, queue: InMemoryJobQueue) -> None:
        timer = threading.Timer(0.05, lambda: queue.submit(DocumentSubmission(location="late")))
        timer.start()
        job = queue.claim("w1", timeout=5)
        timer.join()
        assert job is not None and job.location == "late"

    def test_complete_and_fail(self, queue: InMemoryJobQueue) -> None:
        ok_id = queue.submit(DocumentSubmission(location="a"))
        bad_id = queue.submit(DocumentSubmission(location="b"))
        queue.claim("w1", timeout=0)
        queue.claim("w1", timeout=0)

        done = queue.complete(ok_id, chunk_count=7)
        failed = queue.fail(bad_id, "DOCUMENT_NOT_FOUND", "Document not found: b")

        assert done.status is JobStatus.COMPLETED and done.chunk_count == 7
        assert done.finished_at is not None
        assert failed.status is JobStatus.FAILED
        assert (failed.error_code, failed.error_message) == ("DOCUMENT_NOT_FOUND", "Document not found: b")
        assert [j.job_id for j in queue.list_jobs(JobStatus.FAILED)] == [bad_id]
        assert len(queue.list_jobs()) == 2

    def test_expired_lease_redelivers(self) -> None:
        clock = FakeClock()
        queue = InMemoryJobQueue(lease_seconds=10, clock=clock)
        job_id = queue.submit(DocumentSubmission(location="a"))
        queue.claim("crashed", timeout=0)

        clock.now += 5
        assert queue.claim("w2", timeout=0) is None

        clock.now += 6
        job = queue.claim("w2", timeout=0)
        assert job.job_id == job_id
        assert job.worker_id == "w2"
        assert job.deliveries == 2

    def test_late_ack_after_settlement_is_ignored(self) -> None:
        clock = FakeClock()
        queue = InMemoryJobQueue(lease_seconds=10, clock=clock)
        job_id = queue.submit(DocumentSubmission(location="a"))
        queue.claim("slow", timeout=0)
        clock.now += 11
        queue.claim("fast", timeout=0)
        queue.complete(job_id, chunk_count=3)

        job = queue.fail(job_id, "DEPENDENCY_UNAVAILABLE", "timed out")

        assert job.status is JobStatus.COMPLETED
        assert job.chunk_count == 3

    def test_ack_while_awaiting_redelivery_settles_job(self) -> None:
        clock = FakeClock()
        queue = InMemoryJobQueue(lease_seconds=10, clock=clock)
        job_id = queue.submit(DocumentSubmission(location="a"))
        queue.claim("slow", timeout=0)
        other_id = queue.submit(DocumentSubmission(location="b"))
        clock.now += 11
        # Expiry requeues "a" behind "b"; "a" now waits for redelivery.
        assert queue.claim("other", timeout=0).job_id == other_id
        assert queue.get(job_id).status is JobStatus.QUEUED

        queue.complete(job_id, chunk_count=1)

        assert queue.get(job_id).status is JobStatus.COMPLETED
        assert queue.claim("next", timeout=0) is None


class TestSubmitDirectory:
    def test_one_job_per_matching_file(self, tmp_path: Path, queue: InMemoryJobQueue) -> None:
        for name in ("b.pdf", "a.pdf", "notes.txt"):
            (tmp_path / name).write_bytes(b"%PDF-1.4")

        job_ids = submit_directory(queue, tmp_path)

        assert [Path(queue.get(j).location).name for j in job_ids] == ["a.pdf", "b.pdf"]

    def test_custom_pattern(self, tmp_path: Path, queue: InMemoryJobQueue) -> None:
        (tmp_path / "notes.txt").write_text("hello")
        assert len(submit_directory(queue, tmp_path, pattern="*.txt")) == 1

    def test_empty_folder(self, tmp_path: Path, queue: InMemoryJobQueue) -> None:
        assert submit_directory(queue, tmp_path) == []

    def test_missing_folder(self, tmp_path: Path, queue: InMemoryJobQueue) -> None:
        with pytest.raises(FileNotFoundError):
            submit_directory(queue, tmp_path / "nope")


# ── Pipeline ────────────────────────────────────────────────────────────


class TestIngestionPipeline:
    def test_indexes_every_chunk(
        self,
        pipeline: IngestionPipeline,
        index: InMemoryVectorIndex,
        config: PipelineConfig,
        document_path: Path,
        sample_text: str,
    ) -> None:
        outcome = pipeline.run(IngestionJob(location=str(document_path)))

        n = expected_chunks(sample_text, config)
        assert outcome.chunk_count == n
        assert outcome.document_id == location_document_id(str(document_path))
        assert outcome.point_ids == [point_id(outcome.document_id, i) for i in range(n)]
        assert index.count(config.collection_name) == n
        assert index.get_collection(config.collection_name).dimension == DIMENSION

    def test_rerun_overwrites(
        self, pipeline: IngestionPipeline, index: InMemoryVectorIndex, config: PipelineConfig, document_path: Path
    ) -> None:
        first = pipeline.run(IngestionJob(location=str(document_path)))
        second = pipeline.run(IngestionJob(location=str(document_path)))

        assert first.point_ids == second.point_ids
        assert index.count(config.collection_name) == first.chunk_count

    def test_supplied_document_id(
        self, pipeline: IngestionPipeline, index: InMemoryVectorIndex, config: PipelineConfig, document_path: Path
    ) -> None:
        outcome = pipeline.run(IngestionJob(location=str(document_path), document_id="contract-7"))
        assert outcome.document_id == "contract-7"
        hit = index.search(config.collection_name, [1.0] * DIMENSION, top_k=50)
        assert {h.payload.document_id for h in hit} == {"contract-7"}

    def test_distinct_documents_accumulate(
        self, pipeline: IngestionPipeline, index: InMemoryVectorIndex, config: PipelineConfig, tmp_path: Path
    ) -> None:
        a = tmp_path / "a.txt"
        b = tmp_path / "b.txt"
        a.write_text("alpha " * 20)
        b.write_text("beta " * 30)

        total = pipeline.run(IngestionJob(location=str(a))).chunk_count
        total += pipeline.run(IngestionJob(location=str(b))).chunk_count

        assert index.count(config.collection_name) == total
        assert index.count(config.collection_name, source=str(a)) == expected_chunks("alpha " * 20, config)

    def test_identical_content_at_two_locations_is_kept_twice(
        self, pipeline: IngestionPipeline, index: InMemoryVectorIndex, config: PipelineConfig, tmp_path: Path
    ) -> None:
        first = tmp_path / "upload-1.txt"
        second = tmp_path / "upload-2.txt"
        for path in (first, second):
            path.write_text("same bytes in both uploads " * 5)
        n = expected_chunks("same bytes in both uploads " * 5, config)

        one = pipeline.run(IngestionJob(location=str(first)))
        two = pipeline.run(IngestionJob(location=str(second)))

        assert one.document_id != two.document_id
        assert not set(one.point_ids) & set(two.point_ids)
        assert index.count(config.collection_name, source=str(first)) == n
        assert index.count(config.collection_name, source=str(second)) == n


# ── Worker: job outcomes ───────────────────────────────────────────────


class TestWorker:
    def test_scenario_submit_then_complete(
        self,
        queue: InMemoryJobQueue,
        pipeline: IngestionPipeline,
        index: InMemoryVectorIndex,
        config: PipelineConfig,
        document_path: Path,
        sample_text: str,
    ) -> None:
        job_id = submit(queue, document_path)
        assert queue.get(job_id).status is JobStatus.QUEUED

        job = Worker(queue, pipeline).run_once()

        assert job.job_id == job_id
        assert job.status is JobStatus.COMPLETED
        assert job.chunk_count == expected_chunks(sample_text, config)
        assert index.count(config.collection_name) == job.chunk_count

    def test_idle_worker_returns_none(self, queue: InMemoryJobQueue, pipeline: IngestionPipeline) -> None:
        assert Worker(queue, pipeline).run_once() is None

    def test_missing_document_fails_without_retry(
        self, queue: InMemoryJobQueue, config: PipelineConfig, index: InMemoryVectorIndex, tmp_path: Path
    ) -> None:
        loader = CountingLoader()
        pipeline = IngestionPipeline(config, index, adapter(), loader)
        job_id = submit(queue, tmp_path / "deleted.pdf")

        job = Worker(queue, pipeline).run_once()

        assert job.job_id == job_id
        assert job.status is JobStatus.FAILED
        assert job.error_code == "DOCUMENT_NOT_FOUND"
        assert "deleted.pdf" in job.error_message
        assert loader.calls == 1

    def test_empty_document_fails(
        self, queue: InMemoryJobQueue, pipeline: IngestionPipeline, tmp_path: Path
    ) -> None:
        path = tmp_path / "empty.txt"
        path.write_text("")
        submit(queue, path)

        job = Worker(queue, pipeline).run_once()

        assert job.status is JobStatus.FAILED
        assert job.error_code == "DOCUMENT_EMPTY"

    def test_transient_embedding_errors_are_retried(
        self, queue: InMemoryJobQueue, config: PipelineConfig, index: InMemoryVectorIndex, document_path: Path
    ) -> None:
        embeddings = FlakyEmbeddings(failures=2)
        pipeline = IngestionPipeline(config, index, adapter(embeddings))
        submit(queue, document_path)

        job = Worker(queue, pipeline).run_once()

        assert job.status is JobStatus.COMPLETED
        assert embeddings.calls == 3

    def test_exhausted_retries_fail_with_cause(
        self, queue: InMemoryJobQueue, config: PipelineConfig, index: InMemoryVectorIndex, document_path: Path
    ) -> None:
        embeddings = FlakyEmbeddings(failures=100)
        pipeline = IngestionPipeline(config, index, adapter(embeddings))
        submit(queue, document_path)

        job = Worker(queue, pipeline).run_once()

        assert job.status is JobStatus.FAILED
        assert job.error_code == "DEPENDENCY_UNAVAILABLE"
        assert "timed out" in job.error_message
        assert embeddings.calls == config.max_attempts

    def test_permanent_embedding_error_not_retried(
        self, queue: InMemoryJobQueue, config: PipelineConfig, index: InMemoryVectorIndex, document_path: Path
    ) -> None:
        embeddings = FlakyEmbeddings(failures=100, error=ValueError("input rejected"))
        pipeline = IngestionPipeline(config, index, adapter(embeddings))
        submit(queue, document_path)

        job = Worker(queue, pipeline).run_once()

        assert job.status is JobStatus.FAILED
        assert job.error_code == "DEPENDENCY_REJECTED"
        assert embeddings.calls == 1

    def test_dimension_conflict_fails_and_keeps_collection(
        self,
        queue: InMemoryJobQueue,
        pipeline: IngestionPipeline,
        index: InMemoryVectorIndex,
        config: PipelineConfig,
        document_path: Path,
    ) -> None:
        index.ensure_collection(config.collection_name, 8)
        submit(queue, document_path)

        job = Worker(queue, pipeline).run_once()

        assert job.status is JobStatus.FAILED
        assert job.error_code == "CONFIGURATION_CONFLICT"
        assert index.get_collection(config.collection_name).dimension == 8
        assert index.count(config.collection_name) == 0

    def test_partial_upsert_retries_failed_ids_only(
        self, queue: InMemoryJobQueue, config: PipelineConfig, document_path: Path, sample_text: str
    ) -> None:
        index = FlakyUpsertIndex()
        pipeline = IngestionPipeline(config, index, adapter())
        submit(queue, document_path)

        job = Worker(queue, pipeline).run_once()

        first, second = index.upsert_calls
        assert job.status is JobStatus.COMPLETED
        assert second == first[1::2]
        assert index.count(config.collection_name) == expected_chunks(sample_text, config)

    def test_rejected_upsert_fails_without_retry(
        self, queue: InMemoryJobQueue, config: PipelineConfig, document_path: Path
    ) -> None:
        index = RejectingIndex()
        pipeline = IngestionPipeline(config, index, adapter())
        submit(queue, document_path)

        job = Worker(queue, pipeline).run_once()

        assert job.status is JobStatus.FAILED
        assert job.error_code == "DEPENDENCY_REJECTED"
        assert "invalid metadata" in job.error_message
        assert index.upsert_calls == 1

    def test_unexpected_exception_is_recorded(
        self, queue: InMemoryJobQueue, config: PipelineConfig, index: InMemoryVectorIndex, document_path: Path
    ) -> None:
        def broken_loader(location: str, media_type: str | None = None):  # noqa: ANN202
            raise KeyError("boom")

        submit(queue, document_path)
        job = Worker(queue, IngestionPipeline(config, index, adapter(), broken_loader)).run_once()

        assert job.status is JobStatus.FAILED
        assert job.error_code == "INTERNAL_ERROR"
        assert "KeyError" in job.error_message

    def test_redelivery_after_crash_does_not_duplicate(
        self,
        pipeline: IngestionPipeline,
        index: InMemoryVectorIndex,
        config: PipelineConfig,
        document_path: Path,
        sample_text: str,
    ) -> None:
        clock = FakeClock()
        queue = InMemoryJobQueue(lease_seconds=30, clock=clock)
        job_id = submit(queue, document_path)

        # First worker writes the points, then dies before acknowledging.
        crashed = queue.claim("worker-crashed", timeout=0)
        pipeline.run(crashed)
        clock.now += 31

        job = Worker(queue, pipeline, "worker-1").run_once()

        assert job.job_id == job_id
        assert job.status is JobStatus.COMPLETED
        assert job.deliveries == 2
        assert index.count(config.collection_name) == expected_chunks(sample_text, config)


class TestWorkerPool:
    def test_concurrent_workers_share_one_collection(
        self, config: PipelineConfig, embedder: EmbeddingAdapter, tmp_path: Path
    ) -> None:
        index = InMemoryVectorIndex()
        queue = InMemoryJobQueue()
        pool = WorkerPool(queue, IngestionPipeline(config, index, embedder), size=3, poll_interval=0.05)
        texts = {f"doc{i}.txt": f"document {i} " * (10 + i) for i in range(6)}
        for name, text in texts.items():
            (tmp_path / name).write_text(text)
        job_ids = [submit(queue, tmp_path / name) for name in texts]

        pool.start()
        try:
            wait_for(lambda: all(queue.get(j).status.terminal for j in job_ids))
        finally:
            pool.stop()

        assert not pool.running
        assert all(queue.get(j).status is JobStatus.COMPLETED for j in job_ids)
        assert index.count(config.collection_name) == sum(expected_chunks(t, config) for t in texts.values())

    def test_worker_survives_queue_errors(
        self, config: PipelineConfig, index: InMemoryVectorIndex, embedder: EmbeddingAdapter, document_path: Path
    ) -> None:
        queue = BrokenClaimQueue()
        pool = WorkerPool(queue, IngestionPipeline(config, index, embedder), size=1, poll_interval=0.05)
        job_id = submit(queue, document_path)

        pool.start()
        try:
            wait_for(lambda: queue.get(job_id).status.terminal)
            assert pool.running
        finally:
            pool.stop()

        assert queue.claims > 1
        assert queue.get(job_id).status is JobStatus.COMPLETED
