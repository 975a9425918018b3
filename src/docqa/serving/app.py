"""FastAPI application exposing the submission and query boundaries."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from docqa.config import Settings, configure_logging, get_settings
from docqa.errors import ValidationError
from docqa.jobs.models import DocumentSubmission, IngestionJob, JobStatus
from docqa.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class SubmitRequest(BaseModel):
    """Reference to a document already placed on shared storage."""

    location: str
    media_type: str | None = None
    document_id: str | None = None


class SubmitResponse(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.QUEUED


class QueryRequest(BaseModel):
    """Incoming question from the user."""

    question: str = ""


class QueryResponse(BaseModel):
    """Answer returned by the query service."""

    reply: str
    grounded: bool = False
    sources: list[str] = []
    error_code: str | None = None


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def create_app(
    runtime: Runtime | None = None,
    *,
    settings: Settings | None = None,
    start_workers: bool = True,
) -> FastAPI:
    """Build the API around *runtime* (or one built from *settings*).

    When ``start_workers`` is true the lifespan runs the ingestion worker
    pool in-process next to the API.
    """
    settings = settings or get_settings()
    allowed_media_types = frozenset(settings.allowed_media_types)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        rt = app.state.runtime = runtime or build_runtime(settings)
        if start_workers:
            rt.workers.start()
        logger.info("API ready (workers=%s)", "on" if start_workers else "off")
        yield
        if start_workers:
            rt.workers.stop()
        logger.info("API stopped")

    app = FastAPI(
        title="docqa",
        version="0.1.0",
        description="Queue documents for indexing and ask questions about them.",
        lifespan=lifespan,
    )

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    @app.post("/documents", response_model=SubmitResponse, status_code=202)
    def submit_document(body: SubmitRequest, rt: Runtime = Depends(get_runtime)) -> SubmitResponse:
        """Enqueue one ingestion job; processing happens later on a worker."""
        if body.media_type is not None and body.media_type not in allowed_media_types:
            raise HTTPException(status_code=415, detail=f"Unsupported media type {body.media_type!r}")
        try:
            submission = DocumentSubmission(**body.model_dump())
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return SubmitResponse(job_id=rt.queue.submit(submission))

    @app.get("/jobs", response_model=list[IngestionJob])
    def list_jobs(status: JobStatus | None = None, rt: Runtime = Depends(get_runtime)) -> list[IngestionJob]:
        return rt.queue.list_jobs(status)

    @app.get("/jobs/{job_id}", response_model=IngestionJob)
    def get_job(job_id: str, rt: Runtime = Depends(get_runtime)) -> IngestionJob:
        job = rt.queue.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Unknown job {job_id!r}")
        return job

    @app.post("/query", response_model=QueryResponse)
    def query(body: QueryRequest, rt: Runtime = Depends(get_runtime)):  # noqa: ANN202
        """Answer a question from the indexed documents."""
        result = rt.query_service.answer(body.question)
        response = QueryResponse(
            reply=result.reply,
            grounded=result.grounded,
            sources=[chunk.short_ref() for chunk in result.context],
            error_code=result.error_code,
        )
        if result.error_code == ValidationError.error_code:
            return JSONResponse(status_code=422, content=response.model_dump())
        return response

    return app


def main() -> None:
    """Run the API and workers with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=9000)


if __name__ == "__main__":
    main()
