"""Error taxonomy shared by ingestion and query.

Every error carries a machine-readable ``error_code`` (stored on failed job
records and returned by the query boundary) and a ``retryable`` flag that the
retry policy keys off.
"""

from __future__ import annotations

import httpx
import openai


class DocQAError(Exception):
    """Base class for all errors raised by :mod:`docqa`."""

    error_code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class ValidationError(DocQAError):
    """Bad input shape (missing question, empty location, ...)."""

    error_code = "VALIDATION_ERROR"


class TransientDependencyError(DocQAError):
    """Timeout, rate limit or outage of the embedding model, chat model or index."""

    error_code = "DEPENDENCY_UNAVAILABLE"
    retryable = True


class PermanentDependencyError(DocQAError):
    """A dependency rejected the call in a way retrying cannot fix."""

    error_code = "DEPENDENCY_REJECTED"


class ConfigurationConflictError(DocQAError):
    """Embedding dimension (or metric) disagrees with an existing collection."""

    error_code = "CONFIGURATION_CONFLICT"

    def __init__(
        self,
        collection_name: str,
        existing: object,
        requested: object,
        field: str = "dimension",
    ) -> None:
        super().__init__(
            f"Collection {collection_name!r} exists with {field}={existing!r}, "
            f"refusing to use it with {field}={requested!r}"
        )
        self.collection_name = collection_name
        self.field = field
        self.existing = existing
        self.requested = requested


class NotFoundError(DocQAError):
    """The document location does not exist at execution time."""

    error_code = "DOCUMENT_NOT_FOUND"


class DocumentDecodeError(DocQAError):
    """The document exists but cannot be turned into text."""

    error_code = "DOCUMENT_UNDECODABLE"


class UpsertError(TransientDependencyError):
    """Some points in an upsert call were not written."""

    error_code = "INDEX_WRITE_FAILED"

    def __init__(self, message: str, failed_ids: list[str]) -> None:
        super().__init__(message)
        self.failed_ids = failed_ids


_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    httpx.TransportError,
    openai.APIConnectionError,  # includes APITimeoutError
    openai.InternalServerError,
)

_PERMANENT_TYPES: tuple[type[BaseException], ...] = (
    openai.BadRequestError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.UnprocessableEntityError,
    ValueError,
    TypeError,
)


def classify_dependency_error(exc: BaseException, dependency: str) -> DocQAError:
    """Map an exception raised by an external client onto the taxonomy.

    Errors that are already :class:`DocQAError` are returned unchanged.
    Anything unrecognised is treated as transient: an unknown failure of a
    remote dependency is more often an outage than a contract violation, and
    the retry budget is bounded anyway.
    """
    if isinstance(exc, DocQAError):
        return exc

    message = f"{dependency} call failed: {type(exc).__name__}: {exc}"

    if isinstance(exc, openai.RateLimitError):
        # Exhausted quota comes back as 429 too, but waiting will not fix it.
        if getattr(exc, "code", None) == "insufficient_quota":
            return PermanentDependencyError(message, error_code="QUOTA_EXHAUSTED")
        return TransientDependencyError(message, error_code="RATE_LIMITED")
    if isinstance(exc, _TRANSIENT_TYPES):
        return TransientDependencyError(message)
    if isinstance(exc, _PERMANENT_TYPES):
        return PermanentDependencyError(message)
    return TransientDependencyError(message)
