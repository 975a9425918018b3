"""Bounded retry with exponential backoff for transient dependency failures."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docqa.config import PipelineConfig
from docqa.errors import TransientDependencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retrying(config: PipelineConfig) -> Retrying:
    """Return a tenacity controller that retries only transient errors.

    The last error is re-raised once ``config.max_attempts`` is exhausted so
    callers see the real cause, not a ``RetryError`` wrapper.
    """
    return Retrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.retry_backoff_seconds,
            max=config.retry_backoff_max_seconds,
        ),
        retry=retry_if_exception_type(TransientDependencyError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def call_with_retry(config: PipelineConfig, fn: Callable[[], T]) -> T:
    """Run *fn* under :func:`retrying`."""
    return retrying(config)(fn)
