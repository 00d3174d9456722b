"""Retry policy for remote store operations.

Transient transport failures talking to Qdrant are retried with
exponential backoff before the fallback adapter gives up on the remote
tier. Availability probes are never retried.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

REMOTE_RETRY_ATTEMPTS = 3


def is_transient_error(exc: BaseException) -> bool:
    """Whether a remote store error is worth retrying.

    Connection failures, timeouts and 5xx responses are transient; 4xx
    responses (including permission errors) are not.
    """
    if isinstance(exc, httpx.ConnectError | httpx.TimeoutException):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is not None and exc.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    logger.warning(
        "Retrying remote store operation %s (attempt %d): %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else None,
    )


remote_retry = retry(
    stop=stop_after_attempt(REMOTE_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(is_transient_error),
    before_sleep=_log_retry,
    reraise=True,
)
