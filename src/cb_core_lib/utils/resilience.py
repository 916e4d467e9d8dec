"""Connection verification retry policies.

User-initiated writes are never retried automatically; a failed write is
reported and the user re-submits. Retrying is reserved for verifying that
the backend is reachable when a client starts up (emulators and
scale-to-zero backends can take a while to accept connections).
"""

import logging
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cb_core_lib.exceptions import RemoteUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log each failed attempt before sleeping."""
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        f"[Startup] Attempt {retry_state.attempt_number} of "
        f"{retry_state.fn.__name__ if retry_state.fn else 'call'} failed after "
        f"{retry_state.seconds_since_start:.1f}s: {exception}"
    )


# Startup connection policy
# - Only RemoteUnavailable is retried; programming errors surface immediately
# - Wait 2s, 4s, 8s, 16s between attempts, stop after 5 attempts
# - Re-raise the last RemoteUnavailable when all attempts fail
service_startup_retry = retry(
    retry=retry_if_exception_type(RemoteUnavailable),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=16),
    before_sleep=_log_retry_attempt,
    reraise=True,
)


def create_startup_retry(
    max_attempts: int = 5,
    min_wait: float = 2,
    max_wait: float = 16,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Build a startup retry decorator with custom limits.

    Example:
        ```python
        quick_check = create_startup_retry(max_attempts=2, min_wait=0, max_wait=0)

        @quick_check
        async def ping_emulator():
            ...
        ```
    """
    return retry(
        retry=retry_if_exception_type(RemoteUnavailable),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        before_sleep=_log_retry_attempt,
        reraise=True,
    )
