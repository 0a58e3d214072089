"""Bounded polling with exponential backoff, jitter and cancellation."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_delay,
    wait_exponential_jitter,
)

from .errors import OperationCancelled

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 10.0


def poll[T](
    fn: Callable[[], T],
    *,
    retry_on: tuple[type[BaseException], ...],
    timeout: float,
    cancel: threading.Event | None = None,
    deadline: float | None = None,
    base_delay: float = BASE_DELAY_SECONDS,
    max_delay: float = MAX_DELAY_SECONDS,
    description: str = "operation",
) -> T:
    """Call ``fn`` until it stops raising a ``retry_on`` error.

    The window is ``timeout`` seconds, shortened by ``deadline`` (a
    ``time.monotonic()`` value) when given. Once the window elapses a final
    attempt is made and its result returned or its error raised. Setting
    ``cancel``, or reaching ``deadline``, stops polling immediately with
    OperationCancelled, including in the middle of a backoff wait.
    """
    window = timeout if deadline is None else min(timeout, max(0.0, deadline - time.monotonic()))
    backoff = wait_exponential_jitter(initial=base_delay, max=max_delay, jitter=base_delay)

    def wait(retry_state: RetryCallState) -> float:
        remaining = window - (retry_state.seconds_since_start or 0.0)
        return max(0.0, min(backoff(retry_state), remaining))

    def sleep(seconds: float) -> None:
        if cancel is None:
            time.sleep(seconds)
        elif cancel.wait(seconds):
            raise OperationCancelled(f"{description} cancelled")

    def before(retry_state: RetryCallState) -> None:
        _check(cancel, deadline, description)

    def before_sleep(retry_state: RetryCallState) -> None:
        logger.debug(
            "Retrying %s in %.2fs (attempt %d): %s",
            description,
            retry_state.next_action.sleep,
            retry_state.attempt_number,
            retry_state.outcome.exception(),
        )

    retrying = Retrying(
        retry=retry_if_exception_type(retry_on),
        stop=stop_after_delay(window),
        wait=wait,
        sleep=sleep,
        before=before,
        before_sleep=before_sleep,
        reraise=True,
    )
    try:
        return retrying(fn)
    except retry_on as exc:
        logger.debug(
            "Giving up waiting for %s after %d attempt(s): %s",
            description,
            retrying.statistics.get("attempt_number", 1),
            exc,
        )

    _check(cancel, deadline, description)
    return fn()


def _check(cancel: threading.Event | None, deadline: float | None, description: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{description} cancelled")
    if deadline is not None and time.monotonic() >= deadline:
        raise OperationCancelled(f"{description} exceeded the operation deadline")
