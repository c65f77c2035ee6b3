"""
Poll-until-terminal loop shared by the negotiation and transfer phases.

Both EDC processes are driven the same way: sleep a fixed interval, fetch the
current state, stop on a success or failure state, otherwise try again until
the attempt budget is spent. No backoff, no jitter.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from typing import TypeVar

from edc_connector.core.logging import get_logger
from edc_connector.edc.errors import PollingTimeoutError, ProcessFailedError

logger = get_logger(__name__)

T = TypeVar("T")


def max_poll_attempts(timeout_seconds: float, interval: float) -> int:
    """Attempt budget that keeps the summed sleep within ``timeout_seconds``."""
    if interval <= 0:
        raise ValueError("Poll interval must be positive")
    return max(1, math.ceil(timeout_seconds / interval))


def poll_until(
    fetch: Callable[[], T | None],
    *,
    state_of: Callable[[T], str],
    is_success: Callable[[str], bool],
    is_failure: Callable[[str], bool],
    on_failure: Callable[[str], ProcessFailedError],
    max_attempts: int,
    interval: float,
    process: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Drive a remote process to a terminal state.

    Args:
        fetch: Returns the current process snapshot, or ``None`` when the poll
            produced nothing usable (non-200, unparsable body). ``None``
            consumes an attempt and counts as still pending.
        state_of: Extracts the state name from a snapshot.
        is_success: True for states that end the loop successfully.
        is_failure: True for states that end the loop with ``on_failure(state)``.
        on_failure: Builds the error raised for a failure state.
        max_attempts: Number of fetches before giving up.
        interval: Seconds slept before each fetch.
        process: Human-readable process name for logs and timeout errors.
        sleep: Injectable sleep function.

    Returns:
        The first snapshot whose state is a success state.

    Raises:
        ProcessFailedError: The process reported a failure state.
        PollingTimeoutError: No terminal state within ``max_attempts``.
    """
    last_state: str | None = None

    for attempt in range(1, max_attempts + 1):
        sleep(interval)

        snapshot = fetch()
        if snapshot is None:
            logger.debug("edc_poll_pending", process=process, attempt=attempt)
            continue

        state = state_of(snapshot)
        last_state = state
        logger.debug("edc_poll_state", process=process, attempt=attempt, state=state)

        if is_success(state):
            return snapshot
        if is_failure(state):
            logger.warning("edc_poll_failed", process=process, state=state)
            raise on_failure(state)

    logger.warning(
        "edc_poll_timeout",
        process=process,
        attempts=max_attempts,
        last_state=last_state,
    )
    raise PollingTimeoutError(process, max_attempts, last_state)
