"""Bounded polling.

``wait_until`` drives both readiness checks of the lifecycle controller.
A predicate reports "not ready yet" by returning ``False``; an exception
raised by the predicate is unexpected and propagates immediately.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from ephemera.constants import DEFAULT_INTERVAL, DEFAULT_MAX_RETRIES

log = logger.bind(component="wait")


def _not_ready(ready: bool) -> bool:
    return not ready


def _give_up(retry_state: RetryCallState) -> bool:
    return False


def wait_until(
    predicate: Callable[[], bool],
    max_retries: int = DEFAULT_MAX_RETRIES,
    interval: float = DEFAULT_INTERVAL,
    *,
    description: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Evaluate ``predicate`` until it returns True or the budget runs out.

    The predicate is evaluated at most ``max_retries`` times, sleeping
    ``interval`` seconds between evaluations.

    Args:
        predicate: Readiness check. Returns False while not ready.
        max_retries: Maximum number of evaluations.
        interval: Seconds to sleep between evaluations.
        description: Condition name used in log messages.
        sleep: Sleep function, replaceable in tests.

    Returns:
        True once the predicate succeeded, False when the budget ran out.
    """

    def _log_attempt(retry_state: RetryCallState) -> None:
        log.bind(condition=description).info(
            f"Waiting for {description} (attempt {retry_state.attempt_number}/{max_retries})"
        )

    retrying = Retrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_fixed(interval),
        retry=retry_if_result(_not_ready),
        retry_error_callback=_give_up,
        before=_log_attempt,
        sleep=sleep,
    )
    return bool(retrying(predicate))
