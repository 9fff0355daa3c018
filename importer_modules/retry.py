"""
Retry helper for transient Vendure Admin API failures.

Only lock contention, busy and timeout signatures are retried; every other
error is a deterministic rejection and is raised on the first occurrence.
"""

import re
import time
import logging

import requests
from tenacity import (
    Retrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential
)

TRANSIENT_ERROR_RE = re.compile(
    r'database is locked|SQLITE_BUSY|deadlock|lock wait|busy|timeout|timed out',
    re.IGNORECASE
)


def is_transient_error(error):
    """Return True if the error looks like temporary infrastructure trouble."""
    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True
    return bool(TRANSIENT_ERROR_RE.search(str(error) or ''))


def _log_retry(retry_state: RetryCallState):
    error = retry_state.outcome.exception()
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logging.warning(
        f"  Transient error (attempt {retry_state.attempt_number}), "
        f"retrying in {wait * 1000:.0f} ms: {error}"
    )


def with_retry(operation, retries=3, base_delay_ms=300, sleep=None):
    """
    Run operation, retrying transient failures with exponential backoff.

    The operation runs at most retries + 1 times. Before retry i (0-based)
    the helper sleeps base_delay_ms * 2**i milliseconds.

    Args:
        operation: Zero-argument callable
        retries: Number of retries after the first attempt
        base_delay_ms: Delay before the first retry, in milliseconds
        sleep: Sleep function taking seconds (defaults to time.sleep)

    Returns:
        Whatever operation returns

    Raises:
        The last error once retries are exhausted, or any non-transient
        error immediately.
    """
    retryer = Retrying(
        stop=stop_after_attempt(max(0, int(retries)) + 1),
        wait=wait_exponential(multiplier=base_delay_ms / 1000.0, exp_base=2, min=0),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_retry,
        sleep=sleep or time.sleep,
        reraise=True,
    )
    return retryer(operation)
