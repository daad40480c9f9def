from collections.abc import Callable
import logging
import time
from typing import TypeVar


logger = logging.getLogger(__name__)
T = TypeVar("T")

TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})


class RetryExhaustedError(RuntimeError):
    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


def is_transient_status(status_code: int | None) -> bool:
    return status_code is not None and status_code in TRANSIENT_STATUS_CODES


def run_with_retries(
    fn: Callable[[], T],
    *,
    max_retries: int,
    backoff_seconds: float,
    should_retry: Callable[[Exception], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    last_error: Exception | None = None
    attempt = 0

    for attempt in range(1, max_retries + 2):
        try:
            return fn()
        except Exception as exc:
            last_error = exc
            retry_allowed = True if should_retry is None else should_retry(exc)
            if attempt > max_retries or not retry_allowed:
                break
            delay = backoff_seconds * attempt
            logger.warning("attempt failed, retrying", extra={"attempt": attempt, "delay": delay, "error": str(exc)})
            sleep(delay)

    raise RetryExhaustedError(str(last_error), attempts=attempt) from last_error
