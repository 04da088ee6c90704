"""
Retry with exponential backoff for CKAN calls.

retry_sync wraps a callable; the wrapper keeps the RetryStats of its most
recent call in `wrapper.last_stats`, which CKANConnector.get_status() reports.
"""
import functools
import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Type

import requests

from shelter_sync.utils.logger import log

# Transport failures worth another attempt (no HTTP response was received)
TRANSIENT_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    requests.ConnectionError,
    requests.Timeout,
)

RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)

MAX_REPORTED_ERRORS = 5


@dataclass
class RetryStats:
    """Attempts, time spent waiting and errors of one retried call"""
    attempts: int = 0
    waited_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    success: bool = False

    def failed_attempt(self, error: Exception, delay: float = 0.0):
        self.attempts += 1
        self.waited_seconds += delay
        self.errors.append(f"{type(error).__name__}: {error}")

    def succeeded(self):
        self.attempts += 1
        self.success = True

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1] if self.errors else None

    def to_dict(self) -> dict:
        return {
            "attempts": self.attempts,
            "waited_seconds": round(self.waited_seconds, 2),
            "success": self.success,
            "last_error": self.last_error,
            "errors": self.errors[-MAX_REPORTED_ERRORS:],
        }


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 60.0, jitter: bool = True) -> float:
    """base_delay * 2^(attempt - 1), capped at max_delay, plus up to 25% jitter"""
    delay = min(base_delay * 2 ** (attempt - 1), max_delay)
    if jitter:
        delay += delay * random.uniform(0, 0.25)
    return delay


def is_retryable_error(
    error: Exception,
    transient_exceptions: Tuple[Type[Exception], ...] = TRANSIENT_EXCEPTIONS,
) -> bool:
    """
    HTTP errors carrying a response are decided by status code alone, so a
    404 from CKAN fails fast while a 503 is retried.
    """
    response = getattr(error, "response", None)
    status_code = getattr(response, "status_code", None)
    if status_code is not None:
        return status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, transient_exceptions)


def retry_sync(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    transient_exceptions: Tuple[Type[Exception], ...] = TRANSIENT_EXCEPTIONS,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator retrying a blocking call on transient failures.

    Usage:
        @retry_sync(max_attempts=3)
        def fetch_page():
            ...
    """
    def decorator(func: Callable):

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            stats = RetryStats()
            wrapper.last_stats = stats

            for attempt in range(1, max_attempts + 1):
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    if attempt == max_attempts or not is_retryable_error(e, transient_exceptions):
                        stats.failed_attempt(e)
                        log.error(f"{func.__name__} gave up after {attempt} attempt(s): {e}")
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay)
                    stats.failed_attempt(e, delay)
                    log.warning(f"{func.__name__} attempt {attempt}/{max_attempts} failed: {e}. Retrying in {delay:.1f}s")
                    sleep(delay)
                    continue

                stats.succeeded()
                if attempt > 1:
                    log.info(f"{func.__name__} succeeded on attempt {attempt} after waiting {stats.waited_seconds:.1f}s")
                return result

        wrapper.last_stats = None
        return wrapper

    return decorator
