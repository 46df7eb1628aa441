"""Backoff retries for individual AWS API calls."""

import random
import time
from typing import Callable, TypeVar

from botocore.exceptions import ClientError, EndpointConnectionError

from cloudwait.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# Throttling and transient server-side failures
RETRYABLE_ERROR_CODES = frozenset({
    'Throttling',
    'ThrottlingException',
    'TooManyRequestsException',
    'PriorRequestNotComplete',
    'RequestTimeout',
    'ServiceUnavailable',
    'InternalError',
    'InternalFailure',
    'InternalServerException',
})

RETRYABLE_EXCEPTIONS = (ConnectionError, EndpointConnectionError)


def describe_error(error: Exception) -> str:
    if isinstance(error, ClientError):
        details = error.response.get('Error', {})
        return f"{error.operation_name} {details.get('Code', 'Unknown')}: {details.get('Message', error)}"
    return f"{type(error).__name__}: {error}"


class RetryStrategy:
    """Retries one request/response call with exponential backoff.

    Waiting for an asynchronous operation to finish is not a retry; that is
    what the poller is for.
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize retry strategy.

        Args:
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry, doubled for each later one
            max_delay: Upper bound for a single delay
            jitter: Add up to 10% random jitter to each delay
            sleep: Sleep function
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.sleep = sleep

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        if isinstance(error, ClientError):
            return error.response.get('Error', {}).get('Code') in RETRYABLE_ERROR_CODES
        return isinstance(error, RETRYABLE_EXCEPTIONS)

    def get_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * 2 ** attempt, self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * 0.1)
        return delay

    def execute_with_retry(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Call `func(*args, **kwargs)` until it succeeds or fails for good.

        The arguments are identical on every attempt. The last error is
        re-raised once it is not retryable or the retries are used up.
        """
        for attempt in range(self.max_retries + 1):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.get_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_retries + 1} failed: "
                    f"{describe_error(e)}. Retrying in {delay:.2f}s"
                )
                self.sleep(delay)
