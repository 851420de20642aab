"""
Execution strategy: retries a unit of work against transient connection faults.
"""

import random
import time
from typing import Callable, Optional, Set, Type, TypeVar

from persistence.config import settings
from persistence.exceptions.handler import is_transient
from persistence.logging.logger import get_logger

T = TypeVar("T")

logger = get_logger("execution_strategy")


class RetryPolicy:
    """Exponential backoff retry configuration for transient database faults."""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        backoff_multiplier: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[Set[Type[BaseException]]] = None,
    ):
        """
        Args:
            max_attempts: Total attempts including the first one
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound for any single delay, in seconds
            backoff_multiplier: Growth factor between consecutive delays
            jitter: Randomize each delay into [50%, 100%] of its value
            retryable_exceptions: Extra exception types treated as transient
        """
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.RETRY_MAX_ATTEMPTS)
        self.base_delay = base_delay if base_delay is not None else settings.RETRY_BASE_DELAY
        self.max_delay = max_delay if max_delay is not None else settings.RETRY_MAX_DELAY
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or set()

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls()

    def should_retry(self, exception: BaseException, attempt: int) -> bool:
        """attempt is 0-based; the last attempt never retries."""
        if attempt >= self.max_attempts - 1:
            return False
        if is_transient(exception):
            return True
        return any(isinstance(exception, exc_type) for exc_type in self.retryable_exceptions)

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.backoff_multiplier ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


class ExecutionStrategy:
    """Runs an operation, re-running it from scratch when it fails with a transient fault."""

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Callable[[float], None] = time.sleep):
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep

    def execute(self, operation: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                result = operation()
                if attempt > 0:
                    logger.info(f"Operation succeeded on attempt {attempt + 1}")
                return result
            except Exception as e:
                if not self.policy.should_retry(e, attempt):
                    raise
                delay = self.policy.calculate_delay(attempt)
                logger.warning(
                    f"Transient fault on attempt {attempt + 1}/{self.policy.max_attempts}: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s"
                )
                self._sleep(delay)
                attempt += 1
