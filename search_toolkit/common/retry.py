"""Retry policy with exponential backoff for remote service calls."""

import asyncio
import random
import time
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple, Type
import structlog

from ..errors import TransientServiceFault

logger = structlog.get_logger("search_toolkit.retry")

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Tuple[Type[BaseException], ...] = (TransientServiceFault,),
        retryable_status_codes: Optional[Iterable[int]] = None,
        min_delay: float = 0.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions
        self.retryable_status_codes: FrozenSet[int] = frozenset(
            DEFAULT_RETRYABLE_STATUS_CODES
            if retryable_status_codes is None
            else retryable_status_codes
        )
        self.min_delay = min_delay


class RetryPolicy:
    """Retries transient failures with exponential backoff.

    Exceptions matching ``config.retryable_exceptions`` are retried until
    ``config.max_attempts`` is reached, after which the last one is raised.
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def is_retryable_status(self, status_code: int) -> bool:
        """Whether an HTTP status is worth another attempt."""
        return status_code in self.config.retryable_status_codes

    async def execute_with_retry(
        self,
        func: Callable,
        *args,
        operation_name: str = "unknown",
        **kwargs
    ) -> Any:
        """Execute an async function with retry logic."""
        for attempt in range(self.config.max_attempts):
            try:
                result = await func(*args, **kwargs)
            except self.config.retryable_exceptions as e:
                delay = self._on_failure(attempt, operation_name, e)
                await asyncio.sleep(delay)
                continue

            self._on_success(attempt, operation_name)
            return result

        raise RuntimeError("Retry logic error")

    def execute_with_retry_sync(
        self,
        func: Callable,
        *args,
        operation_name: str = "unknown",
        **kwargs
    ) -> Any:
        """Blocking counterpart of ``execute_with_retry``."""
        for attempt in range(self.config.max_attempts):
            try:
                result = func(*args, **kwargs)
            except self.config.retryable_exceptions as e:
                delay = self._on_failure(attempt, operation_name, e)
                time.sleep(delay)
                continue

            self._on_success(attempt, operation_name)
            return result

        raise RuntimeError("Retry logic error")

    def _on_success(self, attempt: int, operation_name: str) -> None:
        if attempt > 0:
            logger.info(
                "Operation succeeded after retry",
                operation=operation_name,
                attempt=attempt + 1,
                total_attempts=self.config.max_attempts
            )

    def _on_failure(self, attempt: int, operation_name: str, error: BaseException) -> float:
        """Log the failed attempt and return the delay, or re-raise on the last one."""
        if attempt == self.config.max_attempts - 1:
            if self.config.max_attempts > 1:
                logger.error(
                    "Operation failed after all retries",
                    operation=operation_name,
                    attempts=self.config.max_attempts,
                    error=str(error)
                )
            raise error

        delay = self.calculate_delay(attempt)
        logger.warning(
            "Operation failed, retrying",
            operation=operation_name,
            attempt=attempt + 1,
            total_attempts=self.config.max_attempts,
            delay_seconds=delay,
            error=str(error)
        )
        return delay

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for the given attempt."""
        # Exponential backoff: base_delay * (exponential_base ^ attempt)
        delay = self.config.base_delay * (self.config.exponential_base ** attempt)
        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        return max(delay, self.config.min_delay)


class NoRetryPolicy(RetryPolicy):
    """Single attempt, nothing is retried."""

    def __init__(self):
        super().__init__(RetryConfig(max_attempts=1, retryable_status_codes=()))
