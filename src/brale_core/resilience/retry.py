"""
Retry pattern with exponential backoff and jitter.

Provides automatic retry logic for transient failures. Attempts are strictly
sequential; after the last attempt the original error is re-raised
unchanged so callers always see the root cause.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from brale_core.exceptions import is_retryable
from brale_core.monitoring import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _default_should_retry(error: BaseException, attempt: int) -> bool:
    return is_retryable(error)


def _noop_on_retry(error: BaseException, attempt: int, delay: float) -> None:
    return None


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    """Maximum number of attempts (including initial attempt)"""

    initial_delay: float = 1.0
    """Delay before the first retry in seconds"""

    max_delay: float = 30.0
    """Maximum delay between retries in seconds"""

    backoff_multiplier: float = 2.0
    """Multiplier applied per attempt"""

    jitter: float = 0.1
    """Jitter fraction (0.0-1.0). 0.1 means +/-10% randomness"""

    should_retry: Callable[[BaseException, int], bool] = field(
        default=_default_should_retry
    )
    """Predicate deciding whether a failed attempt is retried"""

    on_retry: Callable[[BaseException, int, float], None] = field(
        default=_noop_on_retry
    )
    """Callback invoked before sleeping: (error, attempt, delay)"""

    def validate(self) -> "RetryConfig":
        """Raise ValueError for settings that cannot describe a retry policy."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")
        return self


class Retry:
    """
    Retry handler with exponential backoff.

    Example:
        retry = Retry(RetryConfig(max_attempts=5))

        result = await retry.execute(fetch_account, account_id)

        # Or compose once and call many times
        fetch = retry.wrap(fetch_account)
        result = await fetch(account_id)
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = (config or RetryConfig()).validate()

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay after a failed attempt.

        Args:
            attempt: Attempt that just failed (1-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.config.initial_delay * (
            self.config.backoff_multiplier ** (attempt - 1)
        )
        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            jitter_range = delay * self.config.jitter
            delay = max(0.0, delay + random.uniform(-jitter_range, jitter_range))

        return delay

    async def execute(
        self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """
        Execute async operation with retry logic.

        Args:
            operation: Async callable to execute
            *args: Positional arguments for operation
            **kwargs: Keyword arguments for operation

        Returns:
            Operation result

        Raises:
            Exception: The last error raised by operation, unchanged
        """
        max_attempts = self.config.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                result = await operation(*args, **kwargs)
            except Exception as e:
                if attempt >= max_attempts:
                    logger.warning(
                        f"All {max_attempts} attempts exhausted. "
                        f"Last error: {type(e).__name__}: {e}"
                    )
                    raise

                if not self.config.should_retry(e, attempt):
                    logger.debug(f"Non-retryable exception: {type(e).__name__}: {e}")
                    raise

                delay = self.calculate_delay(attempt)
                logger.warning(
                    f"{type(e).__name__}: {e}. "
                    f"Attempt {attempt}/{max_attempts}. "
                    f"Retrying in {delay:.2f}s..."
                )
                metrics.retry_attempts_total.labels(
                    error_type=type(e).__name__
                ).inc()
                self.config.on_retry(e, attempt, delay)
                await asyncio.sleep(delay)
                continue

            if attempt > 1:
                logger.info(
                    f"Operation succeeded on attempt {attempt}/{max_attempts}"
                )
            return result

        # Should never reach here
        raise RuntimeError("Unexpected retry exhaustion")

    def wrap(
        self, operation: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """
        Return operation wrapped with this retry policy.

        Example:
            fetch = Retry(RetryConfig(max_attempts=3)).wrap(fetch_account)
        """

        @wraps(operation)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(operation, *args, **kwargs)

        return wrapper


async def retry(
    operation: Callable[[], Awaitable[T]], config: Optional[RetryConfig] = None
) -> T:
    """
    Run a zero-argument async operation with retry.

    Example:
        token = await retry(lambda: client.post("/oauth2/token"), config)
    """
    return await Retry(config).execute(operation)


def with_retry(
    operation: Callable[..., Awaitable[T]], config: Optional[RetryConfig] = None
) -> Callable[..., Awaitable[T]]:
    """Compose operation with a retry policy."""
    return Retry(config).wrap(operation)


__all__ = [
    "Retry",
    "RetryConfig",
    "retry",
    "with_retry",
]
