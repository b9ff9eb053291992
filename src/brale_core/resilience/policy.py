"""
Composition of circuit breaker and retry.

The breaker sits outside the retry loop: one exhausted retry sequence
counts as a single breaker failure, and an open breaker is never retried.
"""

from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from brale_core.resilience.circuit_breaker import CircuitBreaker
from brale_core.resilience.retry import Retry, RetryConfig

T = TypeVar("T")


def with_resilience(
    operation: Callable[..., Awaitable[T]],
    breaker: Optional[CircuitBreaker] = None,
    retry_config: Optional[RetryConfig] = None,
) -> Callable[..., Awaitable[T]]:
    """
    Wrap operation with retry and, optionally, a circuit breaker.

    Args:
        operation: Async callable performing the outbound call
        breaker: Breaker guarding the dependency (None = no breaker)
        retry_config: Retry policy (None = defaults)

    Returns:
        Async callable with the same signature as operation

    Example:
        breaker = CircuitBreaker("brale_api")
        create_transfer = with_resilience(
            transfers_api.create, breaker, RetryConfig(max_attempts=3)
        )
        transfer = await create_transfer(payload, headers=headers)
    """
    retrying = Retry(retry_config)

    @wraps(operation)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        if breaker is None:
            return await retrying.execute(operation, *args, **kwargs)
        return await breaker.execute(retrying.execute, operation, *args, **kwargs)

    return wrapper


__all__ = ["with_resilience"]
