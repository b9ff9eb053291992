"""
Resilience patterns for outbound Brale API calls.

This module provides:
- Retry: Automatic retry with exponential backoff and jitter
- Circuit Breaker: Fast-fails calls to a degraded dependency
- Idempotency: Key generation and at-most-once result caching
"""

from brale_core.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
)
from brale_core.resilience.idempotency import (
    IDEMPOTENCY_HEADER,
    IdempotencyKey,
    IdempotencyManager,
    IdempotencyRecord,
    IdempotencyStore,
    generate_deterministic_key,
    generate_idempotency_key,
    idempotency_headers,
    make_idempotent,
    validate_idempotency_key,
)
from brale_core.resilience.policy import with_resilience
from brale_core.resilience.retry import (
    Retry,
    RetryConfig,
    retry,
    with_retry,
)

__all__ = [
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    # Retry
    "Retry",
    "RetryConfig",
    "retry",
    "with_retry",
    "with_resilience",
    # Idempotency
    "IDEMPOTENCY_HEADER",
    "IdempotencyKey",
    "IdempotencyManager",
    "IdempotencyRecord",
    "IdempotencyStore",
    "generate_deterministic_key",
    "generate_idempotency_key",
    "idempotency_headers",
    "make_idempotent",
    "validate_idempotency_key",
]
