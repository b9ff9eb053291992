"""
brale_core - credential and resilience layer for Brale API clients.

This package provides:
- TokenManager: OAuth2 client-credentials tokens with single-flight refresh
- SecureTokenStorage: AES-256-GCM encrypted token persistence
- CredentialRotationMonitor: credential age tracking and rotation events
- Retry / CircuitBreaker / with_resilience: outbound call policies
- IdempotencyManager / make_idempotent: idempotency keys and result caching
- BraleCore: container wiring the above from Settings
"""

from brale_core.auth import (
    AccessToken,
    AuthConfig,
    BearerTokenAuth,
    CredentialRotationMonitor,
    Credentials,
    InMemoryRotationProvider,
    RotationConfig,
    RotationProvider,
    SecureTokenStorage,
    TokenManager,
)
from brale_core.container import BraleCore
from brale_core.exceptions import (
    BraleError,
    ErrorKind,
    is_client_error,
    is_retryable,
    is_server_error,
)
from brale_core.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
    IdempotencyKey,
    IdempotencyManager,
    Retry,
    RetryConfig,
    generate_deterministic_key,
    generate_idempotency_key,
    make_idempotent,
    retry,
    validate_idempotency_key,
    with_resilience,
    with_retry,
)

__version__ = "0.1.0"

__all__ = [
    "AccessToken",
    "AuthConfig",
    "BearerTokenAuth",
    "BraleCore",
    "BraleError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CredentialRotationMonitor",
    "Credentials",
    "ErrorKind",
    "IdempotencyKey",
    "IdempotencyManager",
    "InMemoryRotationProvider",
    "Retry",
    "RetryConfig",
    "RotationConfig",
    "RotationProvider",
    "SecureTokenStorage",
    "TokenManager",
    "generate_deterministic_key",
    "generate_idempotency_key",
    "is_client_error",
    "is_retryable",
    "is_server_error",
    "make_idempotent",
    "retry",
    "validate_idempotency_key",
    "with_resilience",
    "with_retry",
]
