"""
Lifecycle container for brale_core.

Builds the token manager, resilience policies and idempotency store from
Settings, and owns their startup and teardown.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from brale_core.auth.token_manager import TokenManager
from brale_core.auth.token_storage import FileTokenSink, SecureTokenStorage
from brale_core.config.settings import Settings, get_settings
from brale_core.monitoring import setup_logging
from brale_core.resilience.circuit_breaker import CircuitBreaker
from brale_core.resilience.idempotency import IdempotencyManager, IdempotencyStore
from brale_core.resilience.policy import with_resilience
from brale_core.resilience.redis_idempotency_store import RedisIdempotencyStore
from brale_core.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BraleCore:
    """
    Dependency container.

    Components are created lazily on first access and released by close().

    Example:
        async with BraleCore.from_settings(get_settings()) as core:
            token = await core.token_manager.get_access_token()
            create = core.resilient(transfers_api.create)
    """

    def __init__(self, settings: Settings):
        """
        Initialize container with settings.

        Args:
            settings: Settings instance
        """
        self.settings = settings

        self._token_manager: Optional[TokenManager] = None
        self._token_storage: Optional[SecureTokenStorage] = None
        self._circuit_breaker: Optional[CircuitBreaker] = None
        self._retry_config: Optional[RetryConfig] = None
        self._idempotency_manager: Optional[IdempotencyManager] = None
        self._redis_store: Optional[RedisIdempotencyStore] = None
        self._started = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BraleCore":
        return cls(settings or get_settings())

    # ================================================================
    # Lifecycle
    # ================================================================

    async def start(self) -> None:
        """Configure logging and start background cleanup."""
        if self._started:
            return

        setup_logging(self.settings.LOG_LEVEL, self.settings.LOG_JSON)
        self.idempotency_manager.start_cleanup()
        self._started = True
        logger.info(
            "brale_core started",
            extra={"env": self.settings.ENV, "auth_url": self.settings.BRALE_AUTH_URL},
        )

    async def close(self) -> None:
        """Cleanup resources and close connections."""
        if self._token_manager is not None:
            await self._token_manager.aclose()
            self._token_manager = None

        if self._idempotency_manager is not None:
            await self._idempotency_manager.stop_cleanup()

        if self._redis_store is not None:
            await self._redis_store.close()
            self._redis_store = None

        self._started = False

    async def __aenter__(self) -> "BraleCore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ================================================================
    # Components
    # ================================================================

    @property
    def token_storage(self) -> Optional[SecureTokenStorage]:
        """Get token storage, or None if storage is disabled."""
        if not self.settings.TOKEN_STORAGE_ENABLED:
            return None
        if self._token_storage is None:
            sink = (
                FileTokenSink(self.settings.TOKEN_STORAGE_DIR)
                if self.settings.TOKEN_STORAGE_DIR
                else None
            )
            self._token_storage = SecureTokenStorage(
                sink=sink,
                encrypt=self.settings.TOKEN_STORAGE_ENCRYPT,
                encryption_key=self.settings.TOKEN_ENCRYPTION_KEY,
            )
        return self._token_storage

    @property
    def retry_config(self) -> RetryConfig:
        if self._retry_config is None:
            self._retry_config = self.settings.retry_config()
        return self._retry_config

    @property
    def token_manager(self) -> TokenManager:
        if self._token_manager is None:
            self._token_manager = TokenManager(
                self.settings.auth_config(),
                retry_config=self.retry_config,
                storage=self.token_storage,
            )
        return self._token_manager

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the breaker guarding Brale API calls."""
        if self._circuit_breaker is None:
            self._circuit_breaker = CircuitBreaker(
                "brale_api", self.settings.circuit_breaker_config()
            )
        return self._circuit_breaker

    @property
    def idempotency_manager(self) -> IdempotencyManager:
        if self._idempotency_manager is None:
            self._idempotency_manager = IdempotencyManager(
                ttl=self.settings.IDEMPOTENCY_TTL_SECONDS
            )
        return self._idempotency_manager

    @property
    def idempotency_store(self) -> IdempotencyStore:
        """Get Redis store when REDIS_URL is set, else the in-memory manager."""
        if not self.settings.REDIS_URL:
            return self.idempotency_manager
        if self._redis_store is None:
            self._redis_store = RedisIdempotencyStore.from_url(
                self.settings.REDIS_URL,
                ttl=self.settings.IDEMPOTENCY_TTL_SECONDS,
            )
        return self._redis_store

    def resilient(
        self, operation: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """Wrap operation with the container's breaker and retry policy."""
        return with_resilience(operation, self.circuit_breaker, self.retry_config)


__all__ = ["BraleCore"]
