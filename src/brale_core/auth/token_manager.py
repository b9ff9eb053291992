"""
OAuth2 client-credentials token manager.

Caches the access token, refreshes it ahead of expiry and makes sure that
concurrent callers share one in-flight exchange with the token endpoint.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from brale_core.auth.bearer import BearerTokenAuth
from brale_core.auth.credential_rotation import (
    CredentialRotationMonitor,
    Credentials,
    RotationConfig,
    RotationMetadata,
    RotationProvider,
)
from brale_core.auth.credential_validator import (
    detect_credential_exposure,
    mask_credential,
    validate_credentials,
)
from brale_core.auth.token_storage import SecureTokenStorage
from brale_core.exceptions import BraleError
from brale_core.monitoring import metrics
from brale_core.resilience.retry import Retry, RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_AUTH_URL = "https://auth.brale.xyz"
DEFAULT_SAFETY_MARGIN = 300.0
DEFAULT_EXPIRES_IN = 3600.0


@dataclass(frozen=True)
class AccessToken:
    """Bearer token returned by the token endpoint."""

    value: str
    token_type: str
    expires_at: datetime
    scope: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"AccessToken(token_type={self.token_type!r}, "
            f"expires_at={self.expires_at.isoformat()!r})"
        )


@dataclass
class AuthConfig:
    """
    Token endpoint configuration.

    Attributes:
        client_id: OAuth2 client id
        client_secret: OAuth2 client secret
        auth_url: Base URL of the authorization server
        timeout: HTTP timeout in seconds for an owned client
        debug: Debug mode (flags credential exposure risk)
        safety_margin: Seconds before expiry at which a token is refreshed
    """

    client_id: str
    client_secret: str
    auth_url: str = DEFAULT_AUTH_URL
    timeout: float = 30.0
    debug: bool = False
    safety_margin: float = DEFAULT_SAFETY_MARGIN

    def __repr__(self) -> str:
        return (
            f"AuthConfig(client_id={mask_credential(self.client_id)!r}, "
            f"auth_url={self.auth_url!r})"
        )


class TokenManager:
    """
    Client-credentials token manager.

    Example:
        async with TokenManager(AuthConfig(client_id, client_secret)) as tokens:
            token = await tokens.get_access_token()

            async with tokens.create_authenticated_client(
                "https://api.brale.xyz"
            ) as api:
                response = await api.get("/accounts")
    """

    def __init__(
        self,
        config: AuthConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_config: Optional[RetryConfig] = None,
        storage: Optional[SecureTokenStorage] = None,
        rotation_monitor: Optional[CredentialRotationMonitor] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize token manager.

        Args:
            config: Credentials and token endpoint settings
            http_client: Client used for the token endpoint (owned if None)
            retry_config: Retry policy for the token exchange (None = no retry)
            storage: Optional persistent token storage
            rotation_monitor: Monitor used by the rotation methods
            clock: Unix time source

        Raises:
            BraleError: validation error if credentials are missing
        """
        if not config.client_id or not config.client_secret:
            missing = "client_id" if not config.client_id else "client_secret"
            raise BraleError.validation(
                "client_id and client_secret are required",
                context={"field": missing},
            )

        self.config = config
        self.auth_url = config.auth_url.rstrip("/")
        self._http_client = http_client
        self._owns_client = http_client is None
        self._retry = Retry(retry_config) if retry_config is not None else None
        self._storage = storage
        self._rotation = rotation_monitor or CredentialRotationMonitor()
        self._clock = clock

        self._token: Optional[AccessToken] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._generation = 0

        self._check_credentials()

    def _check_credentials(self) -> None:
        result = validate_credentials(self.config.client_id, self.config.client_secret)
        for issue in result.issues:
            logger.warning(
                f"Credential check: {issue}",
                extra={"client_id": mask_credential(self.config.client_id)},
            )
        for risk in detect_credential_exposure(self.config):
            logger.warning(f"Credential exposure risk: {risk}")

    # ================================================================
    # HTTP client lifecycle
    # ================================================================

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout)
            self._owns_client = True
        return self._http_client

    async def aclose(self) -> None:
        """Cancel a pending refresh and close an owned HTTP client."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        self._rotation.disable()
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "TokenManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ================================================================
    # Token access
    # ================================================================

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _is_fresh(self, token: AccessToken) -> bool:
        remaining = (token.expires_at - self._now()).total_seconds()
        return remaining > self.config.safety_margin

    async def get_access_token(self) -> str:
        """
        Return a valid access token, refreshing if needed.

        Concurrent callers share a single refresh; all of them receive the
        same token or observe the same error.

        Raises:
            BraleError: auth (401/403), network, or api error from the exchange
        """
        token = self._token
        if token is not None and self._is_fresh(token):
            metrics.token_cache_hits_total.inc()
            return token.value

        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh())
            task.add_done_callback(_retrieve_exception)
            self._refresh_task = task

        # Shield: a cancelled caller must not cancel the shared refresh
        token = await asyncio.shield(task)
        return token.value

    async def _refresh(self) -> AccessToken:
        # A clear_token() during the exchange bumps the generation; the
        # result is then returned to awaiters but not cached or stored
        generation = self._generation
        try:
            if self._storage is not None and self._token is None:
                restored = await self._restore_from_storage(self._storage)
                if restored is not None:
                    if generation == self._generation:
                        self._token = restored
                    return restored

            started = time.perf_counter()
            try:
                if self._retry is not None:
                    token = await self._retry.execute(self._request_token)
                else:
                    token = await self._request_token()
            except Exception:
                metrics.token_refresh_total.labels(status="failure").inc()
                raise
            metrics.token_refresh_total.labels(status="success").inc()
            metrics.token_refresh_duration_seconds.observe(
                time.perf_counter() - started
            )

            if generation != self._generation:
                logger.debug("Token cleared during refresh; result not cached")
                return token

            self._token = token
            if self._storage is not None:
                await self._persist(self._storage, token)
            return token
        finally:
            if self._refresh_task is asyncio.current_task():
                self._refresh_task = None

    async def _request_token(self) -> AccessToken:
        client = self._get_client()
        try:
            response = await client.post(
                f"{self.auth_url}/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.config.client_id, self.config.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as e:
            logger.error(f"Token request failed: {type(e).__name__}: {e}")
            raise BraleError.network(f"Token request failed: {e}", cause=e) from e

        if response.status_code in (401, 403):
            raise BraleError.auth(
                "Authentication failed - check your client credentials",
                status=response.status_code,
                context={"client_id": mask_credential(self.config.client_id)},
                request_id=response.headers.get("x-request-id"),
            )
        if response.status_code >= 400:
            raise BraleError.from_httpx_response(response)

        try:
            payload = response.json()
        except ValueError as e:
            raise BraleError.api(
                "Token endpoint returned invalid JSON",
                status=response.status_code,
            ) from e

        value = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(value, str) or not value:
            raise BraleError.api(
                "Token endpoint response is missing access_token",
                status=response.status_code,
            )

        expires_in = float(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
        token = AccessToken(
            value=value,
            token_type=payload.get("token_type") or "Bearer",
            expires_at=datetime.fromtimestamp(
                self._clock() + expires_in, tz=timezone.utc
            ),
            scope=payload.get("scope"),
        )
        logger.info(
            "Access token refreshed",
            extra={
                "client_id": mask_credential(self.config.client_id),
                "expires_at": token.expires_at.isoformat(),
            },
        )
        return token

    # ================================================================
    # Storage
    # ================================================================

    async def _persist(self, storage: SecureTokenStorage, token: AccessToken) -> None:
        record: Dict[str, Any] = {
            "access_token": token.value,
            "token_type": token.token_type,
            "expires_at": token.expires_at.timestamp(),
            "scope": token.scope,
        }
        await storage.store_token(record)

    async def _restore_from_storage(
        self, storage: SecureTokenStorage
    ) -> Optional[AccessToken]:
        data = await storage.retrieve_token()
        if not data or not data.get("access_token"):
            return None

        token = AccessToken(
            value=data["access_token"],
            token_type=data.get("token_type") or "Bearer",
            expires_at=datetime.fromtimestamp(
                float(data.get("expires_at", 0)), tz=timezone.utc
            ),
            scope=data.get("scope"),
        )
        if not self._is_fresh(token):
            return None

        logger.debug("Access token restored from storage")
        return token

    # ================================================================
    # Revocation
    # ================================================================

    async def revoke_token(self) -> None:
        """
        Revoke the current token and clear it locally.

        Endpoint failures are logged and ignored; the local cache is always
        cleared.
        """
        token = self._token
        if token is not None:
            try:
                response = await self._get_client().post(
                    f"{self.auth_url}/oauth2/revoke",
                    data={"token": token.value},
                    auth=(self.config.client_id, self.config.client_secret),
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"Token revocation failed: {type(e).__name__}: {e}")

        await self.clear_token()

    async def clear_token(self) -> None:
        """
        Forget the cached token (and the stored one, if storage is set).

        A refresh already in flight still resolves its awaiters, but its
        token is not cached; the next get_access_token() starts a new one.
        """
        self._generation += 1
        self._token = None
        self._refresh_task = None
        if self._storage is not None:
            await self._storage.clear_token()

    def is_authenticated(self) -> bool:
        """Check if a cached token exists and is outside the safety margin."""
        return self._token is not None and self._is_fresh(self._token)

    def get_token_expiration(self) -> Optional[datetime]:
        return self._token.expires_at if self._token is not None else None

    # ================================================================
    # Authenticated client
    # ================================================================

    def create_authenticated_client(
        self, base_url: str, timeout: Optional[float] = None, **kwargs: Any
    ) -> httpx.AsyncClient:
        """
        Create an HTTP client that sends ``Authorization: Bearer <token>``.

        The caller owns the returned client and must close it.
        """
        return httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout if timeout is not None else self.config.timeout,
            auth=BearerTokenAuth(self),
            **kwargs,
        )

    # ================================================================
    # Credential rotation
    # ================================================================

    def enable_credential_rotation(
        self,
        provider: RotationProvider,
        config: Optional[RotationConfig] = None,
    ) -> None:
        self._rotation.enable(provider, config, client_id=self.config.client_id)

    def disable_credential_rotation(self) -> None:
        self._rotation.disable()

    def get_rotation_status(self) -> RotationMetadata:
        return self._rotation.get_rotation_status()

    async def rotate_credentials(self) -> Credentials:
        """
        Fetch new credentials through the rotation monitor.

        The cached token is cleared; the caller applies the returned
        credentials (e.g. by building a new TokenManager).
        """
        credentials = await self._rotation.rotate_credentials()
        await self.clear_token()
        return credentials


def _retrieve_exception(task: asyncio.Task) -> None:
    # Marks the error as retrieved when every awaiter was cancelled
    if not task.cancelled():
        task.exception()


__all__ = [
    "AccessToken",
    "AuthConfig",
    "TokenManager",
]
