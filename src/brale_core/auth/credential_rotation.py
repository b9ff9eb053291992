"""
Credential rotation monitoring.

Tracks the age of the OAuth2 client credentials against configurable
thresholds, emits rotation events, and fetches replacement credentials from
a pluggable provider. The monitor never swaps in-use credentials itself;
rotate_credentials() returns the new pair for the caller to apply.
"""

import asyncio
import logging
import math
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from brale_core.auth.credential_validator import mask_credential
from brale_core.monitoring import metrics

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class RotationStatus(str, Enum):
    """Credential health classification."""

    HEALTHY = "healthy"
    WARNING = "warning"
    URGENT = "urgent"
    EXPIRED = "expired"


class RotationEventType(str, Enum):
    """Kinds of rotation events."""

    WARNING = "warning"
    URGENT = "urgent"
    ROTATION_NEEDED = "rotation_needed"
    ROTATION_STARTED = "rotation_started"
    ROTATION_COMPLETED = "rotation_completed"
    ROTATION_FAILED = "rotation_failed"


@dataclass(frozen=True)
class Credentials:
    """OAuth2 client credentials pair."""

    client_id: str
    client_secret: str

    def __repr__(self) -> str:
        return f"Credentials(client_id={mask_credential(self.client_id)!r})"


@dataclass
class RotationConfig:
    """
    Rotation thresholds.

    Attributes:
        check_interval: Seconds between automatic checks
        warning_threshold_days: Days before expiration to warn
        urgent_threshold_days: Days before expiration to escalate
        max_credential_age_days: Age at which credentials count as expired
    """

    check_interval: float = SECONDS_PER_DAY
    warning_threshold_days: int = 30
    urgent_threshold_days: int = 7
    max_credential_age_days: int = 90


@dataclass
class CredentialMetadata:
    """What the monitor knows about the registered credentials."""

    credential_id: str
    created_at: datetime
    last_rotated: datetime
    environment: str = "unknown"
    expires_at: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProviderMetadata:
    """Metadata a RotationProvider reports about current credentials."""

    last_rotated: Optional[datetime] = None
    expires_at: Optional[datetime] = None


@dataclass
class RotationMetadata:
    """Rotation status snapshot, recomputed on every request."""

    enabled: bool
    status: Optional[RotationStatus] = None
    days_since_last_rotation: Optional[int] = None
    days_until_expiration: Optional[int] = None
    last_rotated: Optional[datetime] = None


@dataclass
class RotationEvent:
    """Event emitted to listeners."""

    type: RotationEventType
    timestamp: datetime
    credential_id: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)


RotationListener = Callable[[RotationEvent], None]


class RotationProvider(ABC):
    """Source of replacement credentials."""

    @abstractmethod
    async def fetch_new_credentials(self) -> Credentials:
        """Retrieve new credentials."""

    def get_metadata(self) -> Optional[ProviderMetadata]:
        """Report when the current credentials were rotated / expire."""
        return None

    async def has_new_credentials(self) -> bool:
        return True

    async def validate_credentials(self, credentials: Credentials) -> bool:
        return True

    async def revoke_credentials(self, client_id: str) -> None:
        return None


class InMemoryRotationProvider(RotationProvider):
    """
    Rotation provider holding credentials in memory.

    For development and testing.
    """

    def __init__(
        self,
        new_credentials: Optional[Credentials] = None,
        metadata: Optional[ProviderMetadata] = None,
    ):
        self._new_credentials = new_credentials
        self._metadata = metadata

    def set_new_credentials(self, credentials: Credentials) -> None:
        self._new_credentials = credentials

    def get_metadata(self) -> Optional[ProviderMetadata]:
        return self._metadata

    async def has_new_credentials(self) -> bool:
        return self._new_credentials is not None

    async def fetch_new_credentials(self) -> Credentials:
        if self._new_credentials is None:
            raise RuntimeError("No new credentials available")
        return self._new_credentials


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _days_between(start: datetime, end: datetime) -> int:
    return math.ceil(abs((end - start).total_seconds()) / SECONDS_PER_DAY)


class CredentialRotationMonitor:
    """
    Tracks credential age and emits rotation events.

    Example:
        monitor = CredentialRotationMonitor(clock=_utcnow)
        monitor.add_listener(lambda event: alerts.send(event.message))
        monitor.enable(provider, RotationConfig(max_credential_age_days=60),
                       client_id=settings.BRALE_CLIENT_ID)

        if monitor.get_rotation_status().status != RotationStatus.HEALTHY:
            new_credentials = await monitor.rotate_credentials()
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self.config = RotationConfig()
        self._provider: Optional[RotationProvider] = None
        self._metadata: Optional[CredentialMetadata] = None
        self._listeners: List[RotationListener] = []
        self._check_task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self._provider is not None

    @property
    def metadata(self) -> Optional[CredentialMetadata]:
        return self._metadata

    # ================================================================
    # Lifecycle
    # ================================================================

    def enable(
        self,
        provider: RotationProvider,
        config: Optional[RotationConfig] = None,
        client_id: str = "",
        environment: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Begin tracking credential age.

        Args:
            provider: Source of replacement credentials and metadata
            config: Thresholds (defaults if None)
            client_id: Client id being tracked (stored masked)
            environment: Deployment environment label
            tags: Free-form labels
        """
        self._provider = provider
        self.config = config or RotationConfig()

        now = self._clock()
        provided = provider.get_metadata()
        last_rotated = (provided.last_rotated if provided else None) or now
        self._metadata = CredentialMetadata(
            credential_id=mask_credential(client_id),
            created_at=last_rotated,
            last_rotated=last_rotated,
            environment=environment or os.getenv("ENV", "unknown"),
            expires_at=provided.expires_at if provided else None,
            tags=tags or {"service": "brale-api"},
        )

        logger.info(
            "Credentials registered for rotation monitoring",
            extra={
                "credential_id": self._metadata.credential_id,
                "environment": self._metadata.environment,
            },
        )

        self._start_checks()
        self.check_rotation_needs()

    def disable(self) -> None:
        """Stop tracking and drop listeners."""
        self._stop_checks()
        self._provider = None
        self._metadata = None
        self._listeners.clear()
        logger.info("Credential rotation monitoring stopped")

    def _start_checks(self) -> None:
        self._stop_checks()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: callers invoke check_rotation_needs() themselves
            return
        self._check_task = loop.create_task(self._check_loop())

    def _stop_checks(self) -> None:
        if self._check_task is not None:
            self._check_task.cancel()
            self._check_task = None

    async def _check_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.check_interval)
            self.check_rotation_needs()

    # ================================================================
    # Events
    # ================================================================

    def add_listener(self, listener: RotationListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: RotationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(
        self,
        event_type: RotationEventType,
        message: str,
        credential_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> RotationEvent:
        event = RotationEvent(
            type=event_type,
            timestamp=self._clock(),
            credential_id=credential_id
            or (self._metadata.credential_id if self._metadata else "***"),
            message=message,
            context=context or {},
        )

        metrics.rotation_events_total.labels(event_type=event_type.value).inc()
        if event_type == RotationEventType.ROTATION_FAILED:
            log = logger.error
        elif event_type in (
            RotationEventType.URGENT,
            RotationEventType.ROTATION_NEEDED,
        ):
            log = logger.warning
        else:
            log = logger.info
        log(
            f"Credential rotation event: {event_type.value}: {message}",
            extra={"credential_id": event.credential_id, **event.context},
        )

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    f"Rotation listener failed for event {event_type.value}"
                )
        return event

    # ================================================================
    # Status
    # ================================================================

    def _ages(self, metadata: CredentialMetadata) -> tuple[int, int]:
        now = self._clock()
        days_since = _days_between(metadata.last_rotated, now)
        days_until = self.config.max_credential_age_days - days_since
        if metadata.expires_at is not None:
            remaining = (metadata.expires_at - now).total_seconds()
            days_until = min(days_until, math.floor(remaining / SECONDS_PER_DAY))
        return days_since, days_until

    def _classify(self, days_since: int, days_until: int) -> RotationStatus:
        if days_since >= self.config.max_credential_age_days or days_until <= 0:
            return RotationStatus.EXPIRED
        if days_until <= self.config.urgent_threshold_days:
            return RotationStatus.URGENT
        if days_until <= self.config.warning_threshold_days:
            return RotationStatus.WARNING
        return RotationStatus.HEALTHY

    def get_rotation_status(self) -> RotationMetadata:
        """Classify current credential age."""
        if self._metadata is None:
            return RotationMetadata(enabled=False)

        days_since, days_until = self._ages(self._metadata)
        return RotationMetadata(
            enabled=True,
            status=self._classify(days_since, days_until),
            days_since_last_rotation=days_since,
            days_until_expiration=days_until,
            last_rotated=self._metadata.last_rotated,
        )

    def check_rotation_needs(self) -> Optional[RotationEvent]:
        """
        Emit an event if credentials are near or past expiration.

        Returns:
            The emitted event, or None when credentials are healthy
        """
        if self._metadata is None:
            logger.warning("No credentials registered for rotation monitoring")
            return None

        days_since, days_until = self._ages(self._metadata)
        status = self._classify(days_since, days_until)

        if status == RotationStatus.EXPIRED:
            return self._emit(
                RotationEventType.ROTATION_NEEDED,
                f"Credentials have exceeded maximum age of "
                f"{self.config.max_credential_age_days} days",
                context={"days_since_last_rotation": days_since, "urgency": "immediate"},
            )
        if status == RotationStatus.URGENT:
            return self._emit(
                RotationEventType.URGENT,
                f"Credentials will expire in {days_until} days - "
                f"urgent rotation needed",
                context={"days_until_expiration": days_until, "urgency": "urgent"},
            )
        if status == RotationStatus.WARNING:
            return self._emit(
                RotationEventType.WARNING,
                f"Credentials will expire in {days_until} days - "
                f"plan rotation soon",
                context={"days_until_expiration": days_until, "urgency": "warning"},
            )
        return None

    # ================================================================
    # Rotation
    # ================================================================

    async def rotate_credentials(self) -> Credentials:
        """
        Fetch replacement credentials from the provider.

        Returns:
            New credentials for the caller to apply

        Raises:
            RuntimeError: If monitoring is not enabled or the provider has
                nothing usable
            Exception: Any provider error, after a rotation_failed event
        """
        if self._provider is None or self._metadata is None:
            raise RuntimeError(
                "Credential rotation is not enabled. Call enable() first."
            )

        started = time.monotonic()
        old_credential_id = self._metadata.credential_id
        self._emit(
            RotationEventType.ROTATION_STARTED,
            "Credential rotation process started",
            credential_id=old_credential_id,
        )

        try:
            if not await self._provider.has_new_credentials():
                raise RuntimeError("No new credentials available from provider")

            new_credentials = await self._provider.fetch_new_credentials()

            if not await self._provider.validate_credentials(new_credentials):
                raise RuntimeError("New credentials failed validation")
        except Exception as e:
            self._emit(
                RotationEventType.ROTATION_FAILED,
                f"Credential rotation failed: {e}",
                credential_id=old_credential_id,
                context={
                    "error": str(e),
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                },
            )
            raise

        self._metadata = replace(
            self._metadata,
            last_rotated=self._clock(),
            credential_id=mask_credential(new_credentials.client_id),
            expires_at=None,
        )

        self._emit(
            RotationEventType.ROTATION_COMPLETED,
            "Credential rotation completed successfully",
            context={
                "old_credential_id": old_credential_id,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return new_credentials


__all__ = [
    "CredentialMetadata",
    "CredentialRotationMonitor",
    "Credentials",
    "InMemoryRotationProvider",
    "ProviderMetadata",
    "RotationConfig",
    "RotationEvent",
    "RotationEventType",
    "RotationListener",
    "RotationMetadata",
    "RotationProvider",
    "RotationStatus",
]
