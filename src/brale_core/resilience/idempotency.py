"""
Idempotency pattern for at-most-once execution per key.

Mutating Brale API calls carry an ``Idempotency-Key`` header. This module
generates those keys, validates them, and caches results per key for a
bounded time so a repeated call returns the first result instead of
executing again.

Example:
    manager = IdempotencyManager(ttl=3600)

    create = make_idempotent(
        transfers_api.create,
        lambda payload: IdempotencyKey.for_transfer(**payload),
        manager,
    )

    first = await create(payload)
    again = await create(payload)  # cached, transfers_api.create not called
    assert first is again
"""

import asyncio
import hashlib
import json
import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from functools import wraps
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from brale_core.exceptions import BraleError
from brale_core.monitoring import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

IDEMPOTENCY_HEADER = "Idempotency-Key"

DEFAULT_TTL_SECONDS = 24 * 60 * 60
MAX_CLEANUP_INTERVAL_SECONDS = 60 * 60
DEFAULT_BUCKET_SECONDS = 60

MIN_KEY_LENGTH = 10
MAX_KEY_LENGTH = 128
_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_BASE36_DIGITS = string.digits + string.ascii_lowercase


# ================================================================
# Key generation
# ================================================================


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def _with_prefix(key: str, prefix: Optional[str]) -> str:
    return f"{prefix}-{key}" if prefix else key


def generate_idempotency_key(prefix: Optional[str] = None) -> str:
    """
    Generate a unique idempotency key.

    Args:
        prefix: Optional prefix for the key

    Returns:
        ``[prefix-]<base36 ms timestamp>-<32 hex chars>``
    """
    timestamp = to_base36(int(time.time() * 1000))
    return _with_prefix(f"{timestamp}-{secrets.token_hex(16)}", prefix)


def canonicalize_params(params: Mapping[str, Any]) -> str:
    """Serialize params as sorted ``key=<json value>`` pairs joined by ``&``."""
    return "&".join(
        f"{key}={json.dumps(params[key], sort_keys=True, separators=(',', ':'), default=str)}"
        for key in sorted(params)
    )


def generate_deterministic_key(
    params: Mapping[str, Any],
    prefix: Optional[str] = None,
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
    timestamp: Optional[float] = None,
) -> str:
    """
    Generate an idempotency key derived from request parameters.

    Identical parameter sets produce identical keys within one time bucket,
    regardless of key order.

    Args:
        params: Request parameters
        prefix: Optional prefix for the key
        bucket_seconds: Width of the timestamp bucket
        timestamp: Unix time to bucket (defaults to now)

    Returns:
        ``[prefix-]<base36 bucket>-<16 hex chars>``
    """
    digest = hashlib.sha256(canonicalize_params(params).encode()).hexdigest()[:16]
    now = time.time() if timestamp is None else timestamp
    bucket = to_base36(int(now // bucket_seconds))
    return _with_prefix(f"{bucket}-{digest}", prefix)


def validate_idempotency_key(key: Any) -> bool:
    """
    Validate an idempotency key format.

    Keys must be strings of 10-128 characters drawn from
    ``[A-Za-z0-9_-]``.
    """
    if not isinstance(key, str):
        return False
    if not MIN_KEY_LENGTH <= len(key) <= MAX_KEY_LENGTH:
        return False
    return bool(_KEY_PATTERN.match(key))


def idempotency_headers(
    key: str, headers: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """Return a copy of headers with the Idempotency-Key header attached."""
    if not validate_idempotency_key(key):
        raise BraleError.validation(
            f"Invalid idempotency key: {key}", context={"key": key}
        )
    merged = dict(headers or {})
    merged[IDEMPOTENCY_HEADER] = key
    return merged


class IdempotencyKey:
    """
    Standard deterministic keys for mutating operations.
    """

    @staticmethod
    def for_transfer(
        account_id: str,
        amount: str,
        currency: str,
        source_type: str,
        source_id: str,
        dest_type: str,
        dest_id: str,
        timestamp: Optional[float] = None,
    ) -> str:
        """
        Generate key for a transfer.

        Example:
            key = IdempotencyKey.for_transfer(
                account_id="acc_123",
                amount="100",
                currency="SBC",
                source_type="wire",
                source_id="src_1",
                dest_type="base",
                dest_id="0xabc",
            )
            # "transfer-<bucket>-<hash>"
        """
        params = {
            "accountId": account_id,
            "amount": amount,
            "currency": currency,
            "sourceType": source_type,
            "sourceId": source_id,
            "destType": dest_type,
            "destId": dest_id,
        }
        return generate_deterministic_key(params, "transfer", timestamp=timestamp)

    @staticmethod
    def for_address(
        account_id: str,
        address: str,
        network: str,
        address_type: str,
        timestamp: Optional[float] = None,
    ) -> str:
        """Generate key for an address operation."""
        params = {
            "accountId": account_id,
            "address": address,
            "network": network,
            "type": address_type,
        }
        return generate_deterministic_key(params, "address", timestamp=timestamp)


# ================================================================
# Result cache
# ================================================================


@dataclass
class IdempotencyRecord:
    """Result cached for one idempotency key."""

    key: str
    created_at: float
    result: Any = None


@runtime_checkable
class IdempotencyStore(Protocol):
    """
    Protocol for idempotency record storage.

    IdempotencyManager keeps records in process memory; implementations
    backed by Redis or a database plug in here.
    """

    async def get_async(self, key: str) -> Optional[IdempotencyRecord]:
        """
        Get record for idempotency key.

        Returns:
            Unexpired record or None if not found
        """
        ...

    async def set_async(self, key: str, result: Any) -> None:
        """Store result for idempotency key."""
        ...

    async def delete_async(self, key: str) -> None:
        """Remove idempotency key."""
        ...


class IdempotencyManager:
    """
    In-memory idempotency key manager with TTL expiry.

    Data is lost on restart. Use RedisIdempotencyStore when keys must be
    shared between processes.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize manager.

        Args:
            ttl: Time to live for keys in seconds (default: 24 hours)
            clock: Time source in seconds
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._records: Dict[str, IdempotencyRecord] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    @property
    def cleanup_interval(self) -> float:
        return min(self.ttl / 4, MAX_CLEANUP_INTERVAL_SECONDS)

    def __len__(self) -> int:
        return len(self._records)

    def size(self) -> int:
        return len(self._records)

    def _is_expired(self, record: IdempotencyRecord, now: float) -> bool:
        return now - record.created_at > self.ttl

    def get_record(self, key: str) -> Optional[IdempotencyRecord]:
        """Return the unexpired record for key, evicting it if expired."""
        record = self._records.get(key)
        if record is None:
            return None

        if self._is_expired(record, self._clock()):
            del self._records[key]
            metrics.idempotency_keys_stored.set(len(self._records))
            return None

        return record

    def check_key(self, key: str, default: Any = None) -> Any:
        """
        Check if a key has been used recently.

        Args:
            key: Idempotency key
            default: Returned when the key is absent or expired

        Returns:
            The stored result, or default
        """
        record = self.get_record(key)
        if record is None:
            return default
        return record.result

    def mark_key_used(self, key: str, result: Any = None) -> None:
        """Store result for key, replacing any previous record."""
        self._records[key] = IdempotencyRecord(
            key=key, created_at=self._clock(), result=result
        )
        metrics.idempotency_keys_stored.set(len(self._records))

    def remove_key(self, key: str) -> None:
        self._records.pop(key, None)
        metrics.idempotency_keys_stored.set(len(self._records))

    def clear(self) -> None:
        self._records.clear()
        metrics.idempotency_keys_stored.set(0)

    def cleanup(self) -> int:
        """
        Remove all expired keys.

        Returns:
            Number of keys removed
        """
        now = self._clock()
        expired = [
            key
            for key, record in self._records.items()
            if self._is_expired(record, now)
        ]
        for key in expired:
            del self._records[key]

        metrics.idempotency_keys_stored.set(len(self._records))
        if expired:
            logger.debug(f"Removed {len(expired)} expired idempotency keys")
        return len(expired)

    # IdempotencyStore protocol

    async def get_async(self, key: str) -> Optional[IdempotencyRecord]:
        return self.get_record(key)

    async def set_async(self, key: str, result: Any) -> None:
        self.mark_key_used(key, result)

    async def delete_async(self, key: str) -> None:
        self.remove_key(key)

    # Periodic cleanup lifecycle

    def start_cleanup(self) -> None:
        """Start periodic cleanup on the running event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(
            self._cleanup_loop()
        )

    async def stop_cleanup(self) -> None:
        """Cancel periodic cleanup and wait for it to finish."""
        task = self._cleanup_task
        self._cleanup_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()


def make_idempotent(
    fn: Callable[..., Awaitable[T]],
    key_generator: Callable[..., str],
    store: Optional[IdempotencyStore] = None,
) -> Callable[..., Awaitable[T]]:
    """
    Wrap fn so it runs at most once per idempotency key.

    Args:
        fn: Async function to protect
        key_generator: Builds the key from fn's arguments
        store: Record storage (a fresh IdempotencyManager if omitted)

    Returns:
        Async function with fn's signature

    Raises:
        BraleError: kind ``validation`` when the generated key is invalid

    Failed calls are never cached, so a call that raised can be retried
    with the same key.
    """
    records: IdempotencyStore = store if store is not None else IdempotencyManager()

    @wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        key = key_generator(*args, **kwargs)
        if not validate_idempotency_key(key):
            raise BraleError.validation(
                f"Invalid idempotency key: {key}", context={"key": key}
            )

        cached = await records.get_async(key)
        if cached is not None:
            metrics.idempotency_lookups_total.labels(result="hit").inc()
            logger.info(
                f"Idempotent operation: returning cached result for key {key}"
            )
            return cached.result

        metrics.idempotency_lookups_total.labels(result="miss").inc()
        logger.debug(f"Idempotent operation: executing for key {key}")
        result = await fn(*args, **kwargs)

        await records.set_async(key, result)
        return result

    return wrapper


__all__ = [
    "IDEMPOTENCY_HEADER",
    "IdempotencyKey",
    "IdempotencyManager",
    "IdempotencyRecord",
    "IdempotencyStore",
    "canonicalize_params",
    "generate_deterministic_key",
    "generate_idempotency_key",
    "idempotency_headers",
    "make_idempotent",
    "to_base36",
    "validate_idempotency_key",
]
