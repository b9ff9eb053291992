"""
Prometheus metrics collection.
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================
# Token Metrics
# ============================================================

token_refresh_total = Counter(
    "brale_token_refresh_total",
    "Total OAuth2 token exchanges",
    ["status"],
)

token_refresh_duration_seconds = Histogram(
    "brale_token_refresh_duration_seconds",
    "OAuth2 token exchange duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

token_cache_hits_total = Counter(
    "brale_token_cache_hits_total",
    "Access token requests served from cache",
)

# ============================================================
# Resilience Metrics
# ============================================================

retry_attempts_total = Counter(
    "brale_retry_attempts_total",
    "Total retries scheduled after a transient failure",
    ["error_type"],
)

circuit_breaker_state = Gauge(
    "brale_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["breaker"],
)

circuit_breaker_rejections_total = Counter(
    "brale_circuit_breaker_rejections_total",
    "Calls rejected while the circuit breaker was open",
    ["breaker"],
)

# ============================================================
# Idempotency Metrics
# ============================================================

idempotency_lookups_total = Counter(
    "brale_idempotency_lookups_total",
    "Idempotency key lookups",
    ["result"],
)

idempotency_keys_stored = Gauge(
    "brale_idempotency_keys_stored",
    "Idempotency keys currently held in memory",
)

# ============================================================
# Credential Metrics
# ============================================================

rotation_events_total = Counter(
    "brale_credential_rotation_events_total",
    "Credential rotation events",
    ["event_type"],
)
