"""Logging and metrics for brale_core."""

from brale_core.monitoring.logger import (
    JSONFormatter,
    SecretMaskingFilter,
    get_correlation_id,
    set_correlation_id,
    setup_logging,
)

__all__ = [
    "JSONFormatter",
    "SecretMaskingFilter",
    "setup_logging",
    "set_correlation_id",
    "get_correlation_id",
]
