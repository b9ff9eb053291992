"""
Credential hygiene checks and masking for logs.
"""

import os
from dataclasses import dataclass, field
from typing import Any, List

MIN_SECRET_LENGTH = 16


@dataclass
class CredentialValidationResult:
    """Outcome of validate_credentials."""

    is_valid: bool
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def validate_credentials(client_id: str, client_secret: str) -> CredentialValidationResult:
    """
    Check client credentials for common security anti-patterns.

    Never raises; callers decide whether to warn or refuse.
    """
    issues: List[str] = []
    recommendations: List[str] = []

    lowered = client_id.lower()
    if "test" in lowered or "demo" in lowered:
        issues.append("Using test/demo credentials in production configuration")
        recommendations.append("Use production credentials for live environments")

    if len(client_secret) < MIN_SECRET_LENGTH:
        issues.append("Client secret appears to be too short")
        recommendations.append(
            "Ensure you're using the full client secret from the Brale dashboard"
        )

    if os.getenv("ENV") == "development" and not os.getenv("BRALE_ALLOW_DEV_CREDS"):
        recommendations.append("Consider using separate development credentials")

    return CredentialValidationResult(
        is_valid=not issues,
        issues=issues,
        recommendations=recommendations,
    )


def mask_credential(credential: str) -> str:
    """
    Mask a credential for logging.

    Keeps the first and last four characters: ``abcd********wxyz``.
    """
    if not credential or len(credential) < 8:
        return "***"
    return credential[:4] + "*" * (len(credential) - 8) + credential[-4:]


def detect_credential_exposure(config: Any) -> List[str]:
    """Return risks of credentials leaking through configuration (e.g. debug)."""
    risks: List[str] = []

    debug = getattr(config, "debug", False)
    has_credentials = getattr(config, "client_id", None) or getattr(
        config, "client_secret", None
    )
    if debug and has_credentials:
        risks.append(
            "Debug mode enabled with credentials - risk of credential logging"
        )

    return risks
