"""
OAuth2 token management, token storage and credential hygiene.
"""

from brale_core.auth.bearer import BearerTokenAuth
from brale_core.auth.credential_rotation import (
    CredentialRotationMonitor,
    Credentials,
    InMemoryRotationProvider,
    ProviderMetadata,
    RotationConfig,
    RotationEvent,
    RotationEventType,
    RotationMetadata,
    RotationProvider,
    RotationStatus,
)
from brale_core.auth.credential_validator import (
    CredentialValidationResult,
    detect_credential_exposure,
    mask_credential,
    validate_credentials,
)
from brale_core.auth.token_manager import AccessToken, AuthConfig, TokenManager
from brale_core.auth.token_storage import (
    FileTokenSink,
    InMemoryTokenSink,
    SecureTokenStorage,
    TokenCipher,
    TokenSink,
)

__all__ = [
    # Tokens
    "AccessToken",
    "AuthConfig",
    "BearerTokenAuth",
    "TokenManager",
    # Storage
    "FileTokenSink",
    "InMemoryTokenSink",
    "SecureTokenStorage",
    "TokenCipher",
    "TokenSink",
    # Credentials
    "CredentialValidationResult",
    "detect_credential_exposure",
    "mask_credential",
    "validate_credentials",
    # Rotation
    "CredentialRotationMonitor",
    "Credentials",
    "InMemoryRotationProvider",
    "ProviderMetadata",
    "RotationConfig",
    "RotationEvent",
    "RotationEventType",
    "RotationMetadata",
    "RotationProvider",
    "RotationStatus",
]
