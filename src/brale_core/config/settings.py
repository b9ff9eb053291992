"""
brale_core configuration with hybrid YAML + ENV support.

Priority: YAML config > environment variables / .env > defaults.
Credentials belong in the environment, never in YAML files.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from brale_core.auth.credential_rotation import RotationConfig
from brale_core.auth.token_manager import AuthConfig
from brale_core.resilience.circuit_breaker import CircuitBreakerConfig
from brale_core.resilience.retry import RetryConfig


class Settings(BaseSettings):
    """
    Settings with environment variable support.

    All sensitive values (client secret, encryption key) should come from
    environment variables, not from YAML files.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    ENV: str = Field(default="production", description="Environment name")

    # Brale API
    BRALE_CLIENT_ID: str = Field(default="", description="OAuth2 client id")
    BRALE_CLIENT_SECRET: str = Field(default="", description="OAuth2 client secret")
    BRALE_API_URL: str = Field(default="https://api.brale.xyz")
    BRALE_AUTH_URL: str = Field(default="https://auth.brale.xyz")
    BRALE_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout in seconds",
    )
    BRALE_DEBUG: bool = Field(default=False, description="Debug mode")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(default=True, description="Emit JSON log lines")

    # Tokens
    TOKEN_SAFETY_MARGIN_SECONDS: float = Field(
        default=300.0,
        ge=0,
        description="Refresh tokens this many seconds before expiry",
    )
    TOKEN_STORAGE_ENABLED: bool = Field(
        default=False,
        description="Persist access tokens between runs",
    )
    TOKEN_STORAGE_DIR: Optional[str] = Field(
        default=None,
        description="Directory for token files (in-memory if unset)",
    )
    TOKEN_STORAGE_ENCRYPT: bool = Field(default=True)
    TOKEN_ENCRYPTION_KEY: Optional[str] = Field(
        default=None,
        description="64 hex chars or passphrase (random per process if unset)",
    )

    # Resilience - Retry
    RETRY_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum retry attempts for transient failures",
    )
    RETRY_INITIAL_DELAY: float = Field(
        default=1.0,
        ge=0,
        description="Initial retry delay in seconds",
    )
    RETRY_MAX_DELAY: float = Field(
        default=30.0,
        ge=0,
        description="Maximum retry delay in seconds",
    )
    RETRY_BACKOFF_MULTIPLIER: float = Field(
        default=2.0,
        ge=1.0,
        description="Exponential backoff multiplier",
    )
    RETRY_JITTER: float = Field(
        default=0.1,
        description="Jitter fraction (0.0-1.0)",
    )

    # Resilience - Circuit Breaker
    CB_FAILURE_THRESHOLD: int = Field(
        default=5,
        ge=1,
        description="Circuit breaker failure threshold",
    )
    CB_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Circuit breaker open state timeout",
    )
    CB_MONITORING_PERIOD_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Window in which failures are counted",
    )

    # Resilience - Idempotency
    IDEMPOTENCY_TTL_SECONDS: int = Field(
        default=86400,
        ge=1,
        description="Idempotency key TTL (24 hours default)",
    )
    REDIS_URL: Optional[str] = Field(
        default=None,
        description="Redis URL for shared idempotency records",
    )

    # Credential rotation
    ROTATION_CHECK_INTERVAL_SECONDS: float = Field(default=86400.0, gt=0)
    ROTATION_WARNING_DAYS: int = Field(default=30, ge=1)
    ROTATION_URGENT_DAYS: int = Field(default=7, ge=1)
    ROTATION_MAX_AGE_DAYS: int = Field(default=90, ge=1)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Invalid LOG_LEVEL. Must be one of: {allowed}")
        return v_upper

    @field_validator("RETRY_JITTER")
    @classmethod
    def validate_jitter(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("RETRY_JITTER must be between 0.0 and 1.0")
        return v

    def auth_config(self) -> AuthConfig:
        return AuthConfig(
            client_id=self.BRALE_CLIENT_ID,
            client_secret=self.BRALE_CLIENT_SECRET,
            auth_url=self.BRALE_AUTH_URL,
            timeout=self.BRALE_TIMEOUT,
            debug=self.BRALE_DEBUG,
            safety_margin=self.TOKEN_SAFETY_MARGIN_SECONDS,
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            initial_delay=self.RETRY_INITIAL_DELAY,
            max_delay=self.RETRY_MAX_DELAY,
            backoff_multiplier=self.RETRY_BACKOFF_MULTIPLIER,
            jitter=self.RETRY_JITTER,
        )

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.CB_FAILURE_THRESHOLD,
            timeout=self.CB_TIMEOUT_SECONDS,
            monitoring_period=self.CB_MONITORING_PERIOD_SECONDS,
        )

    def rotation_config(self) -> RotationConfig:
        return RotationConfig(
            check_interval=self.ROTATION_CHECK_INTERVAL_SECONDS,
            warning_threshold_days=self.ROTATION_WARNING_DAYS,
            urgent_threshold_days=self.ROTATION_URGENT_DAYS,
            max_credential_age_days=self.ROTATION_MAX_AGE_DAYS,
        )


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(
    config_file: Optional[str] = None,
    env_file: Optional[str] = None,
    env: Optional[str] = None,
    config_dir: Optional[Path] = None,
) -> Settings:
    """
    Load configuration from YAML files and environment variables.

    Layers, lowest first: environment (after loading ``.env.<env>``),
    ``default.yaml``, ``<env>.yaml``.

    Args:
        config_file: Optional YAML config filename override
        env_file: Optional .env filename (default: ".env.<env>")
        env: Optional environment name override (default: $ENV or "production")
        config_dir: Directory holding YAML files (default: <project>/config)

    Returns:
        Settings instance

    Raises:
        ValidationError: If a value fails validation
    """
    project_root = Path(__file__).resolve().parent.parent.parent.parent
    if config_dir is None:
        config_dir = project_root / "config"

    environment = env or os.getenv("ENV", "production")

    env_file_path = project_root / (env_file or f".env.{environment}")
    if env_file_path.exists():
        load_dotenv(env_file_path, override=True)

    merged_config = _read_yaml(config_dir / "default.yaml")
    config_file = config_file or f"{environment}.yaml"
    merged_config.update(_read_yaml(config_dir / config_file))

    return Settings(**merged_config)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or initialize global settings singleton."""
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """Override global settings (for testing)."""
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """Reset settings to force re-initialization (for testing)."""
    global _settings
    _settings = None
