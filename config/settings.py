"""
Configuration management for the session store.

This module provides centralized configuration loading and validation using
Pydantic settings. Values are loaded from environment variables or .env files,
with an environment-specific file layered over the base one.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    Files are loaded in order, with later files overriding earlier ones.

    Args:
        environment: The target environment.

    Returns:
        Tuple of .env file paths to load.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    env_specific_file = env_file_map.get(environment, ".env.development")

    return (".env", env_specific_file)


class Settings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    Every field has a default suitable for local development, so the
    session store can start against a local Redis with no configuration.
    The ENVIRONMENT variable determines which environment file is layered
    over the base .env file.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Session provider configuration
    session_provider: str = Field(
        default="redis",
        description="Registered session provider name"
    )
    session_save_path: str = Field(
        default="localhost:6379,0",
        description="Provider save path: '<address>[,<database-index>]'"
    )
    session_max_lifetime: int = Field(
        default=3600,
        ge=1,
        le=2592000,  # 30 days
        description="Session time-to-live in seconds, refreshed on every persist"
    )
    session_key_prefix: str = Field(
        default="session:",
        description="Prefix prepended to the sid to form the Redis key"
    )
    session_strict_persist: bool = Field(
        default=False,
        description="Raise instead of logging when a mutation fails to persist"
    )

    # Redis client configuration
    redis_socket_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait on a Redis command before failing"
    )
    redis_socket_connect_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait when connecting to Redis"
    )

    # Observability Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("session_provider")
    @classmethod
    def validate_session_provider(cls, v: str) -> str:
        """Normalize the provider name and reject empty values."""
        v = v.strip().lower()
        if not v:
            raise ValueError("session_provider cannot be empty")
        return v

    @field_validator("session_save_path")
    @classmethod
    def validate_session_save_path(cls, v: str) -> str:
        """Validate that the save path names an address."""
        v = v.strip()
        if not v or not v.split(",", 1)[0].strip():
            raise ValueError("session_save_path must start with a Redis address")
        return v

    @field_validator("session_key_prefix")
    @classmethod
    def validate_session_key_prefix(cls, v: str) -> str:
        """Validate that the key prefix is not empty."""
        if not v:
            raise ValueError("session_key_prefix cannot be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @model_validator(mode="after")
    def validate_save_path_for_environment(self) -> "Settings":
        """Reject a localhost save path outside development."""
        address = self.session_save_path.split(",", 1)[0]
        if self.environment != Environment.DEVELOPMENT and (
            "localhost" in address or "127.0.0.1" in address
        ):
            raise ValueError(
                "session_save_path must point at a shared Redis "
                "in non-development environments"
            )
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Factory function to create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected from
                    ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If settings are invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)

    existing_env_files = [env_file for env_file in env_files if Path(env_file).exists()]
    if not existing_env_files:
        existing_env_files = list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, 'errors'):
            for error in e.errors():
                field_name = '.'.join(str(loc) for loc in error.get('loc', []))
                error_type = error.get('type', '')
                error_msg = error.get('msg', str(error))

                if error_type == 'missing':
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name or "settings"] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Returns:
        Settings: The validated settings.

    Raises:
        ConfigurationError: If settings are invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    This is primarily useful for testing to allow reloading settings
    with different environment variables.
    """
    global _settings_cache
    _settings_cache = None


def validate_startup() -> None:
    """
    Validate settings that depend on other parts of the process.

    Checks that the configured session provider is registered.

    Raises:
        ConfigurationError: If any settings are invalid.
    """
    # Imported here: session imports config at module load
    from session.registry import available_providers

    settings = get_settings()
    validation_errors = {}

    providers = available_providers()
    if settings.session_provider not in providers:
        validation_errors["session_provider"] = (
            f"Unknown provider {settings.session_provider!r}. "
            f"Registered providers: {', '.join(providers) or 'none'}"
        )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )


def get_environment_info() -> dict:
    """
    Get information about the current environment configuration.

    Returns:
        dict: Information about the detected environment and loaded config files.
    """
    environment = _detect_environment()
    env_files = _get_env_files(environment)

    existing_files = [f for f in env_files if Path(f).exists()]

    return {
        "environment": environment.value,
        "env_files_checked": list(env_files),
        "env_files_loaded": existing_files,
    }
