"""Service configuration for chatfleet.

Defines the configuration model, populated from environment variables by
pydantic-settings.

Example usage:
    # Load from the process environment
    config = load_app_config()

    # Load from an explicit mapping (tests, embedding)
    config = load_app_config({"PORT": "8080", "MAX_INSTANCES": "5"})

    # Derive the credential directory for an instance
    auth_dir = get_auth_dir(config, "acct-1")
"""

from __future__ import annotations

__all__ = [
    "AppConfig",
    "get_auth_dir",
    "load_app_config",
]

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from chatfleet.constants import (
    APP_NAME,
    DEFAULT_AUTH_BASE_DIR,
    DEFAULT_BROADCAST_INTERVAL_MS,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_RECONNECT_MAX_ATTEMPTS,
    DEFAULT_RECONNECT_TIMEOUT_MS,
    DEFAULT_TRANSPORT_FACTORY,
    LOG_LEVELS,
)
from chatfleet.exceptions import ConfigurationError

_logger = logging.getLogger(f"{APP_NAME}.config")


class AppConfig(BaseSettings):
    """Service configuration.

    Each field is read from the environment variable named by its
    validation alias; empty variables count as unset.

    Attributes:
        port: HTTP port for the API and push channel.
        host: Interface the HTTP server binds to.
        auth_base_dir: Base name for per-instance credential directories.
        log_level: One of silent, error, warn, info, debug.
        log_file: Optional JSONL log file path.
        reconnect_timeout_ms: Initial delay before an automatic reconnect.
        reconnect_max_attempts: Automatic reconnect cap (0 = unlimited).
        broadcast_interval_ms: Period of the status snapshot refresh.
        enable_cors: Whether CORS headers are sent.
        cors_origins: Allowed origins; ["*"] allows any.
        instance_prefix: Prefix mixed into derived credential directories.
        max_instances: Capacity limit for the session manager (0 = unlimited).
        transport_factory: Import path ("module:attr") of the transport factory.
    """

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True, env_ignore_empty=True)

    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, validation_alias="PORT")
    host: str = Field(default=DEFAULT_HOST, min_length=1, validation_alias="DASHBOARD_HOST")
    auth_base_dir: str = Field(default=DEFAULT_AUTH_BASE_DIR, min_length=1, validation_alias="AUTH_BASE_DIR")
    log_level: str = Field(default="silent", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    reconnect_timeout_ms: int = Field(default=DEFAULT_RECONNECT_TIMEOUT_MS, ge=0, validation_alias="RECONNECT_TIMEOUT")
    reconnect_max_attempts: int = Field(
        default=DEFAULT_RECONNECT_MAX_ATTEMPTS, ge=0, validation_alias="RECONNECT_MAX_ATTEMPTS"
    )
    broadcast_interval_ms: int = Field(
        default=DEFAULT_BROADCAST_INTERVAL_MS, gt=0, validation_alias="DASHBOARD_UPDATE_INTERVAL"
    )
    enable_cors: bool = Field(default=True, validation_alias="ENABLE_CORS")
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"], validation_alias="CORS_ORIGINS")
    instance_prefix: str = Field(default="", validation_alias="INSTANCE_PREFIX")
    max_instances: int = Field(default=0, ge=0, validation_alias="MAX_INSTANCES")
    transport_factory: str = Field(default=DEFAULT_TRANSPORT_FACTORY, validation_alias="TRANSPORT_FACTORY")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if value.strip() == "*":
            return ["*"]
        return [item.strip() for item in value.split(",") if item.strip()]

    @field_validator("log_level", mode="before")
    @classmethod
    def _fallback_log_level(cls, value: Any) -> Any:
        level = str(value).lower()
        if level not in LOG_LEVELS:
            _logger.warning(
                {
                    "event": "config_invalid_log_level",
                    "message": f"Invalid LOG_LEVEL {level!r}, using 'silent'",
                    "details": {"accepted": list(LOG_LEVELS)},
                }
            )
            return "silent"
        return level

    @property
    def reconnect_timeout_seconds(self) -> float:
        return self.reconnect_timeout_ms / 1000

    @property
    def broadcast_interval_seconds(self) -> float:
        return self.broadcast_interval_ms / 1000


def load_app_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load configuration from environment variables.

    Empty variables are treated as unset. An unknown LOG_LEVEL falls back
    to "silent" with a warning; every other invalid value is fatal.

    Args:
        environ: Mapping to read instead of os.environ.

    Returns:
        AppConfig: Validated configuration.

    Raises:
        ConfigurationError: If a variable cannot be parsed or is out of range.
    """
    try:
        if environ is None:
            return AppConfig()
        # model_validate skips the settings sources, so os.environ is not consulted
        return AppConfig.model_validate({key: value for key, value in environ.items() if value != ""})
    except ValidationError as e:
        error = e.errors()[0]
        loc = str(error["loc"][0]) if error["loc"] else "config"
        field = AppConfig.model_fields.get(loc)
        env_key = field.validation_alias if field is not None and isinstance(field.validation_alias, str) else loc
        raise ConfigurationError(f"Invalid value for {env_key}: {error['msg']}") from e


def get_auth_dir(config: AppConfig, instance_id: str | None = None) -> Path:
    """Derive the credential directory for an instance.

    Relative base directories resolve against the current working directory.
    With INSTANCE_PREFIX set, the prefix is mixed into the directory name
    while the instance keeps its original id.

    Args:
        config: Service configuration.
        instance_id: Instance id; None returns the base directory itself.

    Returns:
        Path: <base>-<prefix>-<id>, <base>-<id>, or <base>.

    Example:
        >>> get_auth_dir(AppConfig(auth_base_dir="/data/auth"), "acct-1")
        PosixPath('/data/auth-acct-1')
    """
    base = Path(config.auth_base_dir).expanduser()
    if not base.is_absolute():
        base = Path.cwd() / base
    if instance_id is None:
        return base

    key = f"{config.instance_prefix}-{instance_id}" if config.instance_prefix else instance_id
    return base.with_name(f"{base.name}-{key}")
