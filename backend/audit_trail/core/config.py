"""Audit trail configuration management.

This module loads the audit trail settings from environment variables (and an
optional ``.env`` file), validates them, and exposes typed access to:

- the global sensitive-field pattern list,
- the default excluded attributes,
- queue/dispatch settings for asynchronous persistence,
- retention and request-context options,
- per-entity-type overrides through ``EntityAuditConfig``.

Architecture:
- EnvironmentLoader: Environment variable loading with type conversion
- EntityAuditConfig: Per-entity-type audit behaviour
- AuditSettings: Main configuration class
- get_settings: Cached settings accessor
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from audit_trail.core.enums import Environment, LogFormat, LogLevel
from audit_trail.core.errors import ConfigurationError

DEFAULT_SENSITIVE_FIELDS: tuple[str, ...] = (
    "password",
    "password_confirmation",
    "remember_token",
    "google2fa_secret",
    "api_key",
    "api_secret",
    "access_token",
    "refresh_token",
    "*password*",
    "*secret*",
    "*token*",
    "*key*",
)

TIMESTAMP_ATTRIBUTES: tuple[str, ...] = ("created_at", "updated_at", "deleted_at")

DEFAULT_REQUEST_ID_HEADERS: tuple[str, ...] = ("X-Request-ID", "X-Correlation-ID")

TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
FALSE_VALUES = frozenset({"false", "0", "no", "off", ""})


# =====================================================================================
# ENVIRONMENT LOADER
# =====================================================================================


class EnvironmentLoader:
    """
    Environment variable loader with type conversion and validation.

    Variables defined in the process environment always win over values
    read from the environment file.
    """

    def __init__(self, env_file: str | None = ".env"):
        """
        Initialize environment loader.

        Args:
            env_file: Optional environment file to load
        """
        self.env_file = env_file
        self._file_values: dict[str, str] = {}
        self._load_env_file()

    def _load_env_file(self) -> None:
        """Load variables from the environment file if it exists."""
        if not self.env_file or not os.path.exists(self.env_file):
            return

        try:
            with open(self.env_file, encoding="utf-8") as f:
                for raw_line in f:
                    line = raw_line.strip()

                    if not line or line.startswith("#") or "=" not in line:
                        continue

                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip()

                    if (value.startswith('"') and value.endswith('"')) or (
                        value.startswith("'") and value.endswith("'")
                    ):
                        value = value[1:-1]

                    self._file_values[key] = value

        except OSError as e:
            raise ConfigurationError(
                f"Failed to load environment file {self.env_file}: {e}"
            ) from e

    def _raw(self, key: str) -> str | None:
        if key in os.environ:
            return os.environ[key]
        return self._file_values.get(key)

    def get_string(self, key: str, default: str | None = None) -> str | None:
        """Get string value."""
        value = self._raw(key)
        if value is None:
            return default
        return value.strip()

    def get_integer(
        self,
        key: str,
        default: int | None = None,
        min_value: int | None = None,
    ) -> int | None:
        """Get integer value, enforcing an optional lower bound."""
        value = self._raw(key)
        if value is None or not value.strip():
            return default
        try:
            parsed = int(value)
        except ValueError as e:
            raise ConfigurationError(
                f"{key} must be an integer, got {value!r}", config_key=key
            ) from e
        if min_value is not None and parsed < min_value:
            raise ConfigurationError(f"{key} must be >= {min_value}", config_key=key)
        return parsed

    def get_boolean(self, key: str, default: bool = False) -> bool:
        """Get boolean value."""
        value = self._raw(key)
        if value is None:
            return default
        normalized = value.strip().lower()
        if normalized in TRUE_VALUES:
            return True
        if normalized in FALSE_VALUES:
            return False
        raise ConfigurationError(
            f"{key} must be a boolean, got {value!r}", config_key=key
        )

    def get_list(self, key: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
        """Get comma separated list value."""
        value = self._raw(key)
        if value is None:
            return tuple(default)
        return tuple(item.strip() for item in value.split(",") if item.strip())


# =====================================================================================
# PER-ENTITY CONFIGURATION
# =====================================================================================


@dataclass(frozen=True)
class EntityAuditConfig:
    """
    Audit behaviour for a single entity type.

    Attributes:
        enabled: Whether the entity type is audited at all
        excluded_attributes: Attributes never included in diffs
        sensitive_fields: Extra sensitive patterns (added to the global list)
        log_created / log_updated / log_deleted / log_restored: Action switches
        relations: Relation name -> related entity type tag
        parents: Attribute holding the parent entity -> inverse relation name
            recorded on that parent when this entity is created or deleted
    """

    enabled: bool = True
    excluded_attributes: tuple[str, ...] = ()
    sensitive_fields: tuple[str, ...] = ()
    log_created: bool = True
    log_updated: bool = True
    log_deleted: bool = True
    log_restored: bool = True
    relations: dict[str, str] = field(default_factory=dict)
    parents: dict[str, str] = field(default_factory=dict)

    def should_log(self, action_name: str) -> bool:
        """Check the switch for an action label (``created``, ``updated``...)."""
        return bool(getattr(self, f"log_{action_name}", True))


# =====================================================================================
# SETTINGS
# =====================================================================================


@dataclass
class AuditSettings:
    """Main audit trail configuration."""

    environment: Environment = Environment.DEVELOPMENT
    database_url: str = "sqlite:///./audit.db"
    log_level: LogLevel = LogLevel.INFO
    log_format: LogFormat | None = None

    sensitive_fields: tuple[str, ...] = DEFAULT_SENSITIVE_FIELDS
    excluded_attributes: tuple[str, ...] = TIMESTAMP_ATTRIBUTES

    queue_enabled: bool = False
    queue_name: str = "audit"
    broker_url: str = "memory://"
    result_backend: str | None = None
    task_always_eager: bool = False

    retention_days: int = 365
    request_id_headers: tuple[str, ...] = DEFAULT_REQUEST_ID_HEADERS
    api_path_prefixes: tuple[str, ...] = ("api/",)
    admin_path_prefixes: tuple[str, ...] = ("admin/", "admin-api/")

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """
        Validate settings.

        Raises:
            ConfigurationError: If a setting is invalid
        """
        if self.retention_days < 1:
            raise ConfigurationError(
                "Retention days must be at least 1",
                config_key="AUDIT_LOG_RETENTION_DAYS",
            )
        if self.queue_enabled and not self.queue_name:
            raise ConfigurationError(
                "Queue name is required when queueing is enabled",
                config_key="AUDIT_LOG_QUEUE_NAME",
            )
        if not self.database_url:
            raise ConfigurationError(
                "Database URL is required", config_key="AUDIT_DATABASE_URL"
            )
        if not self.request_id_headers:
            raise ConfigurationError(
                "At least one request id header is required",
                config_key="AUDIT_REQUEST_ID_HEADERS",
            )

    @classmethod
    def from_env(cls, env_file: str | None = ".env") -> "AuditSettings":
        """Build settings from environment variables."""
        env = EnvironmentLoader(env_file)

        try:
            environment = Environment.from_string(
                env.get_string("AUDIT_ENVIRONMENT", Environment.DEVELOPMENT.value)
            )
            log_level = LogLevel.from_string(env.get_string("AUDIT_LOG_LEVEL", "INFO"))
            raw_format = env.get_string("AUDIT_LOG_FORMAT")
            log_format = LogFormat(raw_format.lower()) if raw_format else None
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        return cls(
            environment=environment,
            database_url=env.get_string("AUDIT_DATABASE_URL", cls.database_url),
            log_level=log_level,
            log_format=log_format,
            sensitive_fields=env.get_list(
                "AUDIT_SENSITIVE_FIELDS", DEFAULT_SENSITIVE_FIELDS
            ),
            excluded_attributes=env.get_list(
                "AUDIT_EXCLUDED_ATTRIBUTES", TIMESTAMP_ATTRIBUTES
            ),
            queue_enabled=env.get_boolean("AUDIT_LOG_QUEUE_ENABLED", False),
            queue_name=env.get_string("AUDIT_LOG_QUEUE_NAME", cls.queue_name),
            broker_url=env.get_string("AUDIT_BROKER_URL", cls.broker_url),
            result_backend=env.get_string("AUDIT_RESULT_BACKEND"),
            task_always_eager=env.get_boolean("AUDIT_TASK_ALWAYS_EAGER", False),
            retention_days=env.get_integer(
                "AUDIT_LOG_RETENTION_DAYS", cls.retention_days, min_value=1
            ),
            request_id_headers=env.get_list(
                "AUDIT_REQUEST_ID_HEADERS", DEFAULT_REQUEST_ID_HEADERS
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Safe representation for diagnostics (no credentials)."""
        return {
            "environment": self.environment.value,
            "log_level": self.log_level.level_name,
            "queue_enabled": self.queue_enabled,
            "queue_name": self.queue_name,
            "retention_days": self.retention_days,
            "sensitive_fields": list(self.sensitive_fields),
            "excluded_attributes": list(self.excluded_attributes),
        }


@lru_cache
def get_settings(env_file: str | None = ".env") -> AuditSettings:
    """Get cached settings instance."""
    return AuditSettings.from_env(env_file)
