"""Tests for core configuration, errors and logging."""

import os

import pytest
from structlog.contextvars import get_contextvars

from audit_trail.core.config import (
    DEFAULT_SENSITIVE_FIELDS,
    AuditSettings,
    EntityAuditConfig,
    EnvironmentLoader,
)
from audit_trail.core.enums import Environment, LogFormat, LogLevel
from audit_trail.core.errors import (
    AuditTrailError,
    ConfigurationError,
    ExternalServiceError,
)
from audit_trail.core.logging import LogConfig, bound_context
from audit_trail.modules.audit.domain.errors.audit_errors import (
    AuditSinkError,
    MissingEntityIdentityError,
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every AUDIT_ variable from the process environment."""
    for key in list(os.environ):
        if key.startswith("AUDIT_"):
            monkeypatch.delenv(key)
    return monkeypatch


class TestEnvironmentLoader:
    """Test cases for EnvironmentLoader."""

    def test_env_file_values(self, tmp_path, clean_env):
        # Arrange
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\nAUDIT_LOG_QUEUE_NAME='audit-high'\nAUDIT_LOG_RETENTION_DAYS=30\n",
            encoding="utf-8",
        )

        # Act
        loader = EnvironmentLoader(str(env_file))

        # Assert
        assert loader.get_string("AUDIT_LOG_QUEUE_NAME") == "audit-high"
        assert loader.get_integer("AUDIT_LOG_RETENTION_DAYS") == 30

    def test_process_environment_wins(self, tmp_path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text("AUDIT_LOG_QUEUE_NAME=from-file\n", encoding="utf-8")
        clean_env.setenv("AUDIT_LOG_QUEUE_NAME", "from-env")

        assert EnvironmentLoader(str(env_file)).get_string("AUDIT_LOG_QUEUE_NAME") == "from-env"

    @pytest.mark.parametrize(("raw", "expected"), [("yes", True), ("0", False), ("On", True)])
    def test_boolean(self, clean_env, raw, expected):
        clean_env.setenv("AUDIT_FLAG", raw)

        assert EnvironmentLoader(None).get_boolean("AUDIT_FLAG") is expected

    def test_invalid_values(self, clean_env):
        clean_env.setenv("AUDIT_FLAG", "maybe")
        clean_env.setenv("AUDIT_NUMBER", "ten")
        loader = EnvironmentLoader(None)

        with pytest.raises(ConfigurationError):
            loader.get_boolean("AUDIT_FLAG")
        with pytest.raises(ConfigurationError) as exc_info:
            loader.get_integer("AUDIT_NUMBER")
        assert exc_info.value.details["config_key"] == "AUDIT_NUMBER"

    def test_list(self, clean_env):
        clean_env.setenv("AUDIT_LIST", " ssn, pin ,,")

        assert EnvironmentLoader(None).get_list("AUDIT_LIST") == ("ssn", "pin")


class TestAuditSettings:
    """Test cases for AuditSettings."""

    def test_defaults(self, clean_env):
        settings = AuditSettings.from_env(None)

        assert settings.sensitive_fields == DEFAULT_SENSITIVE_FIELDS
        assert settings.excluded_attributes == ("created_at", "updated_at", "deleted_at")
        assert settings.queue_enabled is False
        assert settings.retention_days == 365

    def test_from_env(self, clean_env):
        # Arrange
        clean_env.setenv("AUDIT_ENVIRONMENT", "production")
        clean_env.setenv("AUDIT_LOG_LEVEL", "debug")
        clean_env.setenv("AUDIT_LOG_QUEUE_ENABLED", "true")
        clean_env.setenv("AUDIT_LOG_QUEUE_NAME", "audit-low")
        clean_env.setenv("AUDIT_SENSITIVE_FIELDS", "password,*secret*")
        clean_env.setenv("AUDIT_LOG_RETENTION_DAYS", "90")

        # Act
        settings = AuditSettings.from_env(None)

        # Assert
        assert settings.environment is Environment.PRODUCTION
        assert settings.log_level is LogLevel.DEBUG
        assert settings.queue_enabled is True
        assert settings.queue_name == "audit-low"
        assert settings.sensitive_fields == ("password", "*secret*")
        assert settings.retention_days == 90

    def test_invalid_environment(self, clean_env):
        clean_env.setenv("AUDIT_ENVIRONMENT", "moon")

        with pytest.raises(ConfigurationError):
            AuditSettings.from_env(None)

    def test_retention_must_be_positive(self):
        with pytest.raises(ConfigurationError) as exc_info:
            AuditSettings(retention_days=0)

        assert exc_info.value.details["config_key"] == "AUDIT_LOG_RETENTION_DAYS"

    def test_to_dict_has_no_connection_strings(self):
        data = AuditSettings(database_url="postgresql://u:secret@db/audit").to_dict()

        assert "database_url" not in data
        assert "broker_url" not in data


class TestEntityAuditConfig:
    def test_should_log(self):
        config = EntityAuditConfig(log_deleted=False)

        assert config.should_log("created")
        assert not config.should_log("deleted")
        assert config.should_log("relations_updated")


class TestErrors:
    """Test cases for the error hierarchy."""

    def test_sink_error_is_retryable_external_error(self):
        error = AuditSinkError("celery", "broker down", entity_type="User", entity_id="1")

        assert isinstance(error, ExternalServiceError)
        assert error.retryable is True
        assert error.code == "AUDIT_SINK_ERROR"
        assert error.details == {"service": "celery", "entity_type": "User", "entity_id": "1"}
        assert str(error) == "AUDIT_SINK_ERROR: celery error: broker down"

    def test_to_dict_sanitizes_sensitive_details(self):
        error = AuditTrailError("failed", details={"api_token": "abc", "entity": "User"})

        data = error.to_dict()

        assert data["details"] == {"api_token": "***REDACTED***", "entity": "User"}
        assert "error_id" not in data
        assert "error_id" in error.to_dict(include_internal=True)

    def test_cause_is_chained(self):
        cause = ValueError("bad key")

        error = MissingEntityIdentityError(object(), "bad key", cause=cause)

        assert error.__cause__ is cause
        assert error.recovery_hint


class TestLogging:
    """Test cases for logging configuration."""

    def test_environment_defaults(self):
        assert LogConfig(environment=Environment.PRODUCTION).format is LogFormat.JSON
        assert LogConfig(environment=Environment.DEVELOPMENT).format is LogFormat.CONSOLE

        testing = LogConfig(level=LogLevel.DEBUG, environment=Environment.TESTING)
        assert testing.level is LogLevel.WARNING
        assert testing.format is LogFormat.PLAIN

    def test_invalid_level(self):
        with pytest.raises(ConfigurationError):
            LogConfig(level="loud")

    def test_bound_context(self):
        with bound_context(task_id="t-1", skipped=None):
            context = get_contextvars()

        assert context["task_id"] == "t-1"
        assert "skipped" not in context
        assert "task_id" not in get_contextvars()
