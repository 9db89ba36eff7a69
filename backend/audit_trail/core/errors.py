"""Error classes shared by every layer of the audit trail package."""

import logging
import time
import uuid
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Error severity levels for monitoring and alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditTrailError(Exception):
    """
    Base exception for all audit trail errors.

    Carries an error code, severity, retry hint and structured details so
    callers and log pipelines can classify failures without parsing messages.
    """

    default_code: str = "ERROR"
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    retryable: bool = False

    SENSITIVE_DETAIL_KEYS = frozenset(
        {"password", "token", "secret", "key", "credential", "authorization"}
    )

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = kwargs.get("code") or self.default_code
        self.details = kwargs.get("details") or {}
        self.correlation_id = kwargs.get("correlation_id") or str(uuid.uuid4())
        self.error_id = str(uuid.uuid4())
        self.timestamp = time.time()
        self.user_message = kwargs.get("user_message") or message
        self.recovery_hint = kwargs.get("recovery_hint")
        self.context = kwargs.get("context") or {}
        if kwargs.get("cause") is not None:
            self.__cause__ = kwargs["cause"]

        self._log_error()

    def _log_error(self) -> None:
        """Log error with structured data."""
        logger = logging.getLogger(f"audit_trail.errors.{self.__class__.__name__}")
        log_data = {
            "error_id": self.error_id,
            "correlation_id": self.correlation_id,
            "code": self.code,
            "error_message": self.message,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "details": self._sanitize_details(self.details),
            "error_class": self.__class__.__name__,
        }

        if self.severity == ErrorSeverity.CRITICAL:
            logger.critical("Critical error occurred", extra=log_data)
        elif self.severity == ErrorSeverity.HIGH:
            logger.error("High severity error", extra=log_data)
        elif self.severity == ErrorSeverity.MEDIUM:
            logger.warning("Medium severity error", extra=log_data)
        else:
            logger.info("Low severity error", extra=log_data)

    def _sanitize_details(self, details: dict) -> dict:
        """Sanitize error details to remove sensitive information."""
        if not details:
            return {}

        sanitized = {}
        for key, value in details.items():
            if any(marker in str(key).lower() for marker in self.SENSITIVE_DETAIL_KEYS):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_details(value)
            else:
                sanitized[key] = value
        return sanitized

    def to_dict(self, include_internal: bool = False) -> dict[str, Any]:
        """
        Serialize error for logging or API responses.

        Args:
            include_internal: Include internal debugging info (ids, severity)
        """
        data: dict[str, Any] = {
            "error": self.code,
            "message": self.user_message,
            "timestamp": self.timestamp,
        }

        if self.details:
            data["details"] = self._sanitize_details(self.details)

        if self.recovery_hint:
            data["recovery_hint"] = self.recovery_hint

        if self.retryable:
            data["retryable"] = True

        if include_internal:
            data.update(
                {
                    "error_id": self.error_id,
                    "correlation_id": self.correlation_id,
                    "severity": self.severity.value,
                    "internal_message": self.message,
                    "context": self.context,
                }
            )

        return data

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class DomainError(AuditTrailError):
    """Base class for domain errors."""

    default_code = "DOMAIN_ERROR"
    severity = ErrorSeverity.MEDIUM


class ApplicationError(AuditTrailError):
    """Base class for application layer errors."""

    default_code = "APPLICATION_ERROR"
    severity = ErrorSeverity.MEDIUM


class InfrastructureError(AuditTrailError):
    """Base class for infrastructure errors."""

    default_code = "INFRASTRUCTURE_ERROR"
    severity = ErrorSeverity.HIGH
    retryable = True


class ValidationError(ApplicationError):
    """Validation error with optional field attribution."""

    default_code = "VALIDATION_ERROR"
    severity = ErrorSeverity.LOW

    def __init__(
        self,
        message: str,
        field: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        if field:
            self.details["field"] = field


class ConfigurationError(InfrastructureError):
    """Configuration error."""

    default_code = "CONFIGURATION_ERROR"
    severity = ErrorSeverity.CRITICAL
    retryable = False

    def __init__(
        self, message: str, config_key: str | None = None, **kwargs: Any
    ) -> None:
        kwargs.setdefault("user_message", "Audit trail configuration issue")
        super().__init__(message, **kwargs)
        if config_key:
            self.details["config_key"] = config_key


class ExternalServiceError(InfrastructureError):
    """Failure reported by a collaborator outside the process (database, broker)."""

    default_code = "EXTERNAL_SERVICE_ERROR"
    severity = ErrorSeverity.HIGH
    retryable = True

    def __init__(self, service: str, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("user_message", "External service temporarily unavailable")
        super().__init__(f"{service} error: {message}", **kwargs)
        self.details["service"] = service


__all__ = [
    "ApplicationError",
    "AuditTrailError",
    "ConfigurationError",
    "DomainError",
    "ErrorSeverity",
    "ExternalServiceError",
    "InfrastructureError",
    "ValidationError",
]
