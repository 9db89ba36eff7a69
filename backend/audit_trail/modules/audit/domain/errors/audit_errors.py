"""Audit domain-specific errors.

This module defines custom exceptions for the audit domain,
providing clear error semantics and rich error information.
"""

from typing import Any

from audit_trail.core.errors import (
    ApplicationError,
    ConfigurationError,
    DomainError,
    ExternalServiceError,
    ValidationError,
)


class AuditDomainError(DomainError):
    """Base class for all audit domain errors."""

    default_code = "AUDIT_DOMAIN_ERROR"


class InvalidActionError(ValidationError):
    """Raised when an action label cannot be parsed into an ActionKind."""

    default_code = "INVALID_AUDIT_ACTION"

    def __init__(self, value: Any, **kwargs: Any):
        super().__init__(
            f"Unknown audit action: {value!r}",
            field="action",
            user_message="The audit action is not recognised",
            **kwargs,
        )
        self.details["value"] = repr(value)


class MissingEntityIdentityError(AuditDomainError):
    """Raised when an entity has no stable identity and cannot be keyed."""

    default_code = "MISSING_ENTITY_IDENTITY"

    def __init__(self, entity: Any, reason: str | None = None, **kwargs: Any):
        entity_class = type(entity).__name__
        message = f"Cannot audit {entity_class}: entity has no stable identity"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            details={"entity_class": entity_class},
            recovery_hint="Flush or assign a primary key before auditing the entity",
            **kwargs,
        )


class AuditSinkError(ExternalServiceError):
    """Raised when persisting or dispatching an audit entry fails."""

    default_code = "AUDIT_SINK_ERROR"

    def __init__(
        self,
        sink: str,
        message: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(sink, message, **kwargs)
        if entity_type:
            self.details["entity_type"] = entity_type
        if entity_id is not None:
            self.details["entity_id"] = entity_id


class AuditConfigurationError(ConfigurationError):
    """Raised when the registered audit tables are inconsistent."""

    default_code = "AUDIT_CONFIGURATION_ERROR"

    def __init__(self, message: str, entity_type: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if entity_type:
            self.details["entity_type"] = entity_type


class NoActiveScopeError(ApplicationError):
    """Raised when a change is observed outside of any audit scope."""

    default_code = "NO_ACTIVE_AUDIT_SCOPE"

    def __init__(self, **kwargs: Any):
        super().__init__(
            "No audit scope is active in the current context",
            recovery_hint="Wrap the unit of work in audit_scope() or install the request middleware",
            **kwargs,
        )


__all__ = [
    "AuditConfigurationError",
    "AuditDomainError",
    "AuditSinkError",
    "InvalidActionError",
    "MissingEntityIdentityError",
    "NoActiveScopeError",
]
