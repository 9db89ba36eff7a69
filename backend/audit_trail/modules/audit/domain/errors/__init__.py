from audit_trail.modules.audit.domain.errors.audit_errors import (
    AuditConfigurationError,
    AuditDomainError,
    AuditSinkError,
    InvalidActionError,
    MissingEntityIdentityError,
    NoActiveScopeError,
)

__all__ = [
    "AuditConfigurationError",
    "AuditDomainError",
    "AuditSinkError",
    "InvalidActionError",
    "MissingEntityIdentityError",
    "NoActiveScopeError",
]
