from .audit_models import AuditLogModel

__all__ = ["AuditLogModel"]
