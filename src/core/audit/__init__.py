from src.core.audit.models import AuditLog
from src.core.audit.service import AuditAction, AuditService

__all__ = ["AuditLog", "AuditAction", "AuditService"]
