from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog


class AuditAction(StrEnum):
    """Standard audit actions."""

    CREATE = "CREATE"

    # Domain-specific actions
    CREATE_INVOICE = "invoice.create"
    UPDATE_INVOICE = "invoice.update"
    SETTLE_SEMESTER = "ledger.settle_semester"
    SETTLE_FALLBACK = "ledger.settle_fallback"
    SET_BALANCE = "ledger.set_balance"
    ADVANCE_SEMESTER = "student.advance_semester"
    UPSERT_PROFILE = "student.upsert_profile"


class AuditService:
    """Service for creating audit logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str | AuditAction,
        entity_type: str,
        entity_identifier: str,
        actor: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        comment: str | None = None,
    ) -> AuditLog:
        """Create an audit log entry (flushed, committed with the caller's unit of work)."""
        audit_log = AuditLog(
            actor=actor,
            action=str(action),
            entity_type=entity_type,
            entity_identifier=entity_identifier,
            old_values=old_values,
            new_values=new_values,
            comment=comment,
        )

        self.db.add(audit_log)
        await self.db.flush()

        return audit_log

    async def list_for_entity(self, entity_type: str, entity_identifier: str) -> list[AuditLog]:
        """Entries for one entity, oldest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_identifier == entity_identifier,
            )
            .order_by(AuditLog.id)
        )
        return list(result.scalars().all())
