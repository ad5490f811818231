"""
Audit Service - writes AuditLog rows inside the caller's transaction
"""
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.db.models.audit_log import AuditActionType, AuditLog


class AuditService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        action: AuditActionType,
        entity_type: str,
        entity_id: Optional[int],
        actor_user_id: Optional[int],
        target_user_id: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """Stage an audit row; it is committed with the operation it describes"""
        entry = AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            target_user_id=target_user_id,
            details=details,
        )
        self.db.add(entry)
        return entry

    async def list_for_entity(self, entity_type: str, entity_id: int) -> list[AuditLog]:
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        )
        return list(result.scalars().all())
