"""Audit trail recording."""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit import AuditAction, AuditEntry

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class AuditService:
    """Appends audit entries inside the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        action: AuditAction,
        description: str,
        target_type: str,
        target_id: Optional[str] = None,
        actor: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditEntry:
        """
        Stage an audit entry; it is written when the caller commits.

        Args:
            action: What happened
            description: Human-readable summary
            target_type: Kind of record affected (deal, booking, sync_run, ...)
            target_id: Id of the affected record, if a single one
            actor: Who did it; background jobs use ``system``
            details: Structured context

        Returns:
            The pending audit entry
        """
        entry = AuditEntry(
            action=action,
            actor=actor or SYSTEM_ACTOR,
            target_type=target_type,
            target_id=target_id,
            description=description,
            details=details,
        )
        self.db.add(entry)
        return entry

    async def list_entries(
        self,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[AuditEntry]:
        """Most recent entries first, optionally narrowed to one target."""
        stmt = select(AuditEntry)
        if target_type:
            stmt = stmt.where(AuditEntry.target_type == target_type)
        if target_id:
            stmt = stmt.where(AuditEntry.target_id == target_id)
        stmt = stmt.order_by(AuditEntry.created_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars())
