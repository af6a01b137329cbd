"""Retires human-sourced deals whose departure has passed."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.observability import metrics_collector
from ..models.audit import AuditAction
from ..models.deal import LIVE_DEAL_STATUSES, Deal, DealSource, DealStatus
from .audit_service import AuditService

logger = logging.getLogger(__name__)

# Provider deals vanish from the provider snapshot instead
EXPIRABLE_SOURCES = (DealSource.INTERNAL.value, DealSource.OPERATOR.value)


def _departed_live_deal_conditions(now: datetime) -> list:
    return [
        Deal.departure_at < now,
        Deal.status.in_([status.value for status in LIVE_DEAL_STATUSES]),
        Deal.source.in_(EXPIRABLE_SOURCES),
    ]


class DealExpiryService:
    """Bulk EXPIRED transition for departed INTERNAL and OPERATOR deals."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_departed_live_deals(self, now: Optional[datetime] = None) -> int:
        """How many deals the next sweep would expire."""
        stmt = select(func.count(Deal.id)).where(*_departed_live_deal_conditions(now or utcnow()))
        return (await self.db.execute(stmt)).scalar_one()

    async def expire_departed_deals(self, now: Optional[datetime] = None) -> int:
        """
        Move departed live deals to EXPIRED in one statement.

        Safe to run at any frequency: a second run in a row matches nothing.
        One audit entry is written per run, and only when something expired.

        Returns:
            Number of deals expired
        """
        now = now or utcnow()
        result = await self.db.execute(
            update(Deal)
            .where(*_departed_live_deal_conditions(now))
            .values(status=DealStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        expired_count = result.rowcount or 0

        if expired_count > 0:
            AuditService(self.db).record(
                AuditAction.DEAL_EXPIRY,
                description=f"Expired {expired_count} departed deal(s)",
                target_type="deal",
                details={"expired_count": expired_count, "cutoff": now.isoformat()},
            )
        await self.db.commit()

        metrics_collector.record_deals_expired(expired_count)
        logger.info(
            "Deal expiry sweep completed",
            extra={"expired_count": expired_count, "cutoff": now.isoformat()}
        )
        return expired_count
