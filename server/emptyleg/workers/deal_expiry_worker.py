"""Background worker for expiring departed deals."""

from sqlalchemy.ext.asyncio import AsyncSession

from ..services.deal_expiry_service import DealExpiryService
from .base import BaseWorker


class DealExpiryWorker(BaseWorker):
    """Moves departed INTERNAL and OPERATOR deals to EXPIRED."""

    def __init__(self, interval_seconds: int = 3600, **kwargs):
        super().__init__(name="DealExpiry", interval_seconds=interval_seconds, **kwargs)

    async def process(self, db: AsyncSession) -> None:
        await DealExpiryService(db).expire_departed_deals()
