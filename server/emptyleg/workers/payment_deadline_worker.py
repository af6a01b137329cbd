"""Background worker for expiring unpaid approved bookings."""

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..gateways import NotificationGateway, build_notification_gateway
from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class PaymentDeadlineWorker(BaseWorker):
    """
    Expires APPROVED bookings past their payment deadline.

    Seats held by an unpaid approval go back on the deal, so they do not
    stay locked after the client walks away.
    """

    def __init__(
        self,
        interval_seconds: int = 300,
        batch_size: int = 100,
        gateway_factory: Optional[Callable[[], NotificationGateway]] = None,
        **kwargs,
    ):
        super().__init__(name="PaymentDeadline", interval_seconds=interval_seconds, **kwargs)
        self.batch_size = batch_size
        self.gateway_factory = gateway_factory or (lambda: build_notification_gateway(settings))

    async def process(self, db: AsyncSession) -> None:
        gateway = self.gateway_factory()
        try:
            expired_count = await BookingService(db, gateway).expire_overdue_bookings(limit=self.batch_size)
        finally:
            await gateway.aclose()

        if expired_count:
            logger.info("Expired overdue bookings", extra={"worker": self.name, "expired_count": expired_count})
