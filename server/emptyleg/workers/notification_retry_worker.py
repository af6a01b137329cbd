"""Background worker for redelivering client notifications."""

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..gateways import NotificationGateway, build_notification_gateway
from ..services.notification_service import NotificationService
from .base import BaseWorker


class NotificationRetryWorker(BaseWorker):
    """Resends FAILED and stranded PENDING outbox messages."""

    def __init__(
        self,
        interval_seconds: int = 120,
        gateway_factory: Optional[Callable[[], NotificationGateway]] = None,
        **kwargs,
    ):
        super().__init__(name="NotificationRetry", interval_seconds=interval_seconds, **kwargs)
        self.gateway_factory = gateway_factory or (lambda: build_notification_gateway(settings))

    async def process(self, db: AsyncSession) -> None:
        gateway = self.gateway_factory()
        try:
            await NotificationService(db, gateway).retry_undelivered()
        finally:
            await gateway.aclose()
