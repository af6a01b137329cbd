"""Background worker for scheduled provider syncs."""

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.sync_run import SyncType
from ..providers import ProviderClient, build_provider_client
from ..services.sync_service import SyncService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class SyncWorker(BaseWorker):
    """
    Runs a SCHEDULED sync every ``sync_interval_seconds``.

    Several instances may run this worker; the sync run lock lets one
    of them work and answers the others busy.
    """

    def __init__(
        self,
        interval_seconds: int = 86400,
        provider_factory: Optional[Callable[[], ProviderClient]] = None,
        **kwargs,
    ):
        super().__init__(name="ProviderSync", interval_seconds=interval_seconds, **kwargs)
        self.provider_factory = provider_factory or (lambda: build_provider_client(settings))

    async def process(self, db: AsyncSession) -> None:
        provider = self.provider_factory()
        try:
            outcome = await SyncService(db, provider).run_sync(SyncType.SCHEDULED, triggered_by="scheduler")
        finally:
            await provider.aclose()

        if outcome.busy:
            logger.info("Scheduled sync skipped, another run holds the lock", extra={"worker": self.name})
        elif not outcome.success:
            logger.warning(
                "Scheduled sync failed",
                extra={"worker": self.name, "run_id": str(outcome.run_id), "errors": outcome.errors}
            )
