"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict, Optional

from ..core.config import Settings, settings as default_settings
from .base import BaseWorker
from .deal_expiry_worker import DealExpiryWorker
from .notification_retry_worker import NotificationRetryWorker
from .payment_deadline_worker import PaymentDeadlineWorker
from .sync_worker import SyncWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        """Initialize the workers the configuration enables."""
        self.workers["provider_sync"] = SyncWorker(interval_seconds=self.config.sync_interval_seconds)
        self.workers["deal_expiry"] = DealExpiryWorker(interval_seconds=self.config.deal_expiry_interval_seconds)
        if self.config.auto_expire_overdue_bookings:
            self.workers["payment_deadline"] = PaymentDeadlineWorker(
                interval_seconds=self.config.payment_expiry_interval_seconds,
                batch_size=self.config.sweep_batch_size,
            )
        self.workers["notification_retry"] = NotificationRetryWorker(
            interval_seconds=self.config.notification_retry_interval_seconds
        )

        logger.info("Initialized workers", extra={"workers": list(self.workers)})

    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error("Failed to start worker", exc_info=True, extra={"worker": name, "error": str(e)})

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True,
        )

        for name, result in zip(self.workers.keys(), results):
            if isinstance(result, Exception):
                logger.error("Error stopping worker", extra={"worker": name, "error": str(result)})

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Map worker names to their running status."""
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
