"""Base worker class for background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import async_session_factory

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    Runs ``process`` every ``interval_seconds``. Each iteration opens its
    own session and nothing carries over between iterations, so a worker
    can be replaced at any time by an external scheduler calling the
    matching HTTP trigger.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: int = 60,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        """
        Initialize the worker.

        Args:
            name: Worker name for logging
            interval_seconds: How often to run the task
            session_factory: Session factory, the application's by default
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory or async_session_factory
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @abstractmethod
    async def process(self, db: AsyncSession) -> None:
        """Process one iteration of the background task."""

    async def run_once(self) -> None:
        """Run one iteration in a fresh session."""
        async with self.session_factory() as db:
            try:
                await self.process(db)
            except Exception:
                await db.rollback()
                raise

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning("Worker is already running", extra={"worker": self.name})
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Worker started", extra={"worker": self.name, "interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Worker stopped", extra={"worker": self.name})

    async def _run(self) -> None:
        """Main worker loop."""
        while self._running:
            try:
                started = time.monotonic()
                await self.run_once()

                duration = time.monotonic() - started
                logger.debug(
                    "Worker iteration completed",
                    extra={"duration_seconds": duration, "worker": self.name}
                )

                # Sleep for the remaining interval time
                await asyncio.sleep(max(0, self.interval_seconds - duration))

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(
                    "Worker iteration failed",
                    exc_info=True,
                    extra={"worker": self.name, "error": str(e)}
                )
                # Wait before retrying on error
                await asyncio.sleep(self.interval_seconds)
