"""Ticket number sequencing backed by a shared counter row."""

import logging

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import is_postgresql
from ..models.policy import TICKET_COUNTER_NAME, TicketCounter

logger = logging.getLogger(__name__)


def format_ticket_number(prefix: str, year: int, sequence: int, width: int = 6) -> str:
    """``PEX-2026-000042``"""
    return f"{prefix}-{year}-{sequence:0{width}d}"


class TicketService:
    """Issues monotonically increasing ticket numbers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ensure_counter(self, name: str) -> None:
        insert = pg_insert if is_postgresql(self.db) else sqlite_insert
        stmt = insert(TicketCounter).values(name=name, value=0).on_conflict_do_nothing(
            index_elements=[TicketCounter.name]
        )
        await self.db.execute(stmt)

    async def next_sequence(self, name: str = TICKET_COUNTER_NAME) -> int:
        """
        Increment the counter inside the caller's transaction.

        The UPDATE takes the row lock, so concurrent callers queue behind
        one another until the holder commits or rolls back; a rollback
        also releases the number.
        """
        await self._ensure_counter(name)
        result = await self.db.execute(
            update(TicketCounter)
            .where(TicketCounter.name == name)
            .values(value=TicketCounter.value + 1)
            .returning(TicketCounter.value)
        )
        sequence = result.scalar_one()
        logger.debug("Ticket sequence advanced", extra={"counter": name, "sequence": sequence})
        return sequence

    async def next_ticket_number(self, prefix: str, year: int, width: int = 6) -> str:
        return format_ticket_number(prefix, year, await self.next_sequence(), width)
