"""Shared store rows: the ticket counter and the live booking policy."""

from datetime import datetime

from sqlalchemy import Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base

TICKET_COUNTER_NAME = "flight_ticket"
DEFAULT_SETTINGS_ID = "default"


class TicketCounter(Base):
    """Monotonic sequence shared by every process issuing ticket numbers."""

    __tablename__ = "ticket_counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )


class BookingSettings(Base):
    """
    Admin-editable booking policy.

    Null columns fall back to the environment defaults in ``Settings``.
    """

    __tablename__ = "booking_settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=DEFAULT_SETTINGS_ID)
    payment_window_hours: Mapped[int | None] = mapped_column(Integer)
    commission_percent: Mapped[int | None] = mapped_column(Integer)
    support_phone: Mapped[str | None] = mapped_column(String(32))
    updated_by: Mapped[str | None] = mapped_column(String(255))

    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )
