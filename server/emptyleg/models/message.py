"""Booking messages (notification outbox and inbound chat) and evidence models."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking


class MessageDirection(str, Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class MessageStatus(str, Enum):
    """Delivery status of an outbound message."""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    RECEIVED = "RECEIVED"


class MessageKind(str, Enum):
    """What triggered a message."""
    APPROVAL = "APPROVAL"
    REJECTION = "REJECTION"
    CONFIRMATION = "CONFIRMATION"
    RECEIPT_ACK = "RECEIPT_ACK"
    INBOUND = "INBOUND"


class BookingMessage(Base):
    """
    One message exchanged with a client about a booking.

    Outbound rows double as the notification outbox: they are written
    PENDING inside the transaction that changes booking state and are
    delivered after commit.
    """

    __tablename__ = "booking_messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    direction: Mapped[MessageDirection] = mapped_column(String(16), nullable=False)
    kind: Mapped[MessageKind] = mapped_column(String(16), nullable=False)
    status: Mapped[MessageStatus] = mapped_column(String(16), nullable=False, index=True)
    recipient: Mapped[str] = mapped_column(String(64), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    media_url: Mapped[str | None] = mapped_column(String(1024))

    provider_message_id: Mapped[str | None] = mapped_column(String(128))
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    booking: Mapped["Booking"] = relationship("Booking", back_populates="messages")

    def __repr__(self) -> str:
        return f"<BookingMessage(kind={self.kind}, status={self.status}, attempts={self.attempts})>"


class BookingEvidence(Base):
    """A client-submitted artifact (usually a payment receipt) attached to a booking."""

    __tablename__ = "booking_evidence"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    media_reference: Mapped[str | None] = mapped_column(String(1024))
    content_type: Mapped[str | None] = mapped_column(String(128))
    raw_text: Mapped[str | None] = mapped_column(Text)
    sender: Mapped[str | None] = mapped_column(String(64))
    booking_status_at_receipt: Mapped[str] = mapped_column(String(16), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="evidence")

    @property
    def is_image(self) -> bool:
        return bool(self.media_reference) and (self.content_type or "").startswith("image/")
