"""Booking and Payment model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .deal import Deal
    from .message import BookingEvidence, BookingMessage


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_BOOKING_STATUSES


TERMINAL_BOOKING_STATUSES = frozenset({BookingStatus.PAID, BookingStatus.REJECTED, BookingStatus.EXPIRED})

# Bookings whose seats have been taken off the deal
SEAT_HOLDING_STATUSES = (BookingStatus.APPROVED, BookingStatus.PAID)


class RejectionReason(str, Enum):
    """Reasons an admin may give when rejecting a booking request."""
    AIRCRAFT_UNAVAILABLE = "AIRCRAFT_UNAVAILABLE"
    ROUTE_NOT_SERVICEABLE = "ROUTE_NOT_SERVICEABLE"
    INVALID_DATES = "INVALID_DATES"
    PRICING_ISSUE = "PRICING_ISSUE"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    DEAL_NOT_AVAILABLE = "DEAL_NOT_AVAILABLE"
    NO_PAYMENT_MADE = "NO_PAYMENT_MADE"
    OTHER = "OTHER"


class Booking(Base):
    """A client's seat reservation request against a deal."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    reference_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    deal_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("deals.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Client contact
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_email: Mapped[str | None] = mapped_column(String(255))
    client_phone: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    requested_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_amount: Mapped[int | None] = mapped_column(Integer)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[BookingStatus] = mapped_column(
        String(16),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )

    # Approval
    payment_deadline: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    payment_reference: Mapped[str | None] = mapped_column(String(64))
    payment_link: Mapped[str | None] = mapped_column(String(1024))
    approved_by: Mapped[str | None] = mapped_column(String(255))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Rejection
    rejection_reason: Mapped[RejectionReason | None] = mapped_column(String(32))
    rejection_note: Mapped[str | None] = mapped_column(Text)
    rejected_by: Mapped[str | None] = mapped_column(String(255))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Payment confirmation
    ticket_number: Mapped[str | None] = mapped_column(String(32), unique=True)
    confirmed_by: Mapped[str | None] = mapped_column(String(255))
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime)

    expired_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Evidence
    receipt_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime)
    evidence_review_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("requested_seats > 0", name="ck_booking_requested_seats_positive"),
        CheckConstraint("length(reference_number) > 0", name="ck_booking_reference_not_empty"),
        CheckConstraint("length(client_phone) > 0", name="ck_booking_client_phone_not_empty"),
    )

    deal: Mapped["Deal"] = relationship("Deal", back_populates="bookings")
    payment: Mapped["Payment | None"] = relationship("Payment", back_populates="booking", uselist=False)
    evidence: Mapped[list["BookingEvidence"]] = relationship("BookingEvidence", back_populates="booking")
    messages: Mapped[list["BookingMessage"]] = relationship("BookingMessage", back_populates="booking")

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, ref='{self.reference_number}', "
            f"seats={self.requested_seats}, status={self.status})>"
        )


class Payment(Base):
    """Confirmed payment with its commission split."""

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    method: Mapped[str] = mapped_column(String(32), nullable=False, default="BANK_TRANSFER")
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    commission_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    admin_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    operator_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    confirmed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
        CheckConstraint("admin_amount + operator_amount = amount", name="ck_payment_split_sums"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payment")

    def __repr__(self) -> str:
        return f"<Payment(reference='{self.reference}', amount={self.amount})>"
