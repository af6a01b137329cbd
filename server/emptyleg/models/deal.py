"""Deal model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking
    from .catalog import Aircraft, Airport


class DealSource(str, Enum):
    """Where a deal came from."""
    INTERNAL = "INTERNAL"
    OPERATOR = "OPERATOR"
    PROVIDER = "PROVIDER"


class DealStatus(str, Enum):
    """Deal status enumeration."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    OPEN = "OPEN"
    EXPIRED = "EXPIRED"
    REMOVED = "REMOVED"

    @property
    def is_live(self) -> bool:
        return self in LIVE_DEAL_STATUSES

    def can_transition_to(self, target: "DealStatus") -> bool:
        """Return True if a deal may move from this status to ``target``."""
        return target in _DEAL_TRANSITIONS[self]


LIVE_DEAL_STATUSES = frozenset({DealStatus.PUBLISHED, DealStatus.OPEN})

_DEAL_TRANSITIONS = {
    DealStatus.DRAFT: frozenset({DealStatus.PUBLISHED, DealStatus.OPEN, DealStatus.REMOVED}),
    DealStatus.PUBLISHED: frozenset({DealStatus.OPEN, DealStatus.EXPIRED, DealStatus.REMOVED}),
    DealStatus.OPEN: frozenset({DealStatus.PUBLISHED, DealStatus.EXPIRED, DealStatus.REMOVED}),
    DealStatus.EXPIRED: frozenset(),
    DealStatus.REMOVED: frozenset(),
}


class PriceType(str, Enum):
    """FIXED deals carry a price; CONTACT deals are priced on request."""
    FIXED = "FIXED"
    CONTACT = "CONTACT"


class AircraftCategory(str, Enum):
    """Aircraft size classes shown to clients."""
    LIGHT_JET = "LIGHT_JET"
    MIDSIZE_JET = "MIDSIZE_JET"
    SUPER_MIDSIZE_JET = "SUPER_MIDSIZE_JET"
    HEAVY_JET = "HEAVY_JET"
    ULTRA_LONG_RANGE = "ULTRA_LONG_RANGE"
    TURBOPROP = "TURBOPROP"
    HELICOPTER = "HELICOPTER"


class Deal(Base):
    """A sellable empty-leg flight segment with seat inventory and pricing."""

    __tablename__ = "deals"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Identity
    external_id: Mapped[str | None] = mapped_column(String(64), index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    source: Mapped[DealSource] = mapped_column(String(16), nullable=False, index=True)
    status: Mapped[DealStatus] = mapped_column(
        String(16),
        nullable=False,
        default=DealStatus.DRAFT,
        index=True
    )

    # Route
    origin_airport_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("airports.id", ondelete="SET NULL")
    )
    origin_icao: Mapped[str] = mapped_column(String(8), nullable=False)
    origin_city: Mapped[str] = mapped_column(String(255), nullable=False)
    origin_country: Mapped[str | None] = mapped_column(String(100))
    destination_airport_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("airports.id", ondelete="SET NULL")
    )
    destination_icao: Mapped[str] = mapped_column(String(8), nullable=False)
    destination_city: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_country: Mapped[str | None] = mapped_column(String(100))
    departure_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Aircraft
    aircraft_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("aircraft.id", ondelete="SET NULL"))
    aircraft_name: Mapped[str | None] = mapped_column(String(255))
    aircraft_type: Mapped[str | None] = mapped_column(String(255))
    aircraft_category: Mapped[AircraftCategory | None] = mapped_column(String(32))
    aircraft_image_url: Mapped[str | None] = mapped_column(String(1024))

    # Seats
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    available_seats: Mapped[int] = mapped_column(Integer, nullable=False)

    # Pricing (minor units, e.g. cents)
    price_type: Mapped[PriceType] = mapped_column(String(16), nullable=False, default=PriceType.FIXED)
    original_price_amount: Mapped[int | None] = mapped_column(Integer)
    discount_price_amount: Mapped[int | None] = mapped_column(Integer)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Operator contact
    operator_name: Mapped[str | None] = mapped_column(String(255))
    operator_email: Mapped[str | None] = mapped_column(String(255))
    operator_phone: Mapped[str | None] = mapped_column(String(64))

    created_by: Mapped[str | None] = mapped_column(String(255))
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_deal_source_external_id"),
        CheckConstraint("total_seats > 0", name="ck_deal_total_seats_positive"),
        CheckConstraint("available_seats >= 0", name="ck_deal_available_seats_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="ck_deal_available_seats_lte_total"),
        CheckConstraint(
            "source <> 'PROVIDER' OR external_id IS NOT NULL",
            name="ck_deal_provider_has_external_id"
        ),
        CheckConstraint(
            "original_price_amount IS NULL OR original_price_amount >= 0",
            name="ck_deal_original_price_non_negative"
        ),
        CheckConstraint(
            "discount_price_amount IS NULL OR discount_price_amount >= 0",
            name="ck_deal_discount_price_non_negative"
        ),
    )

    origin_airport: Mapped["Airport | None"] = relationship("Airport", foreign_keys=[origin_airport_id])
    destination_airport: Mapped["Airport | None"] = relationship(
        "Airport", foreign_keys=[destination_airport_id]
    )
    aircraft: Mapped["Aircraft | None"] = relationship("Aircraft")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="deal")

    @property
    def route_label(self) -> str:
        return f"{self.origin_city} → {self.destination_city}"

    def __repr__(self) -> str:
        return (
            f"<Deal(id={self.id}, slug='{self.slug}', source={self.source}, "
            f"status={self.status}, seats={self.available_seats}/{self.total_seats})>"
        )
