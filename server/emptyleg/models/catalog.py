"""Airport and aircraft catalog models used to correlate provider inventory."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Float, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Airport(Base):
    """Airport reference data, matched against deal origins and destinations."""

    __tablename__ = "airports"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    icao_code: Mapped[str | None] = mapped_column(String(4), unique=True, index=True)
    gps_code: Mapped[str | None] = mapped_column(String(8), index=True)
    iata_code: Mapped[str | None] = mapped_column(String(3), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    municipality: Mapped[str | None] = mapped_column(String(255))
    country: Mapped[str | None] = mapped_column(String(100))
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Airport(icao={self.icao_code}, name='{self.name}')>"


class Aircraft(Base):
    """Aircraft catalog entry."""

    __tablename__ = "aircraft"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    manufacturer: Mapped[str | None] = mapped_column(String(255))
    category: Mapped[str | None] = mapped_column(String(32))
    passenger_capacity: Mapped[int | None] = mapped_column()
    image_url: Mapped[str | None] = mapped_column(String(1024))

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Aircraft(name='{self.name}', category={self.category})>"
