"""Provider client contract shared by every inventory marketplace integration."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..models.deal import AircraftCategory, PriceType


class ProviderError(Exception):
    """Base class for provider integration failures."""


class ProviderFetchError(ProviderError):
    """
    The snapshot could not be fetched in full.

    A partial snapshot would make the reconciler delete deals that are
    still for sale, so any page failure fails the whole fetch.
    """


class MappingError(ProviderError):
    """A single snapshot item could not be turned into a deal."""

    def __init__(self, external_id: str | None, message: str):
        self.external_id = external_id
        self.message = message
        label = f"Deal {external_id}" if external_id else "Deal without id"
        super().__init__(f"{label}: {message}")


class MappedDeal(BaseModel):
    """Provider item expressed in the local deal shape."""

    model_config = ConfigDict(frozen=True)

    external_id: str
    origin_icao: str
    origin_city: str
    origin_country: str | None = None
    destination_icao: str
    destination_city: str
    destination_country: str | None = None
    departure_at: datetime
    aircraft_name: str | None = None
    aircraft_type: str | None = None
    aircraft_category: AircraftCategory | None = None
    aircraft_image_url: str | None = None
    total_seats: int = Field(..., ge=1)
    price_type: PriceType
    price_amount: int | None = Field(None, ge=0, description="Minor units")
    price_currency: str = "USD"
    operator_name: str | None = None
    operator_email: str | None = None
    operator_phone: str | None = None
    slug_tag: str | None = Field(None, description="Provider marker appended to generated slugs")


class ProviderClient(ABC):
    """
    Fetches a marketplace's current availability snapshot.

    Implementations keep no state between snapshots apart from lookup
    caches that are safe to lose.
    """

    name: str = "provider"

    @abstractmethod
    async def fetch_snapshot(self) -> list[dict[str, Any]]:
        """
        Fetch every currently sellable item.

        Raises:
            ProviderFetchError: If any part of the snapshot could not be read
        """

    @abstractmethod
    def external_id_of(self, item: dict[str, Any]) -> str | None:
        """Stable identity of a raw snapshot item, or None if it has none."""

    @abstractmethod
    def map_item(self, item: dict[str, Any]) -> MappedDeal:
        """
        Map a raw snapshot item to the local deal shape.

        Raises:
            MappingError: If the item is malformed
        """

    async def check_health(self) -> dict[str, Any]:
        """Report whether the provider is configured and reachable."""
        return {"provider": self.name, "configured": True, "reachable": None}

    async def aclose(self) -> None:
        """Release network resources."""
