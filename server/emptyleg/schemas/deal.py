"""Deal-related Pydantic schemas."""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from ..models.deal import AircraftCategory, DealSource, DealStatus, PriceType
from .common import Money, PaginatedResponse


class CreateDealRequest(BaseModel):
    """Request schema for creating an internal or operator deal."""

    source: DealSource = Field(DealSource.INTERNAL, description="INTERNAL or OPERATOR")
    status: DealStatus = Field(DealStatus.DRAFT, description="Initial status: DRAFT, PUBLISHED or OPEN")
    origin_icao: str = Field(..., min_length=3, max_length=8)
    origin_city: str | None = Field(None, max_length=255, description="Defaults to the airport's city")
    destination_icao: str = Field(..., min_length=3, max_length=8)
    destination_city: str | None = Field(None, max_length=255, description="Defaults to the airport's city")
    departure_at: datetime = Field(..., description="Departure time (UTC)")
    aircraft_name: str | None = Field(None, max_length=255)
    aircraft_category: AircraftCategory | None = None
    total_seats: int = Field(..., ge=1, le=100)
    original_price: Money | None = Field(None, description="List price per seat")
    discount_price: Money | None = Field(None, description="Empty-leg price per seat; omit to price on request")
    operator_name: str | None = Field(None, max_length=255)
    operator_email: str | None = Field(None, max_length=255)
    operator_phone: str | None = Field(None, max_length=64)

    @model_validator(mode="after")
    def check_source_and_prices(self):
        if self.source == DealSource.PROVIDER:
            raise ValueError("PROVIDER deals are created by the provider sync only")
        if self.status not in (DealStatus.DRAFT, DealStatus.PUBLISHED, DealStatus.OPEN):
            raise ValueError("A new deal must start as DRAFT, PUBLISHED or OPEN")
        if self.original_price and self.discount_price:
            if self.original_price.currency != self.discount_price.currency:
                raise ValueError("Original and discount prices must share a currency")
            if self.discount_price.amount > self.original_price.amount:
                raise ValueError("Discount price cannot exceed the original price")
        return self


class GetDealRequest(BaseModel):
    """Request schema for getting a deal."""

    deal_id: str = Field(..., description="Deal to retrieve")


class ChangeDealStatusRequest(BaseModel):
    """Request schema for moving a deal between statuses."""

    deal_id: str = Field(..., description="Deal to update")
    status: DealStatus = Field(..., description="Target status")


class SearchDealsRequest(BaseModel):
    """Request schema for searching live deals."""

    origin_icao: str | None = Field(None, description="Filter by origin airport")
    destination_icao: str | None = Field(None, description="Filter by destination airport")
    date_from: date | None = Field(None, description="Earliest departure date")
    date_to: date | None = Field(None, description="Latest departure date (inclusive)")
    min_seats: int = Field(1, ge=1, description="Only deals with at least this many free seats")
    source: DealSource | None = Field(None, description="Filter by source")
    cursor: str | None = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class Deal(BaseModel):
    """Deal response schema."""

    id: str
    slug: str
    external_id: str | None = None
    source: DealSource
    status: DealStatus
    origin_icao: str
    origin_city: str
    destination_icao: str
    destination_city: str
    departure_at: datetime
    aircraft_name: str | None = None
    aircraft_category: AircraftCategory | None = None
    aircraft_image_url: str | None = None
    total_seats: int
    available_seats: int
    price_type: PriceType
    original_price: Money | None = None
    discount_price: Money | None = None
    operator_name: str | None = None
    last_synced_at: datetime | None = None

    class Config:
        from_attributes = True


class SearchDealsResponse(PaginatedResponse):
    """Response schema for deal search."""

    items: list[Deal] = Field(..., description="Matching deals")


class ExpiryPreviewResponse(BaseModel):
    """How many deals the next sweep would expire."""

    pending_count: int = Field(..., ge=0)
