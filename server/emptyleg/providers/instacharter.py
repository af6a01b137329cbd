"""InstaCharter marketplace client and availability mapping."""

import logging
import math
import re
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..models.deal import AircraftCategory, PriceType
from .base import MappedDeal, MappingError, ProviderClient, ProviderFetchError

logger = logging.getLogger(__name__)

ONE_WAY = "One Way"
SLUG_MARKER = "ic"

_PRICE_NOISE = re.compile(r"[$€£,\s]")
_LOCAL_TIME = re.compile(r"(\d{4})-(\d{2})-(\d{2})(?:T?(\d{2}))?(?::?(\d{2}))?(?::?(\d{2}))?")


class _Endpoint(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    lat: Optional[float] = None
    long: Optional[float] = None


class AvailabilityFrom(_Endpoint):
    date_from: str = Field(..., alias="dateFrom")
    icao: str = Field(..., alias="fromIcao", min_length=3)
    city: str = Field(..., alias="fromCity")


class AvailabilityTo(_Endpoint):
    date_to: Optional[str] = Field(None, alias="dateTo")
    icao: str = Field(..., alias="toIcao", min_length=3)
    city: str = Field(..., alias="toCity")


class AvailabilityAircraft(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    category: Optional[str] = Field(None, alias="aircraft_Category")
    type: Optional[str] = Field(None, alias="aircraft_Type")
    availability_type: Optional[str] = Field(None, alias="availabilityType")
    seats: int = Field(..., ge=1)
    price: Optional[str] = None


class AvailabilityCompany(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    company_name: Optional[str] = Field(None, alias="companyName")
    email: Optional[str] = None
    phone: Optional[str] = None


class Availability(BaseModel):
    """One item of the GetAvailabilities feed."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int | str
    origin: AvailabilityFrom = Field(..., alias="from")
    destination: AvailabilityTo = Field(..., alias="to")
    aircraft: AvailabilityAircraft
    company: AvailabilityCompany = Field(default_factory=AvailabilityCompany, alias="companyDetails")
    aircraft_image: Optional[str] = Field(None, alias="aircraftImage")


def parse_price(value: Any) -> Optional[float]:
    """
    Parse marketplace prices such as ``"$26K"``, ``"1.2M"`` or ``"230000"``.

    Returns:
        The price in major units, or None when absent or unreadable
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    cleaned = _PRICE_NOISE.sub("", str(value))
    if not cleaned:
        return None

    multiplier = 1
    suffix = cleaned[-1].upper()
    if suffix == "K":
        multiplier, cleaned = 1_000, cleaned[:-1]
    elif suffix == "M":
        multiplier, cleaned = 1_000_000, cleaned[:-1]

    try:
        price = float(cleaned) * multiplier
    except ValueError:
        return None
    # "nan", "Infinity" and overflowing exponents are not prices
    return price if math.isfinite(price) else None


def parse_local_time_as_utc(value: str) -> datetime:
    """
    Read the provider's local departure time without any zone conversion.

    ``"2025-06-14T10:00:00"`` is stored as 10:00 so the time shown to
    clients matches the operator's listing.

    Raises:
        ValueError: If the string holds no recognisable date
    """
    match = _LOCAL_TIME.search(value or "")
    if not match:
        raise ValueError(f"unrecognised departure time {value!r}")
    year, month, day, hour, minute, second = match.groups()
    return datetime(
        int(year), int(month), int(day),
        int(hour or 0), int(minute or 0), int(second or 0),
    )


def map_aircraft_category(category: Optional[str]) -> Optional[AircraftCategory]:
    text = (category or "").lower()
    if "light" in text:
        return AircraftCategory.LIGHT_JET
    if "super" in text and "mid" in text:
        return AircraftCategory.SUPER_MIDSIZE_JET
    if "mid" in text:
        return AircraftCategory.MIDSIZE_JET
    if "heavy" in text or "long" in text or "ultra" in text:
        return AircraftCategory.ULTRA_LONG_RANGE
    if "propeller" in text or "turbo" in text:
        return AircraftCategory.TURBOPROP
    if "helicopter" in text:
        return AircraftCategory.HELICOPTER
    return None


def _describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"])
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def map_availability(item: dict[str, Any], currency: str = "USD") -> MappedDeal:
    """
    Map a raw GetAvailabilities item to the local deal shape.

    Raises:
        MappingError: If required fields are missing or malformed
    """
    raw_id = item.get("id") if isinstance(item, dict) else None
    external_id = str(raw_id) if raw_id is not None else None

    try:
        availability = Availability.model_validate(item)
    except PydanticValidationError as exc:
        raise MappingError(external_id, _describe_validation_error(exc)) from exc

    try:
        departure_at = parse_local_time_as_utc(availability.origin.date_from)
    except ValueError as exc:
        raise MappingError(external_id, str(exc)) from exc

    price = parse_price(availability.aircraft.price)
    company = availability.company

    return MappedDeal(
        external_id=str(availability.id),
        origin_icao=availability.origin.icao.upper(),
        origin_city=availability.origin.city,
        destination_icao=availability.destination.icao.upper(),
        destination_city=availability.destination.city,
        departure_at=departure_at,
        aircraft_name=availability.aircraft.type,
        aircraft_type=availability.aircraft.type,
        aircraft_category=map_aircraft_category(availability.aircraft.category),
        aircraft_image_url=availability.aircraft_image,
        total_seats=availability.aircraft.seats,
        price_type=PriceType.FIXED if price is not None else PriceType.CONTACT,
        price_amount=round(price * 100) if price is not None else None,
        price_currency=currency,
        operator_name=company.company_name,
        operator_email=company.email or None,
        operator_phone=company.phone or None,
        slug_tag=f"{SLUG_MARKER}-{availability.id}",
    )


def _section(item: dict[str, Any], key: str) -> dict[str, Any]:
    value = item.get(key)
    return value if isinstance(value, dict) else {}


class InstaCharterClient(ProviderClient):
    """
    Read-only client for the InstaCharter Markets API.

    The feed is paginated (``GetAvailabilities?PageNo=N``); pages are read
    until a short page or the page cap, and only one-way availabilities
    are kept.
    """

    name = "instacharter"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client_id: str = "",
        page_size: int = 20,
        max_pages: int = 10,
        timeout_seconds: float = 30.0,
        fetch_images: bool = True,
        currency: str = "USD",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.client_id = client_id
        self.page_size = page_size
        self.max_pages = max_pages
        self.fetch_images = fetch_images
        self.currency = currency
        self._image_cache: dict[str, Optional[str]] = {}
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            headers={"X-Api-Key": api_key, "Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def external_id_of(self, item: dict[str, Any]) -> str | None:
        raw_id = item.get("id") if isinstance(item, dict) else None
        return str(raw_id) if raw_id is not None else None

    def map_item(self, item: dict[str, Any]) -> MappedDeal:
        return map_availability(item, currency=self.currency)

    async def _get_page(self, page_no: int) -> list[dict[str, Any]]:
        if not self.api_key:
            raise ProviderFetchError("InstaCharter API key is not configured")

        try:
            response = await self._http.get("/GetAvailabilities", params={"PageNo": page_no})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderFetchError(
                f"InstaCharter returned {exc.response.status_code} for page {page_no}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderFetchError(f"Network error fetching page {page_no}: {exc}") from exc
        except ValueError as exc:
            raise ProviderFetchError(f"Malformed JSON on page {page_no}") from exc

        if not isinstance(payload, dict) or not payload.get("success", False):
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ProviderFetchError(f"InstaCharter rejected page {page_no}: {message or 'no message'}")

        data = payload.get("data") or []
        if not isinstance(data, list):
            raise ProviderFetchError(f"Unexpected data shape on page {page_no}")
        return data

    async def fetch_snapshot(self) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []

        for page_no in range(1, self.max_pages + 1):
            page = await self._get_page(page_no)
            items.extend(
                item for item in page
                if isinstance(item, dict)
                and _section(item, "aircraft").get("availabilityType") == ONE_WAY
            )
            if len(page) < self.page_size:
                break
        else:
            logger.warning(
                "InstaCharter page cap reached; snapshot may be truncated",
                extra={"max_pages": self.max_pages, "items": len(items)}
            )

        if self.fetch_images:
            for item in items:
                if not item.get("aircraftImage"):
                    item["aircraftImage"] = await self._aircraft_image(item)

        logger.info(
            "Fetched InstaCharter snapshot",
            extra={"items": len(items), "fetch_images": self.fetch_images}
        )
        return items

    async def _aircraft_image(self, item: dict[str, Any]) -> Optional[str]:
        aircraft = _section(item, "aircraft")
        aircraft_type = str(aircraft.get("aircraft_Type") or "")
        if aircraft_type in self._image_cache:
            return self._image_cache[aircraft_type]

        origin = _section(item, "from")
        destination = _section(item, "to")
        body = {
            "currency": self.currency,
            "clientId": self.client_id or self.api_key,
            "itinerary": [{
                "from": {"lat": origin.get("lat") or 0, "long": origin.get("long") or 0,
                         "name": origin.get("fromCity") or "Origin"},
                "to": {"lat": destination.get("lat") or 0, "long": destination.get("long") or 0,
                       "name": destination.get("toCity") or "Destination"},
                "date": str(origin.get("dateFrom") or "").split("T")[0],
                "pax": aircraft.get("seats") or 4,
            }],
        }

        try:
            response = await self._http.post("/GetOptions", json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            # Images are decoration; the deal is still sellable without one
            logger.warning(
                "Aircraft image lookup failed",
                extra={"aircraft_type": aircraft_type, "error": str(exc)}
            )
            return None

        image = select_aircraft_image(payload, aircraft_type, aircraft.get("aircraft_Category"))
        self._image_cache[aircraft_type] = image
        return image

    async def check_health(self) -> dict[str, Any]:
        if not self.api_key:
            return {"provider": self.name, "configured": False, "reachable": False,
                    "detail": "API key not configured"}
        try:
            await self._get_page(1)
        except ProviderFetchError as exc:
            return {"provider": self.name, "configured": True, "reachable": False, "detail": str(exc)}
        return {"provider": self.name, "configured": True, "reachable": True, "detail": "ok"}


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def select_aircraft_image(payload: Any, aircraft_type: str, category: Optional[str]) -> Optional[str]:
    """
    Pick the best matching image from a GetOptions response.

    Tries an exact aircraft name, then a first-word match, then the
    category, then whatever image comes first. Any response shape it does
    not recognise gives None.
    """
    if not isinstance(payload, dict) or not payload.get("success"):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    groups = [(group, _dicts(group.get("aircraftDetails"))) for group in _dicts(data.get("base"))]

    wanted = (aircraft_type or "").lower()
    wanted_category = (category or "").lower()

    for group, details in groups:
        if not details:
            continue
        for entry in details:
            if str(entry.get("aircraftName") or "").lower() == wanted and entry.get("image"):
                return entry["image"]
        for entry in details:
            first_word = str(entry.get("aircraftName") or "").lower().split(" ")[0]
            if first_word and first_word in wanted and entry.get("image"):
                return entry["image"]
        if wanted_category and str(group.get("aircraftCategory") or "").lower() == wanted_category:
            return details[0].get("image")

    for _, details in groups:
        if details:
            return details[0].get("image")
    return None
