"""Test configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from emptyleg.core.config import Settings
from emptyleg.core.database import Base, utcnow
from emptyleg.core.dependencies import get_app_settings, get_db, get_notification_gateway, get_provider_client
from emptyleg.gateways.notification import NotificationDeliveryError, NotificationGateway
from emptyleg.models import *  # noqa: F403 - Import all models
from emptyleg.models.booking import Booking
from emptyleg.models.catalog import Aircraft, Airport
from emptyleg.models.deal import Deal, DealSource, DealStatus, PriceType
from emptyleg.providers.base import ProviderClient, ProviderFetchError
from emptyleg.providers.instacharter import map_availability
from emptyleg.schemas.booking import ClientContact, CreateBookingRequest
from emptyleg.services.booking_service import BookingService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_JWT_SECRET = "test-jwt-secret"
TEST_CRON_SECRET = "test-cron-secret"

# Shared so that repeated snapshots of one item compare equal
DEFAULT_DEPARTURE = (utcnow() + timedelta(days=5)).replace(hour=10, minute=0, second=0, microsecond=0)


class RecordingGateway(NotificationGateway):
    """Keeps every message instead of sending it; ``fail`` makes sends raise."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.fail = False
        self.closed = False

    async def send(self, to: str, body: str, media_url: Optional[str] = None) -> str:
        if self.fail:
            raise NotificationDeliveryError("gateway down")
        self.sent.append({"to": to, "body": body, "media_url": media_url})
        return f"test-{len(self.sent)}"

    async def aclose(self) -> None:
        self.closed = True


class FakeProvider(ProviderClient):
    """In-memory marketplace speaking the InstaCharter item format."""

    name = "fake"

    def __init__(self, items: Optional[list[dict[str, Any]]] = None):
        self.items = items or []
        self.fail_with: Optional[str] = None
        self.fetch_count = 0

    async def fetch_snapshot(self) -> list[dict[str, Any]]:
        self.fetch_count += 1
        if self.fail_with:
            raise ProviderFetchError(self.fail_with)
        return [dict(item) for item in self.items]

    def external_id_of(self, item: dict[str, Any]) -> str | None:
        raw_id = item.get("id")
        return str(raw_id) if raw_id is not None else None

    def map_item(self, item: dict[str, Any]):
        return map_availability(item)

    async def check_health(self) -> dict[str, Any]:
        return {"provider": self.name, "configured": True, "reachable": self.fail_with is None, "detail": "fake"}


def availability_item(
    external_id: int | str,
    seats: int = 8,
    price: Optional[str] = "$12K",
    departs: Optional[datetime] = None,
    from_icao: str = "DNMM",
    from_city: str = "Lagos",
    to_icao: str = "DNAA",
    to_city: str = "Abuja",
    aircraft_type: str = "Citation XLS+",
) -> dict[str, Any]:
    """One GetAvailabilities item."""
    departs = departs or DEFAULT_DEPARTURE
    return {
        "id": external_id,
        "from": {
            "dateFrom": departs.strftime("%Y-%m-%dT%H:%M:%S"),
            "fromIcao": from_icao,
            "fromCity": from_city,
            "lat": 6.57,
            "long": 3.32,
        },
        "to": {
            "toIcao": to_icao,
            "toCity": to_city,
        },
        "aircraft": {
            "aircraft_Category": "Midsize Jet",
            "aircraft_Type": aircraft_type,
            "availabilityType": "One Way",
            "seats": seats,
            "price": price,
        },
        "companyDetails": {"companyName": "Skyline Aviation", "email": "ops@skyline.test", "phone": "+2348000000001"},
    }


@pytest.fixture
def test_config():
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        environment="test",
        database_url=TEST_DATABASE_URL,
        bearer_token_secret=TEST_JWT_SECRET,
        cron_secret=TEST_CRON_SECRET,
        workers_enabled=False,
        provider_api_key="test-key",
        payment_window_hours=24,
        commission_percent=10,
        enforce_payment_deadline=True,
        require_payment_evidence=True,
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def booking_service(test_session, gateway, test_config):
    return BookingService(test_session, gateway, test_config)


@pytest_asyncio.fixture
async def airports(test_session):
    """Catalog entries for the routes used across the tests."""
    entries = [
        Airport(icao_code="DNMM", iata_code="LOS", name="Murtala Muhammed International",
                municipality="Lagos", country="NG"),
        Airport(icao_code="DNAA", iata_code="ABV", name="Nnamdi Azikiwe International",
                municipality="Abuja", country="NG"),
        Airport(icao_code="DGAA", gps_code="DGAA", iata_code="ACC", name="Kotoka International",
                municipality="Accra", country="GH"),
    ]
    test_session.add_all(entries)
    test_session.add(Aircraft(name="Citation XLS+", manufacturer="Cessna", category="MIDSIZE_JET",
                              image_url="https://img.test/citation.jpg"))
    await test_session.commit()
    return {airport.icao_code: airport for airport in entries}


@pytest.fixture
def make_deal(test_session):
    """Insert a deal directly; keyword arguments override the defaults."""
    counter = {"n": 0}

    async def _make_deal(**overrides) -> Deal:
        counter["n"] += 1
        values = {
            "slug": f"lagos-to-abuja-test-{counter['n']}",
            "source": DealSource.INTERNAL,
            "status": DealStatus.OPEN,
            "origin_icao": "DNMM",
            "origin_city": "Lagos",
            "destination_icao": "DNAA",
            "destination_city": "Abuja",
            "departure_at": (utcnow() + timedelta(days=3)).replace(microsecond=0),
            "aircraft_name": "Citation XLS+",
            "total_seats": 8,
            "available_seats": 8,
            "price_type": PriceType.FIXED,
            "original_price_amount": 1_500_000,
            "discount_price_amount": 1_000_000,
            "price_currency": "USD",
        }
        values.update(overrides)
        deal = Deal(**values)
        test_session.add(deal)
        await test_session.commit()
        await test_session.refresh(deal)
        return deal

    return _make_deal


@pytest.fixture
def make_booking(booking_service):
    """Create a PENDING booking through the service."""

    async def _make_booking(deal: Deal, seats: int = 2, phone: str = "08012345678", name: str = "Ada Obi") -> Booking:
        return await booking_service.create_booking(
            CreateBookingRequest(
                deal_id=str(deal.id),
                seats=seats,
                client=ClientContact(name=name, email="ada@example.test", phone=phone),
            )
        )

    return _make_booking


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, test_config, gateway, provider):
    """Create a test FastAPI application."""
    from fastapi import FastAPI

    from emptyleg.core.exceptions import ProblemDetailsException, generic_exception_handler, problem_details_handler
    from emptyleg.routers import (
        booking_router,
        deals_router,
        health_router,
        metrics_router,
        settings_router,
        sync_router,
        webhooks_router,
    )

    # Create a simplified test app without lifespan
    app = FastAPI(title="Empty-Leg Engine (Test)", version="test")

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(sync_router)
    app.include_router(deals_router)
    app.include_router(booking_router)
    app.include_router(webhooks_router)
    app.include_router(settings_router)
    app.include_router(metrics_router)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_settings] = lambda: test_config
    app.dependency_overrides[get_notification_gateway] = lambda: gateway
    app.dependency_overrides[get_provider_client] = lambda: provider

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Bearer token for an admin."""
    token = jwt.encode(
        {"sub": "admin-1", "username": "ops", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        TEST_JWT_SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {TEST_CRON_SECRET}"}
