#!/usr/bin/env python3
"""Setup script for the empty-leg engine."""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from emptyleg.core.database import async_session_factory, close_db, utcnow
from emptyleg.models import Aircraft, Airport, Deal
from emptyleg.schemas.common import Money
from emptyleg.schemas.deal import CreateDealRequest
from emptyleg.services.deal_service import DealService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_AIRPORTS = [
    {"icao_code": "DNMM", "iata_code": "LOS", "name": "Murtala Muhammed International Airport",
     "municipality": "Lagos", "country": "NG", "latitude": 6.5774, "longitude": 3.3212},
    {"icao_code": "DNAA", "iata_code": "ABV", "name": "Nnamdi Azikiwe International Airport",
     "municipality": "Abuja", "country": "NG", "latitude": 9.0068, "longitude": 7.2632},
    {"icao_code": "DGAA", "iata_code": "ACC", "name": "Kotoka International Airport",
     "municipality": "Accra", "country": "GH", "latitude": 5.6052, "longitude": -0.1668},
    {"icao_code": "EGLL", "iata_code": "LHR", "name": "London Heathrow Airport",
     "municipality": "London", "country": "GB", "latitude": 51.4706, "longitude": -0.4619},
]

SAMPLE_AIRCRAFT = [
    {"name": "Citation XLS+", "manufacturer": "Cessna", "category": "MIDSIZE_JET", "passenger_capacity": 9},
    {"name": "Challenger 605", "manufacturer": "Bombardier", "category": "HEAVY_JET", "passenger_capacity": 12},
    {"name": "King Air 350", "manufacturer": "Beechcraft", "category": "TURBOPROP", "passenger_capacity": 8},
]


def setup_database():
    """Apply Alembic migrations up to head."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Seed the airport and aircraft catalog and one bookable deal."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing = await db.execute(select(func.count()).select_from(Airport))
        if existing.scalar() > 0:
            logger.info("Sample data already exists, skipping...")
            return

        try:
            db.add_all(Airport(**airport) for airport in SAMPLE_AIRPORTS)
            db.add_all(Aircraft(**aircraft) for aircraft in SAMPLE_AIRCRAFT)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to seed catalog: {e}")
            raise

        deal = await DealService(db).create_deal(
            CreateDealRequest(
                origin_icao="DNMM",
                destination_icao="DNAA",
                departure_at=utcnow() + timedelta(days=7),
                aircraft_name="Citation XLS+",
                total_seats=8,
                original_price=Money(amount=1500000, currency="USD"),
                discount_price=Money(amount=950000, currency="USD"),
                status="OPEN",
                operator_name="Sample Operator",
            ),
            actor="setup-script",
        )
        count = await db.execute(select(func.count()).select_from(Deal))
        logger.info(f"Sample data created: deal {deal.slug}, {count.scalar()} deal(s) in total")


async def seed():
    try:
        await create_sample_data()
    finally:
        await close_db()


def main():
    """Main setup function."""
    logger.info("Starting empty-leg engine setup...")

    # Migrations run their own event loop
    setup_database()

    asyncio.run(seed())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn emptyleg.main:app --reload")


if __name__ == "__main__":
    main()
