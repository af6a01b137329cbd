"""Deal service for human-sourced inventory."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from ..core.slugs import deal_slug, with_suffix
from ..models.audit import AuditAction
from ..models.catalog import Aircraft, Airport
from ..models.deal import LIVE_DEAL_STATUSES, Deal, DealSource, DealStatus, PriceType
from ..schemas.deal import ChangeDealStatusRequest, CreateDealRequest, SearchDealsRequest
from .audit_service import AuditService

logger = logging.getLogger(__name__)

MAX_SLUG_ATTEMPTS = 50


def parse_uuid(value: str, resource_type: str) -> UUID:
    """Parse a client-supplied id, treating garbage as a missing resource."""
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        raise NotFoundError(resource_type=resource_type, resource_id=str(value))


async def find_airport(db: AsyncSession, code: str) -> Optional[Airport]:
    """Match a location code against the catalog's ICAO or GPS code."""
    code = code.strip().upper()
    result = await db.execute(
        select(Airport).where(or_(Airport.icao_code == code, Airport.gps_code == code)).limit(1)
    )
    return result.scalar_one_or_none()


async def find_aircraft(db: AsyncSession, name: Optional[str]) -> Optional[Aircraft]:
    if not name:
        return None
    result = await db.execute(
        select(Aircraft).where(func.lower(Aircraft.name) == name.strip().lower()).limit(1)
    )
    return result.scalar_one_or_none()


async def unique_slug(db: AsyncSession, base: str, exclude_id: Optional[UUID] = None) -> str:
    """First of ``base``, ``base-1``, ``base-2``... not used by another deal."""
    for attempt in range(MAX_SLUG_ATTEMPTS):
        candidate = with_suffix(base, attempt)
        stmt = select(Deal.id).where(Deal.slug == candidate)
        if exclude_id is not None:
            stmt = stmt.where(Deal.id != exclude_id)
        if (await db.execute(stmt)).first() is None:
            return candidate
    raise ValidationError(detail=f"Could not allocate a unique slug for '{base}'")


class DealService:
    """Service for deal-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def create_deal(self, request: CreateDealRequest, actor: Optional[str] = None) -> Deal:
        """
        Create an INTERNAL or OPERATOR deal.

        Args:
            request: Deal creation request
            actor: Admin creating the deal

        Returns:
            Created deal entity

        Raises:
            ValidationError: If the departure is in the past
        """
        departure_at = request.departure_at
        if departure_at.tzinfo is not None:
            departure_at = departure_at.astimezone(timezone.utc).replace(tzinfo=None)
        if departure_at <= utcnow():
            raise ValidationError(
                detail="Departure must be in the future",
                errors={"departure_at": "must be in the future"}
            )

        origin = await find_airport(self.db, request.origin_icao)
        destination = await find_airport(self.db, request.destination_icao)
        origin_city = request.origin_city or (origin and origin.municipality)
        destination_city = request.destination_city or (destination and destination.municipality)
        if not origin_city or not destination_city:
            raise ValidationError(
                detail="City is required for airports missing from the catalog",
                errors={
                    field: "unknown airport, city required"
                    for field, city in (("origin_city", origin_city), ("destination_city", destination_city))
                    if not city
                }
            )
        aircraft = await find_aircraft(self.db, request.aircraft_name)

        price = request.discount_price or request.original_price
        deal = Deal(
            slug=await unique_slug(self.db, deal_slug(origin_city, destination_city, departure_at)),
            source=request.source,
            status=request.status,
            origin_airport_id=origin.id if origin else None,
            origin_icao=request.origin_icao.strip().upper(),
            origin_city=origin_city,
            origin_country=origin.country if origin else None,
            destination_airport_id=destination.id if destination else None,
            destination_icao=request.destination_icao.strip().upper(),
            destination_city=destination_city,
            destination_country=destination.country if destination else None,
            departure_at=departure_at,
            aircraft_id=aircraft.id if aircraft else None,
            aircraft_name=request.aircraft_name,
            aircraft_category=request.aircraft_category,
            aircraft_image_url=aircraft.image_url if aircraft else None,
            total_seats=request.total_seats,
            available_seats=request.total_seats,
            price_type=PriceType.FIXED if price else PriceType.CONTACT,
            original_price_amount=request.original_price.amount if request.original_price else None,
            discount_price_amount=price.amount if price else None,
            price_currency=price.currency if price else "USD",
            operator_name=request.operator_name,
            operator_email=request.operator_email,
            operator_phone=request.operator_phone,
            created_by=actor,
        )
        self.db.add(deal)
        await self.db.flush()

        self.audit.record(
            AuditAction.DEAL_CREATE,
            description=f"Deal {deal.slug} created",
            target_type="deal",
            target_id=str(deal.id),
            actor=actor,
            details={"source": deal.source, "status": deal.status},
        )
        await self.db.commit()
        await self.db.refresh(deal)

        logger.info(
            "Deal created successfully",
            extra={
                "deal_id": str(deal.id),
                "slug": deal.slug,
                "source": deal.source,
                "departure_at": deal.departure_at.isoformat(),
                "total_seats": deal.total_seats
            }
        )
        return deal

    async def get_deal(self, deal_id: UUID) -> Deal | None:
        stmt = select(Deal).where(Deal.id == deal_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_deal_or_raise(self, deal_id: UUID) -> Deal:
        """
        Get deal by ID or raise NotFoundError.

        Raises:
            NotFoundError: If deal not found
        """
        deal = await self.get_deal(deal_id)
        if not deal:
            logger.warning("Deal not found", extra={"deal_id": str(deal_id)})
            raise NotFoundError(resource_type="deal", resource_id=str(deal_id))
        return deal

    async def search_deals(
        self,
        request: SearchDealsRequest,
        now: Optional[datetime] = None,
    ) -> tuple[list[Deal], Optional[str]]:
        """
        Search live, bookable deals.

        Only PUBLISHED or OPEN deals departing after ``now`` with at least
        ``min_seats`` free seats are returned, ordered by id for stable
        cursor pagination.

        Returns:
            The page of deals and the cursor for the next page, if any
        """
        now = now or utcnow()
        conditions = [
            Deal.status.in_([status.value for status in LIVE_DEAL_STATUSES]),
            Deal.departure_at > now,
            Deal.available_seats >= request.min_seats,
        ]

        if request.origin_icao:
            conditions.append(Deal.origin_icao == request.origin_icao.strip().upper())
        if request.destination_icao:
            conditions.append(Deal.destination_icao == request.destination_icao.strip().upper())
        if request.source:
            conditions.append(Deal.source == request.source)
        if request.date_from:
            conditions.append(Deal.departure_at >= datetime.combine(request.date_from, datetime.min.time()))
        if request.date_to:
            # Include the entire day
            date_to_end = datetime.combine(request.date_to, datetime.min.time()) + timedelta(days=1)
            conditions.append(Deal.departure_at < date_to_end)

        stmt = select(Deal).where(and_(*conditions))

        if request.cursor:
            try:
                stmt = stmt.where(Deal.id > UUID(request.cursor))
            except (ValueError, TypeError):
                logger.warning("Invalid cursor provided in deal search", extra={"cursor": request.cursor})

        stmt = stmt.order_by(Deal.id).limit(request.limit + 1)
        result = await self.db.execute(stmt)
        deals = list(result.scalars())

        has_next_page = len(deals) > request.limit
        if has_next_page:
            deals = deals[:-1]
        next_cursor = str(deals[-1].id) if has_next_page and deals else None

        logger.info(
            "Deal search completed",
            extra={
                "total_found": len(deals),
                "has_next_page": has_next_page,
                "filters": {
                    "origin_icao": request.origin_icao,
                    "destination_icao": request.destination_icao,
                    "date_from": request.date_from.isoformat() if request.date_from else None,
                    "date_to": request.date_to.isoformat() if request.date_to else None,
                    "min_seats": request.min_seats
                }
            }
        )
        return deals, next_cursor

    async def change_status(self, request: ChangeDealStatusRequest, actor: Optional[str] = None) -> Deal:
        """
        Move a human-sourced deal to another status.

        Raises:
            NotFoundError: If deal not found
            InvalidTransitionError: If the deal is provider-owned or the move is not allowed
        """
        deal = await self.get_deal_or_raise(parse_uuid(request.deal_id, "deal"))
        current = DealStatus(deal.status)

        if deal.source == DealSource.PROVIDER:
            raise InvalidTransitionError(
                resource_type="deal",
                resource_id=str(deal.id),
                current_status=current.value,
                target_status=request.status.value,
            )
        if current == request.status:
            return deal
        if not current.can_transition_to(request.status):
            raise InvalidTransitionError(
                resource_type="deal",
                resource_id=str(deal.id),
                current_status=current.value,
                target_status=request.status.value,
            )

        deal.status = request.status
        self.audit.record(
            AuditAction.DEAL_STATUS_CHANGE,
            description=f"Deal {deal.slug} moved from {current.value} to {request.status.value}",
            target_type="deal",
            target_id=str(deal.id),
            actor=actor,
            details={"from": current.value, "to": request.status.value},
        )
        await self.db.commit()
        await self.db.refresh(deal)

        logger.info(
            "Deal status changed",
            extra={"deal_id": str(deal.id), "from_status": current.value, "to_status": request.status.value}
        )
        return deal
