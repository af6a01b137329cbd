"""Deal router for inventory management operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_current_user, get_db, get_scheduler_or_user
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import CountResponse, Money
from ..schemas.deal import (
    ChangeDealStatusRequest,
    CreateDealRequest,
    Deal,
    ExpiryPreviewResponse,
    GetDealRequest,
    SearchDealsRequest,
    SearchDealsResponse,
)
from ..services.deal_expiry_service import DealExpiryService
from ..services.deal_service import DealService, parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/deals", tags=["deals"])

DB_DEPENDENCY = Depends(get_db)
AUTH_DEPENDENCY = Depends(get_current_user)


def _money(amount, currency) -> Money | None:
    return Money(amount=amount, currency=currency) if amount is not None else None


def _convert_deal_to_schema(deal_model) -> Deal:
    """Convert deal model to schema with Money conversion."""
    return Deal(
        id=str(deal_model.id),
        slug=deal_model.slug,
        external_id=deal_model.external_id,
        source=deal_model.source,
        status=deal_model.status,
        origin_icao=deal_model.origin_icao,
        origin_city=deal_model.origin_city,
        destination_icao=deal_model.destination_icao,
        destination_city=deal_model.destination_city,
        departure_at=deal_model.departure_at,
        aircraft_name=deal_model.aircraft_name,
        aircraft_category=deal_model.aircraft_category,
        aircraft_image_url=deal_model.aircraft_image_url,
        total_seats=deal_model.total_seats,
        available_seats=deal_model.available_seats,
        price_type=deal_model.price_type,
        original_price=_money(deal_model.original_price_amount, deal_model.price_currency),
        discount_price=_money(deal_model.discount_price_amount, deal_model.price_currency),
        operator_name=deal_model.operator_name,
        last_synced_at=deal_model.last_synced_at,
    )


@router.post("/create", response_model=Deal)
async def create_deal(
    request: CreateDealRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    """Create an INTERNAL or OPERATOR deal."""
    try:
        deal = await DealService(db).create_deal(request, actor=current_user["user_id"])
        return JSONResponse(status_code=200, content=_convert_deal_to_schema(deal).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in deal creation",
            extra={
                "origin_icao": request.origin_icao,
                "destination_icao": request.destination_icao,
                "departure_at": request.departure_at.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Deal)
async def get_deal(
    request: GetDealRequest,
    db: AsyncSession = DB_DEPENDENCY,
) -> JSONResponse:
    deal = await DealService(db).get_deal_or_raise(parse_uuid(request.deal_id, "deal"))
    return JSONResponse(status_code=200, content=_convert_deal_to_schema(deal).model_dump(mode="json"))


@router.post("/search", response_model=SearchDealsResponse)
async def search_deals(
    request: SearchDealsRequest,
    db: AsyncSession = DB_DEPENDENCY,
) -> JSONResponse:
    """
    Search live deals with free seats.

    Supports filtering by route, date window and source.
    Uses cursor-based pagination.
    """
    deals, next_cursor = await DealService(db).search_deals(request)
    response_data = SearchDealsResponse(
        items=[_convert_deal_to_schema(deal) for deal in deals],
        next_cursor=next_cursor
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/change-status", response_model=Deal)
async def change_deal_status(
    request: ChangeDealStatusRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    deal = await DealService(db).change_status(request, actor=current_user["user_id"])
    return JSONResponse(status_code=200, content=_convert_deal_to_schema(deal).model_dump(mode="json"))


@router.post("/expire", response_model=CountResponse)
async def expire_departed_deals(
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = Depends(get_scheduler_or_user),
) -> JSONResponse:
    """Run the expiry sweep now. Safe to call at any frequency."""
    expired_count = await DealExpiryService(db).expire_departed_deals()
    logger.info("Deal expiry triggered over HTTP", extra={"actor": actor, "expired_count": expired_count})
    return JSONResponse(status_code=200, content=CountResponse(expired_count=expired_count).model_dump())


@router.post("/expire-preview", response_model=ExpiryPreviewResponse)
async def preview_deal_expiry(
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    pending_count = await DealExpiryService(db).count_departed_live_deals()
    return JSONResponse(status_code=200, content=ExpiryPreviewResponse(pending_count=pending_count).model_dump())
