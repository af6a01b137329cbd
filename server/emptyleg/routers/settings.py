"""Booking settings router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_current_user, get_db
from ..schemas.settings import BookingSettingsResponse, UpdateBookingSettingsRequest
from ..services.settings_service import BookingPolicy, SettingsService

router = APIRouter(prefix="/v1/settings", tags=["settings"])


def _convert_policy_to_schema(policy: BookingPolicy) -> BookingSettingsResponse:
    return BookingSettingsResponse(
        payment_window_hours=policy.payment_window_hours,
        commission_percent=policy.commission_percent,
        support_phone=policy.support_phone,
        enforce_payment_deadline=policy.enforce_payment_deadline,
        require_payment_evidence=policy.require_payment_evidence,
    )


@router.post("/get", response_model=BookingSettingsResponse)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> JSONResponse:
    policy = await SettingsService(db).load_policy()
    return JSONResponse(status_code=200, content=_convert_policy_to_schema(policy).model_dump())


@router.post("/update", response_model=BookingSettingsResponse)
async def update_settings(
    request: UpdateBookingSettingsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> JSONResponse:
    """Change the live booking policy; every instance picks it up on its next operation."""
    policy = await SettingsService(db).update_policy(
        actor=current_user["user_id"],
        payment_window_hours=request.payment_window_hours,
        commission_percent=request.commission_percent,
        support_phone=request.support_phone,
    )
    return JSONResponse(status_code=200, content=_convert_policy_to_schema(policy).model_dump())
