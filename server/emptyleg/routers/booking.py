"""Booking router for booking lifecycle operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_current_user, get_db, get_notification_gateway, require_cron_secret
from ..core.exceptions import ProblemDetailsException
from ..gateways import NotificationGateway
from ..schemas.booking import (
    ApproveBookingRequest,
    AttachEvidenceRequest,
    Booking,
    ConfirmPaymentRequest,
    CreateBookingRequest,
    ExpireBookingRequest,
    GetBookingRequest,
    RejectBookingRequest,
)
from ..schemas.common import CountResponse, Money
from ..services.booking_service import BookingService
from ..services.deal_service import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
AUTH_DEPENDENCY = Depends(get_current_user)
GATEWAY_DEPENDENCY = Depends(get_notification_gateway)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    total_price = None
    if booking_model.total_price_amount is not None:
        total_price = Money(amount=booking_model.total_price_amount, currency=booking_model.price_currency)
    return Booking(
        id=str(booking_model.id),
        reference_number=booking_model.reference_number,
        deal_id=str(booking_model.deal_id),
        status=booking_model.status,
        requested_seats=booking_model.requested_seats,
        client_name=booking_model.client_name,
        client_email=booking_model.client_email,
        client_phone=booking_model.client_phone,
        total_price=total_price,
        payment_deadline=booking_model.payment_deadline,
        payment_reference=booking_model.payment_reference,
        payment_link=booking_model.payment_link,
        rejection_reason=booking_model.rejection_reason,
        rejection_note=booking_model.rejection_note,
        ticket_number=booking_model.ticket_number,
        evidence_review_required=booking_model.evidence_review_required,
        receipt_uploaded_at=booking_model.receipt_uploaded_at,
        approved_at=booking_model.approved_at,
        confirmed_at=booking_model.confirmed_at,
        expired_at=booking_model.expired_at,
        created_at=booking_model.created_at,
    )


def _respond(booking_model) -> JSONResponse:
    return JSONResponse(status_code=200, content=_convert_booking_to_schema(booking_model).model_dump(mode="json"))


@router.post("/create", response_model=Booking)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
) -> JSONResponse:
    """
    Request seats on a live deal.

    The booking starts PENDING; seats are only taken at approval.
    """
    try:
        booking = await BookingService(db, gateway).create_booking(request)
        return _respond(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={"deal_id": request.deal_id, "seats": request.seats, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    booking = await BookingService(db, gateway).find_booking(request)
    return _respond(booking)


@router.post("/approve", response_model=Booking)
async def approve_booking(
    request: ApproveBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    """
    Approve a PENDING booking.

    Takes the seats off the deal and sends the client the payment link.
    Answers 409 INSUFFICIENT_SEATS when the deal cannot cover the request.
    """
    booking = await BookingService(db, gateway).approve(
        parse_uuid(request.booking_id, "booking"), actor=current_user["user_id"]
    )
    return _respond(booking)


@router.post("/reject", response_model=Booking)
async def reject_booking(
    request: RejectBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    booking = await BookingService(db, gateway).reject(
        parse_uuid(request.booking_id, "booking"),
        reason=request.reason,
        actor=current_user["user_id"],
        note=request.note,
        share_note=request.share_note,
    )
    return _respond(booking)


@router.post("/confirm-payment", response_model=Booking)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    """Mark an APPROVED booking PAID and issue the ticket."""
    booking = await BookingService(db, gateway).confirm_payment(
        parse_uuid(request.booking_id, "booking"), actor=current_user["user_id"]
    )
    return _respond(booking)


@router.post("/expire", response_model=Booking)
async def expire_booking(
    request: ExpireBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    """Expire the booking if it is APPROVED and overdue; otherwise return it unchanged."""
    booking = await BookingService(db, gateway).expire_if_overdue(
        parse_uuid(request.booking_id, "booking"), actor=current_user["user_id"]
    )
    return _respond(booking)


@router.post("/expire-overdue", response_model=CountResponse)
async def expire_overdue_bookings(
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
    actor: str = Depends(require_cron_secret),
) -> JSONResponse:
    expired_count = await BookingService(db, gateway).expire_overdue_bookings()
    return JSONResponse(status_code=200, content=CountResponse(expired_count=expired_count).model_dump())


@router.post("/attach-evidence", response_model=Booking)
async def attach_evidence(
    request: AttachEvidenceRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: NotificationGateway = GATEWAY_DEPENDENCY,
    current_user: dict = AUTH_DEPENDENCY,
) -> JSONResponse:
    """Attach a receipt on the client's behalf, e.g. one sent by email."""
    service = BookingService(db, gateway)
    booking_id = parse_uuid(request.booking_id, "booking")
    await service.attach_evidence(
        booking_id,
        media_reference=request.media_reference,
        content_type=request.content_type,
        raw_text=request.raw_text,
        sender=current_user["user_id"],
    )
    return _respond(await service.get_booking_or_raise(booking_id))
