"""Booking-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus, RejectionReason
from .common import Money


class ClientContact(BaseModel):
    """Who the booking is for."""

    name: str = Field(..., min_length=1, max_length=255, description="Client full name")
    email: str | None = Field(None, max_length=255, description="Client email")
    phone: str = Field(..., min_length=5, max_length=32, description="Client phone, local or international format")


class CreateBookingRequest(BaseModel):
    """Request schema for requesting seats on a deal."""

    deal_id: str = Field(..., description="Deal to book")
    seats: int = Field(..., ge=1, le=100, description="Number of seats requested")
    client: ClientContact


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str | None = Field(None, description="Booking to retrieve")
    reference_number: str | None = Field(None, description="Look up by reference instead")


class ApproveBookingRequest(BaseModel):
    """Request schema for approving a booking."""

    booking_id: str = Field(..., description="Booking to approve")


class RejectBookingRequest(BaseModel):
    """Request schema for rejecting a booking."""

    booking_id: str = Field(..., description="Booking to reject")
    reason: RejectionReason = Field(..., description="Why the request is declined")
    note: str | None = Field(None, max_length=2000, description="Internal note")
    share_note: bool = Field(False, description="Include the note in the client message")


class ConfirmPaymentRequest(BaseModel):
    """Request schema for confirming payment on an approved booking."""

    booking_id: str = Field(..., description="Booking that was paid")


class ExpireBookingRequest(BaseModel):
    """Request schema for expiring a single overdue booking."""

    booking_id: str = Field(..., description="Booking to expire if overdue")


class AttachEvidenceRequest(BaseModel):
    """Request schema for attaching evidence by hand."""

    booking_id: str = Field(..., description="Booking the artifact belongs to")
    media_reference: str | None = Field(None, max_length=1024, description="Stored media URL")
    content_type: str | None = Field(None, max_length=128, description="Media content type")
    raw_text: str | None = Field(None, max_length=4000, description="Accompanying text")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    reference_number: str = Field(..., description="Human-facing reference")
    deal_id: str = Field(..., description="Booked deal")
    status: BookingStatus = Field(..., description="Booking status")
    requested_seats: int = Field(..., ge=1)
    client_name: str
    client_email: str | None = None
    client_phone: str
    total_price: Money | None = Field(None, description="None when the deal is priced on request")
    payment_deadline: datetime | None = None
    payment_reference: str | None = None
    payment_link: str | None = None
    rejection_reason: RejectionReason | None = None
    rejection_note: str | None = None
    ticket_number: str | None = None
    evidence_review_required: bool = False
    receipt_uploaded_at: datetime | None = None
    approved_at: datetime | None = None
    confirmed_at: datetime | None = None
    expired_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
