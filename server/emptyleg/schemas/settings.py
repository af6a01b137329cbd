"""Booking settings schemas."""

from pydantic import BaseModel, Field


class BookingSettingsResponse(BaseModel):
    """Live booking policy."""

    payment_window_hours: int
    commission_percent: int
    support_phone: str
    enforce_payment_deadline: bool
    require_payment_evidence: bool


class UpdateBookingSettingsRequest(BaseModel):
    """Fields left unset keep their current value."""

    payment_window_hours: int | None = Field(None, ge=1, le=336)
    commission_percent: int | None = Field(None, ge=0, le=100)
    support_phone: str | None = Field(None, min_length=5, max_length=32)
