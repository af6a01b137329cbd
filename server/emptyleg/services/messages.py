"""Client-facing message templates (WhatsApp markup: *bold*)."""

from datetime import datetime, timedelta
from typing import Optional

from ..models.booking import Booking, RejectionReason
from ..models.deal import Deal

REJECTION_MESSAGES = {
    RejectionReason.AIRCRAFT_UNAVAILABLE: "the aircraft is no longer available for this route",
    RejectionReason.ROUTE_NOT_SERVICEABLE: "we are unable to service this route at this time",
    RejectionReason.INVALID_DATES: "the requested dates are not available",
    RejectionReason.PRICING_ISSUE: "there is a pricing discrepancy that cannot be resolved",
    RejectionReason.CAPACITY_EXCEEDED: "the requested number of seats exceeds availability",
    RejectionReason.DEAL_NOT_AVAILABLE: "this empty leg deal is no longer available",
    RejectionReason.NO_PAYMENT_MADE: "payment was not received within the required timeframe",
    RejectionReason.OTHER: "we are unable to proceed with this booking at this time",
}


def format_money(amount_minor: Optional[int], currency: str) -> str:
    if amount_minor is None:
        return "Price on request"
    major = amount_minor / 100
    if major == int(major):
        return f"${int(major):,} {currency}"
    return f"${major:,.2f} {currency}"


def _date(value: datetime) -> str:
    return value.strftime("%d %b %Y")


def _time(value: datetime) -> str:
    return value.strftime("%H:%M")


def approval_message(booking: Booking, deal: Deal, brand_name: str) -> str:
    return (
        f"*QUOTE APPROVED - {booking.reference_number}*\n\n"
        f"Dear {booking.client_name},\n\n"
        "Your empty leg booking has been approved!\n\n"
        "*Flight Details:*\n"
        f"Route: {deal.origin_city} → {deal.destination_city}\n"
        f"Date: {_date(deal.departure_at)}\n"
        f"Time: {_time(deal.departure_at)}\n"
        f"Aircraft: {deal.aircraft_name or 'TBA'}\n"
        f"Seats: {booking.requested_seats}\n\n"
        f"*Total Price: {format_money(booking.total_price_amount, booking.price_currency)}*\n\n"
        f"Payment reference: {booking.payment_reference}\n"
        f"Pay here: {booking.payment_link}\n\n"
        f"Payment Deadline: {booking.payment_deadline:%d %b %Y %H:%M} UTC\n\n"
        "After payment, please send your payment receipt to this number.\n\n"
        f"Thank you for choosing {brand_name}!"
    )


def rejection_message(
    booking: Booking,
    deal: Deal,
    reason: RejectionReason,
    note: Optional[str],
    include_note: bool,
    brand_name: str,
) -> str:
    text = (
        f"Dear {booking.client_name},\n\n"
        f"We regret to inform you that your empty leg booking request ({booking.reference_number}) "
        f"for the {deal.origin_city} → {deal.destination_city} route has been declined.\n\n"
        f"*Reason:* Unfortunately, {REJECTION_MESSAGES[reason]}."
    )
    if include_note and note:
        text += f"\n\n*Additional Information:* {note}"
    text += (
        "\n\nWe apologize for any inconvenience. Please feel free to browse our other available "
        "empty leg deals or contact us for alternative options.\n\n"
        "Thank you for your understanding.\n\n"
        f"- The {brand_name} Team"
    )
    return text


def confirmation_message(
    booking: Booking,
    deal: Deal,
    check_in_lead_minutes: int,
    support_phone: str,
    brand_name: str,
) -> str:
    check_in_at = deal.departure_at - timedelta(minutes=check_in_lead_minutes)
    return (
        f"*BOOKING CONFIRMED - {booking.reference_number}*\n\n"
        f"Dear {booking.client_name},\n\n"
        "Your payment has been received and your flight is confirmed!\n\n"
        f"*Ticket Number: {booking.ticket_number}*\n\n"
        f"*Route:* {deal.origin_city} ({deal.origin_icao}) → "
        f"{deal.destination_city} ({deal.destination_icao})\n"
        f"*Date:* {_date(deal.departure_at)}\n"
        f"*Departure:* {_time(deal.departure_at)}\n"
        f"*Check-in:* {_time(check_in_at)}\n"
        f"*Seats:* {booking.requested_seats}\n\n"
        "Present your ticket number at check-in along with a valid ID.\n\n"
        f"For any questions, contact us at {support_phone}.\n\n"
        f"Thank you for flying with {brand_name}!"
    )


def receipt_ack_message(booking: Booking) -> str:
    return (
        f"Thank you! Your payment receipt for {booking.reference_number} has been received. "
        "Our team will review and confirm shortly."
    )
