"""Models module exporting all database models."""

from .audit import AuditAction, AuditEntry
from .booking import (
    SEAT_HOLDING_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    Payment,
    RejectionReason,
)
from .catalog import Aircraft, Airport
from .deal import LIVE_DEAL_STATUSES, AircraftCategory, Deal, DealSource, DealStatus, PriceType
from .message import BookingEvidence, BookingMessage, MessageDirection, MessageKind, MessageStatus
from .policy import DEFAULT_SETTINGS_ID, TICKET_COUNTER_NAME, BookingSettings, TicketCounter
from .sync_run import SyncRun, SyncRunStatus, SyncType

__all__ = [
    # Catalog
    "Airport",
    "Aircraft",

    # Inventory
    "Deal",
    "DealSource",
    "DealStatus",
    "PriceType",
    "AircraftCategory",
    "LIVE_DEAL_STATUSES",

    # Bookings
    "Booking",
    "BookingStatus",
    "RejectionReason",
    "Payment",
    "TERMINAL_BOOKING_STATUSES",
    "SEAT_HOLDING_STATUSES",

    # Messaging
    "BookingMessage",
    "BookingEvidence",
    "MessageDirection",
    "MessageKind",
    "MessageStatus",

    # Sync
    "SyncRun",
    "SyncRunStatus",
    "SyncType",

    # Shared rows
    "TicketCounter",
    "BookingSettings",
    "TICKET_COUNTER_NAME",
    "DEFAULT_SETTINGS_ID",

    # Audit
    "AuditEntry",
    "AuditAction",
]
