"""Service layer package."""

from .audit_service import AuditService
from .booking_service import BookingService
from .deal_expiry_service import DealExpiryService
from .deal_service import DealService
from .notification_service import NotificationService
from .settings_service import BookingPolicy, SettingsService
from .sync_service import SyncOutcome, SyncService
from .ticket_service import TicketService

__all__ = [
    "AuditService",
    "BookingPolicy",
    "BookingService",
    "DealExpiryService",
    "DealService",
    "NotificationService",
    "SettingsService",
    "SyncOutcome",
    "SyncService",
    "TicketService",
]
