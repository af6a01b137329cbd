"""Background workers for the empty-leg engine."""

from .deal_expiry_worker import DealExpiryWorker
from .notification_retry_worker import NotificationRetryWorker
from .payment_deadline_worker import PaymentDeadlineWorker
from .sync_worker import SyncWorker

__all__ = ["DealExpiryWorker", "NotificationRetryWorker", "PaymentDeadlineWorker", "SyncWorker"]
