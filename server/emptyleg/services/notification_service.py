"""Notification outbox: stage messages with state changes, deliver them after commit."""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, settings as default_settings
from ..core.database import utcnow
from ..core.observability import metrics_collector
from ..core.phones import to_whatsapp_address
from ..gateways.notification import NotificationGateway
from ..models.booking import Booking
from ..models.message import BookingMessage, MessageDirection, MessageKind, MessageStatus

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Owns the lifecycle of outbound client messages.

    ``enqueue`` only stages a PENDING row in the caller's transaction, so
    the message exists if and only if the state change that produced it
    committed. ``dispatch`` runs afterwards; a gateway failure marks the
    row FAILED for the retry worker and never propagates to the caller.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: NotificationGateway,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.config = config or default_settings

    def enqueue(
        self,
        booking: Booking,
        kind: MessageKind,
        body: str,
        media_url: Optional[str] = None,
    ) -> BookingMessage:
        message = BookingMessage(
            booking_id=booking.id,
            direction=MessageDirection.OUTBOUND,
            kind=kind,
            status=MessageStatus.PENDING,
            recipient=to_whatsapp_address(booking.client_phone, self.config.default_country_calling_code),
            body=body,
            media_url=media_url,
            attempts=0,
            created_at=utcnow(),
        )
        self.db.add(message)
        return message

    def record_inbound(
        self,
        booking: Booking,
        sender: str,
        body: Optional[str],
        media_url: Optional[str],
        received_at: datetime,
    ) -> BookingMessage:
        message = BookingMessage(
            booking_id=booking.id,
            direction=MessageDirection.INBOUND,
            kind=MessageKind.INBOUND,
            status=MessageStatus.RECEIVED,
            recipient=sender,
            body=body or "",
            media_url=media_url,
            attempts=0,
            created_at=received_at,
        )
        self.db.add(message)
        return message

    async def dispatch(self, message_ids: Iterable[UUID]) -> int:
        """
        Deliver staged messages. Call only after the staging transaction committed.

        Returns:
            Number of messages the gateway accepted
        """
        delivered = 0
        for message_id in message_ids:
            message = await self.db.get(BookingMessage, message_id)
            if message is None or message.status == MessageStatus.SENT:
                continue
            if await self._deliver(message):
                delivered += 1
        return delivered

    async def _deliver(self, message: BookingMessage) -> bool:
        message.attempts += 1
        try:
            provider_id = await self.gateway.send(message.recipient, message.body, message.media_url)
        except Exception as e:
            message.status = MessageStatus.FAILED
            message.last_error = str(e)[:1000]
            await self.db.commit()
            metrics_collector.record_notification("failed")
            logger.error(
                "Notification delivery failed",
                extra={
                    "message_id": str(message.id),
                    "booking_id": str(message.booking_id),
                    "kind": message.kind,
                    "recipient": message.recipient,
                    "attempts": message.attempts,
                    "error": str(e),
                }
            )
            return False

        message.status = MessageStatus.SENT
        message.provider_message_id = provider_id
        message.sent_at = utcnow()
        message.last_error = None
        await self.db.commit()
        metrics_collector.record_notification("sent")
        logger.info(
            "Notification delivered",
            extra={
                "message_id": str(message.id),
                "booking_id": str(message.booking_id),
                "kind": message.kind,
                "provider_message_id": provider_id,
            }
        )
        return True

    async def find_undelivered(self, now: datetime, limit: int = 50) -> list[BookingMessage]:
        """
        Outbound messages still owed to clients.

        PENDING rows only count once they are older than the retry interval,
        so a dispatch still in flight is not sent twice.
        """
        settle_before = now - timedelta(seconds=self.config.notification_retry_interval_seconds)
        stmt = (
            select(BookingMessage)
            .where(
                BookingMessage.direction == MessageDirection.OUTBOUND,
                BookingMessage.attempts < self.config.notification_max_attempts,
                or_(
                    BookingMessage.status == MessageStatus.FAILED,
                    (BookingMessage.status == MessageStatus.PENDING) & (BookingMessage.created_at < settle_before),
                ),
            )
            .order_by(BookingMessage.created_at)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def retry_undelivered(self, now: Optional[datetime] = None, limit: int = 50) -> int:
        """Resend failed and stranded messages; returns how many got through."""
        messages = await self.find_undelivered(now or utcnow(), limit)
        delivered = 0
        for message in messages:
            if await self._deliver(message):
                delivered += 1
        if messages:
            logger.info(
                "Notification retry batch completed",
                extra={"attempted": len(messages), "delivered": delivered}
            )
        return delivered
