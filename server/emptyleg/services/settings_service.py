"""Live booking policy, read from the shared store on every operation."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ValidationError
from ..models.audit import AuditAction
from ..models.policy import DEFAULT_SETTINGS_ID, BookingSettings
from .audit_service import AuditService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingPolicy:
    """
    Immutable snapshot of the rules a booking transition runs under.

    Built fresh for each operation so every process instance sees the
    values an admin last saved, never a cached copy.
    """

    payment_window_hours: int
    commission_percent: int
    support_phone: str
    enforce_payment_deadline: bool
    require_payment_evidence: bool
    ticket_prefix: str
    ticket_sequence_width: int
    booking_reference_prefix: str
    payment_link_base_url: str
    check_in_lead_minutes: int
    brand_name: str
    country_calling_code: str


class SettingsService:
    """Reads and updates the booking policy row."""

    def __init__(self, db: AsyncSession, config: Optional[Settings] = None):
        self.db = db
        self.config = config or default_settings

    async def get_record(self) -> Optional[BookingSettings]:
        result = await self.db.execute(
            select(BookingSettings).where(BookingSettings.id == DEFAULT_SETTINGS_ID)
        )
        return result.scalar_one_or_none()

    async def load_policy(self) -> BookingPolicy:
        """Merge the stored overrides over the environment defaults."""
        record = await self.get_record()

        def pick(stored, fallback):
            return stored if stored is not None else fallback

        return BookingPolicy(
            payment_window_hours=pick(record and record.payment_window_hours, self.config.payment_window_hours),
            commission_percent=pick(record and record.commission_percent, self.config.commission_percent),
            support_phone=pick(record and record.support_phone, self.config.support_phone),
            enforce_payment_deadline=self.config.enforce_payment_deadline,
            require_payment_evidence=self.config.require_payment_evidence,
            ticket_prefix=self.config.ticket_prefix,
            ticket_sequence_width=self.config.ticket_sequence_width,
            booking_reference_prefix=self.config.booking_reference_prefix,
            payment_link_base_url=self.config.payment_link_base_url.rstrip("/"),
            check_in_lead_minutes=self.config.check_in_lead_minutes,
            brand_name=self.config.brand_name,
            country_calling_code=self.config.default_country_calling_code,
        )

    async def update_policy(
        self,
        actor: str,
        payment_window_hours: Optional[int] = None,
        commission_percent: Optional[int] = None,
        support_phone: Optional[str] = None,
    ) -> BookingPolicy:
        """
        Persist new policy values.

        Args:
            actor: Admin making the change
            payment_window_hours: Hours a client has to pay after approval
            commission_percent: Platform share of each payment
            support_phone: Number printed in client messages

        Returns:
            The policy as it now stands

        Raises:
            ValidationError: If a value is out of range
        """
        errors = {}
        if payment_window_hours is not None and not 1 <= payment_window_hours <= 24 * 14:
            errors["payment_window_hours"] = "must be between 1 and 336"
        if commission_percent is not None and not 0 <= commission_percent <= 100:
            errors["commission_percent"] = "must be between 0 and 100"
        if errors:
            raise ValidationError(detail="Invalid booking settings", errors=errors)

        record = await self.get_record()
        if record is None:
            record = BookingSettings(id=DEFAULT_SETTINGS_ID)
            self.db.add(record)

        changes = {}
        for field, value in (
            ("payment_window_hours", payment_window_hours),
            ("commission_percent", commission_percent),
            ("support_phone", support_phone),
        ):
            if value is not None:
                setattr(record, field, value)
                changes[field] = value
        record.updated_by = actor

        AuditService(self.db).record(
            AuditAction.SETTINGS_UPDATE,
            description="Booking settings updated",
            target_type="booking_settings",
            target_id=DEFAULT_SETTINGS_ID,
            actor=actor,
            details=changes,
        )
        await self.db.commit()

        logger.info("Booking settings updated", extra={"actor": actor, "changes": changes})
        return await self.load_policy()
