"""Audit trail model."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class AuditAction(str, Enum):
    SYNC_START = "SYNC_START"
    SYNC_COMPLETE = "SYNC_COMPLETE"
    SYNC_ERROR = "SYNC_ERROR"
    DEAL_CREATE = "DEAL_CREATE"
    DEAL_STATUS_CHANGE = "DEAL_STATUS_CHANGE"
    DEAL_EXPIRY = "DEAL_EXPIRY"
    BOOKING_CREATE = "BOOKING_CREATE"
    BOOKING_APPROVE = "BOOKING_APPROVE"
    BOOKING_REJECT = "BOOKING_REJECT"
    BOOKING_EXPIRE = "BOOKING_EXPIRE"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    EVIDENCE_ATTACHED = "EVIDENCE_ATTACHED"
    SETTINGS_UPDATE = "SETTINGS_UPDATE"


class AuditEntry(Base):
    """Append-only record of who changed what."""

    __tablename__ = "audit_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    action: Mapped[AuditAction] = mapped_column(String(32), nullable=False, index=True)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(64), index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        index=True
    )

    __table_args__ = (
        CheckConstraint("length(actor) > 0", name="ck_audit_entry_actor_not_empty"),
    )
