"""SyncRun model: audit record and cross-process lock for provider reconciliation."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Index, Integer, String, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class SyncRunStatus(str, Enum):
    STARTED = "STARTED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class SyncType(str, Enum):
    SCHEDULED = "SCHEDULED"
    MANUAL = "MANUAL"


class SyncRun(Base):
    """One reconciliation pass between the provider snapshot and local deals."""

    __tablename__ = "sync_runs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    sync_type: Mapped[SyncType] = mapped_column(String(16), nullable=False)
    status: Mapped[SyncRunStatus] = mapped_column(String(16), nullable=False, index=True)
    triggered_by: Mapped[str | None] = mapped_column(String(255))

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    duration_ms: Mapped[int | None] = mapped_column(Integer)

    deals_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deals_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deals_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deals_removed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(String(1024))
    errors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        # At most one run may hold the lock at a time, across every process
        Index(
            "uq_sync_runs_single_started",
            "status",
            unique=True,
            postgresql_where=text("status = 'STARTED'"),
            sqlite_where=text("status = 'STARTED'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<SyncRun(id={self.id}, status={self.status}, started_at={self.started_at})>"
