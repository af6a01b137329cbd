"""Sync-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from ..models.sync_run import SyncRunStatus, SyncType


class SyncError(BaseModel):
    """One item the reconciler could not apply."""

    external_id: str | None = Field(None, description="Provider id of the failing item")
    message: str


class SyncResult(BaseModel):
    """Outcome of a sync trigger."""

    success: bool = Field(..., description="False only when the run failed outright")
    busy: bool = Field(False, description="Another run is in progress; nothing was done")
    run_id: str | None = None
    deals_found: int = 0
    deals_created: int = 0
    deals_updated: int = 0
    deals_removed: int = 0
    duration_ms: int = 0
    errors: list[SyncError] = Field(default_factory=list)


class SyncRun(BaseModel):
    """Sync run response schema."""

    id: str
    sync_type: SyncType
    status: SyncRunStatus
    triggered_by: str | None = None
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None
    deals_found: int
    deals_created: int
    deals_updated: int
    deals_removed: int
    error_message: str | None = None
    errors: list[SyncError] = Field(default_factory=list)

    class Config:
        from_attributes = True


class SyncStatusResponse(BaseModel):
    """Current reconciliation state."""

    last_run: SyncRun | None = None
    in_progress: bool = False
    live_provider_deals: int = 0
    next_scheduled_run_at: datetime | None = None


class SyncHistoryRequest(BaseModel):
    """Request schema for listing recent runs."""

    limit: int | None = Field(None, ge=1, le=100, description="Number of runs, newest first")


class SyncHistoryResponse(BaseModel):
    items: list[SyncRun]


class ProviderHealthResponse(BaseModel):
    provider: str
    configured: bool
    reachable: bool | None = None
    detail: str | None = None
