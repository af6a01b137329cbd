"""Provider reconciliation: converge PROVIDER deals to the provider's current snapshot."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, settings as default_settings
from ..core.database import utcnow
from ..core.observability import metrics_collector
from ..core.slugs import deal_slug
from ..models.audit import AuditAction
from ..models.booking import SEAT_HOLDING_STATUSES, Booking
from ..models.catalog import Aircraft, Airport
from ..models.deal import LIVE_DEAL_STATUSES, Deal, DealSource, DealStatus
from ..models.sync_run import SyncRun, SyncRunStatus, SyncType
from ..providers.base import MappedDeal, MappingError, ProviderClient, ProviderError
from .audit_service import AuditService
from .deal_service import find_aircraft, find_airport, unique_slug

logger = logging.getLogger(__name__)

SYNC_TIMED_OUT = "Sync timed out"
MAX_HISTORY_LIMIT = 100

# Fields the provider owns; a difference in any of them is an update
_MUTABLE_FIELDS = (
    "origin_airport_id",
    "origin_icao",
    "origin_city",
    "origin_country",
    "destination_airport_id",
    "destination_icao",
    "destination_city",
    "destination_country",
    "departure_at",
    "aircraft_id",
    "aircraft_name",
    "aircraft_type",
    "aircraft_category",
    "aircraft_image_url",
    "total_seats",
    "available_seats",
    "price_type",
    "original_price_amount",
    "discount_price_amount",
    "price_currency",
    "operator_name",
    "operator_email",
    "operator_phone",
)


@dataclass
class SyncOutcome:
    """What a sync trigger achieved."""

    success: bool
    busy: bool = False
    run_id: Optional[UUID] = None
    deals_found: int = 0
    deals_created: int = 0
    deals_updated: int = 0
    deals_removed: int = 0
    duration_ms: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class SyncStatus:
    last_run: Optional[SyncRun]
    in_progress: bool
    live_provider_deals: int
    next_scheduled_run_at: Optional[datetime]


def _item_error(external_id: Optional[str], message: str) -> dict[str, Any]:
    return {"external_id": external_id, "message": message}


class SyncService:
    """
    One reconciliation pass per ``run_sync`` call.

    The pass runs in three separate phases so no lock is held while the
    provider is on the network: acquire the run lock (a STARTED row that
    the partial unique index keeps single), fetch and map the snapshot,
    then apply every upsert and removal in one transaction together with
    the run's finalization.
    """

    def __init__(self, db: AsyncSession, provider: ProviderClient, config: Optional[Settings] = None):
        self.db = db
        self.provider = provider
        self.config = config or default_settings
        self.audit = AuditService(db)
        self._airports: dict[str, Optional[Airport]] = {}
        self._aircraft: dict[str, Optional[Aircraft]] = {}

    @property
    def stale_after(self) -> timedelta:
        return timedelta(minutes=self.config.sync_stale_after_minutes)

    # Typed queries

    async def find_fresh_started_run(self, now: datetime) -> Optional[SyncRun]:
        """The STARTED run that still holds the lock, if any."""
        stmt = (
            select(SyncRun)
            .where(SyncRun.status == SyncRunStatus.STARTED, SyncRun.started_at >= now - self.stale_after)
            .order_by(SyncRun.started_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def find_stale_started_runs(self, now: datetime) -> list[SyncRun]:
        """STARTED runs older than the staleness threshold, presumed dead."""
        stmt = select(SyncRun).where(
            SyncRun.status == SyncRunStatus.STARTED,
            SyncRun.started_at < now - self.stale_after,
        )
        return list((await self.db.execute(stmt)).scalars())

    async def find_provider_deals_missing_from(self, external_ids: set[str]) -> list[Deal]:
        """
        PROVIDER deals whose external id is not in ``external_ids``.

        Deals already REMOVED are left out so they are not counted again.
        """
        stmt = (
            select(Deal)
            .where(
                Deal.source == DealSource.PROVIDER,
                Deal.status != DealStatus.REMOVED,
                Deal.external_id.notin_(list(external_ids)),
            )
            .order_by(Deal.external_id)
        )
        return list((await self.db.execute(stmt)).scalars())

    # Run lifecycle

    async def run_sync(self, sync_type: SyncType = SyncType.SCHEDULED, triggered_by: Optional[str] = None) -> SyncOutcome:
        """
        Converge PROVIDER deals to the provider snapshot.

        Returns a busy outcome, without touching anything, when another
        fresh run holds the lock. A fetch failure fails the run and leaves
        deals untouched; per-item mapping failures are recorded and the
        run still succeeds.
        """
        started = time.monotonic()
        sync_type = SyncType(sync_type)

        run_id = await self._acquire(sync_type, triggered_by)
        if run_id is None:
            metrics_collector.record_sync_run(sync_type.value, "busy")
            logger.info("Sync skipped, another run is in progress", extra={"sync_type": sync_type.value})
            return SyncOutcome(success=False, busy=True)

        # Every path below finalizes the STARTED row
        try:
            items = await self.provider.fetch_snapshot()
        except ProviderError as e:
            return await self._fail(run_id, sync_type, f"Provider fetch failed: {e}", started)
        except Exception as e:
            logger.error("Provider fetch raised unexpectedly", extra={"run_id": str(run_id), "error": str(e)}, exc_info=True)
            return await self._fail(run_id, sync_type, f"Provider fetch failed: {type(e).__name__}: {e}", started)

        try:
            mapped, snapshot_ids, errors = self._map_snapshot(items)
            created, updated, removed = await self._apply(mapped, snapshot_ids)
            duration_ms = int((time.monotonic() - started) * 1000)
            await self._finalize(run_id, len(items), created, updated, removed, errors, duration_ms)
        except Exception as e:
            await self.db.rollback()
            # Catalog rows cached before the rollback are expired
            self._airports.clear()
            self._aircraft.clear()
            logger.error("Sync apply phase failed", extra={"run_id": str(run_id), "error": str(e)}, exc_info=True)
            reason = str(e) if isinstance(e, SQLAlchemyError) else f"{type(e).__name__}: {e}"
            return await self._fail(run_id, sync_type, f"Apply failed: {reason}", started)

        metrics_collector.record_sync_run(sync_type.value, "succeeded", duration_ms / 1000)
        metrics_collector.record_sync_changes(created, updated, removed)
        logger.info(
            "Sync completed",
            extra={
                "run_id": str(run_id),
                "sync_type": sync_type.value,
                "deals_found": len(items),
                "deals_created": created,
                "deals_updated": updated,
                "deals_removed": removed,
                "error_count": len(errors),
                "duration_ms": duration_ms
            }
        )
        return SyncOutcome(
            success=True,
            run_id=run_id,
            deals_found=len(items),
            deals_created=created,
            deals_updated=updated,
            deals_removed=removed,
            duration_ms=duration_ms,
            errors=errors,
        )

    async def _acquire(self, sync_type: SyncType, triggered_by: Optional[str]) -> Optional[UUID]:
        """Reclaim stale runs, then insert this run's STARTED row. None means busy."""
        now = utcnow()

        stale_runs = await self.find_stale_started_runs(now)
        for stale in stale_runs:
            stale.status = SyncRunStatus.FAILED
            stale.completed_at = now
            stale.duration_ms = int((now - stale.started_at).total_seconds() * 1000)
            stale.error_message = SYNC_TIMED_OUT
            stale.errors = list(stale.errors or []) + [_item_error(None, SYNC_TIMED_OUT)]
            self.audit.record(
                AuditAction.SYNC_ERROR,
                description=f"Sync run {stale.id} timed out",
                target_type="sync_run",
                target_id=str(stale.id),
                details={"started_at": stale.started_at.isoformat()},
            )
            logger.warning(
                "Reclaimed stale sync run",
                extra={"run_id": str(stale.id), "started_at": stale.started_at.isoformat()}
            )
        if stale_runs:
            await self.db.commit()

        if await self.find_fresh_started_run(now) is not None:
            return None

        run = SyncRun(
            id=uuid4(),
            sync_type=sync_type,
            status=SyncRunStatus.STARTED,
            triggered_by=triggered_by,
            started_at=now,
            deals_found=0,
            deals_created=0,
            deals_updated=0,
            deals_removed=0,
            errors=[],
        )
        self.db.add(run)
        self.audit.record(
            AuditAction.SYNC_START,
            description=f"{sync_type.value} sync started",
            target_type="sync_run",
            target_id=str(run.id),
            actor=triggered_by,
        )
        try:
            await self.db.commit()
        except IntegrityError:
            # Another process inserted its STARTED row first
            await self.db.rollback()
            return None
        return run.id

    def _map_snapshot(
        self, items: list[dict[str, Any]]
    ) -> tuple[dict[str, MappedDeal], set[str], list[dict[str, Any]]]:
        """
        Map raw items, collecting per-item errors.

        ``snapshot_ids`` holds every identity the provider listed, mapped or
        not, so an item that fails mapping is never treated as missing.
        """
        mapped: dict[str, MappedDeal] = {}
        snapshot_ids: set[str] = set()
        errors: list[dict[str, Any]] = []

        for item in items:
            external_id = self.provider.external_id_of(item)
            if external_id is not None:
                if external_id in snapshot_ids:
                    errors.append(_item_error(external_id, "Duplicate external id in snapshot"))
                    continue
                snapshot_ids.add(external_id)
            try:
                deal_data = self.provider.map_item(item)
            except MappingError as e:
                errors.append(_item_error(external_id, str(e)))
                logger.warning("Skipping unmappable provider item", extra={"external_id": external_id, "error": str(e)})
                continue
            except Exception as e:
                # One malformed item must not cost the rest of the snapshot
                message = f"{type(e).__name__}: {e}"
                errors.append(_item_error(external_id, message))
                logger.warning(
                    "Provider item mapping raised unexpectedly",
                    extra={"external_id": external_id, "error": message},
                    exc_info=True
                )
                continue
            mapped[deal_data.external_id] = deal_data

        return mapped, snapshot_ids, errors

    async def _apply(self, mapped: dict[str, MappedDeal], snapshot_ids: set[str]) -> tuple[int, int, int]:
        now = utcnow()
        created = updated = 0
        for deal_data in mapped.values():
            change = await self._upsert(deal_data, now)
            if change == "created":
                created += 1
            elif change == "updated":
                updated += 1
        removed = await self._remove_missing(snapshot_ids)
        return created, updated, removed

    async def _airport(self, code: str) -> Optional[Airport]:
        if code not in self._airports:
            self._airports[code] = await find_airport(self.db, code)
        return self._airports[code]

    async def _aircraft_entry(self, name: Optional[str]) -> Optional[Aircraft]:
        key = (name or "").strip().lower()
        if key not in self._aircraft:
            self._aircraft[key] = await find_aircraft(self.db, name)
        return self._aircraft[key]

    async def _deal_fields(self, data: MappedDeal) -> dict[str, Any]:
        origin = await self._airport(data.origin_icao)
        destination = await self._airport(data.destination_icao)
        aircraft = await self._aircraft_entry(data.aircraft_name)
        return {
            "origin_airport_id": origin.id if origin else None,
            "origin_icao": data.origin_icao,
            "origin_city": (origin.municipality if origin and origin.municipality else data.origin_city),
            "origin_country": origin.country if origin else data.origin_country,
            "destination_airport_id": destination.id if destination else None,
            "destination_icao": data.destination_icao,
            "destination_city": (
                destination.municipality if destination and destination.municipality else data.destination_city
            ),
            "destination_country": destination.country if destination else data.destination_country,
            "departure_at": data.departure_at,
            "aircraft_id": aircraft.id if aircraft else None,
            "aircraft_name": data.aircraft_name,
            "aircraft_type": data.aircraft_type,
            "aircraft_category": data.aircraft_category.value if data.aircraft_category else None,
            "aircraft_image_url": data.aircraft_image_url or (aircraft.image_url if aircraft else None),
            "total_seats": data.total_seats,
            "available_seats": data.total_seats,
            "price_type": data.price_type.value,
            "original_price_amount": data.price_amount,
            "discount_price_amount": data.price_amount,
            "price_currency": data.price_currency,
            "operator_name": data.operator_name,
            "operator_email": data.operator_email,
            "operator_phone": data.operator_phone,
        }

    async def _held_seats(self, deal_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(Booking.requested_seats), 0)).where(
            Booking.deal_id == deal_id,
            Booking.status.in_([status.value for status in SEAT_HOLDING_STATUSES]),
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def _upsert(self, data: MappedDeal, now: datetime) -> str:
        """Create or update one PROVIDER deal; returns created, updated or unchanged."""
        stmt = (
            select(Deal)
            .where(Deal.source == DealSource.PROVIDER, Deal.external_id == data.external_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        existing = (await self.db.execute(stmt)).scalar_one_or_none()
        fields = await self._deal_fields(data)

        if existing is None:
            slug = await unique_slug(
                self.db,
                deal_slug(fields["origin_city"], fields["destination_city"], data.departure_at, data.slug_tag),
            )
            deal = Deal(
                external_id=data.external_id,
                slug=slug,
                source=DealSource.PROVIDER,
                status=DealStatus.OPEN,
                last_synced_at=now,
                **fields,
            )
            self.db.add(deal)
            # Later slug lookups in this pass must see the new row
            await self.db.flush()
            return "created"

        held = await self._held_seats(existing.id)
        fields["available_seats"] = max(0, min(data.total_seats, data.total_seats - held))

        revived = existing.status == DealStatus.REMOVED
        changed = [name for name in _MUTABLE_FIELDS if getattr(existing, name) != fields[name]]
        if not changed and not revived:
            return "unchanged"

        for name in changed:
            setattr(existing, name, fields[name])
        if revived:
            existing.status = DealStatus.OPEN
        existing.last_synced_at = now

        logger.debug(
            "Provider deal updated",
            extra={"deal_id": str(existing.id), "external_id": data.external_id, "fields": changed, "revived": revived}
        )
        return "updated"

    async def _remove_missing(self, snapshot_ids: set[str]) -> int:
        """
        Drop PROVIDER deals the snapshot no longer lists.

        Deals with booking history are kept as REMOVED so bookings never
        lose their deal; everything else is deleted outright.
        """
        removed = 0
        for deal in await self.find_provider_deals_missing_from(snapshot_ids):
            has_bookings = (
                await self.db.execute(select(Booking.id).where(Booking.deal_id == deal.id).limit(1))
            ).first() is not None
            if has_bookings:
                deal.status = DealStatus.REMOVED
            else:
                await self.db.delete(deal)
            removed += 1
            logger.debug(
                "Provider deal removed",
                extra={"deal_id": str(deal.id), "external_id": deal.external_id, "soft": has_bookings}
            )
        await self.db.flush()
        return removed

    async def _finalize(
        self,
        run_id: UUID,
        found: int,
        created: int,
        updated: int,
        removed: int,
        errors: list[dict[str, Any]],
        duration_ms: int,
    ) -> None:
        await self.db.execute(
            update(SyncRun)
            .where(SyncRun.id == run_id)
            .values(
                status=SyncRunStatus.SUCCEEDED,
                completed_at=utcnow(),
                duration_ms=duration_ms,
                deals_found=found,
                deals_created=created,
                deals_updated=updated,
                deals_removed=removed,
                error_message=f"{len(errors)} item(s) could not be synced" if errors else None,
                errors=errors,
            )
            .execution_options(synchronize_session=False)
        )
        self.audit.record(
            AuditAction.SYNC_COMPLETE,
            description=(
                f"Sync completed: {found} found, {created} created, {updated} updated, {removed} removed"
            ),
            target_type="sync_run",
            target_id=str(run_id),
            details={"error_count": len(errors), "duration_ms": duration_ms},
        )
        await self.db.commit()

    async def _fail(self, run_id: UUID, sync_type: SyncType, message: str, started: float) -> SyncOutcome:
        duration_ms = int((time.monotonic() - started) * 1000)
        errors = [_item_error(None, message)]
        await self.db.execute(
            update(SyncRun)
            .where(SyncRun.id == run_id)
            .values(
                status=SyncRunStatus.FAILED,
                completed_at=utcnow(),
                duration_ms=duration_ms,
                error_message=message[:1024],
                errors=errors,
            )
            .execution_options(synchronize_session=False)
        )
        self.audit.record(
            AuditAction.SYNC_ERROR,
            description="Sync failed",
            target_type="sync_run",
            target_id=str(run_id),
            details={"error": message},
        )
        await self.db.commit()

        metrics_collector.record_sync_run(sync_type.value, "failed", duration_ms / 1000)
        logger.error("Sync failed", extra={"run_id": str(run_id), "sync_type": sync_type.value, "error": message})
        return SyncOutcome(success=False, run_id=run_id, duration_ms=duration_ms, errors=errors)

    # Read side

    async def get_sync_status(self, now: Optional[datetime] = None) -> SyncStatus:
        """Last run, lock state, live provider inventory and the next scheduled run."""
        now = now or utcnow()
        last_run = (
            await self.db.execute(
                select(SyncRun)
                .order_by(SyncRun.started_at.desc())
                .limit(1)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        last_scheduled = (
            await self.db.execute(
                select(SyncRun.started_at)
                .where(SyncRun.sync_type == SyncType.SCHEDULED)
                .order_by(SyncRun.started_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        live_count = (
            await self.db.execute(
                select(func.count(Deal.id)).where(
                    Deal.source == DealSource.PROVIDER,
                    Deal.status.in_([status.value for status in LIVE_DEAL_STATUSES]),
                )
            )
        ).scalar_one()

        interval = timedelta(seconds=self.config.sync_interval_seconds)
        next_run = last_scheduled + interval if last_scheduled else None

        return SyncStatus(
            last_run=last_run,
            in_progress=await self.find_fresh_started_run(now) is not None,
            live_provider_deals=live_count,
            next_scheduled_run_at=next_run,
        )

    async def get_sync_history(self, limit: Optional[int] = None) -> list[SyncRun]:
        """Most recent runs first."""
        limit = min(limit or self.config.sync_history_default_limit, MAX_HISTORY_LIMIT)
        stmt = (
            select(SyncRun)
            .order_by(SyncRun.started_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list((await self.db.execute(stmt)).scalars())

    async def check_provider_health(self) -> dict[str, Any]:
        return await self.provider.check_health()
