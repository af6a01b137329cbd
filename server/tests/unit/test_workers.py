"""Unit tests for background workers."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from emptyleg.core.database import utcnow
from emptyleg.models.booking import Booking, BookingStatus
from emptyleg.models.deal import Deal, DealSource, DealStatus
from emptyleg.models.message import BookingMessage, MessageStatus
from emptyleg.workers.base import BaseWorker
from emptyleg.workers.deal_expiry_worker import DealExpiryWorker
from emptyleg.workers.manager import WorkerManager
from emptyleg.workers.notification_retry_worker import NotificationRetryWorker
from emptyleg.workers.payment_deadline_worker import PaymentDeadlineWorker
from emptyleg.workers.sync_worker import SyncWorker

from conftest import availability_item


class SignallingWorker(BaseWorker):
    def __init__(self, **kwargs):
        super().__init__(name="Signalling", interval_seconds=3600, **kwargs)
        self.ran = asyncio.Event()

    async def process(self, db):
        self.ran.set()


class FailingWorker(BaseWorker):
    def __init__(self, **kwargs):
        super().__init__(name="Failing", interval_seconds=3600, **kwargs)

    async def process(self, db):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_worker_runs_first_iteration_and_stops(session_factory):
    """Test a started worker runs immediately and stops cleanly."""
    worker = SignallingWorker(session_factory=session_factory)

    await worker.start()
    await asyncio.wait_for(worker.ran.wait(), timeout=5)
    assert worker.running is True

    await worker.stop()
    assert worker.running is False


@pytest.mark.asyncio
async def test_run_once_propagates_failures(session_factory):
    """Test a failing iteration surfaces its error to the caller."""
    with pytest.raises(RuntimeError):
        await FailingWorker(session_factory=session_factory).run_once()


@pytest.mark.asyncio
async def test_payment_deadline_worker_expires_overdue_booking(
    test_session, session_factory, booking_service, gateway, make_deal, make_booking
):
    """Test the worker expires an unpaid approval and returns its seats."""
    deal = await make_deal(total_seats=8, available_seats=8)
    booking = await booking_service.approve((await make_booking(deal, seats=2)).id, actor="admin-1")
    await test_session.execute(
        update(Booking).where(Booking.id == booking.id).values(payment_deadline=utcnow() - timedelta(minutes=1))
    )
    await test_session.commit()

    worker = PaymentDeadlineWorker(session_factory=session_factory, gateway_factory=lambda: gateway)
    await worker.run_once()

    assert (await test_session.get(Booking, booking.id, populate_existing=True)).status == BookingStatus.EXPIRED
    assert (await test_session.get(Deal, deal.id, populate_existing=True)).available_seats == 8
    assert gateway.closed is True


@pytest.mark.asyncio
async def test_sync_worker_runs_scheduled_sync(test_session, session_factory, provider):
    """Test the worker pulls the provider snapshot."""
    provider.items = [availability_item(301), availability_item(302)]

    await SyncWorker(session_factory=session_factory, provider_factory=lambda: provider).run_once()

    count = await test_session.scalar(
        select(func.count()).select_from(Deal).where(Deal.source == DealSource.PROVIDER)
    )
    assert count == 2
    assert provider.fetch_count == 1


@pytest.mark.asyncio
async def test_deal_expiry_worker(test_session, session_factory, make_deal):
    """Test the worker expires departed deals."""
    deal = await make_deal(departure_at=utcnow() - timedelta(hours=1))

    await DealExpiryWorker(session_factory=session_factory).run_once()

    assert (await test_session.get(Deal, deal.id, populate_existing=True)).status == DealStatus.EXPIRED


@pytest.mark.asyncio
async def test_notification_retry_worker(test_session, session_factory, booking_service, gateway, make_deal, make_booking):
    """Test the worker redelivers failed messages."""
    booking = await make_booking(await make_deal())
    gateway.fail = True
    await booking_service.approve(booking.id, actor="admin-1")
    gateway.fail = False

    await NotificationRetryWorker(session_factory=session_factory, gateway_factory=lambda: gateway).run_once()

    message = (
        await test_session.execute(select(BookingMessage).execution_options(populate_existing=True))
    ).scalar_one()
    assert message.status == MessageStatus.SENT


def test_manager_leaves_out_payment_expiry_when_disabled(test_config):
    """Test automatic payment expiry can be switched off."""
    manager = WorkerManager(test_config.model_copy(update={"auto_expire_overdue_bookings": False}))

    assert set(manager.workers) == {"provider_sync", "deal_expiry", "notification_retry"}
    assert manager.get_worker_status() == {name: False for name in manager.workers}


def test_manager_schedules_payment_expiry_by_default(test_config):
    manager = WorkerManager(test_config)

    worker = manager.get_worker("payment_deadline")
    assert worker.interval_seconds == test_config.payment_expiry_interval_seconds
    with pytest.raises(KeyError):
        manager.get_worker("unknown")
