"""Concurrency tests for booking transitions.

A second session that read the booking before a competing command
committed stands in for the concurrent request: its guard hands back
that stale read, so the losing command runs its full path and must be
stopped by the compare-and-set in the store.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from emptyleg.core.exceptions import InsufficientSeatsError
from emptyleg.models.booking import Booking, BookingStatus, Payment
from emptyleg.models.deal import Deal
from emptyleg.models.message import BookingMessage, MessageKind
from emptyleg.services.booking_service import BookingService

pytestmark = pytest.mark.concurrency

RECEIPT_URL = "https://media.test/receipt.jpg"


@pytest.fixture
async def competing_session(session_factory):
    async with session_factory() as session:
        yield session


async def _stale_service(session, gateway, config, booking_id, monkeypatch) -> BookingService:
    """A service whose guard returns the booking as this session first saw it."""
    stale = await session.get(Booking, booking_id)
    service = BookingService(session, gateway, config)

    async def stale_lock(_booking_id):
        return stale

    monkeypatch.setattr(service, "_lock_booking", stale_lock)
    return service


async def _fresh(db, model, key):
    return await db.get(model, key, populate_existing=True)


async def _count(db, stmt) -> int:
    return await db.scalar(select(func.count()).select_from(stmt.subquery()))


@pytest.mark.asyncio
async def test_double_approval_takes_seats_once(
    test_session, competing_session, booking_service, gateway, test_config, make_deal, make_booking, monkeypatch
):
    """Test two admins approving one booking decrement the deal once."""
    deal = await make_deal(total_seats=8, available_seats=8)
    booking = await make_booking(deal, seats=3)
    loser = await _stale_service(competing_session, gateway, test_config, booking.id, monkeypatch)

    winner_result = await booking_service.approve(booking.id, actor="admin-1")
    loser_result = await loser.approve(booking.id, actor="admin-2")

    assert winner_result.status == BookingStatus.APPROVED
    assert loser_result.status == BookingStatus.APPROVED
    assert loser_result.approved_by == "admin-1"
    assert (await _fresh(test_session, Deal, deal.id)).available_seats == 5

    approvals = select(BookingMessage).where(BookingMessage.kind == MessageKind.APPROVAL)
    assert await _count(test_session, approvals) == 1


@pytest.mark.asyncio
async def test_payment_confirmation_loses_to_expiry(
    test_session, competing_session, booking_service, gateway, test_config, make_deal, make_booking, monkeypatch
):
    """Test a confirmation racing an expiry leaves the booking EXPIRED without a ticket."""
    deal = await make_deal(total_seats=8, available_seats=8)
    booking = await booking_service.approve((await make_booking(deal, seats=2)).id, actor="admin-1")
    await booking_service.attach_evidence(booking.id, media_reference=RECEIPT_URL, content_type="image/jpeg")
    confirmer = await _stale_service(competing_session, gateway, test_config, booking.id, monkeypatch)

    await booking_service.expire_if_overdue(booking.id, now=booking.payment_deadline + timedelta(seconds=1))
    result = await confirmer.confirm_payment(booking.id, actor="admin-2", now=booking.payment_deadline - timedelta(hours=1))

    assert result.status == BookingStatus.EXPIRED
    assert result.ticket_number is None
    assert await _count(test_session, select(Payment)) == 0
    assert (await _fresh(test_session, Deal, deal.id)).available_seats == 8


@pytest.mark.asyncio
async def test_expiry_loses_to_payment_confirmation(
    test_session, competing_session, booking_service, gateway, test_config, make_deal, make_booking, monkeypatch
):
    """Test an expiry racing a confirmation leaves the booking PAID with its seats taken."""
    deal = await make_deal(total_seats=8, available_seats=8)
    booking = await booking_service.approve((await make_booking(deal, seats=2)).id, actor="admin-1")
    await booking_service.attach_evidence(booking.id, media_reference=RECEIPT_URL, content_type="image/jpeg")
    sweeper = await _stale_service(competing_session, gateway, test_config, booking.id, monkeypatch)

    await booking_service.confirm_payment(booking.id, actor="admin-1")
    result = await sweeper.expire_if_overdue(booking.id, now=booking.payment_deadline + timedelta(seconds=1))

    assert result.status == BookingStatus.PAID
    assert result.ticket_number is not None
    assert (await _fresh(test_session, Deal, deal.id)).available_seats == 6


@pytest.mark.asyncio
async def test_rejection_loses_to_approval(
    test_session, competing_session, booking_service, gateway, test_config, make_deal, make_booking, monkeypatch
):
    deal = await make_deal()
    booking = await make_booking(deal, seats=2)
    rejecter = await _stale_service(competing_session, gateway, test_config, booking.id, monkeypatch)

    await booking_service.approve(booking.id, actor="admin-1")
    result = await rejecter.reject(booking.id, "OTHER", actor="admin-2", note="too late")

    assert result.status == BookingStatus.APPROVED
    assert result.rejection_note is None


@pytest.mark.asyncio
async def test_approvals_on_one_deal_never_oversell(
    test_session, competing_session, booking_service, gateway, test_config, make_deal, make_booking, monkeypatch
):
    """Test the seat decrement holds even when the approver read the deal before it filled up."""
    deal = await make_deal(total_seats=4, available_seats=4)
    first = await make_booking(deal, seats=3)
    second = await make_booking(deal, seats=3)
    stale_deal = await competing_session.get(Deal, deal.id)
    late_approver = BookingService(competing_session, gateway, test_config)

    async def stale_deal_read(_deal_id):
        return stale_deal

    monkeypatch.setattr(late_approver, "_load_deal", stale_deal_read)

    await booking_service.approve(first.id, actor="admin-1")
    with pytest.raises(InsufficientSeatsError):
        await late_approver.approve(second.id, actor="admin-2")

    assert (await _fresh(test_session, Deal, deal.id)).available_seats == 1
    assert (await _fresh(test_session, Booking, second.id)).status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_ticket_numbers_are_unique_across_sessions(
    test_session, session_factory, booking_service, gateway, test_config, make_deal, make_booking
):
    """Test every confirmation draws its own ticket number, whichever session issues it."""
    deal = await make_deal(total_seats=10, available_seats=10)
    booking_ids = []
    for _ in range(5):
        booking = await booking_service.approve((await make_booking(deal, seats=1)).id, actor="admin-1")
        await booking_service.attach_evidence(booking.id, media_reference=RECEIPT_URL, content_type="image/jpeg")
        booking_ids.append(booking.id)

    tickets = []
    for booking_id in booking_ids:
        async with session_factory() as session:
            paid = await BookingService(session, gateway, test_config).confirm_payment(booking_id, actor="admin-1")
            tickets.append(paid.ticket_number)

    assert len(set(tickets)) == 5
    assert sorted(tickets) == tickets
