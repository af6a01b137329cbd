"""Unit tests for the booking state machine."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from emptyleg.core.database import utcnow
from emptyleg.core.exceptions import (
    DealNotBookableError,
    EvidenceRequiredError,
    InsufficientSeatsError,
    InvalidTransitionError,
    NotFoundError,
    PaymentDeadlinePassedError,
    ValidationError,
)
from emptyleg.models.booking import Booking, BookingStatus, Payment, RejectionReason
from emptyleg.models.deal import Deal, DealStatus, PriceType
from emptyleg.models.message import BookingEvidence, BookingMessage, MessageDirection, MessageKind, MessageStatus
from emptyleg.schemas.booking import ClientContact, CreateBookingRequest, GetBookingRequest
from emptyleg.services.booking_service import BookingService
from emptyleg.services.settings_service import SettingsService

RECEIPT_URL = "https://media.test/receipt.jpg"


async def _reload_booking(db, booking_id) -> Booking:
    return await db.get(Booking, booking_id, populate_existing=True)


async def _reload_deal(db, deal_id) -> Deal:
    return await db.get(Deal, deal_id, populate_existing=True)


async def _outbound(db, booking_id) -> list[BookingMessage]:
    result = await db.execute(
        select(BookingMessage)
        .where(BookingMessage.booking_id == booking_id, BookingMessage.direction == MessageDirection.OUTBOUND)
        .order_by(BookingMessage.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars())


async def _approved_with_receipt(booking_service, make_deal, make_booking, seats=2, **deal_overrides):
    deal = await make_deal(**deal_overrides)
    booking = await make_booking(deal, seats=seats)
    booking = await booking_service.approve(booking.id, actor="admin-1")
    await booking_service.attach_evidence(booking.id, media_reference=RECEIPT_URL, content_type="image/jpeg")
    return deal, booking


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_creates_pending_booking_without_taking_seats(self, test_session, make_deal, make_booking):
        deal = await make_deal(total_seats=8, available_seats=8, discount_price_amount=1_000_000)

        booking = await make_booking(deal, seats=2, phone="0801 234 5678")

        assert booking.status == BookingStatus.PENDING
        assert booking.client_phone == "+2348012345678"
        assert booking.total_price_amount == 2_000_000
        assert booking.price_currency == "USD"
        assert booking.reference_number.startswith(f"PEX-EL-{utcnow().year}-")
        assert (await _reload_deal(test_session, deal.id)).available_seats == 8

    @pytest.mark.asyncio
    async def test_contact_priced_deal_has_no_total(self, make_deal, make_booking):
        deal = await make_deal(price_type=PriceType.CONTACT, original_price_amount=None, discount_price_amount=None)

        booking = await make_booking(deal)

        assert booking.total_price_amount is None

    @pytest.mark.asyncio
    async def test_references_are_unique(self, make_deal, make_booking):
        deal = await make_deal()

        references = {(await make_booking(deal, seats=1)).reference_number for _ in range(5)}

        assert len(references) == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [DealStatus.DRAFT, DealStatus.EXPIRED, DealStatus.REMOVED])
    async def test_deal_must_be_live(self, make_deal, make_booking, status):
        deal = await make_deal(status=status)

        with pytest.raises(DealNotBookableError):
            await make_booking(deal)

    @pytest.mark.asyncio
    async def test_departed_deal_is_not_bookable(self, make_deal, make_booking):
        deal = await make_deal(departure_at=utcnow() - timedelta(hours=1))

        with pytest.raises(DealNotBookableError):
            await make_booking(deal)

    @pytest.mark.asyncio
    async def test_more_seats_than_available(self, make_deal, make_booking):
        deal = await make_deal(total_seats=8, available_seats=3)

        with pytest.raises(InsufficientSeatsError) as exc_info:
            await make_booking(deal, seats=4)

        assert exc_info.value.code == "INSUFFICIENT_SEATS"
        assert exc_info.value.problem_details["conflicting_resource"]["available_seats"] == 3

    @pytest.mark.asyncio
    async def test_unknown_deal(self, booking_service):
        request = CreateBookingRequest(
            deal_id=str(uuid4()), seats=1, client=ClientContact(name="Ada", phone="08012345678")
        )

        with pytest.raises(NotFoundError):
            await booking_service.create_booking(request)

    @pytest.mark.asyncio
    async def test_phone_without_digits(self, make_deal, make_booking):
        deal = await make_deal()

        with pytest.raises(ValidationError):
            await make_booking(deal, phone="call me")


class TestApprove:

    @pytest.mark.asyncio
    async def test_approval_takes_seats_and_notifies(self, test_session, booking_service, gateway, make_deal, make_booking):
        deal = await make_deal(total_seats=8, available_seats=8)
        booking = await make_booking(deal, seats=3)

        approved = await booking_service.approve(booking.id, actor="admin-1")

        assert approved.status == BookingStatus.APPROVED
        assert approved.approved_by == "admin-1"
        assert approved.payment_deadline - approved.approved_at == timedelta(hours=24)
        assert approved.payment_reference == f"PAY-{approved.reference_number}"
        assert approved.payment_link.endswith(f"/{approved.reference_number}")
        assert (await _reload_deal(test_session, deal.id)).available_seats == 5

        assert len(gateway.sent) == 1
        assert gateway.sent[0]["to"] == "whatsapp:+2348012345678"
        assert approved.reference_number in gateway.sent[0]["body"]
        (message,) = await _outbound(test_session, booking.id)
        assert message.kind == MessageKind.APPROVAL
        assert message.status == MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_second_approval_is_invalid(self, test_session, booking_service, make_deal, make_booking):
        deal = await make_deal()
        booking = await make_booking(deal, seats=2)
        await booking_service.approve(booking.id, actor="admin-1")

        with pytest.raises(InvalidTransitionError):
            await booking_service.approve(booking.id, actor="admin-2")

        assert (await _reload_deal(test_session, deal.id)).available_seats == 6
        assert (await _reload_booking(test_session, booking.id)).approved_by == "admin-1"

    @pytest.mark.asyncio
    async def test_approval_cannot_oversell(self, test_session, booking_service, make_deal, make_booking):
        deal = await make_deal(total_seats=4, available_seats=4)
        first = await make_booking(deal, seats=3)
        second = await make_booking(deal, seats=3)
        await booking_service.approve(first.id, actor="admin-1")

        with pytest.raises(InsufficientSeatsError):
            await booking_service.approve(second.id, actor="admin-1")

        assert (await _reload_booking(test_session, second.id)).status == BookingStatus.PENDING
        assert (await _reload_deal(test_session, deal.id)).available_seats == 1

    @pytest.mark.asyncio
    async def test_deal_must_still_be_live(self, test_session, booking_service, make_deal, make_booking):
        deal = await make_deal()
        booking = await make_booking(deal)
        await test_session.execute(update(Deal).where(Deal.id == deal.id).values(status=DealStatus.EXPIRED.value))
        await test_session.commit()

        with pytest.raises(DealNotBookableError):
            await booking_service.approve(booking.id, actor="admin-1")

        assert (await _reload_booking(test_session, booking.id)).status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_booking(self, booking_service):
        with pytest.raises(NotFoundError):
            await booking_service.approve(uuid4(), actor="admin-1")

    @pytest.mark.asyncio
    async def test_payment_window_comes_from_stored_settings(
        self, test_session, booking_service, test_config, make_deal, make_booking
    ):
        await SettingsService(test_session, test_config).update_policy(actor="admin-1", payment_window_hours=6)
        booking = await make_booking(await make_deal())

        approved = await booking_service.approve(booking.id, actor="admin-1")

        assert approved.payment_deadline - approved.approved_at == timedelta(hours=6)


class TestReject:

    @pytest.mark.asyncio
    async def test_rejection_keeps_seats_and_hides_note(self, test_session, booking_service, gateway, make_deal, make_booking):
        deal = await make_deal()
        booking = await make_booking(deal)

        rejected = await booking_service.reject(
            booking.id, RejectionReason.PRICING_ISSUE, actor="admin-1", note="operator wants more"
        )

        assert rejected.status == BookingStatus.REJECTED
        assert rejected.rejection_reason == RejectionReason.PRICING_ISSUE
        assert rejected.rejection_note == "operator wants more"
        assert (await _reload_deal(test_session, deal.id)).available_seats == 8
        assert "pricing discrepancy" in gateway.sent[0]["body"]
        assert "operator wants more" not in gateway.sent[0]["body"]

    @pytest.mark.asyncio
    async def test_note_is_shared_for_other(self, booking_service, gateway, make_deal, make_booking):
        booking = await make_booking(await make_deal())

        await booking_service.reject(booking.id, RejectionReason.OTHER, actor="admin-1", note="Runway closed")

        assert "*Additional Information:* Runway closed" in gateway.sent[0]["body"]

    @pytest.mark.asyncio
    async def test_note_is_shared_on_request(self, booking_service, gateway, make_deal, make_booking):
        booking = await make_booking(await make_deal())

        await booking_service.reject(
            booking.id, RejectionReason.INVALID_DATES, actor="admin-1", note="Try Friday", share_note=True
        )

        assert "Try Friday" in gateway.sent[0]["body"]

    @pytest.mark.asyncio
    async def test_approved_booking_cannot_be_rejected(self, booking_service, make_deal, make_booking):
        booking = await make_booking(await make_deal())
        await booking_service.approve(booking.id, actor="admin-1")

        with pytest.raises(InvalidTransitionError):
            await booking_service.reject(booking.id, RejectionReason.OTHER, actor="admin-1")


class TestConfirmPayment:

    @pytest.mark.asyncio
    async def test_confirmation_issues_ticket_and_splits_payment(
        self, test_session, booking_service, gateway, make_deal, make_booking
    ):
        _, booking = await _approved_with_receipt(booking_service, make_deal, make_booking, seats=2)

        paid = await booking_service.confirm_payment(booking.id, actor="admin-2")

        assert paid.status == BookingStatus.PAID
        assert paid.ticket_number == f"PEX-{utcnow().year}-000001"
        assert paid.confirmed_by == "admin-2"
        assert paid.evidence_review_required is False

        payment = (await test_session.execute(select(Payment).where(Payment.booking_id == booking.id))).scalar_one()
        assert payment.amount == 2_000_000
        assert payment.commission_percent == 10
        assert payment.admin_amount == 200_000
        assert payment.operator_amount == 1_800_000
        assert payment.reference == f"PAY-{booking.reference_number}"

        kinds = [message.kind for message in await _outbound(test_session, booking.id)]
        assert kinds == [MessageKind.APPROVAL, MessageKind.RECEIPT_ACK, MessageKind.CONFIRMATION]
        assert paid.ticket_number in gateway.sent[-1]["body"]

    @pytest.mark.asyncio
    async def test_ticket_numbers_increase(self, booking_service, make_deal, make_booking):
        _, first = await _approved_with_receipt(booking_service, make_deal, make_booking)
        _, second = await _approved_with_receipt(booking_service, make_deal, make_booking)

        first = await booking_service.confirm_payment(first.id, actor="admin-1")
        second = await booking_service.confirm_payment(second.id, actor="admin-1")

        assert first.ticket_number.endswith("-000001")
        assert second.ticket_number.endswith("-000002")

    @pytest.mark.asyncio
    async def test_evidence_is_required(self, test_session, booking_service, make_deal, make_booking):
        booking = await make_booking(await make_deal())
        await booking_service.approve(booking.id, actor="admin-1")

        with pytest.raises(EvidenceRequiredError):
            await booking_service.confirm_payment(booking.id, actor="admin-1")

        assert (await _reload_booking(test_session, booking.id)).status == BookingStatus.APPROVED

    @pytest.mark.asyncio
    async def test_text_only_evidence_is_not_a_receipt(self, booking_service, make_deal, make_booking):
        booking = await make_booking(await make_deal())
        await booking_service.approve(booking.id, actor="admin-1")
        await booking_service.attach_evidence(booking.id, media_reference=None, raw_text="I have paid")

        with pytest.raises(EvidenceRequiredError):
            await booking_service.confirm_payment(booking.id, actor="admin-1")

    @pytest.mark.asyncio
    async def test_evidence_optional_when_not_required(
        self, test_session, gateway, test_config, make_deal, make_booking, booking_service
    ):
        booking = await make_booking(await make_deal())
        await booking_service.approve(booking.id, actor="admin-1")
        relaxed = BookingService(test_session, gateway, test_config.model_copy(update={"require_payment_evidence": False}))

        paid = await relaxed.confirm_payment(booking.id, actor="admin-1")

        assert paid.status == BookingStatus.PAID

    @pytest.mark.asyncio
    async def test_deadline_is_enforced(self, test_session, booking_service, make_deal, make_booking):
        _, booking = await _approved_with_receipt(booking_service, make_deal, make_booking)

        with pytest.raises(PaymentDeadlinePassedError):
            await booking_service.confirm_payment(
                booking.id, actor="admin-1", now=booking.payment_deadline + timedelta(minutes=1)
            )

        booking = await _reload_booking(test_session, booking.id)
        assert booking.status == BookingStatus.APPROVED
        assert booking.ticket_number is None

    @pytest.mark.asyncio
    async def test_late_payment_accepted_when_deadline_not_enforced(
        self, test_session, gateway, test_config, make_deal, make_booking, booking_service
    ):
        _, booking = await _approved_with_receipt(booking_service, make_deal, make_booking)
        lenient = BookingService(test_session, gateway, test_config.model_copy(update={"enforce_payment_deadline": False}))

        paid = await lenient.confirm_payment(booking.id, actor="admin-1", now=booking.payment_deadline + timedelta(hours=1))

        assert paid.status == BookingStatus.PAID

    @pytest.mark.asyncio
    async def test_pending_booking_cannot_be_paid(self, booking_service, make_deal, make_booking):
        booking = await make_booking(await make_deal())

        with pytest.raises(InvalidTransitionError):
            await booking_service.confirm_payment(booking.id, actor="admin-1")

    @pytest.mark.asyncio
    async def test_commission_from_stored_settings(
        self, test_session, booking_service, test_config, make_deal, make_booking
    ):
        await SettingsService(test_session, test_config).update_policy(actor="admin-1", commission_percent=15)
        _, booking = await _approved_with_receipt(booking_service, make_deal, make_booking, seats=1)

        await booking_service.confirm_payment(booking.id, actor="admin-1")

        payment = (await test_session.execute(select(Payment).where(Payment.booking_id == booking.id))).scalar_one()
        assert payment.admin_amount == 150_000
        assert payment.admin_amount + payment.operator_amount == payment.amount


class TestExpiry:

    @pytest.mark.asyncio
    async def test_overdue_booking_expires_and_returns_seats(self, test_session, booking_service, make_deal, make_booking):
        deal = await make_deal(total_seats=8, available_seats=8)
        booking = await booking_service.approve((await make_booking(deal, seats=3)).id, actor="admin-1")

        expired = await booking_service.expire_if_overdue(booking.id, now=booking.payment_deadline + timedelta(seconds=1))

        assert expired.status == BookingStatus.EXPIRED
        assert expired.expired_at is not None
        assert (await _reload_deal(test_session, deal.id)).available_seats == 8

    @pytest.mark.asyncio
    async def test_booking_within_deadline_is_unchanged(self, test_session, booking_service, make_deal, make_booking):
        deal = await make_deal()
        booking = await booking_service.approve((await make_booking(deal, seats=2)).id, actor="admin-1")

        result = await booking_service.expire_if_overdue(booking.id)

        assert result.status == BookingStatus.APPROVED
        assert (await _reload_deal(test_session, deal.id)).available_seats == 6

    @pytest.mark.asyncio
    async def test_pending_booking_is_unchanged(self, booking_service, make_deal, make_booking):
        booking = await make_booking(await make_deal())

        result = await booking_service.expire_if_overdue(booking.id, now=utcnow() + timedelta(days=30))

        assert result.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_restored_seats_never_exceed_total(self, test_session, booking_service, make_deal, make_booking):
        deal = await make_deal(total_seats=8, available_seats=8)
        booking = await booking_service.approve((await make_booking(deal, seats=3)).id, actor="admin-1")
        # A provider resync reset availability in the meantime
        await test_session.execute(update(Deal).where(Deal.id == deal.id).values(available_seats=7))
        await test_session.commit()

        await booking_service.expire_if_overdue(booking.id, now=booking.payment_deadline + timedelta(seconds=1))

        assert (await _reload_deal(test_session, deal.id)).available_seats == 8

    @pytest.mark.asyncio
    async def test_sweep_expires_only_overdue_bookings(self, test_session, booking_service, make_deal, make_booking):
        deal = await make_deal(total_seats=10, available_seats=10)
        overdue = await booking_service.approve((await make_booking(deal, seats=2)).id, actor="admin-1")
        current = await booking_service.approve((await make_booking(deal, seats=2)).id, actor="admin-1")
        await test_session.execute(
            update(Booking).where(Booking.id == overdue.id).values(payment_deadline=utcnow() - timedelta(minutes=1))
        )
        await test_session.commit()

        expired_count = await booking_service.expire_overdue_bookings()

        assert expired_count == 1
        assert (await _reload_booking(test_session, overdue.id)).status == BookingStatus.EXPIRED
        assert (await _reload_booking(test_session, current.id)).status == BookingStatus.APPROVED
        assert (await _reload_deal(test_session, deal.id)).available_seats == 8
        assert await booking_service.expire_overdue_bookings() == 0

    @pytest.mark.asyncio
    async def test_expired_booking_cannot_be_paid(self, test_session, booking_service, make_deal, make_booking):
        _, booking = await _approved_with_receipt(booking_service, make_deal, make_booking)
        await booking_service.expire_if_overdue(booking.id, now=booking.payment_deadline + timedelta(seconds=1))

        with pytest.raises(InvalidTransitionError):
            await booking_service.confirm_payment(booking.id, actor="admin-1")


class TestEvidence:

    @pytest.mark.asyncio
    async def test_image_on_approved_booking_flags_review(self, test_session, booking_service, gateway, make_deal, make_booking):
        booking = await booking_service.approve((await make_booking(await make_deal())).id, actor="admin-1")

        evidence = await booking_service.attach_evidence(
            booking.id, media_reference=RECEIPT_URL, content_type="image/png", raw_text="paid", sender="whatsapp:+2348012345678"
        )

        assert evidence.booking_status_at_receipt == BookingStatus.APPROVED.value
        booking = await _reload_booking(test_session, booking.id)
        assert booking.status == BookingStatus.APPROVED
        assert booking.evidence_review_required is True
        assert booking.receipt_uploaded_at is not None
        assert "receipt" in gateway.sent[-1]["body"]

        inbound = (
            await test_session.execute(
                select(BookingMessage).where(
                    BookingMessage.booking_id == booking.id, BookingMessage.direction == MessageDirection.INBOUND
                )
            )
        ).scalar_one()
        assert inbound.media_url == RECEIPT_URL
        assert inbound.status == MessageStatus.RECEIVED

    @pytest.mark.asyncio
    async def test_document_is_stored_without_acknowledgement(self, test_session, booking_service, gateway, make_deal, make_booking):
        booking = await booking_service.approve((await make_booking(await make_deal())).id, actor="admin-1")
        sent_before = len(gateway.sent)

        await booking_service.attach_evidence(
            booking.id, media_reference="https://media.test/receipt.pdf", content_type="application/pdf"
        )

        assert len(gateway.sent) == sent_before
        assert (await _reload_booking(test_session, booking.id)).evidence_review_required is False

    @pytest.mark.asyncio
    async def test_evidence_on_pending_booking_is_kept(self, test_session, booking_service, gateway, make_deal, make_booking):
        booking = await make_booking(await make_deal())

        evidence = await booking_service.attach_evidence(booking.id, media_reference=RECEIPT_URL, content_type="image/jpeg")

        assert evidence.booking_status_at_receipt == BookingStatus.PENDING.value
        assert gateway.sent == []
        stored = (await test_session.execute(select(BookingEvidence))).scalars().all()
        assert len(stored) == 1


class TestLookups:

    @pytest.mark.asyncio
    async def test_find_by_reference_is_case_insensitive(self, booking_service, make_deal, make_booking):
        booking = await make_booking(await make_deal())

        found = await booking_service.find_booking(GetBookingRequest(reference_number=booking.reference_number.lower()))

        assert found.id == booking.id

    @pytest.mark.asyncio
    async def test_find_requires_an_identifier(self, booking_service):
        with pytest.raises(ValidationError):
            await booking_service.find_booking(GetBookingRequest())

    @pytest.mark.asyncio
    async def test_find_with_malformed_id(self, booking_service):
        with pytest.raises(NotFoundError):
            await booking_service.find_booking(GetBookingRequest(booking_id="not-a-uuid"))
