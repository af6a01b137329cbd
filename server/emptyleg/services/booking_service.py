"""Booking state machine: creation, approval, rejection, payment, expiry and evidence."""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import NoReturn, Optional
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, settings as default_settings
from ..core.database import acquire_advisory_lock, utcnow
from ..core.exceptions import (
    AmbiguousContactError,
    ContactNotMatchedError,
    DealNotBookableError,
    EvidenceRequiredError,
    InsufficientSeatsError,
    InvalidTransitionError,
    NotFoundError,
    PaymentDeadlinePassedError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..core.phones import contact_variants, to_e164
from ..gateways.notification import NotificationGateway
from ..models.audit import AuditAction
from ..models.booking import Booking, BookingStatus, Payment, RejectionReason
from ..models.deal import Deal, DealStatus, PriceType
from ..models.message import BookingEvidence, BookingMessage, MessageKind
from ..schemas.booking import CreateBookingRequest, GetBookingRequest
from . import messages
from .audit_service import AuditService
from .deal_service import DealService, parse_uuid
from .notification_service import NotificationService
from .settings_service import SettingsService
from .ticket_service import TicketService

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_SUFFIX_LENGTH = 6
MAX_REFERENCE_ATTEMPTS = 10


class BookingService:
    """
    Applies booking transitions.

    Every command runs in one transaction on the caller's session:
    it takes the per-booking advisory lock, re-reads the booking, and
    moves it with a compare-and-set UPDATE on the expected status. A
    command that loses the compare-and-set to a concurrent one rolls
    back and returns the booking as the winner left it. Client messages
    are staged in the same transaction and delivered after commit.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: NotificationGateway,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.audit = AuditService(db)
        self.settings_service = SettingsService(db, self.config)
        self.notifications = NotificationService(db, gateway, self.config)
        self.tickets = TicketService(db)

    # Lookups

    async def get_booking(self, booking_id: UUID) -> Booking | None:
        result = await self.db.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def get_booking_or_raise(self, booking_id: UUID) -> Booking:
        booking = await self.get_booking(booking_id)
        if not booking:
            logger.warning("Booking not found", extra={"booking_id": str(booking_id)})
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def find_booking(self, request: GetBookingRequest) -> Booking:
        """
        Get a booking by id or by reference number.

        Raises:
            ValidationError: If neither is given
            NotFoundError: If booking not found
        """
        if request.booking_id:
            return await self.get_booking_or_raise(parse_uuid(request.booking_id, "booking"))
        if request.reference_number:
            result = await self.db.execute(
                select(Booking).where(Booking.reference_number == request.reference_number.strip().upper())
            )
            booking = result.scalar_one_or_none()
            if not booking:
                raise NotFoundError(resource_type="booking", resource_id=request.reference_number)
            return booking
        raise ValidationError(detail="booking_id or reference_number is required")

    async def find_overdue_approved_bookings(self, now: datetime, limit: int = 100) -> list[Booking]:
        """APPROVED bookings whose payment deadline is behind ``now``, oldest deadline first."""
        stmt = (
            select(Booking)
            .where(
                Booking.status == BookingStatus.APPROVED,
                Booking.payment_deadline.is_not(None),
                Booking.payment_deadline < now,
            )
            .order_by(Booking.payment_deadline)
            .limit(limit)
        )
        return list((await self.db.execute(stmt)).scalars())

    async def resolve_booking_for_contact(self, contact: str) -> Booking:
        """
        The single APPROVED booking an inbound contact refers to.

        The sender is matched against every stored spelling of the number.

        Raises:
            ContactNotMatchedError: If the contact has no APPROVED booking
            AmbiguousContactError: If the contact has more than one
        """
        cc = self.config.default_country_calling_code
        variants = contact_variants(contact, cc)
        try:
            variants.append(to_e164(contact, cc))
        except ValueError:
            pass
        if not variants:
            raise ContactNotMatchedError(contact)

        stmt = (
            select(Booking)
            .where(Booking.status == BookingStatus.APPROVED, Booking.client_phone.in_(variants))
            .order_by(Booking.approved_at.desc())
        )
        candidates = list((await self.db.execute(stmt)).scalars())

        if not candidates:
            raise ContactNotMatchedError(contact)
        if len(candidates) > 1:
            logger.warning(
                "Inbound contact matches several approved bookings",
                extra={"contact": contact, "references": [b.reference_number for b in candidates]}
            )
            raise AmbiguousContactError(contact, [b.reference_number for b in candidates])
        return candidates[0]

    # Transaction helpers

    async def _abort(self, exc: Exception) -> NoReturn:
        await self.db.rollback()
        raise exc

    async def _lock_booking(self, booking_id: UUID) -> Booking:
        """Take the per-booking guard and read the booking fresh from the store."""
        await acquire_advisory_lock(self.db, f"booking:{booking_id}")
        stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        booking = (await self.db.execute(stmt)).scalar_one_or_none()
        if booking is None:
            await self._abort(NotFoundError(resource_type="booking", resource_id=str(booking_id)))
        return booking

    async def _load_deal(self, deal_id: UUID) -> Deal:
        stmt = select(Deal).where(Deal.id == deal_id).execution_options(populate_existing=True)
        return (await self.db.execute(stmt)).scalar_one()

    async def _reload(self, booking_id: UUID) -> Booking:
        return await self.db.get(Booking, booking_id, populate_existing=True)

    async def _compare_and_set(self, booking_id: UUID, expected: BookingStatus, **values) -> bool:
        """Move the booking only if it is still in ``expected``; False means another command won."""
        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _lost_race(self, booking_id: UUID, attempted: BookingStatus) -> Booking:
        await self.db.rollback()
        booking = await self._reload(booking_id)
        logger.info(
            "Booking transition lost to a concurrent command",
            extra={"booking_id": str(booking_id), "attempted": attempted.value, "status": booking.status}
        )
        return booking

    async def _finish(self, booking: Booking, staged: list[BookingMessage]) -> Booking:
        """Commit, deliver staged messages, and hand back a fully loaded booking."""
        await self.db.commit()
        if staged:
            await self.notifications.dispatch([message.id for message in staged])
        await self.db.refresh(booking)
        return booking

    def _invalid(self, booking: Booking, target: BookingStatus) -> InvalidTransitionError:
        return InvalidTransitionError(
            resource_type="booking",
            resource_id=str(booking.id),
            current_status=BookingStatus(booking.status).value,
            target_status=target.value,
        )

    async def _new_reference(self, prefix: str, year: int) -> str:
        for _ in range(MAX_REFERENCE_ATTEMPTS):
            suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
            reference = f"{prefix}-{year}-{suffix}"
            taken = await self.db.execute(select(Booking.id).where(Booking.reference_number == reference))
            if taken.first() is None:
                return reference
        raise ValidationError(detail="Could not allocate a booking reference, please retry")

    # Commands

    async def create_booking(self, request: CreateBookingRequest) -> Booking:
        """
        Record a client's seat request as PENDING.

        Seats are only checked here; they come off the deal at approval.

        Raises:
            NotFoundError: If deal not found
            DealNotBookableError: If the deal is not live or has departed
            InsufficientSeatsError: If the deal has fewer free seats than requested
        """
        deal = await DealService(self.db).get_deal_or_raise(parse_uuid(request.deal_id, "deal"))
        now = utcnow()
        if not DealStatus(deal.status).is_live or deal.departure_at <= now:
            raise DealNotBookableError(deal_id=str(deal.id), status=DealStatus(deal.status).value)
        if request.seats > deal.available_seats:
            metrics_collector.record_capacity_rejection()
            raise InsufficientSeatsError(
                deal_id=str(deal.id),
                requested_seats=request.seats,
                available_seats=deal.available_seats,
            )

        policy = await self.settings_service.load_policy()
        try:
            phone = to_e164(request.client.phone, policy.country_calling_code)
        except ValueError as e:
            raise ValidationError(detail=str(e), errors={"client.phone": "must contain digits"})

        total_price = None
        if deal.price_type == PriceType.FIXED and deal.discount_price_amount is not None:
            total_price = deal.discount_price_amount * request.seats

        booking = Booking(
            reference_number=await self._new_reference(policy.booking_reference_prefix, now.year),
            deal_id=deal.id,
            client_name=request.client.name.strip(),
            client_email=request.client.email,
            client_phone=phone,
            requested_seats=request.seats,
            total_price_amount=total_price,
            price_currency=deal.price_currency,
            status=BookingStatus.PENDING,
        )
        self.db.add(booking)
        await self.db.flush()

        self.audit.record(
            AuditAction.BOOKING_CREATE,
            description=f"Booking {booking.reference_number} requested {request.seats} seat(s)",
            target_type="booking",
            target_id=str(booking.id),
            actor=request.client.name,
            details={"deal_id": str(deal.id), "seats": request.seats},
        )
        await self.db.commit()
        await self.db.refresh(booking)

        metrics_collector.record_booking_transition(BookingStatus.PENDING.value)
        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "reference_number": booking.reference_number,
                "deal_id": str(deal.id),
                "seats": request.seats
            }
        )
        return booking

    async def approve(self, booking_id: UUID, actor: str) -> Booking:
        """
        Approve a PENDING booking and take its seats off the deal.

        The seat decrement is a conditional UPDATE (``available_seats >= n``),
        so concurrent approvals of different bookings on one deal can never
        oversell it.

        Raises:
            InvalidTransitionError: If the booking is not PENDING
            DealNotBookableError: If the deal is no longer live
            InsufficientSeatsError: If the deal has too few seats left
        """
        policy = await self.settings_service.load_policy()
        booking = await self._lock_booking(booking_id)
        if BookingStatus(booking.status) != BookingStatus.PENDING:
            await self._abort(self._invalid(booking, BookingStatus.APPROVED))

        deal = await self._load_deal(booking.deal_id)
        if not DealStatus(deal.status).is_live:
            await self._abort(DealNotBookableError(deal_id=str(deal.id), status=DealStatus(deal.status).value))

        now = utcnow()
        seats = booking.requested_seats
        decremented = await self.db.execute(
            update(Deal)
            .where(Deal.id == deal.id, Deal.available_seats >= seats)
            .values(available_seats=Deal.available_seats - seats, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if decremented.rowcount != 1:
            available = deal.available_seats
            metrics_collector.record_capacity_rejection()
            logger.info(
                "Approval refused, not enough seats",
                extra={"booking_id": str(booking_id), "deal_id": str(deal.id), "requested": seats, "available": available}
            )
            await self._abort(
                InsufficientSeatsError(deal_id=str(deal.id), requested_seats=seats, available_seats=available)
            )

        reference = booking.reference_number
        won = await self._compare_and_set(
            booking_id,
            BookingStatus.PENDING,
            status=BookingStatus.APPROVED.value,
            payment_deadline=now + timedelta(hours=policy.payment_window_hours),
            payment_reference=f"PAY-{reference}",
            payment_link=f"{policy.payment_link_base_url}/{reference}",
            approved_by=actor,
            approved_at=now,
            updated_at=now,
        )
        if not won:
            return await self._lost_race(booking_id, BookingStatus.APPROVED)

        await self.db.refresh(booking)
        await self.db.refresh(deal)
        staged = [
            self.notifications.enqueue(
                booking,
                MessageKind.APPROVAL,
                messages.approval_message(booking, deal, policy.brand_name),
            )
        ]
        self.audit.record(
            AuditAction.BOOKING_APPROVE,
            description=f"Booking {reference} approved",
            target_type="booking",
            target_id=str(booking.id),
            actor=actor,
            details={
                "seats": seats,
                "available_seats_after": deal.available_seats,
                "payment_deadline": booking.payment_deadline.isoformat(),
            },
        )
        booking = await self._finish(booking, staged)

        metrics_collector.record_booking_transition(BookingStatus.APPROVED.value)
        logger.info(
            "Booking approved",
            extra={
                "booking_id": str(booking.id),
                "reference_number": reference,
                "deal_id": str(deal.id),
                "seats": seats,
                "payment_deadline": booking.payment_deadline.isoformat()
            }
        )
        return booking

    async def reject(
        self,
        booking_id: UUID,
        reason: RejectionReason,
        actor: str,
        note: Optional[str] = None,
        share_note: bool = False,
    ) -> Booking:
        """
        Decline a PENDING booking.

        The note reaches the client only for OTHER or when ``share_note`` is set.

        Raises:
            InvalidTransitionError: If the booking is not PENDING
        """
        reason = RejectionReason(reason)
        policy = await self.settings_service.load_policy()
        booking = await self._lock_booking(booking_id)
        if BookingStatus(booking.status) != BookingStatus.PENDING:
            await self._abort(self._invalid(booking, BookingStatus.REJECTED))

        now = utcnow()
        won = await self._compare_and_set(
            booking_id,
            BookingStatus.PENDING,
            status=BookingStatus.REJECTED.value,
            rejection_reason=reason.value,
            rejection_note=note,
            rejected_by=actor,
            rejected_at=now,
            updated_at=now,
        )
        if not won:
            return await self._lost_race(booking_id, BookingStatus.REJECTED)

        await self.db.refresh(booking)
        deal = await self._load_deal(booking.deal_id)
        include_note = reason == RejectionReason.OTHER or share_note
        staged = [
            self.notifications.enqueue(
                booking,
                MessageKind.REJECTION,
                messages.rejection_message(booking, deal, reason, note, include_note, policy.brand_name),
            )
        ]
        self.audit.record(
            AuditAction.BOOKING_REJECT,
            description=f"Booking {booking.reference_number} rejected: {reason.value}",
            target_type="booking",
            target_id=str(booking.id),
            actor=actor,
            details={"reason": reason.value, "note_shared": bool(include_note and note)},
        )
        booking = await self._finish(booking, staged)

        metrics_collector.record_booking_transition(BookingStatus.REJECTED.value)
        logger.info(
            "Booking rejected",
            extra={"booking_id": str(booking.id), "reference_number": booking.reference_number, "reason": reason.value}
        )
        return booking

    async def _has_payment_evidence(self, booking_id: UUID) -> bool:
        stmt = (
            select(BookingEvidence.id)
            .where(BookingEvidence.booking_id == booking_id, BookingEvidence.media_reference.is_not(None))
            .limit(1)
        )
        return (await self.db.execute(stmt)).first() is not None

    async def confirm_payment(self, booking_id: UUID, actor: str, now: Optional[datetime] = None) -> Booking:
        """
        Mark an APPROVED booking PAID, issue its ticket and record the payment split.

        If a concurrent expiry wins the compare-and-set first, this returns
        the booking unchanged instead of raising.

        Raises:
            InvalidTransitionError: If the booking is not APPROVED
            EvidenceRequiredError: If no receipt is attached and one is required
            PaymentDeadlinePassedError: If the deadline passed and is enforced
        """
        policy = await self.settings_service.load_policy()
        booking = await self._lock_booking(booking_id)
        if BookingStatus(booking.status) != BookingStatus.APPROVED:
            await self._abort(self._invalid(booking, BookingStatus.PAID))
        if policy.require_payment_evidence and not await self._has_payment_evidence(booking_id):
            await self._abort(EvidenceRequiredError(booking_id=str(booking_id)))

        now = now or utcnow()
        if policy.enforce_payment_deadline and booking.payment_deadline and now > booking.payment_deadline:
            await self._abort(
                PaymentDeadlinePassedError(booking_id=str(booking_id), payment_deadline=booking.payment_deadline)
            )

        won = await self._compare_and_set(
            booking_id,
            BookingStatus.APPROVED,
            status=BookingStatus.PAID.value,
            confirmed_by=actor,
            confirmed_at=now,
            evidence_review_required=False,
            updated_at=now,
        )
        if not won:
            return await self._lost_race(booking_id, BookingStatus.PAID)

        ticket_number = await self.tickets.next_ticket_number(
            policy.ticket_prefix, now.year, policy.ticket_sequence_width
        )
        await self.db.refresh(booking)
        booking.ticket_number = ticket_number

        amount = booking.total_price_amount or 0
        admin_amount = round(amount * policy.commission_percent / 100)
        payment = Payment(
            booking_id=booking.id,
            reference=booking.payment_reference or f"PAY-{booking.reference_number}",
            amount=amount,
            currency=booking.price_currency,
            commission_percent=policy.commission_percent,
            admin_amount=admin_amount,
            operator_amount=amount - admin_amount,
            confirmed_by=actor,
            paid_at=now,
        )
        self.db.add(payment)

        deal = await self._load_deal(booking.deal_id)
        staged = [
            self.notifications.enqueue(
                booking,
                MessageKind.CONFIRMATION,
                messages.confirmation_message(
                    booking, deal, policy.check_in_lead_minutes, policy.support_phone, policy.brand_name
                ),
            )
        ]
        self.audit.record(
            AuditAction.PAYMENT_CONFIRMED,
            description=f"Payment confirmed for {booking.reference_number}, ticket {ticket_number}",
            target_type="booking",
            target_id=str(booking.id),
            actor=actor,
            details={
                "ticket_number": ticket_number,
                "amount": amount,
                "admin_amount": admin_amount,
                "operator_amount": amount - admin_amount,
            },
        )
        booking = await self._finish(booking, staged)

        metrics_collector.record_booking_transition(BookingStatus.PAID.value)
        logger.info(
            "Payment confirmed",
            extra={
                "booking_id": str(booking.id),
                "reference_number": booking.reference_number,
                "ticket_number": ticket_number,
                "amount": amount
            }
        )
        return booking

    async def _expire(self, booking_id: UUID, now: datetime, actor: Optional[str]) -> tuple[Booking, bool]:
        booking = await self._lock_booking(booking_id)
        overdue = booking.payment_deadline is not None and now > booking.payment_deadline
        if BookingStatus(booking.status) != BookingStatus.APPROVED or not overdue:
            # Not ours to expire; release the guard
            await self.db.rollback()
            return await self._reload(booking_id), False

        won = await self._compare_and_set(
            booking_id,
            BookingStatus.APPROVED,
            status=BookingStatus.EXPIRED.value,
            expired_at=now,
            updated_at=now,
        )
        if not won:
            return await self._lost_race(booking_id, BookingStatus.EXPIRED), False

        seats = booking.requested_seats
        restored = Deal.available_seats + seats
        await self.db.execute(
            update(Deal)
            .where(Deal.id == booking.deal_id)
            .values(
                available_seats=case((restored > Deal.total_seats, Deal.total_seats), else_=restored),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.audit.record(
            AuditAction.BOOKING_EXPIRE,
            description=f"Booking {booking.reference_number} expired unpaid, {seats} seat(s) released",
            target_type="booking",
            target_id=str(booking.id),
            actor=actor,
            details={"payment_deadline": booking.payment_deadline.isoformat(), "seats_released": seats},
        )
        booking = await self._finish(booking, [])

        metrics_collector.record_booking_transition(BookingStatus.EXPIRED.value)
        logger.info(
            "Booking expired",
            extra={"booking_id": str(booking.id), "reference_number": booking.reference_number, "seats_released": seats}
        )
        return booking, True

    async def expire_if_overdue(
        self,
        booking_id: UUID,
        now: Optional[datetime] = None,
        actor: Optional[str] = None,
    ) -> Booking:
        """
        Expire an APPROVED booking whose deadline has passed and return its seats.

        A booking that is not APPROVED, or not yet overdue, is returned as is.
        """
        booking, _ = await self._expire(booking_id, now or utcnow(), actor)
        return booking

    async def expire_overdue_bookings(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> int:
        """Sweep overdue APPROVED bookings; returns how many this run expired."""
        now = now or utcnow()
        candidates = await self.find_overdue_approved_bookings(now, limit or self.config.sweep_batch_size)
        booking_ids = [booking.id for booking in candidates]
        # Release the read transaction before taking per-booking guards
        await self.db.rollback()

        expired = 0
        for booking_id in booking_ids:
            _, changed = await self._expire(booking_id, now, None)
            if changed:
                expired += 1
        if booking_ids:
            logger.info(
                "Overdue booking sweep completed",
                extra={"candidates": len(booking_ids), "expired_count": expired}
            )
        return expired

    async def attach_evidence(
        self,
        booking_id: UUID,
        media_reference: Optional[str],
        content_type: Optional[str] = None,
        raw_text: Optional[str] = None,
        sender: Optional[str] = None,
    ) -> BookingEvidence:
        """
        Record a client artifact against a booking without changing its status.

        An image on an APPROVED booking flags the booking for admin review
        and acknowledges the receipt to the client; payment is still only
        confirmed by an explicit ``confirm_payment``.
        """
        booking = await self._lock_booking(booking_id)
        status = BookingStatus(booking.status)
        now = utcnow()

        evidence = BookingEvidence(
            booking_id=booking.id,
            media_reference=media_reference,
            content_type=content_type,
            raw_text=raw_text,
            sender=sender,
            booking_status_at_receipt=status.value,
            received_at=now,
        )
        self.db.add(evidence)
        self.notifications.record_inbound(booking, sender or booking.client_phone, raw_text, media_reference, now)

        staged = []
        if status == BookingStatus.APPROVED and evidence.is_image:
            booking.evidence_review_required = True
            booking.receipt_uploaded_at = now
            staged.append(
                self.notifications.enqueue(booking, MessageKind.RECEIPT_ACK, messages.receipt_ack_message(booking))
            )

        await self.db.flush()
        self.audit.record(
            AuditAction.EVIDENCE_ATTACHED,
            description=f"Evidence attached to {booking.reference_number}",
            target_type="booking",
            target_id=str(booking.id),
            actor=sender,
            details={
                "evidence_id": str(evidence.id),
                "content_type": content_type,
                "review_required": bool(staged),
            },
        )
        await self._finish(booking, staged)
        await self.db.refresh(evidence)

        logger.info(
            "Evidence attached",
            extra={
                "booking_id": str(booking.id),
                "evidence_id": str(evidence.id),
                "booking_status": status.value,
                "review_required": bool(staged)
            }
        )
        return evidence
