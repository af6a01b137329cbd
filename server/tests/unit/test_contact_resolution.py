"""Unit tests for phone normalisation and inbound contact matching."""

import pytest
from sqlalchemy import update

from emptyleg.core.exceptions import AmbiguousContactError, ContactNotMatchedError
from emptyleg.core.phones import contact_variants, to_e164, to_whatsapp_address
from emptyleg.models.booking import Booking


class TestPhones:

    @pytest.mark.parametrize("raw, expected", [
        ("08012345678", "+2348012345678"),
        ("0801 234 5678", "+2348012345678"),
        ("+234 801 234 5678", "+2348012345678"),
        ("2348012345678", "+2348012345678"),
        ("whatsapp:+2348012345678", "+2348012345678"),
        ("+44 20 7946 0000", "+442079460000"),
    ])
    def test_to_e164(self, raw, expected):
        assert to_e164(raw, "234") == expected

    def test_to_e164_without_digits(self):
        with pytest.raises(ValueError):
            to_e164("n/a", "234")

    def test_whatsapp_address(self):
        assert to_whatsapp_address("08012345678", "234") == "whatsapp:+2348012345678"

    def test_variants_of_international_sender(self):
        variants = contact_variants("whatsapp:+2348012345678", "234")

        assert "+2348012345678" in variants
        assert "2348012345678" in variants
        assert "08012345678" in variants
        assert len(variants) == len(set(variants))

    def test_variants_of_local_sender(self):
        variants = contact_variants("08012345678", "234")

        assert "+2348012345678" in variants
        assert "2348012345678" in variants

    def test_variants_of_empty_sender(self):
        assert contact_variants("whatsapp:", "234") == []


class TestResolveBookingForContact:

    @pytest.mark.asyncio
    async def test_matches_the_approved_booking(self, booking_service, make_deal, make_booking):
        deal = await make_deal()
        await make_booking(deal, phone="08012345678")
        approved = await make_booking(deal, phone="08012345678")
        await booking_service.approve(approved.id, actor="admin-1")

        booking = await booking_service.resolve_booking_for_contact("whatsapp:+2348012345678")

        assert booking.id == approved.id

    @pytest.mark.asyncio
    async def test_matches_numbers_stored_in_other_formats(
        self, test_session, booking_service, make_deal, make_booking
    ):
        booking = await make_booking(await make_deal())
        await booking_service.approve(booking.id, actor="admin-1")
        await test_session.execute(
            update(Booking).where(Booking.id == booking.id).values(client_phone="2348012345678")
        )
        await test_session.commit()

        assert (await booking_service.resolve_booking_for_contact("whatsapp:+2348012345678")).id == booking.id
        assert (await booking_service.resolve_booking_for_contact("08012345678")).id == booking.id

    @pytest.mark.asyncio
    async def test_pending_booking_does_not_match(self, booking_service, make_deal, make_booking):
        await make_booking(await make_deal())

        with pytest.raises(ContactNotMatchedError) as exc_info:
            await booking_service.resolve_booking_for_contact("whatsapp:+2348012345678")

        assert exc_info.value.code == "CONTACT_NOT_MATCHED"

    @pytest.mark.asyncio
    async def test_unknown_number(self, booking_service, make_deal, make_booking):
        booking = await make_booking(await make_deal())
        await booking_service.approve(booking.id, actor="admin-1")

        with pytest.raises(ContactNotMatchedError):
            await booking_service.resolve_booking_for_contact("whatsapp:+447700900000")

    @pytest.mark.asyncio
    async def test_sender_without_digits(self, booking_service):
        with pytest.raises(ContactNotMatchedError):
            await booking_service.resolve_booking_for_contact("whatsapp:")

    @pytest.mark.asyncio
    async def test_two_approved_bookings_are_ambiguous(self, booking_service, make_deal, make_booking):
        deal = await make_deal()
        first = await make_booking(deal, seats=1)
        second = await make_booking(deal, seats=1)
        await booking_service.approve(first.id, actor="admin-1")
        await booking_service.approve(second.id, actor="admin-1")

        with pytest.raises(AmbiguousContactError) as exc_info:
            await booking_service.resolve_booking_for_contact("whatsapp:+2348012345678")

        assert exc_info.value.code == "AMBIGUOUS_CONTACT"
        assert set(exc_info.value.booking_references) == {first.reference_number, second.reference_number}
