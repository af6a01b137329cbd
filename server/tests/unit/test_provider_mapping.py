"""Unit tests for InstaCharter availability mapping."""

from datetime import datetime

import pytest

from emptyleg.models.deal import AircraftCategory, PriceType
from emptyleg.providers.base import MappingError
from emptyleg.providers.instacharter import (
    map_aircraft_category,
    map_availability,
    parse_local_time_as_utc,
    parse_price,
    select_aircraft_image,
)

from conftest import availability_item


class TestParsePrice:

    @pytest.mark.parametrize("raw, expected", [
        ("$26K", 26_000.0),
        ("1.2M", 1_200_000.0),
        ("230000", 230_000.0),
        ("$ 12,500", 12_500.0),
        ("€3.5k", 3_500.0),
        (4200, 4200.0),
    ])
    def test_marketplace_formats(self, raw, expected):
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "$", "on request", "K", "Infinity", "nan", "1e400", "$1e400K", float("inf")])
    def test_unreadable_prices_are_none(self, raw):
        assert parse_price(raw) is None


class TestParseLocalTime:

    def test_keeps_wall_clock_time(self):
        assert parse_local_time_as_utc("2026-06-14T10:00:00") == datetime(2026, 6, 14, 10, 0, 0)

    def test_ignores_offset_suffix(self):
        # The listing time is what the operator advertised, offsets are not applied
        assert parse_local_time_as_utc("2026-06-14T10:30:00+01:00") == datetime(2026, 6, 14, 10, 30, 0)

    def test_date_only(self):
        assert parse_local_time_as_utc("2026-06-14") == datetime(2026, 6, 14)

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_local_time_as_utc("next tuesday")


def test_aircraft_category_mapping():
    assert map_aircraft_category("Light Jet") == AircraftCategory.LIGHT_JET
    assert map_aircraft_category("Super Midsize Jet") == AircraftCategory.SUPER_MIDSIZE_JET
    assert map_aircraft_category("Midsize Jet") == AircraftCategory.MIDSIZE_JET
    assert map_aircraft_category("Ultra Long Range") == AircraftCategory.ULTRA_LONG_RANGE
    assert map_aircraft_category("Turbo Prop") == AircraftCategory.TURBOPROP
    assert map_aircraft_category("Single Engine Propeller") == AircraftCategory.TURBOPROP
    assert map_aircraft_category("Helicopter") == AircraftCategory.HELICOPTER
    assert map_aircraft_category(None) is None
    assert map_aircraft_category("Airship") is None


class TestMapAvailability:

    def test_maps_complete_item(self):
        item = availability_item(4412, seats=6, price="$26K", departs=datetime(2026, 6, 14, 10, 0))

        mapped = map_availability(item, currency="USD")

        assert mapped.external_id == "4412"
        assert mapped.origin_icao == "DNMM"
        assert mapped.origin_city == "Lagos"
        assert mapped.destination_icao == "DNAA"
        assert mapped.departure_at == datetime(2026, 6, 14, 10, 0)
        assert mapped.total_seats == 6
        assert mapped.price_type == PriceType.FIXED
        assert mapped.price_amount == 2_600_000
        assert mapped.aircraft_category == AircraftCategory.MIDSIZE_JET
        assert mapped.operator_name == "Skyline Aviation"
        assert mapped.slug_tag == "ic-4412"

    def test_missing_price_is_contact_pricing(self):
        mapped = map_availability(availability_item(7, price=None))

        assert mapped.price_type == PriceType.CONTACT
        assert mapped.price_amount is None

    @pytest.mark.parametrize("price", ["Infinity", "-inf", "nan", "1e400"])
    def test_non_finite_price_is_contact_pricing(self, price):
        mapped = map_availability(availability_item(7, price=price))

        assert mapped.price_type == PriceType.CONTACT
        assert mapped.price_amount is None

    def test_lowercase_icao_is_normalised(self):
        mapped = map_availability(availability_item(8, from_icao="dnmm", to_icao="dgaa"))

        assert mapped.origin_icao == "DNMM"
        assert mapped.destination_icao == "DGAA"

    def test_missing_origin_raises_mapping_error(self):
        item = availability_item(9)
        del item["from"]

        with pytest.raises(MappingError) as exc_info:
            map_availability(item)

        assert exc_info.value.external_id == "9"
        assert "from" in exc_info.value.message

    def test_zero_seats_raises_mapping_error(self):
        with pytest.raises(MappingError):
            map_availability(availability_item(10, seats=0))

    def test_unparseable_departure_raises_mapping_error(self):
        item = availability_item(11)
        item["from"]["dateFrom"] = "soon"

        with pytest.raises(MappingError) as exc_info:
            map_availability(item)

        assert "soon" in str(exc_info.value)

    def test_item_without_id(self):
        item = availability_item(12)
        del item["id"]

        with pytest.raises(MappingError) as exc_info:
            map_availability(item)

        assert exc_info.value.external_id is None


class TestSelectAircraftImage:

    payload = {
        "success": True,
        "data": {
            "base": [
                {
                    "aircraftCategory": "Light Jet",
                    "aircraftDetails": [{"aircraftName": "Phenom 300", "image": "https://img.test/phenom.jpg"}],
                },
                {
                    "aircraftCategory": "Midsize Jet",
                    "aircraftDetails": [
                        {"aircraftName": "Hawker 800XP", "image": "https://img.test/hawker.jpg"},
                        {"aircraftName": "Citation XLS+", "image": "https://img.test/xls.jpg"},
                    ],
                },
            ]
        },
    }

    def test_exact_name_match(self):
        assert select_aircraft_image(self.payload, "Citation XLS+", None) == "https://img.test/xls.jpg"

    def test_category_match(self):
        assert select_aircraft_image(self.payload, "Learjet 60", "Midsize Jet") == "https://img.test/hawker.jpg"

    def test_falls_back_to_first_image(self):
        assert select_aircraft_image(self.payload, "Gulfstream G650", None) == "https://img.test/phenom.jpg"

    def test_unsuccessful_payload(self):
        assert select_aircraft_image({"success": False}, "Citation XLS+", None) is None

    @pytest.mark.parametrize("data", [
        [{"base": []}],
        {"base": {"aircraftDetails": []}},
        {"base": ["Citation XLS+", None]},
        {"base": [{"aircraftDetails": "https://img.test/xls.jpg"}]},
        {"base": [{"aircraftDetails": [None, 7]}]},
        "unavailable",
    ])
    def test_unexpected_shapes_give_no_image(self, data):
        assert select_aircraft_image({"success": True, "data": data}, "Citation XLS+", "Midsize Jet") is None

    def test_malformed_groups_are_skipped(self):
        payload = {
            "success": True,
            "data": {"base": ["junk", {"aircraftDetails": [{"aircraftName": "Citation XLS+", "image": "https://img.test/xls.jpg"}]}]},
        }

        assert select_aircraft_image(payload, "Citation XLS+", None) == "https://img.test/xls.jpg"
