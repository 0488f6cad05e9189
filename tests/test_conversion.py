from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest
from bson import Decimal128, Timestamp

from cqrs_ddd_odm import DocumentReference, GeoPoint, GeoPointMappingError, ValueConverter
from cqrs_ddd_odm.conversion import from_ticks, to_ticks
from sample_domain import Address, Location, OrderStatus, Ubicacion


class MutablePoint:
    lat: float = 0.0
    lng: float = 0.0


class NotAPoint:
    x: float = 0.0
    y: float = 0.0


@pytest.fixture
def converter() -> ValueConverter:
    return ValueConverter()


class TestOutbound:
    def test_decimal_becomes_float(self, converter: ValueConverter) -> None:
        assert converter.to_store(Decimal("12.5")) == 12.5

    def test_enum_becomes_name(self, converter: ValueConverter) -> None:
        assert converter.to_store(OrderStatus.SHIPPED) == "SHIPPED"

    def test_raw_int_with_enum_hint_becomes_name(self, converter: ValueConverter) -> None:
        assert converter.to_store(2, OrderStatus) == "SHIPPED"

    def test_bool_is_not_treated_as_enum_value(self, converter: ValueConverter) -> None:
        assert converter.to_store(True, OrderStatus) is True

    def test_datetime_normalized_to_utc(self, converter: ValueConverter) -> None:
        local = datetime(2024, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        stored = converter.to_store(local)
        assert stored == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert stored.tzinfo == timezone.utc

    def test_date_becomes_utc_midnight(self, converter: ValueConverter) -> None:
        assert converter.to_store(date(2024, 1, 2)) == datetime(
            2024, 1, 2, tzinfo=timezone.utc
        )

    def test_duration_becomes_ticks(self, converter: ValueConverter) -> None:
        assert converter.to_store(timedelta(seconds=1)) == 10_000_000

    def test_uuid_becomes_string(self, converter: ValueConverter) -> None:
        value = UUID("12345678-1234-5678-1234-567812345678")
        assert converter.to_store(value) == str(value)

    def test_collections_convert_elementwise(self, converter: ValueConverter) -> None:
        assert converter.to_store([Decimal("1.5"), None, OrderStatus.PENDING]) == [
            1.5,
            "PENDING",
        ]
        assert converter.to_store({1: Decimal("2")}) == {"1": 2.0}


class TestInbound:
    def test_enum_by_name_case_insensitive(self, converter: ValueConverter) -> None:
        assert converter.from_store("shipped", OrderStatus) is OrderStatus.SHIPPED

    def test_enum_by_value(self, converter: ValueConverter) -> None:
        assert converter.from_store(3, OrderStatus) is OrderStatus.CANCELLED

    def test_numeric_string_to_int(self, converter: ValueConverter) -> None:
        assert converter.from_store("42", int) == 42

    def test_integral_float_narrows_to_int(self, converter: ValueConverter) -> None:
        assert converter.from_store(3.0, int) == 3

    def test_fractional_float_is_not_an_int(self, converter: ValueConverter) -> None:
        with pytest.raises(TypeError):
            converter.from_store(3.5, int)

    def test_pointer_projected_on_scalar_is_none(self, converter: ValueConverter) -> None:
        ref = DocumentReference.root("customers", "c1")
        assert converter.from_store(ref, str) is None
        assert converter.from_store(ref, DocumentReference) is ref

    def test_naive_datetime_assumed_utc(self, converter: ValueConverter) -> None:
        value = converter.from_store(datetime(2024, 1, 1, 8, 30), datetime)
        assert value.tzinfo == timezone.utc

    def test_store_timestamp_to_datetime(self, converter: ValueConverter) -> None:
        value = converter.from_store(Timestamp(1_700_000_000, 1), datetime)
        assert value == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)

    def test_decimal128_to_decimal(self, converter: ValueConverter) -> None:
        assert converter.from_store(Decimal128("1.25"), Decimal) == Decimal("1.25")

    def test_float_to_decimal_uses_shortest_repr(self, converter: ValueConverter) -> None:
        assert converter.from_store(0.1, Decimal) == Decimal("0.1")

    def test_ticks_to_duration(self, converter: ValueConverter) -> None:
        assert converter.from_store(15_000_000, timedelta) == timedelta(seconds=1.5)
        assert from_ticks(to_ticks(timedelta(milliseconds=7))) == timedelta(
            milliseconds=7
        )

    def test_optional_and_collection_targets(self, converter: ValueConverter) -> None:
        assert converter.from_store(None, int | None) is None
        assert converter.from_store(["1", "2"], list[int]) == [1, 2]
        assert converter.from_store(["a", "a"], set[str]) == {"a"}

    def test_map_converts_to_complex_type(self, converter: ValueConverter) -> None:
        address = converter.from_store({"Street": "Main 1", "city": "Madrid"}, Address)
        assert address == Address(street="Main 1", city="Madrid")

    def test_incompatible_value_raises(self, converter: ValueConverter) -> None:
        with pytest.raises(TypeError):
            converter.from_store(["x"], bool)


class TestGeoPoints:
    def test_constructor_with_english_names(self, converter: ValueConverter) -> None:
        value = converter.from_store(GeoPoint(40.4, -3.7), Location)
        assert value == Location(latitude=40.4, longitude=-3.7)

    def test_constructor_with_spanish_names(self, converter: ValueConverter) -> None:
        value = converter.to_geo_type(GeoPoint(19.4, -99.1), Ubicacion)
        assert value == Ubicacion(latitud=19.4, longitud=-99.1)

    def test_setter_fallback(self, converter: ValueConverter) -> None:
        value = converter.to_geo_type(GeoPoint(1.5, 2.5), MutablePoint)
        assert (value.lat, value.lng) == (1.5, 2.5)

    def test_type_without_coordinates_is_a_configuration_error(
        self, converter: ValueConverter
    ) -> None:
        with pytest.raises(GeoPointMappingError):
            converter.to_geo_type(GeoPoint(0.0, 0.0), NotAPoint)
