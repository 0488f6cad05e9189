from __future__ import annotations

import pytest

from cqrs_ddd_odm import DocumentReference, GeoPoint


def test_root_reference() -> None:
    ref = DocumentReference.root("orders", 42)
    assert ref.path == "orders/42"
    assert ref.id == "42"
    assert ref.collection == "orders"
    assert ref.depth == 0
    assert ref.parent is None


def test_child_reference_appends_segment() -> None:
    order = DocumentReference.root("orders", "o1")
    line = order.child("orderlines", "l1")
    assert line.path == "orders/o1/orderlines/l1"
    assert line.depth == 1
    assert line.parent == order
    assert line.collection_path == "orders/o1/orderlines"
    assert line.is_child_of(order, "orderlines")
    assert not line.is_child_of(order, "notes")


def test_parse_round_trips_path() -> None:
    path = "orders/o1/orderlines/l1/linenotes/n1"
    assert DocumentReference.parse(path).path == path
    assert DocumentReference.parse(f"/{path}/").depth == 2


@pytest.mark.parametrize("path", ["orders", "orders/o1/orderlines", ""])
def test_parse_rejects_collection_paths(path: str) -> None:
    with pytest.raises(ValueError):
        DocumentReference.parse(path)


def test_segments_cannot_contain_slashes() -> None:
    with pytest.raises(ValueError, match="Invalid path segment"):
        DocumentReference.root("orders", "a/b")


def test_geo_point_validates_range() -> None:
    assert GeoPoint(40.4, -3.7).latitude == 40.4
    with pytest.raises(ValueError, match="Latitude"):
        GeoPoint(91.0, 0.0)
    with pytest.raises(ValueError, match="Longitude"):
        GeoPoint(0.0, 181.0)
