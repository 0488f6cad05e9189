from __future__ import annotations

from uuid import UUID

import pytest

from cqrs_ddd_odm import (
    ChangeTracker,
    MissingPrimaryKeyError,
    ModelMetadata,
    PathResolver,
    UntrackedParentError,
)
from cqrs_ddd_odm.core import is_unset_key, key_to_document_id
from conftest import SequentialIds
from sample_domain import LineNote, Order, OrderLine, OrderStatus


@pytest.fixture
def resolver(model: ModelMetadata, tracker: ChangeTracker) -> PathResolver:
    return PathResolver(model, tracker=tracker, id_generator=SequentialIds())


@pytest.mark.parametrize(
    "value", [None, "", 0, UUID(int=0)], ids=["none", "empty", "zero", "nil-uuid"]
)
def test_unset_keys(value: object) -> None:
    assert is_unset_key(value)


@pytest.mark.parametrize("value", ["a", 7, False, UUID(int=1)])
def test_set_keys(value: object) -> None:
    assert not is_unset_key(value)


def test_enum_keys_use_member_name() -> None:
    assert key_to_document_id(OrderStatus.SHIPPED) == "SHIPPED"
    assert key_to_document_id(12) == "12"


def test_root_entity_address(resolver: PathResolver, tracker: ChangeTracker) -> None:
    entry = tracker.add(Order(id="o1"))
    assert resolver.resolve(entry).path == "orders/o1"


def test_nested_addresses_follow_ownership(
    resolver: PathResolver, tracker: ChangeTracker
) -> None:
    note = LineNote(id="n1")
    line = OrderLine(id="l1", notes=[note])
    order = Order(id="o1", lines=[line])
    entries = [tracker.add(note), tracker.add(line), tracker.add(order)]

    assert resolver.resolve(entries[0], entries).path == (
        "orders/o1/orderlines/l1/linenotes/n1"
    )
    assert resolver.resolve(entries[1], entries).depth == 1


def test_parent_found_in_tracked_set(
    resolver: PathResolver, tracker: ChangeTracker
) -> None:
    line = OrderLine(id="l1")
    tracker.attach(Order(id="o1", lines=[line]))
    entry = tracker.add(line)

    assert resolver.resolve(entry, [entry]).path == "orders/o1/orderlines/l1"


def test_untracked_parent_is_fatal(resolver: PathResolver, tracker: ChangeTracker) -> None:
    entry = tracker.add(OrderLine(id="l1"))
    with pytest.raises(UntrackedParentError, match="OrderLine") as exc_info:
        resolver.resolve(entry, [entry])
    assert exc_info.value.entity_id == "l1"


def test_generated_id_is_stable(resolver: PathResolver, tracker: ChangeTracker) -> None:
    line = OrderLine()
    order = Order(lines=[line])
    entries = [tracker.add(order), tracker.add(line)]

    assert resolver.resolve(entries[0], entries).path == "orders/gen-1"
    first = resolver.resolve(entries[1], entries)
    second = resolver.resolve(entries[1], entries)
    assert first == second
    assert first.path == "orders/gen-1/orderlines/gen-2"


def test_unset_key_outside_insert_is_fatal(
    resolver: PathResolver, tracker: ChangeTracker
) -> None:
    entry = tracker.update(Order())
    with pytest.raises(MissingPrimaryKeyError):
        resolver.resolve(entry)
