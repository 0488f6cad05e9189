from __future__ import annotations

import pytest

from cqrs_ddd_odm import (
    ChangeTracker,
    DocumentExistsError,
    DocumentReference,
    EntitySerializer,
    InMemoryDocumentStore,
    ModelMetadata,
)
from cqrs_ddd_odm.core import AssociationSynchronizer, JoinOperation, StoreWriter
from cqrs_ddd_odm.core.execution import ExecutionStrategy
from sample_domain import Pizza, Topping

PIZZA = DocumentReference.root("pizzas", "p1")


@pytest.fixture
def synchronizer(model: ModelMetadata) -> AssociationSynchronizer:
    return AssociationSynchronizer(model, EntitySerializer(model))


def test_insert_diffs_against_empty(
    synchronizer: AssociationSynchronizer, tracker: ChangeTracker
) -> None:
    pizza = Pizza(id="p1", toppings=[Topping(id="t1"), Topping(id="t2")])
    writes = synchronizer.plan(tracker.add(pizza), PIZZA)

    assert [(w.operation, w.reference.path) for w in writes] == [
        (JoinOperation.CREATE, "pizzastoppings/p1_t1"),
        (JoinOperation.CREATE, "pizzastoppings/p1_t2"),
    ]
    assert writes[0].principal == PIZZA
    assert writes[0].target == DocumentReference.root("toppings", "t1")
    assert (writes[0].principal_field, writes[0].target_field) == (
        "pizza_id",
        "topping_id",
    )


def test_update_emits_one_create_and_one_delete(
    synchronizer: AssociationSynchronizer, tracker: ChangeTracker
) -> None:
    a, b, c = Topping(id="A"), Topping(id="B"), Topping(id="C")
    pizza = Pizza(id="p1", toppings=[a, b])
    tracker.attach(pizza)
    pizza.toppings = [b, c]
    entry = tracker.update(pizza, "toppings")

    writes = synchronizer.plan(entry, PIZZA)

    assert [(w.operation, w.reference.id) for w in writes] == [
        (JoinOperation.CREATE, "p1_C"),
        (JoinOperation.DELETE, "p1_A"),
    ]


def test_unmodified_navigation_is_not_diffed(
    synchronizer: AssociationSynchronizer, tracker: ChangeTracker
) -> None:
    pizza = Pizza(id="p1", toppings=[Topping(id="A")])
    tracker.attach(pizza)
    pizza.toppings = []
    pizza.name = "Plain"
    entry = tracker.update(pizza, "name")

    assert synchronizer.plan(entry, PIZZA) == []


def test_unkeyed_targets_are_ignored(
    synchronizer: AssociationSynchronizer, tracker: ChangeTracker
) -> None:
    pizza = Pizza(id="p1", toppings=[Topping(), Topping(id="t1"), Topping(id="t1")])
    writes = synchronizer.plan(tracker.add(pizza), PIZZA)
    assert [w.reference.id for w in writes] == ["p1_t1"]


@pytest.mark.asyncio
async def test_synchronize_writes_join_documents(
    synchronizer: AssociationSynchronizer, tracker: ChangeTracker
) -> None:
    store = InMemoryDocumentStore()
    await store.set(DocumentReference.root("pizzastoppings", "p1_A"), {"stale": True})
    a, b = Topping(id="A"), Topping(id="B")
    pizza = Pizza(id="p1", toppings=[a])
    tracker.attach(pizza)
    pizza.toppings = [b]
    entry = tracker.update(pizza, "toppings")

    issued = await synchronizer.synchronize(
        entry, PIZZA, StoreWriter(store, ExecutionStrategy())
    )

    assert issued == 2
    assert store.paths == ["pizzastoppings/p1_B"]
    joined = store.document("pizzastoppings/p1_B")
    assert joined is not None
    assert joined["pizza_id"] == PIZZA
    assert joined["topping_id"] == DocumentReference.root("toppings", "B")
    assert joined["_createdAt"] == joined["_updatedAt"]


@pytest.mark.asyncio
async def test_join_document_is_created_not_overwritten(
    synchronizer: AssociationSynchronizer, tracker: ChangeTracker
) -> None:
    store = InMemoryDocumentStore()
    existing = DocumentReference.root("pizzastoppings", "p1_A")
    await store.set(existing, {"note": "hand-made"})
    store.writes.clear()
    entry = tracker.add(Pizza(id="p1", toppings=[Topping(id="A")]))

    with pytest.raises(DocumentExistsError, match="pizzastoppings/p1_A"):
        await synchronizer.synchronize(
            entry, PIZZA, StoreWriter(store, ExecutionStrategy())
        )

    assert store.document("pizzastoppings/p1_A") == {"note": "hand-made"}
    assert store.writes == []
