from __future__ import annotations

import pytest

from cqrs_ddd_odm import (
    DocumentReference,
    DocumentSession,
    EntityState,
    InMemoryDocumentStore,
    StoreError,
    TransactionState,
)
from sample_domain import Customer, Order, OrderLine, OrderStatus


@pytest.mark.asyncio
class TestSaveAndLoad:
    async def test_nothing_pending_writes_nothing(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        assert await session.save_changes() == 0
        assert store.writes == []

    async def test_saved_entity_can_be_loaded(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        entry = session.add(Customer(id="c1", name="Ann", email="ann@example.com"))

        assert await session.save_changes() == 1
        assert entry.state is EntityState.UNCHANGED

        loaded = await DocumentSession(session.model, store).get(Customer, "c1")
        assert loaded is not None
        assert (loaded.id, loaded.name, loaded.email) == ("c1", "Ann", "ann@example.com")

    async def test_missing_entity_is_none(self, session: DocumentSession) -> None:
        assert await session.get(Customer, "nobody") is None

    async def test_subcollection_entity_loaded_through_parent(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        line = OrderLine(id="l1", product="pen", quantity=3)
        order = Order(id="o1", number="A-1", status=OrderStatus.SHIPPED, lines=[line])
        session.add(order)
        session.add(line)
        await session.save_changes()

        reader = DocumentSession(session.model, store)
        loaded_order = await reader.get(Order, "o1")
        loaded_line = await reader.get(
            OrderLine, "l1", parent=DocumentReference.root("orders", "o1")
        )

        assert loaded_order is not None
        assert (loaded_order.number, loaded_order.status) == ("A-1", OrderStatus.SHIPPED)
        assert loaded_line is not None
        assert (loaded_line.product, loaded_line.quantity) == ("pen", 3)

    async def test_loaded_entity_is_tracked_for_partial_update(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        session.add(Customer(id="c1", name="Ann", email="ann@example.com"))
        await session.save_changes()

        reader = DocumentSession(session.model, store)
        customer = await reader.get(Customer, "c1")
        assert customer is not None
        customer.name = "Bo"
        reader.update(customer, "name")
        await reader.save_changes()

        last = store.writes[-1]
        assert (last.operation, last.path) == ("merge", "customers/c1")
        assert set(last.data or {}) == {"name", "_updatedAt"}
        assert store.document("customers/c1")["email"] == "ann@example.com"

    async def test_removed_entity_is_deleted(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        customer = Customer(id="c1")
        session.add(customer)
        await session.save_changes()

        session.remove(customer)
        await session.save_changes()

        assert store.paths == []
        assert session.tracker.entry(customer) is None


@pytest.mark.asyncio
class TestTransactions:
    async def test_writes_staged_until_commit(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        async with session.transaction():
            session.add(Customer(id="c1"))
            await session.save_changes()
            assert store.writes == []
            assert session.transactions.state is TransactionState.ACTIVE

        assert store.paths == ["customers/c1"]
        assert session.transactions.state is TransactionState.IDLE

    async def test_error_inside_transaction_writes_nothing(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        with pytest.raises(RuntimeError):
            async with session.transaction():
                session.add(Customer(id="c1"))
                await session.save_changes()
                raise RuntimeError("abort")

        assert store.writes == []
        assert session.transactions.current_transaction is None

    async def test_rolled_back_entries_stay_pending_and_save_later(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        with pytest.raises(RuntimeError):
            async with session.transaction():
                session.add(Customer(id="c1"))
                await session.save_changes()
                raise RuntimeError("abort")

        assert [e.entity.id for e in session.tracker.pending()] == ["c1"]

        assert await session.save_changes() == 1
        assert store.paths == ["customers/c1"]
        assert session.tracker.pending() == []

    async def test_entries_accepted_only_after_commit(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        entry = session.add(Customer(id="c1"))
        async with session.transaction():
            await session.save_changes()
            assert entry.state is EntityState.ADDED

        assert entry.state is EntityState.UNCHANGED
        assert store.paths == ["customers/c1"]

    async def test_manual_commit_accepts_staged_entries(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        entry = session.add(Customer(id="c1"))
        session.transaction()
        await session.save_changes()

        await session.transactions.commit_transaction()

        assert entry.state is EntityState.UNCHANGED
        assert store.paths == ["customers/c1"]

    async def test_failed_commit_leaves_entries_pending(
        self, session: DocumentSession, store: InMemoryDocumentStore
    ) -> None:
        entry = session.add(Customer(id="c1"))
        store.fail_next(StoreError("disk full"))

        with pytest.raises(StoreError):
            async with session.transaction():
                await session.save_changes()

        assert entry.state is EntityState.ADDED
        assert store.paths == []
