from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from cqrs_ddd_odm import (
    DocumentReference,
    InMemoryDocumentStore,
    StoreError,
    TransactionManager,
    TransactionState,
    TransactionStateError,
)

CUSTOMER = DocumentReference.root("customers", "c1")


@pytest.fixture
def manager(store: InMemoryDocumentStore) -> TransactionManager:
    return TransactionManager(store)


@pytest.mark.asyncio
class TestStateMachine:
    async def test_idle_active_committed_idle(
        self, manager: TransactionManager, store: InMemoryDocumentStore
    ) -> None:
        assert manager.state is TransactionState.IDLE

        tx = manager.begin_transaction()
        assert manager.state is TransactionState.ACTIVE
        assert manager.current_transaction is tx
        tx.batch.create(CUSTOMER, {"name": "Ann"})
        assert store.document(CUSTOMER.path) is None

        await manager.commit_transaction()

        assert tx.state is TransactionState.COMMITTED
        assert manager.state is TransactionState.IDLE
        assert manager.current_transaction is None
        assert store.document(CUSTOMER.path) == {"name": "Ann"}

    async def test_rollback_discards_staged_writes(
        self, manager: TransactionManager, store: InMemoryDocumentStore
    ) -> None:
        tx = manager.begin_transaction()
        tx.batch.create(CUSTOMER, {"name": "Ann"})

        await manager.rollback_transaction()

        assert tx.state is TransactionState.ROLLED_BACK
        assert manager.current_transaction is None
        assert store.writes == []

    async def test_only_one_active_transaction(self, manager: TransactionManager) -> None:
        manager.begin_transaction()
        with pytest.raises(TransactionStateError, match="already active"):
            manager.begin_transaction()

    async def test_commit_without_transaction(self, manager: TransactionManager) -> None:
        with pytest.raises(TransactionStateError, match="No active transaction"):
            await manager.commit_transaction()

    async def test_rollback_without_transaction(self, manager: TransactionManager) -> None:
        with pytest.raises(TransactionStateError):
            await manager.rollback_transaction()

    async def test_finished_transaction_cannot_commit_again(
        self, manager: TransactionManager
    ) -> None:
        tx = manager.begin_transaction()
        await tx.commit()
        with pytest.raises(TransactionStateError, match="committed"):
            await tx.commit()

    async def test_failed_commit_still_clears_slot(
        self, manager: TransactionManager, store: InMemoryDocumentStore
    ) -> None:
        tx = manager.begin_transaction()
        tx.batch.create(CUSTOMER, {"name": "Ann"})
        store.fail_next(StoreError("commit refused"))

        with pytest.raises(StoreError, match="commit refused"):
            await manager.commit_transaction()

        assert tx.state is TransactionState.ROLLED_BACK
        assert manager.current_transaction is None
        assert store.paths == []
        manager.begin_transaction()

    async def test_reset_state_forgets_active_transaction(
        self, manager: TransactionManager
    ) -> None:
        tx = manager.begin_transaction()
        manager.reset_state()
        assert manager.state is TransactionState.IDLE
        assert not tx.is_active


@pytest.mark.asyncio
class TestContextManager:
    async def test_commits_and_runs_hooks_on_success(
        self, manager: TransactionManager, store: InMemoryDocumentStore
    ) -> None:
        hook = AsyncMock()
        async with manager.begin_transaction() as tx:
            tx.on_commit(hook)
            tx.batch.create(CUSTOMER, {"name": "Ann"})
            hook.assert_not_awaited()

        hook.assert_awaited_once()
        assert store.paths == [CUSTOMER.path]

    async def test_rolls_back_and_drops_hooks_on_error(
        self, manager: TransactionManager, store: InMemoryDocumentStore
    ) -> None:
        hook = AsyncMock()
        with pytest.raises(RuntimeError):
            async with manager.begin_transaction() as tx:
                tx.on_commit(hook)
                tx.batch.create(CUSTOMER, {"name": "Ann"})
                raise RuntimeError("boom")

        hook.assert_not_awaited()
        assert store.paths == []
        assert manager.current_transaction is None

    async def test_failing_hook_does_not_undo_commit(
        self, manager: TransactionManager, store: InMemoryDocumentStore
    ) -> None:
        async with manager.begin_transaction() as tx:
            tx.on_commit(AsyncMock(side_effect=RuntimeError("listener down")))
            tx.batch.create(CUSTOMER, {})

        assert store.paths == [CUSTOMER.path]

    async def test_manual_commit_settles_hooks_once(
        self, manager: TransactionManager
    ) -> None:
        hook = AsyncMock()
        tx = manager.begin_transaction()
        tx.on_commit(hook)

        await manager.commit_transaction()
        await tx.trigger_commit_hooks()

        hook.assert_awaited_once()

    async def test_failed_commit_drops_hooks(
        self, manager: TransactionManager, store: InMemoryDocumentStore
    ) -> None:
        hook = AsyncMock()
        tx = manager.begin_transaction()
        tx.on_commit(hook)
        store.fail_next(StoreError("disk full"))

        with pytest.raises(StoreError):
            await tx.commit()
        await tx.trigger_commit_hooks()

        hook.assert_not_awaited()
        assert tx.state is TransactionState.ROLLED_BACK
