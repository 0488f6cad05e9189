"""TransactionManager: one write batch per unit of work.

State machine::

    Idle -> Active -> (Committed | RolledBack) -> Idle

Only one transaction may be active at a time. Commit and rollback always
clear the active slot, even when the store call fails.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import TYPE_CHECKING

from ..exceptions import TransactionStateError
from .unit_of_work import UnitOfWork

if TYPE_CHECKING:
    from ..store.ports import DocumentStore, WriteBatch

logger = logging.getLogger("cqrs_ddd.odm.transaction")


class TransactionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction(UnitOfWork):
    """An open write batch. Writes staged on :attr:`batch` apply on commit."""

    def __init__(self, manager: TransactionManager, batch: WriteBatch) -> None:
        super().__init__()
        self.transaction_id = uuid.uuid4()
        self.batch = batch
        self.state = TransactionState.ACTIVE
        self._manager = manager

    def __repr__(self) -> str:
        return f"Transaction({self.transaction_id}, {self.state.value})"

    @property
    def is_active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    def _ensure_active(self, action: str) -> None:
        if not self.is_active:
            raise TransactionStateError(
                f"Cannot {action} transaction {self.transaction_id}: "
                f"it is {self.state.value}"
            )

    async def commit(self) -> None:
        self._ensure_active("commit")
        try:
            await self.batch.commit()
            self.state = TransactionState.COMMITTED
            logger.debug("Committed transaction %s", self.transaction_id)
        except Exception:
            self.state = TransactionState.ROLLED_BACK
            self.discard_commit_hooks()
            raise
        finally:
            self._manager._release(self)
        await self.trigger_commit_hooks()

    async def rollback(self) -> None:
        """Discard the staged writes; nothing has reached the store yet."""
        self._ensure_active("roll back")
        self.state = TransactionState.ROLLED_BACK
        self._manager._release(self)
        self.discard_commit_hooks()
        logger.debug("Rolled back transaction %s", self.transaction_id)


class TransactionManager:
    """Hands out at most one active :class:`Transaction` per unit of work."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._current: Transaction | None = None

    @property
    def current_transaction(self) -> Transaction | None:
        return self._current

    @property
    def state(self) -> TransactionState:
        return TransactionState.ACTIVE if self._current is not None else TransactionState.IDLE

    def begin_transaction(self) -> Transaction:
        if self._current is not None:
            raise TransactionStateError(
                f"Transaction {self._current.transaction_id} is already active"
            )
        self._current = Transaction(self, self._store.batch())
        logger.debug("Began transaction %s", self._current.transaction_id)
        return self._current

    async def commit_transaction(self) -> None:
        await self._require_current("commit").commit()

    async def rollback_transaction(self) -> None:
        await self._require_current("roll back").rollback()

    def reset_state(self) -> None:
        """Forget the active transaction without touching the store."""
        if self._current is not None:
            self._current.state = TransactionState.ROLLED_BACK
        self._current = None

    def _require_current(self, action: str) -> Transaction:
        if self._current is None:
            raise TransactionStateError(f"No active transaction to {action}")
        return self._current

    def _release(self, transaction: Transaction) -> None:
        if self._current is transaction:
            self._current = None
