"""DocumentSession: tracks entities and saves them as one unit of work."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from .core.orchestrator import ChangeSetOrchestrator
from .core.paths import key_to_document_id
from .core.transaction import TransactionManager
from .options import OdmOptions
from .references import DocumentReference
from .tracking import ChangeTracker

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .core.deserializer import RelatedEntities
    from .core.execution import ExecutionStrategy
    from .core.orchestrator import CancellationSignal
    from .core.transaction import Transaction
    from .ids import IIDGenerator
    from .metadata import ModelMetadata
    from .store.ports import DocumentStore
    from .tracking import ChangeEntry

logger = logging.getLogger("cqrs_ddd.odm.session")

T = TypeVar("T")


class DocumentSession:
    """
    Entry point for reading and writing mapped entities.

    Example:
        ```python
        session = DocumentSession(model, store)
        session.add(order)
        async with session.transaction():
            await session.save_changes()
        ```

    Inside a transaction :meth:`save_changes` only stages writes; they reach
    the store when the transaction commits. The staged entries are accepted
    on commit and stay pending after a rollback.
    """

    def __init__(
        self,
        model: ModelMetadata,
        store: DocumentStore,
        *,
        options: OdmOptions | None = None,
        execution_strategy: ExecutionStrategy | None = None,
        id_generator: IIDGenerator | None = None,
    ) -> None:
        self.model = model
        self.store = store
        self.tracker = ChangeTracker(model)
        self.transactions = TransactionManager(store)
        self.orchestrator = ChangeSetOrchestrator(
            model,
            store,
            tracker=self.tracker,
            options=options or OdmOptions(),
            execution_strategy=execution_strategy,
            transaction_manager=self.transactions,
            id_generator=id_generator,
        )

    def add(self, entity: Any) -> ChangeEntry:
        return self.tracker.add(entity)

    def attach(self, entity: Any) -> ChangeEntry:
        return self.tracker.attach(entity)

    def update(self, entity: Any, *modified: str) -> ChangeEntry:
        """Mark ``entity`` modified; without names the whole document is rewritten."""
        return self.tracker.update(entity, *modified)

    def remove(self, entity: Any) -> ChangeEntry:
        return self.tracker.remove(entity)

    async def save_changes(self, cancellation: CancellationSignal | None = None) -> int:
        entries = self.tracker.pending()
        if not entries:
            return 0
        written = await self.orchestrator.apply_changes(entries, cancellation)
        transaction = self.transactions.current_transaction
        if transaction is not None and transaction.is_active:

            async def accept() -> None:
                self.tracker.accept_changes(entries)

            transaction.on_commit(accept)
            logger.debug("Staged %d entities until commit", written)
            return written
        self.tracker.accept_changes(entries)
        logger.debug("Saved %d entities", written)
        return written

    async def get(
        self,
        cls: type[T],
        key: Any,
        related: RelatedEntities | Mapping[str, Any] | None = None,
        *,
        parent: DocumentReference | None = None,
    ) -> T | None:
        """Load and attach the entity stored under ``key``.

        Pass ``parent`` for entities living in a subcollection.
        """
        descriptor = self.model.get_entity_type(cls)
        document_id = key_to_document_id(key)
        if parent is None:
            reference = DocumentReference.root(descriptor.collection_name, document_id)
        else:
            reference = parent.child(descriptor.collection_name, document_id)
        snapshot = await self.store.get(reference)
        if snapshot is None:
            return None
        entity = self.orchestrator.materialize(cls, snapshot, related)
        self.tracker.attach(entity)
        return entity

    def transaction(self) -> Transaction:
        return self.transactions.begin_transaction()
