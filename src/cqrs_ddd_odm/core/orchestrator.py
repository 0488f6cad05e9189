"""ChangeSetOrchestrator: applies a unit of work's pending entries to the store.

Writes go out one at a time in a fixed order: inserts from the root down,
then updates, then deletes from the leaves up. A nested document is never
created before its parent path exists nor left behind by a parent delete.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from ..conversion import ValueConverter
from ..diagnostics import CommandLogger
from ..exceptions import ConfigurationError, DocumentWriteError, OperationCancelledError
from ..options import OdmOptions
from ..tracking import EntityState
from .associations import AssociationSynchronizer
from .deserializer import DocumentDeserializer
from .execution import ExecutionStrategy
from .paths import PathResolver, is_unset_key
from .serializer import EntitySerializer
from .writers import BatchWriter, StoreWriter

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from ..ids import IIDGenerator
    from ..metadata import ModelMetadata
    from ..references import DocumentReference
    from ..store.ports import DocumentSnapshot, DocumentStore
    from ..tracking import ChangeEntry, ChangeTracker
    from .deserializer import Materialized, RelatedEntities
    from .paths import ParentIndex
    from .transaction import TransactionManager
    from .writers import DocumentWriter

logger = logging.getLogger("cqrs_ddd.odm.orchestrator")

T = TypeVar("T")


class CancellationSignal(Protocol):
    """Anything exposing ``is_set()``, e.g. :class:`asyncio.Event`."""

    def is_set(self) -> bool: ...


class _StoreIdGenerator:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def next_id(self) -> str:
        return self._store.generate_id()


class ChangeSetOrchestrator:
    """Drives serialization, addressing and writes for one unit of work.

    Not safe for concurrent use: one invocation at a time per instance.
    """

    def __init__(
        self,
        model: ModelMetadata,
        store: DocumentStore,
        *,
        tracker: ChangeTracker | None = None,
        converter: ValueConverter | None = None,
        options: OdmOptions | None = None,
        execution_strategy: ExecutionStrategy | None = None,
        transaction_manager: TransactionManager | None = None,
        id_generator: IIDGenerator | None = None,
        command_logger: CommandLogger | None = None,
    ) -> None:
        self._model = model
        self._store = store
        self._options = options or OdmOptions()
        self._converter = converter or ValueConverter()
        self._strategy = execution_strategy or ExecutionStrategy(self._options.retry)
        self._transactions = transaction_manager
        self._commands = command_logger or CommandLogger(
            log_data=self._options.log_command_data
        )
        self.resolver = PathResolver(
            model, tracker=tracker, id_generator=id_generator or _StoreIdGenerator(store)
        )
        self.serializer = EntitySerializer(model, self._converter)
        self.deserializer = DocumentDeserializer(model, options=self._options)
        self.synchronizer = AssociationSynchronizer(
            model,
            self.serializer,
            options=self._options,
            command_logger=self._commands,
        )

    @property
    def execution_strategy(self) -> ExecutionStrategy:
        return self._strategy

    def order_entries(self, entries: Iterable[ChangeEntry]) -> list[ChangeEntry]:
        """Inserts by ascending depth, updates as given, deletes by descending depth."""
        entries = list(entries)
        depth = self._model.depth
        inserts = sorted(
            (e for e in entries if e.state is EntityState.ADDED),
            key=lambda e: depth(e.entity_type),
        )
        updates = [e for e in entries if e.state is EntityState.MODIFIED]
        deletes = sorted(
            (e for e in entries if e.state is EntityState.DELETED),
            key=lambda e: depth(e.entity_type),
            reverse=True,
        )
        return [*inserts, *updates, *deletes]

    async def apply_changes(
        self,
        entries: Iterable[ChangeEntry],
        cancellation: CancellationSignal | None = None,
    ) -> int:
        """Write every pending entry; returns how many entries were written.

        Configuration errors abort the call immediately. Entries already
        written stay written unless the call runs inside a transaction.
        """
        entries = list(entries)
        ordered = self.order_entries(entries)
        index = self.resolver.parent_index(entries)
        writer = self._writer()
        written = 0
        for entry in ordered:
            _check_cancelled(cancellation)
            if entry.entity_type.is_join_entity:
                logger.debug("Skipping join entity %s", entry.entity_type.name)
                continue
            await self._apply(entry, index, writer)
            written += 1

        for entry in ordered:
            if entry.state not in (EntityState.ADDED, EntityState.MODIFIED):
                continue
            if not entry.entity_type.skip_navigations or entry.entity_type.is_join_entity:
                continue
            _check_cancelled(cancellation)
            address = self.resolver.resolve(entry, index=index)
            try:
                await self.synchronizer.synchronize(entry, address, writer)
            except ConfigurationError:
                raise
            except Exception as exc:
                raise DocumentWriteError(
                    entry.entity_type.name, address.id, address.path
                ) from exc
        logger.debug("Applied %d of %d entries", written, len(entries))
        return written

    async def _apply(
        self, entry: ChangeEntry, index: ParentIndex, writer: DocumentWriter
    ) -> None:
        address = self.resolver.resolve(entry, index=index)
        entity_type = entry.entity_type.name
        try:
            if entry.state is EntityState.ADDED:
                data = self.serializer.serialize(entry, document_id=address.id)
                now = datetime.now(timezone.utc)
                data[self._options.created_at_field] = now
                data[self._options.updated_at_field] = now
                with self._commands.command("INSERT", address, entity_type, data):
                    await writer.create(address, data)
                self._propagate_key(entry, address)
            elif entry.state is EntityState.MODIFIED:
                data = self.serializer.serialize_update(entry, document_id=address.id)
                data[self._options.updated_at_field] = datetime.now(timezone.utc)
                with self._commands.command("UPDATE", address, entity_type, data):
                    await writer.set(address, data, merge=True)
            else:
                with self._commands.command("DELETE", address, entity_type):
                    await writer.delete(address)
        except ConfigurationError:
            raise
        except Exception as exc:
            raise DocumentWriteError(entity_type, address.id, address.path) from exc

    def _propagate_key(self, entry: ChangeEntry, address: DocumentReference) -> None:
        key = entry.entity_type.primary_key
        if not is_unset_key(entry.get_current_value(key.name)):
            return
        try:
            value = self._converter.from_store(address.id, key.python_type)
        except (TypeError, ValueError, ArithmeticError):
            value = address.id
        entry.set_store_generated_value(key.name, value)

    def _writer(self) -> DocumentWriter:
        transaction = (
            self._transactions.current_transaction if self._transactions else None
        )
        if transaction is not None and transaction.is_active:
            return BatchWriter(transaction.batch)
        return StoreWriter(self._store, self._strategy)

    # ── read side ────────────────────────────────────────────────

    def materialize(
        self,
        cls: type[T],
        document: DocumentSnapshot,
        related: RelatedEntities | Mapping[str, Any] | None = None,
    ) -> T:
        return self.deserializer.deserialize(cls, document, related)

    def materialize_with_report(
        self,
        cls: type[T],
        document: DocumentSnapshot,
        related: RelatedEntities | Mapping[str, Any] | None = None,
    ) -> Materialized[T]:
        return self.deserializer.deserialize_with_report(cls, document, related)


def _check_cancelled(cancellation: CancellationSignal | None) -> None:
    if cancellation is not None and cancellation.is_set():
        raise OperationCancelledError("Applying changes was cancelled")
