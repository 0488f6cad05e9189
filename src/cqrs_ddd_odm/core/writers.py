"""Write targets: straight to the store, or staged on an open batch."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..references import DocumentReference
    from ..store.ports import DocumentStore, WriteBatch
    from .execution import ExecutionStrategy


class DocumentWriter(Protocol):
    async def create(self, reference: DocumentReference, data: dict[str, Any]) -> None: ...

    async def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None: ...

    async def delete(self, reference: DocumentReference) -> None: ...


class StoreWriter:
    """Issues each write immediately, under the execution strategy."""

    def __init__(self, store: DocumentStore, strategy: ExecutionStrategy) -> None:
        self._store = store
        self._strategy = strategy

    async def create(self, reference: DocumentReference, data: dict[str, Any]) -> None:
        await self._strategy.execute(lambda: self._store.create(reference, data))

    async def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        await self._strategy.execute(
            lambda: self._store.set(reference, data, merge=merge)
        )

    async def delete(self, reference: DocumentReference) -> None:
        await self._strategy.execute(lambda: self._store.delete(reference))


class BatchWriter:
    """Stages writes on an active transaction's batch."""

    def __init__(self, batch: WriteBatch) -> None:
        self._batch = batch

    async def create(self, reference: DocumentReference, data: dict[str, Any]) -> None:
        self._batch.create(reference, data)

    async def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        self._batch.set(reference, data, merge=merge)

    async def delete(self, reference: DocumentReference) -> None:
        self._batch.delete(reference)
