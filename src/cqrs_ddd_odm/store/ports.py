"""Transport-level protocols the mapper writes through."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..references import DocumentReference


class _DeleteField:
    """Merge-write marker: remove the field from the stored document."""

    _instance: _DeleteField | None = None

    def __new__(cls) -> _DeleteField:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


@dataclass(frozen=True)
class DocumentSnapshot:
    """A raw document read from the store."""

    reference: DocumentReference
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.reference.id

    @property
    def path(self) -> str:
        return self.reference.path


@runtime_checkable
class WriteBatch(Protocol):
    """Staged writes applied atomically on :meth:`commit`."""

    def create(self, reference: DocumentReference, data: dict[str, Any]) -> None: ...

    def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None: ...

    def delete(self, reference: DocumentReference) -> None: ...

    async def commit(self) -> None: ...


@runtime_checkable
class DocumentStore(Protocol):
    """Document CRUD primitives addressed by full document path."""

    async def create(self, reference: DocumentReference, data: dict[str, Any]) -> None: ...

    async def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None: ...

    async def delete(self, reference: DocumentReference) -> None: ...

    async def get(self, reference: DocumentReference) -> DocumentSnapshot | None: ...

    async def list_documents(self, collection_path: str) -> list[DocumentSnapshot]: ...

    def batch(self) -> WriteBatch: ...

    def generate_id(self) -> str: ...
