"""InMemoryDocumentStore: dict-backed store for tests and local development."""

from __future__ import annotations

import copy
import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..exceptions import DocumentExistsError, StoreError
from ..ids import DocumentIdGenerator
from ..references import DocumentReference
from .ports import DELETE_FIELD, DocumentSnapshot

if TYPE_CHECKING:
    from ..ids import IIDGenerator

logger = logging.getLogger("cqrs_ddd.odm.store.memory")


@dataclass(frozen=True)
class WriteRecord:
    """One applied write, in the order the store received it."""

    operation: str
    path: str
    data: dict[str, Any] | None = None


class InMemoryDocumentStore:
    """Keeps documents in a dict keyed by full path.

    Merge writes replace top-level fields and drop fields set to
    :data:`DELETE_FIELD`. Failures queued with :meth:`fail_next` are raised
    by the next write calls, one per call.
    """

    def __init__(self, *, id_generator: IIDGenerator | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._failures: deque[BaseException] = deque()
        self._id_generator = id_generator or DocumentIdGenerator()
        self.writes: list[WriteRecord] = []

    # ── test helpers ─────────────────────────────────────────────

    def fail_next(self, error: BaseException, times: int = 1) -> None:
        self._failures.extend(error for _ in range(times))

    def document(self, path: str) -> dict[str, Any] | None:
        data = self._documents.get(path)
        return copy.deepcopy(data) if data is not None else None

    @property
    def paths(self) -> list[str]:
        return sorted(self._documents)

    def clear(self) -> None:
        self._documents.clear()
        self.writes.clear()
        self._failures.clear()

    # ── DocumentStore ────────────────────────────────────────────

    async def create(self, reference: DocumentReference, data: dict[str, Any]) -> None:
        self._raise_pending_failure()
        self._apply_create(reference, data)

    async def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        self._raise_pending_failure()
        self._apply_set(reference, data, merge)

    async def delete(self, reference: DocumentReference) -> None:
        self._raise_pending_failure()
        self._apply_delete(reference)

    async def get(self, reference: DocumentReference) -> DocumentSnapshot | None:
        data = self._documents.get(reference.path)
        if data is None:
            return None
        return DocumentSnapshot(reference, copy.deepcopy(data))

    async def list_documents(self, collection_path: str) -> list[DocumentSnapshot]:
        """Documents directly inside ``collection_path``, ordered by path."""
        prefix = collection_path.strip("/") + "/"
        return [
            DocumentSnapshot(DocumentReference.parse(path), copy.deepcopy(data))
            for path, data in sorted(self._documents.items())
            if path.startswith(prefix) and "/" not in path[len(prefix) :]
        ]

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def generate_id(self) -> str:
        return self._id_generator.next_id()

    # ── internals ────────────────────────────────────────────────

    def _raise_pending_failure(self) -> None:
        if self._failures:
            raise self._failures.popleft()

    def _apply_create(self, reference: DocumentReference, data: dict[str, Any]) -> None:
        if reference.path in self._documents:
            raise DocumentExistsError(reference.path)
        self._documents[reference.path] = _without_deletes(data)
        self.writes.append(WriteRecord("create", reference.path, copy.deepcopy(data)))

    def _apply_set(
        self, reference: DocumentReference, data: dict[str, Any], merge: bool
    ) -> None:
        existing = self._documents.get(reference.path)
        if merge and existing is not None:
            for key, value in data.items():
                if value is DELETE_FIELD:
                    existing.pop(key, None)
                else:
                    existing[key] = copy.deepcopy(value)
        else:
            self._documents[reference.path] = _without_deletes(data)
        self.writes.append(
            WriteRecord("merge" if merge else "set", reference.path, copy.deepcopy(data))
        )

    def _apply_delete(self, reference: DocumentReference) -> None:
        self._documents.pop(reference.path, None)
        self.writes.append(WriteRecord("delete", reference.path))


class InMemoryWriteBatch:
    """Stages writes; :meth:`commit` validates every create before applying any."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self._operations: list[tuple[str, DocumentReference, dict[str, Any] | None]] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def create(self, reference: DocumentReference, data: dict[str, Any]) -> None:
        self._operations.append(("create", reference, copy.deepcopy(data)))

    def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        self._operations.append(("merge" if merge else "set", reference, copy.deepcopy(data)))

    def delete(self, reference: DocumentReference) -> None:
        self._operations.append(("delete", reference, None))

    async def commit(self) -> None:
        if self.committed:
            raise StoreError("Write batch was already committed")
        self._store._raise_pending_failure()

        existing = set(self._store._documents)
        for operation, reference, _ in self._operations:
            if operation == "create" and reference.path in existing:
                raise DocumentExistsError(reference.path)
            if operation == "delete":
                existing.discard(reference.path)
            else:
                existing.add(reference.path)

        for operation, reference, data in self._operations:
            if operation == "create":
                self._store._apply_create(reference, data or {})
            elif operation == "delete":
                self._store._apply_delete(reference)
            else:
                self._store._apply_set(reference, data or {}, operation == "merge")
        self.committed = True
        logger.debug("Committed batch of %d writes", len(self._operations))


def _without_deletes(data: dict[str, Any]) -> dict[str, Any]:
    return {k: copy.deepcopy(v) for k, v in data.items() if v is not DELETE_FIELD}
