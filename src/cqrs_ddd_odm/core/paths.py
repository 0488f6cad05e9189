"""PathResolver: hierarchical document addresses for tracked entities."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from ..exceptions import (
    MissingPrimaryKeyError,
    SubcollectionCycleError,
    UntrackedParentError,
)
from ..ids import DocumentIdGenerator
from ..references import DocumentReference
from ..tracking import EntityState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..ids import IIDGenerator
    from ..metadata import ModelMetadata
    from ..tracking import ChangeEntry, ChangeTracker

_NIL_UUID = UUID(int=0)


def is_unset_key(value: Any) -> bool:
    """``None``, zero, empty string and the nil UUID count as unassigned keys."""
    if value is None or value == "" or value == _NIL_UUID:
        return True
    return isinstance(value, int) and not isinstance(value, bool) and value == 0


def key_to_document_id(value: Any) -> str:
    if isinstance(value, Enum):
        return value.name
    return str(value)


class ParentIndex:
    """Child identity -> owning entry.

    Entries of the current call take precedence over the rest of the
    tracked set.
    """

    def __init__(
        self, entries: Iterable[ChangeEntry], tracked: Iterable[ChangeEntry] = ()
    ) -> None:
        self._owners: dict[int, ChangeEntry] = {}
        for entry in entries:
            self._index(entry)
        for entry in tracked:
            self._index(entry)

    def _index(self, entry: ChangeEntry) -> None:
        for nav in entry.entity_type.navigations.values():
            if not nav.is_subcollection:
                continue
            value = getattr(entry.entity, nav.name, None)
            if value is None:
                continue
            for child in value if nav.is_collection else (value,):
                if child is not None:
                    self._owners.setdefault(id(child), entry)

    def owner_of(self, entity: Any) -> ChangeEntry | None:
        return self._owners.get(id(entity))


class PathResolver:
    """Computes document addresses on demand.

    Addresses are never cached: a parent's id may be generated during the
    same unit of work.
    """

    def __init__(
        self,
        model: ModelMetadata,
        *,
        tracker: ChangeTracker | None = None,
        id_generator: IIDGenerator | None = None,
    ) -> None:
        self._model = model
        self._tracker = tracker
        self._id_generator = id_generator or DocumentIdGenerator()

    def parent_index(self, entries: Iterable[ChangeEntry]) -> ParentIndex:
        tracked = self._tracker.entries if self._tracker is not None else ()
        return ParentIndex(entries, tracked)

    def resolve(
        self,
        entry: ChangeEntry,
        all_entries: Iterable[ChangeEntry] = (),
        *,
        index: ParentIndex | None = None,
    ) -> DocumentReference:
        if index is None:
            index = self.parent_index(all_entries)
        return self._resolve(entry, index, ())

    def _resolve(
        self, entry: ChangeEntry, index: ParentIndex, visiting: tuple[int, ...]
    ) -> DocumentReference:
        if id(entry.entity) in visiting:
            raise SubcollectionCycleError(
                "Document address resolution loops back on itself",
                entity_type=entry.entity_type.name,
            )
        document_id = self.document_id(entry)
        collection = entry.entity_type.collection_name
        parent = self._model.parent_navigation(entry.entity_type)
        if parent is None:
            return DocumentReference.root(collection, document_id)
        owner = index.owner_of(entry.entity)
        if owner is None or not isinstance(owner.entity, parent[0].cls):
            raise UntrackedParentError(
                f"No tracked {parent[0].name} owns this entity through "
                f"'{parent[1].name}'",
                entity_type=entry.entity_type.name,
                entity_id=document_id,
            )
        base = self._resolve(owner, index, (*visiting, id(entry.entity)))
        return base.child(collection, document_id)

    def document_id(self, entry: ChangeEntry) -> str:
        """The entity's key as a document id, generated once for unkeyed inserts."""
        key = entry.entity_type.primary_key
        value = entry.get_current_value(key.name)
        if not is_unset_key(value):
            return key_to_document_id(value)
        if entry.state is EntityState.ADDED:
            if entry.generated_id is None:
                entry.generated_id = self._id_generator.next_id()
            return entry.generated_id
        raise MissingPrimaryKeyError(
            "Key value is unset", entity_type=entry.entity_type.name
        )

    def depth(self, entry: ChangeEntry) -> int:
        return self._model.depth(entry.entity_type)
