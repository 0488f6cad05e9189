"""Change entries and the arena of tracked entities."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from .bindings import assign
from .exceptions import UnknownEntityTypeError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .metadata import EntityTypeDescriptor, ModelMetadata


class EntityState(str, Enum):
    DETACHED = "detached"
    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class ChangeEntry:
    """One tracked entity and its pending mutation.

    ``modified_properties`` is ``None`` when the caller cannot tell which
    members changed; update payloads then carry the whole document.
    """

    def __init__(
        self,
        entity: Any,
        entity_type: EntityTypeDescriptor,
        state: EntityState,
        *,
        handle: int | None = None,
        modified_properties: Iterable[str] | None = None,
        original_collections: Mapping[str, Iterable[Any]] | None = None,
        shadow_values: Mapping[str, Any] | None = None,
    ) -> None:
        self.entity = entity
        self.entity_type = entity_type
        self.state = state
        self.handle = handle
        self.modified_properties: frozenset[str] | None = (
            frozenset(modified_properties) if modified_properties is not None else None
        )
        self.original_collections: dict[str, list[Any]] = {
            k: list(v) for k, v in (original_collections or {}).items()
        }
        self.shadow_values: dict[str, Any] = dict(shadow_values or {})
        self.generated_id: str | None = None

    def __repr__(self) -> str:
        return f"ChangeEntry({self.entity_type.name}, {self.state.value})"

    def get_current_value(self, name: str) -> Any:
        if name in self.shadow_values:
            return self.shadow_values[name]
        return getattr(self.entity, name, None)

    def set_shadow_value(self, name: str, value: Any) -> None:
        self.shadow_values[name] = value

    def set_store_generated_value(self, name: str, value: Any) -> None:
        prop = self.entity_type.properties.get(name)
        if prop is not None and prop.is_shadow:
            self.shadow_values[name] = value
        else:
            assign(self.entity, name, value)

    def is_modified(self, name: str) -> bool:
        return self.modified_properties is None or name in self.modified_properties

    def mark_modified(self, names: Iterable[str]) -> None:
        self.modified_properties = (self.modified_properties or frozenset()) | set(names)

    def original_collection(self, name: str) -> list[Any]:
        return list(self.original_collections.get(name, ()))

    def snapshot_collections(self) -> None:
        """Remember the current many-to-many and collection memberships."""
        names = [
            *self.entity_type.skip_navigations,
            *(n.name for n in self.entity_type.navigations.values() if n.is_collection),
        ]
        self.original_collections = {
            name: list(getattr(self.entity, name, None) or ()) for name in names
        }


class ChangeTracker:
    """Arena of tracked entities addressed by stable integer handles."""

    def __init__(self, model: ModelMetadata) -> None:
        self._model = model
        self._arena: list[ChangeEntry | None] = []
        self._handles: dict[int, int] = {}

    def _track(self, entity: Any, state: EntityState) -> ChangeEntry:
        handle = self._handles.get(id(entity))
        if handle is not None:
            entry = self._arena[handle]
            if entry is not None:
                return entry
        descriptor = self._model.find_entity_type(type(entity))
        if descriptor is None:
            raise UnknownEntityTypeError(
                "Cannot track an unmapped type", entity_type=type(entity).__name__
            )
        handle = len(self._arena)
        entry = ChangeEntry(entity, descriptor, state, handle=handle)
        self._arena.append(entry)
        self._handles[id(entity)] = handle
        return entry

    def add(self, entity: Any) -> ChangeEntry:
        entry = self._track(entity, EntityState.ADDED)
        entry.state = EntityState.ADDED
        return entry

    def attach(self, entity: Any) -> ChangeEntry:
        """Track an entity already persisted; its collections become the baseline."""
        entry = self._track(entity, EntityState.UNCHANGED)
        entry.modified_properties = frozenset()
        entry.snapshot_collections()
        return entry

    def update(self, entity: Any, *modified: str) -> ChangeEntry:
        entry = self._track(entity, EntityState.MODIFIED)
        if entry.state is not EntityState.ADDED:
            entry.state = EntityState.MODIFIED
            if modified:
                entry.mark_modified(modified)
            else:
                entry.modified_properties = None
        return entry

    def remove(self, entity: Any) -> ChangeEntry:
        entry = self._track(entity, EntityState.DELETED)
        if entry.state is EntityState.ADDED:
            self._drop(entry)
            entry.state = EntityState.DETACHED
        else:
            entry.state = EntityState.DELETED
        return entry

    def entry(self, entity: Any) -> ChangeEntry | None:
        handle = self._handles.get(id(entity))
        return None if handle is None else self._arena[handle]

    def get(self, handle: int) -> ChangeEntry | None:
        return self._arena[handle]

    @property
    def entries(self) -> list[ChangeEntry]:
        return [e for e in self._arena if e is not None]

    def pending(self) -> list[ChangeEntry]:
        return [
            e
            for e in self.entries
            if e.state in (EntityState.ADDED, EntityState.MODIFIED, EntityState.DELETED)
        ]

    def accept_changes(self, entries: Iterable[ChangeEntry] | None = None) -> None:
        """Mark entries persisted: deleted ones leave, the rest become unchanged.

        Without ``entries`` every tracked entry is accepted.
        """
        for entry in self.entries if entries is None else list(entries):
            if entry.state is EntityState.DETACHED:
                continue
            if entry.state is EntityState.DELETED:
                self._drop(entry)
                entry.state = EntityState.DETACHED
            else:
                entry.state = EntityState.UNCHANGED
                entry.modified_properties = frozenset()
                entry.snapshot_collections()

    def _drop(self, entry: ChangeEntry) -> None:
        if entry.handle is not None:
            self._arena[entry.handle] = None
        self._handles.pop(id(entry.entity), None)
