"""ModelMetadata: read-only registry of entity type descriptors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import SubcollectionCycleError, UnknownEntityTypeError
from ..utils import pluralize
from .descriptors import ArrayKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .descriptors import (
        EntityTypeDescriptor,
        NavigationDescriptor,
        SkipNavigationDescriptor,
    )


def default_collection_name(cls: type) -> str:
    """``__collection__`` when declared, else the lower-cased plural type name."""
    declared = getattr(cls, "__collection__", None)
    if isinstance(declared, str) and declared:
        return declared
    return pluralize(cls.__name__.lower())


class ModelMetadata:
    """Entity type descriptors plus the derived subcollection hierarchy.

    Subcollection ownership must form a finite tree; a chain that loops back
    on itself is rejected when the model is built.
    """

    def __init__(self, entity_types: Iterable[EntityTypeDescriptor]) -> None:
        self._by_type: dict[type, EntityTypeDescriptor] = {
            d.cls: d for d in entity_types
        }
        self._parents: dict[type, tuple[EntityTypeDescriptor, NavigationDescriptor]] = {}
        for descriptor in self._by_type.values():
            for nav in descriptor.navigations.values():
                if nav.is_subcollection:
                    self._parents.setdefault(nav.target, (descriptor, nav))
        self._depths: dict[type, int] = {}
        for descriptor in self._by_type.values():
            self.depth(descriptor)

    @property
    def entity_types(self) -> list[EntityTypeDescriptor]:
        return list(self._by_type.values())

    def find_entity_type(self, cls: type) -> EntityTypeDescriptor | None:
        for klass in cls.__mro__:
            descriptor = self._by_type.get(klass)
            if descriptor is not None:
                return descriptor
        return None

    def get_entity_type(self, cls: type) -> EntityTypeDescriptor:
        descriptor = self.find_entity_type(cls)
        if descriptor is None:
            raise UnknownEntityTypeError(
                "Type is not part of the model", entity_type=cls.__name__
            )
        return descriptor

    def is_entity(self, value: object) -> bool:
        return self.find_entity_type(type(value)) is not None

    def collection_name(self, cls: type) -> str:
        descriptor = self.find_entity_type(cls)
        if descriptor is not None:
            return descriptor.collection_name
        return default_collection_name(cls)

    def parent_navigation(
        self, descriptor: EntityTypeDescriptor
    ) -> tuple[EntityTypeDescriptor, NavigationDescriptor] | None:
        """The owning type and its navigation when ``descriptor`` is a subcollection."""
        for klass in descriptor.cls.__mro__:
            found = self._parents.get(klass)
            if found is not None:
                return found
        return None

    def is_subcollection(self, descriptor: EntityTypeDescriptor) -> bool:
        return self.parent_navigation(descriptor) is not None

    def depth(self, descriptor: EntityTypeDescriptor) -> int:
        """Number of subcollection levels above documents of this type."""
        cached = self._depths.get(descriptor.cls)
        if cached is not None:
            return cached
        chain = [descriptor]
        current = self.parent_navigation(descriptor)
        while current is not None:
            owner = current[0]
            if owner in chain:
                names = " -> ".join(d.name for d in (*chain, owner))
                raise SubcollectionCycleError(
                    f"Subcollection chain loops: {names}", entity_type=descriptor.name
                )
            chain.append(owner)
            current = self.parent_navigation(owner)
        depth = len(chain) - 1
        self._depths[descriptor.cls] = depth
        return depth

    def join_collection_name(
        self, owner: EntityTypeDescriptor, skip: SkipNavigationDescriptor
    ) -> str:
        return f"{owner.collection_name}{self.collection_name(skip.target)}"

    def is_inverse_of_array_reference(
        self, owner: EntityTypeDescriptor, nav: NavigationDescriptor
    ) -> bool:
        """True when ``nav`` mirrors a reference array declared on its target."""
        target = self.find_entity_type(nav.target)
        if target is None:
            return False
        return any(
            array.kind is ArrayKind.REFERENCE
            and isinstance(array.element_type, type)
            and issubclass(owner.cls, array.element_type)
            for array in target.array_ofs.values()
        )
