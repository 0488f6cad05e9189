"""Read-only descriptors of the mapped model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, Any

from ..exceptions import CompositeKeyError, MissingPrimaryKeyError

if TYPE_CHECKING:
    from collections.abc import Callable


class ArrayKind(str, Enum):
    """How the elements of an array-valued property are stored."""

    EMBEDDED = "embedded"
    GEO_POINT = "geo_point"
    REFERENCE = "reference"
    PRIMITIVE = "primitive"


@dataclass(frozen=True)
class PropertyDescriptor:
    """A scalar (or scalar-collection) property."""

    name: str
    python_type: Any = Any
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_shadow: bool = False
    persist_null: bool = False
    enum_type: type[Enum] | None = None
    is_collection: bool = False


@dataclass(frozen=True)
class ComplexPropertyDescriptor:
    """An embedded value object, optionally stored as a pointer or a geo point."""

    name: str
    python_type: type
    is_collection: bool = False
    is_reference: bool = False
    reference_property: str | None = None
    is_geo_point: bool = False


@dataclass(frozen=True)
class NavigationDescriptor:
    """A navigation to another entity type."""

    name: str
    target: type
    is_collection: bool = False
    is_subcollection: bool = False
    foreign_key: str | None = None


@dataclass(frozen=True)
class ArrayOfDescriptor:
    name: str
    kind: ArrayKind
    element_type: Any


@dataclass(frozen=True)
class MapOfDescriptor:
    name: str
    key_type: Any
    element_type: type


@dataclass(frozen=True)
class ForeignKeyDescriptor:
    """A one-to-many relationship seen from the dependent side."""

    properties: tuple[str, ...]
    principal: type
    principal_has_collection: bool = True
    reference_name: str = ""


@dataclass(frozen=True)
class SkipNavigationDescriptor:
    """Many-to-many navigation mediated by synthetic join documents."""

    name: str
    target: type


@dataclass(frozen=True, eq=False)
class EntityTypeDescriptor:
    cls: type
    collection_name: str
    key_names: tuple[str, ...] = ()
    properties: dict[str, PropertyDescriptor] = field(default_factory=dict)
    complex_properties: dict[str, ComplexPropertyDescriptor] = field(
        default_factory=dict
    )
    navigations: dict[str, NavigationDescriptor] = field(default_factory=dict)
    array_ofs: dict[str, ArrayOfDescriptor] = field(default_factory=dict)
    map_ofs: dict[str, MapOfDescriptor] = field(default_factory=dict)
    foreign_keys: tuple[ForeignKeyDescriptor, ...] = ()
    skip_navigations: dict[str, SkipNavigationDescriptor] = field(
        default_factory=dict
    )
    backing_fields: dict[str, str] = field(default_factory=dict)
    factories: tuple[Callable[..., Any], ...] = ()

    @property
    def name(self) -> str:
        return self.cls.__name__

    @property
    def primary_key(self) -> PropertyDescriptor:
        """The single key property; composite and missing keys are rejected."""
        if not self.key_names:
            raise MissingPrimaryKeyError(
                "Entity type declares no primary key", entity_type=self.name
            )
        if len(self.key_names) > 1:
            raise CompositeKeyError(
                f"Composite keys are not supported: {', '.join(self.key_names)}",
                entity_type=self.name,
            )
        return self.properties[self.key_names[0]]

    @cached_property
    def foreign_key_names(self) -> frozenset[str]:
        names = {p.name for p in self.properties.values() if p.is_foreign_key}
        for fk in self.foreign_keys:
            names.update(fk.properties)
        return frozenset(names)

    @cached_property
    def is_join_entity(self) -> bool:
        """True for pure link rows: only key and foreign keys, at least two FKs."""
        if len(self.foreign_keys) < 2:
            return False
        allowed = self.foreign_key_names | set(self.key_names)
        return all(name in allowed for name in self.properties)

    def backing_field(self, name: str) -> str | None:
        return self.backing_fields.get(name)

    def foreign_key_for(self, principal: type) -> ForeignKeyDescriptor | None:
        return next((fk for fk in self.foreign_keys if fk.principal is principal), None)
