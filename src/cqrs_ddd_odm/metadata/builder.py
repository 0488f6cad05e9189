"""Fluent model configuration with convention-based discovery.

Example:
    ```python
    builder = ModelBuilder()
    builder.entity(Order).sub_collection("lines", OrderLine).persist_null("notes")
    builder.entity(OrderLine)
    builder.entity(Pizza).many_to_many("ingredients", Ingredient)
    builder.entity(Ingredient)
    model = builder.build()
    ```

Anything not configured explicitly is classified from the class's type
hints: the key is ``id`` (or ``<type>_id``), entity-typed members become
references, point-like members become geo points, other classes are
embedded, and lists follow the classification of their element type.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..references import GeoPoint
from ..utils import (
    collection_shape,
    geo_member_names,
    is_class,
    is_complex_type,
    is_enum_type,
    is_scalar_type,
    mapping_shape,
    snake_case,
    type_hints,
    unwrap_optional,
)
from .descriptors import (
    ArrayKind,
    ArrayOfDescriptor,
    ComplexPropertyDescriptor,
    EntityTypeDescriptor,
    ForeignKeyDescriptor,
    MapOfDescriptor,
    NavigationDescriptor,
    PropertyDescriptor,
    SkipNavigationDescriptor,
)
from .model import ModelMetadata, default_collection_name

if TYPE_CHECKING:
    from collections.abc import Callable
    from enum import Enum


class EntityTypeBuilder:
    """Explicit configuration for one entity type."""

    def __init__(self, cls: type) -> None:
        self._cls = cls
        self._hints = type_hints(cls)
        self._collection: str | None = None
        self._keys: tuple[str, ...] | None = None
        self._properties: dict[str, PropertyDescriptor] = {}
        self._persist_null: set[str] = set()
        self._complex: dict[str, ComplexPropertyDescriptor] = {}
        self._navigations: dict[str, NavigationDescriptor] = {}
        self._array_ofs: dict[str, ArrayOfDescriptor] = {}
        self._map_ofs: dict[str, MapOfDescriptor] = {}
        self._foreign_keys: list[ForeignKeyDescriptor] = []
        self._skips: dict[str, SkipNavigationDescriptor] = {}
        self._backing: dict[str, str] = {}
        self._factories: list[Callable[..., Any]] = []
        self._ignored: set[str] = set()

    @property
    def cls(self) -> type:
        return self._cls

    def collection_name(self, name: str) -> EntityTypeBuilder:
        self._collection = name
        return self

    def has_key(self, *names: str) -> EntityTypeBuilder:
        self._keys = names
        return self

    def scalar_property(
        self,
        name: str,
        python_type: Any = None,
        *,
        persist_null: bool = False,
        enum_type: type[Enum] | None = None,
    ) -> EntityTypeBuilder:
        hint = python_type if python_type is not None else self._hint(name)
        inner, _ = unwrap_optional(hint)
        shape = collection_shape(inner)
        element = unwrap_optional(shape[1])[0] if shape else inner
        self._properties[name] = PropertyDescriptor(
            name=name,
            python_type=hint,
            enum_type=enum_type or (element if is_enum_type(element) else None),
            is_collection=shape is not None or mapping_shape(inner) is not None,
        )
        if persist_null:
            self._persist_null.add(name)
        return self

    def persist_null(self, *names: str) -> EntityTypeBuilder:
        self._persist_null.update(names)
        return self

    def shadow_property(self, name: str, python_type: Any = str) -> EntityTypeBuilder:
        """Declare a metadata-only foreign key value carried by the change entry."""
        self._properties[name] = PropertyDescriptor(
            name=name, python_type=python_type, is_shadow=True, is_foreign_key=True
        )
        return self

    def complex_property(
        self, name: str, python_type: type | None = None
    ) -> EntityTypeBuilder:
        self._complex[name] = self._complex_descriptor(name, python_type)
        return self

    def has_reference(
        self, name: str, *, reference_property: str | None = None
    ) -> EntityTypeBuilder:
        """Store an embedded value as a pointer to the document it identifies."""
        current = self._complex.get(name) or self._complex_descriptor(name, None)
        self._complex[name] = ComplexPropertyDescriptor(
            name=name,
            python_type=current.python_type,
            is_collection=current.is_collection,
            is_reference=True,
            reference_property=reference_property,
        )
        return self

    def has_geo_point(self, name: str) -> EntityTypeBuilder:
        current = self._complex.get(name) or self._complex_descriptor(name, None)
        self._complex[name] = ComplexPropertyDescriptor(
            name=name, python_type=current.python_type, is_geo_point=True
        )
        return self

    def reference(
        self, name: str, target: type, *, foreign_key: str | None = None
    ) -> EntityTypeBuilder:
        self._navigations[name] = NavigationDescriptor(
            name=name, target=target, foreign_key=foreign_key
        )
        return self

    def has_many(self, name: str, target: type) -> EntityTypeBuilder:
        self._navigations[name] = NavigationDescriptor(
            name=name, target=target, is_collection=True
        )
        return self

    def sub_collection(self, name: str, target: type) -> EntityTypeBuilder:
        """Store ``target`` documents nested under this type's documents."""
        hint = self._hints.get(name)
        self._navigations[name] = NavigationDescriptor(
            name=name,
            target=target,
            is_collection=hint is None or collection_shape(hint) is not None,
            is_subcollection=True,
        )
        return self

    def array_of(
        self, name: str, element_type: Any, kind: ArrayKind | None = None
    ) -> EntityTypeBuilder:
        self._array_ofs[name] = ArrayOfDescriptor(
            name=name,
            kind=kind or _infer_array_kind(element_type),
            element_type=element_type,
        )
        return self

    def map_of(
        self, name: str, element_type: type, key_type: Any = str
    ) -> EntityTypeBuilder:
        self._map_ofs[name] = MapOfDescriptor(
            name=name, key_type=key_type, element_type=element_type
        )
        return self

    def many_to_many(self, name: str, target: type) -> EntityTypeBuilder:
        self._skips[name] = SkipNavigationDescriptor(name=name, target=target)
        return self

    def has_foreign_key(
        self,
        *properties: str,
        principal: type,
        principal_has_collection: bool = True,
        reference_name: str | None = None,
    ) -> EntityTypeBuilder:
        self._foreign_keys.append(
            ForeignKeyDescriptor(
                properties=properties,
                principal=principal,
                principal_has_collection=principal_has_collection,
                reference_name=reference_name or snake_case(principal.__name__),
            )
        )
        return self

    def backing_field(self, name: str, field_name: str) -> EntityTypeBuilder:
        self._backing[name] = field_name
        return self

    def factory(self, fn: Callable[..., Any]) -> EntityTypeBuilder:
        """Register an alternative constructor used when reading documents."""
        self._factories.append(fn)
        return self

    def ignore(self, *names: str) -> EntityTypeBuilder:
        self._ignored.update(names)
        return self

    # ── building ─────────────────────────────────────────────────

    def _hint(self, name: str) -> Any:
        return self._hints.get(name, Any)

    def _complex_descriptor(
        self, name: str, python_type: type | None
    ) -> ComplexPropertyDescriptor:
        hint = python_type or unwrap_optional(self._hint(name))[0]
        shape = collection_shape(hint)
        element = unwrap_optional(shape[1])[0] if shape else hint
        return ComplexPropertyDescriptor(
            name=name,
            python_type=element,
            is_collection=shape is not None,
            is_geo_point=shape is None and geo_member_names(element) is not None,
        )

    def _explicit_names(self) -> set[str]:
        names = set(self._ignored)
        for group in (
            self._properties,
            self._complex,
            self._navigations,
            self._array_ofs,
            self._map_ofs,
            self._skips,
        ):
            names.update(group)
        names.update(self._backing.values())
        return names

    def build(self, entities: frozenset[type]) -> EntityTypeDescriptor:
        properties: dict[str, PropertyDescriptor] = {}
        complex_properties: dict[str, ComplexPropertyDescriptor] = {}
        navigations: dict[str, NavigationDescriptor] = {}
        array_ofs: dict[str, ArrayOfDescriptor] = {}
        map_ofs: dict[str, MapOfDescriptor] = {}

        explicit = self._explicit_names()
        for name, hint in self._hints.items():
            if name.startswith("_") or name in explicit:
                continue
            found = _discover(name, hint, entities)
            if isinstance(found, PropertyDescriptor):
                properties[name] = found
            elif isinstance(found, ComplexPropertyDescriptor):
                complex_properties[name] = found
            elif isinstance(found, NavigationDescriptor):
                navigations[name] = found
            elif isinstance(found, ArrayOfDescriptor):
                array_ofs[name] = found
            elif isinstance(found, MapOfDescriptor):
                map_ofs[name] = found

        properties.update(self._properties)
        complex_properties.update(self._complex)
        navigations.update(self._navigations)
        array_ofs.update(self._array_ofs)
        map_ofs.update(self._map_ofs)

        for name, nav in list(navigations.items()):
            if nav.is_collection or nav.is_subcollection or nav.foreign_key:
                continue
            candidate = f"{name}_id"
            if candidate in properties:
                navigations[name] = NavigationDescriptor(
                    name=name, target=nav.target, foreign_key=candidate
                )

        keys = self._keys if self._keys is not None else self._discover_keys(properties)
        fk_names = {nav.foreign_key for nav in navigations.values() if nav.foreign_key}
        for fk in self._foreign_keys:
            fk_names.update(fk.properties)
        for name, prop in list(properties.items()):
            properties[name] = PropertyDescriptor(
                name=prop.name,
                python_type=prop.python_type,
                is_primary_key=name in keys,
                is_foreign_key=prop.is_foreign_key or name in fk_names,
                is_shadow=prop.is_shadow,
                persist_null=prop.persist_null or name in self._persist_null,
                enum_type=prop.enum_type,
                is_collection=prop.is_collection,
            )

        return EntityTypeDescriptor(
            cls=self._cls,
            collection_name=self._collection or default_collection_name(self._cls),
            key_names=tuple(keys),
            properties=properties,
            complex_properties=complex_properties,
            navigations=navigations,
            array_ofs=array_ofs,
            map_ofs=map_ofs,
            foreign_keys=tuple(self._foreign_keys),
            skip_navigations=dict(self._skips),
            backing_fields=dict(self._backing),
            factories=tuple(self._factories),
        )

    def _discover_keys(self, properties: dict[str, PropertyDescriptor]) -> tuple[str, ...]:
        for candidate in ("id", f"{snake_case(self._cls.__name__)}_id"):
            if candidate in properties:
                return (candidate,)
        return ()


class ModelBuilder:
    """Collects entity configurations and produces a :class:`ModelMetadata`."""

    def __init__(self) -> None:
        self._entities: dict[type, EntityTypeBuilder] = {}

    def entity(self, cls: type) -> EntityTypeBuilder:
        builder = self._entities.get(cls)
        if builder is None:
            builder = self._entities[cls] = EntityTypeBuilder(cls)
        return builder

    def build(self) -> ModelMetadata:
        entities = frozenset(self._entities)
        descriptors = [b.build(entities) for b in self._entities.values()]
        by_type = {d.cls: d for d in descriptors}
        return ModelMetadata(
            _with_navigation_foreign_keys(d, by_type) for d in descriptors
        )


def _with_navigation_foreign_keys(
    descriptor: EntityTypeDescriptor, by_type: dict[type, EntityTypeDescriptor]
) -> EntityTypeDescriptor:
    """Register a foreign key for every reference navigation backed by one."""
    declared = {fk.properties for fk in descriptor.foreign_keys}
    extra = []
    for nav in descriptor.navigations.values():
        if nav.foreign_key is None or (nav.foreign_key,) in declared:
            continue
        principal = by_type.get(nav.target)
        has_collection = principal is not None and any(
            n.is_collection and issubclass(descriptor.cls, n.target)
            for n in principal.navigations.values()
        )
        extra.append(
            ForeignKeyDescriptor(
                properties=(nav.foreign_key,),
                principal=nav.target,
                principal_has_collection=has_collection,
                reference_name=nav.name,
            )
        )
    if not extra:
        return descriptor
    return EntityTypeDescriptor(
        cls=descriptor.cls,
        collection_name=descriptor.collection_name,
        key_names=descriptor.key_names,
        properties=descriptor.properties,
        complex_properties=descriptor.complex_properties,
        navigations=descriptor.navigations,
        array_ofs=descriptor.array_ofs,
        map_ofs=descriptor.map_ofs,
        foreign_keys=(*descriptor.foreign_keys, *extra),
        skip_navigations=descriptor.skip_navigations,
        backing_fields=descriptor.backing_fields,
        factories=descriptor.factories,
    )


def _infer_array_kind(element_type: Any) -> ArrayKind:
    if element_type is GeoPoint or geo_member_names(element_type) is not None:
        return ArrayKind.GEO_POINT
    if is_scalar_type(element_type):
        return ArrayKind.PRIMITIVE
    return ArrayKind.EMBEDDED


def _discover(name: str, hint: Any, entities: frozenset[type]) -> object:
    inner, _ = unwrap_optional(hint)
    if _is_entity(inner, entities):
        return NavigationDescriptor(name=name, target=inner)
    if is_scalar_type(inner):
        return PropertyDescriptor(
            name=name, python_type=hint, enum_type=inner if is_enum_type(inner) else None
        )
    shape = collection_shape(inner)
    if shape is not None:
        element = unwrap_optional(shape[1])[0]
        if _is_entity(element, entities):
            return NavigationDescriptor(name=name, target=element, is_collection=True)
        if is_scalar_type(element) and element is not GeoPoint:
            return PropertyDescriptor(
                name=name,
                python_type=hint,
                enum_type=element if is_enum_type(element) else None,
                is_collection=True,
            )
        return ArrayOfDescriptor(
            name=name, kind=_infer_array_kind(element), element_type=element
        )
    map_shape = mapping_shape(inner)
    if map_shape is not None:
        key_type, value_type = map_shape
        value_type = unwrap_optional(value_type)[0]
        if is_complex_type(value_type):
            return MapOfDescriptor(name=name, key_type=key_type, element_type=value_type)
        return PropertyDescriptor(name=name, python_type=hint, is_collection=True)
    if is_complex_type(inner):
        return ComplexPropertyDescriptor(
            name=name,
            python_type=inner,
            is_geo_point=geo_member_names(inner) is not None,
        )
    return PropertyDescriptor(name=name, python_type=hint)


def _is_entity(tp: Any, entities: frozenset[type]) -> bool:
    return is_class(tp) and any(issubclass(tp, e) for e in entities)
