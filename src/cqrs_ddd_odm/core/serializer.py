"""EntitySerializer: entity graph to document payload."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..conversion import ValueConverter
from ..exceptions import (
    CompositeKeyError,
    GeoPointMappingError,
    MissingPrimaryKeyError,
    MissingReferenceKeyError,
)
from ..metadata import ArrayKind
from ..references import DocumentReference, GeoPoint
from ..store.ports import DELETE_FIELD
from ..utils import (
    geo_member_names,
    is_complex_type,
    is_scalar_type,
    member_names,
    members_of,
    snake_case,
)
from .paths import is_unset_key, key_to_document_id

if TYPE_CHECKING:
    from ..metadata import (
        ComplexPropertyDescriptor,
        EntityTypeDescriptor,
        ModelMetadata,
    )
    from ..tracking import ChangeEntry

logger = logging.getLogger("cqrs_ddd.odm.serializer")

_SEQUENCES = (list, tuple, set, frozenset)


class EntitySerializer:
    """Builds the field map stored for a tracked entity.

    The primary key lives in the document address and foreign keys become
    pointers, so neither is written as a plain field. Empty collections
    and maps are left out; ``None`` is only written for properties that
    persist nulls.
    """

    def __init__(
        self, model: ModelMetadata, converter: ValueConverter | None = None
    ) -> None:
        self._model = model
        self._converter = converter or ValueConverter()

    def serialize(
        self, entry: ChangeEntry, *, document_id: str | None = None
    ) -> dict[str, Any]:
        descriptor = entry.entity_type
        data: dict[str, Any] = {}
        self._write_scalars(entry, descriptor, data)
        self._write_complex(entry, descriptor, data)
        self._write_arrays(entry, descriptor, data)
        self._write_maps(entry, descriptor, data)
        is_child = self._model.is_subcollection(descriptor)
        self._write_references(entry, descriptor, data, is_child)
        if not is_child:
            self._write_foreign_keys(entry, descriptor, data)
        self._write_join_references(entry, descriptor, data, document_id)
        return data

    def serialize_update(
        self, entry: ChangeEntry, *, document_id: str | None = None
    ) -> dict[str, Any]:
        """Merge payload holding only the modified members.

        A modified member that now serializes to nothing is sent as
        ``DELETE_FIELD`` so the stored field goes away.
        """
        full = self.serialize(entry, document_id=document_id)
        if entry.modified_properties is None:
            return full
        payload: dict[str, Any] = {}
        for name in sorted(entry.modified_properties):
            field = self.field_name(entry.entity_type, name)
            if field is None:
                continue
            payload[field] = full.get(field, DELETE_FIELD)
        return payload

    def field_name(self, descriptor: EntityTypeDescriptor, name: str) -> str | None:
        """Stored field backing the member ``name``, if it is stored inline."""
        if name in descriptor.key_names:
            return None
        if name in descriptor.skip_navigations:
            return self._model.join_collection_name(
                descriptor, descriptor.skip_navigations[name]
            )
        nav = descriptor.navigations.get(name)
        if nav is not None:
            if nav.is_subcollection or self._model.is_inverse_of_array_reference(
                descriptor, nav
            ):
                return None
            return name
        if name in descriptor.foreign_key_names:
            if self._model.is_subcollection(descriptor):
                return None
            for fk in descriptor.foreign_keys:
                if name in fk.properties and (
                    fk.principal_has_collection or fk.reference_name in descriptor.navigations
                ):
                    return fk.reference_name
            return None
        return name

    # ── member classes ───────────────────────────────────────────

    def _write_scalars(
        self, entry: ChangeEntry, descriptor: EntityTypeDescriptor, data: dict[str, Any]
    ) -> None:
        for prop in descriptor.properties.values():
            if prop.is_primary_key or prop.is_foreign_key or prop.is_shadow:
                continue
            value = entry.get_current_value(prop.name)
            if value is None:
                if prop.persist_null:
                    data[prop.name] = None
                continue
            converted = self._converter.to_store(value, prop.enum_type)
            if prop.is_collection and not converted:
                continue
            data[prop.name] = converted

    def _write_complex(
        self, entry: ChangeEntry, descriptor: EntityTypeDescriptor, data: dict[str, Any]
    ) -> None:
        for complex_prop in descriptor.complex_properties.values():
            value = entry.get_current_value(complex_prop.name)
            if value is None:
                continue
            if complex_prop.is_collection:
                items = [
                    self._complex_value(complex_prop, v) for v in value if v is not None
                ]
                if items:
                    data[complex_prop.name] = items
                continue
            converted = self._complex_value(complex_prop, value)
            if converted or isinstance(converted, (GeoPoint, DocumentReference)):
                data[complex_prop.name] = converted

    def _complex_value(self, complex_prop: ComplexPropertyDescriptor, value: Any) -> Any:
        if complex_prop.is_reference:
            return self.value_reference(value, complex_prop.reference_property)
        if complex_prop.is_geo_point:
            return self.to_geo_point(value)
        return self.serialize_complex(value)

    def _write_arrays(
        self, entry: ChangeEntry, descriptor: EntityTypeDescriptor, data: dict[str, Any]
    ) -> None:
        for array in descriptor.array_ofs.values():
            value = entry.get_current_value(array.name)
            if not value:
                continue
            present = [v for v in value if v is not None]
            if array.kind is ArrayKind.EMBEDDED:
                items = [self.serialize_complex(v) for v in present]
            elif array.kind is ArrayKind.GEO_POINT:
                items = [self.to_geo_point(v) for v in present]
            elif array.kind is ArrayKind.REFERENCE:
                items = [p for v in present if (p := self.entity_pointer(v)) is not None]
            else:
                items = self._converter.to_store(present)
            if items:
                data[array.name] = items

    def _write_maps(
        self, entry: ChangeEntry, descriptor: EntityTypeDescriptor, data: dict[str, Any]
    ) -> None:
        for map_of in descriptor.map_ofs.values():
            value = entry.get_current_value(map_of.name)
            if not value:
                continue
            items = {
                str(self._converter.to_store(k)): self.serialize_complex(v)
                for k, v in value.items()
                if v is not None
            }
            if items:
                data[map_of.name] = items

    def _write_references(
        self,
        entry: ChangeEntry,
        descriptor: EntityTypeDescriptor,
        data: dict[str, Any],
        is_child: bool,
    ) -> None:
        owner = self._model.parent_navigation(descriptor) if is_child else None
        for nav in descriptor.navigations.values():
            if nav.is_subcollection:
                continue
            if owner is not None and issubclass(owner[0].cls, nav.target):
                continue
            if self._model.is_inverse_of_array_reference(descriptor, nav):
                continue
            value = entry.get_current_value(nav.name)
            if value is None:
                continue
            if nav.is_collection:
                pointers = [
                    p for v in value if v is not None
                    if (p := self.entity_pointer(v)) is not None
                ]
                if pointers:
                    data[nav.name] = pointers
            else:
                pointer = self.entity_pointer(value)
                if pointer is not None:
                    data[nav.name] = pointer

    def _write_foreign_keys(
        self, entry: ChangeEntry, descriptor: EntityTypeDescriptor, data: dict[str, Any]
    ) -> None:
        for fk in descriptor.foreign_keys:
            if not fk.principal_has_collection or fk.reference_name in data:
                continue
            if len(fk.properties) != 1:
                raise CompositeKeyError(
                    f"Composite foreign key {fk.properties} is not supported",
                    entity_type=descriptor.name,
                )
            value = entry.get_current_value(fk.properties[0])
            if is_unset_key(value):
                continue
            data[fk.reference_name] = DocumentReference.root(
                self._model.collection_name(fk.principal), key_to_document_id(value)
            )

    def _write_join_references(
        self,
        entry: ChangeEntry,
        descriptor: EntityTypeDescriptor,
        data: dict[str, Any],
        document_id: str | None,
    ) -> None:
        if not descriptor.skip_navigations:
            return
        if document_id is None:
            key = entry.get_current_value(descriptor.primary_key.name)
            if is_unset_key(key):
                return
            document_id = key_to_document_id(key)
        for skip in descriptor.skip_navigations.values():
            related = entry.get_current_value(skip.name)
            if not related:
                continue
            collection = self._model.join_collection_name(descriptor, skip)
            pointers = [
                DocumentReference.root(collection, f"{document_id}_{target_id}")
                for target in related
                if (target_id := self.entity_key(target)) is not None
            ]
            if pointers:
                data[collection] = pointers

    # ── values ───────────────────────────────────────────────────

    def entity_key(self, entity: Any) -> str | None:
        """Document id of a related entity, ``None`` while its key is unset."""
        descriptor = self._model.get_entity_type(type(entity))
        try:
            key = descriptor.primary_key
        except MissingPrimaryKeyError as exc:
            raise MissingReferenceKeyError(
                "Referenced entity type declares no key", entity_type=descriptor.name
            ) from exc
        value = getattr(entity, key.name, None)
        return None if is_unset_key(value) else key_to_document_id(value)

    def entity_pointer(self, entity: Any) -> DocumentReference | None:
        document_id = self.entity_key(entity)
        if document_id is None:
            return None
        return DocumentReference.root(
            self._model.collection_name(type(entity)), document_id
        )

    def value_reference(
        self, value: Any, reference_property: str | None = None
    ) -> DocumentReference:
        """Pointer for an embedded value that identifies another document."""
        cls = type(value)
        if self._model.find_entity_type(cls) is not None and reference_property is None:
            pointer = self.entity_pointer(value)
            if pointer is None:
                raise MissingReferenceKeyError(
                    "Referenced value has no key", entity_type=cls.__name__
                )
            return pointer
        name = reference_property or _conventional_key(cls)
        if name is None:
            raise MissingReferenceKeyError(
                "Cannot find an id member on referenced type", entity_type=cls.__name__
            )
        key = getattr(value, name, None)
        if is_unset_key(key):
            raise MissingReferenceKeyError(
                f"Reference member '{name}' is unset", entity_type=cls.__name__
            )
        return DocumentReference.root(
            self._model.collection_name(cls), key_to_document_id(key)
        )

    def to_geo_point(self, value: Any) -> GeoPoint:
        if isinstance(value, GeoPoint):
            return value
        names = geo_member_names(type(value))
        if names is None:
            raise GeoPointMappingError(
                "Type exposes no latitude/longitude members",
                entity_type=type(value).__name__,
            )
        lat, lon = names
        latitude, longitude = getattr(value, lat), getattr(value, lon)
        if latitude is None or longitude is None:
            raise GeoPointMappingError(
                f"Geo point is missing {lat if latitude is None else lon}",
                entity_type=type(value).__name__,
            )
        return GeoPoint(float(latitude), float(longitude))

    def serialize_complex(self, value: Any) -> dict[str, Any]:
        """Embedded map of a value object; entity members become pointers."""
        result: dict[str, Any] = {}
        for name, member in members_of(value):
            converted = self._nested_value(member)
            if converted is None or (isinstance(converted, (list, dict)) and not converted):
                continue
            result[name] = converted
        return result

    def _nested_value(self, value: Any) -> Any:
        if value is None:
            return None
        if self._model.is_entity(value):
            return self.entity_pointer(value)
        if isinstance(value, (GeoPoint, DocumentReference)):
            return value
        if isinstance(value, _SEQUENCES):
            items = (self._nested_value(v) for v in value)
            return [i for i in items if i is not None]
        if isinstance(value, Mapping):
            return {
                str(self._converter.to_store(k)): nested
                for k, v in value.items()
                if (nested := self._nested_value(v)) is not None
            }
        cls = type(value)
        if is_scalar_type(cls):
            return self._converter.to_store(value)
        if geo_member_names(cls) is not None:
            return self.to_geo_point(value)
        if is_complex_type(cls):
            return self.serialize_complex(value)
        return self._converter.to_store(value)


def _conventional_key(cls: type) -> str | None:
    names = {n.lower(): n for n in member_names(cls)}
    for candidate in ("id", f"{snake_case(cls.__name__)}_id", f"{cls.__name__.lower()}id"):
        if candidate in names:
            return names[candidate]
    return None
