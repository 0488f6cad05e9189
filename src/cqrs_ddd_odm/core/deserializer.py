"""DocumentDeserializer: raw documents back into typed entity graphs.

Relationships are resolved only through the caller-supplied
:class:`RelatedEntities`; anything missing from it stays unloaded. A field
that cannot be converted is logged, recorded in the
:class:`MaterializationReport` and left at its default, so one bad value
never aborts the whole read.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ..bindings import BindingTable, assign
from ..conversion import ValueConverter
from ..exceptions import GeoPointMappingError, MaterializationError
from ..options import OdmOptions
from ..references import DocumentReference, GeoPoint
from ..utils import (
    LATITUDE_NAMES,
    LONGITUDE_NAMES,
    collection_shape,
    geo_member_names,
    is_class,
    is_complex_type,
    mapping_shape,
    unwrap_optional,
)

if TYPE_CHECKING:
    from ..bindings import TypeBinding
    from ..metadata import EntityTypeDescriptor, ModelMetadata
    from ..store.ports import DocumentSnapshot

logger = logging.getLogger("cqrs_ddd.odm.deserializer")

T = TypeVar("T")

_SEQUENCES = (list, tuple, set, frozenset)
_CONVERSION_ERRORS = (
    TypeError,
    ValueError,
    ArithmeticError,
    MaterializationError,
    GeoPointMappingError,
)


class FieldStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class FieldOutcome:
    path: str
    status: FieldStatus
    reason: str | None = None


@dataclass
class MaterializationReport:
    """Per-member outcomes of one materialization."""

    outcomes: list[FieldOutcome] = field(default_factory=list)

    def record(self, path: str, status: FieldStatus, reason: str | None = None) -> None:
        self.outcomes.append(FieldOutcome(path, status, reason))

    def outcome(self, path: str) -> FieldOutcome | None:
        """Latest outcome recorded for ``path``."""
        for item in reversed(self.outcomes):
            if item.path == path:
                return item
        return None

    def _with(self, status: FieldStatus) -> list[FieldOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def succeeded(self) -> list[FieldOutcome]:
        return self._with(FieldStatus.SUCCESS)

    @property
    def skipped(self) -> list[FieldOutcome]:
        return self._with(FieldStatus.SKIPPED)

    @property
    def failed(self) -> list[FieldOutcome]:
        return self._with(FieldStatus.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class Materialized(Generic[T]):
    entity: T
    report: MaterializationReport


class RelatedEntities:
    """Read-only lookup from document path to an already materialized entity."""

    def __init__(self, entities: Mapping[str, Any] | None = None) -> None:
        self._by_path: Mapping[str, Any] = MappingProxyType(dict(entities or {}))
        by_id: dict[str, list[Any]] = {}
        for path, entity in self._by_path.items():
            by_id.setdefault(path.rsplit("/", 1)[-1], []).append(entity)
        self._by_id = by_id

    @classmethod
    def coerce(cls, value: RelatedEntities | Mapping[str, Any] | None) -> RelatedEntities:
        return value if isinstance(value, RelatedEntities) else cls(value)

    def __len__(self) -> int:
        return len(self._by_path)

    def resolve(
        self, reference: DocumentReference, expected: type | None = None
    ) -> Any | None:
        """Entity at ``reference``, falling back to a match on the trailing id."""
        exact = self._by_path.get(reference.path)
        if exact is not None:
            return exact
        for entity in self._by_id.get(reference.id, ()):
            if expected is None or isinstance(entity, expected):
                return entity
        return None

    def children_of(self, parent: DocumentReference, collection: str) -> list[Any]:
        """Entities stored directly in ``parent/collection``, grandchildren excluded."""
        prefix = f"{parent.path}/{collection}/"
        return [
            entity
            for path, entity in self._by_path.items()
            if path.startswith(prefix) and "/" not in path[len(prefix) :]
        ]


class DocumentDeserializer:
    """Materializes entities with constructor-first binding."""

    def __init__(
        self,
        model: ModelMetadata,
        converter: ValueConverter | None = None,
        *,
        options: OdmOptions | None = None,
    ) -> None:
        self._model = model
        self._bindings = BindingTable()
        for descriptor in model.entity_types:
            self._bindings.register(descriptor.cls, descriptor.factories)
        self._converter = converter or ValueConverter(self._bindings)
        self._options = options or OdmOptions()

    def deserialize(
        self,
        cls: type[T],
        document: DocumentSnapshot,
        related: RelatedEntities | Mapping[str, Any] | None = None,
    ) -> T:
        return self.deserialize_with_report(cls, document, related).entity

    def deserialize_with_report(
        self,
        cls: type[T],
        document: DocumentSnapshot,
        related: RelatedEntities | Mapping[str, Any] | None = None,
    ) -> Materialized[T]:
        report = MaterializationReport()
        entity = _Materialization(
            self, cls, document, RelatedEntities.coerce(related), report
        ).run()
        return Materialized(entity, report)


class _Materialization:
    """State of a single document read."""

    def __init__(
        self,
        owner: DocumentDeserializer,
        cls: type,
        document: DocumentSnapshot,
        related: RelatedEntities,
        report: MaterializationReport,
    ) -> None:
        self.model = owner._model
        self.converter = owner._converter
        self.descriptor: EntityTypeDescriptor = owner._model.get_entity_type(cls)
        self.binding: TypeBinding = owner._bindings.get(cls)
        self.cls = cls
        self.document = document
        self.related = related
        self.report = report
        ignored = owner._options.timestamp_fields
        self.data = {k: v for k, v in document.data.items() if k not in ignored}
        self.consumed: frozenset[str] = frozenset()
        self.entity: Any = None

    def run(self) -> Any:
        self._construct()
        self._read_key()
        self._read_scalars()
        self._read_complex()
        self._read_arrays()
        self._read_maps()
        self._read_references()
        self._read_foreign_keys()
        self._read_join_references()
        self._read_subcollections()
        return self.entity

    # ── steps ────────────────────────────────────────────────────

    def _construct(self) -> None:
        key = self.descriptor.primary_key
        arguments = dict(self.data)
        arguments[key.name] = self.document.id
        built = self.binding.construct(arguments, self.convert)
        if built is not None:
            self.entity, self.consumed = built
            for name in sorted(self.consumed):
                self.report.record(name, FieldStatus.SUCCESS, "constructor")
            return
        if not self.binding.default_constructible:
            raise MaterializationError(
                f"No usable constructor for {self.cls.__name__} "
                f"from document {self.document.path}"
            )
        self.entity = self.binding.instantiate()

    def _read_key(self) -> None:
        key = self.descriptor.primary_key
        if key.name.lower() not in self.consumed:
            self._read_field(key.name, self.document.id, key.python_type)

    def _read_scalars(self) -> None:
        for prop in self.descriptor.properties.values():
            if prop.is_primary_key or prop.is_shadow or prop.is_foreign_key:
                continue
            self._read_member(prop.name, prop.python_type, prop.is_collection)

    def _read_complex(self) -> None:
        for complex_prop in self.descriptor.complex_properties.values():
            name = complex_prop.name
            hint = self.binding.member_type(name)
            if hint is Any:
                value_type = complex_prop.python_type
                hint = list[value_type] if complex_prop.is_collection else value_type
            if complex_prop.is_reference:
                self._read_value_reference(name, complex_prop.python_type, hint)
            else:
                self._read_member(name, hint, complex_prop.is_collection)

    def _read_arrays(self) -> None:
        for array in self.descriptor.array_ofs.values():
            hint = self.binding.member_type(array.name)
            if hint is Any:
                hint = list[array.element_type]
            self._read_member(array.name, hint, True)

    def _read_maps(self) -> None:
        for map_of in self.descriptor.map_ofs.values():
            hint = self.binding.member_type(map_of.name)
            if hint is Any:
                hint = dict[map_of.key_type, map_of.element_type]
            self._read_member(map_of.name, hint, True)

    def _read_references(self) -> None:
        for nav in self.descriptor.navigations.values():
            if nav.is_subcollection or nav.name.lower() in self.consumed:
                continue
            raw = self.data.get(nav.name)
            if nav.is_collection:
                if not isinstance(raw, _SEQUENCES):
                    self._ensure_empty(nav.name)
                    continue
                items = [
                    found
                    for ref in raw
                    if isinstance(ref, DocumentReference)
                    if (found := self.related.resolve(ref, nav.target)) is not None
                ]
                self._set(nav.name, self._shape(nav.name, items))
                continue
            if not isinstance(raw, DocumentReference):
                continue
            if getattr(self.entity, nav.name, None) is not None:
                continue
            target = self.related.resolve(raw, nav.target)
            if target is None:
                self.report.record(nav.name, FieldStatus.SKIPPED, "not loaded")
            else:
                self._set(nav.name, target)

    def _read_foreign_keys(self) -> None:
        for fk in self.descriptor.foreign_keys:
            raw = self.data.get(fk.reference_name)
            if not isinstance(raw, DocumentReference) or len(fk.properties) != 1:
                continue
            name = fk.properties[0]
            prop = self.descriptor.properties.get(name)
            if prop is None or prop.is_shadow or name.lower() in self.consumed:
                continue
            if getattr(self.entity, name, None) is None:
                self._read_field(name, raw.id, prop.python_type)

    def _read_join_references(self) -> None:
        prefix = f"{self.document.id}_"
        for skip in self.descriptor.skip_navigations.values():
            raw = self.data.get(self.model.join_collection_name(self.descriptor, skip))
            if not isinstance(raw, _SEQUENCES):
                self._ensure_empty(skip.name)
                continue
            collection = self.model.collection_name(skip.target)
            items = []
            for ref in raw:
                if not isinstance(ref, DocumentReference) or not ref.id.startswith(prefix):
                    continue
                target_ref = DocumentReference.root(collection, ref.id[len(prefix) :])
                found = self.related.resolve(target_ref, skip.target)
                if found is not None:
                    items.append(found)
            self._set(skip.name, self._shape(skip.name, items))

    def _read_subcollections(self) -> None:
        for nav in self.descriptor.navigations.values():
            if not nav.is_subcollection:
                continue
            children = [
                child
                for child in self.related.children_of(
                    self.document.reference, self.model.collection_name(nav.target)
                )
                if isinstance(child, nav.target)
            ]
            if nav.is_collection:
                if children:
                    self._set(nav.name, self._shape(nav.name, children))
                else:
                    self._ensure_empty(nav.name)
            elif children:
                self._set(nav.name, children[0])

    # ── members ──────────────────────────────────────────────────

    def _read_member(self, name: str, hint: Any, is_collection: bool) -> None:
        if name.lower() in self.consumed:
            return
        if name not in self.data:
            if is_collection:
                self._ensure_empty(name)
            return
        self._read_field(name, self.data[name], hint)

    def _read_value_reference(self, name: str, value_type: type, hint: Any) -> None:
        raw = self.data.get(name)
        if raw is None or name.lower() in self.consumed:
            return
        refs = raw if isinstance(raw, _SEQUENCES) else [raw]
        found = [
            v
            for r in refs
            if isinstance(r, DocumentReference)
            if (v := self.related.resolve(r, value_type)) is not None
        ]
        if isinstance(raw, _SEQUENCES):
            self._set(name, self._shape(name, found))
        elif found:
            self._set(name, found[0])
        else:
            self.report.record(name, FieldStatus.SKIPPED, "not loaded")

    def _read_field(self, name: str, raw: Any, hint: Any) -> None:
        """Converter, then raw coercion, then leave the default in place."""
        try:
            value = self.convert(raw, hint)
        except _CONVERSION_ERRORS as exc:
            try:
                value = _coerce(raw, hint)
            except _CONVERSION_ERRORS:
                logger.warning(
                    "Could not read %s.%s from %r: %s",
                    self.descriptor.name,
                    name,
                    raw,
                    exc,
                )
                self.report.record(name, FieldStatus.FAILED, str(exc))
                return
        self._set(name, value)

    def convert(self, raw: Any, annotation: Any) -> Any:
        """Annotation-driven conversion that resolves nested pointers."""
        inner, _ = unwrap_optional(annotation)
        if isinstance(raw, DocumentReference):
            if inner is DocumentReference:
                return raw
            if is_class(inner) and self.model.find_entity_type(inner) is not None:
                return self.related.resolve(raw, inner)
            return None
        shape = collection_shape(inner)
        if shape is not None and isinstance(raw, _SEQUENCES):
            container, element = shape
            items = (self.convert(v, element) for v in raw)
            return container(i for i in items if i is not None)
        map_shape = mapping_shape(inner)
        if map_shape is not None and isinstance(raw, Mapping):
            key_type, value_type = map_shape
            return {
                self.converter.from_store(k, key_type): self.convert(v, value_type)
                for k, v in raw.items()
            }
        if isinstance(raw, Mapping) and geo_member_names(inner) is not None:
            point = _geo_from_map(raw)
            if point is not None:
                return self.converter.to_geo_type(point, inner)
        if isinstance(raw, Mapping) and is_complex_type(inner):
            return self.converter.to_complex(raw, inner, convert=self.convert)
        return self.converter.from_store(raw, annotation)

    def _set(self, name: str, value: Any) -> None:
        if self.binding.is_writable(name):
            try:
                setattr(self.entity, name, value)
            except (AttributeError, TypeError, ValueError):
                pass
            else:
                self.report.record(name, FieldStatus.SUCCESS)
                return
        backing = self.descriptor.backing_field(name)
        if backing is None:
            self.report.record(name, FieldStatus.SKIPPED, "not writable")
            return
        assign(self.entity, backing, _reshape(value, self.binding.member_type(backing)))
        self.report.record(name, FieldStatus.SUCCESS, f"backing field {backing}")

    def _shape(self, name: str, items: list[Any]) -> Any:
        shape = collection_shape(self.binding.member_type(name))
        return shape[0](items) if shape is not None else list(items)

    def _ensure_empty(self, name: str) -> None:
        if getattr(self.entity, name, None) is not None:
            return
        hint = self.binding.member_type(name)
        backing = self.descriptor.backing_field(name)
        if backing is not None and getattr(self.entity, backing, None) is not None:
            return
        empty: Any = {} if mapping_shape(hint) is not None else self._shape(name, [])
        self._set(name, empty)


def _reshape(value: Any, hint: Any) -> Any:
    shape = collection_shape(hint)
    if shape is None or not isinstance(value, _SEQUENCES):
        return value
    container = shape[0]
    return value if type(value) is container else container(value)


def _coerce(raw: Any, hint: Any) -> Any:
    inner, _ = unwrap_optional(hint)
    if not is_class(inner) or isinstance(raw, (Mapping, *_SEQUENCES)):
        raise TypeError(f"Cannot coerce {raw!r} to {hint}")
    return inner(raw)


def _geo_from_map(raw: Mapping[str, Any]) -> GeoPoint | None:
    by_lower = {str(k).lower(): v for k, v in raw.items()}
    lat = next((by_lower[a] for a in LATITUDE_NAMES if a in by_lower), None)
    lon = next((by_lower[a] for a in LONGITUDE_NAMES if a in by_lower), None)
    if lat is None or lon is None:
        return None
    return GeoPoint(float(lat), float(lon))
