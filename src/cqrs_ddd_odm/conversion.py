"""ValueConverter: scalar conversion between entity values and store values."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from bson import Decimal128, Timestamp

from .bindings import BindingTable, assign
from .exceptions import GeoPointMappingError, MaterializationError
from .references import DocumentReference, GeoPoint
from .utils import (
    LATITUDE_NAMES,
    LONGITUDE_NAMES,
    collection_shape,
    geo_member_names,
    is_class,
    is_complex_type,
    is_enum_type,
    mapping_shape,
    member_names,
    unwrap_optional,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("cqrs_ddd.odm.conversion")

_TICKS_PER_MICROSECOND = 10
_SEQUENCES = (list, tuple, set, frozenset)


def to_ticks(value: timedelta) -> int:
    """Duration as a count of 100ns ticks."""
    return (value // timedelta(microseconds=1)) * _TICKS_PER_MICROSECOND


def from_ticks(ticks: int) -> timedelta:
    return timedelta(microseconds=ticks // _TICKS_PER_MICROSECOND)


class ValueConverter:
    """Stateless two-way scalar conversion.

    Outbound values are reduced to what a document store can hold; inbound
    values are coerced back to the declared Python type.
    """

    def __init__(self, bindings: BindingTable | None = None) -> None:
        self._bindings = bindings if bindings is not None else BindingTable()

    # ── outbound ─────────────────────────────────────────────────

    def to_store(self, value: Any, enum_type: type[Enum] | None = None) -> Any:
        if value is None:
            return None
        if isinstance(value, Enum):
            return value.name
        if isinstance(value, bool):
            return value
        if enum_type is not None and isinstance(value, int):
            return enum_type(value).name
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, datetime):
            return value.astimezone(timezone.utc)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        if isinstance(value, time):
            return value.isoformat()
        if isinstance(value, timedelta):
            return to_ticks(value)
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, _SEQUENCES):
            return [self.to_store(v, enum_type) for v in value if v is not None]
        if isinstance(value, Mapping):
            return {
                str(self.to_store(k)): self.to_store(v, enum_type)
                for k, v in value.items()
            }
        return value

    # ── inbound ──────────────────────────────────────────────────

    def from_store(self, value: Any, target: Any) -> Any:
        """Convert a stored value to ``target``; raises TypeError/ValueError."""
        if value is None:
            return None
        target, _ = unwrap_optional(target)
        if target is Any or target is object:
            return value
        if isinstance(value, DocumentReference):
            # pointers only survive when the slot itself holds pointers
            return value if target is DocumentReference else None
        shape = collection_shape(target)
        if shape is not None:
            container, element = shape
            if not isinstance(value, _SEQUENCES):
                raise TypeError(f"Expected an array for {target}, got {value!r}")
            return container(self.from_store(v, element) for v in value)
        map_shape = mapping_shape(target)
        if map_shape is not None:
            key_type, value_type = map_shape
            if not isinstance(value, Mapping):
                raise TypeError(f"Expected a map for {target}, got {value!r}")
            return {
                self.from_store(k, key_type): self.from_store(v, value_type)
                for k, v in value.items()
            }
        if not is_class(target):
            return value
        if isinstance(value, GeoPoint):
            return value if target is GeoPoint else self.to_geo_type(value, target)
        if isinstance(value, Timestamp):
            value = value.as_datetime()
        elif isinstance(value, Decimal128):
            value = value.to_decimal()
        if is_enum_type(target):
            return self._to_enum(value, target)
        scalar = self._to_scalar(value, target)
        if scalar is not _NO_MATCH:
            return scalar
        if isinstance(value, Mapping) and is_complex_type(target):
            return self.to_complex(value, target)
        if isinstance(value, target):
            return value
        raise TypeError(f"Cannot convert {type(value).__name__} to {target.__name__}")

    def _to_scalar(self, value: Any, target: type) -> Any:
        numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
        if target is bool:
            if isinstance(value, bool):
                return value
            raise TypeError(f"Cannot convert {value!r} to bool")
        if target is Decimal:
            if isinstance(value, Decimal):
                return value
            if numeric or isinstance(value, str):
                return Decimal(str(value))
        elif target is int:
            if numeric and float(value).is_integer():
                return int(value)
            if isinstance(value, str):
                return int(value)
        elif target is float:
            if numeric or isinstance(value, (str, Decimal)):
                return float(value)
        elif target is str:
            if isinstance(value, str):
                return value
            if numeric or isinstance(value, (Decimal, UUID)):
                return str(value)
        elif target is UUID:
            if isinstance(value, UUID):
                return value
            if isinstance(value, str):
                return UUID(value)
        elif target is datetime:
            if isinstance(value, datetime):
                return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
            if isinstance(value, str):
                return datetime.fromisoformat(value)
        elif target is date:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
        elif target is time:
            if isinstance(value, str):
                return time.fromisoformat(value)
        elif target is timedelta:
            if isinstance(value, timedelta):
                return value
            if isinstance(value, int) and not isinstance(value, bool):
                return from_ticks(value)
        return _NO_MATCH

    @staticmethod
    def _to_enum(value: Any, target: type[Enum]) -> Enum:
        if isinstance(value, target):
            return value
        if isinstance(value, str):
            for member in target:
                if member.name.lower() == value.lower():
                    return member
        return target(value)

    # ── geo points and embedded values ───────────────────────────

    def to_geo_type(self, point: GeoPoint, target: type) -> Any:
        """Materialize a stored point into a point-like ``target`` type."""
        names = geo_member_names(target)
        if names is None:
            raise GeoPointMappingError(
                f"{target.__name__} exposes no latitude/longitude members",
                entity_type=target.__name__,
            )
        data: dict[str, Any] = dict.fromkeys(LATITUDE_NAMES, point.latitude)
        data.update(dict.fromkeys(LONGITUDE_NAMES, point.longitude))
        binding = self._bindings.get(target)
        built = binding.construct(data, self.from_store)
        if built is not None:
            return built[0]
        lat, lon = names
        if not (binding.default_constructible and binding.is_writable(lat)):
            raise GeoPointMappingError(
                f"Cannot construct {target.__name__} from a geo point",
                entity_type=target.__name__,
            )
        instance = binding.instantiate()
        assign(instance, lat, self.from_store(point.latitude, binding.member_type(lat)))
        assign(instance, lon, self.from_store(point.longitude, binding.member_type(lon)))
        return instance

    def to_complex(
        self,
        data: Mapping[str, Any],
        target: type,
        convert: Callable[[Any, Any], Any] | None = None,
    ) -> Any:
        """Materialize an embedded map, constructor first, then member setters."""
        convert = convert or self.from_store
        binding = self._bindings.get(target)
        built = binding.construct(data, convert)
        if built is not None:
            instance, consumed = built
        elif binding.default_constructible:
            instance, consumed = binding.instantiate(), frozenset()
        else:
            raise MaterializationError(
                f"No usable constructor for {target.__name__} given {sorted(data)}"
            )
        by_lower = {name.lower(): name for name in member_names(target)}
        for key, raw in data.items():
            name = by_lower.get(key.lower())
            if name is None or key.lower() in consumed or not binding.is_writable(name):
                continue
            try:
                assign(instance, name, convert(raw, binding.member_type(name)))
            except (
                TypeError,
                ValueError,
                ArithmeticError,
                MaterializationError,
                GeoPointMappingError,
            ) as exc:
                logger.debug("Skipped %s.%s: %s", target.__name__, name, exc)
        return instance


class _NoMatch:
    __slots__ = ()


_NO_MATCH: Any = _NoMatch()
