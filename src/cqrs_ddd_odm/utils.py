"""Type-shape helpers shared by model discovery, conversion and binding."""

from __future__ import annotations

import dataclasses
import functools
import inspect
import re
import types
from collections.abc import (
    Collection,
    Iterable,
    Mapping,
    MutableMapping,
    MutableSequence,
    MutableSet,
    Sequence,
)
from collections.abc import Set as AbstractSet
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union, get_args, get_origin, get_type_hints
from uuid import UUID

from pydantic import BaseModel

from .references import DocumentReference, GeoPoint

SCALAR_TYPES: tuple[type, ...] = (
    str,
    int,
    float,
    bool,
    bytes,
    Decimal,
    datetime,
    date,
    time,
    timedelta,
    UUID,
    DocumentReference,
    GeoPoint,
)

LATITUDE_NAMES = ("latitude", "latitud", "lat")
LONGITUDE_NAMES = ("longitude", "longitud", "lng", "lon")

_LIST_ORIGINS = (list, Sequence, MutableSequence, Collection, Iterable)
_SET_ORIGINS = (set, AbstractSet, MutableSet)
_MAP_ORIGINS = (dict, Mapping, MutableMapping)


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Strip ``None`` from a union; return ``(inner type, nullable)``."""
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = get_args(tp)
        inner = [a for a in args if a is not type(None)]
        nullable = len(inner) != len(args)
        if len(inner) == 1:
            return inner[0], nullable
        return tp, nullable
    return tp, tp is Any or tp is None or tp is type(None)


def collection_shape(tp: Any) -> tuple[type, Any] | None:
    """``(container, element type)`` for list/set/tuple-like hints, else None."""
    tp, _ = unwrap_optional(tp)
    if tp in (list, set, frozenset, tuple):
        return tp, Any
    origin = get_origin(tp)
    if origin is None:
        return None
    if origin in _LIST_ORIGINS:
        container: type = list
    elif origin in _SET_ORIGINS:
        container = set
    elif origin is frozenset:
        container = frozenset
    elif origin is tuple:
        container = tuple
    else:
        return None
    args = get_args(tp)
    return container, (args[0] if args else Any)


def mapping_shape(tp: Any) -> tuple[Any, Any] | None:
    """``(key type, value type)`` for dict-like hints, else None."""
    tp, _ = unwrap_optional(tp)
    if tp is dict:
        return Any, Any
    if get_origin(tp) in _MAP_ORIGINS:
        args = get_args(tp)
        return (args[0], args[1]) if len(args) == 2 else (Any, Any)
    return None


def is_class(tp: Any) -> bool:
    """A concrete class; parametrized generics such as ``list[int]`` excluded."""
    return isinstance(tp, type) and get_origin(tp) is None


def is_enum_type(tp: Any) -> bool:
    return is_class(tp) and issubclass(tp, Enum)


def is_scalar_type(tp: Any) -> bool:
    tp, _ = unwrap_optional(tp)
    if tp is Any:
        return True
    return is_class(tp) and (issubclass(tp, SCALAR_TYPES) or is_enum_type(tp))


def is_complex_type(tp: Any) -> bool:
    """A user-defined class that is stored as an embedded map."""
    tp, _ = unwrap_optional(tp)
    if not is_class(tp) or is_scalar_type(tp):
        return False
    if tp in (object, list, dict, set, frozenset, tuple):
        return False
    return dataclasses.is_dataclass(tp) or bool(member_names(tp))


@functools.lru_cache(maxsize=None)
def type_hints(tp: type) -> dict[str, Any]:
    """Resolved annotations of ``tp`` without ``ClassVar`` entries."""
    try:
        hints = get_type_hints(tp)
    except (NameError, TypeError):
        hints = dict(getattr(tp, "__annotations__", {}))
    return {n: h for n, h in hints.items() if get_origin(h) is not ClassVar}


@functools.lru_cache(maxsize=None)
def member_names(tp: type) -> tuple[str, ...]:
    """Public data members of a class, in declaration order."""
    if dataclasses.is_dataclass(tp):
        return tuple(f.name for f in dataclasses.fields(tp))
    if issubclass(tp, BaseModel):
        return tuple(tp.model_fields)
    names = [n for n in type_hints(tp) if not n.startswith("_")]
    if names:
        return tuple(names)
    try:
        params = inspect.signature(tp).parameters.values()
    except (TypeError, ValueError):
        return ()
    return tuple(
        p.name
        for p in params
        if p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
        and not p.name.startswith("_")
    )


def geo_member_names(tp: Any) -> tuple[str, str] | None:
    """Latitude/longitude member names of a point-like type, matched by alias."""
    tp, _ = unwrap_optional(tp)
    if not is_class(tp) or tp is GeoPoint:
        return None
    by_lower = {name.lower(): name for name in member_names(tp)}
    lat = next((by_lower[a] for a in LATITUDE_NAMES if a in by_lower), None)
    lon = next((by_lower[a] for a in LONGITUDE_NAMES if a in by_lower), None)
    if lat is None or lon is None:
        return None
    return lat, lon


def members_of(obj: Any) -> list[tuple[str, Any]]:
    """Current ``(name, value)`` pairs of a complex value instance."""
    cls = type(obj)
    if dataclasses.is_dataclass(obj):
        return [(f.name, getattr(obj, f.name)) for f in dataclasses.fields(obj)]
    if isinstance(obj, BaseModel):
        return [(name, getattr(obj, name)) for name in cls.model_fields]
    pairs = [(k, v) for k, v in vars(obj).items() if not k.startswith("_")]
    seen = {k for k, _ in pairs}
    for name, attr in inspect.getmembers(cls, lambda a: isinstance(a, property)):
        if not name.startswith("_") and name not in seen:
            pairs.append((name, getattr(obj, name)))
    return pairs


def snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def pluralize(word: str) -> str:
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"
