"""Precomputed constructor and member bindings per materialized type.

Each type is inspected once; materialization afterwards only walks the
cached tables.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, get_type_hints

from pydantic import BaseModel

from .exceptions import GeoPointMappingError, MaterializationError
from .utils import type_hints, unwrap_optional

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

logger = logging.getLogger("cqrs_ddd.odm.bindings")

# Nested values that cannot be built reject the constructor, not the read.
_ARGUMENT_ERRORS = (
    TypeError,
    ValueError,
    ArithmeticError,
    MaterializationError,
    GeoPointMappingError,
)


@dataclass(frozen=True)
class ParameterBinding:
    name: str
    annotation: Any
    has_default: bool
    nullable: bool

    @property
    def lookup(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class ConstructorBinding:
    factory: Callable[..., Any]
    parameters: tuple[ParameterBinding, ...]

    def resolve(self, keys: Mapping[str, str]) -> dict[str, str | None] | None:
        """Map every parameter to a data key, or ``None`` for default/null.

        Returns ``None`` when a required, non-nullable parameter has no data
        or when no argument at all would come from data.
        """
        plan: dict[str, str | None] = {}
        from_data = 0
        for param in self.parameters:
            key = keys.get(param.lookup)
            if key is not None:
                plan[param.name] = key
                from_data += 1
            elif param.has_default or param.nullable:
                plan[param.name] = None
            else:
                return None
        return plan if from_data else None


class TypeBinding:
    """Constructor candidates and member writability for one class."""

    def __init__(self, cls: type, factories: Iterable[Callable[..., Any]] = ()) -> None:
        self.cls = cls
        self.member_types = type_hints(cls)
        candidates = [_bind_callable(cls), *(_bind_callable(f) for f in factories)]
        self.constructors = tuple(
            sorted(
                (c for c in candidates if c is not None and c.parameters),
                key=lambda c: len(c.parameters),
                reverse=True,
            )
        )
        own = candidates[0]
        self.default_constructible = own is None or all(
            p.has_default for p in own.parameters
        )
        self._frozen = _is_frozen(cls)

    def construct(
        self, data: Mapping[str, Any], convert: Callable[[Any, Any], Any]
    ) -> tuple[Any, frozenset[str]] | None:
        """Build an instance through the widest satisfiable constructor.

        Returns the instance and the lower-cased data keys it consumed.
        """
        keys: dict[str, str] = {}
        for key in data:
            keys.setdefault(key.lower(), key)
        for ctor in self.constructors:
            plan = ctor.resolve(keys)
            if plan is None:
                continue
            kwargs: dict[str, Any] = {}
            try:
                for param in ctor.parameters:
                    key = plan[param.name]
                    if key is not None:
                        kwargs[param.name] = convert(data[key], param.annotation)
                    elif not param.has_default:
                        kwargs[param.name] = None
                instance = ctor.factory(**kwargs)
            except _ARGUMENT_ERRORS as exc:
                logger.debug(
                    "Constructor %s rejected arguments: %s",
                    getattr(ctor.factory, "__qualname__", ctor.factory),
                    exc,
                )
                continue
            consumed = frozenset(k.lower() for k in plan.values() if k is not None)
            return instance, consumed
        return None

    def instantiate(self) -> Any:
        """Call the parameterless constructor."""
        return self.cls()

    def is_writable(self, name: str) -> bool:
        attr = inspect.getattr_static(self.cls, name, None)
        if isinstance(attr, property):
            return attr.fset is not None
        return not self._frozen

    def member_type(self, name: str) -> Any:
        return self.member_types.get(name, Any)


class BindingTable:
    """Lazily filled ``type -> TypeBinding`` cache."""

    def __init__(self) -> None:
        self._bindings: dict[type, TypeBinding] = {}

    def register(
        self, cls: type, factories: Iterable[Callable[..., Any]] = ()
    ) -> TypeBinding:
        binding = TypeBinding(cls, factories)
        self._bindings[cls] = binding
        return binding

    def get(self, cls: type) -> TypeBinding:
        binding = self._bindings.get(cls)
        if binding is None:
            binding = self.register(cls)
        return binding


def assign(instance: Any, name: str, value: Any) -> None:
    """Set a member, falling back to a raw write for frozen instances."""
    try:
        setattr(instance, name, value)
    except (AttributeError, TypeError, ValueError):
        object.__setattr__(instance, name, value)


def _is_frozen(cls: type) -> bool:
    if dataclasses.is_dataclass(cls):
        return bool(cls.__dataclass_params__.frozen)  # type: ignore[attr-defined]
    if issubclass(cls, BaseModel):
        return bool(cls.model_config.get("frozen"))
    return False


def _bind_callable(factory: Callable[..., Any]) -> ConstructorBinding | None:
    try:
        signature = inspect.signature(factory)
    except (TypeError, ValueError):
        return None
    hints = _parameter_hints(factory)
    params = []
    for p in signature.parameters.values():
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD, p.POSITIONAL_ONLY):
            continue
        annotation = hints.get(p.name, p.annotation)
        if annotation is inspect.Parameter.empty or isinstance(annotation, str):
            annotation = Any
        _, nullable = unwrap_optional(annotation)
        params.append(
            ParameterBinding(
                name=p.name,
                annotation=annotation,
                has_default=p.default is not inspect.Parameter.empty,
                nullable=nullable,
            )
        )
    return ConstructorBinding(factory=factory, parameters=tuple(params))


def _parameter_hints(factory: Callable[..., Any]) -> dict[str, Any]:
    if inspect.isclass(factory):
        hints = dict(type_hints(factory))
        init = factory.__init__
        if init is not object.__init__ and not (
            dataclasses.is_dataclass(factory) or issubclass(factory, BaseModel)
        ):
            try:
                hints.update(get_type_hints(init))
            except (NameError, TypeError):
                pass
        return hints
    try:
        return get_type_hints(factory)
    except (NameError, TypeError):
        return {}
