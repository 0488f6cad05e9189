"""Model metadata: descriptors, registry and fluent builder."""

from .builder import EntityTypeBuilder, ModelBuilder
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

__all__ = [
    "ArrayKind",
    "ArrayOfDescriptor",
    "ComplexPropertyDescriptor",
    "EntityTypeBuilder",
    "EntityTypeDescriptor",
    "ForeignKeyDescriptor",
    "MapOfDescriptor",
    "ModelBuilder",
    "ModelMetadata",
    "NavigationDescriptor",
    "PropertyDescriptor",
    "SkipNavigationDescriptor",
    "default_collection_name",
]
