"""cqrs_ddd_odm: typed entities persisted as hierarchical documents."""

from .conversion import ValueConverter
from .core import (
    ChangeSetOrchestrator,
    DocumentDeserializer,
    EntitySerializer,
    ExecutionStrategy,
    FieldStatus,
    MaterializationReport,
    Materialized,
    PathResolver,
    RelatedEntities,
    Transaction,
    TransactionManager,
    TransactionState,
)
from .diagnostics import CommandLogger
from .exceptions import (
    CompositeKeyError,
    ConfigurationError,
    DocumentExistsError,
    DocumentWriteError,
    FaultStatus,
    GeoPointMappingError,
    MaterializationError,
    MissingPrimaryKeyError,
    MissingReferenceKeyError,
    OdmError,
    OperationCancelledError,
    RetryLimitExceededError,
    StoreError,
    SubcollectionCycleError,
    TransactionStateError,
    TransientStoreError,
    UnknownEntityTypeError,
    UntrackedParentError,
)
from .ids import DocumentIdGenerator, IIDGenerator
from .metadata import ModelBuilder, ModelMetadata
from .options import OdmOptions, RetryOptions
from .references import DocumentReference, GeoPoint
from .session import DocumentSession
from .store import DELETE_FIELD, DocumentSnapshot, DocumentStore, InMemoryDocumentStore
from .tracking import ChangeEntry, ChangeTracker, EntityState

__all__ = [
    "DELETE_FIELD",
    "ChangeEntry",
    "ChangeSetOrchestrator",
    "ChangeTracker",
    "CommandLogger",
    "CompositeKeyError",
    "ConfigurationError",
    "DocumentDeserializer",
    "DocumentExistsError",
    "DocumentIdGenerator",
    "DocumentReference",
    "DocumentSession",
    "DocumentSnapshot",
    "DocumentStore",
    "DocumentWriteError",
    "EntitySerializer",
    "EntityState",
    "ExecutionStrategy",
    "FaultStatus",
    "FieldStatus",
    "GeoPoint",
    "GeoPointMappingError",
    "IIDGenerator",
    "InMemoryDocumentStore",
    "MaterializationError",
    "MaterializationReport",
    "Materialized",
    "MissingPrimaryKeyError",
    "MissingReferenceKeyError",
    "ModelBuilder",
    "ModelMetadata",
    "OdmError",
    "OdmOptions",
    "OperationCancelledError",
    "PathResolver",
    "RelatedEntities",
    "RetryLimitExceededError",
    "RetryOptions",
    "StoreError",
    "SubcollectionCycleError",
    "Transaction",
    "TransactionManager",
    "TransactionState",
    "TransactionStateError",
    "TransientStoreError",
    "UnknownEntityTypeError",
    "UntrackedParentError",
    "ValueConverter",
]
