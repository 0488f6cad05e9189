"""Mapper core: addressing, serialization, materialization and writes."""

from .associations import AssociationSynchronizer, JoinOperation, JoinWrite
from .deserializer import (
    DocumentDeserializer,
    FieldOutcome,
    FieldStatus,
    MaterializationReport,
    Materialized,
    RelatedEntities,
)
from .execution import ExecutionStrategy
from .orchestrator import CancellationSignal, ChangeSetOrchestrator
from .paths import ParentIndex, PathResolver, is_unset_key, key_to_document_id
from .serializer import EntitySerializer
from .transaction import Transaction, TransactionManager, TransactionState
from .unit_of_work import UnitOfWork
from .writers import BatchWriter, DocumentWriter, StoreWriter

__all__ = [
    "AssociationSynchronizer",
    "BatchWriter",
    "CancellationSignal",
    "ChangeSetOrchestrator",
    "DocumentDeserializer",
    "DocumentWriter",
    "EntitySerializer",
    "ExecutionStrategy",
    "FieldOutcome",
    "FieldStatus",
    "JoinOperation",
    "JoinWrite",
    "MaterializationReport",
    "Materialized",
    "ParentIndex",
    "PathResolver",
    "RelatedEntities",
    "StoreWriter",
    "Transaction",
    "TransactionManager",
    "TransactionState",
    "UnitOfWork",
    "is_unset_key",
    "key_to_document_id",
]
