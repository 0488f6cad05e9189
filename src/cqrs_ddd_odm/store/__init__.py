"""Document store ports and the in-memory adapter.

The MongoDB adapter lives in :mod:`cqrs_ddd_odm.store.mongo` and is
imported explicitly, so the mapper core stays free of driver imports.
"""

from .memory import InMemoryDocumentStore, InMemoryWriteBatch, WriteRecord
from .ports import DELETE_FIELD, DocumentSnapshot, DocumentStore, WriteBatch

__all__ = [
    "DELETE_FIELD",
    "DocumentSnapshot",
    "DocumentStore",
    "InMemoryDocumentStore",
    "InMemoryWriteBatch",
    "WriteBatch",
    "WriteRecord",
]
