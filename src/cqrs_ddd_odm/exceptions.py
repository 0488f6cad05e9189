"""Exceptions raised by the document mapper."""

from __future__ import annotations

from enum import Enum


class OdmError(Exception):
    """Root exception for the document mapper."""


# ── Configuration (fatal, never retried) ─────────────────────────────


class ConfigurationError(OdmError):
    """Raised when the model or the entity graph is mis-wired.

    Carries the offending entity type and id when known.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: object = None,
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        if entity_type is not None:
            message = f"{message} (entity={entity_type}, id={entity_id!r})"
        super().__init__(message)


class UnknownEntityTypeError(ConfigurationError):
    """Raised when a type is not part of the model."""


class MissingPrimaryKeyError(ConfigurationError):
    """Raised when an entity type declares no primary key, or its key is unset."""


class CompositeKeyError(ConfigurationError):
    """Raised when an entity type declares more than one key property."""


class UntrackedParentError(ConfigurationError):
    """Raised when a subcollection child has no tracked owning parent."""


class SubcollectionCycleError(ConfigurationError):
    """Raised when subcollection ownership loops back on itself."""


class MissingReferenceKeyError(ConfigurationError):
    """Raised when a referenced type exposes no resolvable key."""


class GeoPointMappingError(ConfigurationError):
    """Raised when a geo-point type lacks latitude/longitude members."""


# ── Read side ─────────────────────────────────────────────────────────


class MaterializationError(OdmError):
    """Raised when an entity cannot be constructed at all."""


# ── Unit of work ──────────────────────────────────────────────────────


class TransactionStateError(OdmError):
    """Raised on begin/commit/rollback out of sequence."""


class OperationCancelledError(OdmError):
    """Raised when the caller's cancellation signal is observed."""


# ── Store / transport ─────────────────────────────────────────────────


class FaultStatus(str, Enum):
    """Status codes a store adapter attaches to transport failures."""

    UNAVAILABLE = "unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    ABORTED = "aborted"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class StoreError(OdmError):
    """Base for failures reported by a document store."""


class TransientStoreError(StoreError):
    """Transport failure carrying a status the execution strategy can classify."""

    def __init__(self, message: str, status: FaultStatus) -> None:
        self.status = status
        super().__init__(f"[{status.value}] {message}")


class DocumentExistsError(StoreError):
    """Raised when creating a document whose path is already taken."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Document already exists: {path}")


class RetryLimitExceededError(StoreError):
    """Raised when a transient fault persists past the retry budget."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


class DocumentWriteError(StoreError):
    """Raised when writing a single entity's document fails."""

    def __init__(self, entity_type: str, entity_id: object, path: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.path = path
        super().__init__(
            f"Failed to write {entity_type} with id={entity_id!r} at {path}"
        )
