"""AssociationSynchronizer: many-to-many links as join documents."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..diagnostics import CommandLogger
from ..options import OdmOptions
from ..references import DocumentReference
from ..tracking import EntityState
from ..utils import snake_case

if TYPE_CHECKING:
    from ..metadata import ModelMetadata
    from ..tracking import ChangeEntry
    from .serializer import EntitySerializer
    from .writers import DocumentWriter

logger = logging.getLogger("cqrs_ddd.odm.associations")


class JoinOperation(str, Enum):
    CREATE = "create"
    DELETE = "delete"


@dataclass(frozen=True)
class JoinWrite:
    """One join document to write or remove, keyed ``{principalId}_{targetId}``."""

    operation: JoinOperation
    reference: DocumentReference
    principal: DocumentReference
    target: DocumentReference
    principal_field: str
    target_field: str

    def document(self, timestamp: datetime, options: OdmOptions) -> dict[str, Any]:
        return {
            self.principal_field: self.principal,
            self.target_field: self.target,
            options.created_at_field: timestamp,
            options.updated_at_field: timestamp,
        }


class AssociationSynchronizer:
    """Diffs many-to-many memberships and emits join document writes.

    Inserts diff against an empty set. Updates diff against the tracked
    original only when the navigation is reported modified; otherwise
    nothing is written.
    """

    def __init__(
        self,
        model: ModelMetadata,
        serializer: EntitySerializer,
        *,
        options: OdmOptions | None = None,
        command_logger: CommandLogger | None = None,
    ) -> None:
        self._model = model
        self._serializer = serializer
        self._options = options or OdmOptions()
        self._commands = command_logger or CommandLogger()

    def plan(self, entry: ChangeEntry, address: DocumentReference) -> list[JoinWrite]:
        descriptor = entry.entity_type
        writes: list[JoinWrite] = []
        for skip in descriptor.skip_navigations.values():
            if entry.state is EntityState.ADDED:
                original: list[Any] = []
            elif entry.is_modified(skip.name):
                original = entry.original_collection(skip.name)
            else:
                continue
            current_ids = self._keys(entry.get_current_value(skip.name) or ())
            original_ids = self._keys(original)
            added = [i for i in current_ids if i not in original_ids]
            removed = [i for i in original_ids if i not in current_ids]
            if not added and not removed:
                continue

            collection = self._model.join_collection_name(descriptor, skip)
            target_collection = self._model.collection_name(skip.target)
            principal_field = f"{snake_case(descriptor.name)}_id"
            target_field = f"{snake_case(skip.target.__name__)}_id"
            if target_field == principal_field:
                target_field = f"related_{target_field}"
            for operation, ids in (
                (JoinOperation.CREATE, added),
                (JoinOperation.DELETE, removed),
            ):
                for target_id in ids:
                    writes.append(
                        JoinWrite(
                            operation=operation,
                            reference=DocumentReference.root(
                                collection, f"{address.id}_{target_id}"
                            ),
                            principal=address,
                            target=DocumentReference.root(target_collection, target_id),
                            principal_field=principal_field,
                            target_field=target_field,
                        )
                    )
        return writes

    async def synchronize(
        self, entry: ChangeEntry, address: DocumentReference, writer: DocumentWriter
    ) -> int:
        """Apply the planned join writes; returns how many were issued."""
        writes = self.plan(entry, address)
        if not writes:
            return 0
        now = datetime.now(timezone.utc)
        for write in writes:
            if write.operation is JoinOperation.CREATE:
                data = write.document(now, self._options)
                with self._commands.command("INSERT", write.reference, "join", data):
                    await writer.create(write.reference, data)
            else:
                with self._commands.command("DELETE", write.reference, "join"):
                    await writer.delete(write.reference)
        logger.debug(
            "Synchronized %d join documents for %s %s",
            len(writes),
            entry.entity_type.name,
            address.path,
        )
        return len(writes)

    def _keys(self, entities: Any) -> list[str]:
        keys: list[str] = []
        for entity in entities:
            if entity is None:
                continue
            key = self._serializer.entity_key(entity)
            if key is not None and key not in keys:
                keys.append(key)
        return keys
