"""MongoDB document store via Motor.

Every document lives in the collection named after its leaf collection.
``_id`` holds the full document path and ``_parent`` the owning document
path (``None`` for roots), so nested collections share one Mongo
collection per name. Pointers are stored as DBRefs and geo points as
GeoJSON ``Point`` objects.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from bson import Decimal128
from bson.dbref import DBRef
from pymongo.errors import (
    AutoReconnect,
    DuplicateKeyError,
    ExecutionTimeout,
    NetworkTimeout,
    PyMongoError,
    WTimeoutError,
)

from ..exceptions import (
    DocumentExistsError,
    FaultStatus,
    StoreError,
    TransientStoreError,
)
from ..ids import DocumentIdGenerator
from ..references import DocumentReference, GeoPoint
from .ports import DELETE_FIELD, DocumentSnapshot

if TYPE_CHECKING:
    from collections.abc import Iterator

    from motor.motor_asyncio import (
        AsyncIOMotorClient,
        AsyncIOMotorClientSession,
        AsyncIOMotorCollection,
    )

    from ..ids import IIDGenerator

logger = logging.getLogger("cqrs_ddd.odm.store.mongo")

_ID = "_id"
_PARENT = "_parent"


class MongoConnectionManager:
    """Owns the Motor client shared by the stores it opens.

    The client is created on the first :meth:`connect` and reused until
    :meth:`close`. Stores from :meth:`open_store` default to ``database``.

    Example:
        ```python
        connection = MongoConnectionManager("mongodb://db:27017", "shop")
        session = DocumentSession(model, await connection.open_store())
        ```
    """

    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        database: str = "documents",
        *,
        server_selection_timeout_ms: int = 5000,
        connect_timeout_ms: int = 10000,
        **client_options: Any,
    ) -> None:
        self.url = url
        self.database = database
        self._client_options: dict[str, Any] = {
            "serverSelectionTimeoutMS": server_selection_timeout_ms,
            "connectTimeoutMS": connect_timeout_ms,
            **client_options,
        }
        self._client: AsyncIOMotorClient[Any] | None = None

    @property
    def client(self) -> AsyncIOMotorClient[Any]:
        if self._client is None:
            raise StoreError(f"Mongo client for {self.url} is not open")
        return self._client

    async def connect(self) -> AsyncIOMotorClient[Any]:
        if self._client is None:
            from motor.motor_asyncio import AsyncIOMotorClient

            try:
                self._client = AsyncIOMotorClient(self.url, **self._client_options)
            except PyMongoError as exc:
                raise StoreError(f"Cannot open client for {self.url}: {exc}") from exc
            logger.info("Opened Mongo client for %s", self.url)
        return self._client

    async def open_store(
        self, database: str | None = None, **store_options: Any
    ) -> MongoDocumentStore:
        """Document store over ``database`` sharing this manager's client."""
        client = await self.connect()
        return MongoDocumentStore(client, database or self.database, **store_options)

    def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.info("Closed Mongo client for %s", self.url)

    async def health_check(self) -> bool:
        """``ping`` the server; a client that was never opened is unhealthy."""
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("Mongo ping to %s failed: %s", self.url, exc)
            return False
        return True


# ── value encoding ───────────────────────────────────────────────────


def encode_value(value: Any) -> Any:
    """Convert store-native values to BSON-safe types."""
    if isinstance(value, DocumentReference):
        return DBRef(value.collection, value.path)
    if isinstance(value, GeoPoint):
        return {"type": "Point", "coordinates": [value.longitude, value.latitude]}
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    """Convert BSON types back to store-native values."""
    if isinstance(value, DBRef):
        return DocumentReference.parse(value.id)
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        if _is_geojson_point(value):
            longitude, latitude = value["coordinates"]
            return GeoPoint(latitude=latitude, longitude=longitude)
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def _is_geojson_point(value: dict[str, Any]) -> bool:
    coordinates = value.get("coordinates")
    return (
        set(value) == {"type", "coordinates"}
        and value["type"] == "Point"
        and isinstance(coordinates, list)
        and len(coordinates) == 2
    )


@contextmanager
def _translated(path: str) -> Iterator[None]:
    """Map pymongo failures onto store errors the execution strategy understands."""
    try:
        yield
    except DuplicateKeyError as exc:
        raise DocumentExistsError(path) from exc
    except (NetworkTimeout, ExecutionTimeout, WTimeoutError) as exc:
        raise TransientStoreError(str(exc), FaultStatus.DEADLINE_EXCEEDED) from exc
    except AutoReconnect as exc:
        raise TransientStoreError(str(exc), FaultStatus.UNAVAILABLE) from exc
    except PyMongoError as exc:
        raise StoreError(f"{path}: {exc}") from exc


class MongoDocumentStore:
    """DocumentStore over a Motor database.

    With ``use_transactions`` batches commit inside a client session
    transaction, which needs a replica set. Otherwise batch writes are
    applied in order without isolation.
    """

    def __init__(
        self,
        client: AsyncIOMotorClient[Any],
        database: str,
        *,
        use_transactions: bool = False,
        id_generator: IIDGenerator | None = None,
    ) -> None:
        self.client = client
        self.use_transactions = use_transactions
        self._db = client[database]
        self._id_generator = id_generator or DocumentIdGenerator()

    def _collection(self, reference: DocumentReference) -> AsyncIOMotorCollection[Any]:
        return self._db[reference.collection]

    @staticmethod
    def _document(reference: DocumentReference, data: dict[str, Any]) -> dict[str, Any]:
        document = {
            k: encode_value(v) for k, v in data.items() if v is not DELETE_FIELD
        }
        parent = reference.parent
        document[_ID] = reference.path
        document[_PARENT] = parent.path if parent is not None else None
        return document

    async def create(
        self,
        reference: DocumentReference,
        data: dict[str, Any],
        *,
        session: AsyncIOMotorClientSession | None = None,
    ) -> None:
        with _translated(reference.path):
            await self._collection(reference).insert_one(
                self._document(reference, data), session=session
            )

    async def set(
        self,
        reference: DocumentReference,
        data: dict[str, Any],
        *,
        merge: bool = False,
        session: AsyncIOMotorClientSession | None = None,
    ) -> None:
        collection = self._collection(reference)
        with _translated(reference.path):
            if not merge:
                await collection.replace_one(
                    {_ID: reference.path},
                    self._document(reference, data),
                    upsert=True,
                    session=session,
                )
                return
            to_set = {
                k: encode_value(v) for k, v in data.items() if v is not DELETE_FIELD
            }
            to_unset = {k: "" for k, v in data.items() if v is DELETE_FIELD}
            parent = reference.parent
            update: dict[str, Any] = {
                "$setOnInsert": {_PARENT: parent.path if parent is not None else None}
            }
            if to_set:
                update["$set"] = to_set
            if to_unset:
                update["$unset"] = to_unset
            await collection.update_one(
                {_ID: reference.path}, update, upsert=True, session=session
            )

    async def delete(
        self,
        reference: DocumentReference,
        *,
        session: AsyncIOMotorClientSession | None = None,
    ) -> None:
        with _translated(reference.path):
            await self._collection(reference).delete_one(
                {_ID: reference.path}, session=session
            )

    async def get(self, reference: DocumentReference) -> DocumentSnapshot | None:
        with _translated(reference.path):
            raw = await self._collection(reference).find_one({_ID: reference.path})
        if raw is None:
            return None
        return self._snapshot(raw)

    async def list_documents(self, collection_path: str) -> list[DocumentSnapshot]:
        """Documents directly inside ``collection_path``, ordered by path."""
        collection_path = collection_path.strip("/")
        parent_path, _, name = collection_path.rpartition("/")
        with _translated(collection_path):
            cursor = self._db[name].find({_PARENT: parent_path or None}).sort(_ID, 1)
            return [self._snapshot(raw) async for raw in cursor]

    @staticmethod
    def _snapshot(raw: dict[str, Any]) -> DocumentSnapshot:
        reference = DocumentReference.parse(raw.pop(_ID))
        raw.pop(_PARENT, None)
        return DocumentSnapshot(reference, decode_value(raw))

    def batch(self) -> MongoWriteBatch:
        return MongoWriteBatch(self)

    def generate_id(self) -> str:
        return self._id_generator.next_id()


class MongoWriteBatch:
    """Writes staged in memory and sent on :meth:`commit`."""

    def __init__(self, store: MongoDocumentStore) -> None:
        self._store = store
        self._operations: list[tuple[str, DocumentReference, dict[str, Any] | None]] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def create(self, reference: DocumentReference, data: dict[str, Any]) -> None:
        self._operations.append(("create", reference, dict(data)))

    def set(
        self, reference: DocumentReference, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        self._operations.append(("merge" if merge else "set", reference, dict(data)))

    def delete(self, reference: DocumentReference) -> None:
        self._operations.append(("delete", reference, None))

    async def commit(self) -> None:
        if self.committed:
            raise StoreError("Write batch was already committed")
        if not self._store.use_transactions:
            await self._apply(None)
        else:
            async with await self._store.client.start_session() as session:
                async with session.start_transaction():
                    await self._apply(session)
        self.committed = True
        logger.debug("Committed batch of %d writes", len(self._operations))

    async def _apply(self, session: AsyncIOMotorClientSession | None) -> None:
        store = self._store
        for operation, reference, data in self._operations:
            if operation == "create":
                await store.create(reference, data or {}, session=session)
            elif operation == "delete":
                await store.delete(reference, session=session)
            else:
                await store.set(
                    reference, data or {}, merge=operation == "merge", session=session
                )
