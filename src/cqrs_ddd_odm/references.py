"""Store-native value types: document addresses and geographic points."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DocumentReference:
    """Ordered ``(collection, document id)`` segments locating a document.

    Depth 0 is a root document; every subcollection level adds one segment.
    """

    segments: tuple[tuple[str, str], ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("A document reference needs at least one segment")
        for collection, document_id in self.segments:
            if not collection or not document_id or "/" in collection + document_id:
                raise ValueError(f"Invalid path segment: {collection}/{document_id}")

    @classmethod
    def root(cls, collection: str, document_id: object) -> DocumentReference:
        return cls(((collection, str(document_id)),))

    @classmethod
    def parse(cls, path: str) -> DocumentReference:
        """Build a reference from ``col/id[/sub/id...]``."""
        parts = path.strip("/").split("/")
        if len(parts) % 2:
            raise ValueError(f"Not a document path: {path!r}")
        return cls(tuple(zip(parts[::2], parts[1::2])))

    def child(self, collection: str, document_id: object) -> DocumentReference:
        return DocumentReference((*self.segments, (collection, str(document_id))))

    @property
    def id(self) -> str:
        return self.segments[-1][1]

    @property
    def collection(self) -> str:
        """Name of the collection holding this document."""
        return self.segments[-1][0]

    @property
    def collection_path(self) -> str:
        return self.path.rsplit("/", 1)[0]

    @property
    def parent(self) -> DocumentReference | None:
        """The owning document, ``None`` for a root document."""
        if len(self.segments) == 1:
            return None
        return DocumentReference(self.segments[:-1])

    @property
    def depth(self) -> int:
        return len(self.segments) - 1

    @property
    def path(self) -> str:
        return "/".join(f"{c}/{i}" for c, i in self.segments)

    def is_child_of(self, parent: DocumentReference, collection: str) -> bool:
        """True when this document sits directly in ``parent/collection``."""
        return self.parent == parent and self.collection == collection

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class GeoPoint:
    """Two-component geographic point as stored."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")
