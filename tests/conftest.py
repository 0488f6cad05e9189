from __future__ import annotations

import itertools

import pytest

from cqrs_ddd_odm import (
    ChangeSetOrchestrator,
    ChangeTracker,
    DocumentSession,
    InMemoryDocumentStore,
    ModelMetadata,
)
from sample_domain import build_model


class SequentialIds:
    """Deterministic document ids: gen-1, gen-2, ..."""

    def __init__(self, prefix: str = "gen") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry delays instead of sleeping."""
    delays: list[float] = []

    async def _fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr("cqrs_ddd_odm.core.execution._sleep", _fake_sleep)
    return delays


@pytest.fixture
def model() -> ModelMetadata:
    return build_model()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(id_generator=SequentialIds())


@pytest.fixture
def tracker(model: ModelMetadata) -> ChangeTracker:
    return ChangeTracker(model)


@pytest.fixture
def orchestrator(
    model: ModelMetadata, store: InMemoryDocumentStore, tracker: ChangeTracker
) -> ChangeSetOrchestrator:
    return ChangeSetOrchestrator(model, store, tracker=tracker)


@pytest.fixture
def session(model: ModelMetadata, store: InMemoryDocumentStore) -> DocumentSession:
    return DocumentSession(model, store)
