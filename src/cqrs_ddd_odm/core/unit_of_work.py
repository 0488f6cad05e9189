"""UnitOfWork: write envelope whose follow-up work waits for the commit."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("cqrs_ddd.odm.uow")


class UnitOfWork(ABC):
    """
    Groups document writes so they land together or not at all.

    Callbacks queued with :meth:`on_commit` are settled exactly once: they
    run after the store accepted the writes, or are dropped on rollback.
    :class:`~cqrs_ddd_odm.core.transaction.Transaction` fires them from its
    own ``commit`` so callers driving the manager by hand get the same
    guarantee as ``async with``.

    Example:
        ```python
        async with session.transaction() as tx:
            tx.on_commit(publish_order_placed)
            session.add(order)
            await session.save_changes()
        ```
    """

    def __init__(self) -> None:
        self._on_commit_hooks: deque[Callable[[], Awaitable[Any]]] = deque()

    def on_commit(self, callback: Callable[[], Awaitable[Any]]) -> None:
        self._on_commit_hooks.append(callback)

    async def trigger_commit_hooks(self) -> None:
        """Drain the queued callbacks; a failing one is logged and skipped."""
        while self._on_commit_hooks:
            callback = self._on_commit_hooks.popleft()
            try:
                await callback()
            except Exception as exc:
                logger.error("on_commit callback failed: %s", exc, exc_info=True)

    def discard_commit_hooks(self) -> None:
        if self._on_commit_hooks:
            logger.debug("Dropping %d on_commit callbacks", len(self._on_commit_hooks))
        self._on_commit_hooks.clear()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            await self.commit()
            await self.trigger_commit_hooks()
        else:
            await self.rollback()
            self.discard_commit_hooks()
