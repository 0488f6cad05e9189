"""ExecutionStrategy: bounded retries for transient store faults."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from ..exceptions import FaultStatus, RetryLimitExceededError, TransientStoreError
from ..options import RetryOptions

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("cqrs_ddd.odm.execution")

T = TypeVar("T")

TRANSIENT_STATUSES = frozenset(
    {
        FaultStatus.UNAVAILABLE,
        FaultStatus.DEADLINE_EXCEEDED,
        FaultStatus.RESOURCE_EXHAUSTED,
    }
)


class ExecutionStrategy:
    """Retries a single store call while its failure is classified as transient.

    Wraps individual store operations, never a whole unit of work.
    """

    def __init__(self, options: RetryOptions | None = None) -> None:
        self.options = options or RetryOptions()

    def is_transient_fault(self, exc: BaseException) -> bool:
        """Status-carrying store faults and generic transport/IO faults."""
        if isinstance(exc, TransientStoreError):
            return exc.status in TRANSIENT_STATUSES
        return isinstance(exc, (ConnectionError, TimeoutError, OSError))

    def next_retry_delay(self, exception_count: int) -> float:
        """Delay in seconds before the retry following failure number ``exception_count``.

        ``base_delay * 2 ** (exception_count - 1)``, capped at ``max_delay``.
        """
        if exception_count < 1:
            return 0.0
        delay = self.options.base_delay * (2 ** (exception_count - 1))
        return float(min(delay, self.options.max_delay))

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        exception_count = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                if not self.is_transient_fault(exc):
                    raise
                exception_count += 1
                if exception_count > self.options.max_retry_count:
                    logger.error(
                        "Store operation failed after %d attempts: %s",
                        exception_count,
                        exc,
                    )
                    raise RetryLimitExceededError(exception_count, exc) from exc
                delay = self.next_retry_delay(exception_count)
                logger.warning(
                    "Transient store fault (attempt %d), retrying in %.2fs: %s",
                    exception_count,
                    delay,
                    exc,
                )
                await _sleep(delay)


async def _sleep(seconds: float) -> None:
    """Async sleep (overridable for tests)."""
    await asyncio.sleep(seconds)
