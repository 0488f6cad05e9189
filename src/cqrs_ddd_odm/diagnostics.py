"""CommandLogger: one log line per document write."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .references import DocumentReference

logger = logging.getLogger("cqrs_ddd.odm.commands")


class CommandLogger:
    """Logs INSERT/UPDATE/DELETE commands with their duration.

    Payloads are logged at DEBUG only when ``log_data`` is on.
    """

    def __init__(self, *, log_data: bool = True) -> None:
        self._log_data = log_data

    @contextmanager
    def command(
        self,
        operation: str,
        reference: DocumentReference,
        entity_type: str,
        data: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        except Exception:
            logger.error(
                "%s %s (%s) failed after %.1fms",
                operation,
                reference.path,
                entity_type,
                (time.perf_counter() - started) * 1000,
            )
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s (%s) in %.1fms", operation, reference.path, entity_type, elapsed_ms
        )
        if self._log_data and data is not None and logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s %s payload: %r", operation, reference.path, data)
