"""
BatchProcessor -- runs one slice of items against a per-item operation.

Contract:
    Items are processed sequentially, in order, exactly once each.  Any
    ordinary exception raised by the operation becomes a failure result for
    that item and processing continues.  An ``InfrastructureError`` is
    systemic: the slice stops and the processor returns the results
    gathered so far together with the error.

Architecture: eventops_batch/services.  No registry access; the executor
    records what this returns.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from eventops_kernel.domain.clock import Clock, SystemClock
from eventops_kernel.exceptions import InfrastructureError
from eventops_kernel.logging_config import get_logger

from eventops_batch.domain.types import (
    ItemInput,
    ItemOutcome,
    ItemOutcomeStatus,
    ItemResult,
)

logger = get_logger("batch.processor")

ItemOperation = Callable[[ItemInput], ItemOutcome]


@dataclass(frozen=True)
class BatchResult:
    """Ordered results of one slice, plus the systemic error if it stopped."""

    results: tuple[ItemResult, ...] = ()
    systemic_error: InfrastructureError | None = None

    @property
    def aborted(self) -> bool:
        return self.systemic_error is not None


class BatchProcessor:
    """Sequential per-item runner with failure capture."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def process(
        self,
        items: Sequence[ItemInput],
        operation: ItemOperation,
    ) -> BatchResult:
        results: list[ItemResult] = []
        for item in items:
            item_start = time.monotonic()
            try:
                outcome = operation(item)
            except InfrastructureError as exc:
                logger.error(
                    "batch_item_systemic_error",
                    extra={
                        "item_key": item.item_key,
                        "item_index": item.item_index,
                        "error": str(exc),
                        "error_code": exc.code,
                    },
                )
                return BatchResult(results=tuple(results), systemic_error=exc)
            except Exception as exc:
                outcome = ItemOutcome.failure(str(exc) or type(exc).__name__)
                logger.warning(
                    "batch_item_exception",
                    extra={
                        "item_key": item.item_key,
                        "item_index": item.item_index,
                        "exception_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )

            if not isinstance(outcome, ItemOutcome):
                outcome = ItemOutcome.failure(
                    f"operation returned {type(outcome).__name__}, "
                    f"expected ItemOutcome"
                )

            results.append(ItemResult(
                item_index=item.item_index,
                item_key=item.item_key,
                outcome=outcome.status,
                error=outcome.error if outcome.status == ItemOutcomeStatus.FAILURE else None,
                result_ref=outcome.result_ref,
                label=item.label,
                duration_ms=int((time.monotonic() - item_start) * 1000),
                completed_at=self._clock.now(),
            ))

        return BatchResult(results=tuple(results))
