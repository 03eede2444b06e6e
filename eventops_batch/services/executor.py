"""
JobExecutor -- drives one pending job to a terminal state.

Contract:
    ``run(job_id)`` moves the job to processing, walks its fixed item list
    in slices of ``batch_size``, and after each slice records results,
    counters and progress in one registry update.  Between slices it sleeps
    ``delay_between_batches`` (the only throttle point).  The cancellation
    flag and the ``should_stop`` predicate (runner shutdown) are observed
    before each slice; either one cancels the job there.

Architecture: eventops_batch/services.  Imports from eventops_batch.domain,
    eventops_batch.tasks, the registry and the batch processor.

Failure model:
    - Item failures are contained in ``item_results``; never raised.
    - Systemic failures (``InfrastructureError`` from an item, a missing
      task, any unexpected error in the loop) record what was gathered,
      append the error to ``errors``, move the job to failed and log at
      ERROR.  ``run`` returns the terminal job rather than raising.
    - ``run`` on a job that is not pending raises ``InvalidStateError``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from uuid import UUID

from eventops_kernel.domain.clock import Clock, SystemClock
from eventops_kernel.logging_config import LogContext, get_logger

from eventops_batch.domain import transitions
from eventops_batch.domain.types import Job
from eventops_batch.services.batch_processor import BatchProcessor
from eventops_batch.services.registry import JobRegistry
from eventops_batch.tasks.base import TaskRegistry

logger = get_logger("batch.executor")


def describe_error(exc: BaseException) -> str:
    """Job-level error text: ``CODE: message``."""
    code = getattr(exc, "code", type(exc).__name__)
    return f"{code}: {exc}"


class JobExecutor:
    """Batch loop over the job state machine.

    Non-goals:
        - Does NOT own threads -- see ``JobRunner``.
        - Does NOT retry items -- see ``RetryCoordinator``.
    """

    def __init__(
        self,
        registry: JobRegistry,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        sleep: Callable[[float], object] | None = None,
        processor: BatchProcessor | None = None,
        should_stop: Callable[[], bool] | None = None,
    ):
        self._registry = registry
        self._should_stop = should_stop or (lambda: False)
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._sleep = sleep or time.sleep
        self._processor = processor or BatchProcessor(self._clock)

    def run(self, job_id: UUID) -> Job:
        """Execute the job and return its terminal snapshot.

        Raises:
            JobNotFoundError: Unknown job id.
            InvalidStateError: The job is not pending.
        """
        job = self._registry.update(
            job_id, lambda j: transitions.start(j, self._clock.now()),
        )

        with LogContext.bind(
            job_id=str(job_id), correlation_id=job.correlation_id,
        ):
            logger.info(
                "job_started",
                extra={
                    "kind": job.kind.value,
                    "target_ref": job.target_ref,
                    "total_items": job.total_items,
                    "batch_size": job.config.batch_size,
                    "attempt": job.attempt,
                },
            )
            try:
                return self._run_batches(job)
            except Exception as exc:
                return self._fail(job_id, exc)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _run_batches(self, job: Job) -> Job:
        task = self._task_registry.get(job.kind)
        batch_size = job.config.batch_size
        delay = job.config.delay_between_batches.total_seconds()
        run_start = time.monotonic()

        for batch_number, offset in enumerate(
            range(0, job.total_items, batch_size), start=1,
        ):
            if self._should_stop():
                return self._cancel(job.job_id, batch_number, reason="shutdown")
            if self._registry.is_cancel_requested(job.job_id):
                return self._cancel(job.job_id, batch_number, reason="requested")

            batch = job.items[offset:offset + batch_size]
            result = self._processor.process(
                batch, lambda item: task.execute_item(item, job.parameters),
            )

            if result.results:
                current = self._registry.update(
                    job.job_id,
                    lambda j: transitions.record_batch(
                        j, result.results, self._clock.now(),
                    ),
                )
                logger.info(
                    "job_batch_recorded",
                    extra={
                        "batch_number": batch_number,
                        "batch_items": len(result.results),
                        "processed_items": current.processed_items,
                        "successful_items": current.successful_items,
                        "failed_items": current.failed_items,
                        "percent": current.progress.percent,
                        "estimated_remaining": current.progress.estimated_remaining,
                    },
                )

            if result.systemic_error is not None:
                return self._fail(job.job_id, result.systemic_error)

            if offset + batch_size < job.total_items and delay > 0:
                self._sleep(delay)

        completed = self._registry.update(
            job.job_id, lambda j: transitions.complete(j, self._clock.now()),
        )
        logger.info(
            "job_completed",
            extra={
                "total_items": completed.total_items,
                "successful_items": completed.successful_items,
                "failed_items": completed.failed_items,
                "duration_ms": int((time.monotonic() - run_start) * 1000),
            },
        )
        return completed

    def _cancel(self, job_id: UUID, batch_number: int, reason: str) -> Job:
        cancelled = self._registry.update(
            job_id, lambda j: transitions.cancel(j, self._clock.now()),
        )
        logger.info(
            "job_cancelled",
            extra={
                "before_batch": batch_number,
                "reason": reason,
                "processed_items": cancelled.processed_items,
                "remaining_items": cancelled.remaining_items,
            },
        )
        return cancelled

    def _fail(self, job_id: UUID, exc: BaseException) -> Job:
        error = describe_error(exc)
        failed = self._registry.update(
            job_id, lambda j: transitions.fail(j, error, self._clock.now()),
        )
        logger.error(
            "job_failed",
            extra={
                "error": error,
                "exception_type": type(exc).__name__,
                "processed_items": failed.processed_items,
                "total_items": failed.total_items,
            },
        )
        return failed
