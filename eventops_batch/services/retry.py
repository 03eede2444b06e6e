"""
RetryCoordinator -- retry of failed items and cooperative cancellation.

Contract:
    - ``retry()`` builds a NEW pending job over the failed items of a
      terminal job, re-resolved against current collaborator state.  The
      source job is never modified.  Items already succeeded by, or still
      queued in, an earlier retry of the same job are left out, so calling
      ``retry()`` repeatedly never issues an item twice.
    - ``cancel()`` raises the cancellation flag of a processing job; the
      executor observes it at the next batch boundary.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID, uuid4

from eventops_kernel.domain.clock import Clock, SystemClock
from eventops_kernel.exceptions import InvalidStateError, NothingToRetryError
from eventops_kernel.logging_config import get_logger

from eventops_batch.domain import transitions
from eventops_batch.domain.types import TERMINAL_STATUSES, Job, JobFilter
from eventops_batch.services.registry import JobRegistry
from eventops_batch.tasks.base import TaskRegistry

logger = get_logger("batch.retry")


class RetryCoordinator:

    def __init__(
        self,
        registry: JobRegistry,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self._registry = registry
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._id_factory = id_factory

    def retry(self, job_id: UUID, actor_id: UUID | None = None) -> Job:
        """Create the retry job for ``job_id``'s failed items.

        Raises:
            JobNotFoundError: Unknown job id.
            InvalidStateError: The source job is not terminal.
            NothingToRetryError: The source job has no failed items, or
                every failed item is already covered by an earlier retry.
        """
        source = self._registry.get(job_id)
        if not source.is_terminal:
            raise InvalidStateError(
                str(job_id),
                "retry",
                source.status.value,
                expected=sorted(s.value for s in TERMINAL_STATUSES),
            )
        if source.failed_items == 0:
            raise NothingToRetryError(str(job_id))

        settled = self._settled_keys(job_id)
        failed_keys = [
            r.item_key for r in source.failed_results if r.item_key not in settled
        ]
        if not failed_keys:
            logger.info(
                "job_retry_already_covered",
                extra={"job_id": str(job_id), "settled_items": len(settled)},
            )
            raise NothingToRetryError(str(job_id))

        task = self._task_registry.get(source.kind)
        items = task.resolve_items(source.parameters, failed_keys)

        resolved_keys = {item.item_key for item in items}
        dropped = [key for key in failed_keys if key not in resolved_keys]
        if dropped:
            logger.warning(
                "job_retry_items_dropped",
                extra={
                    "job_id": str(job_id),
                    "dropped_items": len(dropped),
                    "dropped_keys": dropped,
                },
            )

        retry_job = self._registry.insert(Job(
            job_id=self._id_factory(),
            kind=source.kind,
            target_ref=source.target_ref,
            config=source.config,
            parameters=dict(source.parameters),
            criteria=source.criteria,
            items=items,
            total_items=len(items),
            parent_job_id=source.job_id,
            attempt=source.attempt + 1,
            created_at=self._clock.now(),
            created_by=actor_id or source.created_by,
            correlation_id=source.correlation_id,
        ))

        logger.info(
            "job_retry_created",
            extra={
                "job_id": str(retry_job.job_id),
                "parent_job_id": str(job_id),
                "attempt": retry_job.attempt,
                "total_items": retry_job.total_items,
            },
        )
        return retry_job

    def _settled_keys(self, job_id: UUID) -> set[str]:
        """Item keys succeeded by, or still queued in, any retry descending from ``job_id``."""
        settled: set[str] = set()
        parents = [job_id]
        while parents:
            for child in self._registry.list(JobFilter(parent_job_id=parents.pop())):
                if child.is_terminal:
                    settled.update(
                        r.item_key for r in child.item_results if r.succeeded
                    )
                else:
                    settled.update(item.item_key for item in child.items)
                parents.append(child.job_id)
        return settled

    def cancel(self, job_id: UUID) -> Job:
        """Request cancellation of a processing job.

        Raises:
            JobNotFoundError: Unknown job id.
            InvalidStateError: The job is not processing.
        """
        job = self._registry.update(job_id, transitions.request_cancel)
        logger.info(
            "job_cancel_requested",
            extra={
                "job_id": str(job_id),
                "processed_items": job.processed_items,
                "total_items": job.total_items,
            },
        )
        return job
