"""
JobRunner -- bounded thread pool running jobs concurrently.

Contract:
    - ``dispatch()`` schedules ``run(job_id)`` on a worker thread; each job
      can be dispatched once (``JobAlreadyDispatchedError`` otherwise).
    - ``pause()`` is the inter-batch sleep handed to the executor; it wakes
      early when the runner shuts down.
    - ``shutdown()`` stops accepting work, drops queued jobs, requests
      cooperative cancellation of running ones and waits for the workers
      (graceful shutdown).

Architecture: eventops_batch/services.  Owns threads only; the job
    semantics stay in ``JobExecutor`` and ``RetryCoordinator``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from uuid import UUID

from eventops_kernel.exceptions import (
    InvalidStateError,
    JobAlreadyDispatchedError,
)
from eventops_kernel.logging_config import get_logger

from eventops_batch.domain.types import Job

logger = get_logger("batch.runner")


class JobRunner:
    """Thread-pool dispatcher for job executions.

    Non-goals:
        - NOT a distributed queue; jobs run in this process only.
        - Does NOT persist the queue; undispatched jobs stay pending.
    """

    def __init__(
        self,
        run_job: Callable[[UUID], Job],
        cancel_job: Callable[[UUID], object],
        max_workers: int = 4,
        shutdown_timeout_seconds: float = 30.0,
    ):
        self._run_job = run_job
        self._cancel_job = cancel_job
        self._shutdown_timeout = shutdown_timeout_seconds
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="eventops-job",
        )
        self._futures: dict[UUID, Future[Job]] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def dispatch(self, job_id: UUID) -> Future[Job]:
        """Run ``job_id`` on a worker thread.

        Raises:
            JobAlreadyDispatchedError: The job was dispatched before.
            RuntimeError: The runner has been shut down.
        """
        with self._lock:
            if self._stop_event.is_set():
                raise RuntimeError("JobRunner has been shut down")
            if job_id in self._futures:
                raise JobAlreadyDispatchedError(str(job_id))
            future = self._pool.submit(self._execute, job_id)
            self._futures[job_id] = future
        logger.info("job_dispatched", extra={"job_id": str(job_id)})
        return future

    def wait(self, job_id: UUID, timeout: float | None = None) -> Job:
        """Block until a dispatched job finishes; returns its terminal snapshot."""
        with self._lock:
            future = self._futures[job_id]
        return future.result(timeout=timeout)

    def pause(self, seconds: float) -> None:
        """Sleep between batches; returns early on shutdown."""
        self._stop_event.wait(timeout=seconds)

    def active_job_ids(self) -> tuple[UUID, ...]:
        with self._lock:
            return tuple(
                job_id for job_id, f in self._futures.items() if not f.done()
            )

    @property
    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    def shutdown(self, timeout: float | None = None) -> None:
        """Cancel outstanding work and wait for workers to finish.

        Args:
            timeout: Max seconds to wait; defaults to the configured
                shutdown timeout.
        """
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            outstanding = {
                job_id: f for job_id, f in self._futures.items() if not f.done()
            }

        dropped = 0
        for job_id, future in outstanding.items():
            if future.cancel():
                dropped += 1
                continue
            try:
                self._cancel_job(job_id)
            except InvalidStateError:
                # Already terminal, or picked up but not yet started; the
                # executor's stop check cancels the latter at its first batch.
                pass

        done, not_done = wait(
            outstanding.values(),
            timeout=self._shutdown_timeout if timeout is None else timeout,
        )
        self._pool.shutdown(wait=not not_done)
        logger.info(
            "job_runner_stopped",
            extra={
                "dropped_jobs": dropped,
                "finished_jobs": len(done) - dropped,
                "unfinished_jobs": len(not_done),
            },
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _execute(self, job_id: UUID) -> Job:
        try:
            return self._run_job(job_id)
        except Exception:
            logger.exception("job_runner_exception", extra={"job_id": str(job_id)})
            raise
