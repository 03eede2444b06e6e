"""
Job state machine as a reducer (pure).

Every mutation of a job is one of the named transitions below.  Each takes
the current snapshot and returns the next one; none performs I/O.  The
registry applies them atomically (``JobRegistry.update``), so a transition
either fully happens or not at all.

    pending --start--> processing --complete--> completed
                                  --fail------> failed
                                  --cancel----> cancelled

    processing --record_batch--> processing   (counters, results, progress)
    processing --request_cancel--> processing (cooperative flag)

Terminal snapshots accept no transition.  Every illegal transition raises
``InvalidStateError`` and leaves the job untouched.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timedelta

from eventops_kernel.exceptions import InvalidStateError

from eventops_batch.domain.progress import compute_progress
from eventops_batch.domain.types import (
    ItemResult,
    Job,
    JobStatus,
    ProgressReport,
)


def _require(job: Job, operation: str, *allowed: JobStatus) -> None:
    if job.status not in allowed:
        raise InvalidStateError(
            str(job.job_id),
            operation,
            job.status.value,
            expected=tuple(s.value for s in allowed),
        )


def start(job: Job, now: datetime) -> Job:
    """pending -> processing; stamps ``started_at``."""
    _require(job, "start", JobStatus.PENDING)
    return replace(
        job,
        status=JobStatus.PROCESSING,
        started_at=now,
        progress=compute_progress(0, job.total_items, now, now),
    )


def record_batch(job: Job, results: Sequence[ItemResult], now: datetime) -> Job:
    """Append one batch's results and bump every counter together.

    Results must continue the job's item sequence exactly: the i-th result
    belongs to item ``processed_items + i``.
    """
    _require(job, "record batch for", JobStatus.PROCESSING)
    if job.processed_items + len(results) > job.total_items:
        raise InvalidStateError(
            str(job.job_id),
            f"record {len(results)} results ({job.remaining_items} remaining) for",
            job.status.value,
        )
    for offset, result in enumerate(results):
        expected = job.items[job.processed_items + offset]
        if result.item_key != expected.item_key:
            raise InvalidStateError(
                str(job.job_id),
                f"record out-of-order result '{result.item_key}' "
                f"(expected '{expected.item_key}') for",
                job.status.value,
            )

    succeeded = sum(1 for r in results if r.succeeded)
    processed = job.processed_items + len(results)
    return replace(
        job,
        processed_items=processed,
        successful_items=job.successful_items + succeeded,
        failed_items=job.failed_items + (len(results) - succeeded),
        item_results=job.item_results + tuple(results),
        progress=compute_progress(processed, job.total_items, job.started_at, now),
    )


def request_cancel(job: Job) -> Job:
    """Raise the cooperative cancellation flag.  Repeated requests are no-ops."""
    _require(job, "cancel", JobStatus.PROCESSING)
    if job.cancel_requested:
        return job
    return replace(job, cancel_requested=True)


def complete(job: Job, now: datetime) -> Job:
    """processing -> completed, once every item has an outcome."""
    _require(job, "complete", JobStatus.PROCESSING)
    if job.processed_items != job.total_items:
        raise InvalidStateError(
            str(job.job_id),
            f"complete ({job.remaining_items} items unprocessed)",
            job.status.value,
        )
    return replace(
        job,
        status=JobStatus.COMPLETED,
        completed_at=now,
        progress=ProgressReport(percent=100.0, estimated_remaining=timedelta(0)),
    )


def fail(job: Job, error: str, now: datetime) -> Job:
    """processing -> failed; the systemic error is appended to ``errors``."""
    _require(job, "fail", JobStatus.PROCESSING)
    return replace(
        job,
        status=JobStatus.FAILED,
        errors=job.errors + (error,),
        completed_at=now,
    )


def cancel(job: Job, now: datetime) -> Job:
    """processing -> cancelled; recorded results stay as they are."""
    _require(job, "cancel", JobStatus.PROCESSING)
    return replace(job, status=JobStatus.CANCELLED, completed_at=now)
