"""
JobRegistry -- canonical owner of job records.

Contract:
    Jobs are inserted on submission and never removed, only transitioned.
    Every mutation is ``update(job_id, transition)``: the registry reads the
    current snapshot, applies the pure transition, validates the counter
    invariants, bumps ``version`` and stores the result in one atomic step.
    Readers always receive frozen snapshots.

Architecture: eventops_batch/services.  ``InMemoryJobRegistry`` is the
    process-wide default; ``SqlJobRegistry`` (sql_registry.py) persists
    through SQLAlchemy.
"""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace
from uuid import UUID

from eventops_kernel.exceptions import DuplicateJobError, JobNotFoundError

from eventops_batch.domain.types import Job, JobFilter

Transition = Callable[[Job], Job]


class JobRegistry(ABC):
    """Port for job storage."""

    @abstractmethod
    def insert(self, job: Job) -> Job:
        """Store a new job; assigns ``seq`` and ``version``.

        Raises:
            DuplicateJobError: A job with the same id already exists.
        """

    @abstractmethod
    def get(self, job_id: UUID) -> Job:
        """Current snapshot.

        Raises:
            JobNotFoundError: Unknown job id.
        """

    @abstractmethod
    def update(self, job_id: UUID, transition: Transition) -> Job:
        """Apply ``transition`` atomically and return the new snapshot.

        Exceptions raised by the transition propagate and leave the stored
        job untouched.  A transition returning its input unchanged is a
        no-op (no version bump).
        """

    @abstractmethod
    def list(self, job_filter: JobFilter | None = None) -> tuple[Job, ...]:
        """Snapshots in insertion order, optionally filtered."""

    def is_cancel_requested(self, job_id: UUID) -> bool:
        """Current cancellation flag, read at every batch boundary.

        Raises:
            JobNotFoundError: Unknown job id.
        """
        return self.get(job_id).cancel_requested

    @abstractmethod
    def __len__(self) -> int: ...

    def __contains__(self, job_id: UUID) -> bool:
        try:
            self.get(job_id)
        except JobNotFoundError:
            return False
        return True


def validate_transition(current: Job, new: Job) -> Job:
    """Validate a transition result and stamp the next version."""
    if new.job_id != current.job_id:
        raise ValueError(
            f"Transition changed job id {current.job_id} -> {new.job_id}"
        )
    stored = replace(new, seq=current.seq, version=current.version + 1)
    stored.check_invariants()
    return stored


class InMemoryJobRegistry(JobRegistry):
    """Dict-backed registry guarded by a single lock."""

    def __init__(self) -> None:
        self._jobs: dict[UUID, Job] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def insert(self, job: Job) -> Job:
        job.check_invariants()
        with self._lock:
            if job.job_id in self._jobs:
                raise DuplicateJobError(str(job.job_id))
            stored = replace(job, seq=next(self._seq), version=1)
            self._jobs[job.job_id] = stored
        return stored

    def get(self, job_id: UUID) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def is_cancel_requested(self, job_id: UUID) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job.cancel_requested

    def update(self, job_id: UUID, transition: Transition) -> Job:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(str(job_id))
            new = transition(current)
            if new is current:
                return current
            stored = validate_transition(current, new)
            self._jobs[job_id] = stored
        return stored

    def list(self, job_filter: JobFilter | None = None) -> tuple[Job, ...]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: j.seq or 0)
        if job_filter is None:
            return tuple(jobs)
        return tuple(j for j in jobs if job_filter.matches(j))

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
