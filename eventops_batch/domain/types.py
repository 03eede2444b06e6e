"""
eventops_batch.domain.types -- Pure frozen dataclasses for the batch engine.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.  A ``Job`` is a snapshot: every change produces a
new instance (see ``eventops_batch.domain.transitions``), so a reader
holding a snapshot can never observe a half-applied update.

Invariants carried by ``Job`` (``Job.check_invariants``, run by the
registry on every write):
    - processed_items == successful_items + failed_items
    - processed_items <= total_items
    - len(item_results) == processed_items
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from eventops_kernel.exceptions import CounterInvariantError, InvalidJobConfigError


# =============================================================================
# Status enums
# =============================================================================


class JobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"  # Submitted, items fixed, not yet picked up
    PROCESSING = "processing"  # Executor is iterating batches
    COMPLETED = "completed"  # Every item processed (successes and failures)
    FAILED = "failed"  # Aborted by a systemic error
    CANCELLED = "cancelled"  # Cancel flag observed at a batch boundary

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
})


class JobKind(str, Enum):
    """Which workflow a job belongs to.  One registered task per kind."""

    CERTIFICATE_GENERATION = "certificate_generation"
    ATTENDANCE_SYNC = "attendance_sync"


class CertificateType(str, Enum):
    ATTENDANCE = "attendance"
    COMPLETION = "completion"
    ACHIEVEMENT = "achievement"


class ItemOutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


# =============================================================================
# Item DTOs
# =============================================================================


@dataclass(frozen=True)
class ItemOutcome:
    """What a per-item operation returns: ``Success`` or ``Failure(reason)``.

    ``result_ref`` carries the collaborator's identifier for the produced
    artifact (e.g. the issued certificate id).
    """

    status: ItemOutcomeStatus
    error: str | None = None
    result_ref: str | None = None

    @classmethod
    def success(cls, result_ref: str | None = None) -> ItemOutcome:
        return cls(status=ItemOutcomeStatus.SUCCESS, result_ref=result_ref)

    @classmethod
    def failure(cls, reason: str, result_ref: str | None = None) -> ItemOutcome:
        return cls(status=ItemOutcomeStatus.FAILURE, error=reason, result_ref=result_ref)

    @property
    def succeeded(self) -> bool:
        return self.status == ItemOutcomeStatus.SUCCESS


@dataclass(frozen=True)
class ItemInput:
    """One processable item, fixed at submission.

    ``item_key`` is the business identifier (participant id, scan record id)
    used to re-resolve the item on retry.
    """

    item_index: int  # 0-indexed position in the job's item list
    item_key: str
    label: str = ""  # Human-readable (participant name, attendee)
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ItemResult:
    """Append-only record of one processed item."""

    item_index: int
    item_key: str
    outcome: ItemOutcomeStatus
    error: str | None = None
    result_ref: str | None = None
    label: str = ""
    duration_ms: int = 0
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ItemOutcomeStatus.SUCCESS


# =============================================================================
# Configuration and progress
# =============================================================================


@dataclass(frozen=True)
class JobConfig:
    """Pacing fixed at submission.

    Raises:
        InvalidJobConfigError: batch_size < 1 or negative delay.
    """

    batch_size: int
    delay_between_batches: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise InvalidJobConfigError(
                "batch_size", self.batch_size, "must be an integer",
            )
        if self.batch_size < 1:
            raise InvalidJobConfigError(
                "batch_size", self.batch_size, "must be positive",
            )
        if not isinstance(self.delay_between_batches, timedelta):
            raise InvalidJobConfigError(
                "delay_between_batches",
                self.delay_between_batches,
                "must be a timedelta",
            )
        if self.delay_between_batches < timedelta(0):
            raise InvalidJobConfigError(
                "delay_between_batches",
                self.delay_between_batches,
                "must not be negative",
            )

    @classmethod
    def from_millis(cls, batch_size: int, delay_ms: int) -> JobConfig:
        return cls(
            batch_size=batch_size,
            delay_between_batches=timedelta(milliseconds=delay_ms),
        )


@dataclass(frozen=True)
class ProgressReport:
    """Output of the progress tracker.

    ``estimated_remaining`` is None while the throughput is still unknown
    ("calculating").
    """

    percent: float = 0.0
    estimated_remaining: timedelta | None = None

    @property
    def is_calculating(self) -> bool:
        return self.estimated_remaining is None


@dataclass(frozen=True)
class EligibilityCriteria:
    """Predicates a participant must satisfy to receive a certificate.

    Only ``minimum_attendance_percentage`` is mandatory; the other
    thresholds apply when set.  Validate with
    ``eventops_batch.domain.eligibility.validate_criteria``.
    """

    minimum_attendance_percentage: float
    minimum_sessions_attended: int | None = None
    minimum_evaluation_score: float | None = None


# =============================================================================
# Job snapshot
# =============================================================================


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of a batch job.

    The registry owns the canonical record; every other component holds
    snapshots and mutates only through registry-applied transitions.
    """

    job_id: UUID
    kind: JobKind
    target_ref: str  # "event:<id>" or "device:<id>/batch:<id>"
    config: JobConfig
    status: JobStatus = JobStatus.PENDING
    parameters: dict[str, Any] = field(default_factory=dict)
    criteria: EligibilityCriteria | None = None
    items: tuple[ItemInput, ...] = ()
    total_items: int = 0
    processed_items: int = 0
    successful_items: int = 0
    failed_items: int = 0
    errors: tuple[str, ...] = ()
    item_results: tuple[ItemResult, ...] = ()
    progress: ProgressReport = field(default_factory=ProgressReport)
    cancel_requested: bool = False
    parent_job_id: UUID | None = None
    attempt: int = 1
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None
    correlation_id: str | None = None
    seq: int | None = None  # Insertion order, assigned by the registry
    version: int = 0  # Incremented by the registry on every write

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def remaining_items(self) -> int:
        return self.total_items - self.processed_items

    @property
    def failed_results(self) -> tuple[ItemResult, ...]:
        return tuple(r for r in self.item_results if not r.succeeded)

    def check_invariants(self) -> None:
        """Raise CounterInvariantError if the counters do not reconcile."""
        if self.processed_items != self.successful_items + self.failed_items:
            raise CounterInvariantError(
                str(self.job_id),
                f"processed={self.processed_items} != successful="
                f"{self.successful_items} + failed={self.failed_items}",
            )
        if not 0 <= self.processed_items <= self.total_items:
            raise CounterInvariantError(
                str(self.job_id),
                f"processed={self.processed_items} outside 0..{self.total_items}",
            )
        if len(self.item_results) != self.processed_items:
            raise CounterInvariantError(
                str(self.job_id),
                f"{len(self.item_results)} results for "
                f"{self.processed_items} processed",
            )
        if self.total_items != len(self.items):
            raise CounterInvariantError(
                str(self.job_id),
                f"total={self.total_items} != {len(self.items)} items",
            )


@dataclass(frozen=True)
class JobFilter:
    """Selection for ``list_jobs``.  Unset fields match everything."""

    kind: JobKind | None = None
    statuses: frozenset[JobStatus] | None = None
    target_ref: str | None = None
    parent_job_id: UUID | None = None

    def matches(self, job: Job) -> bool:
        if self.kind is not None and job.kind != self.kind:
            return False
        if self.statuses is not None and job.status not in self.statuses:
            return False
        if self.target_ref is not None and job.target_ref != self.target_ref:
            return False
        if self.parent_job_id is not None and job.parent_job_id != self.parent_job_id:
            return False
        return True
