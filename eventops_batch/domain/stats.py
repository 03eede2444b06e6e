"""
Dashboard aggregates over job snapshots (pure).

Feeds the sync and certificate dashboards: how many jobs are active, how
many finished or failed, and how many items went through.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from eventops_batch.domain.types import Job, JobStatus


@dataclass(frozen=True)
class JobStats:
    total_jobs: int = 0
    by_status: dict[JobStatus, int] = field(default_factory=dict)
    active_jobs: int = 0  # pending + processing
    processed_items: int = 0
    successful_items: int = 0
    failed_items: int = 0
    last_completed_at: datetime | None = None

    def count(self, status: JobStatus) -> int:
        return self.by_status.get(status, 0)


def summarize(jobs: Iterable[Job]) -> JobStats:
    counts: Counter[JobStatus] = Counter()
    processed = successful = failed = 0
    last_completed: datetime | None = None

    for job in jobs:
        counts[job.status] += 1
        processed += job.processed_items
        successful += job.successful_items
        failed += job.failed_items
        if job.completed_at is not None and (
            last_completed is None or job.completed_at > last_completed
        ):
            last_completed = job.completed_at

    return JobStats(
        total_jobs=sum(counts.values()),
        by_status=dict(counts),
        active_jobs=counts[JobStatus.PENDING] + counts[JobStatus.PROCESSING],
        processed_items=processed,
        successful_items=successful,
        failed_items=failed,
        last_completed_at=last_completed,
    )
