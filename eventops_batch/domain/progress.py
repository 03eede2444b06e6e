"""
Progress tracking (pure).

``compute_progress`` is a pure function of job counters and two instants.
The executor calls it once after every batch and stores the result with
that batch's counters; nothing reports partial-batch progress.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from eventops_batch.domain.types import ProgressReport


def compute_progress(
    processed_items: int,
    total_items: int,
    started_at: datetime | None,
    now: datetime,
) -> ProgressReport:
    """Percent complete and estimated time remaining.

    - ``percent`` is 100 for an empty job, otherwise processed/total * 100,
      clamped to [0, 100].
    - ``estimated_remaining`` extrapolates the observed throughput.  It is
      None ("calculating") when nothing has been processed yet, when the
      job has no start time, or when no time has elapsed.
    """
    if total_items == 0:
        percent = 100.0
    else:
        percent = min(100.0, max(0.0, processed_items / total_items * 100.0))

    if processed_items <= 0 or started_at is None:
        return ProgressReport(percent=percent, estimated_remaining=None)

    elapsed = now - started_at
    if elapsed <= timedelta(0):
        return ProgressReport(percent=percent, estimated_remaining=None)

    remaining_items = max(0, total_items - processed_items)
    per_item = elapsed / processed_items
    return ProgressReport(
        percent=percent,
        estimated_remaining=per_item * remaining_items,
    )
