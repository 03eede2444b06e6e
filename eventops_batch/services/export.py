"""
Per-item export of a finished job.

Produces flat rows; formatting them (CSV, spreadsheet, PDF) is left to the
caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from eventops_kernel.exceptions import InvalidStateError

from eventops_batch.domain.types import TERMINAL_STATUSES, Job


@dataclass(frozen=True)
class ExportRow:
    item_index: int
    item_key: str
    label: str
    outcome: str
    error: str | None
    result_ref: str | None
    completed_at: datetime | None


def export_rows(job: Job) -> tuple[ExportRow, ...]:
    """Rows for every processed item, in submission order.

    Raises:
        InvalidStateError: The job has not reached a terminal state.
    """
    if not job.is_terminal:
        raise InvalidStateError(
            str(job.job_id),
            "export",
            job.status.value,
            expected=sorted(s.value for s in TERMINAL_STATUSES),
        )
    return tuple(
        ExportRow(
            item_index=r.item_index,
            item_key=r.item_key,
            label=r.label,
            outcome=r.outcome.value,
            error=r.error,
            result_ref=r.result_ref,
            completed_at=r.completed_at,
        )
        for r in job.item_results
    )
