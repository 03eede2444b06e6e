"""
eventops_batch.domain -- Pure types, eligibility, progress and transitions.

ZERO I/O.  All types are frozen dataclasses.
"""

from eventops_batch.domain.eligibility import (
    ParticipantRecord,
    ScanRecord,
    criteria_from_mapping,
    evaluate,
    evaluate_scan_records,
    is_eligible,
    validate_criteria,
)
from eventops_batch.domain.progress import compute_progress
from eventops_batch.domain.stats import JobStats, summarize
from eventops_batch.domain.types import (
    TERMINAL_STATUSES,
    CertificateType,
    EligibilityCriteria,
    ItemInput,
    ItemOutcome,
    ItemOutcomeStatus,
    ItemResult,
    Job,
    JobConfig,
    JobFilter,
    JobKind,
    JobStatus,
    ProgressReport,
)

__all__ = [
    "TERMINAL_STATUSES",
    "CertificateType",
    "EligibilityCriteria",
    "ItemInput",
    "ItemOutcome",
    "ItemOutcomeStatus",
    "ItemResult",
    "Job",
    "JobConfig",
    "JobFilter",
    "JobKind",
    "JobStats",
    "JobStatus",
    "ParticipantRecord",
    "ProgressReport",
    "ScanRecord",
    "compute_progress",
    "criteria_from_mapping",
    "evaluate",
    "evaluate_scan_records",
    "is_eligible",
    "summarize",
    "validate_criteria",
]
