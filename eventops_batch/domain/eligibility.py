"""
Eligibility evaluation (pure).

Contract:
    ``evaluate(population, criteria)`` turns a participant population into
    the ordered tuple of ``ItemInput`` a certificate job will process.
    Ineligible participants are silently excluded: they never count toward
    ``total_items`` and never appear in ``item_results``.

    ``evaluate_scan_records(records)`` does the same for an offline scan
    batch, keeping only records not yet synced.

Architecture: eventops_batch/domain.  ZERO I/O.

Failure modes:
    - ``InvalidCriteriaError`` for malformed criteria, raised before any
      job exists.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from eventops_kernel.exceptions import InvalidCriteriaError

from eventops_batch.domain.types import EligibilityCriteria, ItemInput


# =============================================================================
# Population records
# =============================================================================


@dataclass(frozen=True)
class ParticipantRecord:
    """A registered participant of an event, as reported by the directory."""

    participant_id: str
    name: str
    attendance_percentage: float
    sessions_attended: int | None = None
    evaluation_score: float | None = None
    email: str | None = None


@dataclass(frozen=True)
class ScanRecord:
    """One attendance scan collected offline by a field device."""

    record_id: str
    qr_code: str
    scanned_at: datetime | None = None
    attendee: str = ""
    sync_status: str = "pending"  # pending | in_progress | completed | failed
    data: dict[str, Any] = field(default_factory=dict)


SYNCABLE_STATUSES: frozenset[str] = frozenset({"pending", "failed"})


# =============================================================================
# Criteria validation
# =============================================================================


def _is_number(value: Any) -> bool:
    return (
        not isinstance(value, bool)
        and isinstance(value, (int, float))
        and math.isfinite(value)
    )


def validate_criteria(criteria: EligibilityCriteria) -> EligibilityCriteria:
    """Check every threshold and return the criteria unchanged.

    Raises:
        InvalidCriteriaError: on the first malformed threshold.
    """
    minimum = criteria.minimum_attendance_percentage
    if not _is_number(minimum):
        raise InvalidCriteriaError(
            "minimum_attendance_percentage", minimum, "must be a number",
        )
    if not 0 <= minimum <= 100:
        raise InvalidCriteriaError(
            "minimum_attendance_percentage", minimum, "must be within 0..100",
        )

    sessions = criteria.minimum_sessions_attended
    if sessions is not None:
        if isinstance(sessions, bool) or not isinstance(sessions, int):
            raise InvalidCriteriaError(
                "minimum_sessions_attended", sessions, "must be an integer",
            )
        if sessions < 0:
            raise InvalidCriteriaError(
                "minimum_sessions_attended", sessions, "must not be negative",
            )

    score = criteria.minimum_evaluation_score
    if score is not None:
        if not _is_number(score):
            raise InvalidCriteriaError(
                "minimum_evaluation_score", score, "must be a number",
            )
        if score < 0:
            raise InvalidCriteriaError(
                "minimum_evaluation_score", score, "must not be negative",
            )

    return criteria


_CRITERIA_KEYS = frozenset({
    "minimum_attendance_percentage",
    "minimum_sessions_attended",
    "minimum_evaluation_score",
})


def criteria_from_mapping(data: Mapping[str, Any]) -> EligibilityCriteria:
    """Build validated criteria from a submission payload.

    Raises:
        InvalidCriteriaError: unknown keys, missing attendance threshold,
            or any malformed threshold.
    """
    unknown = sorted(set(data) - _CRITERIA_KEYS)
    if unknown:
        raise InvalidCriteriaError(unknown[0], data[unknown[0]], "unknown criterion")
    if "minimum_attendance_percentage" not in data:
        raise InvalidCriteriaError(
            "minimum_attendance_percentage", None, "is required",
        )
    return validate_criteria(
        EligibilityCriteria(
            minimum_attendance_percentage=data["minimum_attendance_percentage"],
            minimum_sessions_attended=data.get("minimum_sessions_attended"),
            minimum_evaluation_score=data.get("minimum_evaluation_score"),
        )
    )


# =============================================================================
# Evaluation
# =============================================================================


def is_eligible(participant: ParticipantRecord, criteria: EligibilityCriteria) -> bool:
    """True when the participant meets every threshold the criteria set.

    A participant without a recorded value for a threshold in force is
    not eligible.
    """
    if participant.attendance_percentage < criteria.minimum_attendance_percentage:
        return False
    if criteria.minimum_sessions_attended is not None:
        if (
            participant.sessions_attended is None
            or participant.sessions_attended < criteria.minimum_sessions_attended
        ):
            return False
    if criteria.minimum_evaluation_score is not None:
        if (
            participant.evaluation_score is None
            or participant.evaluation_score < criteria.minimum_evaluation_score
        ):
            return False
    return True


def participant_item(index: int, participant: ParticipantRecord) -> ItemInput:
    return ItemInput(
        item_index=index,
        item_key=participant.participant_id,
        label=participant.name,
        payload={
            "participant_id": participant.participant_id,
            "attendance_percentage": participant.attendance_percentage,
        },
    )


def evaluate(
    population: Iterable[ParticipantRecord],
    criteria: EligibilityCriteria,
) -> tuple[ItemInput, ...]:
    """Ordered eligible items, indexed from 0 in population order."""
    validate_criteria(criteria)
    eligible = [p for p in population if is_eligible(p, criteria)]
    return tuple(participant_item(i, p) for i, p in enumerate(eligible))


def scan_record_payload(record: ScanRecord) -> dict[str, Any]:
    return {
        "record_id": record.record_id,
        "qr_code": record.qr_code,
        "scanned_at": record.scanned_at.isoformat() if record.scanned_at else None,
        "attendee": record.attendee,
        "data": dict(record.data),
    }


def scan_record_from_payload(payload: Mapping[str, Any]) -> ScanRecord:
    scanned_at = payload.get("scanned_at")
    return ScanRecord(
        record_id=payload["record_id"],
        qr_code=payload["qr_code"],
        scanned_at=datetime.fromisoformat(scanned_at) if scanned_at else None,
        attendee=payload.get("attendee", ""),
        data=dict(payload.get("data") or {}),
    )


def evaluate_scan_records(records: Iterable[ScanRecord]) -> tuple[ItemInput, ...]:
    """Ordered syncable records; already-synced records are skipped."""
    syncable = [r for r in records if r.sync_status in SYNCABLE_STATUSES]
    return tuple(
        ItemInput(
            item_index=i,
            item_key=r.record_id,
            label=r.attendee,
            payload=scan_record_payload(r),
        )
        for i, r in enumerate(syncable)
    )
