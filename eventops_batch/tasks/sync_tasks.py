"""
Offline attendance sync task.

Applies every not-yet-synced scan record of one device batch to the
attendance store.  The source also reports which uploaded batches still
wait for synchronization, which drives a global sync of every device.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from eventops_batch.domain.eligibility import (
    ScanRecord,
    evaluate_scan_records,
    scan_record_from_payload,
)
from eventops_batch.domain.types import (
    EligibilityCriteria,
    ItemInput,
    ItemOutcome,
    JobKind,
)


@dataclass(frozen=True)
class DeviceBatch:
    """One uploaded scan batch of a field device."""

    device_id: str
    batch_id: str


class OfflineBatchSource(Protocol):
    """Scan records uploaded by a field device, grouped in batches."""

    def list_pending_batches(self) -> Sequence[DeviceBatch]:
        """Uploaded batches with records not yet synced, oldest first."""
        ...

    def list_records(self, device_id: str, batch_id: str) -> Sequence[ScanRecord]:
        ...

    def get_records(
        self, device_id: str, batch_id: str, record_ids: Sequence[str],
    ) -> Sequence[ScanRecord]:
        ...


class AttendanceSyncTarget(Protocol):
    """Applies one scan record to the central attendance store."""

    def apply_record(
        self, device_id: str, batch_id: str, scan_record: ScanRecord,
    ) -> ItemOutcome:
        ...


class AttendanceSyncTask:
    """Sync one offline device batch.

    Parameters:
        device_id: the field device that collected the scans.
        batch_id: the uploaded batch on that device.
    """

    def __init__(
        self,
        source: OfflineBatchSource,
        target: AttendanceSyncTarget,
    ) -> None:
        self._source = source
        self._target = target

    @property
    def kind(self) -> JobKind:
        return JobKind.ATTENDANCE_SYNC

    @property
    def description(self) -> str:
        return "Offline attendance scan batch synchronization"

    def pending_batches(self) -> tuple[DeviceBatch, ...]:
        return tuple(self._source.list_pending_batches())

    def target_ref(self, parameters: dict[str, Any]) -> str:
        return f"device:{parameters['device_id']}/batch:{parameters['batch_id']}"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        criteria: EligibilityCriteria | None,
    ) -> tuple[ItemInput, ...]:
        records = self._source.list_records(
            parameters["device_id"], parameters["batch_id"],
        )
        return evaluate_scan_records(records)

    def resolve_items(
        self,
        parameters: dict[str, Any],
        item_keys: Sequence[str],
    ) -> tuple[ItemInput, ...]:
        found = {
            r.record_id: r
            for r in self._source.get_records(
                parameters["device_id"], parameters["batch_id"], list(item_keys),
            )
        }
        return evaluate_scan_records(found[key] for key in item_keys if key in found)

    def execute_item(
        self,
        item: ItemInput,
        parameters: dict[str, Any],
    ) -> ItemOutcome:
        return self._target.apply_record(
            parameters["device_id"],
            parameters["batch_id"],
            scan_record_from_payload(item.payload),
        )
