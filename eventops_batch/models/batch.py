"""
ORM models for job registry persistence.

Contract:
    JobModel and JobItemResultModel persist job snapshots and their
    append-only per-item results.  Each has ``to_dto()`` / ``from_dto()``
    round-trip methods.  The fixed item list, parameters, criteria and the
    job-level error list are stored as JSON columns.

Architecture: eventops_batch/models. Imports from eventops_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventops_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from eventops_batch.domain.types import ItemResult, Job

# created_by_id is NOT NULL; jobs submitted without an actor are attributed here.
SYSTEM_ACTOR_ID = UUID(int=0)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobModel(TrackedBase):
    """Persistent job record."""

    __tablename__ = "batch_jobs"

    __table_args__ = (
        Index("ix_batch_jobs_status", "status"),
        Index("ix_batch_jobs_kind", "kind"),
        Index("ix_batch_jobs_target_ref", "target_ref"),
        Index("ix_batch_jobs_parent", "parent_job_id"),
    )

    kind: Mapped[str] = mapped_column(String(100), nullable=False)
    target_ref: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    criteria: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    items: Mapped[list | None] = mapped_column(JSON, nullable=True)
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False)
    delay_between_batches_ms: Mapped[float] = mapped_column(
        Float, default=0.0, nullable=False,
    )
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    progress_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    estimated_remaining_seconds: Mapped[float | None] = mapped_column(
        Float, nullable=True,
    )
    cancel_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    parent_job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    attempt: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    seq: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    item_results: Mapped[list["JobItemResultModel"]] = relationship(
        "JobItemResultModel",
        back_populates="job",
        foreign_keys="JobItemResultModel.job_id",
        order_by="JobItemResultModel.item_index",
        lazy="selectin",
    )

    def to_dto(self) -> Job:
        from eventops_batch.domain.types import (
            EligibilityCriteria,
            ItemInput,
            Job,
            JobConfig,
            JobKind,
            JobStatus,
            ProgressReport,
        )

        remaining = self.estimated_remaining_seconds
        return Job(
            job_id=self.id,
            kind=JobKind(self.kind),
            target_ref=self.target_ref,
            config=JobConfig(
                batch_size=self.batch_size,
                delay_between_batches=timedelta(
                    milliseconds=self.delay_between_batches_ms,
                ),
            ),
            status=JobStatus(self.status),
            parameters=self.parameters or {},
            criteria=(
                EligibilityCriteria(**self.criteria) if self.criteria else None
            ),
            items=tuple(ItemInput(**item) for item in self.items or ()),
            total_items=self.total_items,
            processed_items=self.processed_items,
            successful_items=self.successful_items,
            failed_items=self.failed_items,
            errors=tuple(self.errors or ()),
            item_results=tuple(r.to_dto() for r in self.item_results),
            progress=ProgressReport(
                percent=self.progress_percent,
                estimated_remaining=(
                    timedelta(seconds=remaining) if remaining is not None else None
                ),
            ),
            cancel_requested=self.cancel_requested,
            parent_job_id=self.parent_job_id,
            attempt=self.attempt,
            created_at=_as_utc(self.created_at),
            started_at=_as_utc(self.started_at),
            completed_at=_as_utc(self.completed_at),
            created_by=(
                None if self.created_by_id == SYSTEM_ACTOR_ID else self.created_by_id
            ),
            correlation_id=self.correlation_id,
            seq=self.seq,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Job) -> JobModel:
        model = cls(
            id=dto.job_id,
            kind=dto.kind.value,
            target_ref=dto.target_ref,
            parameters=dto.parameters or None,
            criteria=_criteria_json(dto),
            items=[_item_json(item) for item in dto.items],
            batch_size=dto.config.batch_size,
            delay_between_batches_ms=(
                dto.config.delay_between_batches.total_seconds() * 1000
            ),
            parent_job_id=dto.parent_job_id,
            attempt=dto.attempt,
            correlation_id=dto.correlation_id,
            created_by_id=dto.created_by or SYSTEM_ACTOR_ID,
            updated_by_id=None,
        )
        if dto.created_at is not None:
            model.created_at = dto.created_at
        model.apply(dto)
        return model

    def apply(self, dto: Job) -> None:
        """Copy the mutable part of a snapshot onto this row."""
        self.status = dto.status.value
        self.total_items = dto.total_items
        self.processed_items = dto.processed_items
        self.successful_items = dto.successful_items
        self.failed_items = dto.failed_items
        self.errors = list(dto.errors)
        self.progress_percent = dto.progress.percent
        self.estimated_remaining_seconds = (
            dto.progress.estimated_remaining.total_seconds()
            if dto.progress.estimated_remaining is not None
            else None
        )
        self.cancel_requested = dto.cancel_requested
        self.seq = dto.seq
        self.version = dto.version
        self.started_at = dto.started_at
        self.completed_at = dto.completed_at


class JobItemResultModel(TrackedBase):
    """One processed item of a job.  Rows are only ever appended."""

    __tablename__ = "batch_job_item_results"

    __table_args__ = (
        UniqueConstraint("job_id", "item_index", name="uq_job_item_index"),
        Index("ix_batch_job_item_results_item_key", "item_key"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batch_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    item_key: Mapped[str] = mapped_column(String(200), nullable=False)
    outcome: Mapped[str] = mapped_column(String(50), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_ref: Mapped[str | None] = mapped_column(String(200), nullable=True)
    label: Mapped[str] = mapped_column(String(300), default="", nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    job: Mapped["JobModel"] = relationship(
        "JobModel",
        back_populates="item_results",
        foreign_keys=[job_id],
    )

    def to_dto(self) -> ItemResult:
        from eventops_batch.domain.types import ItemOutcomeStatus, ItemResult

        return ItemResult(
            item_index=self.item_index,
            item_key=self.item_key,
            outcome=ItemOutcomeStatus(self.outcome),
            error=self.error,
            result_ref=self.result_ref,
            label=self.label,
            duration_ms=self.duration_ms,
            completed_at=_as_utc(self.completed_at),
        )

    @classmethod
    def from_dto(
        cls, dto: ItemResult, job_id: UUID, created_by_id: UUID,
    ) -> JobItemResultModel:
        return cls(
            job_id=job_id,
            item_index=dto.item_index,
            item_key=dto.item_key,
            outcome=dto.outcome.value,
            error=dto.error,
            result_ref=dto.result_ref,
            label=dto.label,
            duration_ms=dto.duration_ms,
            completed_at=dto.completed_at,
            created_by_id=created_by_id,
            updated_by_id=None,
        )


def _criteria_json(dto: Job) -> dict[str, Any] | None:
    if dto.criteria is None:
        return None
    return {
        "minimum_attendance_percentage": dto.criteria.minimum_attendance_percentage,
        "minimum_sessions_attended": dto.criteria.minimum_sessions_attended,
        "minimum_evaluation_score": dto.criteria.minimum_evaluation_score,
    }


def _item_json(item: Any) -> dict[str, Any]:
    return {
        "item_index": item.item_index,
        "item_key": item.item_key,
        "label": item.label,
        "payload": dict(item.payload),
    }
