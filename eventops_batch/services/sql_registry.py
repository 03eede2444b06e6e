"""
SqlJobRegistry -- JobRegistry over SQLAlchemy.

Contract:
    One short transaction per operation.  ``update()`` locks the job row
    (SELECT ... FOR UPDATE), applies the transition to the loaded snapshot,
    writes the new counters and appends the new item-result rows in the same
    transaction.  Item-result rows are never updated or deleted.

Architecture: eventops_batch/services.  Uses eventops_batch.models.  A
    process-level lock serializes every operation, since SQLite runs on a
    single shared connection.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import replace
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from eventops_kernel.exceptions import DuplicateJobError, JobNotFoundError
from eventops_kernel.logging_config import get_logger

from eventops_batch.domain.types import Job, JobFilter
from eventops_batch.models.batch import (
    SYSTEM_ACTOR_ID,
    JobItemResultModel,
    JobModel,
)
from eventops_batch.services.registry import (
    JobRegistry,
    Transition,
    validate_transition,
)

logger = get_logger("batch.sql_registry")


class SqlJobRegistry(JobRegistry):
    """Registry persisted in the ``batch_jobs`` / ``batch_job_item_results`` tables.

    Non-goals:
        - Does NOT create tables -- call ``create_tables()`` at startup.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._actor_id = actor_id or SYSTEM_ACTOR_ID
        self._lock = threading.RLock()

    def insert(self, job: Job) -> Job:
        job.check_invariants()
        with self._lock:
            session = self._session_factory()
            try:
                if session.get(JobModel, job.job_id) is not None:
                    raise DuplicateJobError(str(job.job_id))
                last_seq = session.execute(select(func.max(JobModel.seq))).scalar()
                stored = replace(job, seq=(last_seq or 0) + 1, version=1)
                session.add(JobModel.from_dto(stored))
                self._append_results(session, stored, stored.item_results)
                session.commit()
                return stored
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def get(self, job_id: UUID) -> Job:
        with self._lock:
            session = self._session_factory()
            try:
                model = session.get(JobModel, job_id)
                if model is None:
                    raise JobNotFoundError(str(job_id))
                return model.to_dto()
            finally:
                session.close()

    def is_cancel_requested(self, job_id: UUID) -> bool:
        # Reads the flag column only; item results stay unloaded.
        with self._lock:
            session = self._session_factory()
            try:
                flag = session.execute(
                    select(JobModel.cancel_requested).where(JobModel.id == job_id)
                ).scalar_one_or_none()
            finally:
                session.close()
        if flag is None:
            raise JobNotFoundError(str(job_id))
        return bool(flag)

    def update(self, job_id: UUID, transition: Transition) -> Job:
        with self._lock:
            session = self._session_factory()
            try:
                model = session.execute(
                    select(JobModel)
                    .where(JobModel.id == job_id)
                    .with_for_update()
                ).scalar_one_or_none()
                if model is None:
                    raise JobNotFoundError(str(job_id))

                current = model.to_dto()
                new = transition(current)
                if new is current:
                    session.rollback()
                    return current

                stored = validate_transition(current, new)
                model.apply(stored)
                model.updated_by_id = self._actor_id
                self._append_results(
                    session, stored,
                    stored.item_results[len(current.item_results):],
                )
                session.commit()
                return stored
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def list(self, job_filter: JobFilter | None = None) -> tuple[Job, ...]:
        stmt = select(JobModel).order_by(JobModel.seq)
        if job_filter is not None:
            if job_filter.kind is not None:
                stmt = stmt.where(JobModel.kind == job_filter.kind.value)
            if job_filter.statuses is not None:
                stmt = stmt.where(
                    JobModel.status.in_([s.value for s in job_filter.statuses])
                )
            if job_filter.target_ref is not None:
                stmt = stmt.where(JobModel.target_ref == job_filter.target_ref)
            if job_filter.parent_job_id is not None:
                stmt = stmt.where(JobModel.parent_job_id == job_filter.parent_job_id)

        with self._lock:
            session = self._session_factory()
            try:
                return tuple(
                    m.to_dto() for m in session.execute(stmt).scalars().all()
                )
            finally:
                session.close()

    def __len__(self) -> int:
        with self._lock:
            session = self._session_factory()
            try:
                return session.execute(
                    select(func.count(JobModel.id))
                ).scalar() or 0
            finally:
                session.close()

    def _append_results(self, session: Session, job: Job, results) -> None:
        for result in results:
            session.add(JobItemResultModel.from_dto(
                result, job_id=job.job_id, created_by_id=self._actor_id,
            ))
        if results:
            logger.debug(
                "job_item_results_appended",
                extra={"job_id": str(job.job_id), "count": len(results)},
            )
