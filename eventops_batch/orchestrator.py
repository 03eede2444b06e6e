"""
BatchOrchestrator -- DI container and public entry point of the batch engine.

Contract:
    Wires the job registry, task registry, executor, retry coordinator and
    runner around one Clock, and exposes the inbound operations: submit,
    query, cancel, retry, run, global sync, export and stats.  Single place where all
    batch dependencies are composed.

Architecture: eventops_batch (top-level).  Nothing under domain/, tasks/
    or services/ imports from this module.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import Future
from typing import Any
from uuid import UUID, uuid4

from eventops_config import EngineSettings, get_active_settings
from eventops_kernel.domain.clock import Clock, SystemClock
from eventops_kernel.exceptions import InvalidJobConfigError
from eventops_kernel.logging_config import LogContext, configure_logging, get_logger

from eventops_batch.domain.eligibility import criteria_from_mapping, validate_criteria
from eventops_batch.domain.stats import JobStats, summarize
from eventops_batch.domain.types import (
    CertificateType,
    EligibilityCriteria,
    Job,
    JobConfig,
    JobFilter,
    JobKind,
    JobStatus,
)
from eventops_batch.services.executor import JobExecutor
from eventops_batch.services.export import ExportRow, export_rows
from eventops_batch.services.registry import InMemoryJobRegistry, JobRegistry
from eventops_batch.services.retry import RetryCoordinator
from eventops_batch.services.runner import JobRunner
from eventops_batch.tasks.base import TaskRegistry
from eventops_batch.tasks.certificate_tasks import (
    CertificateGenerationTask,
    CertificateIssuer,
    CertificateMailer,
    ParticipantDirectory,
)
from eventops_batch.tasks.sync_tasks import (
    AttendanceSyncTarget,
    AttendanceSyncTask,
    DeviceBatch,
    OfflineBatchSource,
)

logger = get_logger("batch.orchestrator")


def build_task_registry(
    directory: ParticipantDirectory | None = None,
    issuer: CertificateIssuer | None = None,
    source: OfflineBatchSource | None = None,
    target: AttendanceSyncTarget | None = None,
    mailer: CertificateMailer | None = None,
) -> TaskRegistry:
    """TaskRegistry holding every task whose collaborators are provided."""
    registry = TaskRegistry()
    if directory is not None and issuer is not None:
        registry.register(CertificateGenerationTask(directory, issuer, mailer))
    if source is not None and target is not None:
        registry.register(AttendanceSyncTask(source, target))
    return registry


def build_job_registry(settings: EngineSettings) -> JobRegistry:
    """In-memory registry, or a SQL one when ``database_url`` is set."""
    if not settings.database_url:
        return InMemoryJobRegistry()

    from eventops_kernel.db import create_tables, get_session_factory, init_engine_from_url

    import eventops_batch.models  # noqa: F401 -- registers tables on Base.metadata
    from eventops_batch.services.sql_registry import SqlJobRegistry

    init_engine_from_url(settings.database_url)
    create_tables()
    return SqlJobRegistry(get_session_factory())


class BatchOrchestrator:
    """Public API of the batch job engine.

    Contract:
        - ``submit_*_job()`` evaluates eligibility and inserts a pending
          job; criteria and config errors raise before anything is stored.
        - ``run_job()`` executes synchronously; ``start_job()`` dispatches
          to the runner.  With ``auto_start_jobs`` every submission and
          retry is dispatched immediately.
        - ``sync_all_pending()`` runs one sync job per pending device
          batch, in sequence, in the calling thread.
        - ``get_job()`` / ``list_jobs()`` return immutable snapshots.
        - ``shutdown()`` stops the runner gracefully.

    Non-goals:
        - Does NOT format exports -- rows only.
        - Does NOT authenticate callers; ``actor_id`` is recorded as given.
    """

    def __init__(
        self,
        job_registry: JobRegistry,
        task_registry: TaskRegistry,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], object] | None = None,
        actor_id: UUID | None = None,
        id_factory: Callable[[], UUID] = uuid4,
    ) -> None:
        self._registry = job_registry
        self._task_registry = task_registry
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._id_factory = id_factory

        self._runner = JobRunner(
            run_job=self._execute_job,
            cancel_job=self.cancel_job,
            max_workers=self._settings.runner.max_concurrent_jobs,
            shutdown_timeout_seconds=self._settings.runner.shutdown_timeout_seconds,
        )
        self._pause = sleep or self._runner.pause
        self._executor = JobExecutor(
            registry=job_registry,
            task_registry=task_registry,
            clock=self._clock,
            sleep=self._pause,
            should_stop=lambda: self._runner.is_stopped,
        )
        self._retry = RetryCoordinator(
            registry=job_registry,
            task_registry=task_registry,
            clock=self._clock,
            id_factory=id_factory,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        *,
        directory: ParticipantDirectory | None = None,
        issuer: CertificateIssuer | None = None,
        source: OfflineBatchSource | None = None,
        target: AttendanceSyncTarget | None = None,
        mailer: CertificateMailer | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        task_registry: TaskRegistry | None = None,
    ) -> BatchOrchestrator:
        """Create a fully wired orchestrator.

        Args:
            settings: Engine settings.  If None, ``get_active_settings()``.
            directory, issuer: Collaborators for certificate generation.
            source, target: Collaborators for offline attendance sync.
            mailer: Optional certificate delivery collaborator.
            clock: Optional clock for deterministic testing.
            actor_id: Recorded as ``created_by`` on submitted jobs.
            task_registry: Optional pre-configured registry.  If None, one
                is built from the collaborators given.
        """
        effective_settings = settings or get_active_settings()
        configure_logging(level=effective_settings.log_level)

        tasks = task_registry if task_registry is not None else build_task_registry(
            directory=directory, issuer=issuer, source=source, target=target,
            mailer=mailer,
        )
        logger.info(
            "orchestrator_created",
            extra={
                "config_name": effective_settings.name,
                "task_kinds": tasks.list_kinds(),
                "persistent": bool(effective_settings.database_url),
            },
        )
        return cls(
            job_registry=build_job_registry(effective_settings),
            task_registry=tasks,
            settings=effective_settings,
            clock=clock,
            actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit_certificate_job(
        self,
        event_id: str | int,
        template_id: str | None = None,
        criteria: EligibilityCriteria | Mapping[str, Any] | None = None,
        config: JobConfig | None = None,
        certificate_type: CertificateType | str | None = None,
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
        send_email: bool = False,
        email_template_id: str | None = None,
    ) -> UUID:
        """Submit bulk certificate generation for an event.

        Eligibility is evaluated now, against the directory's current
        participants; the resulting item list is fixed for the job.  With
        ``send_email`` each issued certificate is also emailed, using
        ``email_template_id`` when given.

        Raises:
            InvalidCriteriaError: Malformed criteria.
            InvalidJobConfigError: Malformed config.
            TaskNotRegisteredError: No certificate collaborators wired.
        """
        if criteria is None:
            criteria = EligibilityCriteria(
                minimum_attendance_percentage=(
                    self._settings.eligibility.minimum_attendance_percentage
                ),
            )
        elif isinstance(criteria, Mapping):
            criteria = criteria_from_mapping(criteria)
        validate_criteria(criteria)

        if certificate_type is None:
            certificate_type = self._settings.eligibility.certificate_type
        try:
            certificate_type = CertificateType(certificate_type)
        except ValueError:
            raise InvalidJobConfigError(
                "certificate_type", certificate_type,
                f"must be one of {', '.join(t.value for t in CertificateType)}",
            ) from None
        self._check_delivery(send_email, email_template_id)
        parameters = {
            "event_id": event_id,
            "template_id": template_id,
            "certificate_type": certificate_type.value,
            "send_email": send_email,
            "email_template_id": email_template_id,
        }
        return self._submit(
            JobKind.CERTIFICATE_GENERATION, parameters, criteria, config,
            actor_id, correlation_id,
        )

    def submit_sync_job(
        self,
        device_id: str,
        batch_id: str,
        config: JobConfig | None = None,
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> UUID:
        """Submit synchronization of one offline device batch.

        Raises:
            InvalidJobConfigError: Malformed config.
            TaskNotRegisteredError: No sync collaborators wired.
        """
        parameters = {"device_id": device_id, "batch_id": batch_id}
        return self._submit(
            JobKind.ATTENDANCE_SYNC, parameters, None, config,
            actor_id, correlation_id,
        )

    def sync_all_pending(
        self,
        config: JobConfig | None = None,
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> tuple[Job, ...]:
        """Sync every device batch the source reports as pending, in order.

        One sync job per batch, run in the calling thread one after another
        with ``delay_between_batches`` between jobs.  Batches that already
        have a pending or processing sync job are skipped.  Stops early,
        leaving the rest unsubmitted, once the orchestrator shuts down.

        Returns:
            The terminal snapshot of every job run, in source order.

        Raises:
            TaskNotRegisteredError: No sync collaborators wired.
            InvalidJobConfigError: Malformed config.
        """
        task = self._task_registry.get(JobKind.ATTENDANCE_SYNC)
        effective_config = config or self._default_config()
        correlation_id = correlation_id or str(uuid4())

        active = {
            job.target_ref
            for job in self._registry.list(JobFilter(
                kind=JobKind.ATTENDANCE_SYNC,
                statuses=frozenset({JobStatus.PENDING, JobStatus.PROCESSING}),
            ))
        }
        batches: list[DeviceBatch] = []
        skipped = 0
        for batch in task.pending_batches():
            parameters = {"device_id": batch.device_id, "batch_id": batch.batch_id}
            if task.target_ref(parameters) in active:
                skipped += 1
            else:
                batches.append(batch)

        with LogContext.bind(correlation_id=correlation_id):
            logger.info(
                "global_sync_started",
                extra={"device_batches": len(batches), "skipped_batches": skipped},
            )
            finished: list[Job] = []
            for batch in batches:
                if self._runner.is_stopped:
                    break
                if finished and effective_config.delay_between_batches:
                    self._pause(effective_config.delay_between_batches.total_seconds())
                job_id = self._submit(
                    JobKind.ATTENDANCE_SYNC,
                    {"device_id": batch.device_id, "batch_id": batch.batch_id},
                    None, effective_config, actor_id, correlation_id,
                    dispatch=False,
                )
                finished.append(self._execute_job(job_id))

            logger.info(
                "global_sync_finished",
                extra={
                    "jobs_run": len(finished),
                    "jobs_not_started": len(batches) - len(finished),
                    "failed_items": sum(job.failed_items for job in finished),
                },
            )
        return tuple(finished)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> Job:
        """Snapshot including counters and the latest progress report.

        Raises:
            JobNotFoundError: Unknown job id.
        """
        return self._registry.get(job_id)

    def list_jobs(self, job_filter: JobFilter | None = None) -> tuple[Job, ...]:
        return self._registry.list(job_filter)

    def export_job(self, job_id: UUID) -> tuple[ExportRow, ...]:
        return export_rows(self._registry.get(job_id))

    def job_stats(self, kind: JobKind | None = None) -> JobStats:
        return summarize(self._registry.list(JobFilter(kind=kind)))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def run_job(self, job_id: UUID) -> Job:
        """Execute a pending job in the calling thread; returns the terminal snapshot.

        Raises:
            RuntimeError: The orchestrator has been shut down.
        """
        if self._runner.is_stopped:
            raise RuntimeError("BatchOrchestrator has been shut down")
        return self._execute_job(job_id)

    def start_job(self, job_id: UUID) -> Future[Job]:
        """Dispatch a pending job to the runner's thread pool."""
        return self._runner.dispatch(job_id)

    def wait_job(self, job_id: UUID, timeout: float | None = None) -> Job:
        return self._runner.wait(job_id, timeout=timeout)

    def cancel_job(self, job_id: UUID) -> Job:
        """Request cooperative cancellation of a processing job."""
        return self._retry.cancel(job_id)

    def retry_job(
        self, job_id: UUID, actor_id: UUID | None = None,
    ) -> UUID:
        """Create a pending job over the failed items of a terminal job."""
        retry_job = self._retry.retry(job_id, actor_id=actor_id or self._actor_id)
        if self._settings.runner.auto_start_jobs:
            self._runner.dispatch(retry_job.job_id)
        return retry_job.job_id

    def shutdown(self, timeout: float | None = None) -> None:
        self._runner.shutdown(timeout=timeout)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def job_registry(self) -> JobRegistry:
        return self._registry

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def runner(self) -> JobRunner:
        return self._runner

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _execute_job(self, job_id: UUID) -> Job:
        return self._executor.run(job_id)

    def _check_delivery(self, send_email: bool, email_template_id: str | None) -> None:
        if not isinstance(send_email, bool):
            raise InvalidJobConfigError("send_email", send_email, "must be a boolean")
        if email_template_id is not None and not send_email:
            raise InvalidJobConfigError(
                "email_template_id", email_template_id, "requires send_email",
            )
        if send_email:
            task = self._task_registry.get(JobKind.CERTIFICATE_GENERATION)
            if not getattr(task, "can_deliver", False):
                raise InvalidJobConfigError(
                    "send_email", send_email, "no certificate mailer is configured",
                )

    def _default_config(self) -> JobConfig:
        return JobConfig.from_millis(
            self._settings.batch.batch_size,
            self._settings.batch.delay_between_batches_ms,
        )

    def _submit(
        self,
        kind: JobKind,
        parameters: dict[str, Any],
        criteria: EligibilityCriteria | None,
        config: JobConfig | None,
        actor_id: UUID | None,
        correlation_id: str | None,
        dispatch: bool = True,
    ) -> UUID:
        effective_config = config or self._default_config()
        task = self._task_registry.get(kind)
        correlation_id = correlation_id or str(uuid4())

        with LogContext.bind(correlation_id=correlation_id):
            items = task.prepare_items(parameters, criteria)
            job = self._registry.insert(Job(
                job_id=self._id_factory(),
                kind=kind,
                target_ref=task.target_ref(parameters),
                config=effective_config,
                parameters=parameters,
                criteria=criteria,
                items=items,
                total_items=len(items),
                created_at=self._clock.now(),
                created_by=actor_id or self._actor_id,
                correlation_id=correlation_id,
            ))
            logger.info(
                "job_submitted",
                extra={
                    "job_id": str(job.job_id),
                    "kind": kind.value,
                    "target_ref": job.target_ref,
                    "total_items": job.total_items,
                    "batch_size": effective_config.batch_size,
                    "seq": job.seq,
                },
            )

        if dispatch and self._settings.runner.auto_start_jobs:
            self._runner.dispatch(job.job_id)
        return job.job_id
