"""
Typed exception hierarchy for the eventops batch engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (the admin console, schedulers, operators' scripts)
must tell apart three very different situations:

  - the operation was rejected because the job is in the wrong state,
  - the job ran but its infrastructure collapsed underneath it,
  - the submission itself was malformed.

Every error therefore has its own class, a machine-readable ``code`` class
attribute, and structured attributes.  Catch by type, never by message.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    EventOpsError (base)
    |
    +-- JobError
    |   +-- JobNotFoundError
    |   +-- DuplicateJobError
    |   +-- InvalidStateError
    |   +-- NothingToRetryError
    |   +-- JobAlreadyDispatchedError
    |   +-- InvalidJobConfigError
    |   +-- CounterInvariantError
    |   +-- TaskNotRegisteredError
    |
    +-- EligibilityError
    |   +-- InvalidCriteriaError
    |
    +-- InfrastructureError
    |   +-- CollaboratorUnavailableError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Job             | JOB_NOT_FOUND               | Job ID not in the registry
                | DUPLICATE_JOB               | Job ID inserted twice
                | INVALID_JOB_STATE           | run/cancel/retry in the wrong state
                | NOTHING_TO_RETRY            | Retry of a job with zero failed items
                | JOB_ALREADY_DISPATCHED      | Job handed to the runner twice
                | INVALID_JOB_CONFIG          | batch_size < 1 or negative delay
                | JOB_COUNTER_INVARIANT       | Counters fail to reconcile on write
                | TASK_NOT_REGISTERED         | No task handles the job kind
----------------|-----------------------------|-----------------------------------------
Eligibility     | INVALID_CRITERIA            | Malformed eligibility criteria
----------------|-----------------------------|-----------------------------------------
Infrastructure  | INFRASTRUCTURE_FAILURE      | Per-item infrastructure unusable
                | COLLABORATOR_UNAVAILABLE    | Issuer / sync target unreachable
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Engine settings file is invalid

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Item-level failures are NOT exceptions at the caller's level.  A per-item
   operation may raise anything; the batch processor records it as a
   failure outcome.  Only ``InfrastructureError`` escapes the item boundary,
   and the executor turns it into a FAILED job.

2. Invalid-operation errors are raised before any mutation:

    try:
        orchestrator.retry_job(job_id)
    except NothingToRetryError as e:
        notify(f"Job {e.job_id} has no failed items")
    except InvalidStateError as e:
        notify(f"Job is {e.current_status}, expected {e.expected}")

===============================================================================
"""

from __future__ import annotations

from collections.abc import Iterable


class EventOpsError(Exception):
    """
    Base exception for all eventops errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "EVENTOPS_ERROR"


# Job lifecycle exceptions


class JobError(EventOpsError):
    """Base for job lifecycle errors."""

    code: str = "JOB_ERROR"


class JobNotFoundError(JobError):
    """The requested job does not exist in the registry."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class DuplicateJobError(JobError):
    """A job with the same identifier is already registered."""

    code: str = "DUPLICATE_JOB"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already registered")


class InvalidStateError(JobError):
    """The operation is not allowed in the job's current status.

    Raised synchronously; the job is left unchanged.
    """

    code: str = "INVALID_JOB_STATE"

    def __init__(
        self,
        job_id: str,
        operation: str,
        current_status: str,
        expected: Iterable[str] = (),
    ):
        self.job_id = job_id
        self.operation = operation
        self.current_status = current_status
        self.expected = tuple(expected)
        message = (
            f"Cannot {operation} job {job_id} in status '{current_status}'"
        )
        if self.expected:
            message += f" (expected: {', '.join(self.expected)})"
        super().__init__(message)


class NothingToRetryError(JobError):
    """Retry requested for a job that has no failed items."""

    code: str = "NOTHING_TO_RETRY"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} has no failed items to retry")


class JobAlreadyDispatchedError(JobError):
    """The runner already owns an in-flight execution of this job."""

    code: str = "JOB_ALREADY_DISPATCHED"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already dispatched")


class InvalidJobConfigError(JobError):
    """Job pacing configuration is out of range."""

    code: str = "INVALID_JOB_CONFIG"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid job config {field}={value!r}: {reason}")


class CounterInvariantError(JobError):
    """A job snapshot's counters do not reconcile.

    Raised by the registry before a write is stored, so no reader can
    observe an inconsistent snapshot.
    """

    code: str = "JOB_COUNTER_INVARIANT"

    def __init__(self, job_id: str, detail: str):
        self.job_id = job_id
        self.detail = detail
        super().__init__(f"Job {job_id} violates counter invariant: {detail}")


class TaskNotRegisteredError(JobError):
    """No task implementation is registered for a job kind."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, kind: str, available: tuple[str, ...] = ()):
        self.kind = kind
        self.available = available
        message = f"No task registered for kind '{kind}'"
        if available:
            message += f". Available: {', '.join(available)}"
        super().__init__(message)


# Eligibility exceptions


class EligibilityError(EventOpsError):
    """Base for eligibility evaluation errors."""

    code: str = "ELIGIBILITY_ERROR"


class InvalidCriteriaError(EligibilityError):
    """Eligibility criteria are malformed.  Raised before a job is created."""

    code: str = "INVALID_CRITERIA"

    def __init__(self, criterion: str, value: object, reason: str):
        self.criterion = criterion
        self.value = value
        self.reason = reason
        super().__init__(
            f"Invalid eligibility criterion {criterion}={value!r}: {reason}"
        )


# Infrastructure exceptions


class InfrastructureError(EventOpsError):
    """The per-item operation's infrastructure is unusable.

    Unlike ordinary exceptions raised by a per-item operation, this one is
    not an item outcome: it aborts the whole job.
    """

    code: str = "INFRASTRUCTURE_FAILURE"


class CollaboratorUnavailableError(InfrastructureError):
    """An external collaborator service cannot be reached."""

    code: str = "COLLABORATOR_UNAVAILABLE"

    def __init__(self, service: str, detail: str = ""):
        self.service = service
        self.detail = detail
        message = f"Collaborator '{service}' is unavailable"
        if detail:
            message += f": {detail}"
        super().__init__(message)


# Configuration exceptions


class ConfigurationError(EventOpsError):
    """Engine settings could not be loaded or failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting '{setting}': {reason}")
