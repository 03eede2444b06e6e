"""
eventops_batch.tasks -- Task protocol, registry, and workflow tasks.

Collaborator protocols (issuer, mailer, directory, sync target, offline source)
live beside the task that consumes them.
"""

from eventops_batch.tasks.base import BatchTask, TaskRegistry
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

__all__ = [
    "AttendanceSyncTarget",
    "AttendanceSyncTask",
    "BatchTask",
    "CertificateGenerationTask",
    "CertificateIssuer",
    "CertificateMailer",
    "DeviceBatch",
    "OfflineBatchSource",
    "ParticipantDirectory",
    "TaskRegistry",
]
