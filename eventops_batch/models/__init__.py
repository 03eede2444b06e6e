"""
eventops_batch.models -- ORM models for job registry persistence.

Architecture: eventops_batch/models. Imports from eventops_kernel.db.base only.
"""

from eventops_batch.models.batch import (
    SYSTEM_ACTOR_ID,
    JobItemResultModel,
    JobModel,
)

__all__ = [
    "SYSTEM_ACTOR_ID",
    "JobItemResultModel",
    "JobModel",
]
