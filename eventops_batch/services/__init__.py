"""
eventops_batch.services -- Registry, batch processing, execution and dispatch.
"""

from eventops_batch.services.batch_processor import BatchProcessor, BatchResult
from eventops_batch.services.executor import JobExecutor
from eventops_batch.services.export import ExportRow, export_rows
from eventops_batch.services.registry import InMemoryJobRegistry, JobRegistry
from eventops_batch.services.retry import RetryCoordinator
from eventops_batch.services.runner import JobRunner
from eventops_batch.services.sql_registry import SqlJobRegistry

__all__ = [
    "BatchProcessor",
    "BatchResult",
    "ExportRow",
    "InMemoryJobRegistry",
    "JobExecutor",
    "JobRegistry",
    "JobRunner",
    "RetryCoordinator",
    "SqlJobRegistry",
    "export_rows",
]
