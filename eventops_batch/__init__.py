"""
eventops_batch -- Long-running batch job orchestration engine.

Drives bulk certificate generation for the eligible participants of an
event and synchronization of offline attendance-scan batches.  Jobs are
processed in paced batches with per-item failure isolation, live
progress, cooperative cancellation and retry of failed items.

Architecture:
    domain/    pure types, eligibility, progress, state transitions, stats
    tasks/     workflow adapters over collaborator protocols
    services/  registry, batch processor, executor, retry, runner, export
    models/    SQLAlchemy persistence of the registry
    orchestrator.py  wiring and public API

Invariants:
    - processed_items == successful_items + failed_items <= total_items
    - item_results: one per processed item, submission order, append-only
    - no transition out of a terminal status; retry creates a new job
    - every job write is one atomic registry update
"""

from eventops_batch.orchestrator import BatchOrchestrator

__all__ = ["BatchOrchestrator"]
