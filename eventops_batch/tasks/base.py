"""
BatchTask protocol and TaskRegistry.

Contract:
    ``BatchTask`` adapts one workflow (certificate generation, attendance
    sync) to the engine: it resolves the item population at submission and
    on retry, and performs the per-item operation.
    ``TaskRegistry`` stores registered tasks keyed by ``JobKind``.

Architecture:
    eventops_batch/tasks.  Imports from eventops_batch.domain and the
    kernel exceptions only.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from eventops_kernel.exceptions import TaskNotRegisteredError

from eventops_batch.domain.types import (
    EligibilityCriteria,
    ItemInput,
    ItemOutcome,
    JobKind,
)


@runtime_checkable
class BatchTask(Protocol):
    """Interface every workflow task implements.

    Contract:
        - ``kind``: the JobKind this task handles (one task per kind).
        - ``prepare_items()``: evaluates eligibility over the current
          population; called once, at submission.
        - ``resolve_items()``: looks item keys up again against current
          collaborator state; called when building a retry job.
        - ``execute_item()``: the per-item operation.  Returns an
          ``ItemOutcome``; may raise.  Ordinary exceptions become failure
          outcomes, ``InfrastructureError`` aborts the job.

    Non-goals:
        - Does NOT pace, retry or count -- the executor owns all of that.
    """

    @property
    def kind(self) -> JobKind: ...

    @property
    def description(self) -> str: ...

    def target_ref(self, parameters: dict[str, Any]) -> str:
        """Identifier of the batch subject (event, device batch)."""
        ...

    def prepare_items(
        self,
        parameters: dict[str, Any],
        criteria: EligibilityCriteria | None,
    ) -> tuple[ItemInput, ...]:
        ...

    def resolve_items(
        self,
        parameters: dict[str, Any],
        item_keys: Sequence[str],
    ) -> tuple[ItemInput, ...]:
        ...

    def execute_item(
        self,
        item: ItemInput,
        parameters: dict[str, Any],
    ) -> ItemOutcome:
        ...


class TaskRegistry:
    """Registry mapping job kinds to BatchTask implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate kind.
        - ``get()`` retrieves by kind; raises TaskNotRegisteredError.
        - ``list_kinds()`` returns all registered kind values, sorted.
    """

    def __init__(self) -> None:
        self._tasks: dict[JobKind, BatchTask] = {}

    def register(self, task: BatchTask) -> None:
        if task.kind in self._tasks:
            raise ValueError(f"Task kind '{task.kind.value}' is already registered")
        self._tasks[task.kind] = task

    def get(self, kind: JobKind) -> BatchTask:
        try:
            return self._tasks[kind]
        except KeyError:
            raise TaskNotRegisteredError(
                JobKind(kind).value, self.list_kinds(),
            ) from None

    def list_kinds(self) -> tuple[str, ...]:
        return tuple(sorted(k.value for k in self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, kind: JobKind) -> bool:
        return kind in self._tasks
