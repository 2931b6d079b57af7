"""
Task Pool — Enrichment, Dependency Resolution and Availability Filtering

Flattens specs into an immutable task pool, resolves `depends_on` entries
against it, and filters tasks down to those that can be picked up now.

Dependency policy (fail-closed):
- An id matching a task must point at a `complete`/`done` task.
- An id matching a spec is met once every task in that spec is finished.
- An id matching neither is untracked and always blocks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import replace

from .errors import TaskNotFoundError
from .models import (
    BlockedTask,
    ConstraintParameters,
    DependencyChain,
    DependencyStatus,
    Spec,
    Task,
)

logger = logging.getLogger(__name__)


def _spec_header(record: Spec | Mapping) -> Spec:
    if isinstance(record, Spec):
        return replace(record, tasks=())
    return Spec.from_dict({**record, "tasks": []})


def build_task_pool(specs: Iterable[Spec | Mapping]) -> tuple[Task, ...]:
    """
    Flatten specs into tasks enriched with spec priority, status and phase.

    Malformed spec or task records are skipped with a warning.
    """
    pool: list[Task] = []
    for index, record in enumerate(specs):
        if not isinstance(record, (Spec, Mapping)):
            logger.warning("Skipping malformed spec record #%d (%s)", index, type(record).__name__)
            continue
        try:
            header = _spec_header(record)
        except (ValueError, TypeError) as exc:
            logger.warning("Skipping malformed spec record #%d: %s", index, exc)
            continue

        raw_tasks = record.tasks if isinstance(record, Spec) else record.get("tasks") or []
        for raw in raw_tasks:
            try:
                task = raw if isinstance(raw, Task) else Task.from_dict(raw)
            except (ValueError, TypeError) as exc:
                logger.warning("Skipping malformed task in spec %s: %s", header.id, exc)
                continue

            pool.append(
                replace(
                    task,
                    spec_id=header.id or task.spec_id,
                    spec_title=header.title or task.spec_title,
                    spec_priority=header.priority or task.spec_priority,
                    spec_status=header.status or task.spec_status,
                    phase=header.phase or task.phase,
                )
            )
    return tuple(pool)


class TaskPool:
    """Read-only view over the enriched tasks with dependency lookups."""

    def __init__(self, tasks: Sequence[Task]) -> None:
        self.tasks: tuple[Task, ...] = tuple(tasks)
        self._by_id: dict[str, Task] = {}
        self._by_spec: dict[str, list[Task]] = {}
        for task in self.tasks:
            self._by_id.setdefault(task.id, task)
            if task.spec_id:
                self._by_spec.setdefault(task.spec_id, []).append(task)

        for task in self.tasks:
            for dep_id in task.depends_on:
                if dep_id not in self._by_id and dep_id not in self._by_spec:
                    logger.warning(
                        "Task %s depends on untracked id %s; treating it as blocking",
                        task.id,
                        dep_id,
                    )

    @classmethod
    def from_specs(cls, specs: Iterable[Spec | Mapping]) -> TaskPool:
        return cls(build_task_pool(specs))

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.tasks)

    def get(self, task_id: str) -> Task | None:
        return self._by_id.get(task_id)

    def resolve_dependency(self, dep_id: str) -> DependencyStatus:
        task = self._by_id.get(dep_id)
        if task is not None:
            return DependencyStatus(
                id=dep_id,
                found=True,
                status=task.status or "unknown",
                completed=task.is_complete,
            )

        spec_tasks = self._by_spec.get(dep_id)
        if spec_tasks:
            pending = [t for t in spec_tasks if not t.is_complete]
            return DependencyStatus(
                id=dep_id,
                found=True,
                status=(pending[0].status or "unknown") if pending else "complete",
                completed=not pending,
            )

        return DependencyStatus(id=dep_id, found=False, status="unknown", completed=False)

    def unmet_dependencies(self, task: Task) -> tuple[DependencyStatus, ...]:
        statuses = (self.resolve_dependency(dep_id) for dep_id in task.depends_on)
        return tuple(dep for dep in statuses if not dep.completed)

    def is_blocked(self, task: Task) -> bool:
        return bool(self.unmet_dependencies(task))

    def dependents_of(self, task: Task) -> tuple[Task, ...]:
        keys = {task.id, task.spec_id} if task.spec_id else {task.id}
        return tuple(t for t in self.tasks if t is not task and keys.intersection(t.depends_on))

    def dependency_chain(self, task_id: str) -> DependencyChain:
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        dependencies = tuple(self.resolve_dependency(dep_id) for dep_id in task.depends_on)
        dependents = self.dependents_of(task)
        blocking: tuple[str, ...] = ()
        if not task.is_complete:
            blocking = tuple(t.id for t in dependents if t.status in (None, "ready"))

        return DependencyChain(
            task_id=task_id,
            dependencies=dependencies,
            dependents=dependents,
            blocked_by=tuple(dep.id for dep in dependencies if not dep.completed),
            blocking=blocking,
        )

    def blocked_tasks(self) -> list[BlockedTask]:
        blocked = []
        for task in self.tasks:
            unmet = self.unmet_dependencies(task)
            if not unmet:
                continue
            labels = [dep.id if dep.found else f"{dep.id} (untracked)" for dep in unmet]
            blocked.append(
                BlockedTask(
                    task=task,
                    blocked_by=tuple(dep.id for dep in unmet),
                    reason=f"Waiting for: {', '.join(labels)}",
                )
            )
        return blocked


def matches_constraints(task: Task, constraints: ConstraintParameters) -> bool:
    """Apply the caller's priority/phase/agent/spec-status filters."""
    if constraints.priority and task.effective_priority not in constraints.priority:
        return False

    # Tasks without a phase are not excluded by a phase filter
    if constraints.phase and task.phase and task.phase not in constraints.phase:
        return False

    if constraints.agent_type and task.agent_type and task.agent_type not in constraints.agent_type:
        return False

    if constraints.spec_status and task.spec_status not in constraints.spec_status:
        return False

    return True


def filter_available(pool: TaskPool, constraints: ConstraintParameters) -> list[Task]:
    """Tasks in a pickup status, with every dependency met, passing all filters."""
    return [
        task
        for task in pool
        if task.is_available and not pool.is_blocked(task) and matches_constraints(task, constraints)
    ]
