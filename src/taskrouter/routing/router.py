"""
Task Router — Next-Task Recommendation

Pipeline for `get_next_task(agent_type, constraints)`:
1. Serve from the result cache when a fresh entry exists
2. Filter the pool to available tasks (status, dependencies, filters)
3. Gate by agent capability
4. Score each candidate and validate it against the five constraints
5. Drop invalid candidates unless `allow_violations` is set
6. Apply the constraint multiplier, stable-sort, pick the top task plus
   up to three alternatives, and explain the choice

The task pool and capability definitions are immutable snapshots shared
without locking; only the workload ledger and result cache are mutable.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from taskrouter.config import RouterSettings
from taskrouter.observability import timed_operation

from .cache import ResultCache
from .capabilities import CapabilityConfig, can_assign, load_capabilities, matched_contexts
from .constraints import ConstraintEngine
from .errors import InvalidInputError, PoolReadError, TaskNotFoundError
from .ledger import WorkloadLedger, WorkloadStats
from .models import (
    BlockedTask,
    ConstraintParameters,
    ConstraintValidation,
    DependencyChain,
    RecommendationResult,
    RecommendationStatus,
    ScoreBreakdown,
    ScoredCandidate,
    Task,
    utcnow,
)
from .pool import TaskPool, filter_available
from .repository import SpecRepository
from .scorer import round_half_up, score_task

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3

ConstraintsArg = ConstraintParameters | Mapping[str, Any] | None


def recommendation_reasoning(task: Task, agent_type: str, capabilities: CapabilityConfig) -> str:
    """Human-readable reasons a task suits an agent."""
    reasons: list[str] = []

    priority = task.effective_priority
    if priority == "P0":
        reasons.append("Critical priority")
    elif priority == "P1":
        reasons.append("High priority")

    if task.agent_type == agent_type:
        reasons.append("Perfect agent match")

    if task.spec_status == "active":
        reasons.append("Active feature")

    contexts = matched_contexts(task, capabilities.definition_for(agent_type))
    if contexts:
        reasons.append(f"Context match: {', '.join(contexts)}")

    return ", ".join(reasons) if reasons else "Available task"


class TaskRouter:
    """Recommends the next task for an agent type."""

    def __init__(
        self,
        repository: SpecRepository,
        settings: RouterSettings | None = None,
        capabilities: CapabilityConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a router.

        Args:
            repository: Source of spec snapshots
            settings: Router settings; defaults rooted at the working directory
            capabilities: Preloaded capability definitions. When None,
                `initialize()` reads them from `settings.capabilities_path`.
            clock: Returns the current aware datetime (deadlines)
            cache_clock: Monotonic seconds for cache expiry
        """
        self.repository = repository
        self.settings = settings or RouterSettings.for_root(Path.cwd())
        self._preloaded_capabilities = capabilities
        self.capabilities = capabilities or CapabilityConfig()
        self.clock = clock
        self.ledger = WorkloadLedger()
        self.cache: ResultCache[RecommendationResult] = ResultCache(
            self.settings.cache_ttl_ms, clock=cache_clock
        )
        self.constraint_engine = ConstraintEngine(
            self.ledger,
            self.capabilities,
            clock=clock,
            default_task_hours=self.settings.default_task_hours,
        )
        self._pool: TaskPool | None = None
        self._pool_lock = threading.Lock()

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    def initialize(self) -> bool:
        """
        Load capability definitions and prime the task pool.

        Returns:
            True when capability definitions were loaded, False when the
            router fell back to permissive defaults.

        Raises:
            PoolReadError: the spec repository could not be read
        """
        with timed_operation("router initialization", self.settings.performance_target_ms, logger):
            if self._preloaded_capabilities is not None:
                capabilities = self._preloaded_capabilities
            else:
                capabilities = load_capabilities(self.settings.capabilities_path)
            self.capabilities = capabilities
            self.constraint_engine.capabilities = capabilities
            self.reload()
        return self.capabilities.loaded

    def reload(self) -> None:
        """Re-read the spec repository and drop cached recommendations."""
        pool = self._read_pool()
        with self._pool_lock:
            self._pool = pool
        self.cache.clear()
        logger.info("Task pool loaded: %d tasks", len(pool))

    def _read_pool(self) -> TaskPool:
        try:
            specs = self.repository.get_specs()
        except PoolReadError:
            raise
        except Exception as exc:
            raise PoolReadError(f"Failed to read specs: {exc}") from exc
        return TaskPool.from_specs(specs)

    @property
    def pool(self) -> TaskPool:
        pool = self._pool
        if pool is not None:
            return pool
        with self._pool_lock:
            if self._pool is None:
                self._pool = self._read_pool()
            return self._pool

    def _constraints(self, constraints: ConstraintsArg) -> ConstraintParameters:
        if isinstance(constraints, ConstraintParameters):
            return constraints
        data = dict(constraints or {})
        if "maxWorkloadPerAgent" not in data and "max_workload_per_agent" not in data:
            data["max_workload_per_agent"] = self.settings.default_max_workload
        try:
            return ConstraintParameters.from_dict(data)
        except (ValueError, TypeError, AttributeError) as exc:
            raise InvalidInputError(f"Invalid constraints: {exc}") from exc

    # ═══════════════════════════════════════════════════════════════════════
    # TASK QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    def get_all_tasks(self) -> list[Task]:
        return list(self.pool)

    def get_available_tasks(self, constraints: ConstraintsArg = None) -> list[Task]:
        """Tasks that can be picked up now and pass the caller's filters."""
        return filter_available(self.pool, self._constraints(constraints))

    def get_ready_tasks(self, constraints: ConstraintsArg = None) -> list[Task]:
        """Available tasks whose own status is `ready` or unset."""
        return [t for t in self.get_available_tasks(constraints) if t.status in (None, "ready")]

    def get_blocked_tasks(self) -> list[BlockedTask]:
        return self.pool.blocked_tasks()

    def get_dependency_chain(self, task_id: str) -> DependencyChain:
        if not task_id:
            raise InvalidInputError("Task id is required for dependency analysis")
        return self.pool.dependency_chain(task_id)

    def _resolve_task(self, task: Task | str) -> Task:
        if isinstance(task, Task):
            return task
        if not task:
            raise InvalidInputError("Task id is required")
        found = self.pool.get(task)
        if found is None:
            raise TaskNotFoundError(task)
        return found

    # ═══════════════════════════════════════════════════════════════════════
    # MATCHING, SCORING, VALIDATION
    # ═══════════════════════════════════════════════════════════════════════

    def can_assign(self, task: Task | str, agent_type: str) -> bool:
        return can_assign(self._resolve_task(task), agent_type, self.capabilities)

    def score_task(
        self, task: Task | str, agent_type: str, constraints: ConstraintsArg = None
    ) -> ScoreBreakdown:
        return score_task(
            self._resolve_task(task),
            agent_type,
            self._constraints(constraints),
            self.capabilities,
            self.clock(),
        )

    def validate_constraints(
        self, task: Task | str, agent_type: str, constraints: ConstraintsArg = None
    ) -> ConstraintValidation:
        """Run the five constraint validators for one assignment."""
        if not agent_type:
            raise InvalidInputError("Agent type is required for constraint validation")
        return self.constraint_engine.validate(
            self._resolve_task(task), agent_type, self._constraints(constraints)
        )

    # ═══════════════════════════════════════════════════════════════════════
    # RECOMMENDATION
    # ═══════════════════════════════════════════════════════════════════════

    def get_next_task(
        self, agent_type: str, constraints: ConstraintsArg = None
    ) -> RecommendationResult:
        """Recommend the best task for `agent_type`, with alternatives."""
        if not agent_type:
            raise InvalidInputError("Agent type is required for task routing")

        params = self._constraints(constraints)
        cache_key = f"{agent_type}:{params.cache_key()}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Recommendation cache hit for %s", agent_type)
            return cached
        generation = self.cache.generation

        with timed_operation(
            "task routing", self.settings.performance_target_ms, logger, agent_type=agent_type
        ):
            result = self._recommend(agent_type, params)

        if not self.cache.set(cache_key, result, generation=generation):
            logger.debug("Router state changed while routing %s; result not cached", agent_type)
        return result

    def get_next_tasks(
        self, agent_type: str, limit: int = 5, constraints: ConstraintsArg = None
    ) -> list[Task]:
        """Up to `limit` tasks in recommendation order."""
        if limit < 1:
            raise InvalidInputError(f"limit must be >= 1, got {limit}")
        result = self.get_next_task(agent_type, constraints)
        return [candidate.task for candidate in result.candidates[:limit]]

    def _recommend(self, agent_type: str, params: ConstraintParameters) -> RecommendationResult:
        available = filter_available(self.pool, params)
        if not available:
            return RecommendationResult(
                agent_type=agent_type,
                status=RecommendationStatus.NO_TASKS_AVAILABLE,
                task=None,
                reason="No available tasks found",
            )

        now = self.clock()
        capable = [task for task in available if can_assign(task, agent_type, self.capabilities)]

        candidates: list[ScoredCandidate] = []
        for task in capable:
            breakdown = score_task(task, agent_type, params, self.capabilities, now)
            validation = self.constraint_engine.validate(task, agent_type, params)
            if not validation.is_valid and not params.allow_violations:
                logger.debug(
                    "Excluding %s for %s: %s", task.id, agent_type, "; ".join(validation.violations)
                )
                continue
            candidates.append(
                ScoredCandidate(
                    task=task,
                    breakdown=breakdown,
                    validation=validation,
                    final_score=round_half_up(breakdown.score * validation.score_multiplier),
                    reasoning=recommendation_reasoning(task, agent_type, self.capabilities),
                )
            )

        # sort() is stable: equal scores keep pool order
        candidates.sort(key=lambda c: c.final_score, reverse=True)

        if not candidates:
            if capable:
                status = RecommendationStatus.NO_VALID_MATCH
                reason = f"No tasks satisfy constraints for agent {agent_type}"
            else:
                status = RecommendationStatus.NO_CAPABLE_MATCH
                reason = "No tasks match agent capabilities"
            return RecommendationResult(
                agent_type=agent_type,
                status=status,
                task=None,
                reason=reason,
                total_available=len(available),
                agent_matches=len(capable),
            )

        best = candidates[0]
        return RecommendationResult(
            agent_type=agent_type,
            status=RecommendationStatus.RECOMMENDED,
            task=best.task,
            reason=f"Best match: {best.reasoning}",
            alternatives=tuple(c.task for c in candidates[1 : 1 + MAX_ALTERNATIVES]),
            total_available=len(available),
            agent_matches=len(capable),
            candidates=tuple(candidates),
        )

    # ═══════════════════════════════════════════════════════════════════════
    # WORKLOAD & CACHE
    # ═══════════════════════════════════════════════════════════════════════

    def update_agent_workload(self, agent_type: str, delta_hours: float) -> float:
        """Adjust an agent's committed hours (clamped at zero)."""
        if not agent_type:
            raise InvalidInputError("Agent type is required to update workload")
        value = self.ledger.update(agent_type, delta_hours)
        # Workload feeds validation, so cached rankings are stale now
        self.cache.clear()
        return value

    def get_agent_workload(self, agent_type: str) -> float:
        return self.ledger.get(agent_type)

    def reset_workloads(self) -> None:
        self.ledger.reset()
        self.cache.clear()

    def get_workload_stats(self) -> WorkloadStats:
        return self.ledger.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()
