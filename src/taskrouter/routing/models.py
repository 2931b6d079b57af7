"""
Routing Data Models

Read-only snapshots of specs and tasks supplied by the spec repository,
caller-supplied constraint parameters, and the structured results produced
by scoring, constraint validation and recommendation assembly.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any

DEFAULT_PRIORITY = "P2"
DEFAULT_MAX_WORKLOAD = 40.0

# Statuses a task may be picked up from (None = unset)
AVAILABLE_STATUSES: frozenset[str | None] = frozenset({"ready", "pending", None})
COMPLETED_STATUSES: frozenset[str] = frozenset({"complete", "done"})


class TaskStatus(StrEnum):
    """Known task statuses."""

    READY = "ready"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETE = "complete"
    DONE = "done"


class ResourceState(StrEnum):
    """Availability of a shared resource."""

    AVAILABLE = "available"
    LIMITED = "limited"
    UNAVAILABLE = "unavailable"


class RecommendationStatus(StrEnum):
    """Outcome of a next-task request."""

    RECOMMENDED = "recommended"
    NO_TASKS_AVAILABLE = "no_tasks_available"
    NO_CAPABLE_MATCH = "no_capable_match"
    NO_VALID_MATCH = "no_valid_match"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime; the default routing clock."""
    return datetime.now(timezone.utc)


def parse_deadline(value: Any) -> datetime | None:
    """Coerce a deadline value to an aware datetime (naive values are UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"deadline must be a datetime or ISO-8601 string, got {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _str_tuple(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, Iterable):
        raise ValueError(f"{name} must be a string or list of strings, got {value!r}")
    return tuple(str(item) for item in value)


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _check_optional_str(owner: str, **fields: Any) -> None:
    for name, value in fields.items():
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{name} must be a string, got {value!r} for {owner}")


# ═══════════════════════════════════════════════════════════════════════════
# SPECS & TASKS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Subtask:
    """Checklist item inside a task."""

    title: str
    completed: bool = False


@dataclass(frozen=True)
class Task:
    """
    Atomic unit of work, enriched with its owning spec's attributes.

    Tasks are snapshots: the router never mutates them.
    """

    id: str
    title: str = ""
    status: str | None = None
    priority: str | None = None
    spec_id: str | None = None
    spec_title: str | None = None
    spec_priority: str | None = None
    spec_status: str | None = None
    phase: str | None = None
    agent_type: str | None = None
    context_requirements: tuple[str, ...] = ()
    specialization_requirements: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()
    estimated_hours: float | None = None
    deadline: datetime | None = None
    required_resources: tuple[str, ...] = ()
    subtasks: tuple[Subtask, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError(f"task id must be a non-empty string, got {self.id!r}")
        if self.estimated_hours is not None and self.estimated_hours < 0:
            raise ValueError(
                f"estimated_hours must be >= 0, got {self.estimated_hours} for task {self.id}"
            )
        _check_optional_str(
            f"task {self.id}",
            status=self.status,
            priority=self.priority,
            spec_id=self.spec_id,
            spec_title=self.spec_title,
            spec_priority=self.spec_priority,
            spec_status=self.spec_status,
            phase=self.phase,
            agent_type=self.agent_type,
        )

    @property
    def effective_priority(self) -> str:
        return self.spec_priority or self.priority or DEFAULT_PRIORITY

    @property
    def is_complete(self) -> bool:
        return self.status in COMPLETED_STATUSES

    @property
    def is_available(self) -> bool:
        return self.status in AVAILABLE_STATUSES

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Task:
        """Build a task from a loosely-keyed mapping (snake_case or camelCase)."""
        if not isinstance(data, Mapping):
            raise ValueError(f"task record must be a mapping, got {type(data).__name__}")

        raw_id = _pick(data, "id")
        hours = _pick(data, "estimated_hours", "estimatedHours")
        subtasks = []
        for item in _pick(data, "subtasks", default=[]):
            if isinstance(item, Subtask):
                subtasks.append(item)
            elif isinstance(item, Mapping):
                subtasks.append(
                    Subtask(
                        title=str(_pick(item, "title", "description", default="")),
                        completed=bool(_pick(item, "completed", "done", default=False)),
                    )
                )
            else:
                subtasks.append(Subtask(title=str(item)))

        return cls(
            id=str(raw_id) if raw_id is not None else "",
            title=str(_pick(data, "title", default="")),
            status=_pick(data, "status"),
            priority=_pick(data, "priority"),
            spec_id=_pick(data, "spec_id", "specId"),
            spec_title=_pick(data, "spec_title", "specTitle"),
            spec_priority=_pick(data, "spec_priority", "specPriority"),
            spec_status=_pick(data, "spec_status", "specStatus"),
            phase=_pick(data, "phase"),
            agent_type=_pick(data, "agent_type", "agentType"),
            context_requirements=_str_tuple(
                _pick(data, "context_requirements", "contextRequirements"),
                "context_requirements",
            ),
            specialization_requirements=_str_tuple(
                _pick(data, "specialization_requirements", "specializationRequirements"),
                "specialization_requirements",
            ),
            depends_on=_str_tuple(_pick(data, "depends_on", "dependsOn"), "depends_on"),
            estimated_hours=float(hours) if hours is not None else None,
            deadline=parse_deadline(_pick(data, "deadline")),
            required_resources=_str_tuple(
                _pick(data, "required_resources", "requiredResources"),
                "required_resources",
            ),
            subtasks=tuple(subtasks),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.effective_priority,
            "spec_id": self.spec_id,
            "spec_title": self.spec_title,
            "spec_status": self.spec_status,
            "phase": self.phase,
            "agent_type": self.agent_type,
            "context_requirements": list(self.context_requirements),
            "specialization_requirements": list(self.specialization_requirements),
            "depends_on": list(self.depends_on),
            "estimated_hours": self.estimated_hours,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "required_resources": list(self.required_resources),
            "subtasks": [
                {"title": st.title, "completed": st.completed} for st in self.subtasks
            ],
        }


@dataclass(frozen=True)
class Spec:
    """Container of tasks with its own priority, status and phase."""

    id: str
    title: str = ""
    status: str | None = None
    priority: str | None = None
    phase: str | None = None
    tasks: tuple[Task, ...] = ()

    def __post_init__(self) -> None:
        _check_optional_str(
            f"spec {self.id}", status=self.status, priority=self.priority, phase=self.phase
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Spec:
        """Build a spec; raises ValueError on any malformed task."""
        return cls(
            id=str(_pick(data, "id", default="")),
            title=str(_pick(data, "title", default="")),
            status=_pick(data, "status"),
            priority=_pick(data, "priority"),
            phase=_pick(data, "phase"),
            tasks=tuple(
                t if isinstance(t, Task) else Task.from_dict(t)
                for t in _pick(data, "tasks", default=[])
            ),
        )


# ═══════════════════════════════════════════════════════════════════════════
# CONSTRAINT PARAMETERS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AgentAvailability:
    """Whether an agent can take work right now, and for how many hours."""

    available: bool = True
    hours_available: float | None = None

    @classmethod
    def coerce(cls, value: Any) -> AgentAvailability:
        if isinstance(value, AgentAvailability):
            return value
        if isinstance(value, bool):
            return cls(available=value)
        if isinstance(value, Mapping):
            hours = _pick(value, "hours_available", "hoursAvailable", "hours")
            return cls(
                available=bool(_pick(value, "available", default=True)),
                hours_available=float(hours) if hours is not None else None,
            )
        raise ValueError(f"agent availability must be a bool or mapping, got {value!r}")


@dataclass(frozen=True)
class CapacityPlan:
    """System-wide capacity in hours."""

    total_hours: float
    current_hours: float = 0.0

    @classmethod
    def coerce(cls, value: Any) -> CapacityPlan:
        if isinstance(value, CapacityPlan):
            return value
        if isinstance(value, Mapping):
            return cls(
                total_hours=float(
                    _pick(value, "total_hours", "totalHours", "total_capacity",
                          "totalCapacity", default=0.0)
                ),
                current_hours=float(
                    _pick(value, "current_hours", "currentHours", "current_utilization",
                          "currentUtilization", default=0.0)
                ),
            )
        raise ValueError(f"capacity planning must be a mapping, got {value!r}")


def _coerce_resource_state(value: Any) -> ResourceState:
    if isinstance(value, bool):
        return ResourceState.AVAILABLE if value else ResourceState.UNAVAILABLE
    return ResourceState(str(value).lower())


_CONSTRAINT_ALIASES: dict[str, str] = {
    "priority": "priority",
    "phase": "phase",
    "agent_type": "agent_type",
    "agentType": "agent_type",
    "spec_status": "spec_status",
    "specStatus": "spec_status",
    "max_workload_per_agent": "max_workload_per_agent",
    "maxWorkloadPerAgent": "max_workload_per_agent",
    "agent_availability": "agent_availability",
    "agentAvailability": "agent_availability",
    "resource_availability": "resource_availability",
    "resourceAvailability": "resource_availability",
    "capacity_planning": "capacity_planning",
    "capacityPlanning": "capacity_planning",
    "deadline": "deadline",
    "agent_workload": "agent_workload",
    "agentWorkload": "agent_workload",
    "allow_violations": "allow_violations",
    "allowViolations": "allow_violations",
}


@dataclass(frozen=True)
class ConstraintParameters:
    """Per-call filters and constraint inputs for routing."""

    priority: tuple[str, ...] = ()
    phase: tuple[str, ...] = ()
    agent_type: tuple[str, ...] = ()
    spec_status: tuple[str, ...] = ()
    max_workload_per_agent: float = DEFAULT_MAX_WORKLOAD
    agent_availability: Mapping[str, AgentAvailability] = field(default_factory=dict)
    resource_availability: Mapping[str, ResourceState] = field(default_factory=dict)
    capacity_planning: CapacityPlan | None = None
    deadline: datetime | None = None
    agent_workload: Mapping[str, float] | None = None
    allow_violations: bool = False

    def __post_init__(self) -> None:
        if self.max_workload_per_agent <= 0:
            raise ValueError(
                f"max_workload_per_agent must be > 0, got {self.max_workload_per_agent}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ConstraintParameters:
        """Normalize a caller's constraint mapping; unknown keys raise ValueError."""
        if not data:
            return cls()

        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _CONSTRAINT_ALIASES.get(key)
            if name is None:
                raise ValueError(f"Unknown constraint: {key}")
            values[name] = value

        kwargs: dict[str, Any] = {}
        for name in ("priority", "phase", "agent_type", "spec_status"):
            if values.get(name) is not None:
                kwargs[name] = _str_tuple(values[name], name)
        if values.get("max_workload_per_agent") is not None:
            kwargs["max_workload_per_agent"] = float(values["max_workload_per_agent"])
        if values.get("agent_availability"):
            kwargs["agent_availability"] = {
                str(agent): AgentAvailability.coerce(v)
                for agent, v in values["agent_availability"].items()
            }
        if values.get("resource_availability"):
            kwargs["resource_availability"] = {
                str(name): _coerce_resource_state(v)
                for name, v in values["resource_availability"].items()
            }
        if values.get("capacity_planning") is not None:
            kwargs["capacity_planning"] = CapacityPlan.coerce(values["capacity_planning"])
        if values.get("deadline") is not None:
            kwargs["deadline"] = parse_deadline(values["deadline"])
        if values.get("agent_workload") is not None:
            kwargs["agent_workload"] = {
                str(agent): float(hours) for agent, hours in values["agent_workload"].items()
            }
        if values.get("allow_violations") is not None:
            kwargs["allow_violations"] = bool(values["allow_violations"])
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": list(self.priority),
            "phase": list(self.phase),
            "agent_type": list(self.agent_type),
            "spec_status": list(self.spec_status),
            "max_workload_per_agent": self.max_workload_per_agent,
            "agent_availability": {
                agent: {"available": a.available, "hours_available": a.hours_available}
                for agent, a in self.agent_availability.items()
            },
            "resource_availability": {
                name: state.value for name, state in self.resource_availability.items()
            },
            "capacity_planning": (
                {
                    "total_hours": self.capacity_planning.total_hours,
                    "current_hours": self.capacity_planning.current_hours,
                }
                if self.capacity_planning
                else None
            ),
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "agent_workload": dict(self.agent_workload) if self.agent_workload is not None else None,
            "allow_violations": self.allow_violations,
        }

    def cache_key(self) -> str:
        """Stable serialization used for result caching."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


# ═══════════════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScoreBreakdown:
    """Priority base weight and every multiplier applied to it, in order."""

    priority: str
    base: int
    factors: tuple[tuple[str, float], ...]
    total: float
    score: int

    @property
    def multiplier(self) -> float:
        result = 1.0
        for _, value in self.factors:
            result *= value
        return result

    def factor(self, name: str) -> float | None:
        for factor_name, value in self.factors:
            if factor_name == name:
                return value
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority,
            "base": self.base,
            "factors": dict(self.factors),
            "total": self.total,
            "score": self.score,
        }


@dataclass(frozen=True)
class ValidatorResult:
    """Outcome of one constraint validator."""

    name: str
    is_valid: bool
    violations: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    score_multiplier: float = 1.0
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.score_multiplier <= 2.0:
            raise ValueError(
                f"score_multiplier must be in [0.0, 2.0], got {self.score_multiplier}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_valid": self.is_valid,
            "violations": list(self.violations),
            "warnings": list(self.warnings),
            "score_multiplier": self.score_multiplier,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class ConstraintValidation:
    """Aggregate of the five validators."""

    is_valid: bool
    violations: tuple[str, ...]
    warnings: tuple[str, ...]
    score_multiplier: float
    results: tuple[ValidatorResult, ...]

    def result(self, name: str) -> ValidatorResult | None:
        for item in self.results:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "violations": list(self.violations),
            "warnings": list(self.warnings),
            "score_multiplier": self.score_multiplier,
            "validators": {item.name: item.to_dict() for item in self.results},
        }


@dataclass(frozen=True)
class ScoredCandidate:
    """A task ranked for one agent, with full scoring and validation detail."""

    task: Task
    breakdown: ScoreBreakdown
    validation: ConstraintValidation
    final_score: int
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task.id,
            "final_score": self.final_score,
            "reasoning": self.reasoning,
            "breakdown": self.breakdown.to_dict(),
            "validation": self.validation.to_dict(),
        }


@dataclass(frozen=True)
class RecommendationResult:
    """Selected task (or none), up to three alternatives, and the reasoning."""

    agent_type: str
    status: RecommendationStatus
    task: Task | None
    reason: str
    alternatives: tuple[Task, ...] = ()
    total_available: int = 0
    agent_matches: int = 0
    candidates: tuple[ScoredCandidate, ...] = ()

    @property
    def score(self) -> int | None:
        return self.candidates[0].final_score if self.task and self.candidates else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_type": self.agent_type,
            "status": self.status.value,
            "task": self.task.to_dict() if self.task else None,
            "reason": self.reason,
            "alternatives": [t.to_dict() for t in self.alternatives],
            "total_available": self.total_available,
            "agent_matches": self.agent_matches,
            "candidates": [c.to_dict() for c in self.candidates],
        }


@dataclass(frozen=True)
class DependencyStatus:
    """Resolution state of one `depends_on` entry."""

    id: str
    found: bool
    status: str
    completed: bool


@dataclass(frozen=True)
class DependencyChain:
    """Upstream and downstream dependency view of a task."""

    task_id: str
    dependencies: tuple[DependencyStatus, ...] = ()
    dependents: tuple[Task, ...] = ()
    blocked_by: tuple[str, ...] = ()
    blocking: tuple[str, ...] = ()

    @property
    def untracked(self) -> tuple[str, ...]:
        return tuple(dep.id for dep in self.dependencies if not dep.found)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "dependencies": [
                {
                    "id": dep.id,
                    "found": dep.found,
                    "status": dep.status,
                    "completed": dep.completed,
                }
                for dep in self.dependencies
            ],
            "dependents": [
                {"id": t.id, "title": t.title, "status": t.status} for t in self.dependents
            ],
            "blocked_by": list(self.blocked_by),
            "blocking": list(self.blocking),
            "untracked": list(self.untracked),
        }


@dataclass(frozen=True)
class BlockedTask:
    """A task held back by unmet dependencies."""

    task: Task
    blocked_by: tuple[str, ...]
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {**self.task.to_dict(), "blocked_by": list(self.blocked_by), "reason": self.reason}
