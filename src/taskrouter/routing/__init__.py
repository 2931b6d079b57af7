"""
Routing — Next-Task Recommendation for Spec-Driven Agents

Core Components:
- models: Task, Spec, ConstraintParameters and result dataclasses
- repository: Spec snapshot sources (in-memory, JSON file)
- pool: Flattened task pool, dependency resolution, availability filter
- capabilities: Agent capability definitions and the assignment gate
- scorer: Priority-weighted multiplicative task scoring
- constraints: Workload, skills, time, resources and capacity validators
- ledger: Thread-safe per-agent workload accumulator
- cache: TTL cache of recommendation results
- router: TaskRouter facade tying the pipeline together
"""

from .errors import InvalidInputError, PoolReadError, RoutingError, TaskNotFoundError
from .models import (
    AgentAvailability,
    BlockedTask,
    CapacityPlan,
    ConstraintParameters,
    ConstraintValidation,
    DependencyChain,
    DependencyStatus,
    RecommendationResult,
    RecommendationStatus,
    ResourceState,
    ScoreBreakdown,
    ScoredCandidate,
    Spec,
    Subtask,
    Task,
    TaskStatus,
    ValidatorResult,
)
from .repository import InMemorySpecRepository, JsonSpecRepository, SpecRepository
from .pool import TaskPool, build_task_pool, filter_available, matches_constraints
from .capabilities import (
    AgentCapabilityDefinition,
    CapabilityConfig,
    can_assign,
    load_capabilities,
    parse_capabilities,
)
from .scorer import PRIORITY_WEIGHTS, score_task
from .constraints import ConstraintEngine
from .ledger import WorkloadLedger, WorkloadStats
from .cache import ResultCache
from .router import TaskRouter

__all__ = [
    # Errors
    "InvalidInputError",
    "PoolReadError",
    "RoutingError",
    "TaskNotFoundError",
    # Models
    "AgentAvailability",
    "BlockedTask",
    "CapacityPlan",
    "ConstraintParameters",
    "ConstraintValidation",
    "DependencyChain",
    "DependencyStatus",
    "RecommendationResult",
    "RecommendationStatus",
    "ResourceState",
    "ScoreBreakdown",
    "ScoredCandidate",
    "Spec",
    "Subtask",
    "Task",
    "TaskStatus",
    "ValidatorResult",
    # Repository
    "InMemorySpecRepository",
    "JsonSpecRepository",
    "SpecRepository",
    # Pool
    "TaskPool",
    "build_task_pool",
    "filter_available",
    "matches_constraints",
    # Capabilities
    "AgentCapabilityDefinition",
    "CapabilityConfig",
    "can_assign",
    "load_capabilities",
    "parse_capabilities",
    # Scoring & validation
    "PRIORITY_WEIGHTS",
    "score_task",
    "ConstraintEngine",
    # State
    "WorkloadLedger",
    "WorkloadStats",
    "ResultCache",
    # Facade
    "TaskRouter",
]
