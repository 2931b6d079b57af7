#!/usr/bin/env python3
"""Task Scorer - priority-weighted desirability of a (task, agent) pair.

score = priority_weight × agent_match × context_match × size × subtasks
        × spec_status × phase × dependencies [× workload] [× deadline]

Every multiplier is kept in the breakdown, in the order applied. The
scorer does no I/O; timing and logging live in the router.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Final

from .capabilities import CapabilityConfig, matched_contexts
from .models import DEFAULT_PRIORITY, ConstraintParameters, ScoreBreakdown, Task

# ═══════════════════════════════════════════════════════════════════════════
# WEIGHT TABLES
# ═══════════════════════════════════════════════════════════════════════════

PRIORITY_WEIGHTS: Final[dict[str, int]] = {"P0": 1000, "P1": 100, "P2": 10, "P3": 1}

AGENT_MATCH_MULTIPLIER: Final[float] = 2.0

# (minimum matched ratio, multiplier); below the last tier -> floor
CONTEXT_MATCH_TIERS: Final[tuple[tuple[float, float], ...]] = ((0.9, 1.2), (0.7, 1.0), (0.5, 0.8))
CONTEXT_MATCH_FLOOR: Final[float] = 0.6

# (maximum estimated hours, multiplier); above the last tier -> overflow
HOURS_TIERS: Final[tuple[tuple[float, float], ...]] = ((2, 1.1), (4, 1.0), (8, 0.9))
HOURS_OVERFLOW: Final[float] = 0.7

SUBTASK_TIERS: Final[tuple[tuple[int, float], ...]] = ((3, 1.05), (6, 1.0))
SUBTASK_OVERFLOW: Final[float] = 0.95

SPEC_STATUS_FACTORS: Final[dict[str, float]] = {"active": 1.3, "ready": 1.1, "backlog": 0.8}

PHASE_FACTORS: Final[dict[str, float]] = {"PHASE-1A": 1.2, "PHASE-1B": 0.9}
LATE_PHASE_PREFIX: Final[str] = "PHASE-2"
LATE_PHASE_FACTOR: Final[float] = 0.7

NO_DEPENDENCY_BONUS: Final[float] = 1.1

# (utilization ratio strictly below, multiplier); at or above 1.0 -> overloaded
WORKLOAD_TIERS: Final[tuple[tuple[float, float], ...]] = ((0.5, 1.2), (0.8, 1.0), (1.0, 0.8))
WORKLOAD_OVERLOADED: Final[float] = 0.5

# (days until deadline at most, multiplier); further out -> relaxed
DEADLINE_TIERS: Final[tuple[tuple[float, float], ...]] = ((1, 2.0), (3, 1.5), (7, 1.2), (14, 1.0))
DEADLINE_RELAXED: Final[float] = 0.9

SECONDS_PER_DAY: Final[int] = 86_400


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores."""
    return int(math.floor(value + 0.5))


def days_until(deadline: datetime, now: datetime) -> float:
    return (deadline - now).total_seconds() / SECONDS_PER_DAY


# ═══════════════════════════════════════════════════════════════════════════
# INDIVIDUAL FACTORS
# ═══════════════════════════════════════════════════════════════════════════


def context_match_factor(task: Task, agent_type: str, capabilities: CapabilityConfig) -> float:
    requirements = task.context_requirements
    definition = capabilities.definition_for(agent_type)
    if not requirements or definition is None:
        return 1.0

    ratio = len(matched_contexts(task, definition)) / len(requirements)
    for minimum, multiplier in CONTEXT_MATCH_TIERS:
        if ratio >= minimum:
            return multiplier
    return CONTEXT_MATCH_FLOOR


def size_factor(task: Task) -> float:
    if task.estimated_hours is None:
        return 1.0
    for maximum, multiplier in HOURS_TIERS:
        if task.estimated_hours <= maximum:
            return multiplier
    return HOURS_OVERFLOW


def subtask_factor(task: Task) -> float:
    count = len(task.subtasks)
    for maximum, multiplier in SUBTASK_TIERS:
        if count <= maximum:
            return multiplier
    return SUBTASK_OVERFLOW


def spec_status_factor(task: Task) -> float:
    return SPEC_STATUS_FACTORS.get((task.spec_status or "").lower(), 1.0)


def phase_factor(task: Task) -> float:
    phase = (task.phase or "").upper()
    if phase in PHASE_FACTORS:
        return PHASE_FACTORS[phase]
    if phase.startswith(LATE_PHASE_PREFIX):
        return LATE_PHASE_FACTOR
    return 1.0


def workload_factor(agent_type: str, workloads: Mapping[str, float], max_workload: float) -> float:
    ratio = workloads.get(agent_type, 0.0) / max_workload
    for below, multiplier in WORKLOAD_TIERS:
        if ratio < below:
            return multiplier
    return WORKLOAD_OVERLOADED


def deadline_factor(deadline: datetime, now: datetime) -> float:
    days = days_until(deadline, now)
    for maximum, multiplier in DEADLINE_TIERS:
        if days <= maximum:
            return multiplier
    return DEADLINE_RELAXED


# ═══════════════════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════════════════


def score_task(
    task: Task,
    agent_type: str,
    constraints: ConstraintParameters,
    capabilities: CapabilityConfig,
    now: datetime,
) -> ScoreBreakdown:
    """Score a task for an agent.

    Args:
        task: Candidate task
        agent_type: Agent asking for work
        constraints: Call constraints (workload data and deadline are optional factors)
        capabilities: Loaded capability definitions
        now: Reference time for deadline urgency

    Returns:
        ScoreBreakdown with the base weight, each factor and the rounded score
    """
    priority = task.effective_priority
    base = PRIORITY_WEIGHTS.get(priority, PRIORITY_WEIGHTS[DEFAULT_PRIORITY])

    factors: list[tuple[str, float]] = [
        ("agent_match", AGENT_MATCH_MULTIPLIER if task.agent_type == agent_type else 1.0),
        ("context_match", context_match_factor(task, agent_type, capabilities)),
        ("size", size_factor(task)),
        ("subtasks", subtask_factor(task)),
        ("spec_status", spec_status_factor(task)),
        ("phase", phase_factor(task)),
        ("dependencies", NO_DEPENDENCY_BONUS if not task.depends_on else 1.0),
    ]

    if constraints.agent_workload is not None:
        factors.append(
            (
                "workload",
                workload_factor(
                    agent_type, constraints.agent_workload, constraints.max_workload_per_agent
                ),
            )
        )

    deadline = task.deadline or constraints.deadline
    if deadline is not None:
        factors.append(("deadline", deadline_factor(deadline, now)))

    total = float(base)
    for _, multiplier in factors:
        total *= multiplier

    return ScoreBreakdown(
        priority=priority,
        base=base,
        factors=tuple(factors),
        total=total,
        score=round_half_up(total),
    )
