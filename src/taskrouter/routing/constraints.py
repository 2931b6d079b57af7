"""
Constraint Engine — Independent Assignment Validators

Five validators judge a (task, agent) assignment:

- workload:  agent's committed hours plus the task against the per-agent maximum
- skills:    required contexts/specializations covered by the agent's skills
- time:      deadline feasibility and agent availability
- resources: required resources marked available / limited / unavailable
- capacity:  projected system-wide utilization

Each returns validity, violations, warnings and a score multiplier in
[0, 2]. The aggregate is valid only when all five are, and its multiplier
is the product of the five.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime
from typing import Final

from .capabilities import CapabilityConfig, context_satisfied
from .ledger import WorkloadLedger
from .models import (
    ConstraintParameters,
    ConstraintValidation,
    ResourceState,
    Task,
    ValidatorResult,
    utcnow,
)
from .scorer import days_until

WORKLOAD: Final[str] = "workload"
SKILLS: Final[str] = "skills"
TIME: Final[str] = "time"
RESOURCES: Final[str] = "resources"
CAPACITY: Final[str] = "capacity"

HOURS_PER_WORKDAY: Final[int] = 8


class ConstraintEngine:
    """Validates assignments against workload, skill, time, resource and capacity limits."""

    # Workload thresholds (fraction of max_workload_per_agent)
    WORKLOAD_WARNING_RATIO = 0.9
    WORKLOAD_NOTICE_RATIO = 0.8
    WORKLOAD_IDLE_RATIO = 0.5

    # Skill coverage thresholds
    SKILL_REJECT_RATIO = 0.5
    SKILL_WARNING_RATIO = 0.7

    # Capacity thresholds (projected utilization)
    CAPACITY_WARNING_RATIO = 0.9
    CAPACITY_NOTICE_RATIO = 0.8

    URGENT_DAYS = 3

    def __init__(
        self,
        ledger: WorkloadLedger,
        capabilities: CapabilityConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        default_task_hours: float = 2.0,
    ) -> None:
        """Initialize the engine.

        Args:
            ledger: Shared workload ledger (read only here)
            capabilities: Capability definitions; permissive defaults if None
            clock: Returns the current aware datetime
            default_task_hours: Hours assumed for tasks without an estimate
        """
        self.ledger = ledger
        self.capabilities = capabilities or CapabilityConfig()
        self.clock = clock
        self.default_task_hours = default_task_hours

    def task_hours(self, task: Task) -> float:
        return task.estimated_hours if task.estimated_hours is not None else self.default_task_hours

    def validate_workload(
        self, task: Task, agent_type: str, constraints: ConstraintParameters
    ) -> ValidatorResult:
        """Check the agent's projected workload against its maximum."""
        maximum = constraints.max_workload_per_agent
        current = self.ledger.get(agent_type)
        projected = current + self.task_hours(task)
        details = {"current": current, "projected": projected, "max": maximum}

        if projected > maximum:
            return ValidatorResult(
                name=WORKLOAD,
                is_valid=False,
                violations=(
                    f"Agent {agent_type} workload exceeded: {projected:g}h > {maximum:g}h",
                ),
                score_multiplier=0.1,
                details=details,
            )

        if projected > maximum * self.WORKLOAD_WARNING_RATIO:
            return ValidatorResult(
                name=WORKLOAD,
                is_valid=True,
                warnings=(
                    f"Agent {agent_type} workload approaching limit: "
                    f"{projected:g}h / {maximum:g}h",
                ),
                score_multiplier=0.7,
                details=details,
            )

        if projected > maximum * self.WORKLOAD_NOTICE_RATIO:
            multiplier = 0.9
        elif current < maximum * self.WORKLOAD_IDLE_RATIO:
            multiplier = 1.2
        else:
            multiplier = 1.0
        return ValidatorResult(
            name=WORKLOAD, is_valid=True, score_multiplier=multiplier, details=details
        )

    def validate_skills(self, task: Task, agent_type: str) -> ValidatorResult:
        """Check how much of the task's required skill set the agent covers."""
        required = list(dict.fromkeys(task.context_requirements + task.specialization_requirements))
        definition = self.capabilities.definition_for(agent_type)

        if definition is None:
            if not self.capabilities.loaded:
                warning = "Agent capability configuration unavailable; skill coverage not checked"
            else:
                warning = f"No capability definition for agent {agent_type}; skill coverage not checked"
            return ValidatorResult(
                name=SKILLS,
                is_valid=True,
                warnings=(warning,) if required else (),
                details={"required": required},
            )

        if not required:
            return ValidatorResult(name=SKILLS, is_valid=True, details={"ratio": 1.0})

        agent_skills = definition.skills
        matching = [skill for skill in required if context_satisfied(skill, agent_skills)]
        missing = [skill for skill in required if skill not in matching]
        ratio = len(matching) / len(required)
        details = {
            "required": required,
            "agent_skills": list(agent_skills),
            "matching": matching,
            "missing": missing,
            "ratio": ratio,
        }

        if ratio < self.SKILL_REJECT_RATIO:
            return ValidatorResult(
                name=SKILLS,
                is_valid=False,
                violations=(
                    f"Agent {agent_type} covers {ratio:.0%} of required skills "
                    f"(missing: {', '.join(missing)})",
                ),
                score_multiplier=0.2,
                details=details,
            )

        if ratio < self.SKILL_WARNING_RATIO:
            return ValidatorResult(
                name=SKILLS,
                is_valid=True,
                warnings=(
                    f"Agent {agent_type} has partial skill coverage ({ratio:.0%}); "
                    f"missing: {', '.join(missing)}",
                ),
                score_multiplier=0.8,
                details=details,
            )

        return ValidatorResult(
            name=SKILLS,
            is_valid=True,
            score_multiplier=1.0 + (ratio - self.SKILL_WARNING_RATIO) * 0.5,
            details=details,
        )

    def validate_time(
        self, task: Task, agent_type: str, constraints: ConstraintParameters
    ) -> ValidatorResult:
        """Check deadline feasibility and the agent's availability."""
        violations: list[str] = []
        warnings: list[str] = []
        multiplier = 1.0
        hours = self.task_hours(task)
        details: dict[str, object] = {"hours": hours}

        deadline = task.deadline or constraints.deadline
        if deadline is not None:
            remaining = days_until(deadline, self.clock())
            days_remaining = math.floor(remaining)
            days_needed = math.ceil(hours / HOURS_PER_WORKDAY)
            details.update(
                deadline=deadline.isoformat(),
                days_remaining=days_remaining,
                days_needed=days_needed,
            )

            if remaining <= 0:
                violations.append(f"Deadline {deadline.date().isoformat()} has passed")
                multiplier = 0.0
            elif days_remaining < days_needed:
                violations.append(
                    f"Insufficient time: {days_remaining} day(s) remaining, "
                    f"{days_needed} day(s) needed"
                )
                multiplier = 0.1
            elif days_remaining == days_needed:
                warnings.append(
                    f"Tight deadline: {days_remaining} day(s) remaining for "
                    f"{days_needed} day(s) of work"
                )
                multiplier = 0.8
            elif days_remaining <= self.URGENT_DAYS:
                multiplier = 1.5

        availability = constraints.agent_availability.get(agent_type)
        if availability is not None:
            details["hours_available"] = availability.hours_available
            if not availability.available:
                violations.append(f"Agent {agent_type} is unavailable")
                multiplier = 0.0
            elif availability.hours_available is not None and availability.hours_available < hours:
                violations.append(
                    f"Agent {agent_type} has {availability.hours_available:g}h available, "
                    f"task needs {hours:g}h"
                )
                multiplier *= 0.1

        return ValidatorResult(
            name=TIME,
            is_valid=not violations,
            violations=tuple(violations),
            warnings=tuple(warnings),
            score_multiplier=multiplier,
            details=details,
        )

    def validate_resources(self, task: Task, constraints: ConstraintParameters) -> ValidatorResult:
        """Check each required resource against the supplied availability map."""
        availability = constraints.resource_availability
        if not task.required_resources or not availability:
            return ValidatorResult(name=RESOURCES, is_valid=True)

        violations: list[str] = []
        warnings: list[str] = []
        multiplier = 1.0
        for resource in task.required_resources:
            state = availability.get(resource)
            if state is None:
                warnings.append(f"Availability of resource {resource} is unknown")
            elif state is ResourceState.UNAVAILABLE:
                violations.append(f"Required resource {resource} is unavailable")
            elif state is ResourceState.LIMITED:
                warnings.append(f"Required resource {resource} has limited availability")
                multiplier *= 0.9

        return ValidatorResult(
            name=RESOURCES,
            is_valid=not violations,
            violations=tuple(violations),
            warnings=tuple(warnings),
            score_multiplier=0.1 if violations else multiplier,
            details={"required": list(task.required_resources)},
        )

    def validate_capacity(self, task: Task, constraints: ConstraintParameters) -> ValidatorResult:
        """Check projected system utilization against total capacity."""
        plan = constraints.capacity_planning
        if plan is None:
            return ValidatorResult(name=CAPACITY, is_valid=True)

        if plan.total_hours <= 0:
            return ValidatorResult(
                name=CAPACITY,
                is_valid=True,
                warnings=("System capacity is not positive; capacity not checked",),
            )

        utilization = (plan.current_hours + self.task_hours(task)) / plan.total_hours
        details = {"projected_utilization": utilization}

        if utilization > 1.0:
            return ValidatorResult(
                name=CAPACITY,
                is_valid=False,
                violations=(f"System capacity exceeded: {utilization:.0%} projected utilization",),
                score_multiplier=0.1,
                details=details,
            )
        if utilization > self.CAPACITY_WARNING_RATIO:
            return ValidatorResult(
                name=CAPACITY,
                is_valid=True,
                warnings=(f"System capacity critical: {utilization:.0%} projected utilization",),
                score_multiplier=0.8,
                details=details,
            )
        if utilization > self.CAPACITY_NOTICE_RATIO:
            return ValidatorResult(
                name=CAPACITY,
                is_valid=True,
                warnings=(f"System capacity high: {utilization:.0%} projected utilization",),
                score_multiplier=0.9,
                details=details,
            )
        return ValidatorResult(name=CAPACITY, is_valid=True, details=details)

    def validate(
        self, task: Task, agent_type: str, constraints: ConstraintParameters
    ) -> ConstraintValidation:
        """Run all five validators and combine them."""
        results = (
            self.validate_workload(task, agent_type, constraints),
            self.validate_skills(task, agent_type),
            self.validate_time(task, agent_type, constraints),
            self.validate_resources(task, constraints),
            self.validate_capacity(task, constraints),
        )
        multiplier = 1.0
        for result in results:
            multiplier *= result.score_multiplier

        return ConstraintValidation(
            is_valid=all(result.is_valid for result in results),
            violations=tuple(v for result in results for v in result.violations),
            warnings=tuple(w for result in results for w in result.warnings),
            score_multiplier=multiplier,
            results=results,
        )
