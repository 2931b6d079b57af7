"""
Workload Ledger — Per-Agent Committed Hours

In-memory, process-local accumulator consulted by the workload validator.
Every read-modify-write happens under one lock, so concurrent updates are
never lost. Hours never drop below zero. Nothing is persisted; callers that
need durability rehydrate the ledger with `update()` at startup.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class WorkloadStats:
    """Aggregate view of the ledger."""

    agent_count: int
    total_hours: float
    average_hours: float
    workloads: dict[str, float]

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_count": self.agent_count,
            "total_hours": self.total_hours,
            "average_hours": self.average_hours,
            "workloads": dict(self.workloads),
        }


class WorkloadLedger:
    """Thread-safe agent -> committed hours mapping."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hours: dict[str, float] = {}

    def get(self, agent_type: str) -> float:
        with self._lock:
            return self._hours.get(agent_type, 0.0)

    def update(self, agent_type: str, delta_hours: float) -> float:
        """Add `delta_hours` (may be negative), clamp at zero, return the new value."""
        if not agent_type:
            raise ValueError("agent_type is required to update workload")
        with self._lock:
            value = max(0.0, self._hours.get(agent_type, 0.0) + float(delta_hours))
            self._hours[agent_type] = value
            return value

    def reset(self) -> None:
        with self._lock:
            self._hours.clear()

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._hours)

    def stats(self) -> WorkloadStats:
        workloads = self.snapshot()
        total = sum(workloads.values())
        count = len(workloads)
        return WorkloadStats(
            agent_count=count,
            total_hours=total,
            average_hours=total / count if count else 0.0,
            workloads=workloads,
        )
