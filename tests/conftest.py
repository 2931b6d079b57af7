"""Shared fixtures: a fixed clock, a sample spec snapshot and capability config."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from taskrouter.config import RouterSettings
from taskrouter.routing import (
    CapabilityConfig,
    InMemorySpecRepository,
    TaskRouter,
    parse_capabilities,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

CAPABILITIES: dict[str, Any] = {
    "agent_capabilities": {
        "agents": {
            "backend-developer": {
                "context_requirements": ["api", "database"],
                "specialization_areas": ["backend", "api-design"],
            },
            "cli-developer": {
                "context_requirements": ["cli"],
                "specialization_areas": ["terminal"],
            },
        }
    },
    "task_matching": {"capability_keywords": {"api": ["backend-developer"]}},
}

SPECS: list[dict[str, Any]] = [
    {
        "id": "SPEC-001",
        "title": "Auth API",
        "status": "active",
        "priority": "P0",
        "phase": "PHASE-1A",
        "tasks": [
            {
                "id": "T1",
                "title": "Implement login api",
                "status": "ready",
                "agentType": "backend-developer",
                "estimatedHours": 2,
                "contextRequirements": ["api"],
            },
            {
                "id": "T3",
                "title": "Write integration tests",
                "status": "ready",
                "estimatedHours": 3,
                "dependsOn": ["T4"],
            },
        ],
    },
    {
        "id": "SPEC-002",
        "title": "Maintenance",
        "status": "backlog",
        "priority": "P2",
        "phase": "PHASE-2A",
        "tasks": [
            {
                "id": "T2",
                "title": "Refactor database layer",
                "status": "ready",
                "agentType": "backend-developer",
                "estimatedHours": 2,
            },
            {
                "id": "T4",
                "title": "Design cli flags",
                "status": "ready",
                "agentType": "cli-developer",
                "estimatedHours": 1,
            },
            {"id": "T5", "title": "Ship release", "status": "done"},
            {
                "id": "T6",
                "title": "Archive old data",
                "status": "ready",
                "dependsOn": ["EXT-9"],
            },
            {"id": "T7", "title": "Update docs", "status": "pending", "estimatedHours": 1},
        ],
    },
]


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def specs() -> list[dict[str, Any]]:
    return copy.deepcopy(SPECS)


@pytest.fixture
def capabilities() -> CapabilityConfig:
    return parse_capabilities(CAPABILITIES, source="test")


@pytest.fixture
def cache_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository(specs: list[dict[str, Any]]) -> InMemorySpecRepository:
    return InMemorySpecRepository(specs)


@pytest.fixture
def router(
    repository: InMemorySpecRepository,
    capabilities: CapabilityConfig,
    cache_clock: FakeClock,
    tmp_path: Path,
) -> TaskRouter:
    router = TaskRouter(
        repository,
        RouterSettings.for_root(tmp_path),
        capabilities=capabilities,
        clock=lambda: NOW,
        cache_clock=cache_clock,
    )
    router.initialize()
    return router
