"""Tests for the TaskRouter facade."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

import pytest

from taskrouter.config import RouterSettings
from taskrouter.routing import (
    InMemorySpecRepository,
    InvalidInputError,
    JsonSpecRepository,
    PoolReadError,
    RecommendationStatus,
    Task,
    TaskNotFoundError,
    TaskRouter,
)

from .conftest import CAPABILITIES, NOW, FakeClock


def _ids(tasks: list[Task] | tuple[Task, ...]) -> list[str]:
    return [task.id for task in tasks]


# ═══════════════════════════════════════════════════════════════════════════
# LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════════


class TestInitialize:
    """Tests for router startup."""

    def test_loads_files_from_project_root(self, tmp_path: Path, specs: list[dict[str, Any]]) -> None:
        settings = RouterSettings.for_root(tmp_path)
        settings.capabilities_path.parent.mkdir(parents=True)
        settings.capabilities_path.write_text(json.dumps(CAPABILITIES))
        settings.specs_path.write_text(json.dumps({"specs": specs}))

        router = TaskRouter(JsonSpecRepository(settings.specs_path), settings)

        assert router.initialize() is True
        assert router.capabilities.definition_for("backend-developer") is not None
        assert len(router.get_all_tasks()) == 7

    def test_missing_capabilities_is_not_fatal(
        self, tmp_path: Path, specs: list[dict[str, Any]]
    ) -> None:
        router = TaskRouter(InMemorySpecRepository(specs), RouterSettings.for_root(tmp_path))

        assert router.initialize() is False
        assert router.get_next_task("backend-developer").task is not None

    def test_unreadable_repository(self, tmp_path: Path) -> None:
        settings = RouterSettings.for_root(tmp_path)
        router = TaskRouter(JsonSpecRepository(settings.specs_path), settings)
        with pytest.raises(PoolReadError):
            router.initialize()

    def test_repository_errors_are_wrapped(self, tmp_path: Path) -> None:
        class Broken:
            def get_specs(self) -> list[Any]:
                raise RuntimeError("connection refused")

        router = TaskRouter(Broken(), RouterSettings.for_root(tmp_path))
        with pytest.raises(PoolReadError, match="connection refused"):
            router.reload()

    def test_malformed_records_do_not_break_routing(
        self, tmp_path: Path, capabilities: Any
    ) -> None:
        specs = [
            {"id": "S1", "tasks": [{"id": "OK", "status": "ready"}, {"id": "X", "status": ["ready"]}]},
            {"id": "S2", "phase": 2, "tasks": [{"id": "BAD", "status": "ready"}]},
        ]
        router = TaskRouter(
            InMemorySpecRepository(specs),
            RouterSettings.for_root(tmp_path),
            capabilities=capabilities,
            clock=lambda: NOW,
        )
        router.initialize()

        assert _ids(router.get_available_tasks()) == ["OK"]
        result = router.get_next_task("backend-developer")
        assert result.task is not None
        assert result.task.id == "OK"

    def test_reload_picks_up_new_snapshot(
        self, router: TaskRouter, repository: InMemorySpecRepository, specs: list[dict[str, Any]]
    ) -> None:
        assert "T3" not in _ids(router.get_available_tasks())

        specs[1]["tasks"][1]["status"] = "done"
        repository.replace(specs)
        router.reload()

        assert "T3" in _ids(router.get_available_tasks())


# ═══════════════════════════════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════════════════════════════


class TestQueries:
    """Tests for task listing operations."""

    def test_available_tasks(self, router: TaskRouter) -> None:
        assert _ids(router.get_available_tasks()) == ["T1", "T2", "T4", "T7"]

    def test_available_tasks_with_filters(self, router: TaskRouter) -> None:
        assert _ids(router.get_available_tasks({"priority": ["P0"]})) == ["T1"]
        assert _ids(router.get_available_tasks({"specStatus": ["backlog"]})) == ["T2", "T4", "T7"]

    def test_ready_tasks_exclude_pending(self, router: TaskRouter) -> None:
        assert _ids(router.get_ready_tasks()) == ["T1", "T2", "T4"]

    def test_blocked_tasks(self, router: TaskRouter) -> None:
        assert [item.task.id for item in router.get_blocked_tasks()] == ["T3", "T6"]

    def test_dependency_chain(self, router: TaskRouter) -> None:
        chain = router.get_dependency_chain("T4")
        assert chain.blocking == ("T3",)

    def test_dependency_chain_requires_id(self, router: TaskRouter) -> None:
        with pytest.raises(InvalidInputError):
            router.get_dependency_chain("")

    def test_dependency_chain_unknown_task(self, router: TaskRouter) -> None:
        with pytest.raises(TaskNotFoundError):
            router.get_dependency_chain("NOPE")

    def test_invalid_constraints(self, router: TaskRouter) -> None:
        with pytest.raises(InvalidInputError, match="Unknown constraint"):
            router.get_available_tasks({"bogus": 1})
        with pytest.raises(InvalidInputError):
            router.get_next_task("backend-developer", {"maxWorkloadPerAgent": -5})


# ═══════════════════════════════════════════════════════════════════════════
# RECOMMENDATION
# ═══════════════════════════════════════════════════════════════════════════


class TestGetNextTask:
    """Tests for next-task recommendation."""

    def test_critical_active_task_wins(self, router: TaskRouter) -> None:
        result = router.get_next_task("backend-developer", {})

        assert result.status is RecommendationStatus.RECOMMENDED
        assert result.task is not None
        assert result.task.id == "T1"
        assert _ids(result.alternatives) == ["T2", "T7"]
        assert result.total_available == 4
        assert result.agent_matches == 3
        assert result.candidates[0].breakdown.score == 4757

    def test_reason_explains_choice(self, router: TaskRouter) -> None:
        result = router.get_next_task("backend-developer")
        assert result.reason == (
            "Best match: Critical priority, Perfect agent match, Active feature, "
            "Context match: api"
        )
        assert result.candidates[-1].reasoning == "Available task"

    def test_final_score_applies_constraint_multiplier(self, router: TaskRouter) -> None:
        best = router.get_next_task("backend-developer").candidates[0]
        # workload ×1.2 (idle agent) and skills ×1.15 (full coverage)
        assert best.validation.score_multiplier == pytest.approx(1.38)
        assert best.final_score == 6565

    def test_alternatives_capped_at_three(
        self, router: TaskRouter, repository: InMemorySpecRepository, specs: list[dict[str, Any]]
    ) -> None:
        specs[1]["tasks"].extend(
            {"id": f"X{i}", "title": "Chore", "status": "ready"} for i in range(5)
        )
        repository.replace(specs)
        router.reload()

        result = router.get_next_task("backend-developer")
        assert len(result.alternatives) == 3
        assert len(result.candidates) == 8

    def test_unknown_agent_type_uses_permissive_default(self, router: TaskRouter) -> None:
        result = router.get_next_task("data-scientist")
        assert result.status is RecommendationStatus.RECOMMENDED
        assert result.task is not None
        assert result.task.id == "T7"

    def test_no_available_tasks(self, router: TaskRouter) -> None:
        result = router.get_next_task("backend-developer", {"priority": ["P1"]})
        assert result.status is RecommendationStatus.NO_TASKS_AVAILABLE
        assert result.task is None
        assert result.reason == "No available tasks found"

    def test_no_capable_match(self, router: TaskRouter) -> None:
        result = router.get_next_task("cli-developer", {"spec_status": ["active"]})
        assert result.status is RecommendationStatus.NO_CAPABLE_MATCH
        assert result.reason == "No tasks match agent capabilities"
        assert result.total_available == 1

    def test_all_candidates_violate_constraints(self, router: TaskRouter) -> None:
        router.update_agent_workload("backend-developer", 39.5)

        result = router.get_next_task("backend-developer")
        assert result.status is RecommendationStatus.NO_VALID_MATCH
        assert result.task is None
        assert result.agent_matches == 3

    def test_allow_violations_keeps_candidates(self, router: TaskRouter) -> None:
        router.update_agent_workload("backend-developer", 39.5)

        result = router.get_next_task("backend-developer", {"allowViolations": True})
        assert result.task is not None
        assert result.task.id == "T1"
        assert not result.candidates[0].validation.is_valid

    def test_settings_default_max_workload(
        self, repository: InMemorySpecRepository, capabilities: Any, tmp_path: Path
    ) -> None:
        settings = replace(RouterSettings.for_root(tmp_path), default_max_workload=10)
        router = TaskRouter(repository, settings, capabilities=capabilities, clock=lambda: NOW)
        router.update_agent_workload("backend-developer", 9.5)

        result = router.get_next_task("backend-developer")
        assert result.status is RecommendationStatus.NO_VALID_MATCH

    def test_requires_agent_type(self, router: TaskRouter) -> None:
        with pytest.raises(InvalidInputError):
            router.get_next_task("")

    def test_get_next_tasks(self, router: TaskRouter) -> None:
        assert _ids(router.get_next_tasks("backend-developer", limit=2)) == ["T1", "T2"]
        with pytest.raises(InvalidInputError):
            router.get_next_tasks("backend-developer", limit=0)

    def test_result_is_json_serializable(self, router: TaskRouter) -> None:
        payload = json.dumps(router.get_next_task("backend-developer").to_dict())
        assert '"status": "recommended"' in payload

    def test_slow_routing_is_logged(
        self,
        repository: InMemorySpecRepository,
        capabilities: Any,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        settings = replace(RouterSettings.for_root(tmp_path), performance_target_ms=0.0)
        router = TaskRouter(repository, settings, capabilities=capabilities, clock=lambda: NOW)

        with caplog.at_level(logging.WARNING):
            router.get_next_task("backend-developer")

        assert "task routing took" in caplog.text


# ═══════════════════════════════════════════════════════════════════════════
# CACHE, WORKLOAD, VALIDATION
# ═══════════════════════════════════════════════════════════════════════════


class TestCaching:
    """Tests for recommendation caching."""

    def test_repeat_call_within_ttl_is_identical(self, router: TaskRouter) -> None:
        first = router.get_next_task("backend-developer", {"priority": ["P0", "P2"]})
        second = router.get_next_task("backend-developer", {"priority": ["P0", "P2"]})

        assert second is first
        assert router.get_cache_stats()["hits"] == 1

    def test_recomputed_after_ttl(self, router: TaskRouter, cache_clock: FakeClock) -> None:
        first = router.get_next_task("backend-developer")
        cache_clock.advance(300)
        second = router.get_next_task("backend-developer")

        assert second is not first
        assert second.to_dict() == first.to_dict()

    def test_key_includes_agent_and_constraints(self, router: TaskRouter) -> None:
        router.get_next_task("backend-developer")
        router.get_next_task("backend-developer", {"phase": ["PHASE-1A"]})
        router.get_next_task("cli-developer")
        assert router.get_cache_stats()["size"] == 3

    def test_clear_cache(self, router: TaskRouter) -> None:
        first = router.get_next_task("backend-developer")
        router.clear_cache()
        assert router.get_cache_stats()["size"] == 0
        assert router.get_next_task("backend-developer") is not first

    def test_workload_update_invalidates(self, router: TaskRouter) -> None:
        first = router.get_next_task("backend-developer")
        router.update_agent_workload("backend-developer", 30)
        second = router.get_next_task("backend-developer")

        assert second is not first
        assert second.candidates[0].validation.score_multiplier != pytest.approx(1.38)

    def test_result_not_cached_when_workload_changes_mid_routing(
        self, router: TaskRouter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        recommend = router._recommend

        def recommend_then_commit(agent_type: str, params: Any) -> Any:
            result = recommend(agent_type, params)
            router.update_agent_workload("backend-developer", 39)
            return result

        monkeypatch.setattr(router, "_recommend", recommend_then_commit)
        first = router.get_next_task("backend-developer")
        monkeypatch.undo()

        assert first.task is not None
        assert first.task.id == "T1"
        assert router.get_cache_stats()["size"] == 0

        second = router.get_next_task("backend-developer")
        assert second is not first
        assert "T1" not in [c.task.id for c in second.candidates]


class TestWorkload:
    """Tests for the workload operations."""

    def test_update_and_get(self, router: TaskRouter) -> None:
        assert router.update_agent_workload("x", 5) == 5
        assert router.get_agent_workload("x") == 5
        assert router.update_agent_workload("x", -1000) == 0
        assert router.get_agent_workload("x") == 0

    def test_stats_and_reset(self, router: TaskRouter) -> None:
        router.update_agent_workload("a", 4)
        router.update_agent_workload("b", 8)
        assert router.get_workload_stats().total_hours == 12

        router.reset_workloads()
        assert router.get_workload_stats().agent_count == 0

    def test_update_requires_agent(self, router: TaskRouter) -> None:
        with pytest.raises(InvalidInputError):
            router.update_agent_workload("", 1)


class TestValidateConstraints:
    """Tests for direct constraint validation."""

    def test_over_committed_agent(self, router: TaskRouter) -> None:
        router.update_agent_workload("backend-developer", 38)
        task = Task(id="NEW", estimated_hours=4)

        validation = router.validate_constraints(
            task, "backend-developer", {"maxWorkloadPerAgent": 40}
        )

        workload = validation.result("workload")
        assert workload is not None
        assert not workload.is_valid
        assert "42h > 40h" in workload.violations[0]
        assert workload.score_multiplier == 0.1
        assert not validation.is_valid

    def test_by_task_id(self, router: TaskRouter) -> None:
        assert router.validate_constraints("T1", "backend-developer").is_valid

    def test_unknown_task_id(self, router: TaskRouter) -> None:
        with pytest.raises(TaskNotFoundError):
            router.validate_constraints("NOPE", "backend-developer")
