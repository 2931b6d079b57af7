"""Tests for task pool building, dependency resolution and filtering."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from taskrouter.routing import (
    ConstraintParameters,
    InMemorySpecRepository,
    JsonSpecRepository,
    PoolReadError,
    Spec,
    Task,
    TaskNotFoundError,
    TaskPool,
    build_task_pool,
    filter_available,
    matches_constraints,
)


def _ids(tasks: list[Task] | tuple[Task, ...]) -> list[str]:
    return [task.id for task in tasks]


class TestBuildTaskPool:
    """Tests for spec flattening and enrichment."""

    def test_tasks_inherit_spec_attributes(self, specs: list[dict[str, Any]]) -> None:
        pool = build_task_pool(specs)
        t1 = next(t for t in pool if t.id == "T1")

        assert t1.spec_id == "SPEC-001"
        assert t1.spec_title == "Auth API"
        assert t1.spec_priority == "P0"
        assert t1.spec_status == "active"
        assert t1.phase == "PHASE-1A"

    def test_pool_order_follows_specs(self, specs: list[dict[str, Any]]) -> None:
        assert _ids(build_task_pool(specs)) == ["T1", "T3", "T2", "T4", "T5", "T6", "T7"]

    def test_accepts_spec_objects(self) -> None:
        spec = Spec(id="S1", priority="P1", tasks=(Task(id="A", priority="P3"),))
        (task,) = build_task_pool([spec])
        assert task.spec_id == "S1"
        assert task.effective_priority == "P1"

    def test_malformed_records_are_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        specs = [
            "not a spec",
            {"id": "S1", "tasks": [{"title": "missing id"}, {"id": "OK"}]},
        ]
        with caplog.at_level(logging.WARNING):
            pool = build_task_pool(specs)

        assert _ids(pool) == ["OK"]
        assert "Skipping malformed" in caplog.text

    def test_non_string_spec_phase_skips_spec(self, caplog: pytest.LogCaptureFixture) -> None:
        specs = [
            {"id": "S1", "tasks": [{"id": "OK", "status": "ready"}]},
            {"id": "S2", "phase": 2, "tasks": [{"id": "BAD", "status": "ready"}]},
        ]
        with caplog.at_level(logging.WARNING):
            pool = TaskPool.from_specs(specs)

        assert _ids(pool.tasks) == ["OK"]
        assert _ids(filter_available(pool, ConstraintParameters())) == ["OK"]
        assert "phase must be a string" in caplog.text

    def test_non_string_task_status_skips_task(self, caplog: pytest.LogCaptureFixture) -> None:
        specs = [
            {
                "id": "S1",
                "tasks": [{"id": "BAD", "status": ["ready"]}, {"id": "OK", "status": "ready"}],
            }
        ]
        with caplog.at_level(logging.WARNING):
            pool = TaskPool.from_specs(specs)

        assert _ids(pool.tasks) == ["OK"]
        assert "status must be a string" in caplog.text

    def test_model_rejects_non_string_fields(self) -> None:
        with pytest.raises(ValueError, match="agent_type"):
            Task(id="A", agent_type=3)  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="priority"):
            Spec(id="S", priority=["P0"])  # type: ignore[arg-type]


class TestDependencies:
    """Tests for dependency resolution."""

    def test_incomplete_dependency_blocks(self, specs: list[dict[str, Any]]) -> None:
        pool = TaskPool.from_specs(specs)
        t3 = pool.get("T3")
        assert t3 is not None
        assert pool.is_blocked(t3)

    def test_done_dependency_unblocks(self, specs: list[dict[str, Any]]) -> None:
        specs[1]["tasks"][1]["status"] = "done"
        pool = TaskPool.from_specs(specs)
        t3 = pool.get("T3")
        assert t3 is not None
        assert not pool.is_blocked(t3)

    def test_untracked_dependency_blocks_and_warns(
        self, specs: list[dict[str, Any]], caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            pool = TaskPool.from_specs(specs)

        status = pool.resolve_dependency("EXT-9")
        assert not status.found
        assert not status.completed
        assert "untracked id EXT-9" in caplog.text

    def test_spec_dependency_needs_every_task_finished(self) -> None:
        specs = [
            {"id": "S1", "tasks": [{"id": "A", "status": "done"}, {"id": "B", "status": "ready"}]},
            {"id": "S2", "tasks": [{"id": "C", "status": "ready", "dependsOn": ["S1"]}]},
        ]
        pool = TaskPool.from_specs(specs)
        assert pool.resolve_dependency("S1").completed is False

        specs[0]["tasks"][1]["status"] = "complete"
        pool = TaskPool.from_specs(specs)
        assert pool.resolve_dependency("S1").completed is True

    def test_dependency_chain(self, specs: list[dict[str, Any]]) -> None:
        pool = TaskPool.from_specs(specs)

        upstream = pool.dependency_chain("T3")
        assert upstream.blocked_by == ("T4",)
        assert upstream.dependencies[0].status == "ready"

        downstream = pool.dependency_chain("T4")
        assert _ids(downstream.dependents) == ["T3"]
        assert downstream.blocking == ("T3",)

    def test_complete_task_blocks_nothing(self, specs: list[dict[str, Any]]) -> None:
        specs[1]["tasks"].append({"id": "T8", "status": "ready", "dependsOn": ["T5"]})
        chain = TaskPool.from_specs(specs).dependency_chain("T5")
        assert _ids(chain.dependents) == ["T8"]
        assert chain.blocking == ()

    def test_chain_reports_untracked(self, specs: list[dict[str, Any]]) -> None:
        chain = TaskPool.from_specs(specs).dependency_chain("T6")
        assert chain.untracked == ("EXT-9",)
        assert chain.to_dict()["untracked"] == ["EXT-9"]

    def test_chain_for_unknown_task(self, specs: list[dict[str, Any]]) -> None:
        with pytest.raises(TaskNotFoundError, match="Task NOPE not found"):
            TaskPool.from_specs(specs).dependency_chain("NOPE")

    def test_blocked_tasks_reason(self, specs: list[dict[str, Any]]) -> None:
        blocked = TaskPool.from_specs(specs).blocked_tasks()
        reasons = {item.task.id: item.reason for item in blocked}
        assert reasons == {
            "T3": "Waiting for: T4",
            "T6": "Waiting for: EXT-9 (untracked)",
        }


class TestFiltering:
    """Tests for the availability filter."""

    def test_available_excludes_blocked_and_finished(self, specs: list[dict[str, Any]]) -> None:
        pool = TaskPool.from_specs(specs)
        assert _ids(filter_available(pool, ConstraintParameters())) == ["T1", "T2", "T4", "T7"]

    def test_no_blocked_task_is_ever_available(self, specs: list[dict[str, Any]]) -> None:
        pool = TaskPool.from_specs(specs)
        for task in filter_available(pool, ConstraintParameters()):
            assert all(pool.resolve_dependency(dep).completed for dep in task.depends_on)

    def test_priority_filter_uses_effective_priority(self) -> None:
        task = Task(id="A", priority="P3", spec_priority="P0")
        assert matches_constraints(task, ConstraintParameters(priority=("P0",)))
        assert not matches_constraints(task, ConstraintParameters(priority=("P3",)))

    def test_phase_filter_passes_phaseless_tasks(self) -> None:
        params = ConstraintParameters(phase=("PHASE-1A",))
        assert matches_constraints(Task(id="A"), params)
        assert not matches_constraints(Task(id="B", phase="PHASE-2A"), params)

    def test_agent_type_filter_only_applies_to_bound_tasks(self) -> None:
        params = ConstraintParameters(agent_type=("cli-developer",))
        assert matches_constraints(Task(id="A"), params)
        assert not matches_constraints(Task(id="B", agent_type="backend-developer"), params)

    def test_spec_status_filter(self) -> None:
        params = ConstraintParameters(spec_status=("active",))
        assert matches_constraints(Task(id="A", spec_status="active"), params)
        assert not matches_constraints(Task(id="B"), params)


class TestRepositories:
    """Tests for spec repositories."""

    def test_in_memory_replace(self, specs: list[dict[str, Any]]) -> None:
        repo = InMemorySpecRepository(specs)
        repo.replace([])
        assert repo.get_specs() == ()

    def test_json_snapshot_shapes(self, tmp_path: Any, specs: list[dict[str, Any]]) -> None:
        import json

        wrapped = tmp_path / "wrapped.json"
        wrapped.write_text(json.dumps({"specs": specs}))
        bare = tmp_path / "bare.json"
        bare.write_text(json.dumps(specs))

        assert len(JsonSpecRepository(wrapped).get_specs()) == 2
        assert len(JsonSpecRepository(bare).get_specs()) == 2

    def test_json_missing_file(self, tmp_path: Any) -> None:
        with pytest.raises(PoolReadError, match="not found"):
            JsonSpecRepository(tmp_path / "absent.json").get_specs()

    def test_json_invalid(self, tmp_path: Any) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(PoolReadError):
            JsonSpecRepository(path).get_specs()

        path.write_text('{"specs": 3}')
        with pytest.raises(PoolReadError):
            JsonSpecRepository(path).get_specs()
