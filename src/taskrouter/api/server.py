"""FastAPI server for programmatic task routing."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Annotated, Any

import click
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from taskrouter import __version__
from taskrouter.config import load_settings
from taskrouter.routing import (
    InvalidInputError,
    JsonSpecRepository,
    PoolReadError,
    RoutingError,
    TaskNotFoundError,
    TaskRouter,
)

app = FastAPI(
    title="Task Router API",
    version=__version__,
    description="Constraint-based next-task recommendation for spec-driven agents",
)

_start_time = time.monotonic()
_router: TaskRouter | None = None
_router_lock = threading.Lock()

QueryList = Annotated[list[str] | None, Query()]


def configure(router: TaskRouter) -> None:
    """Install the router instance served by the API."""
    global _router
    with _router_lock:
        _router = router


def get_router() -> TaskRouter:
    """Shared router; built from the working directory on first use."""
    global _router
    with _router_lock:
        if _router is None:
            settings = load_settings()
            router = TaskRouter(JsonSpecRepository(settings.specs_path), settings)
            router.initialize()
            _router = router
        return _router


RouterDep = Annotated[TaskRouter, Depends(get_router)]


def _filters(
    priority: list[str] | None,
    phase: list[str] | None,
    spec_status: list[str] | None,
) -> dict[str, Any]:
    constraints: dict[str, Any] = {}
    if priority:
        constraints["priority"] = priority
    if phase:
        constraints["phase"] = phase
    if spec_status:
        constraints["spec_status"] = spec_status
    return constraints


@app.exception_handler(RoutingError)
async def routing_error_handler(request: Request, exc: RoutingError) -> JSONResponse:
    if isinstance(exc, TaskNotFoundError):
        status_code = 404
    elif isinstance(exc, InvalidInputError):
        status_code = 400
    elif isinstance(exc, PoolReadError):
        status_code = 503
    else:
        status_code = 500
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.get("/api/health")
async def health() -> dict[str, Any]:
    """Health check."""
    uptime = time.monotonic() - _start_time
    return {"status": "ok", "version": __version__, "uptime_seconds": round(uptime, 1)}


@app.get("/api/next/{agent_type}")
async def next_task(
    agent_type: str,
    router: RouterDep,
    priority: QueryList = None,
    phase: QueryList = None,
    spec_status: QueryList = None,
) -> dict[str, Any]:
    """Recommend the next task for an agent type."""
    result = router.get_next_task(agent_type, _filters(priority, phase, spec_status))
    return result.to_dict()


@app.post("/api/next/{agent_type}")
async def next_task_with_constraints(
    agent_type: str, request: dict[str, Any], router: RouterDep
) -> dict[str, Any]:
    """Recommend the next task under a full constraint object."""
    result = router.get_next_task(agent_type, request)
    return result.to_dict()


@app.get("/api/tasks/available")
async def available_tasks(
    router: RouterDep,
    priority: QueryList = None,
    phase: QueryList = None,
    spec_status: QueryList = None,
) -> dict[str, Any]:
    """Tasks ready to be picked up."""
    tasks = router.get_available_tasks(_filters(priority, phase, spec_status))
    return {"tasks": [task.to_dict() for task in tasks], "count": len(tasks)}


@app.get("/api/tasks/blocked")
async def blocked_tasks(router: RouterDep) -> dict[str, Any]:
    """Tasks waiting on unmet dependencies."""
    blocked = router.get_blocked_tasks()
    return {"tasks": [item.to_dict() for item in blocked], "count": len(blocked)}


@app.get("/api/tasks/{task_id}/chain")
async def dependency_chain(task_id: str, router: RouterDep) -> dict[str, Any]:
    """Upstream and downstream dependencies of a task."""
    return router.get_dependency_chain(task_id).to_dict()


@app.post("/api/validate")
async def validate(request: dict[str, Any], router: RouterDep) -> dict[str, Any]:
    """Run the constraint validators for one task/agent pair."""
    task_id = request.get("task_id", "")
    agent_type = request.get("agent_type", "")
    if not task_id or not agent_type:
        raise InvalidInputError("task_id and agent_type are required")
    validation = router.validate_constraints(task_id, agent_type, request.get("constraints"))
    return {"task_id": task_id, "agent_type": agent_type, **validation.to_dict()}


@app.get("/api/workload")
async def workload(router: RouterDep) -> dict[str, Any]:
    """Committed hours per agent."""
    return router.get_workload_stats().to_dict()


@app.post("/api/workload")
async def update_workload(request: dict[str, Any], router: RouterDep) -> dict[str, Any]:
    """Add (or subtract) committed hours for an agent."""
    agent_type = request.get("agent_type", "")
    delta = request.get("delta_hours")
    if not isinstance(delta, (int, float)) or isinstance(delta, bool):
        raise InvalidInputError("delta_hours must be a number")
    value = router.update_agent_workload(agent_type, delta)
    return {"agent_type": agent_type, "workload": value}


@app.delete("/api/workload")
async def reset_workload(router: RouterDep) -> dict[str, Any]:
    """Forget all committed hours."""
    router.reset_workloads()
    return {"status": "reset"}


@app.get("/api/cache")
async def cache_stats(router: RouterDep) -> dict[str, Any]:
    """Recommendation cache statistics."""
    return router.get_cache_stats()


@app.delete("/api/cache")
async def clear_cache(router: RouterDep) -> dict[str, Any]:
    """Drop cached recommendations."""
    router.clear_cache()
    return {"status": "cleared"}


def run_server(router: TaskRouter, host: str, port: int) -> None:
    """Serve `router` over HTTP until interrupted."""
    import uvicorn

    configure(router)
    uvicorn.run(app, host=host, port=port)


@click.command()
@click.option("--port", default=3848, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project root containing .asd/",
)
def main(port: int, host: str, root: Path) -> None:
    """Start the Task Router API server."""
    settings = load_settings(root)
    router = TaskRouter(JsonSpecRepository(settings.specs_path), settings)
    router.initialize()
    run_server(router, host, port)
