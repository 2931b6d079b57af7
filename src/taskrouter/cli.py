"""CLI entry point for the Task Router."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from taskrouter import __version__
from taskrouter.config import RouterSettings, load_settings
from taskrouter.observability import setup_logging
from taskrouter.routing import (
    JsonSpecRepository,
    RecommendationResult,
    RoutingError,
    Task,
    TaskRouter,
)

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="troute")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project root containing .asd/",
)
@click.option(
    "--specs",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Spec snapshot JSON (default: <root>/.asd/specs.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log routing decisions")
@click.pass_context
def main(ctx: click.Context, root: Path, specs: Path | None, verbose: bool) -> None:
    """Task Router — next-task recommendation for spec-driven agents."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    settings = load_settings(root)
    if specs is not None:
        settings = replace(settings, specs_path=specs)
    ctx.obj = settings


def _get_router(settings: RouterSettings) -> TaskRouter:
    router = TaskRouter(JsonSpecRepository(settings.specs_path), settings)
    try:
        loaded = router.initialize()
    except RoutingError as exc:
        raise click.ClickException(str(exc)) from exc
    if not loaded:
        console.print(
            "[dim]No agent capability definitions found; "
            "every agent is treated as capable.[/dim]"
        )
    return router


def _filters(
    priority: tuple[str, ...], phase: tuple[str, ...], spec_status: tuple[str, ...]
) -> dict[str, Any]:
    constraints: dict[str, Any] = {}
    if priority:
        constraints["priority"] = list(priority)
    if phase:
        constraints["phase"] = list(phase)
    if spec_status:
        constraints["spec_status"] = list(spec_status)
    return constraints


def _task_table(title: str, tasks: list[Task]) -> Table:
    table = Table(title=title)
    table.add_column("Task", style="cyan")
    table.add_column("Title", max_width=40)
    table.add_column("Spec")
    table.add_column("Priority", style="bold")
    table.add_column("Phase")
    table.add_column("Agent", style="green")
    table.add_column("Hours")

    for task in tasks:
        table.add_row(
            task.id,
            task.title[:40],
            task.spec_id or "-",
            task.effective_priority,
            task.phase or "-",
            task.agent_type or "-",
            f"{task.estimated_hours:g}" if task.estimated_hours is not None else "-",
        )
    return table


filter_options = [
    click.option("--priority", "-p", multiple=True, help="Allowed priority (repeatable)"),
    click.option("--phase", multiple=True, help="Allowed phase (repeatable)"),
    click.option("--spec-status", multiple=True, help="Allowed spec status (repeatable)"),
]


def with_filters(func: Any) -> Any:
    for option in reversed(filter_options):
        func = option(func)
    return func


@main.command("next")
@click.argument("agent_type")
@with_filters
@click.option("--max-workload", type=float, default=None, help="Per-agent hour limit")
@click.option("--deadline", default=None, help="ISO date applied to tasks without one")
@click.option("--allow-violations", is_flag=True, help="Keep candidates that fail constraints")
@click.pass_obj
def next_task(
    settings: RouterSettings,
    agent_type: str,
    priority: tuple[str, ...],
    phase: tuple[str, ...],
    spec_status: tuple[str, ...],
    max_workload: float | None,
    deadline: str | None,
    allow_violations: bool,
) -> None:
    """Recommend the next task for AGENT_TYPE."""
    router = _get_router(settings)
    constraints = _filters(priority, phase, spec_status)
    if max_workload is not None:
        constraints["max_workload_per_agent"] = max_workload
    if deadline:
        constraints["deadline"] = deadline
    if allow_violations:
        constraints["allow_violations"] = True

    try:
        result = router.get_next_task(agent_type, constraints)
    except RoutingError as exc:
        raise click.ClickException(str(exc)) from exc
    _print_recommendation(result)


@main.command()
@with_filters
@click.pass_obj
def available(
    settings: RouterSettings,
    priority: tuple[str, ...],
    phase: tuple[str, ...],
    spec_status: tuple[str, ...],
) -> None:
    """List tasks that can be picked up now."""
    router = _get_router(settings)
    try:
        tasks = router.get_available_tasks(_filters(priority, phase, spec_status))
    except RoutingError as exc:
        raise click.ClickException(str(exc)) from exc

    if not tasks:
        console.print("[dim]No available tasks.[/dim]")
        return
    console.print(_task_table("Available Tasks", tasks))


@main.command()
@click.pass_obj
def blocked(settings: RouterSettings) -> None:
    """List tasks waiting on unmet dependencies."""
    router = _get_router(settings)
    items = router.get_blocked_tasks()

    if not items:
        console.print("[dim]No blocked tasks.[/dim]")
        return

    table = Table(title="Blocked Tasks")
    table.add_column("Task", style="cyan")
    table.add_column("Title", max_width=40)
    table.add_column("Waiting for", style="yellow")

    for item in items:
        table.add_row(item.task.id, item.task.title[:40], item.reason)

    console.print(table)


@main.command()
@click.argument("task_id")
@click.pass_obj
def chain(settings: RouterSettings, task_id: str) -> None:
    """Show what TASK_ID depends on and what depends on it."""
    router = _get_router(settings)
    try:
        result = router.get_dependency_chain(task_id)
    except RoutingError as exc:
        raise click.ClickException(str(exc)) from exc

    console.print(f"[bold]Task:[/bold] {result.task_id}")

    if result.dependencies:
        table = Table(title="Depends On")
        table.add_column("Dependency", style="cyan")
        table.add_column("Status")
        table.add_column("Done")
        for dep in result.dependencies:
            status = dep.status if dep.found else "[red]untracked[/red]"
            table.add_row(dep.id, status, "[green]yes[/green]" if dep.completed else "no")
        console.print(table)
    else:
        console.print("[dim]No dependencies.[/dim]")

    if result.dependents:
        console.print(
            f"[bold]Dependents:[/bold] {', '.join(task.id for task in result.dependents)}"
        )
    if result.blocked_by:
        console.print(f"[yellow]Blocked by:[/yellow] {', '.join(result.blocked_by)}")
    if result.blocking:
        console.print(f"[yellow]Blocking:[/yellow] {', '.join(result.blocking)}")


@main.command()
@click.argument("task_id")
@click.argument("agent_type")
@click.option("--max-workload", type=float, default=None, help="Per-agent hour limit")
@click.option("--workload", type=float, default=0.0, help="Hours already committed to the agent")
@click.pass_obj
def validate(
    settings: RouterSettings,
    task_id: str,
    agent_type: str,
    max_workload: float | None,
    workload: float,
) -> None:
    """Check TASK_ID against the constraints for AGENT_TYPE."""
    router = _get_router(settings)
    constraints: dict[str, Any] = {}
    if max_workload is not None:
        constraints["max_workload_per_agent"] = max_workload

    try:
        if workload:
            router.update_agent_workload(agent_type, workload)
        validation = router.validate_constraints(task_id, agent_type, constraints)
    except RoutingError as exc:
        raise click.ClickException(str(exc)) from exc

    table = Table(title=f"Constraints: {task_id} → {agent_type}")
    table.add_column("Validator", style="cyan")
    table.add_column("Valid")
    table.add_column("Multiplier")
    table.add_column("Notes", max_width=60)

    for result in validation.results:
        notes = "; ".join(result.violations + result.warnings)
        table.add_row(
            result.name,
            "[green]yes[/green]" if result.is_valid else "[red]no[/red]",
            f"×{result.score_multiplier:.2f}",
            notes or "-",
        )
    console.print(table)

    color = "green" if validation.is_valid else "red"
    verdict = "valid" if validation.is_valid else "invalid"
    console.print(
        f"[{color}]Assignment {verdict}[/{color}] "
        f"(combined multiplier ×{validation.score_multiplier:.3f})"
    )


@main.command()
@click.option("--url", default="http://127.0.0.1:3848", help="Running troute server")
@click.option(
    "--add",
    nargs=2,
    type=(str, float),
    default=None,
    help="AGENT HOURS to add before listing (negative to release)",
)
@click.option("--reset", is_flag=True, help="Forget all committed hours")
def workload(url: str, add: tuple[str, float] | None, reset: bool) -> None:
    """Show or adjust agent workloads on a running server."""
    import httpx

    try:
        with httpx.Client(base_url=url, timeout=5.0) as client:
            if reset:
                client.delete("/api/workload").raise_for_status()
            if add:
                agent_type, hours = add
                response = client.post(
                    "/api/workload", json={"agent_type": agent_type, "delta_hours": hours}
                )
                response.raise_for_status()
            response = client.get("/api/workload")
            response.raise_for_status()
            stats = response.json()
    except httpx.HTTPError as exc:
        raise click.ClickException(f"Workload server at {url} unavailable: {exc}") from exc

    workloads = stats.get("workloads", {})
    if not workloads:
        console.print("[dim]No committed workload.[/dim]")
        return

    table = Table(title="Agent Workload")
    table.add_column("Agent", style="cyan")
    table.add_column("Hours", style="bold")
    for agent_type, hours in sorted(workloads.items()):
        table.add_row(agent_type, f"{hours:g}")
    console.print(table)
    console.print(
        f"\nAgents: {stats['agent_count']} | "
        f"Total: {stats['total_hours']:g}h | "
        f"Average: {stats['average_hours']:.1f}h"
    )


@main.command()
@click.option("--port", default=3848, help="Port to listen on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.pass_obj
def serve(settings: RouterSettings, port: int, host: str) -> None:
    """Serve the routing API over HTTP."""
    from taskrouter.api.server import run_server

    router = _get_router(settings)
    console.print(f"[green]Task Router API on http://{host}:{port}[/green]")
    run_server(router, host, port)


def _print_recommendation(result: RecommendationResult) -> None:
    """Print a recommendation summary."""
    if result.task is None:
        console.print(f"[yellow]No recommendation for {result.agent_type}:[/yellow] {result.reason}")
        console.print(
            f"Available: {result.total_available} | Capable: {result.agent_matches}"
        )
        return

    task = result.task
    console.print(f"[bold cyan]Next task:[/bold cyan] {task.id} {task.title}")
    console.print(f"Spec: {task.spec_id or '-'} ({task.spec_status or 'unknown'})")
    console.print(f"Priority: {task.effective_priority}")
    console.print(f"[bold]Score:[/bold] {result.score}")
    console.print(f"Reason: {result.reason}")

    best = result.candidates[0]
    for warning in best.validation.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if result.alternatives:
        console.print("\n[bold]Alternatives:[/bold]")
        for candidate in result.candidates[1 : 1 + len(result.alternatives)]:
            console.print(
                f"  - {candidate.task.id} {candidate.task.title} (score {candidate.final_score})"
            )

    console.print(
        f"\nAvailable: {result.total_available} | Capable: {result.agent_matches}"
    )
