"""Typed failures raised by the routing core."""

from __future__ import annotations


class RoutingError(Exception):
    """Base class for routing failures."""


class InvalidInputError(RoutingError, ValueError):
    """A required call argument is missing or unusable."""


class PoolReadError(RoutingError):
    """The spec repository could not be queried to build the task pool."""


class TaskNotFoundError(RoutingError, LookupError):
    """No task with the requested id exists in the pool."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id
