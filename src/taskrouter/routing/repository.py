"""Spec repository adapters that feed the task pool."""

from __future__ import annotations

import json
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .errors import PoolReadError
from .models import Spec

SpecRecord = Spec | Mapping[str, Any]


@runtime_checkable
class SpecRepository(Protocol):
    """Anything that can hand over the current list of specs."""

    def get_specs(self) -> Sequence[SpecRecord]: ...


class InMemorySpecRepository:
    """Holds a spec snapshot in memory."""

    def __init__(self, specs: Sequence[SpecRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._specs: tuple[SpecRecord, ...] = tuple(specs)

    def get_specs(self) -> Sequence[SpecRecord]:
        with self._lock:
            return self._specs

    def replace(self, specs: Sequence[SpecRecord]) -> None:
        """Swap in a new snapshot. Routers must `reload()` to see it."""
        with self._lock:
            self._specs = tuple(specs)


class JsonSpecRepository:
    """
    Reads a JSON snapshot written by the spec parser.

    Accepted shapes: `{"specs": [...]}` or a bare list of spec objects.
    Records are returned as raw mappings so the pool builder can skip
    individual malformed tasks instead of rejecting the whole snapshot.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def get_specs(self) -> Sequence[SpecRecord]:
        try:
            data = json.loads(self.path.read_text())
        except FileNotFoundError as exc:
            raise PoolReadError(f"Spec snapshot not found: {self.path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise PoolReadError(f"Failed to read spec snapshot {self.path}: {exc}") from exc

        specs = data.get("specs") if isinstance(data, dict) else data
        if not isinstance(specs, list):
            raise PoolReadError(
                f"Spec snapshot {self.path} must contain a list of specs or a 'specs' key"
            )
        return specs
