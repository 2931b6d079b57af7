"""Router settings with file overrides and fallback defaults."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_MS: Final[int] = 300_000
DEFAULT_PERFORMANCE_TARGET_MS: Final[float] = 200.0
DEFAULT_MAX_WORKLOAD: Final[float] = 40.0
DEFAULT_TASK_HOURS: Final[float] = 2.0

CONFIG_DIR: Final[Path] = Path(".asd") / "config"
CAPABILITIES_FILENAME: Final[str] = "agent-capabilities.json"
SETTINGS_FILENAME: Final[str] = "router.json"
SPECS_SNAPSHOT: Final[Path] = Path(".asd") / "specs.json"


@dataclass(frozen=True)
class RouterSettings:
    """Settings for one router instance."""

    project_root: Path
    capabilities_path: Path
    specs_path: Path
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    performance_target_ms: float = DEFAULT_PERFORMANCE_TARGET_MS
    default_max_workload: float = DEFAULT_MAX_WORKLOAD
    default_task_hours: float = DEFAULT_TASK_HOURS

    @classmethod
    def for_root(cls, project_root: Path) -> RouterSettings:
        return cls(
            project_root=project_root,
            capabilities_path=project_root / CONFIG_DIR / CAPABILITIES_FILENAME,
            specs_path=project_root / SPECS_SNAPSHOT,
        )


def _resolve(root: Path, value: Any) -> Path:
    path = Path(str(value))
    return path if path.is_absolute() else root / path


def load_settings(project_root: Path | None = None, config_path: Path | None = None) -> RouterSettings:
    """Load settings for a project root.

    Args:
        project_root: Project directory. Defaults to the working directory.
        config_path: Explicit settings file. Defaults to `.asd/config/router.json`.

    Returns:
        RouterSettings; defaults when the file is absent or unreadable.
    """
    root = (project_root or Path.cwd()).resolve()
    settings = RouterSettings.for_root(root)
    path = config_path or root / CONFIG_DIR / SETTINGS_FILENAME

    if not path.exists():
        return settings

    try:
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError("settings file must contain a JSON object")

        overrides: dict[str, Any] = {}
        if "capabilities_path" in data:
            overrides["capabilities_path"] = _resolve(root, data["capabilities_path"])
        if "specs_path" in data:
            overrides["specs_path"] = _resolve(root, data["specs_path"])
        if "cache_ttl_ms" in data:
            overrides["cache_ttl_ms"] = int(data["cache_ttl_ms"])
        if "performance_target_ms" in data:
            overrides["performance_target_ms"] = float(data["performance_target_ms"])
        if "default_max_workload" in data:
            overrides["default_max_workload"] = float(data["default_max_workload"])
        if "default_task_hours" in data:
            overrides["default_task_hours"] = float(data["default_task_hours"])
        return replace(settings, **overrides)
    except (OSError, ValueError, TypeError) as exc:
        logger.warning("Failed to load router settings from %s: %s; using defaults", path, exc)
        return settings
