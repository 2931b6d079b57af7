"""
Agent Capabilities — Definitions, Loading and Assignment Matching

Agent capability definitions come from `agent-capabilities.json`:

    {
      "agent_capabilities": {
        "agents": {
          "backend-developer": {
            "context_requirements": ["api", "database"],
            "specialization_areas": ["backend", "api-design"]
          }
        }
      },
      "task_matching": {"capability_keywords": {"api": ["backend-developer"]}}
    }

A missing or unreadable file is not fatal: matching falls back to
permissive defaults (every agent may take every unbound task).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from .models import Task

logger = logging.getLogger(__name__)

# Context pairs treated as interchangeable when matching requirements
RELATED_CONTEXTS: Final[dict[str, tuple[str, ...]]] = {
    "api": ("integration", "data-models"),
    "database": ("data-models", "performance"),
    "cli": ("user-workflows", "automation"),
    "ui": ("user-experience", "interaction-patterns"),
    "testing": ("validation", "quality-standards"),
    "architecture": ("system-design", "technical-constraints"),
}

# Task keyword -> specialization terms that count as relevant
RELATED_SPECIALIZATIONS: Final[dict[str, tuple[str, ...]]] = {
    "api": ("backend", "integration", "server"),
    "cli": ("terminal", "command", "automation"),
    "ui": ("interface", "user-experience", "design"),
    "database": ("data", "storage", "backend"),
    "test": ("quality", "validation", "qa"),
    "performance": ("optimization", "monitoring"),
}

# Domain terms recognised in task titles and ids
COMMON_KEYWORDS: Final[tuple[str, ...]] = (
    "api",
    "cli",
    "ui",
    "database",
    "test",
    "performance",
    "integration",
    "architecture",
    "deployment",
    "monitoring",
    "validation",
    "automation",
)


@dataclass(frozen=True)
class AgentCapabilityDefinition:
    """What an agent type can take on."""

    agent_type: str
    context_capabilities: tuple[str, ...] = ()
    specialization_areas: tuple[str, ...] = ()

    @property
    def skills(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(self.context_capabilities + self.specialization_areas))


@dataclass(frozen=True)
class CapabilityConfig:
    """Loaded capability definitions plus keyword -> agent hints."""

    agents: Mapping[str, AgentCapabilityDefinition] = field(default_factory=dict)
    keyword_hints: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    source: str = "defaults"
    loaded: bool = False

    def definition_for(self, agent_type: str) -> AgentCapabilityDefinition | None:
        """The agent's definition, or None when the agent type is not configured."""
        return self.agents.get(agent_type)


def _strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def parse_capabilities(data: Mapping[str, Any], source: str = "inline") -> CapabilityConfig:
    """Build a CapabilityConfig from the decoded JSON document."""
    section = data.get("agent_capabilities", data)
    agents_data = section.get("agents", {}) if isinstance(section, Mapping) else {}
    if not isinstance(agents_data, Mapping):
        raise ValueError("agent_capabilities.agents must be an object")

    agents: dict[str, AgentCapabilityDefinition] = {}
    for agent_type, entry in agents_data.items():
        entry = entry or {}
        if not isinstance(entry, Mapping):
            raise ValueError(f"capability entry for {agent_type} must be an object")
        agents[str(agent_type)] = AgentCapabilityDefinition(
            agent_type=str(agent_type),
            context_capabilities=_strings(
                entry.get("context_requirements", entry.get("context_capabilities"))
            ),
            specialization_areas=_strings(entry.get("specialization_areas")),
        )

    matching = data.get("task_matching") or {}
    hints_data = matching.get("capability_keywords") or {} if isinstance(matching, Mapping) else {}
    keyword_hints = {str(k): _strings(v) for k, v in hints_data.items()}

    return CapabilityConfig(agents=agents, keyword_hints=keyword_hints, source=source, loaded=True)


def load_capabilities(path: Path | None) -> CapabilityConfig:
    """Load capability definitions, falling back to permissive defaults.

    Args:
        path: Path to agent-capabilities.json. If None or missing, uses defaults.

    Returns:
        CapabilityConfig; `loaded` is False when defaults were used.
    """
    if path is None or not path.exists():
        logger.warning(
            "Agent capability configuration not found at %s; using permissive defaults", path
        )
        return CapabilityConfig()

    try:
        data = json.loads(path.read_text())
        if not isinstance(data, Mapping):
            raise ValueError("capability file must contain a JSON object")
        config = parse_capabilities(data, source=str(path))
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        logger.warning(
            "Failed to load agent capabilities from %s: %s; using permissive defaults", path, exc
        )
        return CapabilityConfig()

    logger.debug("Loaded %d agent capability definitions from %s", len(config.agents), path)
    return config


# ═══════════════════════════════════════════════════════════════════════════
# MATCHING HEURISTICS
# ═══════════════════════════════════════════════════════════════════════════


def is_related_context(first: str, second: str) -> bool:
    """True when either context names a family and either names one of its relatives."""
    a, b = first.lower(), second.lower()
    for key, related in RELATED_CONTEXTS.items():
        if (key in a or key in b) and any(r in a or r in b for r in related):
            return True
    return False


def is_keyword_match(keyword: str, specialization: str) -> bool:
    k, s = keyword.lower(), specialization.lower()
    return k in s or s in k


def is_related_specialization(keyword: str, specialization: str) -> bool:
    """Check the first keyword family mentioned by either side."""
    k, s = keyword.lower(), specialization.lower()
    for key, related in RELATED_SPECIALIZATIONS.items():
        if key in k or key in s:
            return any(r in s or r in k for r in related)
    return False


def context_satisfied(requirement: str, capabilities: Iterable[str], related: bool = True) -> bool:
    """Whether any capability covers the requirement (substring either way)."""
    req = requirement.lower()
    for capability in capabilities:
        cap = capability.lower()
        if cap in req or req in cap:
            return True
        if related and is_related_context(req, cap):
            return True
    return False


def matched_contexts(
    task: Task, definition: AgentCapabilityDefinition | None, related: bool = False
) -> tuple[str, ...]:
    """Task context requirements the agent's capabilities cover."""
    if definition is None:
        return ()
    return tuple(
        req
        for req in task.context_requirements
        if context_satisfied(req, definition.context_capabilities, related=related)
    )


def extract_task_keywords(task: Task, keyword_hints: Mapping[str, Iterable[str]] | None = None) -> list[str]:
    """Configured hint keywords first, then common domain terms, found in title + id."""
    text = f"{task.title} {task.id}".lower()
    keywords: list[str] = []
    for keyword in keyword_hints or {}:
        if keyword.lower() in text:
            keywords.append(keyword)
    for keyword in COMMON_KEYWORDS:
        if keyword in text and keyword not in keywords:
            keywords.append(keyword)
    return keywords


def can_assign(task: Task, agent_type: str, config: CapabilityConfig) -> bool:
    """Decide whether `agent_type` is allowed to take `task`."""
    if task.agent_type and task.agent_type != agent_type:
        return False

    definition = config.definition_for(agent_type)
    if definition is None:
        return True

    requirements = task.context_requirements
    contexts_ok = all(
        context_satisfied(req, definition.context_capabilities) for req in requirements
    )
    if requirements and not contexts_ok:
        return False

    keywords = extract_task_keywords(task, config.keyword_hints)
    if not keywords:
        return contexts_ok

    relevant = any(
        is_keyword_match(keyword, spec) or is_related_specialization(keyword, spec)
        for spec in definition.specialization_areas
        for keyword in keywords
    )
    return relevant or contexts_ok
