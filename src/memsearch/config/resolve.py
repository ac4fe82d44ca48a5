"""Resolve a loaded config into per-agent backend settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from memsearch.config.schema import MemsearchConfig

DEFAULT_AGENT_ID = "main"


@dataclass(frozen=True)
class ResolvedAdapterConfig:
    """Everything needed to start one subprocess adapter for one agent."""

    command: str
    timeout_seconds: float
    workspace_dir: str


@dataclass(frozen=True)
class ResolvedBuiltinConfig:
    workspace_dir: str
    db_path: str
    chunk_lines: int
    max_results: int
    min_score: float


@dataclass(frozen=True)
class ResolvedBackendConfig:
    """Backend choice for one agent.

    ``external`` is set only when ``backend`` names a subprocess backend;
    ``builtin`` is always present because it is the fallback for everything.
    """

    backend: str
    builtin: ResolvedBuiltinConfig
    external: ResolvedAdapterConfig | None = None


def resolve_default_agent_id(config: MemsearchConfig) -> str:
    """Return the agent marked ``default``, else the first agent, else ``main``."""
    for agent in config.agents:
        if agent.default:
            return agent.id
    if config.agents:
        return config.agents[0].id
    return DEFAULT_AGENT_ID


def resolve_agent_workspace_dir(config: MemsearchConfig, agent_id: str) -> str:
    """Return the workspace directory for *agent_id*.

    An explicit ``workspace`` on the agent entry wins.  Otherwise the default
    agent uses ``default_workspace`` and other agents get a sibling
    ``workspace-<id>`` directory.
    """
    for agent in config.agents:
        if agent.id == agent_id and agent.workspace:
            return str(Path(agent.workspace).expanduser())

    default_dir = Path(config.default_workspace).expanduser()
    if agent_id == resolve_default_agent_id(config):
        return str(default_dir)
    return str(default_dir.with_name(f"{default_dir.name}-{agent_id}"))


def resolve_backend_config(config: MemsearchConfig, agent_id: str) -> ResolvedBackendConfig:
    """Resolve the configured memory backend for *agent_id*."""
    workspace_dir = resolve_agent_workspace_dir(config, agent_id)
    builtin_cfg = config.memory.builtin
    builtin = ResolvedBuiltinConfig(
        workspace_dir=workspace_dir,
        db_path=str(config.get_index_dir() / f"{_safe_name(agent_id)}.sqlite"),
        chunk_lines=builtin_cfg.chunk_lines,
        max_results=builtin_cfg.max_results,
        min_score=builtin_cfg.min_score,
    )

    backend = config.memory.backend
    if backend == "builtin":
        return ResolvedBackendConfig(backend=backend, builtin=builtin)

    section = config.memory.engram if backend == "engram" else config.memory.qmd
    external = ResolvedAdapterConfig(
        command=section.command,
        timeout_seconds=section.timeout_seconds,
        workspace_dir=workspace_dir,
    )
    return ResolvedBackendConfig(backend=backend, builtin=builtin, external=external)


def _safe_name(agent_id: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in agent_id) or "agent"
