"""Pydantic models for memsearch configuration.

Nested section models use plain ``BaseModel`` so pydantic-settings does not
try to read environment variables for fields like ``command``.  Only the
top-level :class:`MemsearchConfig` extends ``BaseSettings``; overrides such
as ``MEMSEARCH_MEMORY__BACKEND=engram`` go through it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BackendName = Literal["builtin", "engram", "qmd"]


class BuiltinIndexSection(BaseModel):
    """Built-in SQLite full-text index settings."""

    db_dir: str = "~/.local/share/memsearch/index"
    chunk_lines: int = Field(default=20, ge=1)
    max_results: int = Field(default=6, ge=1)
    min_score: float = 0.0


class AdapterSection(BaseModel):
    """Subprocess adapter settings shared by the external backends."""

    command: str = ""
    timeout_seconds: float = Field(default=4.0, gt=0)


class EngramSection(AdapterSection):
    command: str = "engram-memory-adapter"


class QmdSection(AdapterSection):
    command: str = "qmd-memory-adapter"


class MemorySection(BaseModel):
    """Which backend to use and how each one is configured."""

    backend: BackendName = "builtin"
    builtin: BuiltinIndexSection = Field(default_factory=BuiltinIndexSection)
    engram: EngramSection = Field(default_factory=EngramSection)
    qmd: QmdSection = Field(default_factory=QmdSection)


class AgentEntry(BaseModel):
    """One configured agent."""

    id: str
    default: bool = False
    workspace: str = ""


class MemsearchConfig(BaseSettings):
    """Top-level memsearch configuration model.

    Maps to the TOML structure::

        log_level = "warning"
        default_workspace = "~/.local/share/memsearch/workspace"

        [memory]
        backend = "engram"

        [memory.engram]
        command = "engram-memory-adapter"

        [[agents]]
        id = "main"
        default = true
        workspace = "~/agents/main"
    """

    model_config = SettingsConfigDict(env_prefix="MEMSEARCH_", env_nested_delimiter="__")

    log_level: str = "warning"
    default_workspace: str = "~/.local/share/memsearch/workspace"
    memory: MemorySection = Field(default_factory=MemorySection)
    agents: list[AgentEntry] = Field(default_factory=list)

    def get_index_dir(self) -> Path:
        """Return the resolved built-in index directory."""
        return Path(self.memory.builtin.db_dir).expanduser()
