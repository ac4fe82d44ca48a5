"""Records exchanged across the memory search capability contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SearchResult:
    """A normalized search hit, whichever provider produced it."""

    path: str
    start_line: int
    end_line: int
    score: float
    snippet: str
    source: str = "memory"


@dataclass
class ReadFileResult:
    """Text read from a memory file."""

    text: str
    path: str


@dataclass
class EmbeddingProbeResult:
    ok: bool
    error: str | None = None


@dataclass
class SyncProgressUpdate:
    """Progress reported to a ``sync(progress=...)`` callback."""

    completed: int
    total: int
    label: str | None = None


@dataclass(frozen=True)
class FallbackInfo:
    """Which backend a degraded handle moved away from, and why."""

    from_backend: str
    reason: str


@dataclass
class StatusReport:
    """Provider health and identity.

    ``custom`` carries provider-specific fields.  ``fallback`` is only set by
    the fallback layer once the primary provider has been disabled.
    """

    backend: str
    provider: str
    model: str | None = None
    workspace_dir: str | None = None
    db_path: str | None = None
    files: int = 0
    chunks: int = 0
    dirty: bool = False
    sources: list[str] = field(default_factory=list)
    custom: dict[str, Any] = field(default_factory=dict)
    fallback: FallbackInfo | None = None
