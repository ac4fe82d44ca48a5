"""Memory search provider protocol — the capability contract every provider meets."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from memsearch.types import (
    EmbeddingProbeResult,
    ReadFileResult,
    SearchResult,
    StatusReport,
    SyncProgressUpdate,
)

SyncProgressCallback = Callable[[SyncProgressUpdate], None]


@runtime_checkable
class MemorySearchProvider(Protocol):
    """Protocol for memory search providers.

    ``sync`` and ``close`` are optional: callers look them up with
    ``getattr`` and treat a missing attribute as "not supported".
    """

    async def search(
        self,
        query: str,
        *,
        max_results: int | None = None,
        min_score: float | None = None,
        session_key: str | None = None,
    ) -> list[SearchResult]:
        """Search memory; results may arrive in any relevance order."""

    async def read_file(
        self,
        rel_path: str,
        *,
        from_line: int | None = None,
        lines: int | None = None,
    ) -> ReadFileResult:
        """Read a memory file, optionally a line window of it."""

    def status(self) -> StatusReport:
        """Return provider status. Must not block or mutate state."""

    async def probe_embedding_availability(self) -> EmbeddingProbeResult:
        """Report whether embeddings can be produced."""

    async def probe_vector_availability(self) -> bool:
        """Report whether vector search is usable."""
