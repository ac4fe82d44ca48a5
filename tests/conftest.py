"""Shared fixtures for memsearch tests."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from memsearch.types import (
    EmbeddingProbeResult,
    ReadFileResult,
    SearchResult,
    StatusReport,
)


def _provider(backend: str, snippet: str) -> MagicMock:
    provider = MagicMock()
    provider.search = AsyncMock(
        return_value=[
            SearchResult(
                path="MEMORY.md",
                start_line=1,
                end_line=1,
                score=1.0,
                snippet=snippet,
                source="memory",
            )
        ]
    )
    provider.read_file = AsyncMock(return_value=ReadFileResult(text="", path="MEMORY.md"))
    provider.status = MagicMock(
        return_value=StatusReport(
            backend=backend,
            provider=backend,
            workspace_dir="/tmp/workspace",
            custom={backend: {"command": f"{backend}-memory-adapter"}},
        )
    )
    provider.sync = AsyncMock(return_value=None)
    provider.probe_embedding_availability = AsyncMock(return_value=EmbeddingProbeResult(ok=True))
    provider.probe_vector_availability = AsyncMock(return_value=True)
    provider.close = AsyncMock(return_value=None)
    return provider


@pytest.fixture()
def make_provider() -> Callable[..., MagicMock]:
    """Build a mock provider that satisfies the capability contract."""
    return _provider


@pytest.fixture()
def primary() -> MagicMock:
    return _provider("engram", "primary")


@pytest.fixture()
def fallback() -> MagicMock:
    return _provider("builtin", "fallback")
