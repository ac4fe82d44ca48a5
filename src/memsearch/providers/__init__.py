"""Memory search provider implementations."""

from __future__ import annotations

from memsearch.providers.base import MemorySearchProvider
from memsearch.providers.builtin import BuiltinMemoryIndex
from memsearch.providers.subprocess_adapter import SubprocessAdapterProvider

__all__ = [
    "BuiltinMemoryIndex",
    "MemorySearchProvider",
    "SubprocessAdapterProvider",
]
