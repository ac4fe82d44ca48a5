"""memsearch — agent memory search over interchangeable providers."""

from __future__ import annotations

from memsearch.cache import CacheKey, ProviderCache, fingerprint
from memsearch.errors import (
    AdapterError,
    AdapterTimeoutError,
    MemorySearchError,
    MemoryUnavailableError,
)
from memsearch.fallback import FallbackMemoryProvider
from memsearch.manager import MemorySearchManager, MemorySearchSelection
from memsearch.providers import (
    BuiltinMemoryIndex,
    MemorySearchProvider,
    SubprocessAdapterProvider,
)
from memsearch.types import (
    EmbeddingProbeResult,
    FallbackInfo,
    ReadFileResult,
    SearchResult,
    StatusReport,
    SyncProgressUpdate,
)

__version__ = "0.1.0"

__all__ = [
    "AdapterError",
    "AdapterTimeoutError",
    "BuiltinMemoryIndex",
    "CacheKey",
    "EmbeddingProbeResult",
    "FallbackInfo",
    "FallbackMemoryProvider",
    "MemorySearchError",
    "MemorySearchManager",
    "MemorySearchProvider",
    "MemorySearchSelection",
    "MemoryUnavailableError",
    "ProviderCache",
    "ReadFileResult",
    "SearchResult",
    "StatusReport",
    "SubprocessAdapterProvider",
    "SyncProgressUpdate",
    "__version__",
    "fingerprint",
]
