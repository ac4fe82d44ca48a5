"""Fallback provider — demotes a failing primary to a lazily built fallback, once.

The wrapper starts out delegating everything to the primary provider.  The
first failing ``search`` flips it into the degraded state for the rest of its
life: the primary is closed, the owning cache entry is evicted, and every
later call is served by the fallback (usually the built-in index).  Other
methods never trigger the switch themselves; they only follow it.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable

from memsearch.errors import MemoryUnavailableError
from memsearch.providers.base import MemorySearchProvider, SyncProgressCallback
from memsearch.types import (
    EmbeddingProbeResult,
    FallbackInfo,
    ReadFileResult,
    SearchResult,
    StatusReport,
)

logger = logging.getLogger(__name__)

FallbackFactory = Callable[[], Awaitable[MemorySearchProvider | None]]


class FallbackMemoryProvider:
    """Capability-contract wrapper with a one-way primary → fallback switch."""

    def __init__(
        self,
        backend_name: str,
        primary: MemorySearchProvider,
        fallback_factory: FallbackFactory,
        on_evict: Callable[[], object] | None = None,
    ) -> None:
        self.backend_name = backend_name
        self._primary = primary
        self._fallback_factory = fallback_factory
        self._on_evict = on_evict
        self._fallback: MemorySearchProvider | None = None
        self._fallback_lock = asyncio.Lock()
        self._degraded = False
        self._last_error: str | None = None
        self._evicted = False

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def evicted(self) -> bool:
        return self._evicted

    # ------------------------------------------------------------------
    # Capability contract
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        max_results: int | None = None,
        min_score: float | None = None,
        session_key: str | None = None,
    ) -> list[SearchResult]:
        if not self._degraded:
            try:
                return await self._primary.search(
                    query,
                    max_results=max_results,
                    min_score=min_score,
                    session_key=session_key,
                )
            except Exception as exc:
                await self._degrade(exc)

        fallback = await self._ensure_fallback()
        if fallback is None:
            raise MemoryUnavailableError(self._last_error or "memory search unavailable")
        return await fallback.search(
            query,
            max_results=max_results,
            min_score=min_score,
            session_key=session_key,
        )

    async def read_file(
        self,
        rel_path: str,
        *,
        from_line: int | None = None,
        lines: int | None = None,
    ) -> ReadFileResult:
        if not self._degraded:
            return await self._primary.read_file(rel_path, from_line=from_line, lines=lines)

        fallback = await self._ensure_fallback()
        if fallback is None:
            raise MemoryUnavailableError(self._last_error or "memory read unavailable")
        return await fallback.read_file(rel_path, from_line=from_line, lines=lines)

    def status(self) -> StatusReport:
        if not self._degraded:
            return self._primary.status()

        base = self._fallback.status() if self._fallback is not None else self._primary.status()
        reason = self._last_error or "unknown"
        custom = dict(base.custom)
        custom["fallback"] = {"disabled": True, "reason": reason}
        return dataclasses.replace(
            base,
            custom=custom,
            fallback=FallbackInfo(from_backend=self.backend_name, reason=reason),
        )

    async def sync(
        self,
        *,
        reason: str | None = None,
        force: bool = False,
        progress: SyncProgressCallback | None = None,
    ) -> None:
        target = self._primary if not self._degraded else await self._ensure_fallback()
        sync = getattr(target, "sync", None)
        if sync is None:
            return
        await sync(reason=reason, force=force, progress=progress)

    async def probe_embedding_availability(self) -> EmbeddingProbeResult:
        if not self._degraded:
            return await self._primary.probe_embedding_availability()

        fallback = await self._ensure_fallback()
        if fallback is None:
            return EmbeddingProbeResult(
                ok=False, error=self._last_error or "memory embeddings unavailable"
            )
        return await fallback.probe_embedding_availability()

    async def probe_vector_availability(self) -> bool:
        if not self._degraded:
            return await self._primary.probe_vector_availability()

        fallback = await self._ensure_fallback()
        if fallback is None:
            return False
        return await fallback.probe_vector_availability()

    async def close(self) -> None:
        """Close the primary and any fallback, then evict (at most once).

        Both closes always run; the first error raised is re-raised after
        eviction.
        """
        error: Exception | None = None
        for provider in (self._primary, self._fallback):
            if provider is None:
                continue
            try:
                await close_provider(provider)
            except Exception as exc:
                if error is None:
                    error = exc
        self._evict()
        if error is not None:
            raise error

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def _degrade(self, exc: Exception) -> None:
        # Concurrent failures may land here more than once; only the first
        # one switches state, closes the primary and evicts.
        if self._degraded:
            return
        self._degraded = True
        self._last_error = str(exc) or type(exc).__name__
        logger.warning(
            "%s memory failed; switching to builtin index: %s",
            self.backend_name,
            self._last_error,
        )
        try:
            await close_provider(self._primary)
        except Exception as close_exc:
            logger.debug("Closing failed %s provider raised: %s", self.backend_name, close_exc)
        self._evict()

    async def _ensure_fallback(self) -> MemorySearchProvider | None:
        if self._fallback is not None:
            return self._fallback
        async with self._fallback_lock:
            if self._fallback is not None:
                return self._fallback
            try:
                fallback = await self._fallback_factory()
            except Exception as exc:
                logger.warning("memory fallback construction failed: %s", exc)
                return None
            if fallback is None:
                logger.warning("memory fallback requested but builtin index is unavailable")
                return None
            self._fallback = fallback
            return fallback

    def _evict(self) -> None:
        if self._evicted:
            return
        self._evicted = True
        if self._on_evict is not None:
            self._on_evict()


async def close_provider(provider: object) -> None:
    """Call ``provider.close()`` if it exists, awaiting it when it is async."""
    close = getattr(provider, "close", None)
    if close is None:
        return
    result = close()
    if asyncio.iscoroutine(result):
        await result
