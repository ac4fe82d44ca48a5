"""Provider cache — fingerprinted, self-evicting store of live provider wrappers."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from pathlib import PurePath
from typing import Any, NamedTuple

from pydantic import BaseModel

from memsearch.fallback import FallbackFactory, FallbackMemoryProvider
from memsearch.providers.base import MemorySearchProvider

logger = logging.getLogger(__name__)

ProviderCreate = Callable[[], Awaitable[MemorySearchProvider | None]]


class CacheKey(NamedTuple):
    agent_id: str
    provider_kind: str
    fingerprint: str


def fingerprint(value: object) -> str:
    """Return a canonical string for *value*, independent of key order."""
    return json.dumps(_canonical(value), sort_keys=True, separators=(",", ":"), default=str)


def _canonical(value: object) -> Any:
    if isinstance(value, BaseModel):
        return _canonical(value.model_dump())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonical(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, Mapping):
        return {str(key): _canonical(value[key]) for key in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_canonical(item) for item in value), key=fingerprint)
    if isinstance(value, PurePath):
        return str(value)
    return value


class ProviderCache:
    """Maps ``(agent, kind, config fingerprint)`` to a live fallback wrapper.

    Entries are only added by :meth:`get` and only removed by the eviction
    callback of the wrapper stored under that key.  Concurrent misses on one
    key share a single construction.  A construction that declines (``None``)
    is never cached, so the next lookup retries it.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, FallbackMemoryProvider] = {}
        self._locks: dict[CacheKey, asyncio.Lock] = {}

    @staticmethod
    def key_for(agent_id: str, provider_kind: str, resolved_config: object) -> CacheKey:
        return CacheKey(agent_id, provider_kind, fingerprint(resolved_config))

    async def get(
        self,
        agent_id: str,
        provider_kind: str,
        resolved_config: object,
        create: ProviderCreate,
        fallback_factory: FallbackFactory,
    ) -> FallbackMemoryProvider | None:
        """Return the cached wrapper, or build, wrap and cache a new one."""
        key = self.key_for(agent_id, provider_kind, resolved_config)
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._entries.get(key)
            if cached is not None:
                return cached

            primary = await create()
            if primary is None:
                return None

            wrapper: FallbackMemoryProvider = FallbackMemoryProvider(
                backend_name=provider_kind,
                primary=primary,
                fallback_factory=fallback_factory,
                on_evict=lambda: self._remove(key, wrapper),
            )
            self._entries[key] = wrapper
            logger.info("Cached %s memory provider for agent %s", provider_kind, agent_id)
            return wrapper

    def peek(self, key: CacheKey) -> FallbackMemoryProvider | None:
        return self._entries.get(key)

    async def close(self) -> None:
        """Close every cached wrapper; each evicts its own entry."""
        for wrapper in list(self._entries.values()):
            await wrapper.close()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _remove(self, key: CacheKey, wrapper: FallbackMemoryProvider) -> None:
        # A stale wrapper must not drop the entry that replaced it.
        if self._entries.get(key) is not wrapper:
            return
        del self._entries[key]
        logger.debug("Evicted memory provider cache entry %s:%s", key.agent_id, key.provider_kind)
