"""Memory search manager — picks, caches, and hands out a provider per agent.

External backends (``engram``, ``qmd``) are reached through subprocess
adapters, cached by config fingerprint, and wrapped so that a failing
backend degrades to the built-in index.  The built-in index is also what an
agent gets when the external backend declines at construction time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from memsearch.cache import ProviderCache, fingerprint
from memsearch.config import (
    ConfigManager,
    MemsearchConfig,
    ResolvedAdapterConfig,
    ResolvedBuiltinConfig,
    resolve_backend_config,
    resolve_default_agent_id,
)
from memsearch.fallback import close_provider
from memsearch.providers.base import MemorySearchProvider
from memsearch.providers.builtin import BuiltinMemoryIndex
from memsearch.providers.subprocess_adapter import SubprocessAdapterProvider

logger = logging.getLogger(__name__)

ExternalProviderFactory = Callable[
    [str, ResolvedAdapterConfig], Awaitable[MemorySearchProvider | None]
]
BuiltinProviderFactory = Callable[
    [str, ResolvedBuiltinConfig], Awaitable[MemorySearchProvider | None]
]


@dataclass
class MemorySearchSelection:
    """Outcome of :meth:`MemorySearchManager.get`.

    ``provider`` is ``None`` only when even the built-in index could not be
    opened; ``error`` then says why.
    """

    provider: MemorySearchProvider | None
    error: str | None = None


def subprocess_provider_factory(kind: str) -> ExternalProviderFactory:
    """Return a factory that health-checks a ``kind`` adapter for an agent."""

    async def create(agent_id: str, config: ResolvedAdapterConfig) -> MemorySearchProvider | None:
        del agent_id
        return await SubprocessAdapterProvider.create(
            workspace_dir=config.workspace_dir,
            command=config.command,
            timeout_seconds=config.timeout_seconds,
            kind=kind,
        )

    return create


class MemorySearchManager:
    """Selects the memory provider for each agent."""

    def __init__(
        self,
        config: MemsearchConfig | None = None,
        *,
        cache: ProviderCache | None = None,
        external_factories: Mapping[str, ExternalProviderFactory] | None = None,
        builtin_factory: BuiltinProviderFactory | None = None,
    ) -> None:
        self._config = config or ConfigManager().load()
        self._cache = cache or ProviderCache()
        if external_factories is None:
            external_factories = {
                "engram": subprocess_provider_factory("engram"),
                "qmd": subprocess_provider_factory("qmd"),
            }
        self._external_factories = dict(external_factories)
        self._builtin_factory = builtin_factory or self._open_builtin
        self._builtin: dict[str, BuiltinMemoryIndex] = {}

    @property
    def config(self) -> MemsearchConfig:
        return self._config

    @property
    def cache(self) -> ProviderCache:
        return self._cache

    async def get(self, agent_id: str | None = None) -> MemorySearchSelection:
        """Return the provider for *agent_id* (default agent when omitted).

        Never raises: a missing provider is reported through
        :attr:`MemorySearchSelection.error`.
        """
        agent_id = agent_id or resolve_default_agent_id(self._config)
        resolved = resolve_backend_config(self._config, agent_id)
        builtin_config = resolved.builtin

        async def open_fallback() -> MemorySearchProvider | None:
            return await self._builtin_factory(agent_id, builtin_config)

        external = resolved.external
        if external is not None:
            factory = self._external_factories.get(resolved.backend)
            if factory is None:
                logger.warning(
                    "No %s memory provider registered; falling back to builtin",
                    resolved.backend,
                )
            else:

                async def create() -> MemorySearchProvider | None:
                    return await factory(agent_id, external)

                try:
                    provider = await self._cache.get(
                        agent_id,
                        resolved.backend,
                        external,
                        create=create,
                        fallback_factory=open_fallback,
                    )
                except Exception as exc:
                    logger.warning(
                        "%s memory unavailable; falling back to builtin: %s",
                        resolved.backend,
                        exc,
                    )
                else:
                    if provider is not None:
                        return MemorySearchSelection(provider=provider)
                    logger.info(
                        "%s memory declined for agent %s; using builtin index",
                        resolved.backend,
                        agent_id,
                    )

        try:
            provider = await open_fallback()
        except Exception as exc:
            return MemorySearchSelection(provider=None, error=str(exc) or type(exc).__name__)
        if provider is None:
            return MemorySearchSelection(provider=None, error="builtin memory index unavailable")
        return MemorySearchSelection(provider=provider)

    async def close(self) -> None:
        """Close cached external providers and every opened built-in index."""
        await self._cache.close()
        for index in list(self._builtin.values()):
            await close_provider(index)
        self._builtin.clear()

    async def _open_builtin(
        self, agent_id: str, config: ResolvedBuiltinConfig
    ) -> MemorySearchProvider | None:
        key = f"{agent_id}:{fingerprint(config)}"
        cached = self._builtin.get(key)
        if cached is not None and not cached.closed:
            return cached
        index = await asyncio.to_thread(BuiltinMemoryIndex.from_config, config)
        self._builtin[key] = index
        logger.info("Builtin memory index opened for agent %s: %s", agent_id, config.db_path)
        return index
