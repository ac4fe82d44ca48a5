"""memsearch configuration system."""

from memsearch.config.manager import ConfigManager
from memsearch.config.resolve import (
    ResolvedAdapterConfig,
    ResolvedBackendConfig,
    ResolvedBuiltinConfig,
    resolve_agent_workspace_dir,
    resolve_backend_config,
    resolve_default_agent_id,
)
from memsearch.config.schema import MemsearchConfig

__all__ = [
    "ConfigManager",
    "MemsearchConfig",
    "ResolvedAdapterConfig",
    "ResolvedBackendConfig",
    "ResolvedBuiltinConfig",
    "resolve_agent_workspace_dir",
    "resolve_backend_config",
    "resolve_default_agent_id",
]
