"""Default configuration values for memsearch."""

from __future__ import annotations

DEFAULT_CONFIG: dict[str, object] = {
    "log_level": "warning",
    "default_workspace": "~/.local/share/memsearch/workspace",
    "memory": {
        "backend": "builtin",
        "builtin": {
            "db_dir": "~/.local/share/memsearch/index",
            "chunk_lines": 20,
            "max_results": 6,
            "min_score": 0.0,
        },
        "engram": {
            "command": "engram-memory-adapter",
            "timeout_seconds": 4.0,
        },
        "qmd": {
            "command": "qmd-memory-adapter",
            "timeout_seconds": 4.0,
        },
    },
    "agents": [],
}
