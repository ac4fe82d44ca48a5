"""Read and write the memsearch config file.

Only values that differ from the defaults are written back, so a saved
file stays a short list of overrides that :func:`_deep_merge` layers over
:data:`DEFAULT_CONFIG` on the next load.
"""

from __future__ import annotations

import logging
import os
import platform
import stat
import tomllib
from pathlib import Path
from typing import get_args

import tomli_w

from memsearch.config.defaults import DEFAULT_CONFIG
from memsearch.config.schema import BackendName, MemsearchConfig

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path("~/.config/memsearch").expanduser()
_CONFIG_FILE = "config.toml"

BACKENDS: tuple[str, ...] = get_args(BackendName)


class ConfigManager:
    """Locates, loads and saves ``config.toml``.

    Default location is ``~/.config/memsearch/config.toml``; a missing file
    loads as pure defaults.
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        self._config_dir = config_dir or _CONFIG_DIR

    def load(self) -> MemsearchConfig:
        """Load the config, merging the file over defaults.

        An unreadable or malformed file is logged and ignored.  A file that
        parses but fails validation raises ``pydantic.ValidationError``.
        """
        path = self.get_config_path()
        if not path.is_file():
            logger.debug("No memsearch config at %s, using defaults", path)
            return MemsearchConfig()

        try:
            with open(path, "rb") as fh:
                raw = tomllib.load(fh)
        except (tomllib.TOMLDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable memsearch config %s: %s", path, exc)
            return MemsearchConfig()

        return MemsearchConfig(**_deep_merge(DEFAULT_CONFIG, raw))

    def save(self, config: MemsearchConfig) -> None:
        """Write the non-default parts of *config*, replacing the file atomically."""
        path = self.get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")

        with open(tmp, "wb") as fh:
            tomli_w.dump(config.model_dump(exclude_defaults=True), fh)
        if platform.system() in ("Linux", "Darwin"):
            os.chmod(tmp, stat.S_IRUSR | stat.S_IWUSR)
        os.replace(tmp, path)

        logger.debug("memsearch config saved to %s", path)

    def set_backend(
        self,
        backend: str,
        *,
        command: str | None = None,
        timeout_seconds: float | None = None,
    ) -> MemsearchConfig:
        """Select *backend*, optionally overriding its adapter settings, and save.

        Raises ``ValueError`` for an unknown backend, or when adapter
        settings are given for ``builtin``.
        """
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend: {backend} (expected one of {', '.join(BACKENDS)})")
        if backend == "builtin" and (command is not None or timeout_seconds is not None):
            raise ValueError("--command and --timeout only apply to adapter backends")

        config = self.load()
        config.memory.backend = backend  # type: ignore[assignment]
        if backend != "builtin":
            section = getattr(config.memory, backend)
            if command is not None:
                section.command = command
            if timeout_seconds is not None:
                section.timeout_seconds = timeout_seconds

        self.save(config)
        logger.info("memsearch backend set to %s", backend)
        return config

    def exists(self) -> bool:
        return self.get_config_path().is_file()

    def get_config_path(self) -> Path:
        return self._config_dir / _CONFIG_FILE


def _deep_merge(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    """Merge *override* into a copy of *base*; tables merge, arrays replace."""
    merged: dict[str, object] = {}
    for key in {*base, *override}:
        base_val = base.get(key)
        over_val = override.get(key)
        if isinstance(base_val, dict) and isinstance(over_val, dict):
            merged[key] = _deep_merge(base_val, over_val)  # type: ignore[arg-type]
        elif key in override:
            merged[key] = over_val
        else:
            merged[key] = base_val
    return merged
