"""Tests for the memsearch CLI."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import tomli_w
from typer.testing import CliRunner

from memsearch.cli import app
from memsearch.config import ConfigManager
from memsearch.manager import MemorySearchSelection

runner = CliRunner()


def _patched_manager(provider: MagicMock | None, error: str | None = None) -> MagicMock:
    manager = MagicMock()
    manager.get = AsyncMock(return_value=MemorySearchSelection(provider=provider, error=error))
    manager.close = AsyncMock()
    return manager


@pytest.fixture()
def config_dir(tmp_path: Path) -> Path:
    workspace = tmp_path / "workspace"
    (workspace / "memory").mkdir(parents=True)
    (workspace / "MEMORY.md").write_text(
        "# Memory\nThe user prefers dark roast coffee.\nTheir dog is called Biscuit.\n",
        encoding="utf-8",
    )
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    data = {
        "default_workspace": str(workspace),
        "memory": {"backend": "builtin", "builtin": {"db_dir": str(tmp_path / "index")}},
    }
    (cfg_dir / "config.toml").write_bytes(tomli_w.dumps(data).encode())
    return cfg_dir


# ------------------------------------------------------------------
# Help
# ------------------------------------------------------------------


class TestHelp:
    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])
        assert "search" in result.output
        assert "status" in result.output

    def test_search_help(self) -> None:
        result = runner.invoke(app, ["search", "--help"])
        assert result.exit_code == 0
        assert "--max-results" in result.output


# ------------------------------------------------------------------
# Commands against a mocked manager
# ------------------------------------------------------------------


class TestCommandsMocked:
    def test_search_json_forwards_options(self, primary: MagicMock) -> None:
        manager = _patched_manager(primary)
        with patch("memsearch.cli.MemorySearchManager", return_value=manager):
            result = runner.invoke(
                app,
                [
                    "search",
                    "coffee",
                    "--agent",
                    "ops",
                    "-n",
                    "3",
                    "--min-score",
                    "0.2",
                    "--session",
                    "chat:1",
                    "--json",
                ],
            )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload[0]["path"] == "MEMORY.md"
        assert payload[0]["snippet"] == "primary"
        manager.get.assert_awaited_once_with("ops")
        primary.search.assert_awaited_once_with(
            "coffee", max_results=3, min_score=0.2, session_key="chat:1"
        )
        manager.close.assert_awaited_once()

    def test_no_provider_exits_nonzero(self) -> None:
        manager = _patched_manager(None, error="disk full")
        with patch("memsearch.cli.MemorySearchManager", return_value=manager):
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "disk full" in result.output
        manager.close.assert_awaited_once()

    def test_read_forwards_window(self, primary: MagicMock) -> None:
        primary.read_file.return_value.text = "line three"
        manager = _patched_manager(primary)
        with patch("memsearch.cli.MemorySearchManager", return_value=manager):
            result = runner.invoke(app, ["read", "MEMORY.md", "--from", "3", "--lines", "1"])

        assert result.exit_code == 0
        assert "line three" in result.output
        primary.read_file.assert_awaited_once_with("MEMORY.md", from_line=3, lines=1)

    def test_status_shows_backend(self, primary: MagicMock) -> None:
        with patch("memsearch.cli.MemorySearchManager", return_value=_patched_manager(primary)):
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "engram" in result.output

    def test_sync_passes_force(self, primary: MagicMock) -> None:
        with patch("memsearch.cli.MemorySearchManager", return_value=_patched_manager(primary)):
            result = runner.invoke(app, ["sync", "--force"])

        assert result.exit_code == 0
        assert "Memory synced." in result.output
        primary.sync.assert_awaited_once_with(reason="cli", force=True)

    def test_sync_unsupported(self, primary: MagicMock) -> None:
        del primary.sync
        with patch("memsearch.cli.MemorySearchManager", return_value=_patched_manager(primary)):
            result = runner.invoke(app, ["sync"])

        assert result.exit_code == 0
        assert "does not support sync" in result.output


# ------------------------------------------------------------------
# End to end with the builtin index
# ------------------------------------------------------------------


class TestBuiltinEndToEnd:
    def test_search(self, config_dir: Path) -> None:
        result = runner.invoke(
            app, ["--config-dir", str(config_dir), "search", "Biscuit", "--json"]
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert len(payload) == 1
        assert payload[0]["path"] == "MEMORY.md"
        assert "Biscuit" in payload[0]["snippet"]

    def test_search_no_results(self, config_dir: Path) -> None:
        result = runner.invoke(app, ["--config-dir", str(config_dir), "search", "pelican"])

        assert result.exit_code == 0
        assert "No results." in result.output

    def test_read(self, config_dir: Path) -> None:
        args = ["--config-dir", str(config_dir), "read", "MEMORY.md", "--from", "2", "--lines", "1"]
        result = runner.invoke(app, args)

        assert result.exit_code == 0
        assert result.output.strip() == "The user prefers dark roast coffee."

    def test_sync_then_status(self, config_dir: Path) -> None:
        synced = runner.invoke(app, ["--config-dir", str(config_dir), "sync"])
        assert synced.exit_code == 0
        assert "Memory synced." in synced.output

        result = runner.invoke(app, ["--config-dir", str(config_dir), "status"])
        assert result.exit_code == 0
        assert "builtin" in result.output
        assert "fts5" in result.output


# ------------------------------------------------------------------
# Config-driven behaviour
# ------------------------------------------------------------------


class TestUseBackend:
    def test_use_adapter_backend_saves_config(self, config_dir: Path) -> None:
        result = runner.invoke(
            app,
            [
                "--config-dir",
                str(config_dir),
                "use",
                "engram",
                "--command",
                "/opt/engram/bin/adapter",
                "--timeout",
                "2.5",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Memory backend set to engram." in result.output
        saved = ConfigManager(config_dir=config_dir).load()
        assert saved.memory.backend == "engram"
        assert saved.memory.engram.command == "/opt/engram/bin/adapter"
        assert saved.memory.engram.timeout_seconds == 2.5
        assert saved.memory.builtin.db_dir.endswith("index")

    def test_use_builtin_after_adapter(self, config_dir: Path) -> None:
        runner.invoke(app, ["--config-dir", str(config_dir), "use", "qmd"])

        result = runner.invoke(app, ["--config-dir", str(config_dir), "use", "builtin"])

        assert result.exit_code == 0
        assert ConfigManager(config_dir=config_dir).load().memory.backend == "builtin"

    def test_unknown_backend_rejected(self, config_dir: Path) -> None:
        before = (config_dir / "config.toml").read_bytes()

        result = runner.invoke(app, ["--config-dir", str(config_dir), "use", "chromadb"])

        assert result.exit_code == 1
        assert "Unknown backend" in result.output
        assert (config_dir / "config.toml").read_bytes() == before

    def test_builtin_with_adapter_options_rejected(self, config_dir: Path) -> None:
        result = runner.invoke(
            app, ["--config-dir", str(config_dir), "use", "builtin", "--command", "/opt/x"]
        )

        assert result.exit_code == 1
        assert "only apply to adapter backends" in result.output


class TestLogLevel:
    def _write_level(self, config_dir: Path, level: str) -> None:
        path = config_dir / "config.toml"
        data = tomli_w.dumps({"log_level": level}).encode()
        path.write_bytes(data + b"\n" + path.read_bytes())

    def test_config_log_level_applied(self, config_dir: Path) -> None:
        self._write_level(config_dir, "info")
        with patch("memsearch.cli.logging.basicConfig") as basic_config:
            result = runner.invoke(app, ["--config-dir", str(config_dir), "status"])

        assert result.exit_code == 0, result.output
        assert basic_config.call_args.kwargs["level"] == logging.INFO

    def test_verbose_overrides_config(self, config_dir: Path) -> None:
        self._write_level(config_dir, "error")
        with patch("memsearch.cli.logging.basicConfig") as basic_config:
            runner.invoke(app, ["--config-dir", str(config_dir), "-v", "status"])

        assert basic_config.call_args.kwargs["level"] == logging.DEBUG

    def test_unknown_level_falls_back_to_warning(self, config_dir: Path) -> None:
        self._write_level(config_dir, "chatty")
        with patch("memsearch.cli.logging.basicConfig") as basic_config:
            runner.invoke(app, ["--config-dir", str(config_dir), "status"])

        assert basic_config.call_args.kwargs["level"] == logging.WARNING
