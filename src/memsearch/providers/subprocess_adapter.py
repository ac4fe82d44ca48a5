"""Subprocess adapter provider — talks to an external memory backend over stdio.

Each capability call is one short-lived process:

- spawn ``<command> <operation>`` in the agent workspace
- write one JSON object (payload plus ``workspaceDir``) to stdin, then EOF
- read stdout until the process exits and parse it as
  ``{"ok": ..., "data": {...}, "status": {...}}``

A ``health`` call at construction decides whether the backend participates.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from memsearch.errors import AdapterError, AdapterTimeoutError
from memsearch.types import (
    EmbeddingProbeResult,
    ReadFileResult,
    SearchResult,
    StatusReport,
)

logger = logging.getLogger(__name__)

DEFAULT_COMMANDS: dict[str, str] = {
    "engram": "engram-memory-adapter",
    "qmd": "qmd-memory-adapter",
}
DEFAULT_TIMEOUT_SECONDS = 4.0
_DEFAULT_PATH = "MEMORY.md"


class SubprocessAdapterProvider:
    """Memory provider backed by a stdio JSON adapter process."""

    @classmethod
    async def create(
        cls,
        workspace_dir: str,
        command: str | None = None,
        timeout_seconds: float | None = None,
        kind: str = "engram",
    ) -> SubprocessAdapterProvider | None:
        """Health-check the adapter and return a provider, or ``None``.

        ``None`` means the backend declined to participate (missing binary,
        timeout, bad exit, bad payload, or ``backend_available: false``).
        It is never an exception.
        """
        provider = cls(
            workspace_dir=workspace_dir,
            command=command or DEFAULT_COMMANDS.get(kind, f"{kind}-memory-adapter"),
            timeout_seconds=(
                DEFAULT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
            ),
            kind=kind,
        )
        try:
            health = await provider._exec("health", {})
        except Exception as exc:
            logger.warning("%s adapter unavailable: %s", kind, exc)
            return None

        status = health.get("status")
        if isinstance(status, dict) and status.get("backend_available") is False:
            logger.warning("%s adapter reports backend unavailable", kind)
            return None
        return provider

    def __init__(
        self,
        workspace_dir: str,
        command: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        kind: str = "engram",
    ) -> None:
        self.workspace_dir = workspace_dir
        self.command = command
        self.timeout_seconds = timeout_seconds
        self.kind = kind

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
        payload = _compact(
            {
                "query": query,
                "maxResults": max_results,
                "minScore": min_score,
                "sessionKey": session_key,
            }
        )
        response = await self._exec("search", payload)
        entries = _list(_data(response).get("results"))

        results: list[SearchResult] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            results.append(
                SearchResult(
                    path=str(entry.get("id") or entry.get("path") or _DEFAULT_PATH),
                    start_line=1,
                    end_line=1,
                    score=_to_float(entry.get("score")),
                    snippet=str(entry.get("snippet") or ""),
                    source="memory",
                )
            )
        return results

    async def read_file(
        self,
        rel_path: str,
        *,
        from_line: int | None = None,
        lines: int | None = None,
    ) -> ReadFileResult:
        payload = _compact({"relPath": rel_path, "from": from_line, "lines": lines})
        response = await self._exec("fetch", payload)
        content = _list(_data(response).get("content"))
        return ReadFileResult(text="\n".join(str(line) for line in content), path=rel_path)

    def status(self) -> StatusReport:
        return StatusReport(
            backend=self.kind,
            provider=self.kind,
            workspace_dir=self.workspace_dir,
            custom={self.kind: {"command": self.command}},
        )

    async def sync(
        self,
        *,
        reason: str | None = None,
        force: bool = False,
        progress: Any = None,
    ) -> None:
        del progress  # the adapter protocol has no progress channel
        await self._exec("flush", _compact({"reason": reason, "force": force or None}))

    async def probe_embedding_availability(self) -> EmbeddingProbeResult:
        return EmbeddingProbeResult(ok=True)

    async def probe_vector_availability(self) -> bool:
        return True

    async def close(self) -> None:
        """Nothing to release; every call owns its own process."""

    # ------------------------------------------------------------------
    # Wire protocol
    # ------------------------------------------------------------------

    async def _exec(self, operation: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Run one adapter invocation and return the parsed response object."""
        request = json.dumps({"workspaceDir": self.workspace_dir, **payload}).encode()

        process = await asyncio.create_subprocess_exec(
            self.command,
            operation,
            cwd=self.workspace_dir,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(request), timeout=self.timeout_seconds
            )
        except TimeoutError:
            await _kill(process)
            raise AdapterTimeoutError(
                f"{self.kind} adapter timeout ({operation})", operation=operation
            ) from None
        except BaseException:
            # Cancelled or interrupted: never leave the child running.
            await _kill(process)
            raise

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip()
            raise AdapterError(
                message or f"{self.kind} adapter exited with code {process.returncode}",
                operation=operation,
            )

        body = stdout.decode(errors="replace").strip() or "{}"
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError:
            raise AdapterError(
                f"{self.kind} adapter returned invalid JSON", operation=operation
            ) from None
        if not isinstance(parsed, dict):
            raise AdapterError(
                f"{self.kind} adapter returned invalid response", operation=operation
            )

        logger.debug("%s adapter %s ok", self.kind, operation)
        return parsed


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def _data(response: dict[str, Any]) -> dict[str, Any]:
    data = response.get("data")
    return data if isinstance(data, dict) else {}


def _to_float(value: object) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def _list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []
