"""Built-in memory index — SQLite FTS5 over the workspace's memory markdown files.

Indexes ``MEMORY.md`` and ``memory/**/*.md`` under the agent workspace in
fixed-size line chunks.  Zero infrastructure: it is the fallback every
external provider degrades to.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from memsearch.config.resolve import ResolvedBuiltinConfig
from memsearch.providers.base import SyncProgressCallback
from memsearch.types import (
    EmbeddingProbeResult,
    ReadFileResult,
    SearchResult,
    StatusReport,
    SyncProgressUpdate,
)

logger = logging.getLogger(__name__)

_ROOT_FILES = ("MEMORY.md", "memory.md")
_MEMORY_DIR = "memory"
_SNIPPET_CHARS = 700
_CANDIDATE_FACTOR = 4
_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

T = TypeVar("T")


class BuiltinMemoryIndex:
    """SQLite FTS5-backed memory index. WAL mode, async via to_thread."""

    def __init__(
        self,
        workspace_dir: Path | str,
        db_path: Path | str,
        chunk_lines: int = 20,
        max_results: int = 6,
        min_score: float = 0.0,
    ) -> None:
        self._workspace = Path(workspace_dir)
        self._db_path = Path(db_path)
        self._chunk_lines = chunk_lines
        self._max_results = max_results
        self._min_score = min_score

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.row_factory = sqlite3.Row
        self._db_lock = threading.Lock()
        self._sync_lock = asyncio.Lock()
        self._init_db()

        self._closed = False
        self._dirty = True
        self._files, self._chunks = self._count_sync()

    @classmethod
    def from_config(cls, config: ResolvedBuiltinConfig) -> BuiltinMemoryIndex:
        return cls(
            workspace_dir=config.workspace_dir,
            db_path=config.db_path,
            chunk_lines=config.chunk_lines,
            max_results=config.max_results,
            min_score=config.min_score,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        cur = self._conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS files (
                path TEXT PRIMARY KEY,
                mtime REAL NOT NULL,
                size INTEGER NOT NULL,
                indexed_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL,
                start_line INTEGER NOT NULL,
                end_line INTEGER NOT NULL,
                content TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(path);

            CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
                content,
                content=chunks,
                content_rowid=id
            );

            CREATE TRIGGER IF NOT EXISTS chunks_ai AFTER INSERT ON chunks BEGIN
                INSERT INTO chunks_fts(rowid, content) VALUES (new.id, new.content);
            END;

            CREATE TRIGGER IF NOT EXISTS chunks_ad AFTER DELETE ON chunks BEGIN
                INSERT INTO chunks_fts(chunks_fts, rowid, content)
                    VALUES('delete', old.id, old.content);
            END;
            """
        )
        self._conn.commit()

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
        """Full-text search ranked by BM25, highest score first.

        ``session_key`` is accepted for contract compatibility; the index
        only covers workspace memory files, which are not session-scoped.
        """
        del session_key
        if self._dirty:
            async with self._sync_lock:
                if self._dirty:
                    await self._sync_locked("search", False, None)

        limit = max_results if max_results is not None else self._max_results
        threshold = min_score if min_score is not None else self._min_score
        hits = await self._db(self._search_sync, query, limit * _CANDIDATE_FACTOR)

        hits = [hit for hit in hits if hit.score >= threshold]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def read_file(
        self,
        rel_path: str,
        *,
        from_line: int | None = None,
        lines: int | None = None,
    ) -> ReadFileResult:
        path = self._resolve_memory_path(rel_path)
        text = await asyncio.to_thread(_read_text, path)

        if from_line is not None or lines is not None:
            all_lines = text.split("\n")
            start = max((from_line or 1) - 1, 0)
            end = start + lines if lines is not None else len(all_lines)
            text = "\n".join(all_lines[start:end])
        return ReadFileResult(text=text, path=rel_path)

    def status(self) -> StatusReport:
        return StatusReport(
            backend="builtin",
            provider="fts5",
            model=None,
            workspace_dir=str(self._workspace),
            db_path=str(self._db_path),
            files=self._files,
            chunks=self._chunks,
            dirty=self._dirty,
            sources=["memory"],
        )

    async def sync(
        self,
        *,
        reason: str | None = None,
        force: bool = False,
        progress: SyncProgressCallback | None = None,
    ) -> None:
        """Re-index changed memory files and drop the ones that disappeared."""
        async with self._sync_lock:
            await self._sync_locked(reason, force, progress)

    async def probe_embedding_availability(self) -> EmbeddingProbeResult:
        return EmbeddingProbeResult(ok=False, error="builtin index uses full-text search only")

    async def probe_vector_availability(self) -> bool:
        return False

    def close(self) -> None:
        """Close the database connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        with self._db_lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Sync pass
    # ------------------------------------------------------------------

    async def _sync_locked(
        self,
        reason: str | None,
        force: bool,
        progress: SyncProgressCallback | None,
    ) -> None:
        # Caller holds _sync_lock: one pass at a time per index.
        files = await asyncio.to_thread(self._list_memory_files)
        total = len(files)
        logger.debug("Builtin index sync (%s): %d files", reason or "manual", total)

        for done, path in enumerate(files, start=1):
            await self._db(self._index_file_sync, path, force)
            if progress is not None:
                progress(SyncProgressUpdate(completed=done, total=total, label=self._rel(path)))

        keep = {self._rel(path) for path in files}
        await self._db(self._prune_sync, keep)

        self._files, self._chunks = await self._db(self._count_sync)
        self._dirty = False

    async def _db(self, fn: Callable[..., T], *args: Any) -> T:
        """Run *fn* in a worker thread while holding the connection lock."""
        return await asyncio.to_thread(self._with_db_lock, fn, *args)

    def _with_db_lock(self, fn: Callable[..., T], *args: Any) -> T:
        with self._db_lock:
            return fn(*args)

    # ------------------------------------------------------------------
    # Synchronous implementations
    # ------------------------------------------------------------------

    def _search_sync(self, query: str, limit: int) -> list[SearchResult]:
        tokens = _TOKEN_RE.findall(query)
        if not tokens:
            return []
        fts_query = " OR ".join(f'"{token}"' for token in tokens)

        cur = self._conn.cursor()
        cur.execute(
            "SELECT c.path, c.start_line, c.end_line, c.content, bm25(chunks_fts) AS match_rank "
            "FROM chunks_fts "
            "JOIN chunks c ON c.id = chunks_fts.rowid "
            "WHERE chunks_fts MATCH ? "
            "ORDER BY match_rank "
            "LIMIT ?",
            (fts_query, limit),
        )
        return [self._row_to_result(row) for row in cur.fetchall()]

    def _index_file_sync(self, path: Path, force: bool) -> None:
        rel = self._rel(path)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return
        cur = self._conn.cursor()
        cur.execute("SELECT mtime, size FROM files WHERE path = ?", (rel,))
        row = cur.fetchone()
        if not force and row and row["mtime"] == stat.st_mtime and row["size"] == stat.st_size:
            return

        text = _read_text(path)
        cur.execute("DELETE FROM chunks WHERE path = ?", (rel,))
        for start, end, content in _chunk_lines(text, self._chunk_lines):
            cur.execute(
                "INSERT INTO chunks (path, start_line, end_line, content) VALUES (?, ?, ?, ?)",
                (rel, start, end, content),
            )
        cur.execute(
            "INSERT OR REPLACE INTO files (path, mtime, size, indexed_at) VALUES (?, ?, ?, ?)",
            (rel, stat.st_mtime, stat.st_size, datetime.now(UTC).isoformat()),
        )
        self._conn.commit()

    def _prune_sync(self, keep: set[str]) -> None:
        cur = self._conn.cursor()
        cur.execute("SELECT path FROM files")
        stale = [row["path"] for row in cur.fetchall() if row["path"] not in keep]
        for rel in stale:
            cur.execute("DELETE FROM chunks WHERE path = ?", (rel,))
            cur.execute("DELETE FROM files WHERE path = ?", (rel,))
        self._conn.commit()

    def _count_sync(self) -> tuple[int, int]:
        cur = self._conn.cursor()
        cur.execute("SELECT COUNT(*) FROM files")
        files = cur.fetchone()[0]
        cur.execute("SELECT COUNT(*) FROM chunks")
        chunks = cur.fetchone()[0]
        return files, chunks

    def _list_memory_files(self) -> list[Path]:
        found: list[Path] = []
        for name in _ROOT_FILES:
            candidate = self._workspace / name
            if candidate.is_file() and candidate not in found:
                found.append(candidate)
        memory_dir = self._workspace / _MEMORY_DIR
        if memory_dir.is_dir():
            found.extend(sorted(p for p in memory_dir.rglob("*.md") if p.is_file()))
        return found

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rel(self, path: Path) -> str:
        return path.relative_to(self._workspace).as_posix()

    def _resolve_memory_path(self, rel_path: str) -> Path:
        if not rel_path or Path(rel_path).is_absolute():
            raise ValueError(f"Memory path must be relative to the workspace: {rel_path!r}")
        root = self._workspace.resolve()
        path = (root / rel_path).resolve()
        if not path.is_relative_to(root):
            raise ValueError(f"Memory path escapes the workspace: {rel_path!r}")
        if path.suffix.lower() != ".md":
            raise ValueError(f"Memory path must be a markdown file: {rel_path!r}")
        return path

    @staticmethod
    def _row_to_result(row: sqlite3.Row) -> SearchResult:
        # bm25() is lower-is-better and <= 0; fold it into (0, 1).
        strength = max(-float(row["match_rank"]), 0.0)
        return SearchResult(
            path=row["path"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            score=strength / (1.0 + strength),
            snippet=row["content"][:_SNIPPET_CHARS],
            source="memory",
        )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ""


def _chunk_lines(text: str, size: int) -> list[tuple[int, int, str]]:
    """Split *text* into ``(start_line, end_line, content)`` windows, skipping blank ones."""
    lines = text.split("\n")
    chunks: list[tuple[int, int, str]] = []
    for offset in range(0, len(lines), size):
        window = lines[offset : offset + size]
        content = "\n".join(window)
        if not content.strip():
            continue
        chunks.append((offset + 1, offset + len(window), content))
    return chunks
