"""SQLite-backed document store.

Documents are JSON rows keyed by path. Blocking sqlite3 calls run in a
worker thread via asyncio.to_thread; a thread lock serializes them on the
single connection. Commit validates read versions and applies writes inside
one BEGIN IMMEDIATE transaction.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from scribe.store.base import (
    DEFAULT_MAX_ATTEMPTS,
    DocumentSnapshot,
    DocumentStore,
    _Conflict,
    _Write,
    apply_write,
    parent_of,
)

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS documents (
    path    TEXT PRIMARY KEY,
    parent  TEXT NOT NULL,
    version INTEGER NOT NULL,
    data    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_documents_parent ON documents(parent);
CREATE TABLE IF NOT EXISTS counters (
    name  TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
INSERT OR IGNORE INTO counters(name, value) VALUES ('version', 0);
"""

_TS_KEY = "$timestamp"


def _encode(value):
    if isinstance(value, datetime):
        return {_TS_KEY: value.isoformat()}
    raise TypeError(f"Unsupported type: {type(value).__name__}")


def _decode(obj: dict):
    if len(obj) == 1 and _TS_KEY in obj:
        return datetime.fromisoformat(obj[_TS_KEY])
    return obj


def _dumps(data: dict) -> str:
    return json.dumps(data, default=_encode, ensure_ascii=False)


def _loads(text: str) -> dict:
    return json.loads(text, object_hook=_decode)


class SqliteDocumentStore(DocumentStore):
    """Persistent store in a single SQLite file."""

    def __init__(self, path: Path, max_attempts: int = DEFAULT_MAX_ATTEMPTS, **kwargs) -> None:
        super().__init__(max_attempts=max_attempts, **kwargs)
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
        self._conn.executescript(_SCHEMA)
        logger.info("SQLite document store opened: %s", path)

    # ── Sync helpers (run in worker thread) ──────────────────

    def _fetch_sync(self, path: str) -> DocumentSnapshot:
        with self._lock:
            row = self._conn.execute(
                "SELECT version, data FROM documents WHERE path = ?", (path,)
            ).fetchone()
        if row is None:
            return DocumentSnapshot(path)
        return DocumentSnapshot(path, _loads(row[1]), row[0])

    def _scan_sync(self, collection: str) -> list[DocumentSnapshot]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT path, version, data FROM documents WHERE parent = ?", (collection,)
            ).fetchall()
        return [DocumentSnapshot(path, _loads(data), version) for path, version, data in rows]

    def _current(self, path: str) -> tuple[int, dict | None]:
        row = self._conn.execute(
            "SELECT version, data FROM documents WHERE path = ?", (path,)
        ).fetchone()
        return (row[0], _loads(row[1])) if row else (0, None)

    def _commit_sync(self, reads: dict[str, int], writes: list[_Write]) -> None:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                for path, version in reads.items():
                    current, _ = self._current(path)
                    if current != version:
                        raise _Conflict(f"{path} changed (read v{version}, now v{current})")

                now = self.server_time()
                staged: dict[str, dict | None] = {}
                for write in writes:
                    base = staged[write.path] if write.path in staged else self._current(write.path)[1]
                    staged[write.path] = apply_write(base, write, now)

                for path, data in staged.items():
                    if data is None:
                        self._conn.execute("DELETE FROM documents WHERE path = ?", (path,))
                        continue
                    self._conn.execute("UPDATE counters SET value = value + 1 WHERE name = 'version'")
                    (version,) = self._conn.execute(
                        "SELECT value FROM counters WHERE name = 'version'"
                    ).fetchone()
                    self._conn.execute(
                        "INSERT OR REPLACE INTO documents(path, parent, version, data) "
                        "VALUES (?, ?, ?, ?)",
                        (path, parent_of(path), version, _dumps(data)),
                    )
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    # ── Backend hooks ─────────────────────────────────────────

    async def _fetch(self, path: str) -> DocumentSnapshot:
        return await asyncio.to_thread(self._fetch_sync, path)

    async def _scan(self, collection: str) -> list[DocumentSnapshot]:
        return await asyncio.to_thread(self._scan_sync, collection)

    async def _commit(self, reads: dict[str, int], writes: list[_Write]) -> None:
        await asyncio.to_thread(self._commit_sync, reads, writes)

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
