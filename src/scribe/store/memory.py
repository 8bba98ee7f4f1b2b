"""In-process document store.

Every read yields to the event loop once, like a network round-trip would,
so concurrent transactions genuinely interleave. Commit never awaits, which
makes validate-then-apply atomic on a single event loop.
"""

from __future__ import annotations

import asyncio
import copy
import logging

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


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store: path → (version, data)."""

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, **kwargs) -> None:
        super().__init__(max_attempts=max_attempts, **kwargs)
        self._docs: dict[str, tuple[int, dict]] = {}
        self._version = 0

    def _snapshot(self, path: str) -> DocumentSnapshot:
        entry = self._docs.get(path)
        if entry is None:
            return DocumentSnapshot(path)
        version, data = entry
        return DocumentSnapshot(path, copy.deepcopy(data), version)

    async def _fetch(self, path: str) -> DocumentSnapshot:
        await asyncio.sleep(0)
        return self._snapshot(path)

    async def _scan(self, collection: str) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        return [self._snapshot(p) for p in list(self._docs) if parent_of(p) == collection]

    async def _commit(self, reads: dict[str, int], writes: list[_Write]) -> None:
        for path, version in reads.items():
            entry = self._docs.get(path)
            current = entry[0] if entry else 0
            if current != version:
                raise _Conflict(f"{path} changed (read v{version}, now v{current})")

        if not writes:
            return

        now = self.server_time()
        staged: dict[str, dict | None] = {}
        for write in writes:
            if write.path in staged:
                base = staged[write.path]
            else:
                entry = self._docs.get(write.path)
                base = entry[1] if entry else None
            staged[write.path] = apply_write(base, write, now)

        for path, data in staged.items():
            if data is None:
                self._docs.pop(path, None)
            else:
                self._version += 1
                self._docs[path] = (self._version, copy.deepcopy(data))
