"""Document store protocol, snapshots, and optimistic transactions.

A transaction records the version of every document it reads and buffers
every write. At commit the backend re-checks the recorded versions and
applies all writes atomically, or reports a conflict. On conflict the whole
transaction body is re-run with fresh reads, so bodies must be safe to
execute more than once.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Literal, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder resolved to the store's clock when the write commits.
SERVER_TIMESTAMP: Any = _ServerTimestamp()


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFound(StoreError):
    """An update targeted a document that does not exist."""


class TransactionAborted(StoreError):
    """A transaction kept conflicting until it ran out of attempts."""


class _Conflict(Exception):
    """Raised by a backend when a transaction's read set went stale."""


@dataclass
class DocumentSnapshot:
    """A document as read at one point in time. version 0 means missing."""

    path: str
    data: dict | None = None
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def get(self, key: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(key, default)


@dataclass
class _Write:
    op: Literal["set", "update", "delete"]
    path: str
    data: dict | None = None
    merge: bool = False


def parent_of(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def apply_write(current: dict | None, write: _Write, now: datetime) -> dict | None:
    """Return the document body after `write`. None means deleted."""
    if write.op == "delete":
        return None
    data = {k: (now if v is SERVER_TIMESTAMP else v) for k, v in (write.data or {}).items()}
    if write.op == "update":
        if current is None:
            raise DocumentNotFound(f"No document to update: {write.path}")
        return {**current, **data}
    if write.merge and current is not None:
        return {**current, **data}
    return data


def select(
    snapshots: list[DocumentSnapshot],
    *,
    where: dict[str, Any] | None = None,
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[DocumentSnapshot]:
    """Filter (equality only), order and limit a collection scan.

    Documents lacking the order_by field are excluded, as in Firestore.
    """
    rows = [s for s in snapshots if s.exists]
    if where:
        rows = [s for s in rows if all(s.get(k) == v for k, v in where.items())]
    if order_by:
        rows = [s for s in rows if s.get(order_by) is not None]
        rows.sort(key=lambda s: (s.get(order_by), s.path), reverse=descending)
    if limit is not None:
        rows = rows[:limit]
    return rows


class Transaction:
    """Read-tracking, write-buffering view of a store for one attempt."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._reads: dict[str, int] = {}
        self._writes: list[_Write] = []

    def _track(self, snap: DocumentSnapshot) -> None:
        self._reads.setdefault(snap.path, snap.version)

    async def get(self, path: str) -> DocumentSnapshot:
        snap = await self._store._fetch(path)
        self._track(snap)
        return snap

    async def query(self, collection: str, **kwargs: Any) -> list[DocumentSnapshot]:
        rows = select(await self._store._scan(collection), **kwargs)
        for snap in rows:
            self._track(snap)
        return rows

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        self._writes.append(_Write("set", path, dict(data), merge))

    def update(self, path: str, data: dict) -> None:
        self._writes.append(_Write("update", path, dict(data)))

    def delete(self, path: str) -> None:
        self._writes.append(_Write("delete", path))


class DocumentStore:
    """Shared transaction driver. Backends implement _fetch, _scan, _commit."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = 0.01,
        backoff_cap: float = 1.0,
    ) -> None:
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self._last_ts = datetime.fromtimestamp(0, tz=timezone.utc)

    # ── Backend hooks ─────────────────────────────────────────

    async def _fetch(self, path: str) -> DocumentSnapshot:
        raise NotImplementedError

    async def _scan(self, collection: str) -> list[DocumentSnapshot]:
        """Return every direct child document of `collection`."""
        raise NotImplementedError

    async def _commit(self, reads: dict[str, int], writes: list[_Write]) -> None:
        """Validate `reads` and apply `writes` atomically, else raise _Conflict."""
        raise NotImplementedError

    async def close(self) -> None:
        return None

    # ── Clock ─────────────────────────────────────────────────

    def server_time(self) -> datetime:
        """Strictly increasing UTC clock used for SERVER_TIMESTAMP."""
        now = datetime.now(timezone.utc)
        if now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    # ── Transactions ──────────────────────────────────────────

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        *,
        max_attempts: int | None = None,
    ) -> T:
        """Run `fn(tx)` and commit it, retrying the whole body on conflict.

        Any exception raised by `fn` aborts the attempt with nothing applied.
        """
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            tx = Transaction(self)
            result = await fn(tx)
            try:
                await self._commit(tx._reads, tx._writes)
            except _Conflict as e:
                logger.debug("Transaction conflict (attempt %d/%d): %s", attempt, attempts, e)
                if attempt < attempts:
                    await asyncio.sleep(self._backoff(attempt))
                continue
            return result
        raise TransactionAborted(f"Transaction aborted after {attempts} attempts")

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_cap, self.backoff_base * 2 ** (attempt - 1)) * random.random()

    # ── Single-operation helpers ──────────────────────────────

    async def get(self, path: str) -> DocumentSnapshot:
        return await self._fetch(path)

    async def query(self, collection: str, **kwargs: Any) -> list[DocumentSnapshot]:
        return select(await self._scan(collection), **kwargs)

    async def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        await self._commit({}, [_Write("set", path, dict(data), merge)])

    async def update(self, path: str, data: dict) -> None:
        await self._commit({}, [_Write("update", path, dict(data))])

    async def delete(self, path: str) -> None:
        await self._commit({}, [_Write("delete", path)])


