"""Summary committer — last-writer-wins overwrite of the memory summary."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from scribe.memory.paths import summary_path
from scribe.store.base import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from scribe.store.base import DocumentStore, Transaction

logger = logging.getLogger(__name__)


class SummaryCommitter:
    """Sole writer of users/{uid}/memory/summary."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def commit(self, tx: Transaction, uid: str, text: str, count: int | None = None) -> None:
        """Stage the overwrite in `tx`. Needs no prior read of the summary."""
        data: dict = {"summary": text, "lastUpdated": SERVER_TIMESTAMP}
        if count is not None:
            data["refreshedAtCount"] = count
        tx.set(summary_path(uid), data, merge=True)
        logger.info("Memory summary staged for %s (%d chars)", uid, len(text))

    async def commit_now(self, uid: str, text: str, count: int | None = None) -> None:
        async def _write(tx: Transaction) -> None:
            self.commit(tx, uid, text, count)

        await self.store.run_transaction(_write)
