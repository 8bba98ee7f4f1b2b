"""Batch trigger — refresh the memory summary once every `batch_size` entries.

Runs once per entry-creation event. The counter read, the counter write and
(on a qualifying count) the summary refresh all happen in one store
transaction, so concurrent creations for the same user serialize on the
user document: each count is observed by exactly one committed attempt.

The transaction body may run several times on conflict. Every read is
re-issued on each attempt and nothing is written outside the transaction,
so re-running is safe; the backend call may repeat, its output is only
kept by the attempt that commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from scribe.memory.paths import job_id, job_path, user_path
from scribe.store.base import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from scribe.backend import GenerativeBackend
    from scribe.config import CurationConfig
    from scribe.memory.committer import SummaryCommitter
    from scribe.memory.context import ContextAssembler
    from scribe.store.base import DocumentStore, Transaction

logger = logging.getLogger(__name__)


@dataclass
class TriggerResult:
    """Outcome of the committed attempt."""

    uid: str
    count: int
    refreshed: bool = False
    job_id: str | None = None

    @property
    def deferred(self) -> bool:
        return self.job_id is not None


class BatchTrigger:
    """Transactional per-user creation counter."""

    def __init__(
        self,
        store: DocumentStore,
        backend: GenerativeBackend,
        assembler: ContextAssembler,
        committer: SummaryCommitter,
        config: CurationConfig,
    ) -> None:
        if config.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.backend = backend
        self.assembler = assembler
        self.committer = committer
        self.config = config

    async def on_entry_created(self, uid: str, entry_id: str) -> TriggerResult:
        """Advance the counter; refresh (or claim a refresh) on multiples of K.

        A backend or store failure propagates and nothing is applied: the
        counter and the summary roll back together.
        """

        async def _advance(tx: Transaction) -> TriggerResult:
            user = await tx.get(user_path(uid))
            new_count = int(user.get("receiptCount") or 0) + 1
            tx.set(user_path(uid), {"receiptCount": new_count}, merge=True)

            if new_count % self.config.batch_size != 0:
                return TriggerResult(uid, new_count)

            if self.config.refresh_mode == "deferred":
                job = job_id(uid, new_count)
                tx.set(
                    job_path(job),
                    {
                        "uid": uid,
                        "count": new_count,
                        "status": "pending",
                        "attempts": 0,
                        "lastError": None,
                        "createdAt": SERVER_TIMESTAMP,
                        "nextAttemptAt": SERVER_TIMESTAMP,
                    },
                )
                return TriggerResult(uid, new_count, job_id=job)

            context = await self.assembler.for_curation(uid, tx=tx)
            summary = await self.backend.generate(context.prompt)
            self.committer.commit(tx, uid, summary, count=new_count)
            return TriggerResult(uid, new_count, refreshed=True)

        result = await self.store.run_transaction(
            _advance, max_attempts=self.config.trigger_max_attempts
        )
        if result.refreshed:
            logger.info("Memory refreshed for %s at count %d (entry %s)", uid, result.count, entry_id)
        elif result.deferred:
            logger.info("Memory refresh claimed for %s at count %d: %s", uid, result.count, result.job_id)
        else:
            logger.debug("Receipt count for %s is now %d", uid, result.count)
        return result
