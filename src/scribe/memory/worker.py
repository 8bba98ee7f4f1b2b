"""Refresh worker — complete refreshes claimed by the batch trigger.

In deferred mode the trigger transaction only records a pending job next to
the counter increment. The worker runs the slow backend call outside any
transaction, then commits the summary and closes the job in one short
transaction. Failed jobs stay pending with backoff until `max_attempts`.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from scribe.memory.paths import JOBS_COLLECTION, job_path, summary_path
from scribe.store.base import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from scribe.backend import GenerativeBackend
    from scribe.config import CurationConfig
    from scribe.memory.committer import SummaryCommitter
    from scribe.memory.context import ContextAssembler
    from scribe.store.base import DocumentStore, Transaction

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY = 5.0  # seconds
RETRY_MAX_DELAY = 600.0


class RefreshWorker:
    """Poll pending refresh jobs and process them."""

    def __init__(
        self,
        store: DocumentStore,
        backend: GenerativeBackend,
        assembler: ContextAssembler,
        committer: SummaryCommitter,
        config: CurationConfig,
    ) -> None:
        self.store = store
        self.backend = backend
        self.assembler = assembler
        self.committer = committer
        self.poll_interval = config.worker_poll_interval
        self.max_attempts = config.worker_max_attempts

    async def run(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Main loop: poll for due jobs until shutdown_event is set."""
        logger.info("RefreshWorker started (poll=%ss)", self.poll_interval)
        while True:
            if shutdown_event and shutdown_event.is_set():
                break
            try:
                await self.process_pending()
            except Exception as e:
                logger.error("Refresh queue processing error: %s", e)
            if shutdown_event:
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.poll_interval)
                    break
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(self.poll_interval)
        logger.info("RefreshWorker stopped.")

    async def process_pending(self) -> dict[str, str]:
        """Process every pending job that is due. Returns job id → outcome."""
        now = self.store.server_time()
        pending = await self.store.query(
            JOBS_COLLECTION, where={"status": "pending"}, order_by="createdAt"
        )
        outcomes = {}
        for job in pending:
            due = job.get("nextAttemptAt")
            if due is not None and due > now:
                continue
            outcomes[job.id] = await self.process_job(job.id)
        return outcomes

    async def process_job(self, job: str) -> str:
        """Run one job. Returns done | superseded | retry | failed | skipped."""
        path = job_path(job)
        snap = await self.store.get(path)
        if not snap.exists or snap.get("status") != "pending":
            return "skipped"
        uid = snap.get("uid")
        count = int(snap.get("count"))

        try:
            context = await self.assembler.for_curation(uid, until=snap.get("createdAt"))
            summary = await self.backend.generate(context.prompt)
        except Exception as e:
            logger.error("Refresh job %s failed: %s", job, e)
            return await self._record_failure(path, e)

        async def _finish(tx: Transaction) -> str:
            current_job = await tx.get(path)
            if current_job.get("status") != "pending":
                return "skipped"
            current = await tx.get(summary_path(uid))
            finished = {"attempts": int(current_job.get("attempts") or 0) + 1, "finishedAt": SERVER_TIMESTAMP}
            if int(current.get("refreshedAtCount") or 0) >= count:
                tx.update(path, {**finished, "status": "superseded"})
                return "superseded"
            self.committer.commit(tx, uid, summary, count=count)
            tx.update(path, {**finished, "status": "done", "lastError": None})
            return "done"

        outcome = await self.store.run_transaction(_finish)
        logger.info("Refresh job %s: %s", job, outcome)
        return outcome

    async def _record_failure(self, path: str, error: Exception) -> str:
        async def _fail(tx: Transaction) -> str:
            current_job = await tx.get(path)
            if current_job.get("status") != "pending":
                return "skipped"
            attempts = int(current_job.get("attempts") or 0) + 1
            update: dict = {"attempts": attempts, "lastError": f"{type(error).__name__}: {error}"}
            if attempts >= self.max_attempts:
                update["status"] = "failed"
                update["finishedAt"] = SERVER_TIMESTAMP
                outcome = "failed"
            else:
                delay = min(RETRY_MAX_DELAY, RETRY_BASE_DELAY * 2 ** (attempts - 1))
                update["nextAttemptAt"] = datetime.now(timezone.utc) + timedelta(seconds=delay)
                outcome = "retry"
            tx.update(path, update)
            return outcome

        outcome = await self.store.run_transaction(_fail)
        if outcome == "failed":
            logger.error("Refresh job %s gave up after %d attempts", path, self.max_attempts)
        return outcome
