"""Scribe service — the callable operations and the entry-created event.

Responsibilities:
1. Caller checks — identity and required fields, before any store access
2. Enhancement — assemble context, one backend call, return text verbatim
3. Entry operations — create/edit/delete under the caller's own user path
4. Event dispatch — fire the batch trigger for every created entry
5. Error boundary — downstream faults are logged and surfaced as Internal
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Coroutine

from scribe.errors import Internal, InvalidArgument, NotFound, Unauthenticated
from scribe.memory.committer import SummaryCommitter
from scribe.memory.context import ContextAssembler
from scribe.memory.paths import is_valid_segment, receipt_path
from scribe.memory.trigger import BatchTrigger, TriggerResult
from scribe.memory.worker import RefreshWorker
from scribe.store.base import SERVER_TIMESTAMP, DocumentNotFound

if TYPE_CHECKING:
    from scribe.backend import GenerativeBackend
    from scribe.config import ScribeConfig
    from scribe.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class CallContext:
    """Identity of the caller, already resolved by the transport."""

    uid: str | None = None


def _require_uid(caller: CallContext | None) -> str:
    if caller is None or not caller.uid:
        raise Unauthenticated("Auth required.")
    if not is_valid_segment(caller.uid):
        raise InvalidArgument("Malformed caller id.")
    return caller.uid


def _require_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(message)
    return value


class Scribe:
    """Core service — wires the curation pipeline to the callable operations."""

    def __init__(self, config: ScribeConfig, store: DocumentStore, backend: GenerativeBackend) -> None:
        self.config = config
        self.store = store
        self.backend = backend
        self.assembler = ContextAssembler(store, config.curation)
        self.committer = SummaryCommitter(store)
        self.trigger = BatchTrigger(store, backend, self.assembler, self.committer, config.curation)
        self.worker = RefreshWorker(store, backend, self.assembler, self.committer, config.curation)
        self._tasks: set[asyncio.Task] = set()

    # ── Callable operations ──────────────────────────────────

    async def enhance(self, caller: CallContext | None, text: Any) -> dict:
        """Rewrite a raw note into a journal entry. Writes nothing."""
        uid = _require_uid(caller)
        text = _require_text(text, "Text required.")
        try:
            context = await self.assembler.for_enhancement(uid, text)
            rewritten = await self.backend.generate(context.prompt)
        except Exception:
            logger.exception("CRITICAL: generative backend error in scribe (uid=%s)", uid)
            raise Internal("AI Scribe failed.")
        return {"text": rewritten}

    async def create_entry(self, caller: CallContext | None, text: Any) -> dict:
        """Store a new entry and fire the entry-created event."""
        uid = _require_uid(caller)
        text = _require_text(text, "Text required.")
        entry_id = uuid.uuid4().hex
        try:
            await self.store.set(
                receipt_path(uid, entry_id), {"message": text, "timestamp": SERVER_TIMESTAMP}
            )
        except Exception:
            logger.exception("Failed to create receipt for %s", uid)
            raise Internal("Receipt creation failed.")
        self._dispatch(self.on_entry_created(uid, entry_id))
        return {"id": entry_id}

    async def edit_entry(self, caller: CallContext | None, entry_id: Any, new_text: Any) -> dict:
        uid = _require_uid(caller)
        if not entry_id or not new_text or not isinstance(new_text, str):
            raise InvalidArgument("ID/Text needed.")
        if not isinstance(entry_id, str) or not is_valid_segment(entry_id):
            raise InvalidArgument("Malformed receipt id.")
        try:
            await self.store.update(receipt_path(uid, entry_id), {"message": new_text})
        except DocumentNotFound:
            raise NotFound("Receipt not found.")
        except Exception:
            logger.exception("Failed to update receipt %s for %s", entry_id, uid)
            raise Internal("Receipt update failed.")
        return {"status": "success", "message": "Receipt updated."}

    async def delete_entry(self, caller: CallContext | None, entry_id: Any) -> dict:
        """Delete an entry. The creation counter is left untouched."""
        uid = _require_uid(caller)
        if not entry_id:
            raise InvalidArgument("ID needed.")
        if not isinstance(entry_id, str) or not is_valid_segment(entry_id):
            raise InvalidArgument("Malformed receipt id.")
        try:
            await self.store.delete(receipt_path(uid, entry_id))
        except Exception:
            logger.exception("Failed to delete receipt %s for %s", entry_id, uid)
            raise Internal("Receipt deletion failed.")
        return {"status": "success", "message": "Receipt deleted."}

    # ── Entry-created event ───────────────────────────────────

    async def on_entry_created(self, uid: str, entry_id: str) -> TriggerResult | None:
        """Event handler: fire the batch trigger. Failures are logged, not retried."""
        try:
            result = await self.trigger.on_entry_created(uid, entry_id)
        except Exception:
            logger.exception("Memory curator failed for %s (entry %s); batch dropped", uid, entry_id)
            return None
        if result.deferred:
            self._dispatch(self.worker.process_job(result.job_id))
        return result

    def _dispatch(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait until all dispatched events (and what they dispatch) finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Lifecycle ─────────────────────────────────────────────

    async def close(self) -> None:
        await self.drain()
        await self.store.close()
