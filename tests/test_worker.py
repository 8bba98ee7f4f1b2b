"""Tests for the deferred refresh worker."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from scribe.backend import GenerativeBackend
from scribe.config import CurationConfig
from scribe.engines.base import AgentResponse, EngineError
from scribe.memory.committer import SummaryCommitter
from scribe.memory.context import ContextAssembler
from scribe.memory.paths import job_path, receipt_path, summary_path, user_path
from scribe.memory.trigger import BatchTrigger
from scribe.memory.worker import RefreshWorker
from scribe.store import SERVER_TIMESTAMP, MemoryDocumentStore


class FlakyEngine:
    """Fails the first `failures` calls, then answers with a summary."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.prompts: list[str] = []

    @property
    def name(self) -> str:
        return "flaky"

    async def send(self, message, *, system_prompt=None) -> AgentResponse:
        self.prompts.append(message)
        if len(self.prompts) <= self.failures:
            raise EngineError("provider overloaded")
        return AgentResponse(text=f"summary {len(self.prompts)}")

    async def health_check(self) -> bool:
        return True


def build(store, engine, **overrides):
    config = CurationConfig(refresh_mode="deferred", **overrides)
    backend = GenerativeBackend(engine, timeout=5)
    assembler = ContextAssembler(store, config)
    committer = SummaryCommitter(store)
    trigger = BatchTrigger(store, backend, assembler, committer, config)
    worker = RefreshWorker(store, backend, assembler, committer, config)
    return trigger, worker


async def create(store, trigger, uid: str, i: int):
    entry_id = f"e{i:02d}"
    await store.set(receipt_path(uid, entry_id), {"message": f"note {i:02d}", "timestamp": SERVER_TIMESTAMP})
    return await trigger.on_entry_created(uid, entry_id)


class TestProcessJob:
    @pytest.mark.asyncio
    async def test_commits_summary_and_closes_job(self):
        store = MemoryDocumentStore()
        engine = FlakyEngine()
        trigger, worker = build(store, engine)
        for i in range(1, 6):
            result = await create(store, trigger, "u1", i)

        assert await worker.process_job(result.job_id) == "done"

        summary = await store.get(summary_path("u1"))
        assert summary.get("summary") == "summary 1"
        assert summary.get("refreshedAtCount") == 5
        job = await store.get(job_path(result.job_id))
        assert job.get("status") == "done"
        assert job.get("attempts") == 1

    @pytest.mark.asyncio
    async def test_context_stops_at_claim_time(self):
        store = MemoryDocumentStore()
        engine = FlakyEngine()
        trigger, worker = build(store, engine)
        for i in range(1, 6):
            result = await create(store, trigger, "u1", i)
        await create(store, trigger, "u1", 6)

        await worker.process_job(result.job_id)

        assert "note 05" in engine.prompts[0]
        assert "note 06" not in engine.prompts[0]

    @pytest.mark.asyncio
    async def test_failure_is_retried_then_succeeds(self):
        store = MemoryDocumentStore()
        trigger, worker = build(store, FlakyEngine(failures=1))
        for i in range(1, 6):
            result = await create(store, trigger, "u1", i)

        assert await worker.process_job(result.job_id) == "retry"
        job = await store.get(job_path(result.job_id))
        assert job.get("status") == "pending"
        assert job.get("attempts") == 1
        assert "provider overloaded" in job.get("lastError")
        assert job.get("nextAttemptAt") > datetime.now(timezone.utc)
        assert (await store.get(user_path("u1"))).get("receiptCount") == 5

        assert await worker.process_job(result.job_id) == "done"
        assert (await store.get(summary_path("u1"))).get("summary") == "summary 2"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        store = MemoryDocumentStore()
        trigger, worker = build(store, FlakyEngine(failures=10), worker_max_attempts=2, batch_size=1)
        result = await create(store, trigger, "u1", 1)

        assert await worker.process_job(result.job_id) == "retry"
        assert await worker.process_job(result.job_id) == "failed"
        assert await worker.process_job(result.job_id) == "skipped"
        assert (await store.get(job_path(result.job_id))).get("status") == "failed"

    @pytest.mark.asyncio
    async def test_older_job_is_superseded(self):
        store = MemoryDocumentStore()
        trigger, worker = build(store, FlakyEngine(), batch_size=1)
        first = await create(store, trigger, "u1", 1)
        second = await create(store, trigger, "u1", 2)

        assert await worker.process_job(second.job_id) == "done"
        assert await worker.process_job(first.job_id) == "superseded"
        assert (await store.get(summary_path("u1"))).get("refreshedAtCount") == 2

    @pytest.mark.asyncio
    async def test_concurrent_processing_commits_once(self):
        store = MemoryDocumentStore()
        trigger, worker = build(store, FlakyEngine(), batch_size=1)
        result = await create(store, trigger, "u1", 1)

        outcomes = await asyncio.gather(
            worker.process_job(result.job_id), worker.process_job(result.job_id)
        )
        assert sorted(outcomes) == ["done", "skipped"]


class TestProcessPending:
    @pytest.mark.asyncio
    async def test_processes_due_jobs_only(self):
        store = MemoryDocumentStore()
        trigger, worker = build(store, FlakyEngine(), batch_size=1)
        due = await create(store, trigger, "u1", 1)
        later = await create(store, trigger, "u2", 1)
        await store.set(
            job_path(later.job_id),
            {"nextAttemptAt": datetime.now(timezone.utc) + timedelta(hours=1)},
            merge=True,
        )

        outcomes = await worker.process_pending()

        assert outcomes == {due.job_id: "done"}
        assert (await store.get(job_path(later.job_id))).get("status") == "pending"

    @pytest.mark.asyncio
    async def test_run_stops_on_shutdown(self):
        store = MemoryDocumentStore()
        trigger, worker = build(store, FlakyEngine(), batch_size=1, worker_poll_interval=0.01)
        result = await create(store, trigger, "u1", 1)
        shutdown = asyncio.Event()

        task = asyncio.create_task(worker.run(shutdown))
        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)

        assert (await store.get(job_path(result.job_id))).get("status") == "done"
