"""Tests for the transactional document stores."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import pytest

from scribe.store import (
    SERVER_TIMESTAMP,
    DocumentNotFound,
    MemoryDocumentStore,
    SqliteDocumentStore,
    TransactionAborted,
)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return MemoryDocumentStore()
    return SqliteDocumentStore(tmp_path / "scribe.db")


class TestDocuments:
    @pytest.mark.asyncio
    async def test_missing_document(self, store):
        snap = await store.get("users/nobody")
        assert not snap.exists
        assert snap.version == 0
        assert snap.get("receiptCount", 0) == 0

    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        await store.set("users/u1", {"receiptCount": 3})
        snap = await store.get("users/u1")
        assert snap.exists
        assert snap.id == "u1"
        assert snap.get("receiptCount") == 3

    @pytest.mark.asyncio
    async def test_set_replaces_without_merge(self, store):
        await store.set("users/u1", {"a": 1, "b": 2})
        await store.set("users/u1", {"a": 3})
        snap = await store.get("users/u1")
        assert snap.data == {"a": 3}

    @pytest.mark.asyncio
    async def test_set_merge_keeps_other_fields(self, store):
        await store.set("users/u1", {"a": 1, "b": 2})
        await store.set("users/u1", {"a": 3}, merge=True)
        snap = await store.get("users/u1")
        assert snap.data == {"a": 3, "b": 2}

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        with pytest.raises(DocumentNotFound):
            await store.update("users/u1/receipts/nope", {"message": "x"})
        assert not (await store.get("users/u1/receipts/nope")).exists

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set("users/u1", {"a": 1})
        await store.delete("users/u1")
        assert not (await store.get("users/u1")).exists

    @pytest.mark.asyncio
    async def test_version_changes_on_write(self, store):
        await store.set("users/u1", {"a": 1})
        v1 = (await store.get("users/u1")).version
        await store.set("users/u1", {"a": 1})
        v2 = (await store.get("users/u1")).version
        assert v2 > v1


class TestServerTimestamp:
    @pytest.mark.asyncio
    async def test_resolved_on_commit(self, store):
        await store.set("users/u1/memory/summary", {"lastUpdated": SERVER_TIMESTAMP})
        value = (await store.get("users/u1/memory/summary")).get("lastUpdated")
        assert isinstance(value, datetime)
        assert value.tzinfo is not None

    @pytest.mark.asyncio
    async def test_strictly_increasing(self, store):
        for i in range(5):
            await store.set(f"users/u1/receipts/e{i}", {"timestamp": SERVER_TIMESTAMP})
        stamps = [(await store.get(f"users/u1/receipts/e{i}")).get("timestamp") for i in range(5)]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 5


class TestQuery:
    @pytest.mark.asyncio
    async def test_order_and_limit(self, store):
        for i in range(6):
            await store.set(
                f"users/u1/receipts/e{i}", {"message": f"m{i}", "timestamp": SERVER_TIMESTAMP}
            )
        rows = await store.query(
            "users/u1/receipts", order_by="timestamp", descending=True, limit=3
        )
        assert [r.get("message") for r in rows] == ["m5", "m4", "m3"]

    @pytest.mark.asyncio
    async def test_only_direct_children(self, store):
        await store.set("users/u1/receipts/e1", {"timestamp": SERVER_TIMESTAMP})
        await store.set("users/u2/receipts/e1", {"timestamp": SERVER_TIMESTAMP})
        await store.set("users/u1", {"receiptCount": 1})
        rows = await store.query("users/u1/receipts")
        assert [r.path for r in rows] == ["users/u1/receipts/e1"]

    @pytest.mark.asyncio
    async def test_where_equality(self, store):
        await store.set("refreshJobs/a", {"status": "pending", "createdAt": SERVER_TIMESTAMP})
        await store.set("refreshJobs/b", {"status": "done", "createdAt": SERVER_TIMESTAMP})
        rows = await store.query("refreshJobs", where={"status": "pending"}, order_by="createdAt")
        assert [r.id for r in rows] == ["a"]

    @pytest.mark.asyncio
    async def test_order_by_skips_documents_without_field(self, store):
        await store.set("users/u1/receipts/e1", {"message": "no timestamp"})
        await store.set("users/u1/receipts/e2", {"timestamp": SERVER_TIMESTAMP})
        rows = await store.query("users/u1/receipts", order_by="timestamp")
        assert [r.id for r in rows] == ["e2"]


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit_applies_all_writes(self, store):
        async def body(tx):
            tx.set("users/u1", {"receiptCount": 1})
            tx.set("users/u1/memory/summary", {"summary": "s"})
            return "ok"

        assert await store.run_transaction(body) == "ok"
        assert (await store.get("users/u1")).get("receiptCount") == 1
        assert (await store.get("users/u1/memory/summary")).get("summary") == "s"

    @pytest.mark.asyncio
    async def test_exception_aborts_without_writes(self, store):
        async def body(tx):
            tx.set("users/u1", {"receiptCount": 1})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await store.run_transaction(body)
        assert not (await store.get("users/u1")).exists

    @pytest.mark.asyncio
    async def test_update_of_missing_document_aborts_everything(self, store):
        async def body(tx):
            tx.set("users/u1", {"receiptCount": 1})
            tx.update("users/u1/receipts/missing", {"message": "x"})

        with pytest.raises(DocumentNotFound):
            await store.run_transaction(body)
        assert not (await store.get("users/u1")).exists

    @pytest.mark.asyncio
    async def test_conflict_reruns_body_with_fresh_reads(self, store):
        await store.set("users/u1", {"receiptCount": 0})
        seen: list[int] = []

        async def body(tx):
            snap = await tx.get("users/u1")
            count = snap.get("receiptCount")
            seen.append(count)
            if len(seen) == 1:
                # Concurrent writer sneaks in between read and commit
                await store.set("users/u1", {"receiptCount": 10})
            tx.set("users/u1", {"receiptCount": count + 1})

        await store.run_transaction(body)
        assert seen == [0, 10]
        assert (await store.get("users/u1")).get("receiptCount") == 11

    @pytest.mark.asyncio
    async def test_aborts_after_max_attempts(self, store):
        await store.set("users/u1", {"n": 0})
        calls = 0

        async def body(tx):
            nonlocal calls
            calls += 1
            snap = await tx.get("users/u1")
            await store.set("users/u1", {"n": snap.get("n") + 1})
            tx.set("users/u1", {"n": -1})

        with pytest.raises(TransactionAborted):
            await store.run_transaction(body, max_attempts=3)
        assert calls == 3
        assert (await store.get("users/u1")).get("n") == 3

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self):
        store = MemoryDocumentStore(max_attempts=20)

        async def increment(tx):
            snap = await tx.get("counter/c")
            tx.set("counter/c", {"n": int(snap.get("n") or 0) + 1})

        await asyncio.gather(*(store.run_transaction(increment) for _ in range(10)))
        assert (await store.get("counter/c")).get("n") == 10


class TestSqlitePersistence:
    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path: Path):
        db = tmp_path / "scribe.db"
        store = SqliteDocumentStore(db)
        await store.set(
            "users/u1/receipts/e1", {"message": "hello", "timestamp": SERVER_TIMESTAMP}
        )
        original = (await store.get("users/u1/receipts/e1")).get("timestamp")
        await store.close()

        reopened = SqliteDocumentStore(db)
        snap = await reopened.get("users/u1/receipts/e1")
        assert snap.get("message") == "hello"
        assert snap.get("timestamp") == original
        await reopened.close()

    @pytest.mark.asyncio
    async def test_versions_never_reused_after_delete(self, tmp_path: Path):
        store = SqliteDocumentStore(tmp_path / "scribe.db")
        await store.set("users/u1", {"a": 1})
        v1 = (await store.get("users/u1")).version
        await store.delete("users/u1")
        await store.set("users/u1", {"a": 1})
        assert (await store.get("users/u1")).version > v1
        await store.close()
