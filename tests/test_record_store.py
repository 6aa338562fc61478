"""Tests for the record store port against both implementations.

Every behavioural test runs on the in-memory store and on the SQL store
(SQLite through aiosqlite, the ``any_store`` fixture), so the two stay
interchangeable.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from src.inquiry_hub.errors import DocumentNotFoundError
from src.inquiry_hub.store.base import (
    SERVER_TIMESTAMP,
    FieldFilter,
    collection_group,
    get_field,
    join_path,
    split_path,
)
from src.inquiry_hub.store.sql import decode_value, encode_value

NOW = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


# ── Path Helpers ────────────────────────────────────────────────────────────


class TestPathHelpers:
    def test_split_path(self):
        assert split_path("users/u1/tasks/t1") == ("users/u1/tasks", "t1")

    def test_split_path_rejects_collection(self):
        with pytest.raises(ValueError):
            split_path("users")

    def test_collection_group_is_last_segment(self):
        assert collection_group("users/u1/tasks") == "tasks"
        assert collection_group("users") == "users"

    def test_join_path_strips_slashes(self):
        assert join_path("serviceAreas/", "/mediation", "inquiries") == "serviceAreas/mediation/inquiries"

    def test_get_field_dotted(self):
        data = {"calendlyScheduling": {"scheduledTime": "2026-01-01T10:00:00Z"}}
        assert get_field(data, "calendlyScheduling.scheduledTime") == "2026-01-01T10:00:00Z"
        assert get_field(data, "calendlyScheduling.eventUri") is None
        assert get_field({"a": "not-a-dict"}, "a.b") is None


# ── Single-document Operations ──────────────────────────────────────────────


class TestDocuments:
    async def test_create_then_get(self, any_store):
        doc_id = await any_store.create("serviceAreas/mediation/inquiries", {"status": "submitted"})

        doc = await any_store.get(f"serviceAreas/mediation/inquiries/{doc_id}")

        assert doc is not None
        assert doc.id == doc_id
        assert doc.collection == "serviceAreas/mediation/inquiries"
        assert doc.data == {"status": "submitted"}

    async def test_get_missing_returns_none(self, any_store):
        assert await any_store.get("users/nobody") is None

    async def test_server_timestamp_resolved(self, any_store, now):
        await any_store.set("users/u1", {"createdAt": SERVER_TIMESTAMP, "nested": {"at": SERVER_TIMESTAMP}})

        doc = await any_store.get("users/u1")

        assert doc.data["createdAt"] == now
        assert doc.data["nested"]["at"] == now

    async def test_update_is_partial(self, any_store):
        await any_store.set("users/u1", {"role": "admin", "name": "Ada"})

        await any_store.update("users/u1", {"name": "Ada L.", "profile.title": "Director"})

        doc = await any_store.get("users/u1")
        assert doc.data == {"role": "admin", "name": "Ada L.", "profile": {"title": "Director"}}

    async def test_update_missing_document_raises(self, any_store):
        with pytest.raises(DocumentNotFoundError):
            await any_store.update("users/ghost", {"role": "admin"})

    async def test_set_merge_keeps_other_fields(self, any_store):
        await any_store.set("users/u1", {"role": "admin", "prefs": {"email": True}})

        await any_store.set("users/u1", {"prefs": {"sms": False}}, merge=True)

        doc = await any_store.get("users/u1")
        assert doc.data == {"role": "admin", "prefs": {"email": True, "sms": False}}

    async def test_reads_are_copies(self, any_store):
        await any_store.set("users/u1", {"tags": ["a"]})

        doc = await any_store.get("users/u1")
        doc.data["tags"].append("b")

        assert (await any_store.get("users/u1")).data == {"tags": ["a"]}


# ── Queries ─────────────────────────────────────────────────────────────────


class TestQueries:
    async def test_query_filters_one_collection(self, any_store):
        await any_store.set("users/a", {"role": "admin"})
        await any_store.set("users/b", {"role": "volunteer"})
        await any_store.set("users/a/tasks/t1", {"role": "admin"})

        docs = await any_store.query("users", [FieldFilter("role", "in", ["admin", "coordinator"])])

        assert [d.path for d in docs] == ["users/a"]

    async def test_query_group_spans_partitions(self, any_store):
        await any_store.set("users/a/tasks/t1", {"inquiryId": "i1", "status": "pending"})
        await any_store.set("users/b/tasks/t2", {"inquiryId": "i1", "status": "pending"})
        await any_store.set("users/b/tasks/t3", {"inquiryId": "i2", "status": "pending"})
        await any_store.set("users/b/activity/x1", {"inquiryId": "i1"})

        docs = await any_store.query_group("tasks", [FieldFilter("inquiryId", "==", "i1")])

        assert sorted(d.id for d in docs) == ["t1", "t2"]

    async def test_order_and_limit(self, any_store):
        await any_store.set("c/x", {"n": 2})
        await any_store.set("c/y", {"n": 3})
        await any_store.set("c/z", {"n": 1})
        await any_store.set("c/w", {})

        docs = await any_store.query("c", order_by="n", descending=True, limit=3)

        assert [d.id for d in docs] == ["y", "x", "z"]

    async def test_missing_order_field_sorts_last(self, any_store):
        await any_store.set("c/x", {"n": 1})
        await any_store.set("c/w", {})

        docs = await any_store.query("c", order_by="n")

        assert [d.id for d in docs] == ["x", "w"]

    async def test_equality_against_none_matches_absent_field(self, any_store):
        await any_store.set("c/x", {"mondaySyncStatus": "success"})
        await any_store.set("c/y", {})

        docs = await any_store.query("c", [FieldFilter("mondaySyncStatus", "==", None)])

        assert [d.id for d in docs] == ["y"]

    async def test_find_in_group(self, any_store):
        await any_store.set("serviceAreas/mediation/inquiries/abc", {"formType": "mediation-self-referral"})

        doc = await any_store.find_in_group("inquiries", "abc")

        assert doc is not None
        assert doc.path == "serviceAreas/mediation/inquiries/abc"
        assert await any_store.find_in_group("inquiries", "missing") is None

    async def test_mixed_filters_with_limit(self, any_store):
        await any_store.set("users/a/tasks/t1", {"type": "new-inquiry", "status": "pending", "n": 1})
        await any_store.set("users/a/tasks/t2", {"type": "intake-call", "status": "pending", "n": 2})
        await any_store.set("users/b/tasks/t3", {"type": "new-inquiry", "status": "done", "n": 3})
        await any_store.set("users/b/tasks/t4", {"type": "new-inquiry", "status": "pending", "n": 4})

        docs = await any_store.query_group(
            "tasks",
            [FieldFilter("type", "in", ["new-inquiry"]), FieldFilter("status", "==", "pending")],
            limit=5,
        )
        first = await any_store.query_group("tasks", [FieldFilter("status", "==", "pending")], limit=1)
        non_text = await any_store.query_group("tasks", [FieldFilter("n", "==", 2)])

        assert sorted(d.id for d in docs) == ["t1", "t4"]
        assert len(first) == 1
        assert first[0].data["status"] == "pending"
        assert [d.id for d in non_text] == ["t2"]


# ── Concurrent Writes ───────────────────────────────────────────────────────


class TestConcurrentWrites:
    async def test_parallel_partial_updates_keep_both_fields(self, any_store):
        await any_store.set("serviceAreas/mediation/inquiries/i1", {"status": "submitted"})

        await asyncio.gather(
            any_store.update("serviceAreas/mediation/inquiries/i1", {"insightlySyncStatus": "success"}),
            any_store.update("serviceAreas/mediation/inquiries/i1", {"mondaySyncStatus": "success"}),
        )

        data = (await any_store.get("serviceAreas/mediation/inquiries/i1")).data
        assert data == {"status": "submitted", "insightlySyncStatus": "success", "mondaySyncStatus": "success"}

    async def test_many_writers_on_one_document(self, any_store):
        await any_store.set("c/doc", {})

        await asyncio.gather(*(any_store.update("c/doc", {f"field{i}": i}) for i in range(3)))

        assert (await any_store.get("c/doc")).data == {f"field{i}": i for i in range(3)}


# ── Batches ─────────────────────────────────────────────────────────────────


class TestBatches:
    async def test_batch_commits_all(self, any_store, now):
        await any_store.set("users/a/tasks/t1", {"status": "pending"})
        batch = any_store.batch()
        batch.set("users/a/tasks/t2", {"status": "pending", "createdAt": SERVER_TIMESTAMP})
        batch.update("users/a/tasks/t1", {"status": "done", "completedAt": SERVER_TIMESTAMP})

        await batch.commit()

        assert (await any_store.get("users/a/tasks/t1")).data == {"status": "done", "completedAt": now}
        assert (await any_store.get("users/a/tasks/t2")).data["createdAt"] == now

    async def test_failed_batch_writes_nothing(self, any_store):
        batch = any_store.batch()
        batch.set("users/a/tasks/t1", {"status": "pending"})
        batch.update("users/a/tasks/missing", {"status": "done"})

        with pytest.raises(DocumentNotFoundError):
            await batch.commit()

        assert await any_store.get("users/a/tasks/t1") is None

    async def test_batch_cannot_commit_twice(self, any_store):
        batch = any_store.batch()
        batch.set("users/a", {"role": "admin"})
        await batch.commit()

        with pytest.raises(RuntimeError):
            await batch.commit()

    async def test_batch_data_is_snapshotted(self, any_store):
        data = {"status": "pending"}
        batch = any_store.batch()
        batch.set("users/a/tasks/t1", data)
        data["status"] = "mutated"

        await batch.commit()

        assert (await any_store.get("users/a/tasks/t1")).data == {"status": "pending"}


# ── SQL Serialization ───────────────────────────────────────────────────────


class TestSqlEncoding:
    def test_datetimes_round_trip(self):
        data = {"at": NOW, "items": [{"due": NOW}], "name": "x"}

        encoded = encode_value(data)

        assert encoded["at"] == {"$ts": NOW.isoformat()}
        assert decode_value(encoded) == data

    def test_naive_datetimes_become_utc(self):
        encoded = encode_value(datetime(2026, 1, 1, 12, 0))

        assert decode_value(encoded) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
