"""
test_history_store.py — Persistence of the analysis history over the fake
Mongo collection, including outages and concurrent writers.
"""

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from verisight.core.config import settings
from verisight.core.errors import StorageUnavailable
from verisight.models.analysis import (
    AnalysisResult,
    CognitiveExplanation,
    DecisionResult,
    DetectionFeatures,
    DetectionResult,
)
from verisight.services.history_store import HistoryStore
from verisight.services.kv_store import KeyValueStore


def _result(n: int) -> AnalysisResult:
    return AnalysisResult(
        id=f"{n:064x}",
        timestamp=datetime(2026, 3, 1, 12, 0, n % 60, tzinfo=timezone.utc),
        media_type="video",
        file_name=f"clip-{n}.mp4",
        file_size_bytes=1000 + n,
        detection=DetectionResult(
            media_type="video",
            frame_count=30,
            inference_time_ms=5,
            raw_scores=[0.1, 0.2],
            features=DetectionFeatures(lip_sync_mismatch=False, gan_artifacts=True, compression_anomalies=False),
        ),
        decision=DecisionResult(
            authenticity=80.0,
            classification="REAL",
            risk_level="MEDIUM",
            confidence=70.0,
            deepfake_probability=20.0,
            processing_time_ms=1,
        ),
        explanation=CognitiveExplanation(
            summary="ok",
            key_findings=["a", "b", "c", "d"],
            artifacts=["GAN-generated artifacts detected (eye blinking, texture anomalies)"],
            recommendations=["x", "y"],
        ),
    )


@pytest.fixture()
def store(fake_db):
    return HistoryStore(KeyValueStore(fake_db))


def _stored_doc(fake_db):
    return fake_db[settings.kv_collection].docs.get(settings.history_key)


# ── Reads and writes ──────────────────────────────────────────────────────────

class TestHistory:

    async def test_starts_empty(self, store):
        assert await store.load() == []
        assert await store.results() == []

    async def test_most_recent_first(self, store):
        for n in range(5):
            await store.add(_result(n))
        assert [r.id for r in await store.results()] == [_result(n).id for n in (4, 3, 2, 1, 0)]

    async def test_persisted_across_instances(self, store, fake_db):
        await store.add(_result(1))
        await store.add(_result(2))

        reopened = HistoryStore(KeyValueStore(fake_db))
        loaded = await reopened.load()
        assert loaded == [_result(2), _result(1)]

    async def test_round_trip_preserves_every_field(self, store, fake_db):
        original = _result(7)
        await store.add(original)
        [loaded] = await HistoryStore(KeyValueStore(fake_db)).results()
        assert loaded == original
        assert loaded.detection.features.frequency_anomalies is None

    async def test_stored_as_single_json_string(self, store, fake_db):
        await store.add(_result(1))
        doc = _stored_doc(fake_db)
        assert isinstance(doc["value"], str)
        assert doc["value"].startswith("[")

    async def test_get_by_id(self, store):
        await store.add(_result(3))
        assert (await store.get(_result(3).id)).file_name == "clip-3.mp4"
        assert await store.get("nope") is None

    async def test_clear(self, store, fake_db):
        await store.add(_result(1))
        await store.clear()
        assert await store.results() == []
        assert _stored_doc(fake_db) is None
        assert await HistoryStore(KeyValueStore(fake_db)).load() == []

    async def test_corrupt_document_reads_as_empty(self, store, fake_db):
        fake_db[settings.kv_collection].docs[settings.history_key] = {
            "_id": settings.history_key,
            "value": "{not json",
        }
        assert await store.load() == []

    async def test_add_over_corrupt_document_starts_fresh(self, store, fake_db):
        fake_db[settings.kv_collection].docs[settings.history_key] = {
            "_id": settings.history_key,
            "value": '[{"id": 1}]',
        }
        await store.add(_result(1))
        assert await HistoryStore(KeyValueStore(fake_db)).load() == [_result(1)]


# ── Document size ─────────────────────────────────────────────────────────────

class TestDocumentSize:

    async def test_warns_when_history_nears_document_limit(self, store, monkeypatch, caplog):
        import verisight.services.history_store as history_module

        monkeypatch.setattr(history_module, "_SIZE_WARNING_BYTES", 1)
        with caplog.at_level(logging.WARNING, logger="verisight.services.history_store"):
            await store.add(_result(1))

        assert any("MongoDB rejects documents" in r.getMessage() for r in caplog.records)
        assert len(await store.results()) == 1

    async def test_no_warning_for_small_history(self, store, caplog):
        with caplog.at_level(logging.WARNING, logger="verisight.services.history_store"):
            await store.add(_result(1))

        assert not any("MongoDB rejects documents" in r.getMessage() for r in caplog.records)


# ── Concurrency ───────────────────────────────────────────────────────────────

class TestConcurrentWrites:

    async def test_concurrent_adds_are_all_kept(self, store, fake_db):
        await asyncio.gather(*(store.add(_result(n)) for n in range(20)))
        saved = await HistoryStore(KeyValueStore(fake_db)).load()
        assert len(saved) == 20
        assert {r.id for r in saved} == {_result(n).id for n in range(20)}


# ── Outages ───────────────────────────────────────────────────────────────────

class TestUnavailable:

    async def test_no_database_reads_empty(self):
        store = HistoryStore(KeyValueStore(None))
        assert await store.load() == []

    async def test_no_database_write_raises(self):
        store = HistoryStore(KeyValueStore(None))
        with pytest.raises(StorageUnavailable):
            await store.add(_result(1))
        assert await store.results() == []

    async def test_driver_errors(self, broken_db):
        store = HistoryStore(KeyValueStore(broken_db))
        assert await store.load() == []
        with pytest.raises(StorageUnavailable):
            await store.add(_result(1))
        with pytest.raises(StorageUnavailable):
            await store.clear()
        assert await store.results() == []

    async def test_failed_write_leaves_cache_untouched(self, store, fake_db, monkeypatch):
        await store.add(_result(1))

        async def boom(key, value):
            raise StorageUnavailable(key, "disk full")

        monkeypatch.setattr(store._kv, "set", boom)
        with pytest.raises(StorageUnavailable):
            await store.add(_result(2))
        assert [r.id for r in await store.results()] == [_result(1).id]


# ── Lifecycle ─────────────────────────────────────────────────────────────────

class TestClose:

    async def test_closed_store_rejects_writes(self, store):
        await store.load()
        await store.close()
        with pytest.raises(StorageUnavailable):
            await store.add(_result(1))
        with pytest.raises(StorageUnavailable):
            await store.clear()

    async def test_closed_store_reads_empty(self, store):
        await store.add(_result(1))
        await store.close()
        assert await store.results() == []

    async def test_load_reopens(self, store):
        await store.add(_result(1))
        await store.close()
        assert len(await store.load()) == 1
        await store.add(_result(2))
        assert len(await store.results()) == 2
