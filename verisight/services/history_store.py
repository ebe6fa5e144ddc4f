"""
history_store.py — Most-recent-first list of completed analyses.

The whole list lives as one JSON document under settings.history_key.
Every write is read-all → prepend → write-all, guarded by an asyncio.Lock
so concurrent analyses cannot interleave and drop each other's records.

Lifecycle:
    store = HistoryStore(KeyValueStore(db))
    await store.load()        # read once at startup
    await store.add(result)
    await store.clear()
    await store.close()       # further writes raise StorageUnavailable

A missing or corrupt document reads as an empty history. Failed writes raise
StorageUnavailable and leave the in-memory list untouched.
"""

import asyncio
import logging
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from verisight.core.config import settings
from verisight.core.errors import StorageUnavailable
from verisight.models.analysis import AnalysisResult
from verisight.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

_HISTORY = TypeAdapter(list[AnalysisResult])

# MongoDB rejects documents over 16 MB; warn well before history gets there.
_DOCUMENT_LIMIT_BYTES = 16 * 1024 * 1024
_SIZE_WARNING_BYTES = int(_DOCUMENT_LIMIT_BYTES * 0.75)


class HistoryStore:
    def __init__(self, kv: KeyValueStore, key: Optional[str] = None):
        self._kv = kv
        self.key = key or settings.history_key
        self._items: list[AnalysisResult] = []
        self._lock = asyncio.Lock()
        self._loaded = False
        self._closed = False

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def load(self) -> list[AnalysisResult]:
        if not self._kv.available:
            logger.warning("Database unavailable; history will be empty and cannot be saved")
        async with self._lock:
            self._items = await self._read()
            self._loaded = True
            self._closed = False
            logger.info("Loaded %d analyses from history", len(self._items))
            return list(self._items)

    async def close(self) -> None:
        async with self._lock:
            self._closed = True
            self._loaded = False
            self._items = []

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def _read(self, strict: bool = False) -> list[AnalysisResult]:
        raw = await self._kv.get(self.key, strict=strict)
        if raw is None:
            return []
        try:
            return _HISTORY.validate_json(raw)
        except ValidationError as exc:
            logger.warning("History under %s is corrupt, treating as empty: %s", self.key, exc)
            return []

    async def results(self) -> list[AnalysisResult]:
        if self._closed:
            return []
        if not self._loaded:
            await self.load()
        return list(self._items)

    async def get(self, analysis_id: str) -> Optional[AnalysisResult]:
        for item in await self.results():
            if item.id == analysis_id:
                return item
        return None

    # ── Writes ────────────────────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageUnavailable(self.key, "history store is closed")

    async def add(self, result: AnalysisResult) -> None:
        async with self._lock:
            self._ensure_open()
            # Strict: a failed read must not be written back as an empty history.
            updated = [result, *await self._read(strict=True)]
            payload = _HISTORY.dump_json(updated).decode("utf-8")
            if len(payload) >= _SIZE_WARNING_BYTES:
                logger.warning(
                    "History under %s is %.1f MB (%d analyses); MongoDB rejects documents "
                    "over %d MB, clear history before it stops saving",
                    self.key, len(payload) / (1024 * 1024), len(updated),
                    _DOCUMENT_LIMIT_BYTES // (1024 * 1024),
                )
            await self._kv.set(self.key, payload)
            self._items = updated
            self._loaded = True
        logger.debug("Saved analysis %s (%d in history)", result.id[:12], len(updated))

    async def clear(self) -> None:
        async with self._lock:
            self._ensure_open()
            await self._kv.delete(self.key)
            self._items = []
            self._loaded = True
        logger.info("History cleared")
