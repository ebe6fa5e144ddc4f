"""
kv_store.py — Namespaced key → string storage on top of a Motor collection.

Each key is one document in settings.kv_collection:

    { "_id": "verisight_analysis_history", "value": "<json>", "updated_at": ISODate }

Writes replace the whole value (upsert). The history and credential stores
build on this so both get the same failure semantics:

  - db is None (Mongo unreachable)  → get() returns None, set()/delete() raise
  - driver error on read            → logged, get() returns None
  - driver error on write           → StorageUnavailable
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from verisight.core.config import settings
from verisight.core.errors import StorageUnavailable

logger = logging.getLogger(__name__)


class KeyValueStore:
    def __init__(self, db, collection: Optional[str] = None):
        self._db = db
        self._collection = collection or settings.kv_collection

    @property
    def available(self) -> bool:
        return self._db is not None

    def _col(self):
        return self._db[self._collection]

    async def get(self, key: str, strict: bool = False) -> Optional[str]:
        """
        Return the stored string, or None when absent.

        With strict=True an unreachable database or driver error raises
        StorageUnavailable instead of reading as "absent".
        """
        if self._db is None:
            if strict:
                raise StorageUnavailable(key, "database unavailable")
            logger.debug("kv get(%s): database unavailable", key)
            return None
        try:
            doc = await self._col().find_one({"_id": key})
        except PyMongoError as exc:
            if strict:
                raise StorageUnavailable(key, str(exc)) from exc
            logger.warning("kv read failed for %s: %s", key, exc)
            return None
        if not doc:
            return None
        value = doc.get("value")
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        if self._db is None:
            raise StorageUnavailable(key, "database unavailable")
        try:
            await self._col().replace_one(
                {"_id": key},
                {"_id": key, "value": value, "updated_at": datetime.now(tz=timezone.utc)},
                upsert=True,
            )
        except PyMongoError as exc:
            logger.error("kv write failed for %s: %s", key, exc)
            raise StorageUnavailable(key, str(exc)) from exc

    async def set_if_absent(self, key: str, value: str) -> bool:
        """
        Store value only if key has never been written.

        Returns False when the key already exists. Relies on _id uniqueness,
        so two concurrent callers cannot both win.
        """
        if self._db is None:
            raise StorageUnavailable(key, "database unavailable")
        try:
            await self._col().insert_one(
                {"_id": key, "value": value, "updated_at": datetime.now(tz=timezone.utc)}
            )
        except DuplicateKeyError:
            return False
        except PyMongoError as exc:
            logger.error("kv insert failed for %s: %s", key, exc)
            raise StorageUnavailable(key, str(exc)) from exc
        return True

    async def delete(self, key: str) -> None:
        if self._db is None:
            raise StorageUnavailable(key, "database unavailable")
        try:
            await self._col().delete_one({"_id": key})
        except PyMongoError as exc:
            logger.error("kv delete failed for %s: %s", key, exc)
            raise StorageUnavailable(key, str(exc)) from exc
