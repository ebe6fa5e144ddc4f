"""
stores.py — FastAPI dependencies that hand routes the shared store objects.

The history store has to be one object per process so that its write lock
actually serialises concurrent analyses. It is created and loaded in the
app lifespan; if a request arrives before that (e.g. tests that skip the
lifespan) it is built lazily on first use.

Tests swap either store with app.dependency_overrides.
"""

from fastapi import Depends, Request

from verisight.core.database import get_db
from verisight.services.credential_store import CredentialStore
from verisight.services.history_store import HistoryStore
from verisight.services.kv_store import KeyValueStore


def get_history_store(request: Request) -> HistoryStore:
    store = getattr(request.app.state, "history_store", None)
    if store is None:
        store = HistoryStore(KeyValueStore(get_db()))
        request.app.state.history_store = store
    return store


def get_credential_store(db=Depends(get_db)) -> CredentialStore:
    return CredentialStore(KeyValueStore(db))
