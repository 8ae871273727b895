# services/store.py
"""
Result store: the `results` and `preferences` collections.

Two backends share one interface:
  - FirestoreResultStore: production, Cloud Firestore via firebase_admin
  - MemoryResultStore: local development (STORE_BACKEND=memory) and tests

The correctness-critical operation is `create_if_absent`: concurrent calls
with the same key produce exactly one document, and every caller learns
whether it was the one that created it.
"""

from __future__ import annotations
import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as gexc

from cinematch.errors import StoreError

logger = logging.getLogger(__name__)

RawRow = Tuple[str, Dict[str, Any]]


class ResultStore:
    """Interface shared by the store backends."""

    def create_if_absent(self, key: str, document: Dict[str, Any]) -> bool:
        """Atomically create results/<key>. Returns False if it already existed."""
        raise NotImplementedError

    def get_result(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def upsert_preferences(self, identity_id: str, document: Dict[str, Any]) -> None:
        """Merge-upsert preferences/<identity_id>. Last write wins."""
        raise NotImplementedError

    def get_preferences(self, identity_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def recent_results(self, limit: int) -> List[RawRow]:
        """Newest results across all identities."""
        raise NotImplementedError

    def results_for_identity(self, identity_id: str, limit: int) -> List[RawRow]:
        """Newest results for one identity."""
        raise NotImplementedError


# ============================================================================
# Firestore
# ============================================================================

class FirestoreResultStore(ResultStore):
    def __init__(self, db=None, results_collection: str = "results", preferences_collection: str = "preferences"):
        self._db = db
        self.results_collection = results_collection
        self.preferences_collection = preferences_collection

    @property
    def db(self):
        if self._db is None:
            from cinematch.services.firebase import get_db
            self._db = get_db()
        return self._db

    def _result_ref(self, key: str):
        return self.db.collection(self.results_collection).document(key)

    def _pref_ref(self, identity_id: str):
        return self.db.collection(self.preferences_collection).document(identity_id)

    def create_if_absent(self, key: str, document: Dict[str, Any]) -> bool:
        ref = self._result_ref(key)

        @firestore.transactional
        def create_in_transaction(transaction) -> bool:
            snap = ref.get(transaction=transaction)
            if snap.exists:
                return False
            payload = dict(document)
            payload["serverTimestamp"] = firestore.SERVER_TIMESTAMP
            transaction.create(ref, payload)
            return True

        try:
            return create_in_transaction(self.db.transaction())
        except gexc.AlreadyExists:
            # Lost the race on commit; the winner's document stands.
            return False
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to write result {key}: {e}") from e

    def get_result(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            snap = self._result_ref(key).get()
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to read result {key}: {e}") from e
        return (snap.to_dict() or {}) if snap.exists else None

    def upsert_preferences(self, identity_id: str, document: Dict[str, Any]) -> None:
        payload = dict(document)
        payload["updatedAt"] = firestore.SERVER_TIMESTAMP
        try:
            self._pref_ref(identity_id).set(payload, merge=True)
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to update preferences for {identity_id}: {e}") from e

    def get_preferences(self, identity_id: str) -> Optional[Dict[str, Any]]:
        try:
            snap = self._pref_ref(identity_id).get()
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to read preferences for {identity_id}: {e}") from e
        return (snap.to_dict() or {}) if snap.exists else None

    def recent_results(self, limit: int) -> List[RawRow]:
        q = (self.db.collection(self.results_collection)
                .order_by("serverTimestamp", direction=firestore.Query.DESCENDING)
                .limit(limit))
        return self._stream(q)

    def results_for_identity(self, identity_id: str, limit: int) -> List[RawRow]:
        q = (self.db.collection(self.results_collection)
                .where("identityId", "==", identity_id)
                .order_by("serverTimestamp", direction=firestore.Query.DESCENDING)
                .limit(limit))
        return self._stream(q)

    @staticmethod
    def _stream(query) -> List[RawRow]:
        try:
            return [(d.id, d.to_dict() or {}) for d in query.stream()]
        except gexc.GoogleAPIError as e:
            raise StoreError(f"Failed to query results: {e}") from e


# ============================================================================
# In-memory
# ============================================================================

class MemoryResultStore(ResultStore):
    """Process-local store. A single lock makes create_if_absent atomic."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self.results: Dict[str, Dict[str, Any]] = {}
        self.preferences: Dict[str, Dict[str, Any]] = {}
        self.result_writes = 0

    def create_if_absent(self, key: str, document: Dict[str, Any]) -> bool:
        with self._lock:
            if key in self.results:
                return False
            payload = copy.deepcopy(document)
            payload["serverTimestamp"] = self._clock()
            self.results[key] = payload
            self.result_writes += 1
            return True

    def get_result(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self.results.get(key)
            return copy.deepcopy(doc) if doc is not None else None

    def upsert_preferences(self, identity_id: str, document: Dict[str, Any]) -> None:
        with self._lock:
            current = self.preferences.setdefault(identity_id, {})
            current.update(copy.deepcopy(document))
            current["updatedAt"] = self._clock()

    def get_preferences(self, identity_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self.preferences.get(identity_id)
            return copy.deepcopy(doc) if doc is not None else None

    def _newest_first(self, rows: List[RawRow]) -> List[RawRow]:
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(rows, key=lambda r: (r[1].get("serverTimestamp") or epoch, r[0]), reverse=True)

    def recent_results(self, limit: int) -> List[RawRow]:
        with self._lock:
            rows = [(k, copy.deepcopy(v)) for k, v in self.results.items()]
        return self._newest_first(rows)[:limit]

    def results_for_identity(self, identity_id: str, limit: int) -> List[RawRow]:
        with self._lock:
            rows = [(k, copy.deepcopy(v)) for k, v in self.results.items()
                    if v.get("identityId") == identity_id]
        return self._newest_first(rows)[:limit]


def make_store(config) -> ResultStore:
    """Build the store selected by STORE_BACKEND."""
    backend = (config.get("STORE_BACKEND") or "firestore").lower()
    if backend == "memory":
        logger.warning("Using in-memory result store; results are lost on restart")
        return MemoryResultStore()
    if backend == "firestore":
        return FirestoreResultStore(
            results_collection=config.get("RESULTS_COLLECTION", "results"),
            preferences_collection=config.get("PREFERENCES_COLLECTION", "preferences"),
        )
    raise ValueError(f"Unknown STORE_BACKEND: {backend!r}")
