"""Tests for the result store backends."""
import threading
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import firestore
from google.api_core import exceptions as gexc

from cinematch.errors import StoreError
from cinematch.services.store import FirestoreResultStore, MemoryResultStore, make_store


class TestMemoryStore:
    def test_create_if_absent_reports_creation_once(self, store, clock):
        assert store.create_if_absent("k", {"identityId": "u1"}) is True
        assert store.create_if_absent("k", {"identityId": "other"}) is False
        doc = store.get_result("k")
        assert doc["identityId"] == "u1"
        assert doc["serverTimestamp"] == clock.now
        assert store.result_writes == 1

    def test_documents_are_copied(self, store):
        original = {"identityId": "u1", "answers": ["action"]}
        store.create_if_absent("k", original)
        original["answers"].append("horror")
        fetched = store.get_result("k")
        fetched["answers"].append("drama")
        assert store.get_result("k")["answers"] == ["action"]

    def test_missing_documents_are_none(self, store):
        assert store.get_result("nope") is None
        assert store.get_preferences("nope") is None

    def test_preferences_merge(self, store):
        store.upsert_preferences("u1", {"displayName": "Ada", "topCategories": [{"id": "action"}]})
        store.upsert_preferences("u1", {"topCategories": [{"id": "horror"}]})
        prefs = store.get_preferences("u1")
        assert prefs["displayName"] == "Ada"
        assert prefs["topCategories"] == [{"id": "horror"}]
        assert "updatedAt" in prefs

    def test_queries_are_newest_first_and_limited(self, store, clock):
        for i, identity in enumerate(["u1", "u2", "u1", "u3"]):
            store.create_if_absent(f"k{i}", {"identityId": identity})
            clock.now = clock.now + timedelta(minutes=1)
        assert [k for k, _ in store.recent_results(3)] == ["k3", "k2", "k1"]
        assert [k for k, _ in store.results_for_identity("u1", 10)] == ["k2", "k0"]
        assert store.results_for_identity("nobody", 10) == []

    def test_concurrent_create_has_one_winner(self, store):
        barrier = threading.Barrier(10)
        wins = []

        def worker():
            barrier.wait()
            wins.append(store.create_if_absent("same", {"identityId": "u1"}))

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert wins.count(True) == 1
        assert store.result_writes == 1


class TestMakeStore:
    def test_memory(self):
        assert isinstance(make_store({"STORE_BACKEND": "memory"}), MemoryResultStore)

    def test_firestore_is_lazy(self):
        store = make_store({"STORE_BACKEND": "Firestore", "RESULTS_COLLECTION": "quiz_results"})
        assert isinstance(store, FirestoreResultStore)
        assert store.results_collection == "quiz_results"
        assert store._db is None

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            make_store({"STORE_BACKEND": "redis"})


def _snapshot(exists, data=None):
    snap = MagicMock()
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


class TestFirestoreStore:
    def test_get_result(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.get.return_value = _snapshot(True, {"identityId": "u1"})
        store = FirestoreResultStore(db=db)
        assert store.get_result("k") == {"identityId": "u1"}
        db.collection.assert_called_with("results")
        db.collection.return_value.document.assert_called_with("k")

    def test_get_missing_result(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.get.return_value = _snapshot(False)
        assert FirestoreResultStore(db=db).get_result("k") is None

    def test_read_errors_become_store_errors(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.get.side_effect = gexc.ServiceUnavailable("down")
        with pytest.raises(StoreError):
            FirestoreResultStore(db=db).get_result("k")

    def test_preferences_are_merged_with_server_timestamp(self):
        db = MagicMock()
        store = FirestoreResultStore(db=db, preferences_collection="prefs")
        store.upsert_preferences("u1", {"displayName": "Ada"})
        db.collection.assert_called_with("prefs")
        ref = db.collection.return_value.document.return_value
        args, kwargs = ref.set.call_args
        assert args[0]["displayName"] == "Ada"
        assert "updatedAt" in args[0]
        assert kwargs == {"merge": True}

    def test_preference_write_errors_become_store_errors(self):
        db = MagicMock()
        db.collection.return_value.document.return_value.set.side_effect = gexc.DeadlineExceeded("slow")
        with pytest.raises(StoreError):
            FirestoreResultStore(db=db).upsert_preferences("u1", {})

    def test_query_results_are_rows(self):
        db = MagicMock()
        doc = MagicMock()
        doc.id = "k1"
        doc.to_dict.return_value = {"identityId": "u1"}
        query = db.collection.return_value.where.return_value.order_by.return_value.limit.return_value
        query.stream.return_value = [doc]
        rows = FirestoreResultStore(db=db).results_for_identity("u1", 14)
        assert rows == [("k1", {"identityId": "u1"})]
        db.collection.return_value.where.assert_called_with("identityId", "==", "u1")
        db.collection.return_value.where.return_value.order_by.return_value.limit.assert_called_with(14)

    def test_query_errors_become_store_errors(self):
        db = MagicMock()
        query = db.collection.return_value.order_by.return_value.limit.return_value
        query.stream.side_effect = gexc.ServiceUnavailable("down")
        with pytest.raises(StoreError):
            FirestoreResultStore(db=db).recent_results(24)


@pytest.fixture
def plain_transactions():
    # Run the transactional body directly against the mocked transaction.
    with patch("cinematch.services.store.firestore.transactional", new=lambda fn: fn):
        yield


@pytest.mark.usefixtures("plain_transactions")
class TestFirestoreCreateIfAbsent:
    def _db(self, snapshot):
        db = MagicMock()
        ref = db.collection.return_value.document.return_value
        ref.get.return_value = snapshot
        return db, ref, db.transaction.return_value

    def test_new_document_is_created_with_server_timestamp(self):
        db, ref, transaction = self._db(_snapshot(False))
        created = FirestoreResultStore(db=db).create_if_absent("k", {"identityId": "u1"})
        assert created is True
        ref.get.assert_called_once_with(transaction=transaction)
        (target, payload), _ = transaction.create.call_args
        assert target is ref
        assert payload["identityId"] == "u1"
        assert payload["serverTimestamp"] is firestore.SERVER_TIMESTAMP

    def test_caller_document_is_not_mutated(self):
        db, _, _ = self._db(_snapshot(False))
        document = {"identityId": "u1"}
        FirestoreResultStore(db=db).create_if_absent("k", document)
        assert document == {"identityId": "u1"}

    def test_existing_document_is_left_alone(self):
        db, _, transaction = self._db(_snapshot(True, {"identityId": "u1"}))
        assert FirestoreResultStore(db=db).create_if_absent("k", {"identityId": "u1"}) is False
        transaction.create.assert_not_called()

    def test_losing_the_commit_race_reports_existing(self):
        db, _, transaction = self._db(_snapshot(False))
        transaction.create.side_effect = gexc.AlreadyExists("results/k")
        assert FirestoreResultStore(db=db).create_if_absent("k", {"identityId": "u1"}) is False

    def test_api_errors_become_store_errors(self):
        db, ref, _ = self._db(None)
        ref.get.side_effect = gexc.ServiceUnavailable("down")
        with pytest.raises(StoreError):
            FirestoreResultStore(db=db).create_if_absent("k", {"identityId": "u1"})
