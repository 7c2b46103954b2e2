"""Tests for DocumentStore."""

import fcntl
import json
import threading

import pytest

from orderflow.document_store import SCHEMA_VERSION, DocumentStore, Filter, run_query
from orderflow.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    InvalidFieldError,
    InvalidSchemaVersionError,
    StoreBusyError,
)


class TestDocumentStore:
    """Tests for DocumentStore class."""

    def test_get_missing_returns_none(self, temp_dir):
        store = DocumentStore(temp_dir)

        assert store.get("things", "nope") is None
        assert not store.store_path.exists()

    def test_insert_and_get(self, temp_dir):
        store = DocumentStore(temp_dir)
        doc_id = store.insert("things", {"name": "a"}, "t1")

        assert doc_id == "t1"
        assert store.get("things", "t1") == {"name": "a", "id": "t1"}

    def test_insert_generates_id(self, temp_dir):
        store = DocumentStore(temp_dir)
        doc_id = store.insert("things", {"name": "a"})

        assert doc_id
        assert store.get("things", doc_id)["name"] == "a"

    def test_insert_duplicate_raises(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.insert("things", {"name": "a"}, "t1")

        with pytest.raises(DocumentExistsError):
            store.insert("things", {"name": "b"}, "t1")

    def test_update_merges_fields(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.insert("things", {"name": "a", "count": 1}, "t1")

        doc = store.update("things", "t1", {"count": 2})

        assert doc == {"name": "a", "count": 2, "id": "t1"}

    def test_update_missing_raises(self, temp_dir):
        store = DocumentStore(temp_dir)

        with pytest.raises(DocumentNotFoundError):
            store.update("things", "nope", {"count": 2})

    def test_delete(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.insert("things", {"name": "a"}, "t1")

        assert store.delete("things", "t1") is True
        assert store.delete("things", "t1") is False
        assert store.get("things", "t1") is None

    def test_increment(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.insert("things", {"count": 1}, "t1")

        assert store.increment("things", "t1", "count", 4) == 5
        assert store.get("things", "t1")["count"] == 5

    def test_returned_documents_are_copies(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.insert("things", {"tags": ["a"]}, "t1")

        doc = store.get("things", "t1")
        doc["tags"].append("b")

        assert store.get("things", "t1")["tags"] == ["a"]

    def test_file_has_schema_version(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.insert("things", {"name": "a"}, "t1")

        data = json.loads(store.store_path.read_text())
        assert data["schema_version"] == SCHEMA_VERSION
        assert data["collections"]["things"]["t1"]["name"] == "a"

    def test_unsupported_schema_version_raises(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.store_path.write_text(json.dumps({"schema_version": 99, "collections": {}}))

        with pytest.raises(InvalidSchemaVersionError):
            store.get("things", "t1")


class TestTransaction:
    def test_commits_on_success(self, temp_dir):
        store = DocumentStore(temp_dir)
        with store.transaction() as tx:
            tx.insert("a", {"v": 1}, "x")
            tx.insert("b", {"v": 2}, "y")

        assert store.get("a", "x")["v"] == 1
        assert store.get("b", "y")["v"] == 2

    def test_rolls_back_on_exception(self, temp_dir):
        store = DocumentStore(temp_dir)
        store.insert("a", {"v": 1}, "x")

        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.update("a", "x", {"v": 2})
                tx.insert("b", {"v": 3}, "y")
                raise RuntimeError("boom")

        assert store.get("a", "x")["v"] == 1
        assert store.get("b", "y") is None

    def test_reads_see_staged_writes(self, temp_dir):
        store = DocumentStore(temp_dir)
        with store.transaction() as tx:
            tx.insert("a", {"v": 1}, "x")
            assert tx.get("a", "x")["v"] == 1
            assert store.get("a", "x") is None

    def test_read_only_transaction_does_not_write(self, temp_dir):
        store = DocumentStore(temp_dir)
        with store.transaction() as tx:
            tx.get("a", "x")

        assert not store.store_path.exists()

    def test_require_missing_raises(self, temp_dir):
        store = DocumentStore(temp_dir)
        with store.transaction() as tx:
            with pytest.raises(DocumentNotFoundError):
                tx.require("a", "x")

    def test_concurrent_increments_are_serialized(self, temp_dir):
        store = DocumentStore(temp_dir, lock_attempts=500, lock_backoff=0.001)
        store.insert("counters", {"n": 0}, "c")

        def work():
            for _ in range(10):
                with store.transaction() as tx:
                    doc = tx.get("counters", "c")
                    tx.update("counters", "c", {"n": doc["n"] + 1})

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get("counters", "c")["n"] == 40

    def test_lock_exhaustion_raises_store_busy(self, temp_dir):
        store = DocumentStore(temp_dir, lock_attempts=3, lock_backoff=0.001)
        temp_dir.mkdir(parents=True, exist_ok=True)

        with open(store.lock_path, "w") as holder:
            fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
            try:
                with pytest.raises(StoreBusyError) as exc_info:
                    store.insert("a", {"v": 1}, "x")
            finally:
                fcntl.flock(holder.fileno(), fcntl.LOCK_UN)

        assert exc_info.value.attempts == 3
        assert store.get("a", "x") is None


class TestQuery:
    @pytest.fixture
    def docs(self):
        return {
            "a": {"id": "a", "status": "pending", "total": 30, "product": {"seller_id": "s1"}},
            "b": {"id": "b", "status": "delivered", "total": 10, "product": {"seller_id": "s2"}},
            "c": {"id": "c", "status": "pending", "total": 20, "product": {"seller_id": "s1"}},
            "d": {"id": "d", "status": "cancelled", "total": 20, "product": {"seller_id": "s2"}},
        }

    def test_equality_filter(self, docs):
        page = run_query("orders", docs, [Filter("status", "==", "pending")])
        assert sorted(d["id"] for d in page.documents) == ["a", "c"]

    def test_dotted_path_filter(self, docs):
        page = run_query("orders", docs, [Filter("product.seller_id", "==", "s2")])
        assert sorted(d["id"] for d in page.documents) == ["b", "d"]

    def test_range_and_in_filters(self, docs):
        page = run_query(
            "orders",
            docs,
            [Filter("total", ">=", 20), Filter("status", "in", ["pending", "cancelled"])],
        )
        assert sorted(d["id"] for d in page.documents) == ["a", "c", "d"]

    def test_missing_field_never_matches_range(self, docs):
        page = run_query("orders", docs, [Filter("weight", ">", 0)])
        assert page.documents == []

    def test_order_by_breaks_ties_on_id(self, docs):
        page = run_query("orders", docs, order_by="total")
        assert [d["id"] for d in page.documents] == ["b", "c", "d", "a"]

        page = run_query("orders", docs, order_by="total", descending=True)
        assert [d["id"] for d in page.documents] == ["a", "d", "c", "b"]

    def test_cursor_paging(self, docs):
        first = run_query("orders", docs, order_by="total", limit=2)
        assert [d["id"] for d in first.documents] == ["b", "c"]
        assert first.has_more is True
        assert first.next_cursor == "c"

        second = run_query(
            "orders", docs, order_by="total", limit=2, start_after=first.next_cursor
        )
        assert [d["id"] for d in second.documents] == ["d", "a"]
        assert second.has_more is False
        assert second.next_cursor is None

    def test_unknown_cursor_raises(self, docs):
        with pytest.raises(DocumentNotFoundError):
            run_query("orders", docs, start_after="zzz")

    def test_unknown_operator_raises(self):
        with pytest.raises(InvalidFieldError):
            Filter("status", "~=", "x")
