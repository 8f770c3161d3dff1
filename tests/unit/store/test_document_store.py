"""
Unit tests for the document store backends.

Every test runs against the in-memory store and the SQLite-backed store.
"""

import pytest

from session_ledger.errors import ConflictError, NotFound, StoreUnavailable, ValidationError
from session_ledger.store import (
    Filter,
    MemoryDocumentStore,
    SqlDocumentStore,
    apply_update,
    subcollection,
)


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    """Create a fresh store of each backend."""
    if request.param == "memory":
        backend = MemoryDocumentStore()
    else:
        backend = SqlDocumentStore(f"sqlite:///{tmp_path / 'store.db'}")
    yield backend
    backend.close()


class TestBasicOperations:
    """Tests for get/set/update/delete."""

    def test_get_missing_returns_none(self, store) -> None:
        """Test that a missing document reads as None."""
        assert store.get("sessions", "nope") is None

    def test_set_and_get(self, store) -> None:
        """Test storing and reading back a document."""
        store.set("sessions", "s1", {"title": "Deck", "tags": ["a"]})
        assert store.get("sessions", "s1") == {"title": "Deck", "tags": ["a"]}

    def test_set_overwrites(self, store) -> None:
        """Test that set replaces the whole document."""
        store.set("sessions", "s1", {"title": "Deck", "extra": 1})
        store.set("sessions", "s1", {"title": "Other"})
        assert store.get("sessions", "s1") == {"title": "Other"}

    def test_documents_are_copied_by_value(self, store) -> None:
        """Test that mutating a written or read dict does not reach the store."""
        document = {"messages": [{"content": "hello"}]}
        store.set("sessions", "s1", document)
        document["messages"].append({"content": "leak"})

        read = store.get("sessions", "s1")
        read["messages"].clear()

        assert store.get("sessions", "s1") == {"messages": [{"content": "hello"}]}

    def test_update_merges_fields(self, store) -> None:
        """Test merge-patch semantics of update."""
        store.set("sessions", "s1", {"title": "Deck", "status": "active"})
        store.update("sessions", "s1", {"status": "archived"})
        assert store.get("sessions", "s1") == {"title": "Deck", "status": "archived"}

    def test_update_dotted_keys(self, store) -> None:
        """Test that dotted keys address nested fields."""
        store.set("sessions", "s1", {"settings": {"auto_save": True, "temperature": 0.7}})
        store.update("sessions", "s1", {"settings.temperature": 0.2, "stats.views": 1})

        assert store.get("sessions", "s1") == {
            "settings": {"auto_save": True, "temperature": 0.2},
            "stats": {"views": 1},
        }

    def test_update_missing_raises_not_found(self, store) -> None:
        """Test that updating a missing document raises NotFound."""
        with pytest.raises(NotFound):
            store.update("sessions", "missing", {"title": "x"})

    def test_delete(self, store) -> None:
        """Test deleting reports whether the document existed."""
        store.set("sessions", "s1", {"title": "Deck"})
        assert store.delete("sessions", "s1") is True
        assert store.get("sessions", "s1") is None
        assert store.delete("sessions", "s1") is False

    def test_array_union_appends_missing_values(self, store) -> None:
        """Test that array_union skips values already present."""
        store.set("versions", "v1", {"child_version_ids": ["v2"]})
        store.array_union("versions", "v1", "child_version_ids", ["v2", "v3"])
        assert store.get("versions", "v1")["child_version_ids"] == ["v2", "v3"]

    def test_array_union_creates_field(self, store) -> None:
        """Test array_union on a document without the field."""
        store.set("versions", "v1", {})
        store.array_union("versions", "v1", "child_version_ids", ["v2"])
        assert store.get("versions", "v1") == {"child_version_ids": ["v2"]}


class TestSubcollections:
    """Tests for scoped sub-collection paths."""

    def test_subcollection_path(self) -> None:
        """Test the path format of sub-collections."""
        assert subcollection("sessions", "abc", "versions") == "sessions/abc/versions"

    def test_subcollections_are_isolated(self, store) -> None:
        """Test that versions of different sessions do not mix."""
        path_a = store.subcollection("sessions", "a", "versions")
        path_b = store.subcollection("sessions", "b", "versions")
        store.set(path_a, "v1", {"n": 1})
        store.set(path_b, "v1", {"n": 2})

        assert store.get(path_a, "v1") == {"n": 1}
        assert store.count(path_b) == 1
        assert store.count("sessions") == 0

    def test_delete_collection(self, store) -> None:
        """Test removing a whole collection."""
        path = store.subcollection("sessions", "a", "versions")
        for n in range(3):
            store.set(path, f"v{n + 1}", {"n": n})

        assert store.delete_collection(path) == 3
        assert store.count(path) == 0
        assert store.delete_collection(path) == 0


class TestQuery:
    """Tests for filtering, ordering and paging."""

    @pytest.fixture
    def populated(self, store):
        store.set("sessions", "a", {"owner_id": "u1", "rank": 3, "tags": ["x"], "status": "active"})
        store.set("sessions", "b", {"owner_id": "u1", "rank": 1, "tags": ["y"], "status": "archived"})
        store.set("sessions", "c", {"owner_id": "u2", "rank": 2, "tags": ["x", "z"], "status": "active"})
        store.set("sessions", "d", {"owner_id": None, "tags": [], "status": "active"})
        return store

    def test_equality_filter(self, populated) -> None:
        """Test == filter."""
        docs = populated.query("sessions", [Filter("owner_id", "==", "u1")])
        assert {d["rank"] for d in docs} == {1, 3}

    def test_equality_filter_matches_none(self, populated) -> None:
        """Test that == None selects documents whose field is null."""
        docs = populated.query("sessions", [Filter("owner_id", "==", None)])
        assert len(docs) == 1
        assert docs[0]["tags"] == []

    def test_not_equal_filter(self, populated) -> None:
        """Test != filter."""
        docs = populated.query("sessions", [Filter("status", "!=", "active")])
        assert [d["rank"] for d in docs] == [1]

    def test_range_filters(self, populated) -> None:
        """Test >= and <= filters; documents lacking the field never match."""
        docs = populated.query(
            "sessions", [Filter("rank", ">=", 2), Filter("rank", "<=", 3)]
        )
        assert sorted(d["rank"] for d in docs) == [2, 3]

    def test_array_contains_any(self, populated) -> None:
        """Test array-contains-any filter."""
        docs = populated.query("sessions", [Filter("tags", "array-contains-any", ["z", "y"])])
        assert sorted(d["rank"] for d in docs) == [1, 2]

    def test_order_and_page(self, populated) -> None:
        """Test ordering with limit and offset; missing values sort last."""
        docs = populated.query("sessions", order_by="rank", descending=True)
        assert [d.get("rank") for d in docs] == [3, 2, 1, None]

        page = populated.query("sessions", order_by="rank", limit=2, offset=1)
        assert [d["rank"] for d in page] == [2, 3]

    def test_count_with_filters(self, populated) -> None:
        """Test counting matches."""
        assert populated.count("sessions") == 4
        assert populated.count("sessions", [Filter("status", "==", "active")]) == 3

    def test_invalid_operator_rejected(self) -> None:
        """Test that unsupported operators raise ValidationError."""
        with pytest.raises(ValidationError):
            Filter("rank", ">", 1)


class TestTransactions:
    """Tests for optimistic transactions."""

    def test_commit_applies_all_writes(self, store) -> None:
        """Test that writes become visible together on commit."""
        with store.transaction() as txn:
            txn.set("sessions", "s1", {"total_versions": 1})
            txn.create("sessions/s1/versions", "v1", {"version_number": 1})
            assert store.get("sessions", "s1") is None

        assert store.get("sessions", "s1") == {"total_versions": 1}
        assert store.get("sessions/s1/versions", "v1") == {"version_number": 1}

    def test_reads_see_own_writes(self, store) -> None:
        """Test read-your-writes inside a transaction."""
        store.set("sessions", "s1", {"total_versions": 1})
        with store.transaction() as txn:
            txn.update("sessions", "s1", {"total_versions": 2})
            assert txn.get("sessions", "s1") == {"total_versions": 2}

    def test_conflicting_write_raises(self, store) -> None:
        """Test that a concurrent change to a read document aborts the commit."""
        store.set("sessions", "s1", {"total_versions": 1})

        with pytest.raises(ConflictError):
            with store.transaction() as txn:
                current = txn.get("sessions", "s1")
                store.set("sessions", "s1", {"total_versions": 2})
                txn.set("sessions", "s1", {"total_versions": current["total_versions"] + 1})
                txn.create("sessions/s1/versions", "v2", {"version_number": 2})

        assert store.get("sessions", "s1") == {"total_versions": 2}
        assert store.get("sessions/s1/versions", "v2") is None

    def test_conflict_on_read_of_missing_document(self, store) -> None:
        """Test that a document created after being read as missing conflicts."""
        with pytest.raises(ConflictError):
            with store.transaction() as txn:
                assert txn.get("sessions", "s1") is None
                store.set("sessions", "s1", {"owner": "other"})
                txn.set("sessions", "s1", {"owner": "me"})

        assert store.get("sessions", "s1") == {"owner": "other"}

    def test_create_existing_document_conflicts(self, store) -> None:
        """Test that create fails when the document already exists."""
        store.set("sessions/s1/versions", "v2", {"version_number": 2})

        with pytest.raises(ConflictError):
            with store.transaction() as txn:
                txn.set("sessions", "s1", {"total_versions": 2})
                txn.create("sessions/s1/versions", "v2", {"version_number": 2, "other": True})

        assert store.get("sessions", "s1") is None
        assert store.get("sessions/s1/versions", "v2") == {"version_number": 2}

    def test_exception_in_block_discards_writes(self, store) -> None:
        """Test that an error inside the block commits nothing."""
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.set("sessions", "s1", {"title": "Deck"})
                raise RuntimeError("boom")

        assert store.get("sessions", "s1") is None

    def test_read_only_transaction_never_conflicts(self, store) -> None:
        """Test that a transaction without writes does not verify reads."""
        store.set("sessions", "s1", {"n": 1})
        with store.transaction() as txn:
            txn.get("sessions", "s1")
            store.set("sessions", "s1", {"n": 2})


class TestClosedStore:
    """Tests for store availability."""

    def test_operations_after_close_raise(self, store) -> None:
        """Test that a closed store raises StoreUnavailable."""
        store.close()
        with pytest.raises(StoreUnavailable):
            store.get("sessions", "s1")


class TestApplyUpdate:
    """Tests for the merge-patch helper."""

    def test_does_not_mutate_input(self) -> None:
        """Test that apply_update returns a new document."""
        original = {"settings": {"a": 1}}
        merged = apply_update(original, {"settings.b": 2})

        assert original == {"settings": {"a": 1}}
        assert merged == {"settings": {"a": 1, "b": 2}}

    def test_replaces_non_dict_intermediate(self) -> None:
        """Test that a scalar on a dotted path is replaced by a dict."""
        assert apply_update({"a": 5}, {"a.b": 1}) == {"a": {"b": 1}}
