"""
Unit tests for the version ledger.

Tests numbering validation, snapshot isolation, parent linkage,
retention and listing.
"""

import pytest

from session_ledger.config import LedgerConfig
from session_ledger.errors import ConflictError, NotFound, ValidationError, VersionLimitExceeded
from session_ledger.store import MemoryDocumentStore
from session_ledger.versioning import (
    ChangeRecord,
    ChangeType,
    Message,
    Snapshot,
    VersionLedger,
)


@pytest.fixture
def store():
    backend = MemoryDocumentStore()
    yield backend
    backend.close()


@pytest.fixture
def ledger(store):
    return VersionLedger(store)


def add_chain(ledger: VersionLedger, session_id: str, count: int) -> None:
    """Create versions v1..v<count> with one more message each."""
    messages = []
    for n in range(1, count + 1):
        messages.append(Message(content=f"message {n}"))
        ledger.create_version(
            session_id,
            n,
            ChangeType.CREATION if n == 1 else ChangeType.MESSAGE_ADDED,
            f"Version {n}",
            Snapshot(messages=messages),
            "user",
            parent_version_id=None if n == 1 else f"v{n - 1}",
        )


class TestCreateVersion:
    """Tests for VersionLedger.create_version."""

    def test_first_version(self, ledger) -> None:
        """Test creating version 1."""
        version = ledger.create_version(
            "s1",
            1,
            ChangeType.CREATION,
            "Initial session creation",
            Snapshot(messages=[Message(content="hello")]),
            "user",
            parent_version_id=None,
            changes=[ChangeRecord(type="creation")],
        )

        assert version.version_id == "v1"
        assert version.branch_name == "main"
        assert version.stats.message_count == 1
        assert version.stats.change_count == 1
        assert ledger.get_version("s1", "v1") == version

    def test_default_description(self, ledger) -> None:
        """Test that an empty description becomes 'Version N'."""
        version = ledger.create_version(
            "s1", 1, ChangeType.CREATION, "", Snapshot(), "user", parent_version_id=None
        )
        assert version.description == "Version 1"

    def test_snapshot_is_copied(self, ledger) -> None:
        """Test that later edits to the source snapshot do not reach the version."""
        snapshot = Snapshot(messages=[Message(content="hello")], metadata={"k": [1]})
        ledger.create_version(
            "s1", 1, ChangeType.CREATION, "", snapshot, "user", parent_version_id=None
        )

        snapshot.messages.append(Message(content="later"))
        snapshot.metadata["k"].append(2)

        stored = ledger.get_version("s1", "v1")
        assert len(stored.data.messages) == 1
        assert stored.data.metadata == {"k": [1]}

    def test_version_one_must_not_have_parent(self, ledger) -> None:
        """Test numbering validation for version 1."""
        with pytest.raises(ValidationError):
            ledger.create_version(
                "s1", 1, ChangeType.CREATION, "", Snapshot(), "user", parent_version_id="v0"
            )

    def test_later_version_requires_parent(self, ledger) -> None:
        """Test numbering validation for versions after 1."""
        add_chain(ledger, "s1", 1)
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_version(
                "s1", 2, ChangeType.MESSAGE_ADDED, "", Snapshot(), "user", parent_version_id=None
            )
        assert exc_info.value.operation == "create_version"

    def test_non_positive_number_rejected(self, ledger) -> None:
        """Test that version numbers start at 1."""
        with pytest.raises(ValidationError):
            ledger.create_version(
                "s1", 0, ChangeType.CREATION, "", Snapshot(), "user", parent_version_id=None
            )

    def test_missing_parent_rejected(self, ledger) -> None:
        """Test that the parent version must exist."""
        with pytest.raises(ValidationError):
            ledger.create_version(
                "s1", 2, ChangeType.MESSAGE_ADDED, "", Snapshot(), "user", parent_version_id="v1"
            )

    def test_duplicate_version_conflicts(self, ledger) -> None:
        """Test that an existing version id is never overwritten."""
        add_chain(ledger, "s1", 2)
        with pytest.raises(ConflictError):
            ledger.create_version(
                "s1", 2, ChangeType.MESSAGE_ADDED, "dup", Snapshot(), "user", parent_version_id="v1"
            )
        assert ledger.get_version("s1", "v2").description == "Version 2"

    def test_parent_links_child(self, ledger) -> None:
        """Test that creating a child extends the parent's child list."""
        add_chain(ledger, "s1", 3)

        assert ledger.get_version("s1", "v1").child_version_ids == ["v2"]
        assert ledger.get_version("s1", "v2").child_version_ids == ["v3"]
        assert ledger.get_version("s1", "v3").child_version_ids == []
        assert ledger.list_children("s1", "v1") == ["v2"]

    def test_joins_caller_transaction(self, ledger, store) -> None:
        """Test that a staged version is only written when the caller commits."""
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                ledger.create_version(
                    "s1", 1, ChangeType.CREATION, "", Snapshot(), "user",
                    parent_version_id=None, txn=txn,
                )
                raise RuntimeError("abort")

        assert ledger.count_versions("s1") == 0


class TestRetention:
    """Tests for the version cap."""

    def test_cap_warns_by_default(self, store) -> None:
        """Test that exceeding the cap still creates the version."""
        ledger = VersionLedger(store, LedgerConfig(max_versions=2))
        add_chain(ledger, "s1", 3)
        assert ledger.count_versions("s1") == 3

    def test_cap_can_be_enforced(self, store) -> None:
        """Test rejection once the cap is reached."""
        ledger = VersionLedger(store, LedgerConfig(max_versions=2, enforce_max_versions=True))
        add_chain(ledger, "s1", 2)

        with pytest.raises(VersionLimitExceeded):
            ledger.create_version(
                "s1", 3, ChangeType.MESSAGE_ADDED, "", Snapshot(), "user", parent_version_id="v2"
            )
        assert ledger.count_versions("s1") == 2


class TestQueries:
    """Tests for retrieval and listing."""

    def test_get_missing_version(self, ledger) -> None:
        """Test NotFound for an unknown version."""
        with pytest.raises(NotFound) as exc_info:
            ledger.get_version("s1", "v9")
        assert exc_info.value.version_id == "v9"
        assert "v9" in str(exc_info.value)

    def test_list_versions_descending(self, ledger) -> None:
        """Test newest-first listing with numeric ordering."""
        add_chain(ledger, "s1", 11)

        summaries = ledger.list_versions("s1")

        assert [s.version_number for s in summaries] == list(range(11, 0, -1))
        assert not hasattr(summaries[0], "data")

    def test_list_versions_ascending_with_limit(self, ledger) -> None:
        """Test oldest-first listing and limit."""
        add_chain(ledger, "s1", 5)
        summaries = ledger.list_versions("s1", order="asc", limit=2)
        assert [s.version_id for s in summaries] == ["v1", "v2"]

    def test_list_versions_invalid_order(self, ledger) -> None:
        """Test that unknown orders are rejected."""
        with pytest.raises(ValidationError):
            ledger.list_versions("s1", order="sideways")

    @pytest.mark.parametrize("limit", [0, -3])
    def test_list_versions_rejects_non_positive_limit(self, ledger, limit) -> None:
        """Test that a limit below 1 is rejected instead of defaulted."""
        add_chain(ledger, "s1", 2)
        with pytest.raises(ValidationError) as exc_info:
            ledger.list_versions("s1", limit=limit)
        assert exc_info.value.operation == "list_versions"

    def test_sessions_are_isolated(self, ledger) -> None:
        """Test that versions of different sessions do not mix."""
        add_chain(ledger, "a", 2)
        add_chain(ledger, "b", 1)
        assert ledger.count_versions("a") == 2
        assert ledger.count_versions("b") == 1

    def test_delete_versions(self, ledger) -> None:
        """Test removing a session's history."""
        add_chain(ledger, "s1", 3)
        assert ledger.delete_versions("s1") == 3
        assert ledger.list_versions("s1") == []
