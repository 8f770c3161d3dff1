"""
Unit tests for versioned session operations.

Tests the transaction runner, RevertOperator and BranchManager directly
against the in-memory store.
"""

import pytest

from session_ledger.errors import ConflictError, NotFound
from session_ledger.sessions import BranchManager, RevertOperator, SessionService, run_in_transaction
from session_ledger.store import MemoryDocumentStore


@pytest.fixture
def service():
    svc = SessionService(store=MemoryDocumentStore())
    yield svc
    svc.close()


class TestRunInTransaction:
    """Tests for run_in_transaction."""

    def test_returns_work_result(self) -> None:
        """Test that the unit of work's result is returned after commit."""
        store = MemoryDocumentStore()

        def work(txn):
            txn.set("sessions", "s1", {"n": 1})
            return "done"

        assert run_in_transaction(store, work, 0, "test") == "done"
        assert store.get("sessions", "s1") == {"n": 1}

    def test_retries_until_commit(self) -> None:
        """Test that conflicting attempts are re-run."""
        store = MemoryDocumentStore()
        store.set("sessions", "s1", {"n": 0})
        attempts = []

        def work(txn):
            current = txn.get("sessions", "s1")
            attempts.append(current["n"])
            if len(attempts) == 1:
                store.set("sessions", "s1", {"n": 10})
            txn.set("sessions", "s1", {"n": current["n"] + 1})

        run_in_transaction(store, work, 2, "increment", "s1")

        assert attempts == [0, 10]
        assert store.get("sessions", "s1") == {"n": 11}

    def test_zero_retries(self) -> None:
        """Test that a conflict with no retries left is raised with context."""
        store = MemoryDocumentStore()
        store.set("sessions", "s1", {"n": 0})

        def work(txn):
            txn.get("sessions", "s1")
            store.set("sessions", "s1", {"n": 5})
            txn.set("sessions", "s1", {"n": 1})

        with pytest.raises(ConflictError) as exc_info:
            run_in_transaction(store, work, 0, "increment", "s1")

        assert exc_info.value.operation == "increment"
        assert exc_info.value.session_id == "s1"

    def test_other_errors_are_not_retried(self) -> None:
        """Test that non-conflict errors propagate immediately."""
        store = MemoryDocumentStore()
        calls = []

        def work(txn):
            calls.append(1)
            raise NotFound("gone")

        with pytest.raises(NotFound):
            run_in_transaction(store, work, 3, "lookup")
        assert calls == [1]


class TestRevertOperator:
    """Tests for RevertOperator."""

    def test_revert_creates_new_version(self, service) -> None:
        """Test that revert never rewrites history."""
        session_id, _ = service.create_session({"initial_message": "hello"})
        service.add_message(session_id, "world")
        reverter = RevertOperator(service.store, service.ledger)

        version = reverter.revert(session_id, "v1", actor="alice")

        assert version.created_by == "alice"
        assert version.stats.message_count == 1
        assert len(service.get_version(session_id, "v2").data.messages) == 2
        assert service.ledger.list_children(session_id, "v2") == ["v3"]

    def test_revert_to_current_version(self, service) -> None:
        """Test that reverting to the current version still appends a version."""
        session_id, _ = service.create_session({"initial_message": "hello"})
        reverter = RevertOperator(service.store, service.ledger)

        version = reverter.revert(session_id, "v1")

        assert version.version_id == "v2"
        assert version.data == service.get_version(session_id, "v1").data

    def test_revert_missing_session(self, service) -> None:
        """Test NotFound when the session has no such version."""
        reverter = RevertOperator(service.store, service.ledger)
        with pytest.raises(NotFound):
            reverter.revert("missing", "v1")


class TestBranchManager:
    """Tests for BranchManager."""

    def test_branch_is_independent(self, service) -> None:
        """Test that source and branch histories evolve separately."""
        session_id, _ = service.create_session({"initial_message": "hello"})
        brancher = BranchManager(service.store, service.ledger)

        branch_id, branch = brancher.create_branch(
            session_id, "v1", "alt", title="Alternative", owner_id="bob"
        )
        service.add_message(session_id, "source only")

        assert branch.title == "Alternative"
        assert branch.owner_id == "bob"
        assert branch.description == "Branch created from v1"
        assert branch.branch_info.created_from == f"{session_id}:v1"
        assert [m.content for m in service.get_session(branch_id).messages] == ["hello"]
        assert service.ledger.count_versions(branch_id) == 1

    def test_branch_from_missing_version(self, service) -> None:
        """Test NotFound when the source version does not exist."""
        session_id, _ = service.create_session()
        brancher = BranchManager(service.store, service.ledger)

        with pytest.raises(NotFound) as exc_info:
            brancher.create_branch(session_id, "v9", "alt")

        assert exc_info.value.operation == "create_branch"

    def test_branch_data_is_a_copy(self, service) -> None:
        """Test that editing the branch never changes the source version."""
        session_id, _ = service.create_session({"initial_message": "hello"})
        brancher = BranchManager(service.store, service.ledger)
        branch_id, _ = brancher.create_branch(session_id, "v1", "alt")

        service.add_message(branch_id, "branch message")

        assert len(service.get_version(session_id, "v1").data.messages) == 1
