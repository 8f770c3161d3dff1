"""
Integration test for the end-to-end session lifecycle.

Runs create, add, revert, diff and branch on both store backends and
checks the resulting history against the session working copies.
"""

import pytest

from session_ledger.sessions import SessionService
from session_ledger.store import MemoryDocumentStore, SqlDocumentStore
from session_ledger.versioning import ChangeType


@pytest.fixture(params=["memory", "sql"])
def service(request, tmp_path):
    if request.param == "memory":
        store = MemoryDocumentStore()
    else:
        store = SqlDocumentStore(f"sqlite:///{tmp_path / 'scenario.db'}")
    svc = SessionService(store=store)
    yield svc
    svc.close()


class TestSessionScenario:
    """Create, add, revert, diff and branch in sequence."""

    def test_full_lifecycle(self, service) -> None:
        """Test the reference scenario end to end."""
        session_id, session = service.create_session({"initial_message": "hello"})
        assert session.current_version_number == 1
        assert session.total_versions == 1
        assert len(session.messages) == 1

        service.add_message(session_id, "world")
        session = service.get_session(session_id)
        assert session.current_version_number == 2
        assert session.total_versions == 2
        assert len(session.messages) == 2
        assert service.get_version(session_id, "v2").parent_version_id == "v1"

        reverted = service.revert_to_version(session_id, "v1")
        session = service.get_session(session_id)
        assert reverted.version_id == "v3"
        assert reverted.change_type == ChangeType.REVERT
        assert session.total_versions == 3
        assert [m.content for m in session.messages] == ["hello"]
        assert [m.content for m in reverted.data.messages] == ["hello"]

        diff = service.generate_diff(session_id, "v1", "v2")
        assert [m["content"] for m in diff.messages.added] == ["world"]
        assert diff.messages.removed == []

        branch_id, branch = service.create_branch(session_id, "v2", "experiment")
        branch_v1 = service.get_version(branch_id, "v1")
        assert len(branch_v1.data.messages) == 2
        assert branch_v1.data == service.get_version(session_id, "v2").data

        service.add_message(session_id, "after branch")
        assert len(service.get_session(branch_id).messages) == 2
        assert service.get_session(session_id).total_versions == 4
        assert branch.branch_info.branch_name == "experiment"

    def test_history_graph(self, service) -> None:
        """Test parent and child links across a revert."""
        session_id, _ = service.create_session({"initial_message": "hello"})
        service.add_message(session_id, "world")
        service.revert_to_version(session_id, "v1")

        history = service.get_version_history(session_id, order="asc")

        assert [(v.version_id, v.parent_version_id) for v in history] == [
            ("v1", None),
            ("v2", "v1"),
            ("v3", "v2"),
        ]
        assert [v.child_version_ids for v in history] == [["v2"], ["v3"], []]

        page = service.get_user_sessions(None)
        assert page.total == 1
        assert page.sessions[0].message_preview == "hello"
