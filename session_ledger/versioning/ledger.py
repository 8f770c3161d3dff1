"""
Version ledger: the append-only history of a session.

Versions are stored as immutable documents in the ``versions``
sub-collection of their session:

    sessions/
      {session_id}                  (working copy + version counter)
      {session_id}/versions/
        v1, v2, v3, ...             (immutable snapshots)
"""

from typing import List, Optional

from session_ledger.config import LedgerConfig
from session_ledger.errors import (
    NotFound,
    ValidationError,
    VersionLimitExceeded,
    error_context,
)
from session_ledger.logging import get_ledger_logger, log_version_event
from session_ledger.store import DocumentStore, Filter, Transaction

from .snapshot import (
    ChangeRecord,
    ChangeType,
    Snapshot,
    Version,
    VersionStats,
    VersionSummary,
    version_id_for,
)

SESSIONS_COLLECTION = "sessions"
VERSIONS_COLLECTION = "versions"

log = get_ledger_logger("ledger")


class VersionLedger:
    """
    Creates, retrieves and orders the immutable versions of sessions.

    The ledger does not allocate version numbers: callers pass
    ``total_versions + 1`` and, to keep the session counter and the
    version document in step, stage the version inside the same store
    transaction that advances the counter.
    """

    def __init__(self, store: DocumentStore, ledger_config: Optional[LedgerConfig] = None):
        """
        Initialize the ledger.

        Args:
            store: Backing document store
            ledger_config: Retention and listing settings
        """
        self.store = store
        self.config = ledger_config or LedgerConfig()

    def versions_path(self, session_id: str) -> str:
        """Collection path of a session's versions."""
        return self.store.subcollection(SESSIONS_COLLECTION, session_id, VERSIONS_COLLECTION)

    def build_version(
        self,
        session_id: str,
        version_number: int,
        change_type: ChangeType,
        description: str,
        data: Snapshot,
        created_by: str,
        parent_version_id: Optional[str],
        branch_name: Optional[str] = None,
        changes: Optional[List[ChangeRecord]] = None,
        diff_summary: str = "",
    ) -> Version:
        """
        Validate numbering and build an unsaved version.

        The snapshot is copied by value; later edits to ``data`` do not
        reach the version.

        Raises:
            ValidationError: If numbering and parent linkage disagree
            VersionLimitExceeded: If the retention cap is enforced and reached
        """
        if version_number < 1:
            raise ValidationError(
                f"Version number must be >= 1, got {version_number}",
                session_id=session_id,
            )
        if (version_number == 1) != (parent_version_id is None):
            raise ValidationError(
                "Only version 1 may lack a parent version "
                f"(version {version_number}, parent {parent_version_id})",
                session_id=session_id,
            )
        if version_number > self.config.max_versions:
            if self.config.enforce_max_versions:
                raise VersionLimitExceeded(
                    f"Session reached the cap of {self.config.max_versions} versions",
                    session_id=session_id,
                )
            log.warning(
                f"Session {session_id} exceeds {self.config.max_versions} versions",
                version_number=version_number,
            )

        changes = [c.model_copy(deep=True) for c in changes or []]
        snapshot = data.copy_of()
        return Version(
            version_id=version_id_for(version_number),
            session_id=session_id,
            version_number=version_number,
            change_type=change_type,
            description=description or f"Version {version_number}",
            parent_version_id=parent_version_id,
            branch_name=branch_name or self.config.default_branch,
            diff_summary=diff_summary,
            created_by=created_by,
            data=snapshot,
            changes=changes,
            stats=VersionStats.of(snapshot, changes),
        )

    def stage_version(self, txn: Transaction, version: Version) -> None:
        """
        Stage a version document and its parent linkage in a transaction.

        The parent's ``child_version_ids`` is extended in the same
        transaction, so the graph never points at a missing child.

        Raises:
            ValidationError: If the parent version does not exist in this session
        """
        path = self.versions_path(version.session_id)

        if version.parent_version_id is not None:
            parent = txn.get(path, version.parent_version_id)
            if parent is None:
                raise ValidationError(
                    f"Parent version {version.parent_version_id} does not exist",
                    session_id=version.session_id,
                    version_id=version.version_id,
                )
            children = list(parent.get("child_version_ids", []))
            if version.version_id not in children:
                txn.update(
                    path,
                    version.parent_version_id,
                    {"child_version_ids": children + [version.version_id]},
                )

        txn.create(path, version.version_id, version.to_document())

    def create_version(
        self,
        session_id: str,
        version_number: int,
        change_type: ChangeType,
        description: str,
        data: Snapshot,
        created_by: str,
        parent_version_id: Optional[str],
        branch_name: Optional[str] = None,
        changes: Optional[List[ChangeRecord]] = None,
        diff_summary: str = "",
        txn: Optional[Transaction] = None,
    ) -> Version:
        """
        Create and persist a new version.

        Args:
            session_id: Owning session
            version_number: Must be the session's ``total_versions + 1``
            change_type: Kind of mutation
            description: Human-readable summary of the change
            data: Snapshot to capture (copied by value)
            created_by: Actor
            parent_version_id: Previous current version (None only for v1)
            branch_name: Branch label (default from config)
            changes: Discrete change records
            diff_summary: Short textual summary
            txn: Join an existing transaction instead of committing alone

        Returns:
            The created Version

        Raises:
            ConflictError: If the version id is already taken
        """
        with error_context("create_version", session_id, version_id_for(version_number)):
            version = self.build_version(
                session_id,
                version_number,
                change_type,
                description,
                data,
                created_by,
                parent_version_id,
                branch_name=branch_name,
                changes=changes,
                diff_summary=diff_summary,
            )
            if txn is not None:
                self.stage_version(txn, version)
                return version

            with self.store.transaction() as own_txn:
                self.stage_version(own_txn, version)

        log_version_event(
            log,
            "created",
            session_id,
            version.version_id,
            change_type=version.change_type.value,
            parent_version_id=parent_version_id,
        )
        return version

    def get_version(self, session_id: str, version_id: str) -> Version:
        """
        Get a version with its full snapshot.

        Raises:
            NotFound: If the version does not exist
        """
        with error_context("get_version", session_id, version_id):
            document = self.store.get(self.versions_path(session_id), version_id)
            if document is None:
                raise NotFound(f"Version {version_id} not found in session {session_id}")
            return Version.from_document(document)

    def list_versions(
        self, session_id: str, order: str = "desc", limit: Optional[int] = None
    ) -> List[VersionSummary]:
        """
        List version summaries ordered by version number.

        Args:
            session_id: Session to list
            order: "asc" or "desc"
            limit: Maximum number of versions (default from config)

        Returns:
            Summaries without snapshot payloads
        """
        if order not in ("asc", "desc"):
            raise ValidationError(
                f"Order must be 'asc' or 'desc', got {order!r}",
                operation="list_versions",
                session_id=session_id,
            )
        limit = self.config.history_limit if limit is None else limit
        if limit < 1:
            raise ValidationError(
                f"Limit must be at least 1, got {limit}",
                operation="list_versions",
                session_id=session_id,
            )

        with error_context("list_versions", session_id):
            documents = self.store.query(
                self.versions_path(session_id),
                order_by="version_number",
                descending=order == "desc",
                limit=limit,
            )
        return [VersionSummary.model_validate(d) for d in documents]

    def list_children(self, session_id: str, version_id: str) -> List[str]:
        """Child version ids, derived from the children's parent links."""
        with error_context("list_children", session_id, version_id):
            documents = self.store.query(
                self.versions_path(session_id),
                filters=[Filter("parent_version_id", "==", version_id)],
                order_by="version_number",
            )
        return [d["version_id"] for d in documents]

    def count_versions(self, session_id: str) -> int:
        with error_context("count_versions", session_id):
            return self.store.count(self.versions_path(session_id))

    def delete_versions(self, session_id: str) -> int:
        """Remove a session's entire version sub-collection."""
        with error_context("delete_versions", session_id):
            removed = self.store.delete_collection(self.versions_path(session_id))
        log.info(f"Deleted {removed} versions of session {session_id}")
        return removed
