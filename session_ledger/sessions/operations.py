"""
Versioned session mutations.

Every versioned mutation is one store transaction: read the session,
change the working copy, advance the version counter, write the session
and stage the new version document. A concurrent writer makes the commit
fail with ConflictError and the whole unit is retried.
"""

from typing import Callable, List, Optional, Tuple, TypeVar
from uuid import uuid4

from session_ledger.config import LedgerConfig
from session_ledger.errors import ConflictError, NotFound, ValidationError, error_context
from session_ledger.logging import get_ledger_logger, log_version_event
from session_ledger.store import DocumentStore, Transaction
from session_ledger.versioning import (
    SESSIONS_COLLECTION,
    ChangeRecord,
    ChangeType,
    Version,
    VersionLedger,
    utcnow,
)

from .models import BranchInfo, Session

log = get_ledger_logger("sessions")

T = TypeVar("T")


def run_in_transaction(
    store: DocumentStore,
    work: Callable[[Transaction], T],
    retries: int,
    operation: str,
    session_id: Optional[str] = None,
) -> T:
    """
    Run ``work`` in a store transaction, retrying it on conflicts.

    Args:
        store: Document store
        work: Unit of work; receives the open transaction
        retries: Extra attempts after the first conflict
        operation: Operation name used in logs and errors
        session_id: Session the work targets

    Returns:
        Whatever ``work`` returned on the attempt that committed

    Raises:
        ConflictError: If every attempt conflicted
    """
    attempt = 0
    with error_context(operation, session_id):
        while True:
            attempt += 1
            try:
                with store.transaction() as txn:
                    return work(txn)
            except ConflictError:
                if attempt > retries:
                    log.warning(
                        f"{operation} gave up after {attempt} conflicting attempts",
                        session_id=session_id,
                    )
                    raise
                log.debug(f"Retrying {operation}", session_id=session_id, attempt=attempt)


def load_session(txn: Transaction, session_id: str) -> Session:
    """
    Read a session inside a transaction.

    Raises:
        NotFound: If the session does not exist
    """
    document = txn.get(SESSIONS_COLLECTION, session_id)
    if document is None:
        raise NotFound(f"Session {session_id} not found", session_id=session_id)
    return Session.from_document(document)


def commit_version(
    txn: Transaction,
    ledger: VersionLedger,
    session: Session,
    change_type: ChangeType,
    description: str,
    created_by: str,
    changes: Optional[List[ChangeRecord]] = None,
    diff_summary: str = "",
) -> Version:
    """
    Capture the session's working copy as its next version.

    Advances ``current_version_number`` and ``total_versions``, writes the
    session and stages the version in ``txn``. The parent is the version
    that was current before the call.
    """
    number = session.total_versions + 1
    version = ledger.create_version(
        session.session_id,
        number,
        change_type,
        description,
        session.working_copy(),
        created_by,
        parent_version_id=session.current_version_id,
        branch_name=session.branch_info.branch_name if session.branch_info else None,
        changes=changes,
        diff_summary=diff_summary,
        txn=txn,
    )

    now = utcnow()
    session.current_version_number = number
    session.total_versions = number
    session.updated_at = now
    session.last_active_at = now
    session.last_version_at = now
    txn.set(SESSIONS_COLLECTION, session.session_id, session.to_document())
    return version


class RevertOperator:
    """Restores a session's working copy from an earlier version."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: VersionLedger,
        ledger_config: Optional[LedgerConfig] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.config = ledger_config or LedgerConfig()

    def revert(self, session_id: str, target_version_id: str, actor: str = "user") -> Version:
        """
        Revert a session to a previous version.

        This creates a new version with the old data (doesn't rewrite history).

        Args:
            session_id: Session to revert
            target_version_id: Version whose data becomes the working copy
            actor: Who requested the revert

        Returns:
            The newly created revert version

        Raises:
            NotFound: If the session or target version does not exist
        """
        target = self.ledger.get_version(session_id, target_version_id)

        def work(txn: Transaction) -> Version:
            session = load_session(txn, session_id)
            session.load_snapshot(target.data)
            change = ChangeRecord(
                type=ChangeType.REVERT.value,
                subject_id=target.version_id,
                details={
                    "target_version": target.version_id,
                    "from_version": session.current_version_id,
                },
            )
            return commit_version(
                txn,
                self.ledger,
                session,
                ChangeType.REVERT,
                f"Reverted to {target.version_id}: {target.description}",
                actor,
                changes=[change],
                diff_summary=f"Reverted to version {target.version_number}",
            )

        version = run_in_transaction(
            self.store, work, self.config.conflict_retries, "revert_to_version", session_id
        )
        log_version_event(
            log,
            "reverted",
            session_id,
            version.version_id,
            target_version=target.version_id,
            actor=actor,
        )
        return version


class BranchManager:
    """Forks a version into a new, independent session."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: VersionLedger,
        ledger_config: Optional[LedgerConfig] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.config = ledger_config or LedgerConfig()

    def create_branch(
        self,
        source_session_id: str,
        source_version_id: str,
        branch_name: str,
        actor: str = "user",
        title: Optional[str] = None,
        description: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Tuple[str, Session]:
        """
        Create a new session seeded from a version of another session.

        Args:
            source_session_id: Session to branch from
            source_version_id: Version whose data seeds the branch
            branch_name: Label of the branch; must be non-empty
            actor: Who created the branch
            title: Title of the new session (default: "<source title>: <branch>")
            description: Description of the new session
            owner_id: Owner of the new session (default: the source owner)

        Returns:
            (new session id, new session)

        Raises:
            ValidationError: If the branch name is empty
            NotFound: If the source session or version does not exist
        """
        branch_name = (branch_name or "").strip()
        if not branch_name:
            raise ValidationError(
                "Branch name must not be empty",
                operation="create_branch",
                session_id=source_session_id,
                version_id=source_version_id,
            )

        with error_context("create_branch", source_session_id, source_version_id):
            source_doc = self.store.get(SESSIONS_COLLECTION, source_session_id)
            if source_doc is None:
                raise NotFound(f"Session {source_session_id} not found")
            source = Session.from_document(source_doc)
            version = self.ledger.get_version(source_session_id, source_version_id)

        new_session_id = uuid4().hex
        now = utcnow()
        session = Session(
            session_id=new_session_id,
            title=title or f"{source.title or 'Branch'}: {branch_name}",
            description=description or f"Branch created from {source_version_id}",
            owner_id=owner_id if owner_id is not None else source.owner_id,
            tags=list(source.tags),
            settings=dict(source.settings),
            branch_info=BranchInfo(
                parent_session_id=source_session_id,
                source_version_id=source_version_id,
                branch_name=branch_name,
                created_from=f"{source_session_id}:{source_version_id}",
            ),
            created_at=now,
            updated_at=now,
            last_active_at=now,
            last_version_at=now,
        )
        session.load_snapshot(version.data)

        change = ChangeRecord(
            type=ChangeType.BRANCH.value,
            subject_id=source_version_id,
            details={
                "source_session_id": source_session_id,
                "source_version_id": source_version_id,
                "branch_name": branch_name,
            },
        )

        def work(txn: Transaction) -> Version:
            txn.create(SESSIONS_COLLECTION, new_session_id, session.to_document())
            return self.ledger.create_version(
                new_session_id,
                1,
                ChangeType.BRANCH,
                f"Branch created from {source_session_id}:{source_version_id}",
                session.working_copy(),
                actor,
                parent_version_id=None,
                branch_name=branch_name,
                changes=[change],
                diff_summary=f"Branched from version {version.version_number}",
                txn=txn,
            )

        first = run_in_transaction(
            self.store, work, self.config.conflict_retries, "create_branch", new_session_id
        )
        log_version_event(
            log,
            "branched",
            new_session_id,
            first.version_id,
            source_session_id=source_session_id,
            source_version_id=source_version_id,
            branch_name=branch_name,
        )
        return new_session_id, session
