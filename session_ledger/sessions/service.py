"""
Session service: the facade that couples working-copy mutations to the
version ledger.

Example:
    >>> service = SessionService()
    >>> session_id, session = service.create_session({"initial_message": "hello"})
    >>> service.add_message(session_id, "world")
    >>> service.revert_to_version(session_id, "v1")
"""

import json
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from session_ledger.config import Config, config as default_config
from session_ledger.errors import LedgerError, NotFound, ValidationError, error_context
from session_ledger.logging import get_ledger_logger, log_version_event, performance_monitor
from session_ledger.store import DocumentStore, Filter, Transaction, build_store
from session_ledger.versioning import (
    SESSIONS_COLLECTION,
    ChangeRecord,
    ChangeType,
    DiffResult,
    Message,
    PresentationRef,
    Role,
    Version,
    VersionLedger,
    VersionSummary,
    compute_diff,
    utcnow,
)

from .models import (
    DEFAULT_SESSION_SETTINGS,
    Session,
    SessionCreateRequest,
    SessionPage,
    SessionStatus,
    SessionSummary,
    SessionUpdate,
)
from .operations import (
    BranchManager,
    RevertOperator,
    commit_version,
    load_session,
    run_in_transaction,
)

log = get_ledger_logger("sessions")

M = TypeVar("M", bound=BaseModel)

STATUS_FILTERS = ("active", "archived", "all")


def parse_model(
    model_cls: Type[M],
    data: Union[M, Dict[str, Any], None],
    operation: str,
    session_id: Optional[str] = None,
) -> M:
    """
    Validate input into a pydantic model.

    Raises:
        ValidationError: With one entry per failing field
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            f"Invalid {model_cls.__name__}: {'; '.join(errors)}",
            errors=errors,
            operation=operation,
            session_id=session_id,
        ) from e


class SessionService:
    """
    Creates sessions, applies versioned mutations and answers history,
    diff, revert and branch requests.

    Each versioned mutation (create, add message, add presentation,
    revert, branch) is a single store transaction that advances the
    session's version counter and creates the version document together.
    """

    def __init__(self, store: Optional[DocumentStore] = None, app_config: Optional[Config] = None):
        """
        Initialize the service.

        Args:
            store: Document store (default: built from configuration)
            app_config: Configuration (default: global config)
        """
        self.config = app_config or default_config
        self.store = store or build_store(self.config.store)
        self.ledger = VersionLedger(self.store, self.config.ledger)
        self.reverter = RevertOperator(self.store, self.ledger, self.config.ledger)
        self.brancher = BranchManager(self.store, self.ledger, self.config.ledger)

    def close(self) -> None:
        """Close the underlying store."""
        self.store.close()

    # -- versioned mutations ------------------------------------------------

    def create_session(
        self, request: Union[SessionCreateRequest, Dict[str, Any], None] = None
    ) -> Tuple[str, Session]:
        """
        Create a session and its first version.

        Args:
            request: Session fields; an explicit ``session_id`` is optional

        Returns:
            (session id, session)

        Raises:
            ValidationError: If the request is malformed
            ConflictError: If the requested session id is already taken
        """
        req = parse_model(SessionCreateRequest, request, "create_session")
        session_id = req.session_id or uuid4().hex
        created_by = req.created_by or req.owner_id or "system"

        messages = []
        if req.initial_message is not None:
            if not req.initial_message.strip():
                raise ValidationError(
                    "Initial message must be a non-empty string",
                    operation="create_session",
                    session_id=session_id,
                )
            messages.append(Message(content=req.initial_message, role=req.initial_role))

        now = utcnow()
        session = Session(
            session_id=session_id,
            title=req.title,
            description=req.description,
            owner_id=req.owner_id,
            messages=messages,
            metadata=req.metadata,
            tags=req.tags,
            settings={**DEFAULT_SESSION_SETTINGS, **req.settings},
            created_at=now,
            updated_at=now,
            last_active_at=now,
            last_version_at=now,
        )
        change = ChangeRecord(type=ChangeType.CREATION.value, subject_id=session_id)

        def work(txn: Transaction) -> Version:
            txn.create(SESSIONS_COLLECTION, session_id, session.to_document())
            return self.ledger.create_version(
                session_id,
                1,
                ChangeType.CREATION,
                "Initial session creation",
                session.working_copy(),
                created_by,
                parent_version_id=None,
                changes=[change],
                diff_summary="Session created",
                txn=txn,
            )

        # A taken id conflicts on every attempt, so there is nothing to retry.
        version = run_in_transaction(self.store, work, 0, "create_session", session_id)
        log_version_event(log, "created", session_id, version.version_id, title=session.title)
        return session_id, session

    def add_message(
        self,
        session_id: str,
        content: str,
        role: Union[Role, str] = Role.USER,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
        create_version: bool = True,
    ) -> Message:
        """
        Append a message to the working copy and snapshot the result.

        Args:
            session_id: Target session
            content: Message text; must not be blank
            role: "user", "assistant" or "system"
            metadata: Arbitrary message metadata
            created_by: Actor recorded on the version (default: role)
            create_version: When False the working copy advances without a
                new version and runs ahead of the current version snapshot

        Returns:
            The appended message

        Raises:
            NotFound: If the session does not exist
            ValidationError: If the message is malformed
        """
        if not isinstance(content, str) or not content.strip():
            raise ValidationError(
                "Message content must be a non-empty string",
                operation="add_message",
                session_id=session_id,
            )
        message = parse_model(
            Message,
            {"content": content, "role": role, "metadata": metadata or {}},
            "add_message",
            session_id,
        )
        actor = created_by or message.role.value
        preview = content if len(content) <= 50 else f"{content[:50]}..."

        def work(txn: Transaction) -> Optional[Version]:
            session = load_session(txn, session_id)
            session.messages.append(message)
            if not create_version:
                self._touch(txn, session)
                return None
            change = ChangeRecord(
                type=ChangeType.MESSAGE_ADDED.value,
                subject_id=message.message_id,
                details={"role": message.role.value, "content": message.content},
            )
            return commit_version(
                txn,
                self.ledger,
                session,
                ChangeType.MESSAGE_ADDED,
                f"Added message: {preview}",
                actor,
                changes=[change],
                diff_summary="Added 1 message",
            )

        version = run_in_transaction(
            self.store, work, self.config.ledger.conflict_retries, "add_message", session_id
        )
        if version is not None:
            log_version_event(
                log, "created", session_id, version.version_id, change_type="message_added"
            )
        else:
            log.info(f"Message added to session {session_id} without a version")
        return message

    def add_generated_presentation(
        self,
        session_id: str,
        presentation: Union[PresentationRef, Dict[str, Any]],
        created_by: Optional[str] = None,
        create_version: bool = True,
    ) -> PresentationRef:
        """
        Attach a generated presentation to the working copy.

        A presentation whose id is already attached replaces the existing
        entry in place. ``version_added_at`` records the version that was
        current when the presentation was attached.

        Raises:
            NotFound: If the session does not exist
            ValidationError: If the presentation reference is malformed
        """
        ref = parse_model(PresentationRef, presentation, "add_generated_presentation", session_id)

        def work(txn: Transaction) -> Tuple[PresentationRef, Optional[Version]]:
            session = load_session(txn, session_id)
            attached = ref.model_copy(
                update={"version_added_at": session.current_version_number}
            )
            replaced = any(r.id == attached.id for r in session.presentation_refs)
            if replaced:
                session.presentation_refs = [
                    attached if r.id == attached.id else r for r in session.presentation_refs
                ]
            else:
                session.presentation_refs.append(attached)

            if not create_version:
                self._touch(txn, session)
                return attached, None
            change = ChangeRecord(
                type=ChangeType.PRESENTATION_ADDED.value,
                subject_id=attached.id,
                details={
                    "title": attached.title,
                    "slide_count": attached.slide_count,
                    "replaced": replaced,
                },
            )
            version = commit_version(
                txn,
                self.ledger,
                session,
                ChangeType.PRESENTATION_ADDED,
                f"Added presentation: {attached.title}",
                created_by or attached.created_by,
                changes=[change],
                diff_summary=(
                    f"Added presentation: {attached.title} ({attached.slide_count} slides)"
                ),
            )
            return attached, version

        attached, version = run_in_transaction(
            self.store,
            work,
            self.config.ledger.conflict_retries,
            "add_generated_presentation",
            session_id,
        )
        if version is not None:
            log_version_event(
                log,
                "created",
                session_id,
                version.version_id,
                change_type="presentation_added",
                presentation_id=attached.id,
            )
        return attached

    def revert_to_version(
        self, session_id: str, target_version_id: str, actor: str = "user"
    ) -> Version:
        """Restore the working copy from ``target_version_id`` as a new version."""
        return self.reverter.revert(session_id, target_version_id, actor=actor)

    def create_branch(
        self,
        session_id: str,
        source_version_id: str,
        branch_name: str,
        actor: str = "user",
        title: Optional[str] = None,
        description: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Tuple[str, Session]:
        """Fork ``source_version_id`` into a new session; see BranchManager."""
        return self.brancher.create_branch(
            session_id,
            source_version_id,
            branch_name,
            actor=actor,
            title=title,
            description=description,
            owner_id=owner_id,
        )

    # -- history ------------------------------------------------------------

    def get_version_history(
        self, session_id: str, order: str = "desc", limit: Optional[int] = None
    ) -> List[VersionSummary]:
        """
        List a session's versions without their snapshot payloads.

        Raises:
            NotFound: If the session does not exist
        """
        self._require_session(session_id, "get_version_history")
        return self.ledger.list_versions(session_id, order=order, limit=limit)

    def get_version(self, session_id: str, version_id: str) -> Version:
        return self.ledger.get_version(session_id, version_id)

    def generate_diff(
        self,
        session_id: str,
        version_a_id: str,
        version_b_id: str,
        detect_modified: bool = False,
    ) -> DiffResult:
        """
        Compare two versions of a session.

        Args:
            session_id: Session holding both versions
            version_a_id: Old side
            version_b_id: New side
            detect_modified: Also report common-id elements whose content changed

        Raises:
            NotFound: If either version does not exist
        """
        with error_context("generate_diff", session_id):
            version_a = self.ledger.get_version(session_id, version_a_id)
            version_b = self.ledger.get_version(session_id, version_b_id)
        return compute_diff(version_a, version_b, detect_modified=detect_modified)

    # -- session documents --------------------------------------------------

    def get_session(self, session_id: str) -> Session:
        """
        Get a session, touching its ``last_active_at``.

        The touch is best-effort: a failure is logged and the session is
        still returned.

        Raises:
            NotFound: If the session does not exist
        """
        session = self._require_session(session_id, "get_session")
        touched = session.model_copy(update={"last_active_at": utcnow()})
        try:
            self.store.update(
                SESSIONS_COLLECTION,
                session_id,
                touched.model_dump(mode="json", include={"last_active_at"}),
            )
            session = touched
        except LedgerError as e:
            log.warning(f"Failed to update last active time of {session_id}: {e}")
        return session

    def update_session(
        self, session_id: str, updates: Union[SessionUpdate, Dict[str, Any]]
    ) -> Session:
        """
        Update whitelisted session fields.

        Only ``title``, ``is_bookmarked``, ``tags``, ``settings`` and
        ``status`` are applied; other keys are ignored. Updates never create
        a version.

        Raises:
            NotFound: If the session does not exist
            ValidationError: If a whitelisted field is wrong-shaped
        """
        changes = parse_model(SessionUpdate, updates, "update_session", session_id)
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)

        def work(txn: Transaction) -> Session:
            session = load_session(txn, session_id).model_copy(update=fields)
            session.updated_at = utcnow()
            txn.set(SESSIONS_COLLECTION, session_id, session.to_document())
            return session

        session = run_in_transaction(
            self.store, work, self.config.ledger.conflict_retries, "update_session", session_id
        )
        log.info(f"Updated session {session_id}", fields=sorted(fields))
        return session

    def archive_session(self, session_id: str) -> Session:
        """Archive a session (soft delete)."""
        return self.update_session(session_id, SessionUpdate(status=SessionStatus.ARCHIVED))

    def restore_session(self, session_id: str) -> Session:
        """Return an archived session to active status."""
        return self.update_session(session_id, SessionUpdate(status=SessionStatus.ACTIVE))

    def delete_session(self, session_id: str, purge_versions: bool = True) -> bool:
        """
        Permanently delete a session.

        Args:
            session_id: Session to delete
            purge_versions: Also remove the version sub-collection

        Returns:
            True if the session document existed
        """
        with error_context("delete_session", session_id):
            existed = self.store.delete(SESSIONS_COLLECTION, session_id)
            if purge_versions:
                self.ledger.delete_versions(session_id)

        if existed:
            log.info(f"Deleted session {session_id}", purge_versions=purge_versions)
        else:
            log.warning(f"Session {session_id} did not exist")
        return existed

    @performance_monitor(threshold_ms=500)
    def get_user_sessions(
        self,
        owner_id: Optional[str] = None,
        status: str = "active",
        bookmarked_only: bool = False,
        tags: Optional[List[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        order_by: str = "last_active_at",
        descending: bool = True,
    ) -> SessionPage:
        """
        List an owner's sessions as summaries, most recently active first.

        Args:
            owner_id: Owner to list (None lists anonymous sessions)
            status: "active", "archived" or "all"
            bookmarked_only: Only bookmarked sessions
            tags: Sessions carrying any of these tags
            limit: Page size (default from config)
            offset: Sessions to skip
            order_by: Field to order by
            descending: Order direction

        Returns:
            SessionPage with the total count and whether more pages exist
        """
        limit = self.config.ledger.page_size if limit is None else limit
        if status not in STATUS_FILTERS:
            raise ValidationError(
                f"Status must be one of {', '.join(STATUS_FILTERS)}, got {status!r}",
                operation="get_user_sessions",
            )
        if limit < 1 or offset < 0:
            raise ValidationError(
                f"Invalid page (limit={limit}, offset={offset})",
                operation="get_user_sessions",
            )

        filters = [Filter("owner_id", "==", owner_id)]
        if status != "all":
            filters.append(Filter("status", "==", status))
        if bookmarked_only:
            filters.append(Filter("is_bookmarked", "==", True))
        if tags:
            filters.append(Filter("tags", "array-contains-any", list(tags)))

        with error_context("get_user_sessions"):
            total = self.store.count(SESSIONS_COLLECTION, filters)
            documents = self.store.query(
                SESSIONS_COLLECTION,
                filters,
                order_by=order_by,
                descending=descending,
                limit=limit,
                offset=offset,
            )

        preview_length = self.config.ledger.preview_length
        return SessionPage(
            sessions=[SessionSummary.from_document(d, preview_length) for d in documents],
            limit=limit,
            offset=offset,
            total=total,
            has_more=offset + len(documents) < total,
        )

    def get_messages(
        self, session_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[Message]:
        """Messages of the working copy, oldest first."""
        messages = self._require_session(session_id, "get_messages").messages[offset:]
        return messages if limit is None else messages[:limit]

    @performance_monitor(threshold_ms=1000)
    def export_session(self, session_id: str) -> str:
        """
        Export a session and its version summaries as JSON.

        Raises:
            NotFound: If the session does not exist
        """
        session = self._require_session(session_id, "export_session")
        total = self.ledger.count_versions(session_id)
        versions = self.ledger.list_versions(session_id, order="asc", limit=max(total, 1))
        return json.dumps(
            {
                "session": session.to_document(),
                "versions": [v.model_dump(mode="json") for v in versions],
                "exported_at": utcnow().isoformat(),
            },
            indent=2,
        )

    # -- helpers ------------------------------------------------------------

    def _require_session(self, session_id: str, operation: str) -> Session:
        with error_context(operation, session_id):
            document = self.store.get(SESSIONS_COLLECTION, session_id)
        if document is None:
            raise NotFound(
                f"Session {session_id} not found", operation=operation, session_id=session_id
            )
        return Session.from_document(document)

    @staticmethod
    def _touch(txn: Transaction, session: Session) -> None:
        """Write the working copy back without creating a version."""
        now = utcnow()
        session.updated_at = now
        session.last_active_at = now
        txn.set(SESSIONS_COLLECTION, session.session_id, session.to_document())
