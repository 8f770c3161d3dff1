"""
Pydantic models for sessions and session requests.

A session document holds the denormalized working copy (messages,
presentation references, metadata) together with the version counter.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from session_ledger.versioning.snapshot import (
    Message,
    PresentationRef,
    Role,
    Snapshot,
    Timestamp,
    utcnow,
    version_id_for,
)

DEFAULT_SESSION_SETTINGS: Dict[str, Any] = {
    "ai_model": "gpt-4",
    "temperature": 0.7,
    "max_tokens": 2000,
    "system_prompt": None,
    "auto_save": True,
    "notifications": False,
}


class SessionStatus(str, Enum):
    """Lifecycle status of a session."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class BranchInfo(BaseModel):
    """Lineage of a session created by branching another session."""

    parent_session_id: str
    source_version_id: str
    branch_name: str
    created_from: str = ""


class Session(BaseModel):
    """A mutable conversation container with a versioned history."""

    session_id: str = Field(min_length=1)
    title: str = "New Session"
    description: str = ""
    owner_id: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE

    current_version_number: int = Field(default=1, ge=1)
    total_versions: int = Field(default=1, ge=1)

    messages: List[Message] = Field(default_factory=list)
    presentation_refs: List[PresentationRef] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    branch_info: Optional[BranchInfo] = None
    is_bookmarked: bool = False
    tags: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_SESSION_SETTINGS))

    created_at: Timestamp = Field(default_factory=utcnow)
    updated_at: Timestamp = Field(default_factory=utcnow)
    last_active_at: Timestamp = Field(default_factory=utcnow)
    last_version_at: Optional[Timestamp] = None

    @property
    def current_version_id(self) -> str:
        return version_id_for(self.current_version_number)

    def working_copy(self) -> Snapshot:
        """The working copy as a detached snapshot."""
        return Snapshot(
            messages=self.messages,
            presentation_refs=self.presentation_refs,
            metadata=self.metadata,
        ).copy_of()

    def load_snapshot(self, snapshot: Snapshot) -> None:
        """Overwrite the working copy with a copy of ``snapshot``."""
        data = snapshot.copy_of()
        self.messages = data.messages
        self.presentation_refs = data.presentation_refs
        self.metadata = data.metadata

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Session":
        return cls.model_validate(document)


class SessionCreateRequest(BaseModel):
    """Input for creating a session."""

    session_id: Optional[str] = Field(default=None, min_length=1)
    title: str = Field(default="New Session", min_length=1, max_length=200)
    description: str = ""
    owner_id: Optional[str] = None
    initial_message: Optional[str] = None
    initial_role: Role = Role.USER
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list, max_length=10)
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None


class SessionUpdate(BaseModel):
    """Whitelisted session fields that may be updated; other keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_bookmarked: Optional[bool] = None
    tags: Optional[List[str]] = Field(default=None, max_length=10)
    settings: Optional[Dict[str, Any]] = None
    status: Optional[SessionStatus] = None


class SessionSummary(BaseModel):
    """List-view projection of a session; never carries the message list."""

    session_id: str
    title: str
    description: str = ""
    owner_id: Optional[str] = None
    status: SessionStatus
    current_version_number: int
    total_versions: int
    is_bookmarked: bool = False
    tags: List[str] = Field(default_factory=list)
    branch_info: Optional[BranchInfo] = None
    message_count: int = 0
    presentation_count: int = 0
    message_preview: Optional[str] = None
    created_at: Timestamp
    updated_at: Timestamp
    last_active_at: Timestamp

    @classmethod
    def from_document(cls, document: Dict[str, Any], preview_length: int = 100) -> "SessionSummary":
        messages = document.get("messages") or []
        preview = None
        if messages:
            preview = str(messages[-1].get("content", ""))[:preview_length]

        fields = {k: v for k, v in document.items() if k in cls.model_fields}
        fields.update(
            message_count=len(messages),
            presentation_count=len(document.get("presentation_refs") or []),
            message_preview=preview,
        )
        return cls.model_validate(fields)


class SessionPage(BaseModel):
    """One page of session summaries."""

    sessions: List[SessionSummary]
    limit: int
    offset: int
    total: int
    has_more: bool
