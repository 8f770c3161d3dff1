"""
Snapshot and version representation for the session ledger.

Defines the serializable state captured by each version: the messages,
generated presentation references and metadata of a session at one point
in time.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """
    Render a timestamp as fixed-width UTC ISO 8601.

    Stored timestamps always carry microseconds and a ``+00:00`` offset, so
    their string order matches chronological order in store queries.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


Timestamp = Annotated[
    datetime, PlainSerializer(format_timestamp, return_type=str, when_used="json")
]


def new_message_id() -> str:
    """Generate a unique message ID."""
    return f"msg_{uuid4().hex[:16]}"


def version_id_for(version_number: int) -> str:
    """Version ids are ``"v" + version number``."""
    return f"v{version_number}"


class Role(str, Enum):
    """Author role of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChangeType(str, Enum):
    """Kind of mutation that produced a version."""

    CREATION = "creation"
    MESSAGE_ADDED = "message_added"
    PRESENTATION_ADDED = "presentation_added"
    REVERT = "revert"
    BRANCH = "branch"


class Message(BaseModel):
    """A single conversation message."""

    message_id: str = Field(default_factory=new_message_id)
    content: str
    role: Role = Role.USER
    timestamp: Timestamp = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PresentationRef(BaseModel):
    """Reference to a generated presentation attached to a session."""

    id: str = Field(min_length=1, description="Presentation identifier")
    title: str
    slide_count: int = Field(default=0, ge=0)
    file_name: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_by: str = "ai"
    added_at: Timestamp = Field(default_factory=utcnow)
    version_added_at: Optional[int] = Field(
        default=None, description="Version number active when the reference was attached"
    )


class Snapshot(BaseModel):
    """
    The data payload captured inside a version.

    Also used for a session's working copy.
    """

    messages: List[Message] = Field(default_factory=list)
    presentation_refs: List[PresentationRef] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def copy_of(self) -> "Snapshot":
        """Structural copy; shares no mutable state with ``self``."""
        return self.model_copy(deep=True)


class ChangeRecord(BaseModel):
    """A discrete change descriptor stored on a version."""

    type: str
    subject_id: Optional[str] = None
    timestamp: Timestamp = Field(default_factory=utcnow)
    details: Dict[str, Any] = Field(default_factory=dict)


class VersionStats(BaseModel):
    """Counts computed once when a version is created."""

    message_count: int = 0
    presentation_count: int = 0
    change_count: int = 0

    @classmethod
    def of(cls, data: Snapshot, changes: List[ChangeRecord]) -> "VersionStats":
        return cls(
            message_count=len(data.messages),
            presentation_count=len(data.presentation_refs),
            change_count=len(changes),
        )


class VersionSummary(BaseModel):
    """Listing projection of a version (no snapshot payload)."""

    model_config = ConfigDict(frozen=True)

    version_id: str
    session_id: str
    version_number: int = Field(ge=1)
    change_type: ChangeType
    description: str = ""
    parent_version_id: Optional[str] = None
    child_version_ids: List[str] = Field(default_factory=list)
    branch_name: str = "main"
    diff_summary: str = ""
    created_by: str = "system"
    created_at: Timestamp = Field(default_factory=utcnow)
    stats: VersionStats = Field(default_factory=VersionStats)


class Version(VersionSummary):
    """
    An immutable, numbered snapshot of a session.

    Once persisted a version is never rewritten; later edits produce new
    versions. Only ``child_version_ids`` grows, as children are linked.
    """

    data: Snapshot = Field(default_factory=Snapshot)
    changes: List[ChangeRecord] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        """Convert version to a JSON-compatible store document."""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Version":
        """Create version from a store document."""
        return cls.model_validate(document)
