"""
Versioning core: immutable snapshots, the version ledger and diffs.
"""

from .snapshot import (
    ChangeRecord,
    ChangeType,
    Message,
    PresentationRef,
    Role,
    Snapshot,
    Timestamp,
    Version,
    VersionStats,
    VersionSummary,
    format_timestamp,
    new_message_id,
    utcnow,
    version_id_for,
)
from .diff import (
    DiffResult,
    ElementChange,
    ListDiff,
    MapDiff,
    ValueChange,
    compute_diff,
    diff_lists,
    diff_maps,
    diff_snapshots,
)
from .ledger import SESSIONS_COLLECTION, VERSIONS_COLLECTION, VersionLedger

__all__ = [
    # Snapshot
    "ChangeRecord",
    "ChangeType",
    "Message",
    "PresentationRef",
    "Role",
    "Snapshot",
    "Timestamp",
    "Version",
    "VersionStats",
    "VersionSummary",
    "format_timestamp",
    "new_message_id",
    "utcnow",
    "version_id_for",
    # Diff
    "DiffResult",
    "ElementChange",
    "ListDiff",
    "MapDiff",
    "ValueChange",
    "compute_diff",
    "diff_lists",
    "diff_maps",
    "diff_snapshots",
    # Ledger
    "SESSIONS_COLLECTION",
    "VERSIONS_COLLECTION",
    "VersionLedger",
]
