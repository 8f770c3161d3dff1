"""
Diff computation for comparing version snapshots.

List fields are compared by identifier-set membership, the metadata map
key by key. Elements that keep their id are reported as ``common`` with
their B-side value; field-level changes inside them are only reported
when ``detect_modified`` is requested.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from .snapshot import Snapshot, Version

MESSAGE_KEY = "message_id"
PRESENTATION_KEY = "id"


@dataclass
class ElementChange:
    """A common-id list element whose content differs between versions."""

    id: Any
    before: Dict[str, Any]
    after: Dict[str, Any]


@dataclass
class ListDiff:
    """Identifier-set comparison of two lists."""

    added: List[Dict[str, Any]] = field(default_factory=list)
    removed: List[Dict[str, Any]] = field(default_factory=list)
    common: List[Dict[str, Any]] = field(default_factory=list)
    modified: List[ElementChange] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": self.added,
            "removed": self.removed,
            "common": self.common,
            "modified": [
                {"id": c.id, "from": c.before, "to": c.after} for c in self.modified
            ],
        }


@dataclass
class ValueChange:
    """A metadata key whose value differs between versions."""

    old_value: Any
    new_value: Any


@dataclass
class MapDiff:
    """Key-wise comparison of two metadata maps."""

    added: Dict[str, Any] = field(default_factory=dict)
    removed: Dict[str, Any] = field(default_factory=dict)
    changed: Dict[str, ValueChange] = field(default_factory=dict)
    unchanged: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": self.added,
            "removed": self.removed,
            "changed": {
                key: {"from": c.old_value, "to": c.new_value}
                for key, c in self.changed.items()
            },
            "unchanged": self.unchanged,
        }


@dataclass
class DiffResult:
    """
    Structural diff between two versions of a session.

    Ephemeral: computed on demand and never persisted.
    """

    session_id: str
    from_version_id: str
    to_version_id: str
    messages: ListDiff
    presentation_refs: ListDiff
    metadata: MapDiff
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def comparison(self) -> str:
        return f"{self.from_version_id} -> {self.to_version_id}"

    def counts(self) -> Dict[str, int]:
        """Count changes per field."""
        return {
            "messages_added": len(self.messages.added),
            "messages_removed": len(self.messages.removed),
            "messages_modified": len(self.messages.modified),
            "presentations_added": len(self.presentation_refs.added),
            "presentations_removed": len(self.presentation_refs.removed),
            "presentations_modified": len(self.presentation_refs.modified),
            "metadata_changed": len(self.metadata.changed),
            "metadata_added": len(self.metadata.added),
            "metadata_removed": len(self.metadata.removed),
        }

    def has_changes(self) -> bool:
        """Check if there are any changes."""
        return any(self.counts().values())

    def summary_line(self) -> str:
        """Generate a one-line summary of the diff."""
        if not self.has_changes():
            return "No changes"

        labels = {
            "messages_added": "messages added",
            "messages_removed": "messages removed",
            "messages_modified": "messages modified",
            "presentations_added": "presentations added",
            "presentations_removed": "presentations removed",
            "presentations_modified": "presentations modified",
            "metadata_added": "metadata keys added",
            "metadata_removed": "metadata keys removed",
            "metadata_changed": "metadata keys changed",
        }
        return ", ".join(
            f"{count} {labels[name]}" for name, count in self.counts().items() if count
        )

    def format(self) -> str:
        """Format diff for display."""
        lines = []
        lines.append("=" * 60)
        lines.append(f"Diff: {self.session_id} {self.comparison}")
        lines.append("=" * 60)
        lines.append("")
        lines.append(f"Summary: {self.summary_line()}")
        lines.append("")

        if self.messages.added or self.messages.removed:
            lines.append("Messages:")
            lines.append("-" * 60)
            for message in self.messages.added:
                lines.append(f"+ [{message.get('role')}] {str(message.get('content'))[:50]}")
            for message in self.messages.removed:
                lines.append(f"- [{message.get('role')}] {str(message.get('content'))[:50]}")
            lines.append("")

        if self.presentation_refs.added or self.presentation_refs.removed:
            lines.append("Presentations:")
            lines.append("-" * 60)
            for ref in self.presentation_refs.added:
                lines.append(f"+ {ref.get('title')} ({ref.get('slide_count')} slides)")
            for ref in self.presentation_refs.removed:
                lines.append(f"- {ref.get('title')} ({ref.get('slide_count')} slides)")
            lines.append("")

        if self.metadata.added or self.metadata.removed or self.metadata.changed:
            lines.append("Metadata:")
            lines.append("-" * 60)
            for key, value in self.metadata.added.items():
                lines.append(f"+ {key}: {value}")
            for key, value in self.metadata.removed.items():
                lines.append(f"- {key}: {value}")
            for key, change in self.metadata.changed.items():
                lines.append(f"  {key}: {change.old_value} -> {change.new_value}")
            lines.append("")

        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "comparison": self.comparison,
            "generated_at": self.generated_at.isoformat(),
            "messages": self.messages.to_dict(),
            "presentation_refs": self.presentation_refs.to_dict(),
            "metadata": self.metadata.to_dict(),
            "summary": self.counts(),
        }


def strict_equal(a: Any, b: Any) -> bool:
    """Value equality that also requires matching types, so ``1`` differs from ``True``."""
    if type(a) is not type(b):
        return False
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(strict_equal(a[k], b[k]) for k in a)
    if isinstance(a, list):
        return len(a) == len(b) and all(strict_equal(x, y) for x, y in zip(a, b))
    return a == b


def diff_lists(
    list_a: Sequence[Dict[str, Any]],
    list_b: Sequence[Dict[str, Any]],
    key: str,
    detect_modified: bool = False,
) -> ListDiff:
    """
    Compare two lists of records by identifier.

    Every id of A union B lands in exactly one of ``added``, ``removed`` or
    ``common``; ``common`` holds the B-side element.

    Args:
        list_a: Old records
        list_b: New records
        key: Identifier field
        detect_modified: Also report common-id elements whose content differs

    Returns:
        ListDiff
    """
    items_a = {item.get(key): item for item in list_a}
    ids_b = {item.get(key) for item in list_b}

    result = ListDiff()
    for item in list_b:
        item_id = item.get(key)
        if item_id not in items_a:
            result.added.append(item)
            continue
        result.common.append(item)
        if detect_modified and not strict_equal(items_a[item_id], item):
            result.modified.append(
                ElementChange(id=item_id, before=items_a[item_id], after=item)
            )

    result.removed = [item for item in list_a if item.get(key) not in ids_b]
    return result


def diff_maps(map_a: Dict[str, Any], map_b: Dict[str, Any]) -> MapDiff:
    """Compare two metadata maps key by key."""
    result = MapDiff()
    for key in list(map_a) + [k for k in map_b if k not in map_a]:
        if key not in map_a:
            result.added[key] = map_b[key]
        elif key not in map_b:
            result.removed[key] = map_a[key]
        elif not strict_equal(map_a[key], map_b[key]):
            result.changed[key] = ValueChange(old_value=map_a[key], new_value=map_b[key])
        else:
            result.unchanged[key] = map_a[key]
    return result


def diff_snapshots(
    snapshot_a: Snapshot, snapshot_b: Snapshot, detect_modified: bool = False
) -> Dict[str, Any]:
    """Diff the three fields of two snapshots."""
    a = snapshot_a.model_dump(mode="json")
    b = snapshot_b.model_dump(mode="json")
    return {
        "messages": diff_lists(a["messages"], b["messages"], MESSAGE_KEY, detect_modified),
        "presentation_refs": diff_lists(
            a["presentation_refs"], b["presentation_refs"], PRESENTATION_KEY, detect_modified
        ),
        "metadata": diff_maps(a["metadata"], b["metadata"]),
    }


def compute_diff(
    version_a: Version, version_b: Version, detect_modified: bool = False
) -> DiffResult:
    """
    Compute diff between two versions.

    Args:
        version_a: Old version
        version_b: New version
        detect_modified: Report field-level changes of common-id elements

    Returns:
        DiffResult showing all changes
    """
    fields = diff_snapshots(version_a.data, version_b.data, detect_modified)
    return DiffResult(
        session_id=version_b.session_id,
        from_version_id=version_a.version_id,
        to_version_id=version_b.version_id,
        **fields,
    )
