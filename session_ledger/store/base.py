"""
Abstract document store consumed by the session ledger.

Documents are JSON-compatible dicts addressed by ``(collection, doc_id)``.
Nested sub-collections are plain collection paths built with
:func:`subcollection`. Every stored document carries an integer revision
that the store bumps on each write; transactions use it for optimistic
concurrency control.
"""

import copy
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from loguru import logger

from session_ledger.errors import ConflictError, NotFound, ValidationError

_MISSING = object()

FILTER_OPERATORS = ("==", "!=", ">=", "<=", "array-contains-any")


def subcollection(collection: str, parent_id: str, name: str) -> str:
    """Build the path of a sub-collection scoped under a parent document."""
    return f"{collection}/{parent_id}/{name}"


def get_path(document: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted field path, returning ``_MISSING`` when absent."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def apply_update(document: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge-patch ``fields`` into a copy of ``document``.

    Dotted keys address nested fields; intermediate dicts are created.
    """
    merged = copy.deepcopy(document)
    for key, value in fields.items():
        target = merged
        parts = key.split(".")
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = copy.deepcopy(value)
    return merged


@dataclass(frozen=True)
class Filter:
    """A single field predicate used by :meth:`DocumentStore.query`."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPERATORS:
            raise ValidationError(f"Unsupported filter operator: {self.op}")

    def matches(self, document: Dict[str, Any]) -> bool:
        actual = get_path(document, self.field)
        if self.op == "==":
            return actual is not _MISSING and actual == self.value
        if self.op == "!=":
            return actual is _MISSING or actual != self.value
        if actual is _MISSING or actual is None:
            return False
        if self.op == ">=":
            return bool(actual >= self.value)
        if self.op == "<=":
            return bool(actual <= self.value)
        # array-contains-any
        return isinstance(actual, list) and any(v in actual for v in self.value)


def select(
    documents: Iterable[Dict[str, Any]],
    filters: Sequence[Filter] = (),
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """Filter, order and page documents. Documents lacking ``order_by`` sort last."""
    matched = [d for d in documents if all(f.matches(d) for f in filters)]

    if order_by:
        present = [d for d in matched if get_path(d, order_by) not in (_MISSING, None)]
        absent = [d for d in matched if get_path(d, order_by) in (_MISSING, None)]
        present.sort(key=lambda d: get_path(d, order_by), reverse=descending)
        matched = present + absent

    if offset:
        matched = matched[offset:]
    if limit is not None:
        matched = matched[:limit]
    return matched


@dataclass(frozen=True)
class Write:
    """A buffered transaction write."""

    kind: str  # "create", "set" or "delete"
    collection: str
    doc_id: str
    document: Optional[Dict[str, Any]] = None


class Transaction:
    """
    Buffered unit of work against a :class:`DocumentStore`.

    Reads record the revision they observed; writes are buffered and only
    applied when the store commits the transaction. Reads see the
    transaction's own buffered writes.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self.reads: Dict[Tuple[str, str], Optional[int]] = {}
        self.writes: List[Write] = []
        self._staged: Dict[Tuple[str, str], Optional[Dict[str, Any]]] = {}

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        key = (collection, doc_id)
        if key in self._staged:
            staged = self._staged[key]
            return copy.deepcopy(staged) if staged is not None else None

        document, revision = self._store._read(collection, doc_id)
        self.reads.setdefault(key, revision)
        return document

    def create(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        """Write a document that must not exist when the transaction commits."""
        self._stage(Write("create", collection, doc_id, copy.deepcopy(document)))

    def set(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        self._stage(Write("set", collection, doc_id, copy.deepcopy(document)))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        current = self.get(collection, doc_id)
        if current is None:
            raise NotFound(f"Document {collection}/{doc_id} not found")
        self._stage(Write("set", collection, doc_id, apply_update(current, fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._stage(Write("delete", collection, doc_id))

    def _stage(self, write: Write) -> None:
        self.writes.append(write)
        self._staged[(write.collection, write.doc_id)] = write.document


class DocumentStore(ABC):
    """
    Key/document store with sub-collections and optimistic transactions.

    Backends implement :meth:`_read`, :meth:`_scan`, :meth:`_commit` and
    :meth:`close`; every public operation is built on those primitives.
    """

    #: Attempts made by single-document read-modify-write helpers.
    write_attempts: int = 5

    @staticmethod
    def subcollection(collection: str, parent_id: str, name: str) -> str:
        return subcollection(collection, parent_id, name)

    # -- backend primitives -------------------------------------------------

    @abstractmethod
    def _read(self, collection: str, doc_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[int]]:
        """Return ``(document copy, revision)`` or ``(None, None)``."""

    @abstractmethod
    def _scan(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Return ``(doc_id, document copy)`` pairs of a collection."""

    @abstractmethod
    def _commit(self, txn: Transaction) -> None:
        """Verify read revisions and apply buffered writes atomically."""

    @abstractmethod
    def close(self) -> None:
        """Release backend resources."""

    # -- public API ---------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Open a transaction; it commits when the block exits normally.

        Raises:
            ConflictError: If a document read by the transaction changed, or a
                created document already exists, before commit
        """
        txn = Transaction(self)
        yield txn
        if txn.writes:
            self._commit(txn)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        document, _ = self._read(collection, doc_id)
        return document

    def set(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        with self.transaction() as txn:
            txn.set(collection, doc_id, document)

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge-patch fields into an existing document."""
        self._modify(collection, doc_id, lambda doc: apply_update(doc, fields))

    def delete(self, collection: str, doc_id: str) -> bool:
        with self.transaction() as txn:
            existed = txn.get(collection, doc_id) is not None
            if existed:
                txn.delete(collection, doc_id)
        return existed

    def array_union(
        self, collection: str, doc_id: str, field: str, values: Sequence[Any]
    ) -> None:
        """Append values missing from a list field without losing concurrent appends."""

        def union(document: Dict[str, Any]) -> Dict[str, Any]:
            current = get_path(document, field)
            items = list(current) if isinstance(current, list) else []
            for value in values:
                if value not in items:
                    items.append(value)
            return apply_update(document, {field: items})

        self._modify(collection, doc_id, union)

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        documents = [doc for _, doc in self._scan(collection)]
        return select(documents, filters, order_by, descending, limit, offset)

    def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        return len(self.query(collection, filters))

    def delete_collection(self, collection: str) -> int:
        """Delete every document of a collection; returns how many were removed."""
        doc_ids = [doc_id for doc_id, _ in self._scan(collection)]
        if not doc_ids:
            return 0
        with self.transaction() as txn:
            for doc_id in doc_ids:
                txn.delete(collection, doc_id)
        return len(doc_ids)

    def _modify(
        self,
        collection: str,
        doc_id: str,
        modify: Callable[[Dict[str, Any]], Dict[str, Any]],
    ) -> None:
        """Read-modify-write one document, retrying on concurrent changes."""
        for attempt in range(1, self.write_attempts + 1):
            try:
                with self.transaction() as txn:
                    current = txn.get(collection, doc_id)
                    if current is None:
                        raise NotFound(f"Document {collection}/{doc_id} not found")
                    txn.set(collection, doc_id, modify(current))
                return
            except ConflictError:
                if attempt == self.write_attempts:
                    raise
                logger.debug(
                    f"Retrying write to {collection}/{doc_id}",
                    attempt=attempt,
                )
