"""
In-process document store.

Used by tests and by single-process deployments that do not need
durability. Documents are deep-copied on every read and write.
"""

import copy
import threading
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from session_ledger.errors import ConflictError, StoreUnavailable
from session_ledger.store.base import DocumentStore, Transaction


class MemoryDocumentStore(DocumentStore):
    """
    Dict-backed document store.

    Storage layout: ``{collection: {doc_id: (revision, document)}}``.
    Revisions come from a store-wide counter and are never reused.
    A single lock serializes transaction commits.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Tuple[int, Dict[str, Any]]]] = {}
        self._lock = threading.RLock()
        self._clock = 0
        self._closed = False
        logger.debug("Initialized MemoryDocumentStore")

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailable("Memory document store is closed")

    def _read(
        self, collection: str, doc_id: str
    ) -> Tuple[Optional[Dict[str, Any]], Optional[int]]:
        with self._lock:
            self._check_open()
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                return None, None
            revision, document = entry
            return copy.deepcopy(document), revision

    def _scan(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            self._check_open()
            return [
                (doc_id, copy.deepcopy(document))
                for doc_id, (_, document) in self._collections.get(collection, {}).items()
            ]

    def _commit(self, txn: Transaction) -> None:
        with self._lock:
            self._check_open()

            for (collection, doc_id), read_revision in txn.reads.items():
                entry = self._collections.get(collection, {}).get(doc_id)
                current = entry[0] if entry else None
                if current != read_revision:
                    raise ConflictError(
                        f"Document {collection}/{doc_id} changed during transaction"
                    )

            touched = set()
            for write in txn.writes:
                key = (write.collection, write.doc_id)
                if write.kind == "create" and key not in touched:
                    if write.doc_id in self._collections.get(write.collection, {}):
                        raise ConflictError(
                            f"Document {write.collection}/{write.doc_id} already exists"
                        )
                touched.add(key)

            for write in txn.writes:
                documents = self._collections.setdefault(write.collection, {})
                if write.kind == "delete":
                    documents.pop(write.doc_id, None)
                    continue
                self._clock += 1
                documents[write.doc_id] = (self._clock, copy.deepcopy(write.document))

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._collections.clear()
