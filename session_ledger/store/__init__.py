"""
Document store backends for the session ledger.
"""

from typing import Optional

from session_ledger.config import StoreConfig

from .base import (
    DocumentStore,
    Filter,
    Transaction,
    apply_update,
    subcollection,
)
from .memory import MemoryDocumentStore
from .sql import SqlDocumentStore


def build_store(store_config: Optional[StoreConfig] = None) -> DocumentStore:
    """Create the document store selected by configuration."""
    store_config = store_config or StoreConfig()
    if store_config.backend == "sql":
        return SqlDocumentStore(store_config.database_url, echo=store_config.echo)
    return MemoryDocumentStore()


__all__ = [
    "DocumentStore",
    "Filter",
    "Transaction",
    "apply_update",
    "subcollection",
    "MemoryDocumentStore",
    "SqlDocumentStore",
    "build_store",
]
