"""
SQLAlchemy-backed document store.

Provides durable storage for sessions and their version sub-collections
with optimistic transactions on top of the ``documents`` table.
"""

import copy
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from session_ledger.errors import ConflictError, StoreUnavailable
from session_ledger.logging import track_store_operation
from session_ledger.store.base import DocumentStore, Transaction
from session_ledger.store.models import Base, DocumentRecord


class SqlDocumentStore(DocumentStore):
    """
    Document store persisted through SQLAlchemy.

    Example:
        >>> store = SqlDocumentStore("sqlite:///session_ledger.db")
        >>> store.set("sessions", "abc", {"title": "Quarterly deck"})
        >>> store.get("sessions", "abc")
        {'title': 'Quarterly deck'}
    """

    def __init__(
        self,
        database_url: str = "sqlite:///session_ledger.db",
        echo: bool = False,
    ):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy database URL
            echo: Whether to echo SQL statements (for debugging)

        Raises:
            StoreUnavailable: If the database cannot be reached
        """
        self.database_url = database_url
        self._closed = False
        try:
            self.engine = create_engine(database_url, echo=echo)
            self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

            # Create tables if they don't exist
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Cannot open document store at {database_url}: {e}",
                operation="connect",
            ) from e

        logger.info(f"Initialized SqlDocumentStore: {database_url}")

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailable(f"Document store {self.database_url} is closed")

    @track_store_operation("read")
    def _read(
        self, collection: str, doc_id: str
    ) -> Tuple[Optional[Dict[str, Any]], Optional[int]]:
        self._check_open()
        try:
            with self.SessionLocal() as session:
                record = session.get(DocumentRecord, (collection, doc_id))
                if record is None:
                    return None, None
                return copy.deepcopy(record.body), record.revision
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Failed to read {collection}/{doc_id}: {e}", operation="read"
            ) from e

    @track_store_operation("scan")
    def _scan(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        self._check_open()
        try:
            with self.SessionLocal() as session:
                records = (
                    session.query(DocumentRecord)
                    .filter(DocumentRecord.collection == collection)
                    .all()
                )
                return [(r.doc_id, copy.deepcopy(r.body)) for r in records]
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                f"Failed to scan {collection}: {e}", operation="scan"
            ) from e

    @track_store_operation("commit")
    def _commit(self, txn: Transaction) -> None:
        self._check_open()
        try:
            with self.SessionLocal() as session:
                for (collection, doc_id), read_revision in txn.reads.items():
                    record = session.get(DocumentRecord, (collection, doc_id))
                    current = record.revision if record is not None else None
                    if current != read_revision:
                        raise ConflictError(
                            f"Document {collection}/{doc_id} changed during transaction"
                        )

                for write in txn.writes:
                    record = session.get(DocumentRecord, (write.collection, write.doc_id))
                    if write.kind == "delete":
                        if record is not None:
                            session.delete(record)
                    elif record is None:
                        session.add(
                            DocumentRecord(
                                collection=write.collection,
                                doc_id=write.doc_id,
                                body=write.document,
                            )
                        )
                    elif write.kind == "create":
                        raise ConflictError(
                            f"Document {write.collection}/{write.doc_id} already exists"
                        )
                    else:
                        record.body = write.document
                    session.flush()

                session.commit()
        except (StaleDataError, IntegrityError) as e:
            raise ConflictError(f"Concurrent write detected: {e}") from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to commit transaction: {e}", operation="commit") from e

    def close(self) -> None:
        """Close database connections."""
        self._closed = True
        self.engine.dispose()
        logger.info("Closed SqlDocumentStore")
