"""
SQLAlchemy ORM models for the SQL document store.

One table holds every collection; sub-collections are distinguished by
their collection path.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import sqlalchemy as sa
from sqlalchemy import JSON, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class DocumentRecord(Base):
    """
    A stored document.

    ``revision`` is SQLAlchemy's version counter: every UPDATE is issued
    as ``... WHERE revision = <loaded revision>`` and fails with
    ``StaleDataError`` when another writer got there first.
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(sa.String(512), primary_key=True)
    doc_id: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    body: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    revision: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __mapper_args__ = {"version_id_col": revision}

    __table_args__ = (Index("idx_documents_collection", "collection"),)

    def __repr__(self) -> str:
        return f"<DocumentRecord({self.collection}/{self.doc_id} r{self.revision})>"
