"""
Custom exceptions for the session ledger.

Every public operation either returns a complete result or raises one of
these typed errors.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        session_id: str | None = None,
        version_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.session_id = session_id
        self.version_id = version_id

    def with_context(
        self,
        operation: str | None = None,
        session_id: str | None = None,
        version_id: str | None = None,
    ) -> "LedgerError":
        """Fill in context that is not already set and return self."""
        self.operation = self.operation or operation
        self.session_id = self.session_id or session_id
        self.version_id = self.version_id or version_id
        return self

    def __str__(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.session_id:
            context.append(f"session={self.session_id}")
        if self.version_id:
            context.append(f"version={self.version_id}")
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"


class NotFound(LedgerError):
    """A session or version id does not resolve."""

    pass


class ValidationError(LedgerError):
    """Input is missing required fields or is wrong-shaped."""

    def __init__(self, message: str, errors: list[str] | None = None, **context: str | None):
        super().__init__(message, **context)
        self.errors = errors or []


class VersionLimitExceeded(ValidationError):
    """The session reached its configured version cap."""

    pass


class StoreUnavailable(LedgerError):
    """The backing document store cannot be reached."""

    pass


class ConflictError(LedgerError):
    """A concurrent writer changed a document read by a transaction."""

    pass


@contextmanager
def error_context(
    operation: str, session_id: str | None = None, version_id: str | None = None
) -> Iterator[None]:
    """Annotate ledger errors raised inside the block with the failing operation."""
    try:
        yield
    except LedgerError as e:
        raise e.with_context(operation, session_id, version_id)
