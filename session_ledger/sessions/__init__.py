"""
Sessions: working copies, versioned mutations and the session service.
"""

from .models import (
    DEFAULT_SESSION_SETTINGS,
    BranchInfo,
    Session,
    SessionCreateRequest,
    SessionPage,
    SessionStatus,
    SessionSummary,
    SessionUpdate,
)
from .operations import BranchManager, RevertOperator, run_in_transaction
from .service import SessionService

__all__ = [
    # Models
    "DEFAULT_SESSION_SETTINGS",
    "BranchInfo",
    "Session",
    "SessionCreateRequest",
    "SessionPage",
    "SessionStatus",
    "SessionSummary",
    "SessionUpdate",
    # Operations
    "BranchManager",
    "RevertOperator",
    "run_in_transaction",
    # Service
    "SessionService",
]
