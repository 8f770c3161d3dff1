"""
Session Ledger - versioned conversation sessions

Keeps an append-only history of immutable snapshots for every chat
session, with revert, branch and diff on top of a pluggable document
store.
"""

__version__ = "0.1.0"

# Configuration is available at top level for convenience
from session_ledger.config import config

__all__ = ["config", "__version__"]
