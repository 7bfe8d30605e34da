"""
Session ledger: durable per-session state shared across events.

Stored as markdown files with YAML frontmatter for human-readable,
agent-friendly persistence.
"""

from .types import KeywordHit, LedgerUpdate, LedgerView, SessionLedger, TodoItem
from .store import LedgerStore

__all__ = [
    "KeywordHit",
    "LedgerStore",
    "LedgerUpdate",
    "LedgerView",
    "SessionLedger",
    "TodoItem",
]
