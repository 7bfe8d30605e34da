"""
hookwarden - lifecycle hook dispatcher and policy-rule engine for coding assistants.
"""

from .errors import ConfigError, HookwardenError, LedgerIOError, RuleEvaluationError
from .hooks import (
    Decision,
    Dispatcher,
    EventKind,
    PostToolWrite,
    PromptSubmit,
    Rule,
    RuleRegistry,
    SessionStop,
    Severity,
    Verdict,
)
from .ledger import LedgerStore, SessionLedger, TodoItem

__version__ = "0.1.0"
