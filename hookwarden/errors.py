"""
Error taxonomy for the hook dispatcher.

- ConfigError: malformed rule or registry definition, fatal at startup
- RuleEvaluationError: one rule's logic failed, downgraded to a warning
- LedgerIOError: session ledger could not be read or written
"""

from typing import Optional


class HookwardenError(Exception):
    """Base class for all hookwarden errors."""


class ConfigError(HookwardenError):
    """Raised when a rule or registry definition is invalid."""

    def __init__(self, message: str, rule_id: Optional[str] = None):
        self.rule_id = rule_id
        if rule_id:
            message = f"rule '{rule_id}': {message}"
        super().__init__(message)


class RuleEvaluationError(HookwardenError):
    """Raised (and recovered) when a rule fails while evaluating an event."""

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"rule {rule_id} failed: {reason}")


class LedgerIOError(HookwardenError):
    """Raised when the session ledger cannot be loaded or persisted."""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"session ledger for '{session_id}' unavailable: {reason}")
