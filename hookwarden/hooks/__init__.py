"""
Lifecycle Hooks Module

This module provides a deterministic dispatcher for assistant lifecycle events.
Rules are data-described policy checks; the dispatcher runs every applicable
rule for an event and folds their verdicts into a single decision.

Event kinds:
- PromptSubmit: After the user submits a prompt
- PostToolWrite: After a tool wrote a file
- SessionStop: When the assistant tries to end the session

Example usage:
    from hookwarden.hooks import Dispatcher, RuleRegistry, PromptSubmit, Verdict, rule
    from hookwarden.ledger import LedgerStore

    @rule("no-force-push", ["PromptSubmit"])
    def no_force_push(event, ledger):
        if "force push" in event.prompt.lower():
            return Verdict.block("force pushes are not allowed here")

    dispatcher = Dispatcher(RuleRegistry([no_force_push]), LedgerStore(".hookwarden"))
    decision = dispatcher.handle(PromptSubmit(session_id="s1", prompt="force push main"))
"""

from .types import (
    Decision,
    Event,
    EventKind,
    PostToolWrite,
    PromptSubmit,
    SessionStop,
    Severity,
    Verdict,
)
from .registry import FunctionRule, Rule, RuleRegistry, rule
from .dispatcher import Dispatcher
from .host import event_from_hook_input, todos_from_hook_input

__all__ = [
    'Decision', 'Dispatcher', 'Event', 'EventKind', 'FunctionRule', 'PostToolWrite',
    'PromptSubmit', 'Rule', 'RuleRegistry', 'SessionStop', 'Severity', 'Verdict',
    'event_from_hook_input', 'rule', 'todos_from_hook_input',
]
