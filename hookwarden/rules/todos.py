"""
Todo Enforcer - refuses to end a session with unfinished todos.
"""

from typing import Any, Iterable, Optional

from ..hooks.registry import Rule
from ..hooks.types import Event, EventKind, Verdict
from ..ledger.types import LedgerView


class TodoEnforcer(Rule):
    """Block SessionStop while any recorded todo is still open."""

    type_name = "todo_enforcer"
    default_applies_to = (EventKind.SessionStop,)

    def __init__(
        self,
        rule_id: str,
        applies_to: Optional[Iterable[Any]] = None,
        scope: Optional[str] = None,
    ):
        super().__init__(rule_id, applies_to, scope)

    def evaluate(self, event: Event, ledger: LedgerView) -> Verdict:
        outstanding = [todo.text for todo in ledger.todos if not todo.done]
        if not outstanding:
            return Verdict.allow()

        items = "\n".join(f"  - {text}" for text in outstanding)
        return Verdict.block(
            f"{len(outstanding)} outstanding todo(s); complete or cancel them before ending the session:\n{items}"
        )
