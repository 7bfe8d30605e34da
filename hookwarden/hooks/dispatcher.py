"""
Dispatcher for lifecycle events.

The Dispatcher receives one event, selects the applicable rules from the
registry, runs them against the session ledger, aggregates their verdicts
into a Decision and persists any ledger changes the rules staged.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

from ..errors import LedgerIOError, RuleEvaluationError
from ..ledger.store import LedgerStore
from ..ledger.types import LedgerUpdate, LedgerView, SessionLedger
from ..logger import logger
from .registry import Rule, RuleRegistry
from .types import Decision, Event, EventKind, Severity, Verdict

RuleOutcome = Tuple[str, Verdict, Optional[LedgerUpdate]]


class Dispatcher:
    """
    Evaluates events against a rule registry.

    Calls for the same session are serialized through the ledger store's
    session lock; calls for different sessions run independently.

    Example:
        dispatcher = Dispatcher(RuleRegistry.load(configs), LedgerStore(".hookwarden"))
        decision = dispatcher.handle(PromptSubmit(session_id="s1", prompt="migrate the db"))
        if decision.verdict is Severity.BLOCK:
            ...
    """

    def __init__(self, registry: RuleRegistry, store: LedgerStore, max_workers: int = 1):
        """
        Initialize the dispatcher.

        Args:
            registry: Rules to evaluate
            store: Persistence for session ledgers
            max_workers: Evaluate rules in a thread pool of this size when > 1
        """
        self._registry = registry
        self._registry_lock = threading.Lock()
        self.store = store
        self.max_workers = max(1, int(max_workers))

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    def replace_registry(self, registry: RuleRegistry) -> None:
        """Swap in a new registry. Calls already running keep the old one."""
        with self._registry_lock:
            self._registry = registry
        logger.info(f"[dispatcher] Registry replaced ({len(registry)} rules)")

    def handle(self, event: Event) -> Decision:
        """
        Evaluate one event and return the aggregated decision.

        Never raises for per-event failures: a failing rule becomes a
        warning, and an unusable ledger turns the decision into a block.
        """
        registry = self._registry
        session_id = event.session_id

        try:
            with self.store.lock(session_id):
                return self._handle_locked(event, registry)
        except LedgerIOError as e:
            logger.error(f"[dispatcher] Ledger failure for {session_id}: {e}")
            return Decision.blocked(
                f"[ledger] {e}; blocking because session state cannot be tracked reliably",
                session_id=session_id,
            )

    def _handle_locked(self, event: Event, registry: RuleRegistry) -> Decision:
        session_id = event.session_id
        ledger = self.store.load(session_id, now=event.timestamp)

        rules = registry.resolve(event)
        if not rules:
            logger.debug(f"[dispatcher] No rules for {event.kind.name} in {session_id}")
            decision = Decision(session_id=session_id, ledger=ledger)
            if self._ends_session(event):
                self.store.delete(session_id)
            return decision

        outcomes = self._evaluate_all(rules, event, ledger)

        updated = ledger.copy()
        for rule_id, verdict, update in outcomes:
            if update:
                updated.apply(update)
        updated.updated = max(updated.updated, event.timestamp)

        decision = Decision.aggregate(
            [(rule_id, verdict) for rule_id, verdict, _ in outcomes],
            session_id=session_id,
        )

        if self._ends_session(event) and decision.verdict is Severity.ALLOW:
            self.store.delete(session_id)
            logger.info(f"[dispatcher] Session {session_id} ended cleanly, ledger removed")
        else:
            self.store.save(updated)
        decision.ledger = updated

        logger.debug(
            f"[dispatcher] {event.kind.name} in {session_id}: {decision.verdict.label} "
            f"({len(rules)} rules, {len(decision.messages)} messages)"
        )
        return decision

    @staticmethod
    def _ends_session(event: Event) -> bool:
        return event.kind is EventKind.SessionStop and event.final

    def _evaluate_all(self, rules: List[Rule], event: Event, ledger: SessionLedger) -> List[RuleOutcome]:
        if self.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(rules))) as pool:
                return list(pool.map(lambda r: self._evaluate(r, event, ledger), rules))
        return [self._evaluate(r, event, ledger) for r in rules]

    def _evaluate(self, rule: Rule, event: Event, ledger: SessionLedger) -> RuleOutcome:
        """Run a single rule in isolation; failures become warnings."""
        view = LedgerView(ledger)
        try:
            verdict = rule.evaluate(event, view)
            if verdict is None:
                verdict = Verdict.allow()
            elif not isinstance(verdict, Verdict):
                raise TypeError(f"returned {type(verdict).__name__} instead of a Verdict")
        except Exception as e:
            error = RuleEvaluationError(rule.id, str(e) or type(e).__name__)
            logger.error(f"[dispatcher] {error}", exc_info=True)
            return rule.id, Verdict.warn(str(error)), None
        return rule.id, verdict, view.update
