"""
Keyword Detector - flags trigger phrases in submitted prompts.

Each keyword warns once per session. Later mentions are counted in the
ledger's seen_keywords but stay quiet, unless a cooldown is configured and
the keyword has not been seen for that long.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional, Pattern

from ..errors import ConfigError
from ..hooks.registry import Rule
from ..hooks.types import Event, EventKind, PromptSubmit, Verdict
from ..ledger.types import KeywordHit, LedgerView
from ..matcher import compile_text


@dataclass(frozen=True)
class KeywordTrigger:
    keyword: str
    suggestion: str
    pattern: Pattern[str]


class KeywordDetector(Rule):
    """Warn the first time each configured keyword shows up in a session."""

    type_name = "keyword_detector"
    default_applies_to = (EventKind.PromptSubmit,)

    def __init__(
        self,
        rule_id: str,
        applies_to: Optional[Iterable[Any]] = None,
        scope: Optional[str] = None,
        keywords: Iterable[Any] = (),
        cooldown_seconds: Optional[float] = None,
    ):
        super().__init__(rule_id, applies_to, scope)
        self.triggers = self._parse_keywords(keywords)
        if cooldown_seconds is not None and (
            not isinstance(cooldown_seconds, (int, float)) or cooldown_seconds <= 0
        ):
            raise ConfigError("cooldown_seconds must be a positive number", rule_id)
        self.cooldown_seconds = cooldown_seconds

    def _parse_keywords(self, keywords: Iterable[Any]) -> List[KeywordTrigger]:
        triggers = []
        seen = set()
        for entry in keywords or ():
            if isinstance(entry, str):
                entry = {"keyword": entry}
            if not isinstance(entry, dict) or not isinstance(entry.get("keyword"), str):
                raise ConfigError(f"keyword entry must have a 'keyword' string: {entry!r}", self.id)

            keyword = entry["keyword"]
            if keyword in seen:
                raise ConfigError(f"keyword {keyword!r} listed twice", self.id)
            seen.add(keyword)

            try:
                pattern = compile_text(keyword, regex=bool(entry.get("regex", False)))
            except ConfigError as e:
                raise ConfigError(str(e), self.id) from e
            triggers.append(KeywordTrigger(keyword, str(entry.get("suggestion") or ""), pattern))

        if not triggers:
            raise ConfigError("at least one keyword is required", self.id)
        return triggers

    def _should_warn(self, hit: Optional[KeywordHit], now: datetime) -> bool:
        if hit is None:
            return True
        if self.cooldown_seconds is None:
            return False
        return (now - hit.last_seen).total_seconds() >= self.cooldown_seconds

    def evaluate(self, event: Event, ledger: LedgerView) -> Verdict:
        if not isinstance(event, PromptSubmit):
            return Verdict.allow()

        fresh = []
        for trigger in self.triggers:
            if not trigger.pattern.search(event.prompt):
                continue
            if self._should_warn(ledger.keyword_hit(trigger.keyword), event.timestamp):
                fresh.append(trigger)
            ledger.mark_keyword_seen(trigger.keyword, event.timestamp)

        if not fresh:
            return Verdict.allow()

        parts = []
        for trigger in fresh:
            text = f"keyword '{trigger.keyword}' detected"
            if trigger.suggestion:
                text += f": {trigger.suggestion}"
            parts.append(text)
        return Verdict.warn("; ".join(parts))
