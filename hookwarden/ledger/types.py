"""
Session ledger data structures.

The ledger is the only state that survives between events of a session.
Rules never touch it directly: they receive a LedgerView, which exposes a
read-only snapshot and stages the few updates a rule is allowed to make.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple


@dataclass
class TodoItem:
    """A unit of work the assistant said it would do."""
    text: str
    done: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "done": self.done}

    @classmethod
    def from_dict(cls, data: Any) -> "TodoItem":
        if isinstance(data, str):
            return cls(text=data)
        return cls(text=str(data["text"]), done=bool(data.get("done", False)))


@dataclass
class KeywordHit:
    """Multiset entry for a keyword seen in this session."""
    count: int
    first_seen: datetime
    last_seen: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeywordHit":
        first_seen = _parse_time(data["first_seen"])
        return cls(
            count=int(data.get("count", 1)),
            first_seen=first_seen,
            last_seen=_parse_time(data.get("last_seen", first_seen)),
        )


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class SessionLedger:
    """
    Durable per-session state.

    Attributes:
        session_id: Session this ledger belongs to
        todos: Ordered todo items recorded by the assistant
        reminded_skills: Skill ids already surfaced this session
        seen_keywords: Keyword -> hit count and first/last seen time
        created: When the ledger was first created
        updated: Last time an event touched the ledger
    """
    session_id: str
    todos: List[TodoItem] = field(default_factory=list)
    reminded_skills: Set[str] = field(default_factory=set)
    seen_keywords: Dict[str, KeywordHit] = field(default_factory=dict)
    created: datetime = field(default_factory=datetime.now)
    updated: datetime = field(default_factory=datetime.now)

    @property
    def outstanding_todos(self) -> List[TodoItem]:
        return [todo for todo in self.todos if not todo.done]

    def is_idle(self, now: datetime, timeout_seconds: Optional[float]) -> bool:
        """Check whether the ledger has not been touched within the timeout."""
        if not timeout_seconds or timeout_seconds <= 0:
            return False
        return (now - self.updated).total_seconds() > timeout_seconds

    def record_keyword(self, keyword: str, when: datetime) -> None:
        hit = self.seen_keywords.get(keyword)
        if hit is None:
            self.seen_keywords[keyword] = KeywordHit(count=1, first_seen=when, last_seen=when)
        else:
            hit.count += 1
            hit.last_seen = when

    def apply(self, update: "LedgerUpdate") -> None:
        """Apply the staged updates of one rule."""
        for keyword, when in update.keyword_hits:
            self.record_keyword(keyword, when)
        self.reminded_skills.update(update.reminded_skills)

    def copy(self) -> "SessionLedger":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert ledger to a plain dictionary (sorted for stable output)."""
        return {
            "session_id": self.session_id,
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
            "todos": [todo.to_dict() for todo in self.todos],
            "reminded_skills": sorted(self.reminded_skills),
            "seen_keywords": {
                keyword: hit.to_dict() for keyword, hit in sorted(self.seen_keywords.items())
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionLedger":
        now = datetime.now()
        return cls(
            session_id=str(data["session_id"]),
            todos=[TodoItem.from_dict(item) for item in data.get("todos") or []],
            reminded_skills=set(data.get("reminded_skills") or []),
            seen_keywords={
                str(keyword): KeywordHit.from_dict(hit)
                for keyword, hit in (data.get("seen_keywords") or {}).items()
            },
            created=_parse_time(data.get("created", now)),
            updated=_parse_time(data.get("updated", now)),
        )


@dataclass
class LedgerUpdate:
    """Mutations a single rule asked for during evaluation."""
    keyword_hits: List[Tuple[str, datetime]] = field(default_factory=list)
    reminded_skills: Set[str] = field(default_factory=set)

    def __bool__(self) -> bool:
        return bool(self.keyword_hits or self.reminded_skills)


class LedgerView:
    """
    Read-only view of a ledger snapshot handed to one rule.

    Reads always reflect the snapshot taken before any rule ran, so rules
    cannot observe each other's staged changes. Writes are limited to
    keyword hits and skill reminders and are only applied by the dispatcher
    after the rule returns successfully.
    """

    def __init__(self, ledger: SessionLedger):
        self._ledger = ledger
        self.update = LedgerUpdate()

    @property
    def session_id(self) -> str:
        return self._ledger.session_id

    @property
    def todos(self) -> Tuple[TodoItem, ...]:
        return tuple(TodoItem(todo.text, todo.done) for todo in self._ledger.todos)

    @property
    def reminded_skills(self) -> frozenset:
        return frozenset(self._ledger.reminded_skills)

    @property
    def seen_keywords(self) -> Mapping[str, KeywordHit]:
        return MappingProxyType(self._ledger.seen_keywords)

    def keyword_hit(self, keyword: str) -> Optional[KeywordHit]:
        return self._ledger.seen_keywords.get(keyword)

    def mark_keyword_seen(self, keyword: str, when: datetime) -> None:
        self.update.keyword_hits.append((keyword, when))

    def remind_skills(self, skill_ids: Iterable[str]) -> None:
        self.update.reminded_skills.update(skill_ids)
