"""
Hook types and data structures for the dispatcher.

Events are a tagged variant over the closed EventKind set. Each variant
carries only the fields relevant to its kind and validates them when it is
constructed, so rules never have to re-check payload shape.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..ledger.types import SessionLedger


class EventKind(Enum):
    """
    Lifecycle events emitted by the assistant host.

    - PromptSubmit: After the user submits a prompt, before it reaches the model
    - PostToolWrite: After a tool wrote or edited a file
    - SessionStop: When the assistant tries to end the session
    """
    PromptSubmit = "prompt_submit"
    PostToolWrite = "post_tool_write"
    SessionStop = "session_stop"

    @classmethod
    def parse(cls, value: Any) -> "EventKind":
        """Accept an EventKind, its name (``PromptSubmit``) or value (``prompt_submit``)."""
        if isinstance(value, cls):
            return value
        for kind in cls:
            if value in (kind.name, kind.value):
                return kind
        raise ValueError(f"Unknown event kind: {value!r}")


def _require_text(name: str, value: Any, allow_empty: bool = True) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    if not allow_empty and not value.strip():
        raise ValueError(f"{name} must not be empty")


class Event:
    """Common interface of every event variant."""

    kind: ClassVar[EventKind]
    session_id: str
    timestamp: datetime

    @property
    def path(self) -> Optional[str]:
        """Target path of the event, or None for kinds that carry no path."""
        return None

    def _validate_common(self) -> None:
        _require_text("session_id", self.session_id, allow_empty=False)
        if not isinstance(self.timestamp, datetime):
            raise ValueError("timestamp must be a datetime")
        if self.timestamp.tzinfo is not None:
            # ledger times are naive local
            object.__setattr__(self, "timestamp", self.timestamp.astimezone().replace(tzinfo=None))

    def to_dict(self) -> Dict[str, Any]:
        """Convert the event to a dictionary for serialization."""
        return {
            "kind": self.kind.name,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class PromptSubmit(Event):
    """A prompt submitted by the user."""
    session_id: str
    prompt: str
    timestamp: datetime = field(default_factory=datetime.now)

    kind: ClassVar[EventKind] = EventKind.PromptSubmit

    def __post_init__(self):
        self._validate_common()
        _require_text("prompt", self.prompt)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["prompt"] = self.prompt
        return data


@dataclass(frozen=True)
class PostToolWrite(Event):
    """A completed file write: the target path and the content or diff written."""
    session_id: str
    file_path: str
    content: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    kind: ClassVar[EventKind] = EventKind.PostToolWrite

    def __post_init__(self):
        self._validate_common()
        _require_text("file_path", self.file_path, allow_empty=False)
        _require_text("content", self.content)

    @property
    def path(self) -> Optional[str]:
        return self.file_path

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.file_path
        data["content"] = self.content
        return data


@dataclass(frozen=True)
class SessionStop(Event):
    """
    The assistant is about to stop.

    ``final`` is False when only the current turn ends and the session goes
    on; the ledger is kept for the next turn in that case.
    """
    session_id: str
    timestamp: datetime = field(default_factory=datetime.now)
    final: bool = True

    kind: ClassVar[EventKind] = EventKind.SessionStop

    def __post_init__(self):
        self._validate_common()
        if not isinstance(self.final, bool):
            raise ValueError(f"final must be a boolean, got {type(self.final).__name__}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["final"] = self.final
        return data


EVENT_TYPES = {
    EventKind.PromptSubmit: PromptSubmit,
    EventKind.PostToolWrite: PostToolWrite,
    EventKind.SessionStop: SessionStop,
}


class Severity(IntEnum):
    """Verdict severity. Block dominates Warn dominates Allow."""
    ALLOW = 0
    WARN = 1
    BLOCK = 2

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Verdict:
    """
    Outcome of a single rule.

    Attributes:
        severity: Allow, Warn or Block
        message: Human-readable explanation (required for Warn and Block)
    """
    severity: Severity = Severity.ALLOW
    message: Optional[str] = None

    def __post_init__(self):
        if self.severity is not Severity.ALLOW and not self.message:
            raise ValueError(f"{self.severity.label} verdict requires a message")

    @classmethod
    def allow(cls) -> "Verdict":
        """Create a verdict that lets the event proceed."""
        return cls(Severity.ALLOW)

    @classmethod
    def warn(cls, message: str) -> "Verdict":
        """Create an advisory verdict."""
        return cls(Severity.WARN, message)

    @classmethod
    def block(cls, message: str) -> "Verdict":
        """Create a verdict that stops the event."""
        return cls(Severity.BLOCK, message)

    @property
    def is_allow(self) -> bool:
        return self.severity is Severity.ALLOW

    def to_dict(self) -> Dict[str, Any]:
        return {"verdict": self.severity.label, "message": self.message}


BLOCK_EXIT_CODE = 2


@dataclass
class Decision:
    """
    Aggregated outcome of one dispatcher invocation.

    Attributes:
        verdict: Most severe verdict over all evaluated rules
        messages: Non-allow messages, one per contributing rule, in registry order
        session_id: Session the event belonged to
        results: (rule_id, verdict) for every evaluated rule, in registry order
        ledger: Updated ledger snapshot after persistence (None if unavailable)
    """
    verdict: Severity = Severity.ALLOW
    messages: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    results: List[Tuple[str, Verdict]] = field(default_factory=list)
    ledger: Optional["SessionLedger"] = None

    @classmethod
    def aggregate(
        cls,
        results: List[Tuple[str, Verdict]],
        session_id: Optional[str] = None,
    ) -> "Decision":
        """Fold per-rule verdicts into one decision, preserving rule order."""
        verdict = max((v.severity for _, v in results), default=Severity.ALLOW)
        messages = [f"[{rule_id}] {v.message}" for rule_id, v in results if not v.is_allow]
        return cls(verdict=verdict, messages=messages, session_id=session_id, results=list(results))

    @classmethod
    def blocked(cls, message: str, session_id: Optional[str] = None) -> "Decision":
        """Create a decision that blocks with a single infrastructure message."""
        return cls(verdict=Severity.BLOCK, messages=[message], session_id=session_id)

    @property
    def exit_code(self) -> int:
        """Process exit status for hosts that gate on exit code alone."""
        return BLOCK_EXIT_CODE if self.verdict is Severity.BLOCK else 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert decision to dictionary for serialization."""
        return {
            "verdict": self.verdict.label,
            "messages": list(self.messages),
            "session_id": self.session_id,
            "rules": [
                {"id": rule_id, **verdict.to_dict()} for rule_id, verdict in self.results
            ],
        }
