"""
Comment Policy Validator - checks comments in written source files.

Two kinds of policy are applied to every comment the write added:

- banned patterns: regexes matched against the comment text, each with its
  own id and severity (default: a TODO/FIXME without an owner is a warning)
- redundant comments: a comment that only restates the code it sits on or
  directly above (``// increments the counter`` over ``counter++``)

When the written content is a unified diff, only added lines are checked and
line numbers refer to the new file.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Set, Tuple

from rapidfuzz import fuzz, process

from ..errors import ConfigError
from ..hooks.registry import Rule
from ..hooks.types import Event, EventKind, PostToolWrite, Severity, Verdict
from ..ledger.types import LedgerView
from ..matcher import compile_text

SEVERITIES = {"warn": Severity.WARN, "block": Severity.BLOCK}

HASH_COMMENT_SUFFIXES = {
    ".py", ".pyi", ".sh", ".bash", ".zsh", ".rb", ".pl", ".r",
    ".yaml", ".yml", ".toml", ".cfg", ".ini", ".mk", ".cmake",
}
DASH_COMMENT_SUFFIXES = {".sql", ".lua", ".hs", ".elm"}

DEFAULT_BANNED = [
    {
        "id": "todo-without-owner",
        "pattern": r"(?-i:\b(?:TODO|FIXME|XXX)\b)(?!\s*\()",
        "severity": "warn",
        "message": "marker without an owner, use TODO(name)",
    },
]

HUNK_HEADER_PATTERN = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")
IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
WORD_PART_PATTERN = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")
ASSIGNMENT_PATTERN = re.compile(r"(?<![=!<>+\-*/%&|^:])=(?!=)")

STOPWORDS = {
    "a", "an", "the", "this", "that", "these", "those", "to", "of", "and", "or",
    "is", "are", "it", "its", "we", "here", "then", "by", "with", "in", "on",
    "at", "from", "into", "now", "just", "value", "variable", "one", "new",
}

WORD_ALIASES = {
    "increment": "increment", "increas": "increment", "increase": "increment", "bump": "increment",
    "decrement": "decrement", "decreas": "decrement", "decrease": "decrement",
    "set": "assign", "assign": "assign", "store": "assign", "sav": "assign", "save": "assign",
    "invoke": "call", "invok": "call", "call": "call",
    "append": "add", "add": "add", "plus": "add",
    "loop": "for", "iterate": "for", "iterat": "for", "while": "for",
    "check": "if",
}

OPERATOR_WORDS = [
    ("++", ("increment",)),
    ("--", ("decrement",)),
    ("+=", ("increment", "add")),
    ("-=", ("decrement",)),
]

MAX_REDUNDANT_WORDS = 12


@dataclass(frozen=True)
class SourceLine:
    number: int
    text: str
    added: bool = True


@dataclass(frozen=True)
class Comment:
    line: int
    text: str
    raw: str
    code: str


@dataclass(frozen=True)
class BannedPattern:
    id: str
    pattern: Pattern[str]
    severity: Severity
    message: str


@dataclass(frozen=True)
class Violation:
    line: int
    policy_id: str
    severity: Severity
    detail: str

    def describe(self) -> str:
        return f"line {self.line}: {self.detail} ({self.policy_id})"


def is_unified_diff(content: str) -> bool:
    return any(HUNK_HEADER_PATTERN.match(line) for line in content.splitlines())


def source_lines(content: str) -> List[SourceLine]:
    """
    Lines of the new file version, flagged with whether the write added them.

    Plain content counts as entirely added. For unified diffs, removed lines
    are dropped and context lines are kept (unflagged) so a comment can be
    compared with unchanged code right below it.
    """
    if not is_unified_diff(content):
        return [SourceLine(i, text) for i, text in enumerate(content.splitlines(), start=1)]

    lines = []
    number = None
    for raw in content.splitlines():
        header = HUNK_HEADER_PATTERN.match(raw)
        if header:
            number = int(header.group(1))
            continue
        if number is None or raw.startswith(("+++", "---", "\\")):
            continue
        if raw.startswith("+"):
            lines.append(SourceLine(number, raw[1:], added=True))
            number += 1
        elif raw.startswith("-"):
            continue
        else:
            lines.append(SourceLine(number, raw[1:] if raw.startswith(" ") else raw, added=False))
            number += 1
    return lines


def comment_markers(path: str) -> Tuple[str, ...]:
    suffix = PurePosixPath(path).suffix.lower()
    if suffix in HASH_COMMENT_SUFFIXES:
        return ("#",)
    if suffix in DASH_COMMENT_SUFFIXES:
        return ("--",)
    return ("//",)


def _split_comment(text: str, markers: Tuple[str, ...]) -> Optional[Tuple[str, str]]:
    """Split a line into (code, comment text), or None if it has no comment."""
    stripped = text.strip()
    if "//" in markers and (stripped.startswith("/*") or stripped == "*" or stripped.startswith("* ")):
        body = stripped.lstrip("/*").rstrip()
        if body.endswith("*/"):
            body = body[:-2]
        return "", body.strip()

    for marker in markers:
        match = re.search(r"(?:^|(?<=\s))" + re.escape(marker), text)
        if match:
            code = text[:match.start()].rstrip()
            body = text[match.end():].lstrip(marker[0]).strip()
            return code, body
    return None


def extract_comments(lines: List[SourceLine], markers: Tuple[str, ...]) -> List[Comment]:
    """
    Comments on added lines, each paired with the code it describes.

    A trailing comment describes the code before it on the same line. A
    full-line comment describes the line directly below it, if that line is
    code.
    """
    split = [_split_comment(line.text, markers) for line in lines]
    comments = []
    for i, line in enumerate(lines):
        if not line.added or split[i] is None:
            continue
        code, body = split[i]
        if not body:
            continue
        if not code and i + 1 < len(lines):
            below = lines[i + 1]
            if below.number == line.number + 1 and below.text.strip() and split[i + 1] is None:
                code = below.text.strip()
        comments.append(Comment(line=line.number, text=body, raw=line.text.strip(), code=code))
    return comments


def _stem(word: str) -> str:
    if word.endswith("ss"):
        return word
    for suffix in ("ing", "ed", "es", "s"):
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            return word[:-len(suffix)]
    return word


def _canonical(word: str) -> str:
    word = word.lower()
    if word in WORD_ALIASES:
        return WORD_ALIASES[word]
    stem = _stem(word)
    return WORD_ALIASES.get(stem, stem)


def comment_words(text: str) -> List[str]:
    words = [w.lower() for w in re.findall(r"[A-Za-z]+", text)]
    return [_canonical(w) for w in words if w not in STOPWORDS]


def code_words(code: str) -> Set[str]:
    """Identifier parts and operator meanings of a line of code."""
    words = set()
    for identifier in IDENTIFIER_PATTERN.findall(code):
        for part in WORD_PART_PATTERN.findall(identifier):
            words.add(_canonical(part))
    for operator, meanings in OPERATOR_WORDS:
        if operator in code:
            words.update(meanings)
    if ASSIGNMENT_PATTERN.search(code):
        words.add("assign")
    if re.search(r"[A-Za-z_]\w*\s*\(", code):
        words.add("call")
    return words


def restates_code(comment: str, code: str, threshold: float) -> bool:
    """Check whether every meaningful word of a comment already appears in the code."""
    words = comment_words(comment)
    if not words or len(words) > MAX_REDUNDANT_WORDS:
        return False
    vocabulary = sorted(code_words(code))
    if not vocabulary:
        return False
    return all(
        process.extractOne(word, vocabulary, scorer=fuzz.ratio, score_cutoff=threshold) is not None
        for word in words
    )


class CommentPolicyValidator(Rule):
    """Block or warn on comments that break the comment policy."""

    type_name = "comment_policy"
    default_applies_to = (EventKind.PostToolWrite,)

    def __init__(
        self,
        rule_id: str,
        applies_to: Optional[Iterable[Any]] = None,
        scope: Optional[str] = None,
        banned: Optional[Iterable[Mapping[str, Any]]] = None,
        redundant: Any = True,
    ):
        super().__init__(rule_id, applies_to, scope)
        self.banned = [self._parse_banned(entry, i) for i, entry in enumerate(DEFAULT_BANNED if banned is None else banned)]
        self.redundant_severity, self.redundant_threshold = self._parse_redundant(redundant)

    def _parse_severity(self, value: Any) -> Severity:
        severity = SEVERITIES.get(str(value).lower())
        if severity is None:
            raise ConfigError(f"severity must be 'warn' or 'block', got {value!r}", self.id)
        return severity

    def _parse_banned(self, entry: Mapping[str, Any], index: int) -> BannedPattern:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("pattern"), str):
            raise ConfigError(f"banned entry #{index + 1} needs a 'pattern' string", self.id)
        try:
            pattern = compile_text(entry["pattern"], regex=True)
        except ConfigError as e:
            raise ConfigError(str(e), self.id) from e
        return BannedPattern(
            id=str(entry.get("id") or f"banned-{index + 1}"),
            pattern=pattern,
            severity=self._parse_severity(entry.get("severity", "warn")),
            message=str(entry.get("message") or "banned comment"),
        )

    def _parse_redundant(self, redundant: Any) -> Tuple[Optional[Severity], float]:
        if redundant is False or redundant is None:
            return None, 0.0
        if redundant is True:
            return Severity.WARN, 85.0
        if not isinstance(redundant, Mapping):
            raise ConfigError("redundant must be a boolean or a mapping", self.id)
        threshold = redundant.get("threshold", 85)
        if not isinstance(threshold, (int, float)) or not 0 < threshold <= 100:
            raise ConfigError("redundant.threshold must be in (0, 100]", self.id)
        return self._parse_severity(redundant.get("severity", "warn")), float(threshold)

    def violations(self, path: str, content: str) -> List[Violation]:
        """All policy violations in the comments a write added, in line order."""
        found = []
        for comment in extract_comments(source_lines(content), comment_markers(path)):
            for banned in self.banned:
                if banned.pattern.search(comment.text):
                    found.append(Violation(
                        comment.line, banned.id, banned.severity,
                        f"{banned.message}: '{comment.raw}'",
                    ))
            if (
                self.redundant_severity is not None
                and comment.code
                and restates_code(comment.text, comment.code, self.redundant_threshold)
            ):
                found.append(Violation(
                    comment.line, "redundant-comment", self.redundant_severity,
                    f"comment restates the code '{comment.code}': '{comment.raw}'",
                ))
        return found

    def evaluate(self, event: Event, ledger: LedgerView) -> Verdict:
        if not isinstance(event, PostToolWrite) or not event.content:
            return Verdict.allow()

        found = self.violations(event.file_path, event.content)
        if not found:
            return Verdict.allow()

        severity = max(v.severity for v in found)
        message = f"{len(found)} comment policy violation(s) in {event.file_path}: " + "; ".join(
            v.describe() for v in found
        )
        return Verdict.block(message) if severity is Severity.BLOCK else Verdict.warn(message)
