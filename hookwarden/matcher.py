"""
Pattern matching for rule scopes and text content.

Two pattern families are supported:
- filesystem globs (``**``, ``*``, ``?``, ``[...]``, ``{a,b}``) anchored to the
  full relative path, used for rule scopes
- case-insensitive literal or regex search, used for prompt and comment text

Compilation raises ConfigError so bad patterns are rejected when rules are
loaded. The ``matches``/``search_text`` helpers never raise.
"""

import re
from functools import lru_cache
from typing import Optional, Pattern, Union

from .errors import ConfigError


def normalize_path(path: str) -> str:
    """Normalize a path for glob matching (forward slashes, no leading ./)."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def _translate_class(pattern: str, start: int) -> tuple[str, int]:
    """Translate a ``[...]`` character class beginning at ``start``."""
    n = len(pattern)
    j = start + 1
    if j < n and pattern[j] in "!^":
        j += 1
    if j < n and pattern[j] == "]":
        j += 1
    while j < n and pattern[j] != "]":
        j += 1
    if j >= n:
        raise ConfigError(f"unterminated character class in glob {pattern!r}")

    body = pattern[start + 1:j]
    negate = body[:1] in ("!", "^")
    if negate:
        body = body[1:]
    body = body.replace("\\", "\\\\").replace("[", "\\[")
    return ("[^" if negate else "[") + body + "]", j + 1


def _translate_glob(pattern: str) -> str:
    out = []
    depth = 0
    i = 0
    n = len(pattern)

    while i < n:
        c = pattern[i]
        if c == "*":
            j = i
            while j < n and pattern[j] == "*":
                j += 1
            if j - i == 1:
                out.append("[^/]*")
            elif (i == 0 or pattern[i - 1] == "/") and j < n and pattern[j] == "/":
                # "**/" matches zero or more whole directories
                out.append("(?:.*/)?")
                j += 1
            else:
                out.append(".*")
            i = j
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            translated, i = _translate_class(pattern, i)
            out.append(translated)
        elif c == "{":
            depth += 1
            out.append("(?:")
            i += 1
        elif c == "}":
            if depth == 0:
                raise ConfigError(f"unbalanced '}}' in glob {pattern!r}")
            depth -= 1
            out.append(")")
            i += 1
        elif c == "," and depth > 0:
            out.append("|")
            i += 1
        elif c == "\\" and i + 1 < n:
            out.append(re.escape(pattern[i + 1]))
            i += 2
        else:
            out.append(re.escape(c))
            i += 1

    if depth:
        raise ConfigError(f"unbalanced '{{' in glob {pattern!r}")
    return "".join(out)


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> Pattern[str]:
    """
    Compile a filesystem glob into a regex anchored to the whole path.

    Args:
        pattern: Glob such as ``src/**/*.{ts,tsx}``

    Returns:
        Compiled regex; use ``fullmatch`` against a normalized relative path

    Raises:
        ConfigError: If the pattern is empty or malformed
    """
    if not isinstance(pattern, str) or not pattern.strip():
        raise ConfigError(f"empty glob pattern: {pattern!r}")
    try:
        return re.compile(_translate_glob(normalize_path(pattern)), re.DOTALL)
    except re.error as e:
        raise ConfigError(f"invalid glob {pattern!r}: {e}") from e


def matches(pattern: str, candidate: Optional[str]) -> bool:
    """
    Check whether a path matches a glob. Never raises.

    Malformed patterns and non-string patterns or candidates simply do not match.
    """
    if not isinstance(pattern, str) or not isinstance(candidate, str):
        return False
    try:
        compiled = compile_glob(pattern)
    except ConfigError:
        return False
    return compiled.fullmatch(normalize_path(candidate)) is not None


def compile_text(pattern: str, regex: bool = False) -> Pattern[str]:
    """
    Compile a case-insensitive text pattern.

    Args:
        pattern: Literal phrase, or a regular expression when ``regex`` is set
        regex: Treat ``pattern`` as a regular expression

    Raises:
        ConfigError: If the pattern is empty or not a valid regex
    """
    if not isinstance(pattern, str) or not pattern:
        raise ConfigError(f"empty text pattern: {pattern!r}")
    source = pattern if regex else re.escape(pattern)
    try:
        return re.compile(source, re.IGNORECASE)
    except re.error as e:
        raise ConfigError(f"invalid regex {pattern!r}: {e}") from e


def search_text(pattern: Union[str, Pattern[str]], text: Optional[str]) -> Optional[re.Match]:
    """Case-insensitive search of ``text``. Never raises; returns the match or None."""
    if not isinstance(text, str):
        return None
    if isinstance(pattern, str):
        try:
            pattern = compile_text(pattern)
        except ConfigError:
            return None
    return pattern.search(text)
