"""
Skill Reminder - points the assistant at skills relevant to a prompt.

The skill -> trigger terms mapping comes from outside this package. It can
be given inline, as a YAML file mapping skill ids to term lists, or as a
directory of ``<skill>/SKILL.md`` files whose YAML frontmatter carries
``name`` and ``triggers``. When a SKILL.md has no ``triggers`` list, the
double-quoted phrases in its ``description`` are used instead.
"""

import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple

import yaml

from ..errors import ConfigError
from ..hooks.registry import Rule
from ..hooks.types import Event, EventKind, PromptSubmit, Verdict
from ..ledger.types import LedgerView
from ..logger import logger
from ..matcher import compile_text

QUOTED_TERM_PATTERN = re.compile(r'"([^"\n]{2,60})"')
SKILL_FRONTMATTER_PATTERN = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


def _as_terms(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set)):
        return [str(term) for term in value if str(term).strip()]
    return []


def load_skills_file(path: str) -> Dict[str, List[str]]:
    """Load a YAML mapping of skill id -> trigger terms."""
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read skills file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"skills file {path} must contain a mapping")
    return {str(skill_id): _as_terms(terms) for skill_id, terms in data.items()}


def load_skills_dir(path: str) -> Dict[str, List[str]]:
    """
    Collect trigger terms from ``<skill>/SKILL.md`` frontmatter.

    Args:
        path: Directory holding one subdirectory per skill

    Returns:
        Skill id -> trigger terms, for every skill that declares any
    """
    root = Path(path)
    if not root.is_dir():
        raise ConfigError(f"skills directory {path} does not exist")

    skills: Dict[str, List[str]] = {}
    for skill_file in sorted(root.glob("*/SKILL.md")):
        try:
            content = skill_file.read_text(encoding="utf-8")
            match = SKILL_FRONTMATTER_PATTERN.match(content)
            meta = yaml.safe_load(match.group(1)) if match else None
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read {skill_file}: {e}") from e
        if not isinstance(meta, dict):
            logger.debug(f"[rules] {skill_file} has no frontmatter, skipping")
            continue

        skill_id = str(meta.get("name") or skill_file.parent.name)
        terms = _as_terms(meta.get("triggers"))
        if not terms:
            terms = QUOTED_TERM_PATTERN.findall(str(meta.get("description") or ""))
        if terms:
            skills[skill_id] = terms
        else:
            logger.debug(f"[rules] Skill {skill_id} declares no trigger terms")
    return skills


class SkillReminder(Rule):
    """Warn once per session about each skill whose trigger terms appear in a prompt."""

    type_name = "skill_reminder"
    default_applies_to = (EventKind.PromptSubmit,)

    def __init__(
        self,
        rule_id: str,
        applies_to: Optional[Iterable[Any]] = None,
        scope: Optional[str] = None,
        skills: Optional[Mapping[str, Any]] = None,
        skills_file: Optional[str] = None,
        skills_dir: Optional[str] = None,
    ):
        super().__init__(rule_id, applies_to, scope)

        mapping: Dict[str, List[str]] = {}
        try:
            if skills:
                if not isinstance(skills, Mapping):
                    raise ConfigError("skills must map skill ids to trigger terms")
                mapping.update({str(k): _as_terms(v) for k, v in skills.items()})
            if skills_file:
                mapping.update(load_skills_file(skills_file))
            if skills_dir:
                mapping.update(load_skills_dir(skills_dir))
        except ConfigError as e:
            raise ConfigError(str(e), rule_id) from e

        self.skills: List[Tuple[str, List[Pattern[str]]]] = []
        for skill_id in sorted(mapping):
            terms = mapping[skill_id]
            if not terms:
                raise ConfigError(f"skill {skill_id!r} has no trigger terms", rule_id)
            patterns = [
                compile_text(r"(?<!\w)" + re.escape(term.strip()) + r"(?!\w)", regex=True)
                for term in terms
            ]
            self.skills.append((skill_id, patterns))

        if not self.skills:
            raise ConfigError("no skills configured", rule_id)

    def matching_skills(self, prompt: str) -> List[str]:
        """Skill ids whose trigger terms appear in the prompt, sorted."""
        return [
            skill_id for skill_id, patterns in self.skills
            if any(p.search(prompt) for p in patterns)
        ]

    def evaluate(self, event: Event, ledger: LedgerView) -> Verdict:
        if not isinstance(event, PromptSubmit):
            return Verdict.allow()

        already = ledger.reminded_skills
        remaining = [s for s in self.matching_skills(event.prompt) if s not in already]
        if not remaining:
            return Verdict.allow()

        ledger.remind_skills(remaining)
        return Verdict.warn(
            f"relevant skill(s) for this prompt: {', '.join(remaining)}; consider loading them before starting"
        )
