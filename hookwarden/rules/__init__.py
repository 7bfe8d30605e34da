"""
Built-in rules.

Each rule is registered under the ``type`` name used in rule configuration.
"""

from .comments import CommentPolicyValidator
from .keyword import KeywordDetector
from .skills import SkillReminder
from .todos import TodoEnforcer

BUILTIN_RULES = {
    cls.type_name: cls
    for cls in (KeywordDetector, SkillReminder, CommentPolicyValidator, TodoEnforcer)
}

__all__ = [
    "BUILTIN_RULES",
    "CommentPolicyValidator",
    "KeywordDetector",
    "SkillReminder",
    "TodoEnforcer",
]
