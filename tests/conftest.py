"""
Shared fixtures for the hookwarden test suite.
"""

import pytest

from hookwarden.hooks import Dispatcher, RuleRegistry
from hookwarden.ledger import LedgerStore


@pytest.fixture
def ledger_dir(tmp_path):
    """Temporary directory for ledger storage."""
    path = tmp_path / "ledger"
    return str(path)


@pytest.fixture
def store(ledger_dir):
    """Ledger store without an idle timeout."""
    return LedgerStore(ledger_dir)


@pytest.fixture
def keyword_config():
    return {
        "id": "keyword-detector",
        "type": "keyword_detector",
        "applies_to": ["PromptSubmit"],
        "parameters": {
            "keywords": [
                {"keyword": "refactor", "suggestion": "consider the rigorous-coding skill"},
                {"keyword": "migrate", "suggestion": "check the migration checklist"},
            ],
        },
    }


@pytest.fixture
def default_configs(keyword_config):
    """Rule configuration covering every built-in rule."""
    return [
        keyword_config,
        {
            "id": "skill-reminder",
            "type": "skill_reminder",
            "applies_to": ["PromptSubmit"],
            "parameters": {"skills": {"rigorous-coding": ["refactor"], "db-migrations": ["schema"]}},
        },
        {
            "id": "comment-policy",
            "type": "comment_policy",
            "applies_to": ["PostToolWrite"],
            "scope": "**/*.sol",
            "parameters": {"redundant": {"severity": "block"}},
        },
        {
            "id": "todo-enforcer",
            "type": "todo_enforcer",
            "applies_to": ["SessionStop"],
        },
    ]


@pytest.fixture
def make_dispatcher(store):
    """Factory building a dispatcher from rule configs or Rule instances."""
    def factory(rules, **kwargs):
        rules = list(rules)
        if rules and isinstance(rules[0], dict):
            registry = RuleRegistry.load(rules)
        else:
            registry = RuleRegistry(rules)
        return Dispatcher(registry, store, **kwargs)
    return factory
