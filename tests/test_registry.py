"""
Tests for the rule registry.

Tests cover:
- Loading from configuration and ConfigError cases
- Scope handling and resolution order
- Function rules and the rule decorator
"""

import pytest

from hookwarden.errors import ConfigError
from hookwarden.hooks.registry import FunctionRule, Rule, RuleRegistry, rule
from hookwarden.hooks.types import EventKind, PostToolWrite, PromptSubmit, SessionStop, Verdict
from hookwarden.rules import CommentPolicyValidator, KeywordDetector, TodoEnforcer


def _todo(rule_id="todos", **extra):
    return {"id": rule_id, "type": "todo_enforcer", "applies_to": ["SessionStop"], **extra}


class TestRegistryLoad:
    """Tests for RuleRegistry.load."""

    def test_load_builtin_rules(self, default_configs):
        registry = RuleRegistry.load(default_configs)
        assert registry.rule_ids == ["keyword-detector", "skill-reminder", "comment-policy", "todo-enforcer"]
        assert isinstance(registry.get("keyword-detector"), KeywordDetector)
        assert isinstance(registry.get("comment-policy"), CommentPolicyValidator)
        assert isinstance(registry.get("todo-enforcer"), TodoEnforcer)
        assert len(registry) == 4

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ConfigError) as exc_info:
            RuleRegistry.load([_todo("same"), _todo("same")])
        assert exc_info.value.rule_id == "same"

    def test_empty_applies_to_rejected(self):
        with pytest.raises(ConfigError) as exc_info:
            RuleRegistry.load([_todo(applies_to=[])])
        assert "applies_to" in str(exc_info.value)

    def test_unknown_event_kind_rejected(self):
        with pytest.raises(ConfigError):
            RuleRegistry.load([_todo(applies_to=["PreToolUse"])])

    def test_bad_scope_rejected(self):
        with pytest.raises(ConfigError) as exc_info:
            RuleRegistry.load([_todo(scope="src/{a,b")])
        assert exc_info.value.rule_id == "todos"

    def test_unknown_type_rejected(self):
        with pytest.raises(ConfigError):
            RuleRegistry.load([{"id": "x", "type": "mystery", "applies_to": ["SessionStop"]}])

    def test_unknown_parameters_rejected(self):
        with pytest.raises(ConfigError):
            RuleRegistry.load([_todo(parameters={"strict": True})])

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigError):
            RuleRegistry.load([_todo(severity="block")])

    def test_missing_id_rejected(self):
        with pytest.raises(ConfigError):
            RuleRegistry.load([{"type": "todo_enforcer"}])

    def test_camel_case_applies_to_accepted(self):
        registry = RuleRegistry.load([{"id": "t", "type": "todo_enforcer", "appliesTo": ["SessionStop"]}])
        assert registry.get("t").applies_to == frozenset({EventKind.SessionStop})

    def test_default_applies_to_used_when_omitted(self):
        registry = RuleRegistry.load([{"id": "t", "type": "todo_enforcer"}])
        assert registry.get("t").applies_to == frozenset({EventKind.SessionStop})

    def test_disabled_rules_skipped(self):
        registry = RuleRegistry.load([_todo("a"), _todo("b", enabled=False)])
        assert registry.rule_ids == ["a"]

    def test_direct_construction_rejects_duplicates(self):
        first = TodoEnforcer("dup")
        second = TodoEnforcer("dup")
        with pytest.raises(ConfigError):
            RuleRegistry([first, second])


class TestRegistryResolve:
    """Tests for RuleRegistry.resolve."""

    def _registry(self):
        def allow(event, ledger):
            return Verdict.allow()

        return RuleRegistry([
            FunctionRule("all-writes", [EventKind.PostToolWrite], allow),
            FunctionRule("solidity", [EventKind.PostToolWrite], allow, scope="**/*.sol"),
            FunctionRule("prompts", [EventKind.PromptSubmit], allow),
            FunctionRule("scoped-prompts", [EventKind.PromptSubmit], allow, scope="**/*.sol"),
            FunctionRule("writes-and-stops", ["PostToolWrite", "SessionStop"], allow),
        ])

    def test_resolve_filters_by_kind_and_scope(self):
        registry = self._registry()
        sol = PostToolWrite(session_id="s", file_path="contracts/payments.sol", content="")
        ts = PostToolWrite(session_id="s", file_path="web/app.ts", content="")

        assert [r.id for r in registry.resolve(sol)] == ["all-writes", "solidity", "writes-and-stops"]
        assert [r.id for r in registry.resolve(ts)] == ["all-writes", "writes-and-stops"]
        assert [r.id for r in registry.resolve(SessionStop(session_id="s"))] == ["writes-and-stops"]

    def test_scope_only_filters_file_writes(self):
        registry = self._registry()
        resolved = registry.resolve(PromptSubmit(session_id="s", prompt="x"))
        assert [r.id for r in resolved] == ["prompts", "scoped-prompts"]

    def test_multi_kind_scoped_rule(self):
        audit = FunctionRule(
            "audit", [EventKind.PromptSubmit, EventKind.PostToolWrite], lambda e, l: None, scope="**/*.sol",
        )
        registry = RuleRegistry([audit])

        assert registry.resolve(PromptSubmit(session_id="s", prompt="x")) == [audit]
        assert registry.resolve(PostToolWrite(session_id="s", file_path="a/b.sol")) == [audit]
        assert registry.resolve(PostToolWrite(session_id="s", file_path="a/b.ts")) == []

    def test_resolve_is_deterministic(self):
        registry = self._registry()
        event = PostToolWrite(session_id="s", file_path="a.sol", content="")
        first = [r.id for r in registry.resolve(event)]
        for _ in range(20):
            assert [r.id for r in registry.resolve(event)] == first

    def test_empty_registry_resolves_nothing(self):
        assert RuleRegistry().resolve(SessionStop(session_id="s")) == []


class TestFunctionRules:
    """Tests for plain-callable rules."""

    def test_rule_decorator(self):
        @rule("no-secrets", ["PostToolWrite"], scope="**/*.env")
        def no_secrets(event, ledger):
            if "SECRET" in event.content:
                return Verdict.block("secret written")

        assert isinstance(no_secrets, Rule)
        assert no_secrets.id == "no-secrets"
        assert no_secrets.scope == "**/*.env"

        event = PostToolWrite(session_id="s", file_path="prod.env", content="SECRET=1")
        assert no_secrets.evaluate(event, None).message == "secret written"

    def test_none_result_is_allow(self):
        @rule("noop", ["SessionStop"])
        def noop(event, ledger):
            return None

        assert noop.evaluate(SessionStop(session_id="s"), None).is_allow
