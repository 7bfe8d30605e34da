"""
Tests for events, verdicts and decisions.

Tests cover:
- EventKind parsing
- Event variants and construction-time validation
- Verdict factories and severity ordering
- Decision aggregation and serialization
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest

from hookwarden.hooks.types import (
    Decision,
    EventKind,
    PostToolWrite,
    PromptSubmit,
    SessionStop,
    Severity,
    Verdict,
)


class TestEventKind:
    """Tests for the EventKind enum."""

    def test_all_kinds_exist(self):
        assert EventKind.PromptSubmit.value == "prompt_submit"
        assert EventKind.PostToolWrite.value == "post_tool_write"
        assert EventKind.SessionStop.value == "session_stop"
        assert len(EventKind) == 3

    @pytest.mark.parametrize("value", ["PromptSubmit", "prompt_submit", EventKind.PromptSubmit])
    def test_parse(self, value):
        assert EventKind.parse(value) is EventKind.PromptSubmit

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            EventKind.parse("PreToolUse")


class TestEvents:
    """Tests for the event variants."""

    def test_prompt_submit(self):
        event = PromptSubmit(session_id="s1", prompt="hello")
        assert event.kind is EventKind.PromptSubmit
        assert event.path is None
        assert isinstance(event.timestamp, datetime)

    def test_post_tool_write_exposes_path(self):
        event = PostToolWrite(session_id="s1", file_path="src/a.py", content="x = 1\n")
        assert event.kind is EventKind.PostToolWrite
        assert event.path == "src/a.py"

    def test_session_stop_carries_only_identity(self):
        event = SessionStop(session_id="s1")
        assert event.kind is EventKind.SessionStop
        assert event.path is None

    def test_aware_timestamp_becomes_naive_local(self):
        aware = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        event = PromptSubmit(session_id="s1", prompt="hi", timestamp=aware)
        assert event.timestamp.tzinfo is None
        assert event.timestamp == aware.astimezone().replace(tzinfo=None)

    def test_events_are_immutable(self):
        event = PromptSubmit(session_id="s1", prompt="hello")
        with pytest.raises(FrozenInstanceError):
            event.prompt = "changed"

    @pytest.mark.parametrize("session_id", ["", "   ", None, 42])
    def test_session_id_validated(self, session_id):
        with pytest.raises(ValueError):
            SessionStop(session_id=session_id)

    def test_prompt_must_be_text(self):
        with pytest.raises(ValueError):
            PromptSubmit(session_id="s1", prompt=None)

    def test_write_requires_path(self):
        with pytest.raises(ValueError):
            PostToolWrite(session_id="s1", file_path="", content="x")

    def test_to_dict(self):
        event = PostToolWrite(session_id="s1", file_path="a.sol", content="x")
        data = event.to_dict()
        assert data["kind"] == "PostToolWrite"
        assert data["session_id"] == "s1"
        assert data["path"] == "a.sol"
        assert data["content"] == "x"
        assert "timestamp" in data


class TestVerdict:
    """Tests for the Verdict value type."""

    def test_factories(self):
        assert Verdict.allow().severity is Severity.ALLOW
        assert Verdict.warn("careful").message == "careful"
        assert Verdict.block("stop").severity is Severity.BLOCK

    def test_severity_ordering(self):
        assert Severity.ALLOW < Severity.WARN < Severity.BLOCK

    def test_non_allow_requires_message(self):
        with pytest.raises(ValueError):
            Verdict.warn("")
        with pytest.raises(ValueError):
            Verdict(Severity.BLOCK)


class TestDecision:
    """Tests for decision aggregation."""

    def test_empty_results_allow(self):
        decision = Decision.aggregate([])
        assert decision.verdict is Severity.ALLOW
        assert decision.messages == []
        assert decision.exit_code == 0

    @pytest.mark.parametrize("severities,expected", [
        ([Severity.ALLOW, Severity.ALLOW], Severity.ALLOW),
        ([Severity.ALLOW, Severity.WARN], Severity.WARN),
        ([Severity.WARN, Severity.BLOCK, Severity.ALLOW], Severity.BLOCK),
        ([Severity.BLOCK, Severity.WARN], Severity.BLOCK),
    ])
    def test_verdict_is_maximum_severity(self, severities, expected):
        results = [
            (f"r{i}", Verdict(s, None if s is Severity.ALLOW else f"m{i}"))
            for i, s in enumerate(severities)
        ]
        assert Decision.aggregate(results).verdict is expected

    def test_messages_in_rule_order_and_all_blocks_reported(self):
        results = [
            ("first", Verdict.block("one")),
            ("second", Verdict.allow()),
            ("third", Verdict.warn("two")),
            ("fourth", Verdict.block("three")),
        ]
        decision = Decision.aggregate(results, session_id="s1")
        assert decision.messages == ["[first] one", "[third] two", "[fourth] three"]
        assert decision.exit_code == 2

    def test_to_dict(self):
        decision = Decision.aggregate([("r", Verdict.warn("w"))], session_id="s1")
        data = decision.to_dict()
        assert data["verdict"] == "warn"
        assert data["messages"] == ["[r] w"]
        assert data["session_id"] == "s1"
        assert data["rules"] == [{"id": "r", "verdict": "warn", "message": "w"}]
