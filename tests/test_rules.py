"""
Tests for the built-in rules.

Tests cover:
- Keyword Detector suppression, cooldown and concatenation
- Skill Reminder matching and skill-description loading
- Comment Policy Validator extraction, banned patterns and redundancy
- Todo Enforcer blocking
"""

from datetime import datetime, timedelta

import pytest

from hookwarden.errors import ConfigError
from hookwarden.hooks.types import PostToolWrite, PromptSubmit, SessionStop, Severity
from hookwarden.ledger import LedgerView, SessionLedger, TodoItem
from hookwarden.rules import CommentPolicyValidator, KeywordDetector, SkillReminder, TodoEnforcer
from hookwarden.rules.comments import (
    code_words,
    comment_words,
    extract_comments,
    restates_code,
    source_lines,
)
from hookwarden.rules.skills import load_skills_dir


def view(**kwargs):
    return LedgerView(SessionLedger(session_id="s1", **kwargs))


def prompt(text, **kwargs):
    return PromptSubmit(session_id="s1", prompt=text, **kwargs)


class TestKeywordDetector:
    """Tests for KeywordDetector."""

    def _rule(self, **kwargs):
        return KeywordDetector(
            "keywords",
            keywords=[
                {"keyword": "refactor", "suggestion": "consider the rigorous-coding skill"},
                {"keyword": "migrate", "suggestion": "check the migration checklist"},
                {"keyword": r"force[- ]push", "regex": True},
            ],
            **kwargs,
        )

    def test_first_hit_warns(self):
        ledger = view()
        verdict = self._rule().evaluate(prompt("please refactor the auth module"), ledger)
        assert verdict.severity is Severity.WARN
        assert "refactor" in verdict.message
        assert "consider the rigorous-coding skill" in verdict.message
        assert [k for k, _ in ledger.update.keyword_hits] == ["refactor"]

    def test_no_hit_allows(self):
        ledger = view()
        assert self._rule().evaluate(prompt("fix the typo"), ledger).is_allow
        assert not ledger.update

    def test_case_insensitive(self):
        assert not self._rule().evaluate(prompt("REFACTOR it"), view()).is_allow

    def test_seen_keyword_suppressed_but_counted(self):
        ledger = SessionLedger(session_id="s1")
        ledger.record_keyword("migrate", datetime(2026, 1, 1))
        lv = LedgerView(ledger)

        verdict = self._rule().evaluate(prompt("migrate the users table"), lv)
        assert verdict.is_allow
        assert [k for k, _ in lv.update.keyword_hits] == ["migrate"]

    def test_multiple_new_keywords_concatenated(self):
        ledger = SessionLedger(session_id="s1")
        ledger.record_keyword("migrate", datetime(2026, 1, 1))
        verdict = self._rule().evaluate(
            prompt("refactor, migrate and then force-push"), LedgerView(ledger)
        )
        assert verdict.severity is Severity.WARN
        assert "'refactor'" in verdict.message
        assert "force[- ]push" in verdict.message
        assert "'migrate'" not in verdict.message

    def test_cooldown_rewarns_after_quiet_period(self):
        seen = datetime(2026, 1, 1, 10, 0)
        ledger = SessionLedger(session_id="s1")
        ledger.record_keyword("refactor", seen)
        rule = self._rule(cooldown_seconds=3600)

        soon = prompt("refactor", timestamp=seen + timedelta(minutes=10))
        later = prompt("refactor", timestamp=seen + timedelta(hours=2))
        assert rule.evaluate(soon, LedgerView(ledger)).is_allow
        assert not rule.evaluate(later, LedgerView(ledger)).is_allow

    def test_ignores_other_events(self):
        assert self._rule().evaluate(SessionStop(session_id="s1"), view()).is_allow

    @pytest.mark.parametrize("keywords", [[], [{"suggestion": "x"}], ["a", "a"], [{"keyword": "(", "regex": True}]])
    def test_bad_parameters(self, keywords):
        with pytest.raises(ConfigError):
            KeywordDetector("k", keywords=keywords)

    def test_bad_cooldown(self):
        with pytest.raises(ConfigError):
            KeywordDetector("k", keywords=["a"], cooldown_seconds=0)


class TestSkillReminder:
    """Tests for SkillReminder."""

    def _rule(self):
        return SkillReminder("skills", skills={
            "rigorous-coding": ["refactor", "clean up"],
            "db-migrations": ["schema", "migration"],
            "testing": "pytest",
        })

    def test_matching_skills_warn_and_are_recorded(self):
        ledger = view()
        verdict = self._rule().evaluate(prompt("Refactor the schema loader"), ledger)
        assert verdict.severity is Severity.WARN
        assert "db-migrations, rigorous-coding" in verdict.message
        assert ledger.update.reminded_skills == {"db-migrations", "rigorous-coding"}

    def test_already_reminded_skills_are_subtracted(self):
        ledger = view(reminded_skills={"rigorous-coding"})
        verdict = self._rule().evaluate(prompt("refactor the schema"), ledger)
        assert "rigorous-coding" not in verdict.message
        assert ledger.update.reminded_skills == {"db-migrations"}

    def test_all_reminded_allows(self):
        ledger = view(reminded_skills={"rigorous-coding"})
        assert self._rule().evaluate(prompt("refactor"), ledger).is_allow

    def test_terms_match_on_word_boundaries(self):
        assert self._rule().evaluate(prompt("the refactoring is done"), view()).is_allow
        assert not self._rule().evaluate(prompt("please clean up"), view()).is_allow

    def test_never_blocks(self):
        verdict = self._rule().evaluate(prompt("refactor schema pytest clean up"), view())
        assert verdict.severity is Severity.WARN

    def test_requires_skills(self):
        with pytest.raises(ConfigError):
            SkillReminder("skills")
        with pytest.raises(ConfigError):
            SkillReminder("skills", skills={"empty": []})

    def test_skills_file(self, tmp_path):
        skills_file = tmp_path / "skills.yaml"
        skills_file.write_text("rigorous-coding:\n  - refactor\n")
        rule = SkillReminder("skills", skills_file=str(skills_file))
        assert rule.matching_skills("refactor this") == ["rigorous-coding"]

    def test_skills_dir(self, tmp_path):
        explicit = tmp_path / "rigorous-coding"
        explicit.mkdir()
        (explicit / "SKILL.md").write_text(
            "---\nname: rigorous-coding\ntriggers: [refactor, rewrite]\n---\n\n# Rigorous coding\n"
        )
        described = tmp_path / "solidity"
        described.mkdir()
        (described / "SKILL.md").write_text(
            '---\nname: solidity-review\ndescription: Use when the user mentions "smart contract" or "audit".\n---\n'
        )
        silent = tmp_path / "notes"
        silent.mkdir()
        (silent / "SKILL.md").write_text("# No frontmatter here\n")

        skills = load_skills_dir(str(tmp_path))
        assert skills == {
            "rigorous-coding": ["refactor", "rewrite"],
            "solidity-review": ["smart contract", "audit"],
        }

    def test_missing_skills_dir(self, tmp_path):
        with pytest.raises(ConfigError):
            SkillReminder("skills", skills_dir=str(tmp_path / "missing"))


REDUNDANT_DIFF = """\
--- a/contracts/payments.sol
+++ b/contracts/payments.sol
@@ -10,3 +10,4 @@ contract Payments {
     function pay() public {
+        // increments the counter
         counter++;
     }
"""


class TestCommentExtraction:
    """Tests for source line and comment extraction."""

    def test_plain_content_lines(self):
        lines = source_lines("a\nb\n")
        assert [(l.number, l.text, l.added) for l in lines] == [(1, "a", True), (2, "b", True)]

    def test_diff_lines_use_new_file_numbers(self):
        lines = source_lines(REDUNDANT_DIFF)
        assert [(l.number, l.added) for l in lines] == [(10, False), (11, True), (12, False), (13, False)]

    def test_removed_lines_are_dropped(self):
        diff = "@@ -1,2 +1,1 @@\n-// old comment\n+// new comment\n"
        lines = source_lines(diff)
        assert [(l.number, l.text) for l in lines] == [(1, "// new comment")]

    def test_comment_pairs_with_code_below(self):
        comments = extract_comments(source_lines(REDUNDANT_DIFF), ("//",))
        assert len(comments) == 1
        assert comments[0].line == 11
        assert comments[0].text == "increments the counter"
        assert comments[0].code == "counter++;"

    def test_trailing_comment_pairs_with_same_line(self):
        comments = extract_comments(source_lines("total = 0  # set total\n"), ("#",))
        assert comments[0].code == "total = 0"
        assert comments[0].text == "set total"

    def test_urls_are_not_comments(self):
        assert extract_comments(source_lines('url = "http://example.com"\n'), ("//",)) == []

    def test_block_comment_lines(self):
        comments = extract_comments(source_lines("/* setup */\n * more detail\n"), ("//",))
        assert [c.text for c in comments] == ["setup", "more detail"]


class TestRedundancy:
    """Tests for the restated-code heuristic."""

    def test_word_normalization(self):
        assert comment_words("increments the counter") == ["increment", "counter"]
        assert code_words("counter++;") == {"counter", "increment"}
        assert {"user", "name", "assign"} <= code_words("userName = input")

    def test_restating_comment(self):
        assert restates_code("increments the counter", "counter++;", 85)
        assert restates_code("set the user name", "userName = name", 85)
        assert restates_code("Returns the total", "return total;", 85)

    def test_explanatory_comment(self):
        assert not restates_code("retry because the upstream rate-limits bursts", "counter++;", 85)
        assert not restates_code("off by one on purpose, see issue 12", "i += 2", 85)


class TestCommentPolicyValidator:
    """Tests for CommentPolicyValidator."""

    def _write(self, content, path="contracts/payments.sol"):
        return PostToolWrite(session_id="s1", file_path=path, content=content)

    def test_redundant_comment_blocks_when_configured(self):
        rule = CommentPolicyValidator("comments", redundant={"severity": "block"})
        verdict = rule.evaluate(self._write(REDUNDANT_DIFF), view())
        assert verdict.severity is Severity.BLOCK
        assert "line 11" in verdict.message
        assert "redundant-comment" in verdict.message

    def test_redundant_comment_warns_by_default(self):
        rule = CommentPolicyValidator("comments")
        verdict = rule.evaluate(self._write("// increments the counter\ncounter++;\n"), view())
        assert verdict.severity is Severity.WARN

    def test_no_comments_allows(self):
        rule = CommentPolicyValidator("comments")
        assert rule.evaluate(self._write("counter++;\n"), view()).is_allow

    def test_good_comments_allow(self):
        rule = CommentPolicyValidator("comments", redundant={"severity": "block"})
        content = "// reentrancy guard: state changes before the external call\nbalance[msg.sender] = 0;\n"
        assert rule.evaluate(self._write(content), view()).is_allow

    def test_todo_without_owner_warns(self):
        rule = CommentPolicyValidator("comments")
        verdict = rule.evaluate(self._write("// TODO handle refunds\nrefund();\n"), view())
        assert verdict.severity is Severity.WARN
        assert "todo-without-owner" in verdict.message

    def test_todo_with_owner_allows(self):
        rule = CommentPolicyValidator("comments")
        assert rule.evaluate(self._write("// TODO(alice): handle refunds\nrefund();\n"), view()).is_allow

    def test_lowercase_todo_word_is_not_a_marker(self):
        rule = CommentPolicyValidator("comments", redundant=False)
        assert rule.evaluate(self._write("# sync the todo list with the server\n", "app.py"), view()).is_allow

    def test_custom_banned_patterns_and_severity(self):
        rule = CommentPolicyValidator("comments", redundant=False, banned=[
            {"id": "no-hack", "pattern": r"\bhack\b", "severity": "block", "message": "hack marker"},
            {"id": "no-debug", "pattern": r"print\(", "severity": "warn"},
        ])
        verdict = rule.evaluate(self._write("x = 1  # HACK around the bug\n# print(x)\n", "a.py"), view())
        assert verdict.severity is Severity.BLOCK
        assert "line 1: hack marker" in verdict.message
        assert "line 2" in verdict.message
        assert "(no-debug)" in verdict.message

    def test_only_added_diff_lines_are_checked(self):
        diff = "@@ -1,2 +1,2 @@\n // TODO old unowned marker\n+x = compute()\n"
        rule = CommentPolicyValidator("comments")
        assert rule.evaluate(self._write(diff, "a.py"), view()).is_allow

    @pytest.mark.parametrize("params", [
        {"banned": [{"pattern": "("}]},
        {"banned": [{"pattern": "x", "severity": "fatal"}]},
        {"banned": ["not-a-mapping"]},
        {"redundant": {"threshold": 150}},
        {"redundant": "yes"},
    ])
    def test_bad_parameters(self, params):
        with pytest.raises(ConfigError):
            CommentPolicyValidator("comments", **params)


class TestTodoEnforcer:
    """Tests for TodoEnforcer."""

    def test_empty_todos_allow(self):
        assert TodoEnforcer("todos").evaluate(SessionStop(session_id="s1"), view()).is_allow

    def test_all_done_allow(self):
        ledger = view(todos=[TodoItem("a", done=True), TodoItem("b", done=True)])
        assert TodoEnforcer("todos").evaluate(SessionStop(session_id="s1"), ledger).is_allow

    def test_outstanding_todos_block(self):
        ledger = view(todos=[TodoItem("write tests", done=True), TodoItem("update docs")])
        verdict = TodoEnforcer("todos").evaluate(SessionStop(session_id="s1"), ledger)
        assert verdict.severity is Severity.BLOCK
        assert "update docs" in verdict.message
        assert "write tests" not in verdict.message
