"""
Tests for the external assessor: prompt building, reply parsing and the
two backends (Anthropic API, claude CLI) with their transports mocked.
"""

import json
import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from .conftest import make_call


def reply(**overrides):
    data = {"score": 85, "status": "ON TRACK", "reason": "Editing the auth module", "suggestion": None}
    data.update(overrides)
    return json.dumps(data)


@pytest.mark.unit
class TestPrompt:

    def test_tool_detail(self):
        from session_monitor.assessor import tool_detail

        assert tool_detail("Bash", {"command": "npm test"}) == "npm test"
        assert tool_detail("Edit", {"file_path": "/home/u/app/src/auth.py"}) == ".../src/auth.py"
        assert tool_detail("Read", {"file_path": "src/auth.py"}) == "src/auth.py"
        assert tool_detail("Grep", {"pattern": "refresh"}) == '"refresh"'
        assert tool_detail("Glob", {"pattern": "**/*.py"}) == "**/*.py"
        assert tool_detail("Task", {"description": "explore"}) == "explore"
        assert tool_detail("TodoWrite", {"todos": []}) == ""

    def test_summarize_marks_failures_and_limits(self):
        from session_monitor.assessor import MAX_ACTIONS, summarize_actions

        calls = [make_call("Bash", command=f"step {i}") for i in range(25)]
        calls.append(make_call("Bash", failed=True, command="pytest"))
        lines = summarize_actions(calls)
        assert len(lines) == MAX_ACTIONS
        assert lines[-1] == "  Bash(pytest) [FAILED]"
        assert lines[0] == "  Bash(step 6)"

    def test_build_prompt(self):
        from session_monitor.assessor import build_prompt

        prompt = build_prompt(
            "Fix the refresh token bug",
            [make_call("Edit", file_path="/src/auth.py")],
            "No anomalies detected",
        )
        assert prompt.startswith("Goal: Fix the refresh token bug\n")
        assert "Recent actions (last 1):" in prompt
        assert "  Edit(/src/auth.py)" in prompt
        assert "Signal analysis: No anomalies detected" in prompt

    def test_build_prompt_without_actions(self):
        from session_monitor.assessor import build_prompt
        assert "(none yet)" in build_prompt("goal text here", [], "No anomalies detected")


@pytest.mark.unit
class TestParseVerdict:

    def test_well_formed(self):
        from session_monitor.assessor import parse_verdict
        from session_monitor.models import AssessmentStatus

        verdict = parse_verdict(reply())
        assert verdict.score == 85
        assert verdict.status == AssessmentStatus.ON_TRACK
        assert verdict.reason == "Editing the auth module"
        assert verdict.suggestion is None

    def test_code_fences_stripped(self):
        from session_monitor.assessor import parse_verdict
        assert parse_verdict("```json\n" + reply(score=55) + "\n```").score == 55

    def test_score_clamped_and_rounded(self):
        from session_monitor.assessor import parse_verdict
        assert parse_verdict(reply(score=140)).score == 100
        assert parse_verdict(reply(score=-3)).score == 0
        assert parse_verdict(reply(score="72.4")).score == 72

    def test_text_capped(self):
        from session_monitor.assessor import MAX_TEXT_CHARS, parse_verdict

        verdict = parse_verdict(reply(reason="r" * 500, suggestion="s" * 500))
        assert len(verdict.reason) == MAX_TEXT_CHARS
        assert len(verdict.suggestion) == MAX_TEXT_CHARS

    def test_blank_suggestion_becomes_none(self):
        from session_monitor.assessor import parse_verdict
        assert parse_verdict(reply(suggestion="   ")).suggestion is None

    @pytest.mark.parametrize("raw", [
        "",
        "not json at all",
        "[1, 2]",
        json.dumps({"status": "ON TRACK", "reason": "x"}),
        json.dumps({"score": 80, "reason": "x"}),
        json.dumps({"score": 80, "status": "ON TRACK"}),
        reply(score="high"),
        reply(score=True),
        reply(score=None),
        reply(status=3),
        reply(reason=["list"]),
        reply(suggestion={"a": 1}),
        '{"score": NaN, "status": "STUCK", "reason": "x"}',
    ])
    def test_malformed_replies_rejected(self, raw):
        from session_monitor.assessor import parse_verdict
        from session_monitor.errors import AssessorResponseError

        with pytest.raises(AssessorResponseError):
            parse_verdict(raw)

    @pytest.mark.parametrize("label,expected", [
        ("ON TRACK", "ON TRACK"),
        ("on_track", "ON TRACK"),
        ("Status: DRIFTING", "DRIFTING"),
        ("stuck", "STUCK"),
        ("heads up", "HEADS UP"),
        ("great", "HEADS UP"),
        (None, "HEADS UP"),
    ])
    def test_normalize_status(self, label, expected):
        from session_monitor.assessor import normalize_status
        assert normalize_status(label).value == expected


@pytest.mark.unit
class TestAnthropicAssessor:

    def _client(self, text):
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="text", text=text)]
        )
        return client

    def test_assess_uses_messages_api(self):
        from session_monitor.assessor import MAX_TOKENS, SYSTEM_PROMPT, AnthropicAssessor
        from session_monitor.signals import detect_signals

        client = self._client(reply(score=42, status="DRIFTING", suggestion="Refocus on auth"))
        assessor = AnthropicAssessor(model="test-model", client=client)
        calls = [make_call("Edit", file_path="/src/auth.py")]

        verdict = assessor.assess("Fix auth", calls, detect_signals(calls, "Fix auth"), "No anomalies detected")

        assert verdict.score == 42
        assert verdict.suggestion == "Refocus on auth"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == MAX_TOKENS
        assert kwargs["system"] == SYSTEM_PROMPT
        assert kwargs["messages"][0]["content"].startswith("Goal: Fix auth")

    def test_no_text_block(self):
        from session_monitor.assessor import AnthropicAssessor
        from session_monitor.errors import AssessorResponseError

        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(content=[])
        with pytest.raises(AssessorResponseError):
            AnthropicAssessor(client=client).complete("prompt")

    def test_client_created_lazily(self):
        from session_monitor.assessor import AnthropicAssessor

        with patch("session_monitor.assessor.anthropic.Anthropic") as mock_cls:
            assessor = AnthropicAssessor(timeout=7)
            mock_cls.assert_not_called()
            _ = assessor.client
            mock_cls.assert_called_once_with(timeout=7, max_retries=0)


@pytest.mark.unit
class TestClaudeCliAssessor:

    def test_runs_claude_print_mode(self):
        from session_monitor.assessor import ClaudeCliAssessor

        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=reply() + "\n", stderr="")
        with patch("session_monitor.assessor.subprocess.run", return_value=completed) as mock_run:
            raw = ClaudeCliAssessor(model="haiku", timeout=5).complete("the prompt")

        assert json.loads(raw)["score"] == 85
        args, kwargs = mock_run.call_args
        assert args[0][:4] == ["claude", "-p", "--model", "haiku"]
        assert kwargs["input"] == "the prompt"
        assert kwargs["timeout"] == 5

    def test_missing_executable(self):
        from session_monitor.assessor import ClaudeCliAssessor
        from session_monitor.errors import AssessorUnavailableError

        with patch("session_monitor.assessor.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(AssessorUnavailableError):
                ClaudeCliAssessor().complete("prompt")

    def test_nonzero_exit(self):
        from session_monitor.assessor import ClaudeCliAssessor
        from session_monitor.errors import AssessorUnavailableError

        failed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="boom")
        with patch("session_monitor.assessor.subprocess.run", return_value=failed):
            with pytest.raises(AssessorUnavailableError, match="boom"):
                ClaudeCliAssessor().complete("prompt")

    def test_empty_output(self):
        from session_monitor.assessor import ClaudeCliAssessor
        from session_monitor.errors import AssessorResponseError

        empty = subprocess.CompletedProcess(args=[], returncode=0, stdout="  \n", stderr="")
        with patch("session_monitor.assessor.subprocess.run", return_value=empty):
            with pytest.raises(AssessorResponseError):
                ClaudeCliAssessor().complete("prompt")

    def test_timeout_propagates(self):
        from session_monitor.assessor import ClaudeCliAssessor

        with patch("session_monitor.assessor.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(cmd="claude", timeout=1)):
            with pytest.raises(subprocess.TimeoutExpired):
                ClaudeCliAssessor(timeout=1).complete("prompt")


@pytest.mark.unit
class TestCreateAssessor:

    @pytest.mark.parametrize("backend,expected", [
        ("api", "AnthropicAssessor"),
        ("cli", "ClaudeCliAssessor"),
        ("none", None),
    ])
    def test_backend_selection(self, backend, expected):
        from session_monitor.assessor import create_assessor
        from session_monitor.config import MonitorSettings

        assessor = create_assessor(MonitorSettings(assessor_backend=backend, assessor_model="m"))
        if expected is None:
            assert assessor is None
        else:
            assert type(assessor).__name__ == expected
            assert assessor.model == "m"
