"""
Tests for goal auto-capture.
"""

import pytest


@pytest.mark.unit
class TestExtractGoal:

    def test_objective_is_captured(self):
        from session_monitor.goals import extract_goal

        goal = "Fix the refresh token bug in AuthService"
        assert extract_goal(goal) == goal

    def test_surrounding_whitespace_trimmed(self):
        from session_monitor.goals import extract_goal
        assert extract_goal("   Add pagination to the orders API\n") == "Add pagination to the orders API"

    def test_truncated_to_500_chars(self):
        from session_monitor.goals import MAX_GOAL_CHARS, extract_goal

        goal = extract_goal("Refactor " + "the module " * 100)
        assert len(goal) == MAX_GOAL_CHARS

    @pytest.mark.parametrize("text", [
        "TypeError: x is undefined",
        "Error: ENOENT: no such file or directory",
        "ReferenceError: foo is not defined at line 10",
        "SyntaxError: Unexpected token '}' in the parser module",
        "    at Object.<anonymous> (/app/index.js:10:5)",
        "something failed\nfile:///app/src/index.js:42\n",
        "Cannot read properties of undefined\n    at render (app.js:1:1)",
        "```python\ndef broken(): pass\n```",
        "push it",
        "ok",
        "",
        "   ",
        None,
    ])
    def test_noise_is_rejected(self, text):
        from session_monitor.goals import extract_goal
        assert extract_goal(text) is None

    def test_short_but_wordy_message_accepted(self):
        from session_monitor.goals import extract_goal
        # Under 20 chars but more than two words
        assert extract_goal("add a logout button") == "add a logout button"

    def test_long_two_word_message_accepted(self):
        from session_monitor.goals import extract_goal
        assert extract_goal("Internationalization everywhere") == "Internationalization everywhere"


@pytest.mark.unit
class TestGoalFromEvents:

    def test_first_qualifying_message_wins(self):
        from session_monitor.goals import goal_from_events
        from session_monitor.models import UserMessage

        events = [
            UserMessage(text="hi"),
            UserMessage(text="TypeError: x is undefined"),
            UserMessage(text="Fix the refresh token bug in AuthService"),
            UserMessage(text="Also update the changelog afterwards"),
        ]
        assert goal_from_events(events) == "Fix the refresh token bug in AuthService"

    def test_no_qualifying_message(self):
        from session_monitor.goals import goal_from_events
        from session_monitor.models import UserMessage

        from .conftest import make_call
        assert goal_from_events([UserMessage(text="ok"), make_call("Bash", command="ls")]) is None
