"""
Goal auto-capture.

The first user message that reads like an objective becomes the session
goal. Pasted stack traces, code blocks and terse commands ("push it",
"ok") are skipped.
"""

import re
from typing import Iterable, Optional

from .models import DomainEvent, UserMessage

MAX_GOAL_CHARS = 500
SHORT_COMMAND_CHARS = 20
SHORT_COMMAND_WORDS = 2

_ERROR_PREFIX_RE = re.compile(r"^(TypeError|Error|ReferenceError|SyntaxError|RangeError)[\s:]")
_LEADING_FRAME_RE = re.compile(r"^\s+at\s+\S+\s+\(")
_FILE_URL_LINE_RE = re.compile(r"file://.*:\d+\n")
_EMBEDDED_FRAME_RE = re.compile(r"\n\s+at\s+\S")
_FENCE_RE = re.compile(r"^\s*[`~]{3,}")


def looks_like_noise(text: str) -> bool:
    """True for stack traces, code pastes and very short commands."""
    stripped = text.strip()
    if _ERROR_PREFIX_RE.search(stripped):
        return True
    if _LEADING_FRAME_RE.search(text):
        return True
    if _FILE_URL_LINE_RE.search(text):
        return True
    if _EMBEDDED_FRAME_RE.search(text):
        return True
    if _FENCE_RE.search(text):
        return True
    if len(stripped) < SHORT_COMMAND_CHARS and len(stripped.split()) <= SHORT_COMMAND_WORDS:
        return True
    return False


def extract_goal(text: Optional[str]) -> Optional[str]:
    """Return the goal text for a qualifying message, else None."""
    if not text or not text.strip():
        return None
    if looks_like_noise(text):
        return None
    return text.strip()[:MAX_GOAL_CHARS]


def goal_from_events(events: Iterable[DomainEvent]) -> Optional[str]:
    """Goal from the first qualifying UserMessage in a log."""
    for event in events:
        if isinstance(event, UserMessage):
            goal = extract_goal(event.text)
            if goal:
                return goal
    return None
