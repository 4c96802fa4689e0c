"""
SessionMonitor: Live Progress Monitor for Claude Code Sessions

Tails a session transcript, reconciles tool calls with their results, runs
heuristic signal detectors and periodically asks a small model whether the
agent is still on track.
"""

from .models import (
    Assessment,
    AssessmentSource,
    AssessmentStatus,
    SessionSnapshot,
    SessionState,
    ToolCall,
    ToolResult,
    UserMessage,
)
from .tailer import TranscriptTailer
from .reconciler import EventReconciler, parse_record
from .signals import SignalSet, detect_signals, heuristic_score, score_to_status
from .assessor import AnthropicAssessor, ClaudeCliAssessor, create_assessor
from .scheduler import AssessmentScheduler
from .monitor import SessionMonitor
from .config import MonitorSettings, load_settings

__all__ = [
    "Assessment",
    "AssessmentSource",
    "AssessmentStatus",
    "SessionSnapshot",
    "SessionState",
    "ToolCall",
    "ToolResult",
    "UserMessage",
    "TranscriptTailer",
    "EventReconciler",
    "parse_record",
    "SignalSet",
    "detect_signals",
    "heuristic_score",
    "score_to_status",
    "AnthropicAssessor",
    "ClaudeCliAssessor",
    "create_assessor",
    "AssessmentScheduler",
    "SessionMonitor",
    "MonitorSettings",
    "load_settings",
]
