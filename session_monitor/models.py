"""
Domain types for the session monitor.

Transcript records are classified once, at parse time, into one of three
event variants. Downstream code dispatches on the variant's type and never
re-inspects the raw JSON shape.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventKind(Enum):
    """Discriminator for DomainEvent variants."""
    USER_MESSAGE = "user_message"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


@dataclass(frozen=True)
class UserMessage:
    """Text typed by the user."""
    text: str
    timestamp: datetime = field(default_factory=utc_now)

    kind = EventKind.USER_MESSAGE


@dataclass
class ToolCall:
    """
    A tool invocation by the assistant.

    Created pending (``failed=False``, ``resolved=False``). Only the
    reconciler calls ``resolve()``, and only the first resolution counts.
    """
    id: str
    tool_name: str
    input: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)
    failed: bool = False
    resolved: bool = False

    kind = EventKind.TOOL_CALL

    def resolve(self, is_error: bool) -> bool:
        """Record the call outcome. Returns False if already resolved."""
        if self.resolved:
            return False
        self.failed = bool(is_error)
        self.resolved = True
        return True

    @property
    def file_path(self) -> str:
        """Target file for file-based tools, or an empty string."""
        return self.input.get("file_path") or self.input.get("notebook_path") or ""

    @property
    def command(self) -> str:
        return self.input.get("command") or ""


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a tool call; kept only until matched with its call."""
    tool_call_id: str
    is_error: bool = False
    timestamp: datetime = field(default_factory=utc_now)

    kind = EventKind.TOOL_RESULT


DomainEvent = Union[UserMessage, ToolCall, ToolResult]


class AssessmentStatus(Enum):
    """Session health labels, best to worst."""
    ON_TRACK = "ON TRACK"
    HEADS_UP = "HEADS UP"
    DRIFTING = "DRIFTING"
    STUCK = "STUCK"


class AssessmentSource(Enum):
    EXTERNAL = "external"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class Assessment:
    """A scored verdict on the session. Replaced wholesale, never edited."""
    score: int
    status: AssessmentStatus
    reason: str
    source: AssessmentSource
    suggestion: Optional[str] = None
    assessed_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "status": self.status.value,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "source": self.source.value,
            "assessed_at": self.assessed_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session handed to the presenter."""
    goal: Optional[str]
    assessment: Optional[Assessment]
    events: Tuple[DomainEvent, ...]
    start_time: datetime
    session_id: str
    project_slug: str

    @property
    def tool_calls(self) -> Tuple[ToolCall, ...]:
        return tuple(e for e in self.events if isinstance(e, ToolCall))


@dataclass
class SessionState:
    """
    Mutable state of one monitored session.

    Owned by the monitor loop. Everything else gets a SessionSnapshot.
    """
    session_id: str
    project_slug: str = ""
    goal: Optional[str] = None
    assessment: Optional[Assessment] = None
    events: list = field(default_factory=list)
    start_time: datetime = field(default_factory=utc_now)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            goal=self.goal,
            assessment=self.assessment,
            events=tuple(self.events),
            start_time=self.start_time,
            session_id=self.session_id,
            project_slug=self.project_slug,
        )
