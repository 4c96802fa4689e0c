"""
Heuristic signal detectors.

Cheap, local indicators of session health computed without any external
call. Each detector is a pure function over an explicit slice of events and
returns a plain evidence dataclass. The full SignalSet is recomputed from
scratch on every evaluation.

Windows:
    - recent tool calls: last 15 ToolCall events (all detectors but one)
    - no_progress: last 20 events of any type
"""

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import AssessmentStatus, DomainEvent, ToolCall

RECENT_WINDOW = 15
PROGRESS_WINDOW = 20
COMMAND_KEY_CHARS = 80

LOOP_THRESHOLD = 3
STUCK_FILE_MIN_EDITS = 5
STUCK_FILE_THRESHOLD = 5
ERROR_STREAK_THRESHOLD = 3
PARALYSIS_THRESHOLD = 8
SCOPE_CREEP_THRESHOLD = 3
GOOD_MOMENTUM_THRESHOLD = 2
NO_PROGRESS_MIN_EVENTS = 10

BASH_TOOLS = frozenset({"Bash"})
EDIT_TOOLS = frozenset({"Edit", "Write", "MultiEdit", "NotebookEdit"})
READ_TOOLS = frozenset({"Read", "Glob", "Grep", "WebFetch"})
SCOPE_EXEMPT_MARKERS = ("test", "spec", "config")

BASE_SCORE = 70
SCORE_DELTAS = {
    "loop": -25,
    "stuck_on_file": -20,
    "error_streak": -30,
    "paralysis": -20,
    "scope_creep": -15,
    "no_progress": -20,
    "good_momentum": 20,
}

NO_ANOMALIES = "No anomalies detected"


# =============================================================================
# EVIDENCE STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class LoopSignal:
    detected: bool = False
    command: Optional[str] = None
    count: int = 0


@dataclass(frozen=True)
class StuckOnFileSignal:
    detected: bool = False
    file: Optional[str] = None
    count: int = 0


@dataclass(frozen=True)
class ErrorStreakSignal:
    detected: bool = False
    streak: int = 0


@dataclass(frozen=True)
class ParalysisSignal:
    detected: bool = False
    count: int = 0


@dataclass(frozen=True)
class ScopeCreepSignal:
    detected: bool = False
    files: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GoodMomentumSignal:
    detected: bool = False
    count: int = 0


@dataclass(frozen=True)
class NoProgressSignal:
    detected: bool = False
    events: int = 0


@dataclass(frozen=True)
class SignalSet:
    loop: LoopSignal
    stuck_on_file: StuckOnFileSignal
    error_streak: ErrorStreakSignal
    paralysis: ParalysisSignal
    scope_creep: ScopeCreepSignal
    good_momentum: GoodMomentumSignal
    no_progress: NoProgressSignal

    def detected_names(self) -> List[str]:
        return [name for name in SCORE_DELTAS if getattr(self, name).detected]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# HELPERS
# =============================================================================

def is_edit(event: DomainEvent) -> bool:
    return isinstance(event, ToolCall) and event.tool_name in EDIT_TOOLS


def is_bash(event: DomainEvent) -> bool:
    return isinstance(event, ToolCall) and event.tool_name in BASH_TOOLS


def is_read(event: DomainEvent) -> bool:
    return isinstance(event, ToolCall) and event.tool_name in READ_TOOLS


def recent_tool_calls(events: Sequence[DomainEvent], limit: int = RECENT_WINDOW) -> List[ToolCall]:
    calls = [e for e in events if isinstance(e, ToolCall)]
    return calls[-limit:] if limit else calls


def goal_keywords(goal: Optional[str]) -> List[str]:
    """Significant goal words: lowercased, longer than three characters."""
    if not goal:
        return []
    return [w for w in goal.lower().split() if len(w) > 3]


# =============================================================================
# DETECTORS
# =============================================================================

def detect_loop(recent: Sequence[ToolCall]) -> LoopSignal:
    """Same shell command run three or more times."""
    commands = [c.command.strip()[:COMMAND_KEY_CHARS] for c in recent if is_bash(c)]
    commands = [c for c in commands if c]
    if not commands:
        return LoopSignal()
    command, count = Counter(commands).most_common(1)[0]
    if count >= LOOP_THRESHOLD:
        return LoopSignal(detected=True, command=command, count=count)
    return LoopSignal(count=count)


def detect_stuck_on_file(recent: Sequence[ToolCall]) -> StuckOnFileSignal:
    """Same file edited five or more times."""
    edits = [c for c in recent if is_edit(c)]
    if len(edits) < STUCK_FILE_MIN_EDITS:
        return StuckOnFileSignal()
    paths = [c.file_path for c in edits if c.file_path]
    if not paths:
        return StuckOnFileSignal()
    path, count = Counter(paths).most_common(1)[0]
    return StuckOnFileSignal(detected=count >= STUCK_FILE_THRESHOLD, file=path, count=count)


def detect_error_streak(recent: Sequence[ToolCall]) -> ErrorStreakSignal:
    """Three or more consecutive failed calls."""
    streak = longest = 0
    for call in recent:
        if call.failed:
            streak += 1
            longest = max(longest, streak)
        else:
            streak = 0
    return ErrorStreakSignal(detected=longest >= ERROR_STREAK_THRESHOLD, streak=longest)


def detect_paralysis(recent: Sequence[ToolCall]) -> ParalysisSignal:
    """Eight or more reads since the last edit."""
    reads = 0
    for call in reversed(recent):
        if is_edit(call):
            break
        if is_read(call):
            reads += 1
    return ParalysisSignal(detected=reads >= PARALYSIS_THRESHOLD, count=reads)


def detect_scope_creep(recent: Sequence[ToolCall], goal: Optional[str]) -> ScopeCreepSignal:
    """Edits to three or more distinct files the goal says nothing about."""
    keywords = goal_keywords(goal)
    if not keywords:
        return ScopeCreepSignal()

    unrelated: List[str] = []
    for call in recent:
        if not is_edit(call):
            continue
        path = call.file_path.lower()
        if not path or path in unrelated:
            continue
        if any(word in path for word in keywords):
            continue
        if any(marker in path for marker in SCOPE_EXEMPT_MARKERS):
            continue
        unrelated.append(path)

    return ScopeCreepSignal(
        detected=len(unrelated) >= SCOPE_CREEP_THRESHOLD,
        files=unrelated[:3],
    )


def detect_good_momentum(recent: Sequence[ToolCall]) -> GoodMomentumSignal:
    """Edit immediately followed by a passing shell command, twice or more."""
    cycles = 0
    for current, following in zip(recent, recent[1:]):
        if is_edit(current) and is_bash(following) and not following.failed:
            cycles += 1
    return GoodMomentumSignal(detected=cycles >= GOOD_MOMENTUM_THRESHOLD, count=cycles)


def detect_no_progress(events: Sequence[DomainEvent]) -> NoProgressSignal:
    """No edit among the last twenty events (needs at least ten)."""
    window = list(events)[-PROGRESS_WINDOW:]
    has_edit = any(is_edit(e) for e in window)
    return NoProgressSignal(
        detected=not has_edit and len(window) >= NO_PROGRESS_MIN_EVENTS,
        events=len(window),
    )


def detect_signals(events: Sequence[DomainEvent], goal: Optional[str]) -> SignalSet:
    """Evaluate all seven detectors over the event log."""
    recent = recent_tool_calls(events)
    return SignalSet(
        loop=detect_loop(recent),
        stuck_on_file=detect_stuck_on_file(recent),
        error_streak=detect_error_streak(recent),
        paralysis=detect_paralysis(recent),
        scope_creep=detect_scope_creep(recent, goal),
        good_momentum=detect_good_momentum(recent),
        no_progress=detect_no_progress(events),
    )


# =============================================================================
# SUMMARY AND SCORING
# =============================================================================

def signal_summary(signals: SignalSet) -> str:
    """Human-readable summary of the detected signals only."""
    parts = []
    if signals.loop.detected:
        parts.append(f'Loop: "{signals.loop.command}" run {signals.loop.count}x')
    if signals.stuck_on_file.detected:
        parts.append(f"Stuck: editing {signals.stuck_on_file.file} {signals.stuck_on_file.count}x")
    if signals.error_streak.detected:
        parts.append(f"Error streak: {signals.error_streak.streak} consecutive failures")
    if signals.paralysis.detected:
        parts.append(f"Analysis paralysis: {signals.paralysis.count} reads with no edits")
    if signals.scope_creep.detected:
        parts.append(f"Scope creep: editing {', '.join(signals.scope_creep.files)}")
    if signals.good_momentum.detected:
        parts.append(f"Good momentum: {signals.good_momentum.count} edit->test cycles")
    if signals.no_progress.detected:
        parts.append(f"No file edits in last {PROGRESS_WINDOW} steps")
    return "; ".join(parts) if parts else NO_ANOMALIES


def clamp_score(value: float) -> int:
    return int(round(max(0, min(100, value))))


def heuristic_score(signals: SignalSet) -> int:
    """Score 0-100 from the signals alone."""
    score = BASE_SCORE
    for name in signals.detected_names():
        score += SCORE_DELTAS[name]
    return clamp_score(score)


def score_to_status(score: int) -> AssessmentStatus:
    if score >= 80:
        return AssessmentStatus.ON_TRACK
    if score >= 60:
        return AssessmentStatus.HEADS_UP
    if score >= 40:
        return AssessmentStatus.DRIFTING
    return AssessmentStatus.STUCK
