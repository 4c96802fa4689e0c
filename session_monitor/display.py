"""
Terminal dashboard.

Pure presentation: builds lines from a SessionSnapshot and writes them to
a stream. Redraws in place by moving the cursor up over the previous frame.
"""

import re
import shutil
import sys
import threading
from collections import Counter
from datetime import datetime, timezone
from typing import List, Optional, TextIO

from .models import AssessmentStatus, SessionSnapshot, ToolCall
from .signals import EDIT_TOOLS

MAX_WIDTH = 76
STEP_WIDTH = 3


# =============================================================================
# Color Output Helpers
# =============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[97m"
    PURPLE = "\033[95m"

    BG_RED = "\033[41m"
    BG_GREEN = "\033[42m"
    BG_YELLOW = "\033[43m"


_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")

# (letter, color, label)
TOOL_STYLES = {
    "Read": ("R", Colors.DIM + Colors.WHITE, "Read"),
    "Glob": ("G", Colors.DIM + Colors.WHITE, "Glob"),
    "Grep": ("/", Colors.CYAN, "Grep"),
    "Edit": ("E", Colors.BLUE, "Edit"),
    "Write": ("W", Colors.GREEN, "Write"),
    "Bash": ("B", Colors.YELLOW, "Bash"),
    "WebFetch": ("F", Colors.MAGENTA, "Fetch"),
    "Task": ("T", Colors.PURPLE, "Task"),
}
UNKNOWN_TOOL = ("?", Colors.DIM, "Other")

STATUS_STYLES = {
    AssessmentStatus.ON_TRACK: Colors.BG_GREEN,
    AssessmentStatus.HEADS_UP: Colors.BG_YELLOW,
    AssessmentStatus.DRIFTING: Colors.BG_RED,
    AssessmentStatus.STUCK: Colors.BG_RED,
}


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text or "")


def trunc(text: Optional[str], limit: int) -> str:
    if not text or limit <= 0:
        return ""
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit - 1] + "…"


def short_path(path: str) -> str:
    parts = path.split("/")
    return "…/" + "/".join(parts[-2:]) if len(parts) > 2 else path


def human_duration(seconds: float) -> str:
    """4m 32s style duration."""
    s = int(max(0, seconds))
    if s < 60:
        return f"{s}s"
    m = s // 60
    if m < 60:
        return f"{m}m {s % 60}s"
    return f"{m // 60}h {m % 60}m"


def time_ago(ts: Optional[datetime], now: Optional[datetime] = None) -> str:
    if ts is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    s = int((now - ts).total_seconds())
    if s < 5:
        return "just now"
    if s < 60:
        return f"{s}s ago"
    if s < 3600:
        return f"{s // 60}m ago"
    return f"{s // 3600}h ago"


def score_color(score: Optional[int]) -> str:
    if score is None:
        return Colors.DIM
    if score >= 80:
        return Colors.GREEN
    if score >= 60:
        return Colors.YELLOW
    if score >= 40:
        return Colors.MAGENTA
    return Colors.RED


def action_detail(call: ToolCall) -> str:
    name = call.tool_name
    if name == "Bash":
        return trunc(call.command, 38)
    if name in EDIT_TOOLS or name == "Read":
        return short_path(call.file_path)
    if name == "Glob":
        return str(call.input.get("pattern") or "")
    if name == "Grep":
        return '"' + trunc(str(call.input.get("pattern") or ""), 28) + '"'
    if name == "WebFetch":
        return trunc(str(call.input.get("url") or ""), 38)
    return ""


# =============================================================================
# Box helpers
# =============================================================================

def box_top(title: str, width: int, color: str = Colors.DIM) -> str:
    label = f"─ {title} " if title else ""
    return color + "┌" + label + "─" * max(0, width - 2 - len(label)) + "┐" + Colors.RESET


def box_bottom(width: int, color: str = Colors.DIM) -> str:
    return color + "└" + "─" * (width - 2) + "┘" + Colors.RESET


def box_line(content: str, inner: int) -> str:
    pad = max(0, inner - len(strip_ansi(content)))
    return "│" + content + " " * pad + "│"


# =============================================================================
# Frame builder
# =============================================================================

def build_lines(snapshot: SessionSnapshot, width: int, now: Optional[datetime] = None) -> List[str]:
    """Render a snapshot into a list of terminal lines."""
    now = now or datetime.now(timezone.utc)
    R, B, D = Colors.RESET, Colors.BOLD, Colors.DIM
    inner = width - 2

    calls = snapshot.tool_calls
    steps = len(calls)
    errors = sum(1 for c in calls if c.failed)
    assessment = snapshot.assessment
    score = assessment.score if assessment else None
    project = "-".join(snapshot.project_slug.split("-")[-2:]).strip("-") or "session"

    out: List[str] = []

    # Header
    title = f" session-monitor  ·  {project}  ·  {now.astimezone().strftime('%H:%M')} "
    out.append(B + Colors.CYAN + "╔" + "═" * inner + "╗" + R)
    out.append(B + Colors.CYAN + "║" + title.center(inner)[:inner] + "║" + R)
    out.append(B + Colors.CYAN + "╚" + "═" * inner + "╝" + R)

    # Goal
    out.append("")
    out.append(" " + D + "Goal " + R + B + trunc(snapshot.goal or "(auto-detecting…)", width - 7) + R)

    # Status
    out.append("")
    out.append(box_top("Status", width, Colors.CYAN))
    if assessment:
        background = STATUS_STYLES.get(assessment.status, Colors.BG_YELLOW)
        badge = f" {assessment.status.value}  {assessment.score}/100 "
        out.append(box_line(" " + background + Colors.WHITE + B + badge + R, inner))
        if assessment.reason:
            out.append(box_line(" " + D + trunc(assessment.reason, inner - 2) + R, inner))
        if assessment.suggestion:
            out.append(box_line(" " + Colors.YELLOW + "→ " + trunc(assessment.suggestion, inner - 3) + R, inner))
    else:
        label = "STARTING" if steps == 0 else "WAITING FOR FIRST ASSESSMENT"
        out.append(box_line(" " + D + label + R, inner))

    bar_width = inner - 18
    fill = round(score / 100 * bar_width) if score is not None else 0
    bar = score_color(score) + "█" * fill + R + D + "░" * (bar_width - fill) + R
    score_label = f"{score:>3}/100" if score is not None else "---/100"
    out.append(box_line(f" {D}Momentum{R} {bar} {D}{score_label}{R}", inner))
    out.append(box_bottom(width, Colors.CYAN))

    # Timeline
    out.append("")
    max_steps = max(1, (inner - 2) // STEP_WIDTH)
    recent = calls[-max_steps:]
    out.append(box_top(f"Timeline · last {len(recent)} of {steps} steps", width, Colors.YELLOW))
    if not recent:
        out.append(box_line(D + "  waiting for tool calls…" + R, inner))
    else:
        letters, blocks, numbers = " ", " ", " "
        for i, call in enumerate(recent):
            letter, color, _ = TOOL_STYLES.get(call.tool_name, UNKNOWN_TOOL)
            color = Colors.RED if call.failed else color
            letters += color + B + letter + R + "  "
            blocks += (Colors.RED + B + "✗✗" + R if call.failed else color + "██" + R) + " "
            step = steps - len(recent) + i + 1
            marker = str(step) if i == 0 or step % 5 == 0 else ""
            numbers += D + marker + R + " " * (STEP_WIDTH - len(marker))
        out.append(box_line(letters, inner))
        out.append(box_line(blocks, inner))
        out.append(box_line(numbers, inner))
    legend = "  ".join(
        f"{color}{letter}{R}={D}{label}{R}"
        for name, (letter, color, label) in TOOL_STYLES.items() if name != "Glob"
    )
    out.append(box_line(" " + legend, inner))
    out.append(box_bottom(width, Colors.YELLOW))

    # File activity
    file_counts = Counter(c.file_path for c in calls if c.tool_name in EDIT_TOOLS and c.file_path)
    if file_counts:
        out.append("")
        out.append(box_top("File Activity", width, Colors.GREEN))
        top = file_counts.most_common(5)
        max_count = top[0][1]
        bar_max = inner - 26
        for path, count in top:
            length = round(count / max_count * bar_max)
            name = trunc(short_path(path), 20).ljust(20)
            bar = Colors.GREEN + "█" * length + R + D + "░" * (bar_max - length) + R
            out.append(box_line(f" {B}{name}{R} {bar} {D}{count:>2}{R}", inner))
        out.append(box_bottom(width, Colors.GREEN))

    # Tool mix
    if steps:
        out.append("")
        out.append(box_top("Tool Mix", width, Colors.MAGENTA))
        for name, count in Counter(c.tool_name for c in calls).most_common(6):
            _, color, label = TOOL_STYLES.get(name, (None, Colors.DIM, name))
            pct = round(count / steps * 100)
            mini = round(pct / 100 * 20)
            bar = color + "█" * mini + R + D + "░" * (20 - mini) + R
            out.append(box_line(f" {color}{trunc(label, 9).ljust(9)}{R} {bar} {D}{pct:>3}%{R}", inner))
        out.append(box_bottom(width, Colors.MAGENTA))

    # Footer
    last = calls[-1] if calls else None
    last_label = (
        f"{last.tool_name} → {action_detail(last)} ({time_ago(last.timestamp, now)})"
        if last else "waiting for first tool call…"
    )
    out.append("")
    out.append(" " + D + "Last  " + R + Colors.CYAN + trunc(last_label, width - 8) + R)

    error_label = (Colors.RED if errors else Colors.GREEN) + f"{errors} ✗" + R
    if assessment:
        assessed = D + f"{assessment.source.value} · assessed {time_ago(assessment.assessed_at, now)}" + R
    else:
        assessed = D + "not assessed yet" + R
    stats = [
        B + f"Step {steps}" + R,
        human_duration((now - snapshot.start_time).total_seconds()),
        error_label,
        assessed,
    ]
    out.append(" " + (D + "  ·  " + R).join(stats))
    out.append("")
    out.append(D + " " + "─" * (width - 2) + R)
    out.append(D + "  'g' update goal  ·  Ctrl+C stop" + R)
    return out


class Dashboard:
    """
    In-place terminal renderer.

    ``render()`` may be called from the render timer and from assessment
    completion; a lock keeps frames from interleaving.
    """

    def __init__(self, stream: Optional[TextIO] = None, width: Optional[int] = None):
        self.stream = stream or sys.stdout
        self.width = width
        self._prev_lines = 0
        self._lock = threading.Lock()
        self.paused = False

    def _width(self) -> int:
        if self.width:
            return self.width
        return min(shutil.get_terminal_size((80, 24)).columns, MAX_WIDTH)

    def render(self, snapshot: SessionSnapshot):
        with self._lock:
            if self.paused:
                return
            lines = build_lines(snapshot, self._width())
            if self._prev_lines:
                self.stream.write(f"\033[{self._prev_lines}A")
                self.stream.write("\033[2K\n" * self._prev_lines)
                self.stream.write(f"\033[{self._prev_lines}A")
            self.stream.write("\n".join(lines) + "\n")
            self.stream.flush()
            self._prev_lines = len(lines)

    def clear(self):
        with self._lock:
            self.stream.write("\033c")
            self.stream.flush()
            self._prev_lines = 0


def render_once(snapshot: SessionSnapshot, stream: Optional[TextIO] = None):
    """Print a single frame without any cursor movement."""
    Dashboard(stream=stream).render(snapshot)
