"""
Session Monitor - watches one Claude Code transcript and keeps a live
assessment of whether the agent is making progress toward the goal.

Three trigger sources feed a single state owner:
    - poll tick:   the tailer delivers newly appended records
    - render tick: a timer redraws the dashboard
    - goal update: the user sets a new goal (forces an assessment)

All mutations of SessionState go through _process_record() under one lock.
Assessments run on the scheduler's worker thread and are applied back
through _on_assessment().
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, Optional

from .assessor import BaseAssessor
from .config import MonitorSettings, load_settings
from .goals import extract_goal
from .models import Assessment, SessionSnapshot, SessionState, ToolCall, UserMessage
from .reconciler import EventReconciler
from .scheduler import AssessmentScheduler
from .sessions import SessionInfo
from .store import GoalStore
from .tailer import TranscriptTailer

logger = logging.getLogger(__name__)

Renderer = Callable[[SessionSnapshot], None]


class SessionMonitor:
    """
    Live monitor for one session.

    Args:
        session: Transcript to watch
        settings: Intervals and assessor configuration
        assessor: External assessor, or None for heuristic-only assessments
        renderer: Called with a snapshot on every render tick and assessment
        store: Goal persistence (defaults to ~/.session-monitor)
        goal: Explicit goal; wins over a stored or auto-captured one
        background: Run assessments on a worker thread
    """

    def __init__(
        self,
        session: SessionInfo,
        settings: Optional[MonitorSettings] = None,
        assessor: Optional[BaseAssessor] = None,
        renderer: Optional[Renderer] = None,
        store: Optional[GoalStore] = None,
        goal: Optional[str] = None,
        background: bool = True,
    ):
        self.session = session
        self.settings = settings or load_settings()
        self.renderer = renderer
        self.store = store or GoalStore()

        self.state = SessionState(
            session_id=session.session_id,
            project_slug=session.project_slug,
        )
        self.reconciler = EventReconciler(self.state.events)
        self.scheduler = AssessmentScheduler(
            assessor,
            on_assessment=self._on_assessment,
            threshold=self.settings.assess_every,
            background=background,
        )
        self.tailer = TranscriptTailer(
            session.transcript_path,
            on_batch=self.process_records,
            poll_interval=self.settings.poll_interval,
        )

        # Reentrant: a synchronous scheduler calls back into _on_assessment
        # from inside _process_record.
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._render_thread: Optional[threading.Thread] = None
        self._running = False
        # Last goal text this process wrote or read, to spot external edits
        self._stored_goal: Optional[str] = None

        self.records_processed = 0
        self.renders = 0

        if goal and goal.strip():
            self._set_goal_locked(goal.strip(), source="command line")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load_history(self) -> int:
        """
        Read the whole transcript and fold it into the session.

        History tool calls do not count toward the assessment threshold.
        The tailer cursor is left after the last complete line.

        Returns:
            Number of records read
        """
        with self._lock:
            if not self.state.goal:
                stored = self.store.read(self.session.session_id)
                if stored:
                    self.state.goal = stored
                    self._stored_goal = stored
                    logger.info(f"Loaded stored goal for session {self.session.session_id[:8]}")

            history = self.tailer.read_all()
            for record in history:
                self._process_record(record, count=False)
            self.reconciler.resolve_all()

        logger.info(
            f"Loaded {len(history)} records ({len(self.state.events)} events) "
            f"from {self.session.transcript_path.name}"
        )
        return len(history)

    def start(self):
        """Load history, assess once, then follow the transcript."""
        if self._running:
            return

        self.load_history()
        with self._lock:
            goal = self.state.goal
            events = list(self.state.events)

        self._stop_event.clear()
        self._running = True
        self.scheduler.trigger_initial(goal, events)
        self.tailer.start(seek_to_end=False)

        self._render_thread = threading.Thread(
            target=self._render_loop,
            daemon=True,
            name="SessionMonitorRender"
        )
        self._render_thread.start()
        self.render()

    def stop(self):
        """Stop polling and rendering. An in-flight assessment is discarded."""
        self._stop_event.set()
        self.tailer.stop()
        self.scheduler.stop()
        if self._render_thread and self._render_thread is not threading.current_thread():
            self._render_thread.join(timeout=max(1.0, self.settings.render_interval * 2))
        self._render_thread = None
        self._running = False
        logger.info(f"Monitor stopped for session {self.session.session_id[:8]}")

    @property
    def is_running(self) -> bool:
        return self._running and not self._stop_event.is_set()

    # -------------------------------------------------------------------------
    # Event processing
    # -------------------------------------------------------------------------

    def process_records(self, records: Iterable[Any]):
        """Poll tick: fold a batch of raw records into the session."""
        if self._stop_event.is_set():
            return
        with self._lock:
            for record in records:
                self._process_record(record, count=True)

    def _process_record(self, record: Any, count: bool):
        self.records_processed += 1
        event = self.reconciler.ingest(record)
        if event is None:
            return

        if isinstance(event, UserMessage):
            if not self.state.goal:
                captured = extract_goal(event.text)
                if captured:
                    self._set_goal_locked(captured, source="auto-captured")
        elif isinstance(event, ToolCall) and count:
            self.scheduler.on_tool_call(self.state.goal, self.state.events)

    def _set_goal_locked(self, goal: str, source: str):
        self.state.goal = goal
        self._stored_goal = goal
        logger.info(f"Goal set ({source}): {goal[:80]}")
        try:
            self.store.write(self.session.session_id, goal)
        except OSError as e:
            logger.warning(f"Could not persist goal: {e}")

    def check_stored_goal(self) -> bool:
        """
        Pick up a goal written by another process (``session-monitor goal``).

        Returns:
            True if the goal changed and an assessment was forced
        """
        stored = self.store.read(self.session.session_id)
        if not stored or stored == self._stored_goal or stored == self.state.goal:
            return False
        logger.info("Stored goal changed externally")
        return self.set_goal(stored)

    def set_goal(self, text: str) -> bool:
        """
        Manual goal update. Forces an assessment against the new goal.

        Returns:
            True if the goal was accepted
        """
        goal = (text or "").strip()
        if not goal:
            return False
        with self._lock:
            self._set_goal_locked(goal, source="manual")
            events = list(self.state.events)
        self.scheduler.force(goal, events, trigger="goal")
        self.render()
        return True

    def _on_assessment(self, assessment: Assessment):
        if self._stop_event.is_set():
            return
        with self._lock:
            self.state.assessment = assessment
        logger.info(
            f"Assessment: {assessment.status.value} {assessment.score}/100 ({assessment.source.value})"
        )
        self.render()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self.state.snapshot()

    def render(self):
        if self.renderer is None or self._stop_event.is_set():
            return
        try:
            self.renderer(self.snapshot())
            self.renders += 1
        except Exception as e:
            logger.error(f"Render error: {e}")

    def _render_loop(self):
        while not self._stop_event.wait(self.settings.render_interval):
            try:
                self.check_stored_goal()
            except Exception as e:
                logger.error(f"Goal check error: {e}")
            self.render()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = {
                "session_id": self.session.session_id,
                "transcript": str(self.session.transcript_path),
                "goal": self.state.goal,
                "events": len(self.state.events),
                "tool_calls": len(self.reconciler.tool_calls),
                "pending_results": len(self.reconciler.pending_results),
                "records_processed": self.records_processed,
                "renders": self.renders,
                "offset": self.tailer.offset,
                "truncations": self.tailer.truncations,
                "dropped_lines": self.tailer.dropped_lines,
                "assessment": self.state.assessment.to_dict() if self.state.assessment else None,
            }
        stats["scheduler"] = self.scheduler.get_stats()
        return stats
