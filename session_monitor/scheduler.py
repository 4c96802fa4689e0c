"""
Assessment scheduler.

Decides when a new Assessment is produced, keeps at most one external
assessment in flight, and falls back to the heuristic score whenever the
external assessor fails.

Triggers:
    - tool_calls: every ``threshold`` tool calls (counter path)
    - startup:    once, eagerly, when history already has events
    - goal:       a manual goal update, bypassing the counter

No trigger fires without a goal.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .assessor import MAX_ACTIONS, BaseAssessor
from .config import ASSESS_EVERY_N_CALLS
from .errors import classify_failure
from .models import Assessment, AssessmentSource, DomainEvent, utc_now
from .signals import (
    SignalSet,
    detect_signals,
    heuristic_score,
    recent_tool_calls,
    score_to_status,
    signal_summary,
)

logger = logging.getLogger(__name__)

LOW_SCORE_SUGGESTION = "Check the signals and consider redirecting the agent."
SUGGESTION_BELOW = 60


def heuristic_assessment(signals: SignalSet, signal_text: str, prefix: str = "Signal heuristics") -> Assessment:
    """Assessment computed from the signals alone."""
    score = heuristic_score(signals)
    return Assessment(
        score=score,
        status=score_to_status(score),
        reason=f"{prefix}: {signal_text}",
        suggestion=LOW_SCORE_SUGGESTION if score < SUGGESTION_BELOW else None,
        source=AssessmentSource.HEURISTIC,
    )


class AssessmentScheduler:
    """
    Budgets calls to the external assessor.

    Args:
        assessor: External assessor, or None for heuristic-only assessments
        on_assessment: Called with every completed Assessment (success or fallback)
        threshold: Tool calls between automatic assessments
        background: Run assessments on a worker thread (False runs inline)
    """

    def __init__(
        self,
        assessor: Optional[BaseAssessor],
        on_assessment: Callable[[Assessment], None],
        threshold: int = ASSESS_EVERY_N_CALLS,
        background: bool = True,
    ):
        self.assessor = assessor
        self.on_assessment = on_assessment
        self.threshold = threshold
        self.background = background

        self.calls_since_assessment = 0
        self._in_flight = False
        self._pending_force: Optional[Tuple[str, List[DomainEvent]]] = None
        self._stopped = False
        self._lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None

        self.assessments_completed = 0
        self.fallbacks = 0
        self.last_failure: Optional[str] = None

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def on_tool_call(self, goal: Optional[str], events: Sequence[DomainEvent]) -> bool:
        """
        Count one tool call; assess when the counter reaches the threshold.

        Returns:
            True if an assessment was started
        """
        with self._lock:
            if self._stopped:
                return False
            self.calls_since_assessment += 1
            if self.calls_since_assessment < self.threshold:
                return False
            if self._in_flight:
                # Deferred: the counter stays at the threshold, so the next
                # tool call after completion triggers.
                logger.debug("Assessment due but one is in flight; deferring")
                return False
            self.calls_since_assessment = 0
            if not goal:
                logger.debug("Assessment due but no goal is set; skipping")
                return False
            self._in_flight = True

        self._launch(goal, list(events), "tool_calls")
        return True

    def force(self, goal: Optional[str], events: Sequence[DomainEvent], trigger: str = "goal") -> bool:
        """
        Assess now, bypassing the counter.

        If an assessment is already in flight, this one runs as soon as it
        completes.

        Returns:
            True if an assessment was started immediately
        """
        if not goal:
            logger.debug(f"{trigger} trigger ignored: no goal set")
            return False

        with self._lock:
            if self._stopped:
                return False
            if self._in_flight:
                self._pending_force = (goal, list(events))
                return False
            self.calls_since_assessment = 0
            self._in_flight = True

        self._launch(goal, list(events), trigger)
        return True

    def trigger_initial(self, goal: Optional[str], events: Sequence[DomainEvent]) -> bool:
        """Eager assessment at startup so the dashboard never starts empty."""
        if not events:
            return False
        return self.force(goal, events, trigger="startup")

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _launch(self, goal: str, events: List[DomainEvent], trigger: str):
        logger.info(f"Assessment triggered ({trigger}) over {len(events)} events")
        if not self.background:
            self._run(goal, events)
            return
        self._worker = threading.Thread(
            target=self._run,
            args=(goal, events),
            daemon=True,
            name="AssessmentWorker"
        )
        self._worker.start()

    def _run(self, goal: str, events: List[DomainEvent]):
        assessment = None
        try:
            assessment = self.run_assessment(goal, events)
        except Exception as e:
            # run_assessment already falls back; this guards the signal code.
            logger.error(f"Assessment failed unexpectedly: {e}")
        finally:
            with self._lock:
                self._in_flight = False
                discarded = self._stopped
                pending = None if discarded else self._pending_force
                self._pending_force = None

        if assessment is not None and not discarded:
            self.assessments_completed += 1
            try:
                self.on_assessment(assessment)
            except Exception as e:
                logger.error(f"Assessment callback error: {e}")
        elif discarded:
            logger.debug("Assessment finished after stop; result discarded")

        if pending is not None:
            self.force(pending[0], pending[1], trigger="deferred")

    def run_assessment(self, goal: str, events: Sequence[DomainEvent]) -> Assessment:
        """
        Produce one Assessment synchronously. Never raises on assessor failure.
        """
        signals = detect_signals(events, goal)
        signal_text = signal_summary(signals)

        if self.assessor is None:
            return heuristic_assessment(signals, signal_text)

        try:
            verdict = self.assessor.assess(
                goal, recent_tool_calls(events, MAX_ACTIONS), signals, signal_text
            )
        except Exception as e:
            reason, explanation = classify_failure(e)
            self.fallbacks += 1
            self.last_failure = reason.value
            logger.warning(f"Assessor failed ({reason.value}): {explanation}; using heuristics")
            return heuristic_assessment(
                signals, signal_text, prefix="Assessor unavailable, using signal heuristics"
            )

        return Assessment(
            score=verdict.score,
            status=verdict.status,
            reason=verdict.reason,
            suggestion=verdict.suggestion,
            source=AssessmentSource.EXTERNAL,
            assessed_at=utc_now(),
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def stop(self):
        """Stop triggering; an in-flight assessment completes but is discarded."""
        with self._lock:
            self._stopped = True
            self._pending_force = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def wait(self, timeout: Optional[float] = None):
        """Block until the current worker (if any) finishes."""
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "calls_since_assessment": self.calls_since_assessment,
                "threshold": self.threshold,
                "in_flight": self._in_flight,
                "assessments_completed": self.assessments_completed,
                "fallbacks": self.fallbacks,
                "last_failure": self.last_failure,
                "assessor": self.assessor.name if self.assessor else None,
            }
