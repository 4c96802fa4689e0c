"""
External assessor: asks a small Claude model whether the session is on track.

Two backends share one prompt and one response parser:
    - AnthropicAssessor: the anthropic SDK (needs ANTHROPIC_API_KEY)
    - ClaudeCliAssessor: pipes the prompt into ``claude -p`` so a
      subscription can be used instead of API credits

Any failure surfaces as an exception. The scheduler decides what to do
about it.
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import anthropic

from .config import DEFAULT_ASSESSOR_MODEL, DEFAULT_ASSESSOR_TIMEOUT, MonitorSettings
from .errors import AssessorResponseError, AssessorUnavailableError
from .models import AssessmentStatus, ToolCall
from .signals import SignalSet, clamp_score

logger = logging.getLogger(__name__)

MAX_ACTIONS = 20
MAX_TEXT_CHARS = 140
MAX_TOKENS = 256

SYSTEM_PROMPT = """You are a session monitor for an AI coding agent. Your job is to assess whether \
the agent is on track toward the user's stated goal based on a summary of recent actions.

Respond with ONLY valid JSON, no markdown, no explanation, no code fences:
{
  "score": <integer 0-100>,
  "status": <"ON TRACK" | "HEADS UP" | "DRIFTING" | "STUCK">,
  "reason": <one sentence explanation>,
  "suggestion": <actionable suggestion for the user, or null if on track>
}

Score guide:
- 80-100: ON TRACK - agent is clearly working toward the goal
- 60-79:  HEADS UP - minor drift or inefficiency, but recoverable
- 40-59:  DRIFTING - significant deviation, user should redirect
- 0-39:   STUCK    - agent is looping, failing repeatedly, or lost

Be concise. The reason and suggestion each must be under 120 characters."""

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass(frozen=True)
class AssessorVerdict:
    """A well-formed answer from the external assessor."""
    score: int
    status: AssessmentStatus
    reason: str
    suggestion: Optional[str] = None


# =============================================================================
# PROMPT
# =============================================================================

def short_path(path: str) -> str:
    parts = path.split('/')
    return '.../' + '/'.join(parts[-2:]) if len(parts) > 3 else path


def tool_detail(tool_name: str, tool_input: Dict[str, Any]) -> str:
    """Short, tool-specific description of a call's argument."""
    if tool_name == 'Bash':
        return str(tool_input.get('command') or '')[:50]
    if tool_name in ('Edit', 'Write', 'Read', 'MultiEdit', 'NotebookEdit'):
        return short_path(str(tool_input.get('file_path') or tool_input.get('notebook_path') or ''))
    if tool_name == 'Glob':
        return str(tool_input.get('pattern') or '')
    if tool_name == 'Grep':
        return '"' + str(tool_input.get('pattern') or '')[:30] + '"'
    if tool_name == 'WebFetch':
        return str(tool_input.get('url') or '')[:50]
    if tool_name == 'Task':
        return str(tool_input.get('description') or '')[:50]
    return ''


def summarize_actions(tool_calls: Iterable[ToolCall], limit: int = MAX_ACTIONS) -> List[str]:
    calls = list(tool_calls)[-limit:]
    lines = []
    for call in calls:
        marker = ' [FAILED]' if call.failed else ''
        lines.append(f"  {call.tool_name}({tool_detail(call.tool_name, call.input)}){marker}")
    return lines


def build_prompt(goal: str, tool_calls: Iterable[ToolCall], signal_text: str) -> str:
    actions = summarize_actions(tool_calls)
    action_block = '\n'.join(actions) if actions else '  (none yet)'
    return (
        f"Goal: {goal}\n\n"
        f"Recent actions (last {len(actions)}):\n"
        f"{action_block}\n\n"
        f"Signal analysis: {signal_text}\n\n"
        f"Is the agent on track? Respond with JSON only."
    )


# =============================================================================
# RESPONSE
# =============================================================================

def normalize_status(value: Any) -> AssessmentStatus:
    """Match a free-form label against the known statuses (default HEADS UP)."""
    upper = str(value or '').upper().replace('_', ' ')
    for status in AssessmentStatus:
        if status.value in upper:
            return status
    return AssessmentStatus.HEADS_UP


def parse_verdict(raw: str) -> AssessorVerdict:
    """
    Parse the assessor's reply.

    Raises:
        AssessorResponseError: Not a JSON object with score, status and reason
    """
    text = (raw or '').strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AssessorResponseError(f"not JSON: {text[:80]!r}") from e

    if not isinstance(data, dict):
        raise AssessorResponseError("reply is not a JSON object")

    missing = [k for k in ('score', 'status', 'reason') if k not in data]
    if missing:
        raise AssessorResponseError(f"missing fields: {', '.join(missing)}")

    score = data['score']
    if isinstance(score, bool):
        raise AssessorResponseError(f"score is not a number: {score!r}")
    try:
        score = float(score)
    except (TypeError, ValueError):
        raise AssessorResponseError(f"score is not a number: {score!r}")
    if score != score:  # NaN
        raise AssessorResponseError("score is NaN")

    if not isinstance(data['status'], str) or not isinstance(data['reason'], str):
        raise AssessorResponseError("status and reason must be strings")

    suggestion = data.get('suggestion')
    if suggestion is not None and not isinstance(suggestion, str):
        raise AssessorResponseError("suggestion must be a string or null")

    return AssessorVerdict(
        score=clamp_score(score),
        status=normalize_status(data['status']),
        reason=data['reason'].strip()[:MAX_TEXT_CHARS],
        suggestion=suggestion.strip()[:MAX_TEXT_CHARS] if suggestion and suggestion.strip() else None,
    )


# =============================================================================
# BACKENDS
# =============================================================================

class BaseAssessor:
    """Common entry point; subclasses implement ``complete(prompt)``."""

    name = "base"

    def __init__(self, model: str = DEFAULT_ASSESSOR_MODEL, timeout: float = DEFAULT_ASSESSOR_TIMEOUT):
        self.model = model
        self.timeout = timeout

    def assess(
        self,
        goal: str,
        tool_calls: Iterable[ToolCall],
        signals: SignalSet,
        signal_text: str,
    ) -> AssessorVerdict:
        prompt = build_prompt(goal, tool_calls, signal_text)
        raw = self.complete(prompt)
        verdict = parse_verdict(raw)
        logger.info(f"{self.name} assessor: {verdict.status.value} {verdict.score}/100")
        return verdict

    def complete(self, prompt: str) -> str:
        raise NotImplementedError


class AnthropicAssessor(BaseAssessor):
    """Assessor backed by the Anthropic Messages API."""

    name = "api"

    def __init__(self, model: str = DEFAULT_ASSESSOR_MODEL, timeout: float = DEFAULT_ASSESSOR_TIMEOUT,
                 client: Optional[anthropic.Anthropic] = None):
        super().__init__(model, timeout)
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        # Created lazily so a missing API key only matters once we assess.
        if self._client is None:
            self._client = anthropic.Anthropic(timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=MAX_TOKENS,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        for block in response.content:
            if getattr(block, 'type', None) == 'text':
                return block.text
        raise AssessorResponseError("response has no text block")


class ClaudeCliAssessor(BaseAssessor):
    """Assessor that shells out to ``claude -p``."""

    name = "cli"

    def __init__(self, model: str = DEFAULT_ASSESSOR_MODEL, timeout: float = DEFAULT_ASSESSOR_TIMEOUT,
                 executable: str = "claude"):
        super().__init__(model, timeout)
        self.executable = executable

    def complete(self, prompt: str) -> str:
        try:
            result = subprocess.run(
                [self.executable, "-p", "--model", self.model,
                 "--append-system-prompt", SYSTEM_PROMPT],
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                start_new_session=True
            )
        except FileNotFoundError as e:
            raise AssessorUnavailableError(f"{self.executable} not found") from e

        if result.returncode != 0:
            raise AssessorUnavailableError(
                f"{self.executable} exited {result.returncode}: {result.stderr.strip()[:200]}"
            )
        output = result.stdout.strip()
        if not output:
            raise AssessorResponseError("empty response")
        return output


def create_assessor(settings: MonitorSettings) -> Optional[BaseAssessor]:
    """Build the configured assessor, or None for heuristic-only mode."""
    if settings.assessor_backend == "none":
        return None
    if settings.assessor_backend == "cli":
        return ClaudeCliAssessor(settings.assessor_model, settings.assessor_timeout)
    return AnthropicAssessor(settings.assessor_model, settings.assessor_timeout)
