"""
Event reconciler: raw transcript records -> typed domain events.

Classification happens once per record. Tool results are matched back to
their calls here and nowhere else, so ``ToolCall.failed`` has exactly one
writer.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import DomainEvent, ToolCall, ToolResult, UserMessage, utc_now

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, defaulting to now when absent or invalid."""
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
    return utc_now()


def _content_blocks(record: Dict[str, Any]) -> Optional[list]:
    message = record.get('message')
    if not isinstance(message, dict):
        return None
    content = message.get('content')
    if isinstance(content, list):
        return [b for b in content if isinstance(b, dict)]
    return None


def _first_block(blocks: list, block_type: str) -> Optional[Dict[str, Any]]:
    for block in blocks:
        if block.get('type') == block_type:
            return block
    return None


def parse_record(record: Any) -> Optional[DomainEvent]:
    """
    Classify one transcript record. First match wins:

    1. user record with a text block (or plain string content) -> UserMessage
    2. assistant record with a tool_use block -> ToolCall (first block only)
    3. user record with a tool_result block -> ToolResult (first block only)

    Any other shape yields None.
    """
    if not isinstance(record, dict):
        return None

    record_type = record.get('type')
    timestamp = parse_timestamp(record.get('timestamp'))

    if record_type == 'user':
        message = record.get('message')
        if isinstance(message, dict) and isinstance(message.get('content'), str):
            return UserMessage(text=message['content'], timestamp=timestamp)

        blocks = _content_blocks(record)
        if not blocks:
            return None

        text_block = _first_block(blocks, 'text')
        if text_block is not None:
            return UserMessage(text=str(text_block.get('text') or ''), timestamp=timestamp)

        result_block = _first_block(blocks, 'tool_result')
        if result_block is not None and result_block.get('tool_use_id'):
            return ToolResult(
                tool_call_id=str(result_block['tool_use_id']),
                is_error=bool(result_block.get('is_error', False)),
                timestamp=timestamp,
            )
        return None

    if record_type == 'assistant':
        blocks = _content_blocks(record)
        if not blocks:
            return None
        tool_block = _first_block(blocks, 'tool_use')
        if tool_block is None or not tool_block.get('id'):
            return None
        tool_input = tool_block.get('input')
        return ToolCall(
            id=str(tool_block['id']),
            tool_name=str(tool_block.get('name') or '?'),
            input=tool_input if isinstance(tool_input, dict) else {},
            timestamp=timestamp,
        )

    return None


class EventReconciler:
    """
    Builds the append-only event log and back-fills tool call outcomes.

    UserMessage and ToolCall events go into ``events``. ToolResult events are
    consumed: each resolves the ToolCall sharing its id anywhere in the log,
    or waits in ``pending_results`` until that call shows up.
    """

    def __init__(self, events: Optional[List[DomainEvent]] = None):
        self.events: List[DomainEvent] = events if events is not None else []
        self._calls_by_id: Dict[str, ToolCall] = {}
        self.pending_results: Dict[str, ToolResult] = {}
        for event in self.events:
            if isinstance(event, ToolCall):
                self._calls_by_id.setdefault(event.id, event)

    def ingest(self, record: Any) -> Optional[DomainEvent]:
        """Parse one record and fold it into the log. Returns the event, if any."""
        event = parse_record(record)
        if event is None:
            return None

        if isinstance(event, ToolResult):
            self._apply_result(event)
            return event

        self.events.append(event)
        if isinstance(event, ToolCall):
            if event.id in self._calls_by_id:
                logger.debug(f"Duplicate tool call id {event.id}; first occurrence kept for matching")
            else:
                self._calls_by_id[event.id] = event
            early = self.pending_results.pop(event.id, None)
            if early is not None:
                self._apply_result(early)
        return event

    def ingest_all(self, records: List[Any]) -> List[DomainEvent]:
        produced = []
        for record in records:
            event = self.ingest(record)
            if event is not None:
                produced.append(event)
        return produced

    def _apply_result(self, result: ToolResult):
        call = self._calls_by_id.get(result.tool_call_id)
        if call is None:
            # Out-of-order delivery; resolved when the call arrives.
            self.pending_results[result.tool_call_id] = result
            return
        if not call.resolve(result.is_error):
            logger.debug(f"Tool call {call.id} already resolved; later result ignored")

    def resolve_all(self) -> int:
        """
        Full pass: match every pending result against the whole log.

        Returns:
            Number of results resolved
        """
        resolved = 0
        for call_id in list(self.pending_results):
            if call_id in self._calls_by_id:
                self._apply_result(self.pending_results.pop(call_id))
                resolved += 1
        return resolved

    @property
    def tool_calls(self) -> List[ToolCall]:
        return [e for e in self.events if isinstance(e, ToolCall)]
