"""
pytest fixtures for the session_monitor test suite.

Provides:
- Transcript record factories (user text, tool_use, tool_result)
- A writable JSONL transcript in tmp_path
- An isolated ~/.session-monitor and ~/.claude/projects
- Event builders for signal and scheduler tests
"""

import json
import itertools
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


# ===========================================================================
# Custom markers registration
# ===========================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


# ===========================================================================
# Record factories
# ===========================================================================

_ids = itertools.count(1)


def user_text(text: str, timestamp: str = "2026-01-15T10:00:00Z", as_blocks: bool = True) -> Dict[str, Any]:
    content = [{"type": "text", "text": text}] if as_blocks else text
    return {"type": "user", "timestamp": timestamp, "message": {"role": "user", "content": content}}


def tool_use(name: str, tool_input: Optional[Dict[str, Any]] = None, call_id: Optional[str] = None,
             timestamp: str = "2026-01-15T10:00:01Z") -> Dict[str, Any]:
    return {
        "type": "assistant",
        "timestamp": timestamp,
        "message": {
            "role": "assistant",
            "content": [{
                "type": "tool_use",
                "id": call_id or f"toolu_{next(_ids):04d}",
                "name": name,
                "input": tool_input or {},
            }],
        },
    }


def tool_result(call_id: str, is_error: bool = False, timestamp: str = "2026-01-15T10:00:02Z") -> Dict[str, Any]:
    return {
        "type": "user",
        "timestamp": timestamp,
        "message": {
            "role": "user",
            "content": [{
                "type": "tool_result",
                "tool_use_id": call_id,
                "is_error": is_error,
                "content": "error" if is_error else "ok",
            }],
        },
    }


def bash(command: str, call_id: Optional[str] = None) -> Dict[str, Any]:
    return tool_use("Bash", {"command": command}, call_id)


def edit(path: str, call_id: Optional[str] = None) -> Dict[str, Any]:
    return tool_use("Edit", {"file_path": path, "old_string": "a", "new_string": "b"}, call_id)


def read(path: str, call_id: Optional[str] = None) -> Dict[str, Any]:
    return tool_use("Read", {"file_path": path}, call_id)


def call_id_of(record: Dict[str, Any]) -> str:
    return record["message"]["content"][0]["id"]


# ===========================================================================
# Event builders (typed events, no JSON)
# ===========================================================================

def make_call(name: str, failed: bool = False, **tool_input) -> "ToolCall":
    from session_monitor.models import ToolCall
    call = ToolCall(id=f"toolu_{next(_ids):04d}", tool_name=name, input=dict(tool_input))
    if failed:
        call.resolve(True)
    return call


def make_calls(name: str, count: int, failed: bool = False, **tool_input) -> List["ToolCall"]:
    return [make_call(name, failed=failed, **tool_input) for _ in range(count)]


# ===========================================================================
# Transcript fixtures
# ===========================================================================

class TranscriptWriter:
    """Appends records (or raw text) to a JSONL transcript."""

    def __init__(self, path: Path):
        self.path = path
        self.path.touch()

    def append(self, *records: Dict[str, Any]):
        with open(self.path, "a", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record) + "\n")

    def append_raw(self, text: str):
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(text)

    def truncate(self, content: str = ""):
        self.path.write_text(content, encoding="utf-8")


@pytest.fixture
def transcript(tmp_path):
    """A fresh, empty transcript file."""
    return TranscriptWriter(tmp_path / "session.jsonl")


@pytest.fixture
def monitor_home(tmp_path, monkeypatch):
    """Point ~/.session-monitor and ~/.claude/projects at tmp_path."""
    from session_monitor import config

    home = tmp_path / "monitor-home"
    projects = tmp_path / "claude-projects"
    projects.mkdir()
    monkeypatch.setattr(config, "MONITOR_DIR", home)
    monkeypatch.setattr(config, "LOG_DIR", home / "logs")
    monkeypatch.setattr(config, "CONFIG_PATH", home / "config.yaml")
    monkeypatch.setattr(config, "CLAUDE_PROJECTS_DIR", projects)
    for var in (
        "SESSION_MONITOR_POLL_INTERVAL",
        "SESSION_MONITOR_RENDER_INTERVAL",
        "SESSION_MONITOR_ASSESS_EVERY",
        "SESSION_MONITOR_ASSESSOR",
        "SESSION_MONITOR_MODEL",
        "SESSION_MONITOR_ASSESSOR_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def project_session(monitor_home, tmp_path):
    """
    A Claude project directory for tmp_path/app with one transcript.

    Returns (cwd, SessionInfo, TranscriptWriter).
    """
    from session_monitor import config
    from session_monitor.sessions import SessionInfo, cwd_to_slug

    cwd = tmp_path / "app"
    cwd.mkdir()
    slug = cwd_to_slug(cwd.resolve())
    project_dir = config.CLAUDE_PROJECTS_DIR / slug
    project_dir.mkdir(parents=True)
    session_id = "a1b2c3d4-0000-4000-8000-000000000001"
    writer = TranscriptWriter(project_dir / f"{session_id}.jsonl")
    info = SessionInfo(session_id=session_id, transcript_path=writer.path, project_slug=slug)
    return cwd, info, writer


@pytest.fixture
def fast_settings():
    """MonitorSettings with short intervals and no external assessor."""
    from session_monitor.config import MonitorSettings
    return MonitorSettings(
        poll_interval=0.05,
        render_interval=0.05,
        assess_every=10,
        assessor_backend="none",
    )
