"""
Per-session bookkeeping on disk: goal text and the monitor's PID.

Layout:
    ~/.session-monitor/<session_id>/goal.txt
    ~/.session-monitor/<session_id>/monitor.pid
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from . import config
from .io_utils import atomic_read_text, atomic_write_text, remove_file

logger = logging.getLogger(__name__)


class GoalStore:
    """Reads and writes the goal for a session."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        self.base_dir = Path(base_dir) if base_dir else config.MONITOR_DIR

    def session_dir(self, session_id: str) -> Path:
        return self.base_dir / session_id

    def goal_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "goal.txt"

    def read(self, session_id: str) -> Optional[str]:
        content = atomic_read_text(self.goal_path(session_id))
        if content is None:
            return None
        return content.strip() or None

    def write(self, session_id: str, goal: str) -> bool:
        ok = atomic_write_text(self.goal_path(session_id), goal.strip())
        if ok:
            logger.info(f"Goal saved for session {session_id[:8]}")
        return ok

    # -------------------------------------------------------------------------
    # PID file
    # -------------------------------------------------------------------------

    def pid_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "monitor.pid"

    def write_pid(self, session_id: str, pid: Optional[int] = None) -> bool:
        return atomic_write_text(self.pid_path(session_id), str(pid or os.getpid()))

    def read_pid(self, session_id: str) -> Optional[int]:
        content = atomic_read_text(self.pid_path(session_id))
        if not content:
            return None
        try:
            return int(content.strip())
        except ValueError:
            logger.warning(f"Corrupt PID file for session {session_id[:8]}: {content[:20]!r}")
            return None

    def clear_pid(self, session_id: str) -> bool:
        return remove_file(self.pid_path(session_id))


def is_pid_alive(pid: int) -> bool:
    """Check whether a process exists (signal 0 probe)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by someone else
    return True
