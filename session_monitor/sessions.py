"""
Locating Claude Code transcripts.

Claude stores transcripts in ~/.claude/projects/<slug>/<session_id>.jsonl,
where the slug is the project's absolute path with slashes turned into
dashes.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    session_id: str
    transcript_path: Path
    project_slug: str


def cwd_to_slug(cwd: Union[str, Path]) -> str:
    """
    /home/user/projects/app -> -home-user-projects-app
    """
    return str(cwd).replace('/', '-')


def _sessions_in(project_dir: Path) -> List[SessionInfo]:
    sessions = []
    try:
        candidates = list(project_dir.glob("*.jsonl"))
    except OSError:
        return []
    for path in candidates:
        sessions.append(SessionInfo(
            session_id=path.stem,
            transcript_path=path,
            project_slug=project_dir.name,
        ))
    return sessions


def _mtime(info: SessionInfo) -> float:
    try:
        return info.transcript_path.stat().st_mtime
    except OSError:
        return 0.0


def project_dir_for(cwd: Union[str, Path], projects_dir: Optional[Path] = None) -> Optional[Path]:
    """Transcript directory for a project, or None if Claude never ran there."""
    base = projects_dir or config.CLAUDE_PROJECTS_DIR
    candidate = base / cwd_to_slug(Path(cwd).resolve())
    if candidate.is_dir():
        return candidate
    logger.debug(f"No transcript directory for {cwd} at {candidate}")
    return None


def latest_session(cwd: Union[str, Path], projects_dir: Optional[Path] = None) -> Optional[SessionInfo]:
    """The most recently modified session transcript for a project."""
    project_dir = project_dir_for(cwd, projects_dir)
    if project_dir is None:
        return None
    sessions = _sessions_in(project_dir)
    if not sessions:
        return None
    return max(sessions, key=_mtime)


def find_session(
    id_prefix: str,
    cwd: Optional[Union[str, Path]] = None,
    projects_dir: Optional[Path] = None,
) -> Optional[SessionInfo]:
    """
    Find a session by ID prefix.

    Searches the cwd's project first, then every project.
    """
    base = projects_dir or config.CLAUDE_PROJECTS_DIR
    search_dirs: List[Path] = []

    if cwd is not None:
        project_dir = project_dir_for(cwd, base)
        if project_dir is not None:
            search_dirs.append(project_dir)

    if base.is_dir():
        search_dirs.extend(sorted(d for d in base.iterdir() if d.is_dir() and d not in search_dirs))

    for project_dir in search_dirs:
        matches = [s for s in _sessions_in(project_dir) if s.session_id.startswith(id_prefix)]
        if matches:
            return max(matches, key=_mtime)
    return None
