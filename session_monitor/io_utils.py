"""
Atomic File I/O Utilities

Small text files (goal, PID) are shared between the running monitor and
one-shot CLI invocations. Reads take a shared fcntl lock, writes an
exclusive one, with a short retry loop when the lock is contended.
"""

import fcntl
import logging
import os
import time
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


def atomic_read_text(path: Union[str, Path], max_retries: int = 5) -> Optional[str]:
    """
    Read a text file under a shared lock.

    Args:
        path: File to read
        max_retries: Number of times to retry if the lock is held

    Returns:
        File content, or None if the file doesn't exist or can't be read
    """
    file_path = Path(path)
    if not file_path.exists():
        return None

    for attempt in range(max_retries):
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                try:
                    fcntl.flock(f, fcntl.LOCK_SH | fcntl.LOCK_NB)
                except BlockingIOError:
                    if attempt < max_retries - 1:
                        time.sleep(0.05 * (attempt + 1))
                        continue
                    logger.warning(f"Could not acquire read lock on {file_path}")
                    return None
                try:
                    return f.read()
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Error reading {file_path}: {e}")
            return None

    return None


def atomic_write_text(path: Union[str, Path], content: str, max_retries: int = 5) -> bool:
    """
    Replace a text file's content under an exclusive lock.

    The file is opened without truncation, locked, then truncated and
    written, so a failed lock never leaves an empty file behind.

    Returns:
        True if successful, False otherwise
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    for attempt in range(max_retries):
        try:
            mode = 'r+' if file_path.exists() else 'w+'
            with open(file_path, mode, encoding='utf-8') as f:
                try:
                    fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    if attempt < max_retries - 1:
                        time.sleep(0.05 * (attempt + 1))
                        continue
                    logger.error(f"Could not acquire write lock on {file_path}")
                    return False
                try:
                    f.seek(0)
                    f.truncate()
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                    return True
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)
        except OSError as e:
            logger.error(f"Error writing {file_path}: {e}")
            return False

    return False


def remove_file(path: Union[str, Path]) -> bool:
    """Delete a file if present. Returns True if something was removed."""
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
        return False
