"""
Transcript tailer: incremental JSONL reading under file growth.

The tailer owns a byte cursor into one transcript file and hands out only
complete lines appended since the last poll. Growth is detected by stat
polling on a background thread.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .config import POLL_INTERVAL

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]
BatchHandler = Callable[[List[RawRecord]], None]


def parse_line(line: Union[str, bytes]) -> Optional[RawRecord]:
    """
    Parse one transcript line.

    Returns:
        The JSON object, or None for blank, malformed or non-object lines
    """
    if isinstance(line, bytes):
        line = line.decode('utf-8', errors='replace')
    stripped = line.strip()
    if not stripped:
        return None
    try:
        record = json.loads(stripped)
    except json.JSONDecodeError:
        logger.debug(f"Malformed JSON line skipped: {stripped[:100]}...")
        return None
    if not isinstance(record, dict):
        logger.debug(f"Non-object JSON line skipped: {stripped[:100]}...")
        return None
    return record


def split_complete_lines(chunk: bytes) -> Tuple[List[bytes], int]:
    """
    Split a byte chunk into complete lines.

    Returns:
        (lines, consumed) where consumed is the number of bytes up to and
        including the last newline. A trailing fragment is not consumed.
    """
    end = chunk.rfind(b'\n')
    if end < 0:
        return [], 0
    return chunk[:end].split(b'\n'), end + 1


class TranscriptTailer:
    """
    Polls a JSONL transcript and pushes newly appended records to a handler.

    Usage:
        tailer = TranscriptTailer(path, on_batch=handle)
        history = tailer.read_all()           # optional full-history load
        tailer.start(seek_to_end=False)       # continue after history
        ...
        tailer.stop()
    """

    def __init__(
        self,
        path: Union[str, Path],
        on_batch: Optional[BatchHandler] = None,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.path = Path(path)
        self.on_batch = on_batch
        self.poll_interval = poll_interval

        self._offset = 0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.truncations = 0
        self.dropped_lines = 0

    @property
    def offset(self) -> int:
        """Current cursor position in bytes."""
        return self._offset

    def seek_to_end(self):
        """Move the cursor to the current end of file (no history replay)."""
        with self._lock:
            try:
                size = self.path.stat().st_size
            except OSError:
                size = 0  # file may not exist yet
            self._offset = max(self._offset, size)

    def read_all(self) -> List[RawRecord]:
        """
        Read every complete record from the start of the file.

        Used once at startup. Leaves the cursor after the last complete
        line so a following start(seek_to_end=False) loses nothing.
        """
        with self._lock:
            self._offset = 0
            return self._read_new()

    def poll_once(self) -> List[RawRecord]:
        """Read whatever complete lines were appended since the last poll."""
        with self._lock:
            return self._read_new()

    def _read_new(self) -> List[RawRecord]:
        try:
            size = self.path.stat().st_size
        except OSError as e:
            logger.debug(f"Transcript unavailable, retrying next poll: {e}")
            return []

        if size < self._offset:
            # Truncated or replaced. The gap is not replayed.
            logger.warning(
                f"Transcript {self.path.name} shrank from {self._offset} to {size} bytes, "
                f"continuing from new end"
            )
            self.truncations += 1
            self._offset = size
            return []

        if size == self._offset:
            return []

        try:
            with open(self.path, 'rb') as f:
                f.seek(self._offset)
                chunk = f.read(size - self._offset)
        except OSError as e:
            logger.debug(f"Error reading transcript: {e}")
            return []

        lines, consumed = split_complete_lines(chunk)
        self._offset += consumed

        records = []
        for line in lines:
            record = parse_line(line)
            if record is not None:
                records.append(record)
            elif line.strip():
                self.dropped_lines += 1
        return records

    # -------------------------------------------------------------------------
    # Background polling
    # -------------------------------------------------------------------------

    def start(self, seek_to_end: bool = True):
        """
        Start polling on a daemon thread.

        Args:
            seek_to_end: Skip existing content. Pass False after read_all().
        """
        if self._thread is not None:
            return  # Already running

        if seek_to_end:
            self.seek_to_end()

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name=f"TranscriptTailer-{self.path.stem[:8]}"
        )
        self._thread.start()
        logger.info(f"Tailing {self.path} from byte {self._offset}")

    def _poll_loop(self):
        while not self._stop_event.wait(self.poll_interval):
            try:
                batch = self.poll_once()
            except Exception as e:
                logger.error(f"Tailer poll error: {e}")
                continue

            # A read that finished after stop() is discarded.
            if not batch or self._stop_event.is_set():
                continue

            if self.on_batch is None:
                continue
            try:
                self.on_batch(batch)
            except Exception as e:
                logger.error(f"Tailer batch handler error: {e}")

    def stop(self):
        """Stop polling. Safe to call more than once."""
        self._stop_event.set()
        if self._thread:
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=max(1.0, self.poll_interval * 2))
            self._thread = None
        logger.debug(f"Stopped tailing {self.path}")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()
