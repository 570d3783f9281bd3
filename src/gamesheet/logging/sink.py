"""Append-only NDJSON event log.

Each event is one line of ``logs/events.ndjson`` under the project root,
serialized with sorted keys.  Appends hold an exclusive ``fcntl.flock`` and
reads a shared one, so the CLI can read the log while the API server writes
it.  Without ``fcntl`` (Windows) files are used unlocked.

Reads only look at the last ``tail_bytes`` of the file.
"""

from __future__ import annotations

import json
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from gamesheet.logging.events import GamesheetEvent

try:
    import fcntl
except ImportError:
    fcntl = None  # type: ignore[assignment]
    print("[gamesheet] fcntl not available; event log locking disabled", file=sys.stderr)

LOG_FILENAME = "events.ndjson"
DEFAULT_TAIL_BYTES = 2 * 1024 * 1024
MAX_QUERY_LIMIT = 2000


@contextmanager
def _locked(path: Path, flags: int, *, exclusive: bool) -> Iterator[int]:
    """Open *path* as a raw descriptor and hold a flock on it."""
    fd = os.open(str(path), flags)
    try:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
        yield fd
    finally:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


class EventSink:
    """Writer and reader for one project's event log."""

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self.fsync = fsync
        self.tail_bytes = tail_bytes or DEFAULT_TAIL_BYTES
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self.logs_dir / LOG_FILENAME

    def write(self, event: GamesheetEvent) -> None:
        record = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str)
        data = (record + "\n").encode("utf-8")
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        with _locked(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, exclusive=True) as fd:
            os.write(fd, data)
            if self.fsync:
                os.fsync(fd)

    def iter_events(self) -> Iterator[dict[str, Any]]:
        """Yield logged events oldest first, skipping lines that do not parse."""
        for line in self._tail().splitlines():
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                continue

    def query(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        sheet_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Return matching events, newest first.

        ``sheet_id`` matches the ``sheet_id`` recorded in an event's context.
        At most ``MAX_QUERY_LIMIT`` events are returned.
        """
        wanted = {"level": level, "event_type": event_type}
        matches = [
            evt for evt in self.iter_events()
            if all(value is None or evt.get(key) == value for key, value in wanted.items())
            and (sheet_id is None or evt.get("context", {}).get("sheet_id") == sheet_id)
        ]
        matches.reverse()
        return matches[:min(limit, MAX_QUERY_LIMIT)]

    def _tail(self) -> str:
        if not self.path.exists():
            return ""
        with _locked(self.path, os.O_RDONLY, exclusive=False) as fd:
            size = os.fstat(fd).st_size
            start = max(0, size - self.tail_bytes)
            os.lseek(fd, start, os.SEEK_SET)
            data = os.read(fd, size - start)
        if start > 0:
            # the first line is probably cut
            _, _, data = data.partition(b"\n")
        return data.decode("utf-8", errors="replace")
