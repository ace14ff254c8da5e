"""Append-only run log: one serialized writer, any number of tailers."""

import asyncio
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, TextIO

READ_CHUNK_BYTES = 64 * 1024


class RunLog:
    """Timestamped, line-oriented log file.

    All writers go through one lock and each line is flushed as a whole, so
    lines from concurrently drained streams never interleave. The file is
    only ever appended to.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._fh: Optional[TextIO] = None

    def open(self) -> "RunLog":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "a", encoding="utf-8")
        return self

    def write(self, message: str) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        with self._lock:
            if self._fh is None:
                raise RuntimeError(f"Run log {self.path} is not open")
            self._fh.write(f"[{stamp}] {message}\n")
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None


def line_timestamp(line: str) -> datetime:
    """The stamp ``RunLog.write`` put on ``line``; now for lines without one."""
    if line.startswith("[") and "] " in line:
        try:
            return datetime.fromisoformat(line[1:line.index("] ")])
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def _decode(raw: bytes) -> str:
    return raw.rstrip(b"\r").decode("utf-8", errors="replace")


async def tail_lines(
    path: Path,
    is_finished: Callable[[], bool],
    poll_interval: float = 0.25,
    final_backoff: float = 0.2,
) -> AsyncIterator[str]:
    """Yield complete lines of a growing file from byte 0.

    At end of file the tail sleeps and retries while ``is_finished()`` is
    false. Once it is true, one last read after ``final_backoff`` picks up
    whatever was flushed in between (including an unterminated last line)
    and the iteration ends.
    """
    with open(path, "rb") as fh:
        pending = b""
        while True:
            chunk = fh.read(READ_CHUNK_BYTES)
            if chunk:
                pending += chunk
                *lines, pending = pending.split(b"\n")
                for line in lines:
                    yield _decode(line)
                continue

            if is_finished():
                await asyncio.sleep(final_backoff)
                pending += fh.read()
                for line in pending.split(b"\n"):
                    if line:
                        yield _decode(line)
                return

            await asyncio.sleep(poll_interval)
