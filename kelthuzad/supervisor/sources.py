"""Line sources: a live, append-only sequence of text lines.

Two variants share one interface:
- FileTailSource follows a log file from its current end, like ``tail -F``
- ProcessOutputSource reads a child's stdout until the pipe closes

``next_line()`` returns None at end of stream. A file tail never ends on its own.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Optional

from kelthuzad.logging_config import get_logger
from kelthuzad.supervisor.errors import LogFileError

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.25  # seconds between checks for appended data
READ_CHUNK_BYTES = 64 * 1024


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class LineSource(ABC):
    """A lazy, non-restartable sequence of lines."""

    @abstractmethod
    async def next_line(self) -> Optional[str]:
        """Return the next line, waiting for one if needed. None means the stream ended."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying handle. Further reads return None."""

    def __aiter__(self) -> LineSource:
        return self

    async def __anext__(self) -> str:
        line = await self.next_line()
        if line is None:
            raise StopAsyncIteration
        return line


class FileTailSource(LineSource):
    """Follows a file by path, starting at its end at open time.

    Content present before ``open()`` is never returned. When the path is
    rotated (it now names a different inode) or the file is truncated below our
    read position, the path is reopened and read from the beginning. A partial
    last line left in the old file is flushed before switching.
    """

    def __init__(self, path: str | Path, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self._path = Path(path)
        self._poll_interval = poll_interval
        self._file: Optional[BinaryIO] = None
        self._inode: Optional[int] = None
        self._buffer = b""
        self._closed = False

    @classmethod
    def open(cls, path: str | Path, poll_interval: float = DEFAULT_POLL_INTERVAL) -> FileTailSource:
        """Open ``path`` positioned at end of file. Raises LogFileError."""
        source = cls(path, poll_interval)
        source._open(seek_end=True)
        return source

    @property
    def path(self) -> Path:
        return self._path

    def _open(self, seek_end: bool) -> None:
        try:
            handle = open(self._path, "rb")
        except OSError as exc:
            raise LogFileError(str(self._path), exc.strerror or str(exc)) from exc
        if seek_end:
            handle.seek(0, os.SEEK_END)
        old, self._file = self._file, handle
        self._inode = os.fstat(handle.fileno()).st_ino
        if old:
            old.close()

    def _reopen(self) -> bool:
        """Switch to whatever the path names now. Keeps the old handle on failure."""
        try:
            self._open(seek_end=False)
        except LogFileError as exc:
            logger.warning("log_reopen_failed", path=str(self._path), reason=exc.reason)
            return False
        logger.info("log_reopened", path=str(self._path))
        return True

    def skip_to_end(self) -> None:
        """Drop anything appended but not yet returned."""
        self._buffer = b""
        if self._file:
            self._file.seek(0, os.SEEK_END)

    def _rotated(self) -> bool:
        """True if the path now names another file, or ours shrank under us."""
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            # Mid-rotation: keep reading the old handle until the new file shows up
            return False
        if st.st_ino != self._inode:
            return True
        return st.st_size < self._file.tell()

    def _pop_line(self) -> Optional[str]:
        idx = self._buffer.find(b"\n")
        if idx < 0:
            return None
        raw, self._buffer = self._buffer[:idx], self._buffer[idx + 1:]
        return _decode(raw)

    async def next_line(self) -> Optional[str]:
        while not self._closed:
            line = self._pop_line()
            if line is not None:
                return line

            chunk = self._file.read(READ_CHUNK_BYTES)
            if chunk:
                self._buffer += chunk
                continue

            if self._rotated():
                leftover = self._buffer
                if self._reopen():
                    self._buffer = b""
                    if leftover:
                        return _decode(leftover)
                    continue

            await asyncio.sleep(self._poll_interval)
        return None

    def close(self) -> None:
        self._closed = True
        if self._file:
            self._file.close()
            self._file = None


class ProcessOutputSource(LineSource):
    """Reads lines from one child's stdout. Ends when the child closes the pipe."""

    def __init__(self, stream: asyncio.StreamReader) -> None:
        self._stream = stream
        self._eof = False

    async def next_line(self) -> Optional[str]:
        while not self._eof:
            try:
                raw = await self._stream.readline()
            except ValueError as exc:
                # Line longer than the reader limit; asyncio has already dropped it
                logger.warning("stdout_line_too_long", error=str(exc))
                continue
            if not raw:
                self._eof = True
                break
            return _decode(raw)
        return None

    def close(self) -> None:
        self._eof = True
