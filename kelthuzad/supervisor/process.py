"""Process handle: one supervised child and its process group.

The child is started in a new session, so it leads its own process group and
anything it forks lands in the same group. Termination signals the whole group
at once, which is what keeps wrapper scripts from leaking grandchildren.
"""

from __future__ import annotations

import asyncio
import os
import signal
from enum import StrEnum
from typing import Optional, Sequence

from kelthuzad.logging_config import get_logger
from kelthuzad.supervisor.errors import LaunchError, ProcessGroupError
from kelthuzad.supervisor.notifier import Notifier

logger = get_logger(__name__)

DEFAULT_READ_LIMIT = 1024 * 1024  # bytes per stdout line


class ProcessState(StrEnum):
    """Lifecycle of a supervised child."""

    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"


class ProcessHandle:
    """Owns one OS process and its process group.

    Handles are never reused: the supervisor replaces the handle on every
    respawn. A background watcher moves the state to EXITED when the OS reports
    the exit; it only reports, it never decides anything.
    """

    def __init__(
        self,
        argv: Sequence[str],
        notifier: Notifier,
        capture_stdout: bool = False,
        read_limit: int = DEFAULT_READ_LIMIT,
    ) -> None:
        if not argv:
            raise LaunchError("", "empty command")
        self._argv = list(argv)
        self._notifier = notifier
        self._capture_stdout = capture_stdout
        self._read_limit = read_limit
        self._state = ProcessState.STARTING
        self._process: Optional[asyncio.subprocess.Process] = None
        self._pgid: Optional[int] = None
        self._watcher: Optional[asyncio.Task] = None
        self._exited = asyncio.Event()
        self._signalled = False

    @classmethod
    async def start(
        cls,
        argv: Sequence[str],
        notifier: Notifier,
        *,
        capture_stdout: bool = False,
        read_limit: int = DEFAULT_READ_LIMIT,
    ) -> ProcessHandle:
        """Launch ``argv`` in a new process group and start watching it."""
        handle = cls(argv, notifier, capture_stdout=capture_stdout, read_limit=read_limit)
        await handle._launch()
        return handle

    @property
    def command(self) -> str:
        return " ".join(self._argv)

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def pgid(self) -> Optional[int]:
        return self._pgid

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def has_exited(self) -> bool:
        return self._state is ProcessState.EXITED

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def signalled(self) -> bool:
        return self._signalled

    @property
    def stdout(self) -> Optional[asyncio.StreamReader]:
        """The child's stdout stream, only when it was captured."""
        return self._process.stdout if self._process else None

    async def _launch(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE if self._capture_stdout else None,
                start_new_session=True,
                limit=self._read_limit,
            )
        except OSError as exc:
            raise LaunchError(self.command, exc.strerror or str(exc)) from exc

        # start_new_session makes the child a session (and group) leader
        self._pgid = self._process.pid
        self._state = ProcessState.RUNNING
        self._notifier.spawned(self._process.pid)
        self._watcher = asyncio.create_task(self._watch(), name=f"watch-{self._process.pid}")
        self._watcher.add_done_callback(self._on_watcher_done)

    async def _watch(self) -> None:
        """Background task: wait for the OS to report the exit, then announce it."""
        returncode = await self._process.wait()
        self._state = ProcessState.EXITED
        self._exited.set()
        self._notifier.exited(self._process.pid, returncode)

    def _on_watcher_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("process_watcher_failed", pid=self.pid, error=str(exc))

    def terminate(self) -> bool:
        """Send SIGTERM to the whole process group.

        Returns True if a signal was sent. A handle is signalled at most once,
        and never after its exit has been observed (the pid may be recycled).
        Raises ProcessGroupError if the group cannot be looked up or signalled.
        """
        if self._process is None or self._signalled:
            return False
        # asyncio sets returncode on reap, a loop step before the watcher runs
        if self.has_exited or self._process.returncode is not None:
            logger.debug("terminate_skipped_already_exited", pid=self._process.pid)
            return False

        pid = self._process.pid
        try:
            pgid = os.getpgid(pid)
            os.killpg(pgid, signal.SIGTERM)
        except OSError as exc:
            raise ProcessGroupError(pid, exc.strerror or str(exc)) from exc

        self._signalled = True
        logger.debug("process_group_terminated", pid=pid, pgid=pgid)
        return True

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until the watcher has seen the exit. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._exited.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def __repr__(self) -> str:
        return f"<ProcessHandle pid={self.pid} state={self._state.value} command={self.command!r}>"
