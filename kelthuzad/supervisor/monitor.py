"""Supervisor: the detect/react loop that keeps one child healthy.

The supervisor:
- Starts the command in its own process group
- Reads lines from the child's stdout or from a tailed log file
- On a failure line: waits the cooldown, terminates the group, respawns
- Stops on an external shutdown request, terminating the live child once

All state changes happen on one asyncio task. Lines and shutdown requests
arrive as events on a single queue, so a shutdown can never interleave with a
terminate/respawn sequence: it is simply the next event the loop handles.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Union

from kelthuzad.config import LineSourceMode, Settings, WatchConfig, get_settings
from kelthuzad.logging_config import get_logger
from kelthuzad.supervisor.detector import Classification, FailureDetector
from kelthuzad.supervisor.errors import ProcessGroupError
from kelthuzad.supervisor.notifier import Notifier
from kelthuzad.supervisor.process import ProcessHandle
from kelthuzad.supervisor.sources import FileTailSource, LineSource, ProcessOutputSource

logger = get_logger(__name__)


@dataclass(frozen=True)
class LineArrived:
    generation: int
    text: str


@dataclass(frozen=True)
class SourceClosed:
    generation: int


@dataclass(frozen=True)
class ShutdownRequested:
    pass


Event = Union[LineArrived, SourceClosed, ShutdownRequested]


class Supervisor:
    """Owns the current child, its line source and the detect/react loop.

    Every spawn bumps ``generation``. Line events carry the generation of the
    pump that read them; anything from an older generation is dropped, so a
    replacement child's output is never judged against its predecessor and the
    backlog read before a respawn is never replayed.
    """

    def __init__(
        self,
        config: WatchConfig,
        detector: FailureDetector,
        notifier: Notifier,
        settings: Optional[Settings] = None,
    ) -> None:
        self._config = config
        self._detector = detector
        self._notifier = notifier
        self._settings = settings or get_settings()
        self._mode = config.mode

        self._current: Optional[ProcessHandle] = None
        self._source: Optional[LineSource] = None
        self._pump: Optional[asyncio.Task] = None
        self._generation = 0
        self._respawns = 0

        self._events: asyncio.Queue[Event] = asyncio.Queue()
        self._stopping = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_requested = False
        self._stopped = False

    # ── Observation ──────────────────────────────────────────────────

    @property
    def mode(self) -> LineSourceMode:
        return self._mode

    @property
    def current(self) -> Optional[ProcessHandle]:
        return self._current

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def respawn_count(self) -> int:
        return self._respawns

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    # ── Shutdown entry point ─────────────────────────────────────────

    def shutdown(self) -> None:
        """Ask the loop to stop. Safe from signal handlers and other threads.

        Only the first call has an effect. The loop itself terminates the live
        child, so the current handle is never touched from here.
        """
        if self._shutdown_requested:
            return
        self._shutdown_requested = True
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._wake)

    request_shutdown = shutdown

    def _wake(self) -> None:
        if self._stopping.is_set():
            return
        self._stopping.set()
        self._events.put_nowait(ShutdownRequested())

    # ── Main loop ────────────────────────────────────────────────────

    async def run(self) -> None:
        """Spawn the child and supervise it until shutdown is requested."""
        self._loop = asyncio.get_running_loop()
        if self._shutdown_requested:
            self._wake()

        try:
            if not self._stopping.is_set():
                await self._start()
            await self._consume()
        except BaseException:
            self._abort()
            raise
        finally:
            self._loop = None

        await self._stop()

    async def _start(self) -> None:
        if self._mode is LineSourceMode.FILE:
            # Open before spawning so a bad path never leaves an orphan child
            self._source = FileTailSource.open(self._config.log_path, self._settings.poll_interval)
            self._notifier.monitoring("log")
        else:
            self._notifier.monitoring("stdout")
        await self._spawn()

    async def _consume(self) -> None:
        while not self._stopping.is_set():
            event = await self._events.get()
            if isinstance(event, ShutdownRequested):
                break
            if event.generation != self._generation:
                continue
            if isinstance(event, SourceClosed):
                self._on_source_closed()
                continue
            await self._check(event.text)

    async def _check(self, line: str) -> None:
        if self._detector.classify(line) is Classification.MATCH:
            await self._react(line)
        elif self._config.verbose:
            self._notifier.line(line)

    async def _react(self, line: str) -> None:
        """Cooldown, then terminate the sick child and spawn a fresh one."""
        self._notifier.failure(line, self._detector.pattern)
        await self._stop_pump()

        self._notifier.waiting(self._config.delay)
        if await self._cooldown():
            return

        self._terminate_for_respawn()
        if isinstance(self._source, FileTailSource):
            self._source.skip_to_end()
        await self._spawn()
        self._respawns += 1

    async def _cooldown(self) -> bool:
        """Sleep for the configured delay. Returns True if shutdown cut it short."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self._config.delay)
        except asyncio.TimeoutError:
            return False
        return True

    # ── Process and source lifecycle ─────────────────────────────────

    async def _spawn(self) -> None:
        handle = await ProcessHandle.start(
            self._config.argv,
            self._notifier,
            capture_stdout=self._mode is LineSourceMode.STDOUT,
            read_limit=self._settings.read_limit,
        )
        self._current = handle
        if self._mode is LineSourceMode.STDOUT:
            if self._source:
                self._source.close()
            self._source = ProcessOutputSource(handle.stdout)
        self._generation += 1
        self._pump = asyncio.create_task(
            self._pump_lines(self._source, self._generation),
            name=f"pump-{self._generation}",
        )

    async def _pump_lines(self, source: LineSource, generation: int) -> None:
        """Background task: copy lines from ``source`` into the event queue."""
        while True:
            line = await source.next_line()
            if line is None:
                self._events.put_nowait(SourceClosed(generation))
                return
            self._events.put_nowait(LineArrived(generation, line))

    async def _stop_pump(self) -> None:
        pump, self._pump = self._pump, None
        if pump is None or pump.done():
            return
        pump.cancel()
        try:
            await pump
        except asyncio.CancelledError:
            pass

    def _terminate_for_respawn(self) -> None:
        handle = self._current
        if handle is None:
            return
        try:
            handle.terminate()
        except ProcessGroupError as exc:
            # Most likely already gone on its own; the respawn goes ahead
            self._notifier.error(str(exc), pid=exc.pid)

    def _on_source_closed(self) -> None:
        pid = self._current.pid if self._current else None
        self._notifier.notify(
            f"output of {pid} closed without a failure line; waiting for shutdown",
            level="warning",
            pid=pid,
        )

    async def _stop(self) -> None:
        """Terminate the live child exactly once. ProcessGroupError is fatal here."""
        await self._stop_pump()
        if self._source:
            self._source.close()

        handle = self._current
        self._stopped = True
        if handle is not None and handle.terminate():
            if not await handle.wait(self._settings.shutdown_grace):
                logger.warning("child_still_running_after_grace", pid=handle.pid)
        self._notifier.notify("supervisor stopped")

    def _abort(self) -> None:
        """Best-effort cleanup when the loop dies on a fatal error."""
        if self._pump and not self._pump.done():
            self._pump.cancel()
        if self._source:
            self._source.close()
        self._stopped = True
        if self._current is None:
            return
        try:
            self._current.terminate()
        except ProcessGroupError as exc:
            logger.warning("abort_terminate_failed", pid=exc.pid, reason=exc.reason)
