"""Shared test fixtures and configuration."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Callable

import pytest

os.environ.setdefault("KELTHUZAD_ENV", "test")
os.environ.setdefault("KELTHUZAD_LOG_LEVEL", "WARNING")

from kelthuzad.config import Settings
from kelthuzad.supervisor.notifier import Notifier


class RecordingNotifier(Notifier):
    """Keeps every notification in memory."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self.records: list[tuple[str, dict[str, Any]]] = []

    def notify(self, message: str, **fields: Any) -> None:
        self.messages.append(message)
        self.records.append((message, fields))

    def saw(self, fragment: str) -> bool:
        return any(fragment in m for m in self.messages)

    def count(self, fragment: str) -> int:
        return sum(1 for m in self.messages if fragment in m)


class FakeHandle:
    """Stands in for ProcessHandle: stdout is a StreamReader the test feeds."""

    def __init__(self, pid: int, argv: list[str]) -> None:
        self.pid = pid
        self.argv = argv
        self.stdout = asyncio.StreamReader()
        self.has_exited = False
        self.terminate_calls = 0
        self.terminated_at: float | None = None
        self.terminate_error: Exception | None = None

    def terminate(self) -> bool:
        self.terminate_calls += 1
        if self.terminate_calls > 1:
            return False
        self.terminated_at = time.monotonic()
        if self.terminate_error:
            raise self.terminate_error
        self.has_exited = True
        self.stdout.feed_eof()
        return True

    async def wait(self, timeout: float | None = None) -> bool:
        return self.has_exited


class FakeSpawner:
    """Replacement for ProcessHandle.start that hands out FakeHandles."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.spawned_at: list[float] = []

    async def __call__(self, argv, notifier, *, capture_stdout=False, read_limit=0) -> FakeHandle:
        handle = FakeHandle(1000 + len(self.handles), list(argv))
        self.handles.append(handle)
        self.spawned_at.append(time.monotonic())
        notifier.spawned(handle.pid)
        return handle


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings() -> Settings:
    """Return fast test settings."""
    return Settings(
        env="test",
        log_level="WARNING",
        poll_interval=0.02,
        shutdown_grace=2.0,
        _env_file=None,
    )


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def eventually() -> Callable:
    """Poll an async condition until it holds or the timeout expires."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return _eventually
