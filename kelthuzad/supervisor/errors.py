"""Errors raised by the supervisor core.

Everything except ``ProcessGroupError`` is fatal at startup. ``ProcessGroupError``
is fatal only when it happens while shutting down; during a respawn the old
process has most likely exited on its own and the loop carries on.
"""

from __future__ import annotations


class SupervisorError(Exception):
    """Base class for supervisor failures."""


class PatternError(SupervisorError):
    """The failure signature is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"invalid regex {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class LaunchError(SupervisorError):
    """The supervised command could not be started."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"cannot launch {command!r}: {reason}")
        self.command = command
        self.reason = reason


class LogFileError(SupervisorError):
    """The log file to tail could not be opened."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot open log {path!r}: {reason}")
        self.path = path
        self.reason = reason


class ProcessGroupError(SupervisorError):
    """The process group of a child could not be looked up or signalled."""

    def __init__(self, pid: int, reason: str) -> None:
        super().__init__(f"cannot signal process group of pid {pid}: {reason}")
        self.pid = pid
        self.reason = reason
