"""Supervisor Notifier: the status sink for supervisor events.

Provides a single entry point for all human-readable supervisor messages:
- Process spawned / done
- Failure detected and cooldown started
- Verbose echo of ordinary lines
- Fatal errors

The sink is handed to the Supervisor and every ProcessHandle at construction,
so tests can swap in a recording notifier.
"""

from __future__ import annotations

from typing import Any, Optional

from kelthuzad.logging_config import get_logger


class Notifier:
    """Abstract status sink. Subclasses implement ``notify``."""

    def notify(self, message: str, **fields: Any) -> None:
        raise NotImplementedError

    def spawned(self, pid: int) -> None:
        self.notify(f"{pid} is spawned", pid=pid)

    def exited(self, pid: int, returncode: Optional[int]) -> None:
        self.notify(f"{pid} is done!", pid=pid, returncode=returncode)

    def failure(self, line: str, pattern: str) -> None:
        self.notify(f"[FAIL] {line} -> {pattern}", level="warning")

    def waiting(self, delay: float) -> None:
        self.notify(f"Waiting {delay:g} seconds...", delay=delay)

    def line(self, text: str) -> None:
        self.notify(text)

    def monitoring(self, mode: str) -> None:
        self.notify(f"monitoring {mode}...", mode=mode)

    def error(self, message: str, **fields: Any) -> None:
        self.notify(message, level="error", **fields)


class SupervisorNotifier(Notifier):
    """Writes every notification as one structlog event."""

    def __init__(self, name: str = "kelthuzad") -> None:
        self._logger = get_logger(name)

    def notify(self, message: str, level: str = "info", **fields: Any) -> None:
        log = getattr(self._logger, level, self._logger.info)
        log(message, **fields)
