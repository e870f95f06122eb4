"""Kelthuzad self-healing supervisor.

Components:
- Supervisor: owns the current child and runs the detect/react loop
- ProcessHandle: spawns one child in its own process group and terminates the group
- LineSource: FileTailSource / ProcessOutputSource, a live sequence of lines
- FailureDetector: classifies a line against the failure regex
- SupervisorNotifier: structlog-backed sink for status messages
"""

from kelthuzad.supervisor.detector import Classification, FailureDetector
from kelthuzad.supervisor.errors import (
    LaunchError,
    LogFileError,
    PatternError,
    ProcessGroupError,
    SupervisorError,
)
from kelthuzad.supervisor.monitor import Supervisor
from kelthuzad.supervisor.notifier import Notifier, SupervisorNotifier
from kelthuzad.supervisor.process import ProcessHandle, ProcessState
from kelthuzad.supervisor.sources import FileTailSource, LineSource, ProcessOutputSource

__all__ = [
    "Classification",
    "FailureDetector",
    "FileTailSource",
    "LaunchError",
    "LineSource",
    "LogFileError",
    "Notifier",
    "PatternError",
    "ProcessGroupError",
    "ProcessHandle",
    "ProcessOutputSource",
    "ProcessState",
    "Supervisor",
    "SupervisorError",
    "SupervisorNotifier",
]
