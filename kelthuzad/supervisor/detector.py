"""Failure signature matching."""

from __future__ import annotations

import re
from enum import StrEnum

from kelthuzad.supervisor.errors import PatternError


class Classification(StrEnum):
    """Result of checking one line against the failure signature."""

    MATCH = "match"
    NO_MATCH = "no_match"


class FailureDetector:
    """Wraps one compiled pattern. A line matches if the pattern is found anywhere in it."""

    def __init__(self, pattern: str) -> None:
        try:
            self._regex = re.compile(pattern)
        except re.error as exc:
            raise PatternError(pattern, str(exc)) from exc
        self._pattern = pattern

    @property
    def pattern(self) -> str:
        return self._pattern

    def classify(self, line: str) -> Classification:
        if self._regex.search(line):
            return Classification.MATCH
        return Classification.NO_MATCH

    def matches(self, line: str) -> bool:
        return self.classify(line) is Classification.MATCH
