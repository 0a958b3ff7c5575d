"""Text-based classification of an agent terminal's state."""

from __future__ import annotations

import re
from enum import Enum
from typing import ClassVar, Iterable, Pattern, Sequence

MAX_DETECTION_LINES = 30


class SessionState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"
    WAITING_INPUT = "waiting_input"
    PENDING_AUTO_APPROVAL = "pending_auto_approval"

    def __str__(self) -> str:
        return self.value


def _compile(*patterns: str) -> tuple[Pattern[str], ...]:
    return tuple(re.compile(pattern) for pattern in patterns)


def recent_lines(lines: Iterable[str] | None, max_lines: int = MAX_DETECTION_LINES) -> list[str]:
    """Return the last ``max_lines`` lines, ignoring blank lines at the bottom."""

    collected = [line.rstrip() for line in (lines or [])]
    while collected and not collected[-1].strip():
        collected.pop()
    return collected[-max_lines:]


class BaseStateDetector:
    """Classify rendered terminal lines as waiting for input, busy or idle.

    Patterns are matched against the lower-cased snapshot. Waiting-input
    patterns take priority over busy patterns and anything unmatched is idle;
    the previous state is accepted for interface symmetry but never retained.
    """

    agent_type: ClassVar[str] = "generic"

    WAITING_PATTERNS: ClassVar[tuple[Pattern[str], ...]] = _compile(
        r"\[y/n\]",
        r"\(y/n\)",
        r"\byes/no\b",
        r"press (?:enter|return) to (?:confirm|continue)",
        r"do you want|would you like",
        r"(?:select|choose) a session",
        r"resume (?:a |the )?(?:previous |last )?(?:session|conversation)\?",
    )
    BUSY_PATTERNS: ClassVar[tuple[Pattern[str], ...]] = _compile(
        r"ctrl\+c to interrupt",
        r"esc to interrupt",
    )

    def snapshot(self, lines: Sequence[str] | None) -> str:
        return "\n".join(recent_lines(lines)).lower()

    def is_waiting(self, content: str) -> bool:
        return any(pattern.search(content) for pattern in self.WAITING_PATTERNS)

    def is_busy(self, content: str) -> bool:
        return any(pattern.search(content) for pattern in self.BUSY_PATTERNS)

    def detect(
        self,
        lines: Sequence[str] | None,
        previous_state: SessionState | None = None,
    ) -> SessionState:
        content = self.snapshot(lines)
        if not content.strip():
            return SessionState.IDLE
        if self.is_waiting(content):
            return SessionState.WAITING_INPUT
        if self.is_busy(content):
            return SessionState.BUSY
        return SessionState.IDLE


__all__ = [
    "BaseStateDetector",
    "MAX_DETECTION_LINES",
    "SessionState",
    "recent_lines",
]
