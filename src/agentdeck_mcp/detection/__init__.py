"""State detectors for agent terminals."""

from __future__ import annotations

from .agents import (
    ClaudeStateDetector,
    CodexStateDetector,
    CursorStateDetector,
    GeminiStateDetector,
    GitHubCopilotStateDetector,
    PiStateDetector,
)
from .base import MAX_DETECTION_LINES, BaseStateDetector, SessionState, recent_lines

_DETECTORS: dict[str, type[BaseStateDetector]] = {
    detector.agent_type: detector
    for detector in (
        ClaudeStateDetector,
        CodexStateDetector,
        CursorStateDetector,
        GeminiStateDetector,
        GitHubCopilotStateDetector,
        PiStateDetector,
    )
}
_DETECTORS["claude-code"] = ClaudeStateDetector


def detector_for(agent_type: str | None) -> BaseStateDetector:
    """Return a detector for ``agent_type``; unknown types get the base detector."""

    detector_cls = _DETECTORS.get((agent_type or "").strip().lower(), BaseStateDetector)
    return detector_cls()


__all__ = [
    "BaseStateDetector",
    "ClaudeStateDetector",
    "CodexStateDetector",
    "CursorStateDetector",
    "GeminiStateDetector",
    "GitHubCopilotStateDetector",
    "MAX_DETECTION_LINES",
    "PiStateDetector",
    "SessionState",
    "detector_for",
    "recent_lines",
]
