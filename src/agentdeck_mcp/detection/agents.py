"""Per-agent state detectors tuned to each CLI's prompts."""

from __future__ import annotations

from .base import BaseStateDetector, _compile


class ClaudeStateDetector(BaseStateDetector):
    agent_type = "claude"

    WAITING_PATTERNS = BaseStateDetector.WAITING_PATTERNS + _compile(
        r"esc to cancel",
    )


class CodexStateDetector(BaseStateDetector):
    agent_type = "codex"

    WAITING_PATTERNS = BaseStateDetector.WAITING_PATTERNS + _compile(
        r"press enter to confirm or esc to cancel",
        r"confirm with .+ enter",
        r"allow command\?",
        r"yes \(y\)",
    )
    BUSY_PATTERNS = BaseStateDetector.BUSY_PATTERNS + _compile(
        r"esc.*interrupt",
    )


class GeminiStateDetector(BaseStateDetector):
    agent_type = "gemini"

    WAITING_PATTERNS = BaseStateDetector.WAITING_PATTERNS + _compile(
        r"waiting for user confirmation",
        r"│ apply this change",
        r"│ allow execution",
        r"(?:allow execution|apply this change)[\s\S]*?\n+[\s\S]*?\byes\b",
    )
    BUSY_PATTERNS = BaseStateDetector.BUSY_PATTERNS + _compile(
        r"esc to cancel",
    )


class CursorStateDetector(BaseStateDetector):
    agent_type = "cursor"

    WAITING_PATTERNS = BaseStateDetector.WAITING_PATTERNS + _compile(
        r"\(y\) \(enter\)",
        r"keep \(n\)",
        r"auto .* \(shift\+tab\)",
    )
    BUSY_PATTERNS = BaseStateDetector.BUSY_PATTERNS + _compile(
        r"ctrl\+c to stop",
    )


class GitHubCopilotStateDetector(BaseStateDetector):
    agent_type = "github-copilot"

    WAITING_PATTERNS = BaseStateDetector.WAITING_PATTERNS + _compile(
        r"confirm with .+ enter",
    )
    BUSY_PATTERNS = BaseStateDetector.BUSY_PATTERNS + _compile(
        r"esc to cancel",
    )


class PiStateDetector(BaseStateDetector):
    agent_type = "pi"

    BUSY_PATTERNS = BaseStateDetector.BUSY_PATTERNS + _compile(
        r"esc to cancel",
    )


__all__ = [
    "ClaudeStateDetector",
    "CodexStateDetector",
    "CursorStateDetector",
    "GeminiStateDetector",
    "GitHubCopilotStateDetector",
    "PiStateDetector",
]
