"""Agent profiles shipped with AgentDeck."""

from __future__ import annotations

from typing import Any

from .models import AgentProfile

_BUILTIN_DEFINITIONS: list[dict[str, Any]] = [
    {
        "id": "claude-code",
        "name": "Claude Code",
        "description": "Anthropic Claude CLI for coding assistance",
        "agent_type": "claude",
        "command": "claude",
        "options": [
            {
                "id": "yolo",
                "flag": "--dangerously-skip-permissions",
                "label": "YOLO Mode",
                "description": "Skip all permission prompts",
                "type": "boolean",
                "default": False,
            },
            {
                "id": "continue",
                "flag": "--continue",
                "label": "Continue",
                "description": "Continue the most recent conversation",
                "type": "boolean",
                "default": False,
                "group": "resume-mode",
            },
            {
                "id": "resume",
                "flag": "--resume",
                "label": "Resume",
                "description": "Resume a specific conversation by ID",
                "type": "string",
                "group": "resume-mode",
            },
            {
                "id": "model",
                "flag": "--model",
                "label": "Model",
                "description": "Model to use",
                "type": "string",
                "choices": [
                    {"value": "sonnet", "label": "Sonnet"},
                    {"value": "opus", "label": "Opus"},
                    {"value": "haiku", "label": "Haiku"},
                ],
            },
        ],
    },
    {
        "id": "codex",
        "name": "Codex CLI",
        "description": "OpenAI Codex CLI",
        "command": "codex",
        "options": [
            {
                "id": "yolo",
                "flag": "--dangerously-bypass-approvals-and-sandbox",
                "label": "YOLO Mode",
                "description": "Skip all permission checks and sandbox",
                "type": "boolean",
                "default": False,
                "group": "auto-mode",
            },
            {
                "id": "full-auto",
                "flag": "--full-auto",
                "label": "Full Auto",
                "description": "Auto-approve with workspace sandbox",
                "type": "boolean",
                "default": False,
                "group": "auto-mode",
            },
            {"id": "model", "flag": "-m", "label": "Model", "type": "string"},
        ],
    },
    {
        "id": "gemini",
        "name": "Gemini CLI",
        "description": "Google Gemini CLI",
        "command": "gemini",
        "options": [
            {
                "id": "yolo",
                "flag": "-y",
                "label": "YOLO Mode",
                "description": "Auto-approve all actions",
                "type": "boolean",
                "default": False,
            },
            {
                "id": "resume",
                "flag": "-r",
                "label": "Resume",
                "description": 'Resume session (use "latest" or index)',
                "type": "string",
            },
            {"id": "model", "flag": "-m", "label": "Model", "type": "string"},
        ],
    },
    {
        "id": "pi",
        "name": "Pi Coding Agent",
        "description": "Pi Coding Agent (pi CLI)",
        "command": "pi",
        "options": [
            {
                "id": "tools",
                "flag": "--tools",
                "label": "Tools",
                "description": "Enabled tools. The default disables bash.",
                "type": "string",
                "default": "read,edit,write,grep,find,ls",
                "choices": [
                    {"value": "read,grep,find,ls", "label": "Read-only"},
                    {"value": "read,edit,write,grep,find,ls", "label": "Safe (no bash)"},
                    {"value": "read,bash,edit,write", "label": "Default (includes bash)"},
                    {"value": "read,bash,edit,write,grep,find,ls", "label": "All tools"},
                ],
            },
            {
                "id": "continue",
                "flag": "--continue",
                "label": "Continue",
                "type": "boolean",
                "default": False,
                "group": "resume-mode",
            },
            {
                "id": "resume",
                "flag": "--resume",
                "label": "Resume",
                "type": "boolean",
                "default": False,
                "group": "resume-mode",
            },
            {"id": "session", "flag": "--session", "label": "Session File", "type": "string"},
            {
                "id": "thinking",
                "flag": "--thinking",
                "label": "Thinking",
                "type": "string",
                "choices": [
                    {"value": level, "label": level.title()}
                    for level in ("off", "minimal", "low", "medium", "high", "xhigh")
                ],
            },
        ],
    },
    {
        "id": "cursor",
        "name": "Cursor",
        "description": "Cursor Agent CLI",
        "command": "cursor agent",
        "options": [
            {
                "id": "force",
                "flag": "-f",
                "label": "Force",
                "description": "Force allow commands unless explicitly denied",
                "type": "boolean",
                "default": False,
            },
            {
                "id": "resume",
                "flag": "--resume",
                "label": "Resume",
                "description": "Resume a chat session by ID",
                "type": "string",
            },
            {"id": "model", "flag": "--model", "label": "Model", "type": "string"},
        ],
    },
    {
        "id": "terminal",
        "name": "Terminal",
        "description": "Plain shell session",
        "kind": "terminal",
        "command": "$SHELL",
        "options": [],
    },
]


def builtin_profiles() -> dict[str, AgentProfile]:
    """Return fresh copies of the built-in profiles keyed by id."""

    profiles = [AgentProfile.model_validate(definition) for definition in _BUILTIN_DEFINITIONS]
    return {profile.id: profile for profile in profiles}


__all__ = ["builtin_profiles"]
