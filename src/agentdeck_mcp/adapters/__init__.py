"""Transcript adapters for supported agent CLIs."""

from .base import AgentAdapter, BaseAgentAdapter, ConversationMessage, SessionFileMetadata
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .gemini import GeminiAdapter
from .helpers import PREVIEW_MAX_LENGTH, build_preview
from .registry import AdapterRegistrationError, AdapterRegistry, default_registry

__all__ = [
    "AdapterRegistrationError",
    "AdapterRegistry",
    "AgentAdapter",
    "BaseAgentAdapter",
    "ClaudeAdapter",
    "CodexAdapter",
    "ConversationMessage",
    "GeminiAdapter",
    "PREVIEW_MAX_LENGTH",
    "SessionFileMetadata",
    "build_preview",
    "default_registry",
]
