"""Adapter contract for locating and reading agent transcript files."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, Protocol, runtime_checkable

MessageRole = Literal["user", "assistant", "system", "tool"]


@dataclass(slots=True)
class ConversationMessage:
    """A single message parsed from an agent transcript."""

    id: str
    role: MessageRole
    content: str
    preview: str
    timestamp: int | None = None
    model: str | None = None
    raw_type: str | None = None


@dataclass(slots=True)
class SessionFileMetadata:
    """Metadata extracted from an agent transcript."""

    agent_session_id: str | None = None
    started_at: int | None = None
    ended_at: int | None = None
    message_count: int = 0
    total_tokens: int | None = None
    model: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class AgentAdapter(Protocol):
    """Capability exposed by an agent type for transcript discovery."""

    id: str
    agent_types: tuple[str, ...]

    def find_session_file(self, worktree_path: Path, since: datetime | None = None) -> Path | None: ...

    def extract_metadata(self, session_file: Path) -> SessionFileMetadata: ...

    def parse_messages(self, session_file: Path) -> list[ConversationMessage]: ...


REQUIRED_METHODS = ("find_session_file", "extract_metadata", "parse_messages")


class BaseAgentAdapter:
    """Adapter for agent types that do not write a discoverable transcript."""

    def __init__(self, adapter_id: str, *, agent_types: tuple[str, ...] = (), home: Path | None = None) -> None:
        self.id = adapter_id
        self.agent_types = agent_types or (adapter_id,)
        self._home = Path(home) if home is not None else None

    @property
    def home(self) -> Path:
        return self._home if self._home is not None else Path.home()

    def find_session_file(self, worktree_path: Path, since: datetime | None = None) -> Path | None:
        return None

    def extract_metadata(self, session_file: Path) -> SessionFileMetadata:
        return SessionFileMetadata()

    def parse_messages(self, session_file: Path) -> list[ConversationMessage]:
        return []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


__all__ = [
    "AgentAdapter",
    "BaseAgentAdapter",
    "ConversationMessage",
    "MessageRole",
    "REQUIRED_METHODS",
    "SessionFileMetadata",
]
