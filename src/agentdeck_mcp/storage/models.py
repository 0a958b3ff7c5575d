"""Data models for durable session tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SessionIntent = Literal["work", "review", "manual"]
SESSION_INTENTS: tuple[str, ...] = ("work", "review", "manual")

DEFAULT_QUERY_LIMIT = 50


@dataclass(slots=True)
class SessionRecord:
    id: str
    agent_profile_id: str
    agent_profile_name: str
    agent_type: str
    agent_options: dict[str, Any]
    agent_session_id: str | None
    agent_session_path: str | None
    worktree_path: str
    branch_name: str | None
    project_path: str | None
    td_task_id: str | None
    td_session_id: str | None
    session_name: str | None
    content_preview: str | None
    intent: SessionIntent
    created_at: int
    ended_at: int | None

    @property
    def is_live(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent_profile_id": self.agent_profile_id,
            "agent_profile_name": self.agent_profile_name,
            "agent_type": self.agent_type,
            "agent_options": dict(self.agent_options),
            "agent_session_id": self.agent_session_id,
            "agent_session_path": self.agent_session_path,
            "worktree_path": self.worktree_path,
            "branch_name": self.branch_name,
            "project_path": self.project_path,
            "td_task_id": self.td_task_id,
            "td_session_id": self.td_session_id,
            "session_name": self.session_name,
            "content_preview": self.content_preview,
            "intent": self.intent,
            "created_at": self.created_at,
            "ended_at": self.ended_at,
        }


@dataclass(slots=True)
class CreateSessionRecordInput:
    id: str
    agent_profile_id: str
    agent_profile_name: str
    agent_type: str
    worktree_path: str
    agent_options: dict[str, Any] = field(default_factory=dict)
    agent_session_id: str | None = None
    agent_session_path: str | None = None
    branch_name: str | None = None
    project_path: str | None = None
    td_task_id: str | None = None
    td_session_id: str | None = None
    session_name: str | None = None
    content_preview: str | None = None
    intent: SessionIntent = "manual"
    created_at: int | None = None


@dataclass(slots=True)
class SessionQuery:
    """Filters for :meth:`SessionRecordStore.query_sessions`.

    Date bounds are unix seconds and inclusive.
    """

    project_path: str | None = None
    worktree_path: str | None = None
    td_task_id: str | None = None
    agent_type: str | None = None
    search: str | None = None
    date_from: int | None = None
    date_to: int | None = None
    limit: int | None = None
    offset: int | None = None


__all__ = [
    "CreateSessionRecordInput",
    "DEFAULT_QUERY_LIMIT",
    "SESSION_INTENTS",
    "SessionIntent",
    "SessionQuery",
    "SessionRecord",
]
