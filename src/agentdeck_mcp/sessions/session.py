"""Live session state owned by a session manager."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

import pyte

from ..detection import BaseStateDetector, SessionState
from ..process import ProcessHandle

OUTPUT_HISTORY_LIMIT = 512 * 1024


@dataclass(slots=True, frozen=True)
class SessionSummary:
    """Immutable snapshot of a live session, safe to hand to callers."""

    id: str
    name: str
    worktree_path: str
    project_path: str | None
    agent_profile_id: str
    agent_profile_name: str
    agent_type: str
    agent_options: dict[str, Any]
    state: SessionState
    is_active: bool
    auto_approval_failed: bool
    auto_approval_reason: str | None
    exited: bool
    exit_code: int | None
    pid: int | None
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "worktree_path": self.worktree_path,
            "project_path": self.project_path,
            "agent_profile_id": self.agent_profile_id,
            "agent_profile_name": self.agent_profile_name,
            "agent_type": self.agent_type,
            "agent_options": dict(self.agent_options),
            "state": self.state.value,
            "is_active": self.is_active,
            "auto_approval_failed": self.auto_approval_failed,
            "auto_approval_reason": self.auto_approval_reason,
            "exited": self.exited,
            "exit_code": self.exit_code,
            "pid": self.pid,
            "created_at": self.created_at,
        }


@dataclass(slots=True)
class Session:
    id: str
    name: str
    worktree_path: str
    project_path: str | None
    agent_profile_id: str
    agent_profile_name: str
    agent_type: str
    agent_options: dict[str, Any]
    process: ProcessHandle
    detector: BaseStateDetector
    screen: pyte.Screen
    stream: pyte.Stream
    created_at: int
    detected_state: SessionState = SessionState.IDLE
    is_active: bool = False
    auto_approval_pending: bool = False
    auto_approval_failed: bool = False
    auto_approval_reason: str | None = None
    exited: bool = False
    exit_code: int | None = None
    first_output_seen: bool = False
    history: deque[str] = field(default_factory=deque)
    history_size: int = 0
    disposers: list[Callable[[], None]] = field(default_factory=list)

    @property
    def state(self) -> SessionState:
        if self.auto_approval_pending:
            return SessionState.PENDING_AUTO_APPROVAL
        return self.detected_state

    def append_history(self, data: str) -> None:
        self.history.append(data)
        self.history_size += len(data)
        while self.history_size > OUTPUT_HISTORY_LIMIT and len(self.history) > 1:
            self.history_size -= len(self.history.popleft())
        if self.history_size > OUTPUT_HISTORY_LIMIT:
            trimmed = self.history[0][-OUTPUT_HISTORY_LIMIT:]
            self.history[0] = trimmed
            self.history_size = len(trimmed)

    def rendered_lines(self) -> list[str]:
        return [line.rstrip() for line in self.screen.display]

    def summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.id,
            name=self.name,
            worktree_path=self.worktree_path,
            project_path=self.project_path,
            agent_profile_id=self.agent_profile_id,
            agent_profile_name=self.agent_profile_name,
            agent_type=self.agent_type,
            agent_options=dict(self.agent_options),
            state=self.state,
            is_active=self.is_active,
            auto_approval_failed=self.auto_approval_failed,
            auto_approval_reason=self.auto_approval_reason,
            exited=self.exited,
            exit_code=self.exit_code,
            pid=self.process.pid,
            created_at=self.created_at,
        )


def new_screen(cols: int, rows: int) -> tuple[pyte.Screen, pyte.Stream]:
    screen = pyte.Screen(cols, rows)
    screen.set_mode(pyte.modes.LNM)
    return screen, pyte.Stream(screen)


__all__ = ["OUTPUT_HISTORY_LIMIT", "Session", "SessionSummary", "new_screen"]
