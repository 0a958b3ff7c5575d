"""Transcript adapter for Claude Code."""

from __future__ import annotations

import os
import re
from datetime import datetime
from pathlib import Path

from .base import BaseAgentAdapter, ConversationMessage, SessionFileMetadata
from .helpers import (
    build_preview,
    extract_string,
    first_timestamp,
    modified_since,
    normalize_role,
    normalize_timestamp,
    safe_read_json_lines,
    sorted_files_by_mtime,
)

_PROJECT_NAME_PATTERN = re.compile(r"[^A-Za-z0-9]")


def project_dir_name(worktree_path: Path | str) -> str:
    """Return the directory name Claude Code uses for a working directory."""

    return _PROJECT_NAME_PATTERN.sub("-", str(worktree_path))


class ClaudeAdapter(BaseAgentAdapter):
    """Finds Claude Code JSONL transcripts under ``~/.claude/projects``."""

    def __init__(self, *, home: Path | None = None) -> None:
        super().__init__("claude", agent_types=("claude", "claude-code"), home=home)

    def projects_dir(self) -> Path:
        override = os.environ.get("CLAUDE_CONFIG_DIR")
        if override and self._home is None:
            return Path(override).expanduser() / "projects"
        return self.home / ".claude" / "projects"

    def find_session_file(self, worktree_path: Path, since: datetime | None = None) -> Path | None:
        project_dir = self.projects_dir() / project_dir_name(Path(worktree_path))
        candidates = sorted_files_by_mtime(project_dir, lambda name: name.endswith(".jsonl"))
        for candidate in candidates:
            if modified_since(candidate, since):
                return candidate
        return None

    def parse_messages(self, session_file: Path) -> list[ConversationMessage]:
        messages: list[ConversationMessage] = []
        for index, row in enumerate(safe_read_json_lines(session_file)):
            message = row.get("message")
            role_source = row.get("role") or row.get("type")
            if isinstance(message, dict) and not role_source:
                role_source = message.get("role")
            content = extract_string(message or row.get("content"))
            if not content:
                continue
            model = row.get("model")
            if model is None and isinstance(message, dict):
                model = message.get("model")
            messages.append(
                ConversationMessage(
                    id=f"claude-{index}",
                    role=normalize_role(role_source),
                    content=content,
                    preview=build_preview(content),
                    timestamp=normalize_timestamp(row.get("timestamp") or row.get("created_at")),
                    model=model if isinstance(model, str) else None,
                    raw_type=row.get("type") if isinstance(row.get("type"), str) else None,
                )
            )
        return messages

    def extract_metadata(self, session_file: Path) -> SessionFileMetadata:
        rows = safe_read_json_lines(session_file)
        messages = self.parse_messages(session_file)
        total_tokens: int | None = None
        session_id: str | None = None
        for row in rows:
            usage = row.get("usage")
            if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
                total_tokens = usage["total_tokens"]
            if session_id is None and isinstance(row.get("sessionId"), str):
                session_id = row["sessionId"]
        return SessionFileMetadata(
            agent_session_id=session_id or Path(session_file).stem,
            started_at=first_timestamp(message.timestamp for message in messages),
            ended_at=first_timestamp(message.timestamp for message in reversed(messages)),
            message_count=len(messages),
            total_tokens=total_tokens,
            model=next((message.model for message in messages if message.model), None),
        )


__all__ = ["ClaudeAdapter", "project_dir_name"]
