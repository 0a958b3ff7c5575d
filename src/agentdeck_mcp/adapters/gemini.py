"""Transcript adapter for the Gemini CLI."""

from __future__ import annotations

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
    recursive_find_files,
    safe_read_json_file,
)


class GeminiAdapter(BaseAgentAdapter):
    """Finds Gemini session JSON files under ``~/.gemini/tmp``.

    Gemini does not record the working directory in a form we can match, so
    the newest session written after ``since`` wins.
    """

    def __init__(self, *, home: Path | None = None) -> None:
        super().__init__("gemini", home=home)

    def find_session_file(self, worktree_path: Path, since: datetime | None = None) -> Path | None:
        candidates = recursive_find_files(
            self.home / ".gemini" / "tmp",
            lambda name: name.startswith("session-") and name.endswith(".json"),
            max_results=100,
        )
        for candidate in candidates:
            if modified_since(candidate, since):
                return candidate
        return None

    def parse_messages(self, session_file: Path) -> list[ConversationMessage]:
        document = safe_read_json_file(session_file)
        if not isinstance(document, dict):
            return []
        raw = document.get("messages")
        if not isinstance(raw, list):
            raw = document.get("entries") if isinstance(document.get("entries"), list) else []

        messages: list[ConversationMessage] = []
        for index, row in enumerate(raw):
            if not isinstance(row, dict):
                continue
            content = extract_string(row.get("content") or row.get("text") or row.get("message"))
            if not content:
                continue
            messages.append(
                ConversationMessage(
                    id=f"gemini-{index}",
                    role=normalize_role(row.get("role") or row.get("type")),
                    content=content,
                    preview=build_preview(content),
                    timestamp=normalize_timestamp(row.get("timestamp") or row.get("created_at")),
                    raw_type=row.get("type") if isinstance(row.get("type"), str) else None,
                )
            )
        return messages

    def extract_metadata(self, session_file: Path) -> SessionFileMetadata:
        messages = self.parse_messages(session_file)
        document = safe_read_json_file(session_file)
        session_id = document.get("sessionId") if isinstance(document, dict) else None
        return SessionFileMetadata(
            agent_session_id=session_id if isinstance(session_id, str) else Path(session_file).stem,
            started_at=first_timestamp(message.timestamp for message in messages),
            ended_at=first_timestamp(message.timestamp for message in reversed(messages)),
            message_count=len(messages),
        )


__all__ = ["GeminiAdapter"]
