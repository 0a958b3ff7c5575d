"""Transcript adapter for the Codex CLI."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from .base import BaseAgentAdapter, ConversationMessage, SessionFileMetadata
from .helpers import (
    build_preview,
    extract_string,
    first_timestamp,
    modified_since,
    normalize_role,
    normalize_timestamp,
    recursive_find_files,
    safe_read_json_lines,
)

_CWD_SAMPLE_ROWS = 40


def _is_rollout(name: str) -> bool:
    return name.startswith("rollout-") and name.endswith(".jsonl")


def _resolve(path: str) -> Path:
    return Path(path).expanduser().resolve()


def _session_meta(row: dict[str, Any]) -> dict[str, Any] | None:
    meta = row.get("session_meta")
    if isinstance(meta, dict):
        return meta
    # Newer rollouts wrap metadata as {"type": "session_meta", "payload": {...}}.
    if row.get("type") == "session_meta" and isinstance(row.get("payload"), dict):
        return row["payload"]
    return None


class CodexAdapter(BaseAgentAdapter):
    """Finds Codex rollout files under ``~/.codex/sessions``."""

    def __init__(self, *, home: Path | None = None) -> None:
        super().__init__("codex", home=home)

    def sessions_root(self) -> Path:
        return self.home / ".codex" / "sessions"

    def _matches_cwd(self, candidate: Path, worktree: Path) -> bool:
        for row in safe_read_json_lines(candidate)[:_CWD_SAMPLE_ROWS]:
            meta = _session_meta(row)
            cwd = meta.get("cwd") if meta else row.get("cwd")
            if isinstance(cwd, str) and _resolve(cwd) == worktree:
                return True
        return False

    def find_session_file(self, worktree_path: Path, since: datetime | None = None) -> Path | None:
        worktree = _resolve(str(worktree_path))
        candidates = [
            candidate
            for candidate in recursive_find_files(self.sessions_root(), _is_rollout)
            if modified_since(candidate, since)
        ]
        for candidate in candidates:
            if self._matches_cwd(candidate, worktree):
                return candidate
        return candidates[0] if candidates else None

    def parse_messages(self, session_file: Path) -> list[ConversationMessage]:
        messages: list[ConversationMessage] = []
        for index, row in enumerate(safe_read_json_lines(session_file)):
            item = row.get("response_item")
            if not isinstance(item, dict):
                payload = row.get("payload")
                item = payload if row.get("type") == "response_item" and isinstance(payload, dict) else None
            if item is not None:
                role_source = item.get("role") or row.get("role") or row.get("type")
                content = extract_string(item.get("content") or item.get("message"))
                timestamp = row.get("timestamp") or item.get("timestamp") or item.get("created_at")
                model = item.get("model")
            else:
                role_source = row.get("role") or row.get("type")
                content = extract_string(row.get("content"))
                timestamp = row.get("timestamp")
                model = None
            if not content:
                continue
            messages.append(
                ConversationMessage(
                    id=f"codex-{index}",
                    role=normalize_role(role_source),
                    content=content,
                    preview=build_preview(content),
                    timestamp=normalize_timestamp(timestamp),
                    model=model if isinstance(model, str) else None,
                    raw_type=row.get("type") if isinstance(row.get("type"), str) else None,
                )
            )
        return messages

    def extract_metadata(self, session_file: Path) -> SessionFileMetadata:
        rows = safe_read_json_lines(session_file)
        messages = self.parse_messages(session_file)
        metadata = SessionFileMetadata(
            message_count=len(messages),
            started_at=first_timestamp(message.timestamp for message in messages),
            ended_at=first_timestamp(message.timestamp for message in reversed(messages)),
        )
        for row in rows:
            meta = _session_meta(row)
            if meta is not None:
                if isinstance(meta.get("model"), str):
                    metadata.model = meta["model"]
                session_id = meta.get("session_id") or meta.get("id")
                if isinstance(session_id, str):
                    metadata.agent_session_id = session_id
                metadata.options = dict(meta)
            usage = row.get("usage")
            if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
                metadata.total_tokens = usage["total_tokens"]
        if metadata.agent_session_id is None:
            metadata.agent_session_id = Path(session_file).stem
        if metadata.model is None:
            metadata.model = next((message.model for message in messages if message.model), None)
        return metadata


__all__ = ["CodexAdapter"]
