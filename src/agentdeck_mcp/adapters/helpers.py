"""Shared parsing and filesystem helpers for transcript adapters."""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable

from .base import MessageRole

logger = logging.getLogger(__name__)

PREVIEW_MAX_LENGTH = 300
_WHITESPACE = re.compile(r"\s+")
_MILLISECOND_THRESHOLD = 10_000_000_000
_STRING_KEYS = ("text", "content", "message", "input", "output", "body", "value")


def safe_read_json_lines(path: Path) -> list[dict[str, Any]]:
    """Return every JSON object in a JSONL file, skipping malformed lines."""

    try:
        content = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Failed to read transcript", extra={"path": str(path), "error": str(exc)})
        return []
    rows: list[dict[str, Any]] = []
    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            parsed = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            rows.append(parsed)
    return rows


def safe_read_json_file(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None


def normalize_timestamp(value: Any) -> int | None:
    """Coerce seconds, milliseconds or ISO-8601 strings into unix seconds."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value > _MILLISECOND_THRESHOLD:
            return int(value // 1000)
        return int(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            numeric = float(text)
        except ValueError:
            pass
        else:
            return normalize_timestamp(numeric)
        try:
            return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp())
        except ValueError:
            return None
    return None


def extract_string(value: Any) -> str:
    """Flatten the nested content shapes agent CLIs write into plain text."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = [extract_string(part) for part in value]
        return "\n".join(part for part in parts if part).strip()
    if isinstance(value, dict):
        for key in _STRING_KEYS:
            if key in value:
                nested = extract_string(value[key])
                if nested:
                    return nested
        return json.dumps(value)
    return str(value)


def build_preview(content: str, max_length: int = PREVIEW_MAX_LENGTH) -> str:
    """Collapse whitespace runs to single spaces and truncate with an ellipsis."""

    normalized = _WHITESPACE.sub(" ", content).strip()
    if len(normalized) <= max_length:
        return normalized
    return f"{normalized[:max_length]}..."


def normalize_role(role: Any) -> MessageRole:
    if not isinstance(role, str):
        return "system"
    normalized = role.lower()
    if normalized in {"assistant", "user", "tool"}:
        return normalized  # type: ignore[return-value]
    return "system"


def _mtime(path: Path) -> float:
    try:
        stats = path.stat()
    except OSError:
        return -1.0
    return stats.st_mtime if path.is_file() else -1.0


def modified_since(path: Path, since: datetime | None) -> bool:
    if since is None:
        return True
    mtime = _mtime(path)
    if mtime <= 0:
        return False
    return mtime >= since.timestamp()


def sorted_files_by_mtime(directory: Path, matcher: Callable[[str], bool]) -> list[Path]:
    """Return matching files in ``directory``, newest first."""

    if not directory.is_dir():
        return []
    candidates = [
        (path, _mtime(path)) for path in directory.iterdir() if matcher(path.name)
    ]
    candidates = [item for item in candidates if item[1] > 0]
    candidates.sort(key=lambda item: item[1], reverse=True)
    return [path for path, _ in candidates]


def recursive_find_files(
    root: Path,
    matcher: Callable[[str], bool],
    max_results: int = 200,
) -> list[Path]:
    """Walk ``root`` and return up to ``max_results`` matching files, newest first."""

    if not root.is_dir():
        return []
    found: list[tuple[Path, float]] = []
    for current, _dirs, files in os.walk(root):
        if len(found) >= max_results * 2:
            break
        for name in files:
            if not matcher(name):
                continue
            path = Path(current) / name
            mtime = _mtime(path)
            if mtime > 0:
                found.append((path, mtime))
    found.sort(key=lambda item: item[1], reverse=True)
    return [path for path, _ in found[:max_results]]


def first_timestamp(timestamps: Iterable[int | None]) -> int | None:
    for value in timestamps:
        if value:
            return value
    return None


__all__ = [
    "PREVIEW_MAX_LENGTH",
    "build_preview",
    "extract_string",
    "first_timestamp",
    "modified_since",
    "normalize_role",
    "normalize_timestamp",
    "recursive_find_files",
    "safe_read_json_file",
    "safe_read_json_lines",
    "sorted_files_by_mtime",
]
