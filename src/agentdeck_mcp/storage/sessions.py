"""SQLite-backed session record store with transcript discovery."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..adapters import AdapterRegistry, AgentAdapter, build_preview
from ..errors import StorageCorruptionError
from .models import (
    DEFAULT_QUERY_LIMIT,
    SESSION_INTENTS,
    CreateSessionRecordInput,
    SessionQuery,
    SessionRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION = 2
DISCOVERY_RETRY_LIMIT = 8
DISCOVERY_RETRY_DELAY = 1.5
DISCOVERY_GRACE_SECONDS = 120
DATE_RANGE_LIMIT = 5000

_CORRUPTION_MARKERS = (
    "file is not a database",
    "malformed",
    "corrupt",
    "no such table: sessions",
)

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    agent_profile_id TEXT NOT NULL,
    agent_profile_name TEXT NOT NULL,
    agent_type TEXT NOT NULL,
    agent_options TEXT NOT NULL,
    agent_session_id TEXT,
    agent_session_path TEXT,
    worktree_path TEXT NOT NULL,
    branch_name TEXT,
    project_path TEXT,
    td_task_id TEXT,
    td_session_id TEXT,
    session_name TEXT,
    intent TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    ended_at INTEGER
);
CREATE INDEX IF NOT EXISTS idx_sessions_project_path ON sessions(project_path);
CREATE INDEX IF NOT EXISTS idx_sessions_worktree_path ON sessions(worktree_path);
CREATE INDEX IF NOT EXISTS idx_sessions_td_task_id ON sessions(td_task_id);
CREATE INDEX IF NOT EXISTS idx_sessions_created_at ON sessions(created_at DESC);
"""


def normalize_optional_string(value: str | None) -> str | None:
    """Return ``value`` stripped, or ``None`` when it is blank."""

    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def normalize_content_preview(value: str | None) -> str | None:
    if not value:
        return None
    return build_preview(value) or None


def is_corruption_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _CORRUPTION_MARKERS)


def _parse_options(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _row_to_record(row: sqlite3.Row) -> SessionRecord:
    intent = row["intent"] if row["intent"] in SESSION_INTENTS else "manual"
    return SessionRecord(
        id=row["id"],
        agent_profile_id=row["agent_profile_id"],
        agent_profile_name=row["agent_profile_name"],
        agent_type=row["agent_type"],
        agent_options=_parse_options(row["agent_options"]),
        agent_session_id=row["agent_session_id"],
        agent_session_path=row["agent_session_path"],
        worktree_path=row["worktree_path"],
        branch_name=row["branch_name"],
        project_path=row["project_path"],
        td_task_id=row["td_task_id"],
        td_session_id=row["td_session_id"],
        session_name=row["session_name"],
        content_preview=row["content_preview"],
        intent=intent,
        created_at=row["created_at"],
        ended_at=row["ended_at"],
    )


def escape_like(text: str) -> str:
    """Escape ``LIKE`` wildcards so ``text`` matches literally with ``ESCAPE '\\'``."""

    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _where_clause(query: SessionQuery) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    values: list[Any] = []
    if query.project_path:
        clauses.append("project_path = ?")
        values.append(query.project_path)
    if query.worktree_path:
        clauses.append("worktree_path = ?")
        values.append(query.worktree_path)
    if query.td_task_id:
        clauses.append("td_task_id = ?")
        values.append(query.td_task_id)
    if query.date_from is not None:
        clauses.append("created_at >= ?")
        values.append(query.date_from)
    if query.date_to is not None:
        clauses.append("created_at <= ?")
        values.append(query.date_to)
    if query.agent_type:
        clauses.append("agent_type = ?")
        values.append(query.agent_type)
    if query.search:
        clauses.append(
            "(session_name LIKE ? ESCAPE '\\' OR content_preview LIKE ? ESCAPE '\\'"
            " OR branch_name LIKE ? ESCAPE '\\' OR td_task_id LIKE ? ESCAPE '\\'"
            " OR agent_profile_name LIKE ? ESCAPE '\\')"
        )
        needle = f"%{escape_like(query.search)}%"
        values.extend([needle] * 5)
    if not clauses:
        return "", values
    return "WHERE " + " AND ".join(clauses), values


class SessionRecordStore:
    """Durable table of session metadata.

    Every operation opens its own connection so a database file replaced
    underneath the daemon is noticed on the next call. Operations that fail
    with a corruption-like ``sqlite3.DatabaseError`` move the file aside,
    recreate the schema and retry exactly once.

    The store also owns transcript discovery: one cancellable asyncio task per
    session id that asks the agent's adapter for its transcript file.
    """

    def __init__(
        self,
        path: Path,
        *,
        adapters: AdapterRegistry | None = None,
        retry_limit: int = DISCOVERY_RETRY_LIMIT,
        retry_delay: float = DISCOVERY_RETRY_DELAY,
        grace_seconds: int = DISCOVERY_GRACE_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._path = Path(path)
        self._adapters = adapters
        self._retry_limit = retry_limit
        self._retry_delay = retry_delay
        self._grace_seconds = grace_seconds
        self._clock = clock or time.time
        self._lock = threading.RLock()
        self._discovery: dict[str, asyncio.Task[Path | None]] = {}
        self._closed = False
        with self._lock:
            self._open_with_recovery()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def _now(self) -> int:
        return int(self._clock())

    # -- connection management -------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 1000")
        return conn

    def _migrate(self, conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version >= SCHEMA_VERSION:
            return
        if version < 1:
            conn.executescript(_SCHEMA_V1)
        if version < 2:
            try:
                conn.execute("ALTER TABLE sessions ADD COLUMN content_preview TEXT")
            except sqlite3.OperationalError as exc:
                if "duplicate column" not in str(exc).lower():
                    raise
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.commit()
        logger.debug("Migrated session store", extra={"path": str(self._path), "from_version": version})

    def _initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            self._migrate(conn)
        finally:
            conn.close()

    def _move_aside(self) -> None:
        if not self._path.exists():
            return
        backup = self._path.with_name(f"{self._path.name}.corrupt-{int(time.time() * 1000)}")
        try:
            self._path.rename(backup)
        except OSError as exc:
            logger.warning(
                "Failed to move corrupt session store aside; removing it",
                extra={"path": str(self._path), "error": str(exc)},
            )
            self._path.unlink(missing_ok=True)
        else:
            logger.warning(
                "Moved corrupt session store aside",
                extra={"path": str(self._path), "backup": str(backup)},
            )

    def _open_with_recovery(self) -> None:
        try:
            self._initialize()
        except sqlite3.DatabaseError as exc:
            if not is_corruption_error(exc):
                raise
            logger.warning(
                "Session store unreadable on open; recreating",
                extra={"path": str(self._path), "error": str(exc)},
            )
            self._move_aside()
            try:
                self._initialize()
            except sqlite3.DatabaseError as retry_exc:
                raise StorageCorruptionError(
                    f"Session store at {self._path} could not be recreated: {retry_exc}"
                ) from retry_exc

    def _execute(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        conn = self._connect()
        try:
            with conn:
                return operation(conn)
        finally:
            conn.close()

    def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        with self._lock:
            try:
                return self._execute(operation)
            except sqlite3.DatabaseError as exc:
                if not is_corruption_error(exc):
                    raise
                logger.warning(
                    "Session store query failed due to corruption; recreating",
                    extra={"path": str(self._path), "error": str(exc)},
                )
                self._move_aside()
                try:
                    self._initialize()
                    return self._execute(operation)
                except sqlite3.DatabaseError as retry_exc:
                    raise StorageCorruptionError(
                        f"Session store at {self._path} is still unusable after recovery: {retry_exc}"
                    ) from retry_exc

    # -- writes ---------------------------------------------------------------

    def create_session_record(self, record: CreateSessionRecordInput) -> SessionRecord:
        created_at = record.created_at if record.created_at is not None else self._now()
        intent = record.intent if record.intent in SESSION_INTENTS else "manual"
        values = (
            record.id,
            record.agent_profile_id,
            record.agent_profile_name,
            record.agent_type,
            json.dumps(record.agent_options or {}),
            normalize_optional_string(record.agent_session_id),
            normalize_optional_string(record.agent_session_path),
            record.worktree_path,
            normalize_optional_string(record.branch_name),
            normalize_optional_string(record.project_path),
            normalize_optional_string(record.td_task_id),
            normalize_optional_string(record.td_session_id),
            normalize_optional_string(record.session_name),
            normalize_content_preview(record.content_preview),
            intent,
            created_at,
        )

        def _insert(conn: sqlite3.Connection) -> SessionRecord:
            conn.execute(
                """
                INSERT INTO sessions (
                    id, agent_profile_id, agent_profile_name, agent_type, agent_options,
                    agent_session_id, agent_session_path, worktree_path, branch_name,
                    project_path, td_task_id, td_session_id, session_name,
                    content_preview, intent, created_at, ended_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL)
                """,
                values,
            )
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (record.id,)).fetchone()
            return _row_to_record(row)

        return self._run(_insert)

    def _update(self, sql: str, params: tuple[Any, ...]) -> bool:
        return self._run(lambda conn: conn.execute(sql, params).rowcount > 0)

    def mark_session_ended(self, session_id: str, when: int | None = None) -> bool:
        ended_at = when if when is not None else self._now()
        return self._update("UPDATE sessions SET ended_at = ? WHERE id = ?", (ended_at, session_id))

    def mark_session_resumed(self, session_id: str) -> bool:
        return self._update("UPDATE sessions SET ended_at = NULL WHERE id = ?", (session_id,))

    def update_session_name(self, session_id: str, name: str | None) -> bool:
        return self._update(
            "UPDATE sessions SET session_name = ? WHERE id = ?",
            (normalize_optional_string(name), session_id),
        )

    def update_session_content_preview(self, session_id: str, preview: str | None) -> bool:
        return self._update(
            "UPDATE sessions SET content_preview = ? WHERE id = ?",
            (normalize_content_preview(preview), session_id),
        )

    def update_agent_session_link(
        self,
        session_id: str,
        agent_session_path: str,
        agent_session_id: str | None = None,
        *,
        relink: bool = False,
    ) -> bool:
        """Link a record to its transcript.

        An existing link is left untouched unless ``relink`` is set, in which
        case pending discovery for the id is cancelled and the link replaced.
        Returns whether the row changed.
        """

        resolved_id = normalize_optional_string(agent_session_id) or Path(agent_session_path).stem
        if relink:
            self.cancel_discovery(session_id)
            sql = "UPDATE sessions SET agent_session_path = ?, agent_session_id = ? WHERE id = ?"
        else:
            sql = (
                "UPDATE sessions SET agent_session_path = ?, agent_session_id = ?"
                " WHERE id = ? AND agent_session_path IS NULL"
            )
        return self._update(sql, (agent_session_path, resolved_id, session_id))

    # -- reads ----------------------------------------------------------------

    def get_session_by_id(self, session_id: str) -> SessionRecord | None:
        def _fetch(conn: sqlite3.Connection) -> SessionRecord | None:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
            return _row_to_record(row) if row else None

        return self._run(_fetch)

    def query_sessions(self, query: SessionQuery | None = None) -> list[SessionRecord]:
        query = query or SessionQuery()
        where, values = _where_clause(query)
        limit = query.limit if query.limit is not None else DEFAULT_QUERY_LIMIT
        offset = query.offset if query.offset is not None else 0
        sql = f"SELECT * FROM sessions {where} ORDER BY created_at DESC LIMIT ? OFFSET ?"

        def _fetch(conn: sqlite3.Connection) -> list[SessionRecord]:
            rows = conn.execute(sql, (*values, limit, offset)).fetchall()
            return [_row_to_record(row) for row in rows]

        return self._run(_fetch)

    def count_sessions(self, query: SessionQuery | None = None) -> int:
        where, values = _where_clause(query or SessionQuery())
        sql = f"SELECT COUNT(*) FROM sessions {where}"
        return self._run(lambda conn: int(conn.execute(sql, values).fetchone()[0]))

    def query_by_project(self, project_path: str, limit: int = DEFAULT_QUERY_LIMIT, offset: int = 0) -> list[SessionRecord]:
        return self.query_sessions(SessionQuery(project_path=project_path, limit=limit, offset=offset))

    def query_by_worktree(self, worktree_path: str, limit: int = DEFAULT_QUERY_LIMIT, offset: int = 0) -> list[SessionRecord]:
        return self.query_sessions(SessionQuery(worktree_path=worktree_path, limit=limit, offset=offset))

    def query_by_task(self, td_task_id: str, limit: int = DEFAULT_QUERY_LIMIT, offset: int = 0) -> list[SessionRecord]:
        return self.query_sessions(SessionQuery(td_task_id=td_task_id, limit=limit, offset=offset))

    def query_by_date_range(self, date_from: int, date_to: int) -> list[SessionRecord]:
        return self.query_sessions(
            SessionQuery(date_from=date_from, date_to=date_to, limit=DATE_RANGE_LIMIT, offset=0)
        )

    def list_live_records(self) -> list[SessionRecord]:
        """Return every record without ``ended_at``, oldest first."""

        def _fetch(conn: sqlite3.Connection) -> list[SessionRecord]:
            rows = conn.execute(
                "SELECT * FROM sessions WHERE ended_at IS NULL ORDER BY created_at ASC"
            ).fetchall()
            return [_row_to_record(row) for row in rows]

        return self._run(_fetch)

    def get_latest_by_td_session_id(
        self,
        td_session_id: str,
        td_task_id: str | None = None,
        project_path: str | None = None,
    ) -> SessionRecord | None:
        clauses = ["td_session_id = ?"]
        values: list[Any] = [td_session_id]
        if td_task_id:
            clauses.append("td_task_id = ?")
            values.append(td_task_id)
        if project_path:
            clauses.append("project_path = ?")
            values.append(project_path)
        sql = f"SELECT * FROM sessions WHERE {' AND '.join(clauses)} ORDER BY created_at DESC LIMIT 1"

        def _fetch(conn: sqlite3.Connection) -> SessionRecord | None:
            row = conn.execute(sql, values).fetchone()
            return _row_to_record(row) if row else None

        return self._run(_fetch)

    # -- transcript discovery ---------------------------------------------------

    def schedule_discovery(
        self,
        session_id: str,
        agent_type: str,
        worktree_path: str,
        created_at: int | None = None,
    ) -> asyncio.Task[Path | None] | None:
        """Start looking for the transcript of ``session_id`` in the background.

        Must be called from the running event loop. Returns the discovery task,
        or ``None`` when no adapter handles ``agent_type``.
        """

        self.cancel_discovery(session_id)
        if self._closed:
            return None
        adapter = self._adapters.by_agent_type(agent_type) if self._adapters else None
        if adapter is None:
            logger.debug(
                "No adapter for agent type; skipping discovery",
                extra={"session_id": session_id, "agent_type": agent_type},
            )
            return None

        task = asyncio.get_running_loop().create_task(
            self._discover(session_id, adapter, worktree_path, created_at),
            name=f"discovery:{session_id}",
        )
        self._discovery[session_id] = task
        task.add_done_callback(lambda done, sid=session_id: self._forget_discovery(sid, done))
        return task

    def _forget_discovery(self, session_id: str, task: asyncio.Task[Path | None]) -> None:
        if self._discovery.get(session_id) is task:
            del self._discovery[session_id]

    def _is_current(self, session_id: str) -> bool:
        current = asyncio.current_task()
        return current is not None and self._discovery.get(session_id) is current

    def discovery_pending(self, session_id: str) -> bool:
        task = self._discovery.get(session_id)
        return task is not None and not task.done()

    def cancel_discovery(self, session_id: str) -> bool:
        task = self._discovery.pop(session_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled transcript discovery", extra={"session_id": session_id})
        return True

    async def _discover(
        self,
        session_id: str,
        adapter: AgentAdapter,
        worktree_path: str,
        created_at: int | None,
    ) -> Path | None:
        since = (
            datetime.fromtimestamp(created_at - self._grace_seconds, tz=timezone.utc)
            if created_at is not None
            else None
        )
        worktree = Path(worktree_path).expanduser().resolve()

        for attempt in range(1, self._retry_limit + 1):
            await asyncio.sleep(self._retry_delay)
            try:
                found = await asyncio.to_thread(adapter.find_session_file, worktree, since)
            except Exception as exc:
                logger.warning(
                    "Transcript lookup failed",
                    extra={"session_id": session_id, "attempt": attempt, "error": str(exc)},
                )
                continue
            if found is None:
                continue

            agent_session_id: str | None = None
            try:
                metadata = await asyncio.to_thread(adapter.extract_metadata, found)
                agent_session_id = metadata.agent_session_id
            except Exception as exc:
                logger.warning(
                    "Failed to read transcript metadata",
                    extra={"session_id": session_id, "path": str(found), "error": str(exc)},
                )

            if not self._is_current(session_id):
                return None
            try:
                linked = self.update_agent_session_link(session_id, str(found), agent_session_id)
            except (sqlite3.Error, StorageCorruptionError) as exc:
                logger.error(
                    "Failed to persist transcript link",
                    extra={"session_id": session_id, "error": str(exc)},
                )
                return None
            if linked:
                logger.info(
                    "Linked session transcript",
                    extra={"session_id": session_id, "path": str(found), "attempt": attempt},
                )
                await self._derive_preview(session_id, adapter, found, check_current=True)
            return found

        logger.debug(
            "Transcript discovery exhausted",
            extra={"session_id": session_id, "attempts": self._retry_limit},
        )
        return None

    async def _derive_preview(
        self,
        session_id: str,
        adapter: AgentAdapter,
        transcript: Path,
        *,
        check_current: bool = False,
    ) -> str | None:
        try:
            messages = await asyncio.to_thread(adapter.parse_messages, transcript)
        except Exception as exc:
            logger.debug(
                "Failed to parse transcript for preview",
                extra={"session_id": session_id, "error": str(exc)},
            )
            return None

        preview = None
        for message in messages:
            preview = normalize_content_preview(message.preview or message.content)
            if preview:
                break
        if not preview:
            return None
        if check_current and not self._is_current(session_id):
            return None
        try:
            self.update_session_content_preview(session_id, preview)
        except (sqlite3.Error, StorageCorruptionError) as exc:
            logger.error(
                "Failed to persist content preview",
                extra={"session_id": session_id, "error": str(exc)},
            )
            return None
        return preview

    async def hydrate_content_preview(self, session_id: str) -> str | None:
        """Derive the preview for a record already linked to a transcript."""

        record = self.get_session_by_id(session_id)
        if record is None or record.content_preview or not record.agent_session_path:
            return None
        transcript = Path(record.agent_session_path)
        if not transcript.exists():
            return None
        adapter = self._adapters.by_agent_type(record.agent_type) if self._adapters else None
        if adapter is None:
            return None
        return await self._derive_preview(session_id, adapter, transcript)

    def close(self) -> None:
        for session_id in list(self._discovery):
            self.cancel_discovery(session_id)
        self._closed = True


__all__ = [
    "SCHEMA_VERSION",
    "SessionRecordStore",
    "escape_like",
    "is_corruption_error",
    "normalize_content_preview",
    "normalize_optional_string",
]
