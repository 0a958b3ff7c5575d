"""Ownership of live, process-backed agent sessions for one scope."""

from __future__ import annotations

import logging
import re
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Mapping

from ..adapters import AdapterRegistry
from ..detection import SessionState, detector_for
from ..errors import (
    AgentDeckError,
    ManagerClosedError,
    ProcessSpawnError,
    SessionNotFoundError,
    SessionValidationError,
    TransportError,
)
from ..events import (
    SessionCreated,
    SessionDestroyed,
    SessionEventBus,
    SessionExited,
    SessionOutput,
    SessionStateChanged,
)
from ..process import ProcessSupervisor, resolve_command, sanitize_environment
from ..profiles import AgentProfile
from ..storage import CreateSessionRecordInput, SessionRecordStore
from ..storage.models import SESSION_INTENTS
from .session import Session, SessionSummary, new_screen

logger = logging.getLogger(__name__)

DEFAULT_COLS = 120
DEFAULT_ROWS = 40

_LEADING_CLEARS = re.compile(r"^(?:\x1b\[2J|\x1b\[3J|\x1b\[H|\x1bc)+")


def strip_leading_clears(data: str) -> str:
    """Remove screen-clear sequences at the very start of ``data``."""

    return _LEADING_CLEARS.sub("", data, count=1)


class SessionManager:
    """Create, track and tear down agent sessions for one project scope.

    The manager is the only holder of process handles. Callers receive
    :class:`SessionSummary` snapshots and interact through session ids.
    Lifecycle changes are published on the shared :class:`SessionEventBus`.
    """

    def __init__(
        self,
        *,
        store: SessionRecordStore,
        profiles: Mapping[str, AgentProfile],
        supervisor: ProcessSupervisor,
        bus: SessionEventBus,
        adapters: AdapterRegistry | None = None,
        project_path: str | None = None,
        default_cols: int = DEFAULT_COLS,
        default_rows: int = DEFAULT_ROWS,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._store = store
        self._profiles = profiles
        self._supervisor = supervisor
        self._bus = bus
        self._adapters = adapters
        self._project_path = project_path
        self._default_cols = default_cols
        self._default_rows = default_rows
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._clock = clock or time.time
        self._sessions: dict[str, Session] = {}
        self._closed = False

    @property
    def project_path(self) -> str | None:
        return self._project_path

    @property
    def closed(self) -> bool:
        return self._closed

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # -- creation ---------------------------------------------------------------

    def _validate(
        self,
        worktree_path: str | Path,
        agent_profile_id: str,
        options: Mapping[str, Any] | None,
        intent: str,
        session_id: str | None,
    ) -> AgentProfile:
        if not str(worktree_path).strip():
            raise SessionValidationError("worktree_path must not be empty")
        profile = self._profiles.get(agent_profile_id)
        if profile is None:
            raise SessionValidationError(f"Unknown agent profile '{agent_profile_id}'")
        errors = profile.validate_options(options)
        if errors:
            raise SessionValidationError("; ".join(errors))
        if intent not in SESSION_INTENTS:
            raise SessionValidationError(
                f"intent must be one of: {', '.join(SESSION_INTENTS)}"
            )
        if session_id is not None:
            if not session_id.strip():
                raise SessionValidationError("session_id_override must not be empty")
            if session_id in self._sessions:
                raise SessionValidationError(f"Session '{session_id}' is already running")
        return profile

    async def create(
        self,
        worktree_path: str | Path,
        agent_profile_id: str,
        options: Mapping[str, Any] | None = None,
        name: str | None = None,
        *,
        session_id_override: str | None = None,
        branch_name: str | None = None,
        td_task_id: str | None = None,
        td_session_id: str | None = None,
        intent: str = "manual",
        cols: int | None = None,
        rows: int | None = None,
    ) -> SessionSummary:
        """Spawn an agent in ``worktree_path`` and register it.

        Validation and spawn failures raise before anything is registered or
        persisted. Persisting the record is best effort: a storage failure is
        logged and the live session is kept.
        """

        if self._closed:
            raise ManagerClosedError("Session manager is shut down")
        profile = self._validate(worktree_path, agent_profile_id, options, intent, session_id_override)
        session_id = session_id_override or self._id_factory()
        worktree = str(Path(worktree_path).expanduser())
        cols = cols or self._default_cols
        rows = rows or self._default_rows

        adapter = self._adapters.by_agent_type(profile.agent_type) if self._adapters else None
        resolved_options = profile.resolve_options(options)
        command, argv = resolve_command(profile.command, profile.build_args(resolved_options))

        try:
            handle = await self._supervisor.spawn(
                command,
                argv,
                cwd=Path(worktree),
                env=sanitize_environment(),
                cols=cols,
                rows=rows,
            )
        except ProcessSpawnError:
            raise
        except Exception as exc:
            raise ProcessSpawnError(f"Failed to spawn {command!r}: {exc}") from exc

        if self._closed or session_id in self._sessions:
            handle.kill()
            if self._closed:
                raise ManagerClosedError("Session manager shut down during spawn")
            raise SessionValidationError(f"Session '{session_id}' is already running")

        screen, stream = new_screen(cols, rows)
        session = Session(
            id=session_id,
            name=normalize_name(name) or profile.name,
            worktree_path=worktree,
            project_path=self._project_path,
            agent_profile_id=profile.id,
            agent_profile_name=profile.name,
            agent_type=profile.agent_type or profile.id,
            agent_options=dict(resolved_options),
            process=handle,
            detector=detector_for(profile.agent_type),
            screen=screen,
            stream=stream,
            created_at=int(self._clock()),
        )
        session.disposers.append(handle.on_data(lambda data: self._on_data(session_id, data)))
        session.disposers.append(handle.on_exit(lambda code: self._on_exit(session_id, code)))
        self._sessions[session_id] = session
        logger.info(
            "Session created",
            extra={
                "session_id": session_id,
                "agent_profile_id": profile.id,
                "worktree_path": worktree,
                "pid": handle.pid,
                "adapter": getattr(adapter, "id", None),
            },
        )
        self._bus.publish(
            SessionCreated(
                session_id=session_id,
                name=session.name,
                agent_profile_id=profile.id,
                worktree_path=worktree,
                project_path=self._project_path,
            )
        )

        self._persist_created(
            session,
            name=normalize_name(name),
            branch_name=branch_name,
            td_task_id=td_task_id,
            td_session_id=td_session_id,
            intent=intent,
            discover=adapter is not None,
        )
        return session.summary()

    def _persist_created(
        self,
        session: Session,
        *,
        name: str | None,
        branch_name: str | None,
        td_task_id: str | None,
        td_session_id: str | None,
        intent: str,
        discover: bool,
    ) -> None:
        discovery_since: int | None = session.created_at
        try:
            existing = self._store.get_session_by_id(session.id)
            if existing is not None:
                self._store.mark_session_resumed(session.id)
                if name:
                    self._store.update_session_name(session.id, name)
                elif existing.session_name:
                    session.name = existing.session_name
                if existing.agent_session_path:
                    discovery_since = None
                logger.info("Resumed session record", extra={"session_id": session.id})
            else:
                self._store.create_session_record(
                    CreateSessionRecordInput(
                        id=session.id,
                        agent_profile_id=session.agent_profile_id,
                        agent_profile_name=session.agent_profile_name,
                        agent_type=session.agent_type,
                        agent_options=dict(session.agent_options),
                        worktree_path=session.worktree_path,
                        branch_name=branch_name,
                        project_path=session.project_path,
                        td_task_id=td_task_id,
                        td_session_id=td_session_id,
                        session_name=name,
                        intent=intent,  # type: ignore[arg-type]
                        created_at=session.created_at,
                    )
                )
        except (sqlite3.Error, AgentDeckError) as exc:
            logger.error(
                "Failed to persist session record",
                extra={"session_id": session.id, "error": str(exc)},
            )
            return

        if discover and discovery_since is not None:
            try:
                self._store.schedule_discovery(
                    session.id, session.agent_type, session.worktree_path, discovery_since
                )
            except RuntimeError as exc:
                logger.warning(
                    "Could not schedule transcript discovery",
                    extra={"session_id": session.id, "error": str(exc)},
                )

    # -- process callbacks ------------------------------------------------------

    def _on_data(self, session_id: str, data: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.stream.feed(data)
        forwarded = data
        if not session.first_output_seen:
            session.first_output_seen = True
            forwarded = strip_leading_clears(data)
        if forwarded:
            session.append_history(forwarded)
            if session.is_active:
                self._bus.publish(SessionOutput(session_id=session_id, data=forwarded))
        self._refresh_state(session)

    def _refresh_state(self, session: Session) -> None:
        exposed_before = session.state
        detected_before = session.detected_state
        detected = session.detector.detect(session.rendered_lines(), detected_before)
        session.detected_state = detected

        flags_changed = False
        if (
            detected_before is SessionState.WAITING_INPUT
            and detected is not SessionState.WAITING_INPUT
            and (session.auto_approval_failed or session.auto_approval_reason)
        ):
            session.auto_approval_failed = False
            session.auto_approval_reason = None
            flags_changed = True

        if session.state is not exposed_before or flags_changed:
            self._publish_state(session)

    def _publish_state(self, session: Session, reason: str | None = None) -> None:
        self._bus.publish(
            SessionStateChanged(
                session_id=session.id,
                state=session.state.value,
                auto_approval_failed=session.auto_approval_failed,
                reason=reason or session.auto_approval_reason,
            )
        )

    def _on_exit(self, session_id: str, exit_code: int | None) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.exited = True
        session.exit_code = exit_code
        session.auto_approval_pending = False
        session.detected_state = SessionState.IDLE
        logger.info("Session process exited", extra={"session_id": session_id, "exit_code": exit_code})
        self._bus.publish(SessionExited(session_id=session_id, exit_code=exit_code))
        self._publish_state(session, reason="process exited")

    # -- teardown ---------------------------------------------------------------

    def destroy(self, session_id: str) -> bool:
        """Tear down ``session_id``; unknown ids are a no-op.

        Every step runs even when an earlier one fails. Returns whether a live
        session was found.
        """

        session = self._sessions.get(session_id)
        if session is None:
            return False

        def _step(label: str, action: Callable[[], Any]) -> None:
            try:
                action()
            except Exception:
                logger.warning(
                    "Session teardown step failed",
                    extra={"session_id": session_id, "step": label},
                    exc_info=True,
                )

        for disposer in session.disposers:
            _step("detach", disposer)
        session.disposers.clear()
        _step("kill", session.process.kill)
        self._sessions.pop(session_id, None)
        _step("cancel_discovery", lambda: self._store.cancel_discovery(session_id))
        _step("mark_ended", lambda: self._store.mark_session_ended(session_id))
        _step("publish", lambda: self._bus.publish(SessionDestroyed(session_id=session_id)))
        logger.info("Session destroyed", extra={"session_id": session_id})
        return True

    def destroy_all(self) -> int:
        destroyed = 0
        for session_id in list(self._sessions):
            try:
                if self.destroy(session_id):
                    destroyed += 1
            except Exception:
                logger.error("Failed to destroy session", extra={"session_id": session_id}, exc_info=True)
        return destroyed

    def close(self) -> int:
        """Reject further creation and destroy every session."""

        self._closed = True
        return self.destroy_all()

    # -- queries and mutations --------------------------------------------------

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        return session

    def get(self, session_id: str) -> SessionSummary | None:
        session = self._sessions.get(session_id)
        return session.summary() if session else None

    def list_all(self) -> list[SessionSummary]:
        return [session.summary() for session in self._sessions.values()]

    def set_active(self, session_id: str, active: bool) -> SessionSummary:
        session = self._require(session_id)
        session.is_active = bool(active)
        return session.summary()

    def rename(self, session_id: str, name: str) -> SessionSummary:
        session = self._require(session_id)
        normalized = normalize_name(name)
        if normalized is None:
            raise SessionValidationError("Session name must not be empty")
        session.name = normalized
        try:
            self._store.update_session_name(session_id, normalized)
        except (sqlite3.Error, AgentDeckError) as exc:
            logger.error("Failed to persist session name", extra={"session_id": session_id, "error": str(exc)})
        return session.summary()

    def write(self, session_id: str, data: str) -> None:
        session = self._require(session_id)
        if session.exited:
            raise TransportError(f"Session '{session_id}' process has exited")
        try:
            session.process.write(data)
        except TransportError:
            raise
        except OSError as exc:
            raise TransportError(f"Failed to write to session '{session_id}': {exc}") from exc

    def resize(self, session_id: str, cols: int, rows: int) -> SessionSummary:
        session = self._require(session_id)
        if cols < 1 or rows < 1:
            raise SessionValidationError("cols and rows must be >= 1")
        try:
            session.process.resize(cols, rows)
        except TransportError:
            raise
        except OSError as exc:
            raise TransportError(f"Failed to resize session '{session_id}': {exc}") from exc
        session.screen.resize(rows, cols)
        self._refresh_state(session)
        return session.summary()

    def output_history(self, session_id: str) -> str:
        return "".join(self._require(session_id).history)

    # -- auto-approval overlay --------------------------------------------------

    def begin_auto_approval(self, session_id: str) -> SessionSummary:
        session = self._require(session_id)
        if not session.auto_approval_pending:
            session.auto_approval_pending = True
            self._publish_state(session)
        return session.summary()

    def resolve_auto_approval(
        self,
        session_id: str,
        *,
        failed: bool = False,
        reason: str | None = None,
    ) -> SessionSummary:
        session = self._require(session_id)
        session.auto_approval_pending = False
        session.auto_approval_failed = failed
        session.auto_approval_reason = reason if failed else None
        self._publish_state(session, reason=reason)
        return session.summary()

    def cancel_auto_approval(self, session_id: str, reason: str) -> SessionSummary:
        session = self._require(session_id)
        session.auto_approval_pending = False
        session.auto_approval_failed = True
        session.auto_approval_reason = reason
        self._publish_state(session, reason=reason)
        return session.summary()


def normalize_name(name: str | None) -> str | None:
    if name is None:
        return None
    normalized = name.strip()
    return normalized or None


__all__ = ["SessionManager", "normalize_name", "strip_leading_clears"]
