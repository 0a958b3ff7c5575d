"""Process-wide directory of session managers."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, Mapping

from ..adapters import AdapterRegistry
from ..errors import AgentDeckError, ManagerClosedError
from ..events import SessionEventBus
from ..process import ProcessSupervisor
from ..profiles import AgentProfile
from ..storage import SessionRecordStore
from .manager import DEFAULT_COLS, DEFAULT_ROWS, SessionManager
from .session import SessionSummary

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RehydrationReport:
    resumed: list[str]
    ended: list[str]
    failed: list[str]
    previews: int

    def to_dict(self) -> dict[str, object]:
        return {
            "resumed": list(self.resumed),
            "ended": list(self.ended),
            "failed": list(self.failed),
            "previews": self.previews,
        }


class SessionOrchestrator:
    """Owns one :class:`SessionManager` per project plus an unscoped default.

    The orchestrator is an explicit service: build it, call :meth:`start`,
    and call :meth:`shutdown` (or :meth:`destroy_all`) as the last step before
    the process exits.
    """

    def __init__(
        self,
        *,
        store: SessionRecordStore,
        profiles: Mapping[str, AgentProfile],
        supervisor: ProcessSupervisor,
        bus: SessionEventBus | None = None,
        adapters: AdapterRegistry | None = None,
        default_cols: int = DEFAULT_COLS,
        default_rows: int = DEFAULT_ROWS,
        manager_factory: Callable[[str | None], SessionManager] | None = None,
    ) -> None:
        self._store = store
        self._profiles = profiles
        self._supervisor = supervisor
        self._bus = bus or SessionEventBus()
        self._adapters = adapters
        self._default_cols = default_cols
        self._default_rows = default_rows
        self._manager_factory = manager_factory or self._build_manager
        self._default_manager: SessionManager | None = None
        self._project_managers: dict[str, SessionManager] = {}
        self._started = False
        self._stopped = False
        self._closed = False

    @property
    def bus(self) -> SessionEventBus:
        return self._bus

    @property
    def store(self) -> SessionRecordStore:
        return self._store

    @property
    def profiles(self) -> Mapping[str, AgentProfile]:
        return self._profiles

    @property
    def started(self) -> bool:
        return self._started and not self._stopped

    def _build_manager(self, project_path: str | None) -> SessionManager:
        return SessionManager(
            store=self._store,
            profiles=self._profiles,
            supervisor=self._supervisor,
            bus=self._bus,
            adapters=self._adapters,
            project_path=project_path,
            default_cols=self._default_cols,
            default_rows=self._default_rows,
        )

    def start(self) -> None:
        self._ensure_started()

    def _ensure_started(self) -> SessionManager:
        if self._stopped:
            raise AgentDeckError("Session orchestrator cannot be restarted after shutdown")
        manager = self._default_manager
        if manager is None:
            manager = self._manager_factory(None)
            self._default_manager = manager
            self._started = True
            logger.info("Session orchestrator started", extra={"profiles": sorted(self._profiles)})
        return manager

    def manager_for(self, project_path: str | None = None) -> SessionManager:
        """Return the manager for ``project_path``, creating it on first use.

        Raises :class:`ManagerClosedError` once every session has been
        destroyed for shutdown.
        """

        if self._closed or self._stopped:
            raise ManagerClosedError("Session orchestrator is shut down")
        default = self._ensure_started()
        if not project_path:
            return default
        manager = self._project_managers.get(project_path)
        if manager is None:
            manager = self._manager_factory(project_path)
            self._project_managers[project_path] = manager
            logger.debug("Created project session manager", extra={"project_path": project_path})
        return manager

    def _managers(self) -> list[SessionManager]:
        managers: list[SessionManager] = []
        if self._default_manager is not None:
            managers.append(self._default_manager)
        managers.extend(self._project_managers.values())
        return managers

    def find_session(self, session_id: str) -> tuple[SessionSummary, SessionManager] | None:
        for manager in self._managers():
            summary = manager.get(session_id)
            if summary is not None:
                return summary, manager
        return None

    def all_active_sessions(self) -> list[SessionSummary]:
        seen: set[str] = set()
        sessions: list[SessionSummary] = []
        for manager in self._managers():
            for summary in manager.list_all():
                if summary.id in seen:
                    continue
                seen.add(summary.id)
                sessions.append(summary)
        return sessions

    def project_sessions(self, project_path: str) -> list[SessionSummary]:
        manager = self._project_managers.get(project_path)
        return manager.list_all() if manager else []

    def destroy_session(self, session_id: str) -> bool:
        """Destroy ``session_id`` in every manager that holds it."""

        destroyed = False
        for manager in self._managers():
            if session_id in manager:
                destroyed = manager.destroy(session_id) or destroyed
        return destroyed

    def destroy_project_sessions(self, project_path: str) -> int:
        manager = self._project_managers.pop(project_path, None)
        if manager is None:
            return 0
        return manager.close()

    def destroy_all(self) -> int:
        """Destroy every session in every manager and refuse new ones."""

        self._closed = True
        destroyed = 0
        for manager in self._managers():
            try:
                destroyed += manager.close()
            except Exception:
                logger.error(
                    "Failed to close session manager",
                    extra={"project_path": manager.project_path},
                    exc_info=True,
                )
        self._project_managers.clear()
        logger.info("Destroyed all sessions", extra={"count": destroyed})
        return destroyed

    async def shutdown(self) -> int:
        if self._stopped:
            return 0
        destroyed = self.destroy_all()
        self._stopped = True
        self._store.close()
        # Let cancelled discovery tasks unwind before the loop goes away.
        await asyncio.sleep(0)
        return destroyed

    async def rehydrate(self, resume: bool = False) -> RehydrationReport:
        """Reconcile records left live by a previous daemon run.

        With ``resume`` the sessions are restarted under their original ids,
        otherwise the records are marked ended. Linked records without a
        preview get one derived from their transcript.
        """

        report = RehydrationReport(resumed=[], ended=[], failed=[], previews=0)
        try:
            records = self._store.list_live_records()
        except (sqlite3.Error, AgentDeckError) as exc:
            logger.error("Failed to load live session records", extra={"error": str(exc)})
            return report

        for record in records:
            if self.find_session(record.id) is not None:
                continue
            if resume and record.agent_profile_id in self._profiles:
                try:
                    manager = self.manager_for(record.project_path)
                    await manager.create(
                        record.worktree_path,
                        record.agent_profile_id,
                        record.agent_options,
                        record.session_name,
                        session_id_override=record.id,
                        intent=record.intent,
                    )
                except AgentDeckError as exc:
                    logger.warning(
                        "Failed to resume session",
                        extra={"session_id": record.id, "error": str(exc)},
                    )
                    report.failed.append(record.id)
                else:
                    report.resumed.append(record.id)
                    continue
            try:
                self._store.mark_session_ended(record.id)
                report.ended.append(record.id)
            except (sqlite3.Error, AgentDeckError) as exc:
                logger.error("Failed to end stale session", extra={"session_id": record.id, "error": str(exc)})

        for record in records:
            if record.agent_session_path and not record.content_preview:
                preview = await self._store.hydrate_content_preview(record.id)
                if preview:
                    report.previews += 1

        logger.info("Rehydrated sessions", extra=report.to_dict())
        return report


__all__ = ["RehydrationReport", "SessionOrchestrator"]
