"""Tool registration for AgentDeck MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..errors import SessionNotFoundError, SessionValidationError
from ..profiles import AgentProfile
from ..sessions import SessionManager, SessionOrchestrator, SessionSummary
from ..storage import SessionQuery
from ..storage.models import DEFAULT_QUERY_LIMIT


@dataclass(slots=True)
class ToolHandles:
    create_session: Any
    destroy_session: Any
    rename_session: Any
    set_session_active: Any
    list_sessions: Any
    get_session: Any
    send_input: Any
    resize_session: Any
    query_session_history: Any
    list_agent_profiles: Any


def _profile_summary(profile: AgentProfile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "name": profile.name,
        "description": profile.description,
        "kind": profile.kind,
        "agent_type": profile.agent_type,
        "command": profile.command,
        "options": [
            {
                "id": option.id,
                "label": option.label,
                "type": option.type,
                "flag": option.flag or None,
                "default": option.default,
                "group": option.group,
                "choices": [choice.value for choice in option.choices],
            }
            for option in profile.options
        ],
    }


def register_tools(server: FastMCP, *, orchestrator: SessionOrchestrator) -> ToolHandles:
    """Register AgentDeck's MCP tools on the server."""

    def _locate(session_id: str) -> tuple[SessionSummary, SessionManager]:
        found = orchestrator.find_session(session_id)
        if found is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        return found

    async def _create_session(
        worktree_path: str,
        agent_profile_id: str,
        options: dict[str, Any] | None = None,
        name: str | None = None,
        project_path: str | None = None,
        branch_name: str | None = None,
        td_task_id: str | None = None,
        td_session_id: str | None = None,
        intent: str = "manual",
        session_id: str | None = None,
        cols: int | None = None,
        rows: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Spawn an agent session in a worktree and start tracking it."""

        manager = orchestrator.manager_for(project_path)
        summary = await manager.create(
            worktree_path,
            agent_profile_id,
            options,
            name,
            session_id_override=session_id,
            branch_name=branch_name,
            td_task_id=td_task_id,
            td_session_id=td_session_id,
            intent=intent,
            cols=cols,
            rows=rows,
        )
        _emit_log(
            context,
            "info",
            "Session created",
            extra={"session_id": summary.id, "agent_profile_id": agent_profile_id},
        )
        return summary.to_dict()

    def _destroy_session(session_id: str, context: Context | None = None) -> dict[str, Any]:
        destroyed = orchestrator.destroy_session(session_id)
        _emit_log(
            context,
            "info" if destroyed else "debug",
            "Session destroy requested",
            extra={"session_id": session_id, "destroyed": destroyed},
        )
        return {"session_id": session_id, "destroyed": destroyed}

    def _rename_session(session_id: str, name: str, context: Context | None = None) -> dict[str, Any]:
        _, manager = _locate(session_id)
        summary = manager.rename(session_id, name)
        _emit_log(context, "info", "Session renamed", extra={"session_id": session_id})
        return summary.to_dict()

    def _set_session_active(
        session_id: str,
        active: bool = True,
        context: Context | None = None,
    ) -> dict[str, Any]:
        _, manager = _locate(session_id)
        summary = manager.set_active(session_id, active)
        _emit_log(
            context,
            "debug",
            "Session visibility changed",
            extra={"session_id": session_id, "active": active},
        )
        return summary.to_dict()

    def _list_sessions(
        project_path: str | None = None,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        if project_path:
            sessions = orchestrator.project_sessions(project_path)
        else:
            sessions = orchestrator.all_active_sessions()
        _emit_log(context, "debug", "Listing live sessions", extra={"count": len(sessions)})
        return [summary.to_dict() for summary in sessions]

    def _get_session(
        session_id: str,
        include_output: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Return a live session, falling back to its durable record."""

        found = orchestrator.find_session(session_id)
        if found is not None:
            summary, manager = found
            payload: dict[str, Any] = {"live": True, **summary.to_dict()}
            if include_output:
                payload["output"] = manager.output_history(session_id)
            return payload

        record = orchestrator.store.get_session_by_id(session_id)
        if record is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        _emit_log(context, "debug", "Served session from history", extra={"session_id": session_id})
        return {"live": False, **record.to_dict()}

    def _send_input(session_id: str, data: str, context: Context | None = None) -> dict[str, Any]:
        _, manager = _locate(session_id)
        manager.write(session_id, data)
        _emit_log(
            context,
            "debug",
            "Forwarded input to session",
            extra={"session_id": session_id, "bytes": len(data)},
        )
        return {"session_id": session_id, "written": len(data)}

    def _resize_session(
        session_id: str,
        cols: int,
        rows: int,
        context: Context | None = None,
    ) -> dict[str, Any]:
        _, manager = _locate(session_id)
        summary = manager.resize(session_id, cols, rows)
        _emit_log(
            context,
            "debug",
            "Session resized",
            extra={"session_id": session_id, "cols": cols, "rows": rows},
        )
        return summary.to_dict()

    def _query_session_history(
        project_path: str | None = None,
        worktree_path: str | None = None,
        td_task_id: str | None = None,
        agent_type: str | None = None,
        search: str | None = None,
        date_from: int | None = None,
        date_to: int | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Search durable session records, newest first."""

        if limit < 1:
            raise SessionValidationError("limit must be >= 1")
        if offset < 0:
            raise SessionValidationError("offset must be >= 0")
        query = SessionQuery(
            project_path=project_path,
            worktree_path=worktree_path,
            td_task_id=td_task_id,
            agent_type=agent_type,
            search=search,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )
        store = orchestrator.store
        records = store.query_sessions(query)
        total = store.count_sessions(query)
        _emit_log(
            context,
            "debug",
            "Queried session history",
            extra={"returned": len(records), "total": total},
        )
        return {
            "total": total,
            "limit": limit,
            "offset": offset,
            "sessions": [record.to_dict() for record in records],
        }

    def _list_agent_profiles(context: Context | None = None) -> list[dict[str, Any]]:
        catalog = [_profile_summary(profile) for profile in orchestrator.profiles.values()]
        catalog.sort(key=lambda entry: entry["id"])
        _emit_log(context, "debug", "Listing agent profiles", extra={"count": len(catalog)})
        return catalog

    tool_create = server.tool(
        name="create_session",
        description="Spawn an agent (or shell) session in a worktree using a named agent profile.",
    )(_create_session)

    tool_destroy = server.tool(
        name="destroy_session",
        description="Terminate a live session and mark its record ended. Unknown ids are a no-op.",
    )(_destroy_session)

    tool_rename = server.tool(
        name="rename_session",
        description="Rename a live session and persist the new name.",
    )(_rename_session)

    tool_active = server.tool(
        name="set_session_active",
        description="Mark a session as visible so its terminal output is streamed.",
    )(_set_session_active)

    tool_list = server.tool(
        name="list_sessions",
        description="List live sessions, optionally narrowed to one project.",
    )(_list_sessions)

    tool_get = server.tool(
        name="get_session",
        description="Fetch a live session snapshot or its historical record.",
    )(_get_session)

    tool_input = server.tool(
        name="send_input",
        description="Write raw input to a session's terminal.",
    )(_send_input)

    tool_resize = server.tool(
        name="resize_session",
        description="Resize a session's terminal to the given columns and rows.",
    )(_resize_session)

    tool_history = server.tool(
        name="query_session_history",
        description="Search persisted sessions by project, worktree, task, agent type, text or date.",
    )(_query_session_history)

    tool_profiles = server.tool(
        name="list_agent_profiles",
        description="List the agent profiles sessions can be created from.",
    )(_list_agent_profiles)

    return ToolHandles(
        create_session=tool_create,
        destroy_session=tool_destroy,
        rename_session=tool_rename,
        set_session_active=tool_active,
        list_sessions=tool_list,
        get_session=tool_get,
        send_input=tool_input,
        resize_session=tool_resize,
        query_session_history=tool_history,
        list_agent_profiles=tool_profiles,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
