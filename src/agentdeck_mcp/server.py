"""FastMCP server bootstrap for AgentDeck."""

from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .adapters import default_registry
from .config import AgentDeckSettings, get_settings
from .process import PtySupervisor
from .profiles import ProfileLoadError, ProfileLoader, builtin_profiles
from .sessions import SessionOrchestrator
from .storage import ChromaJournal, ChromaUnavailableError, SessionRecordStore
from .tools import register_tools

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the AgentDeck server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def build_orchestrator(settings: AgentDeckSettings) -> tuple[SessionOrchestrator, str | None]:
    """Wire the store, profiles, adapters and PTY supervisor from settings.

    Returns the orchestrator plus the profile loading error, if any. A broken
    profile file falls back to the built-in catalog rather than stopping the
    daemon.
    """

    profile_error: str | None = None
    try:
        profiles = ProfileLoader(settings.profile_paths).load_all()
    except ProfileLoadError as exc:
        logger.error("Failed to load agent profiles", extra={"error": str(exc)})
        profiles = builtin_profiles()
        profile_error = str(exc)

    adapters = default_registry()
    store = SessionRecordStore(
        settings.resolved_database_path(),
        adapters=adapters,
        retry_limit=settings.discovery_retry_limit,
        retry_delay=settings.discovery_retry_delay,
        grace_seconds=settings.discovery_grace_seconds,
    )
    orchestrator = SessionOrchestrator(
        store=store,
        profiles=profiles,
        supervisor=PtySupervisor(),
        adapters=adapters,
        default_cols=settings.terminal_cols,
        default_rows=settings.terminal_rows,
    )
    return orchestrator, profile_error


def build_status(
    orchestrator: SessionOrchestrator,
    *,
    settings: AgentDeckSettings,
    journal_metadata: dict[str, Any] | None = None,
    profile_error: str | None = None,
    request_id: Any = None,
) -> dict[str, Any]:
    """Summarize live sessions, the record store and the journal."""

    live = orchestrator.all_active_sessions()
    state_counts = Counter(summary.state.value for summary in live)

    storage: dict[str, Any] = {
        "path": str(orchestrator.store.path),
        "records": None,
        "live_records": None,
        "error": None,
    }
    try:
        storage["records"] = orchestrator.store.count_sessions()
        storage["live_records"] = len(orchestrator.store.list_live_records())
    except Exception as exc:
        storage["error"] = str(exc)

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server_version": __version__,
        "log_level": settings.log_level,
        "profiles": {
            "count": len(orchestrator.profiles),
            "ids": sorted(orchestrator.profiles),
            "error": profile_error,
        },
        "sessions": {
            "count": len(live),
            "state_counts": dict(state_counts),
            "recent": [summary.to_dict() for summary in live[-5:]],
        },
        "storage": {
            "sqlite": storage,
            "journal": journal_metadata or {"available": False, "path": None, "error": None},
        },
        "request_id": request_id,
    }


def create_server(
    settings: Optional[AgentDeckSettings] = None,
    orchestrator: SessionOrchestrator | None = None,
    journal: ChromaJournal | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with session tools and the status resource."""

    settings = settings or get_settings()

    profile_error: str | None = None
    if orchestrator is None:
        orchestrator, profile_error = build_orchestrator(settings)
    orchestrator.start()

    journal_metadata: dict[str, Any] = {
        "available": False,
        "path": str(settings.chroma_persist_path) if settings.chroma_persist_path else None,
        "collection": "agentdeck_sessions",
        "error": None,
    }
    if journal is None and settings.chroma_persist_path is not None:
        journal = ChromaJournal(settings.chroma_persist_path)
    if journal is not None:
        try:
            journal.ping()
            journal.attach(orchestrator.bus)
            journal_metadata["available"] = True
        except ChromaUnavailableError as exc:
            journal_metadata["error"] = str(exc)
            journal = None

    server = FastMCP(
        name="AgentDeck MCP",
        version=__version__,
        instructions=(
            "AgentDeck runs coding-agent CLIs in pseudo-terminals inside git worktrees, "
            "tracks whether each one is idle, busy or waiting for input, and keeps a "
            "searchable history of past sessions."
        ),
    )

    handles = register_tools(server, orchestrator=orchestrator)

    @server.resource(
        "resource://agentdeck/status",
        name="agentdeck_status",
        title="AgentDeck MCP Status",
        description="Provides the current runtime status for the AgentDeck MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        payload = build_status(
            orchestrator,
            settings=settings,
            journal_metadata=journal_metadata,
            profile_error=profile_error,
            request_id=getattr(context, "request_id", None),
        )
        return json.dumps(payload)

    setattr(server, "orchestrator", orchestrator)
    setattr(server, "journal", journal)
    setattr(server, "journal_metadata", journal_metadata)
    setattr(server, "tool_handles", handles)
    return server


async def _serve(server: FastMCP, orchestrator: SessionOrchestrator, settings: AgentDeckSettings) -> None:
    try:
        await orchestrator.rehydrate(resume=settings.resume_on_start)
        await server.run_async()
    finally:
        await orchestrator.shutdown()


def main() -> None:
    """Entry point for running the AgentDeck MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    orchestrator: SessionOrchestrator = getattr(server, "orchestrator")
    logger.info(
        "Launching AgentDeck MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "database": str(orchestrator.store.path),
            "journal_available": getattr(server, "journal_metadata", {}).get("available"),
        },
    )
    asyncio.run(_serve(server, orchestrator, settings))


if __name__ == "__main__":
    main()
