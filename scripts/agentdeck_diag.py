"""AgentDeck MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json
import sqlite3

from agentdeck_mcp.config import AgentDeckSettings
from agentdeck_mcp.errors import StorageCorruptionError
from agentdeck_mcp.storage import (
    ChromaJournal,
    ChromaUnavailableError,
    SessionQuery,
    SessionRecordStore,
)


def load_store(settings: AgentDeckSettings) -> SessionRecordStore:
    try:
        return SessionRecordStore(settings.resolved_database_path())
    except (sqlite3.Error, StorageCorruptionError) as exc:
        print(f"Session store unavailable: {exc}")
        raise SystemExit(1)


def load_journal(settings: AgentDeckSettings) -> ChromaJournal:
    if settings.chroma_persist_path is None:
        print("Chroma unavailable: CHROMA_PERSIST_PATH is not set")
        raise SystemExit(1)
    return ChromaJournal(settings.chroma_persist_path)


def cmd_sessions(args: argparse.Namespace) -> None:
    store = load_store(AgentDeckSettings())
    query = SessionQuery(
        project_path=args.project,
        worktree_path=args.worktree,
        td_task_id=args.task_id,
        agent_type=args.agent_type,
        search=args.search,
        limit=args.limit,
    )
    records = store.query_sessions(query)
    if args.json:
        print(json.dumps([record.to_dict() for record in records], indent=2))
        return
    for record in records:
        status = "live" if record.is_live else "ended"
        name = record.session_name or record.agent_profile_name
        print(f"{record.id} [{status}] {record.agent_type} {name} -> {record.worktree_path}")


def cmd_show(args: argparse.Namespace) -> None:
    store = load_store(AgentDeckSettings())
    record = store.get_session_by_id(args.session_id)
    if record is None:
        print(f"Session '{args.session_id}' not found")
        raise SystemExit(1)
    print(json.dumps(record.to_dict(), indent=2))


def cmd_metrics(args: argparse.Namespace) -> None:
    store = load_store(AgentDeckSettings())
    # SQLite treats a negative LIMIT as unbounded.
    records = store.query_sessions(SessionQuery(limit=-1))

    by_agent_type: dict[str, int] = {}
    by_intent: dict[str, int] = {}
    live = 0
    linked = 0
    for record in records:
        by_agent_type[record.agent_type] = by_agent_type.get(record.agent_type, 0) + 1
        by_intent[record.intent] = by_intent.get(record.intent, 0) + 1
        if record.is_live:
            live += 1
        if record.agent_session_path:
            linked += 1

    metrics = {
        "sessions_total": len(records),
        "live": live,
        "ended": len(records) - live,
        "transcripts_linked": linked,
        "by_agent_type": by_agent_type,
        "by_intent": by_intent,
    }
    print(json.dumps(metrics, indent=2))


def cmd_events(args: argparse.Namespace) -> None:
    journal = load_journal(AgentDeckSettings())
    try:
        events = journal.fetch_session_events(args.session_id, limit=args.limit)
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)
    payload = [
        {
            "event_id": event.id,
            "event_type": event.event_type,
            "timestamp": event.timestamp.isoformat(),
            "metadata": event.metadata,
        }
        for event in events
    ]
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AgentDeck MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_sessions = sub.add_parser("sessions", help="List persisted session records")
    p_sessions.add_argument("--project")
    p_sessions.add_argument("--worktree")
    p_sessions.add_argument("--task-id")
    p_sessions.add_argument("--agent-type")
    p_sessions.add_argument("--search")
    p_sessions.add_argument("--limit", type=int, default=None)
    p_sessions.add_argument("--json", action="store_true", help="Output JSON")
    p_sessions.set_defaults(func=cmd_sessions)

    p_show = sub.add_parser("show", help="Show a single session record")
    p_show.add_argument("session_id")
    p_show.set_defaults(func=cmd_show)

    p_metrics = sub.add_parser("metrics", help="Show session counts by agent type and status")
    p_metrics.set_defaults(func=cmd_metrics)

    p_events = sub.add_parser("events", help="List journaled lifecycle events for a session")
    p_events.add_argument("session_id")
    p_events.add_argument("--limit", type=int, default=None)
    p_events.set_defaults(func=cmd_events)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
