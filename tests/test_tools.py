from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from agentdeck_mcp.errors import SessionNotFoundError, SessionValidationError
from agentdeck_mcp.process import FakeSupervisor
from agentdeck_mcp.profiles import builtin_profiles
from agentdeck_mcp.sessions import SessionOrchestrator
from agentdeck_mcp.storage import CreateSessionRecordInput, SessionRecordStore
from agentdeck_mcp.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


def setup_tools(tmp_path: Path):
    store = SessionRecordStore(tmp_path / "sessions.db", clock=lambda: 1_700_000_000)
    supervisor = FakeSupervisor()
    orchestrator = SessionOrchestrator(store=store, profiles=builtin_profiles(), supervisor=supervisor)
    orchestrator.start()
    server = StubServer()
    handles = register_tools(server, orchestrator=orchestrator)
    return server, handles, orchestrator, supervisor


def create(handles, **kwargs):
    return asyncio.run(handles.create_session.fn(**kwargs))


def test_all_tools_are_registered(tmp_path: Path) -> None:
    server, _, _, _ = setup_tools(tmp_path)

    assert set(server._tools) == {
        "create_session",
        "destroy_session",
        "rename_session",
        "set_session_active",
        "list_sessions",
        "get_session",
        "send_input",
        "resize_session",
        "query_session_history",
        "list_agent_profiles",
    }


def test_create_list_and_get_live_session(tmp_path: Path) -> None:
    _, handles, orchestrator, supervisor = setup_tools(tmp_path)

    created = create(
        handles,
        worktree_path=str(tmp_path),
        agent_profile_id="claude-code",
        options={"model": "opus"},
        project_path="/projects/app",
        session_id="s-1",
        td_task_id="td-9",
        intent="work",
    )

    assert created["id"] == "s-1"
    assert created["agent_type"] == "claude"
    assert created["state"] == "idle"
    assert created["project_path"] == "/projects/app"
    assert supervisor.spawned[0]["args"] == ["--model", "opus"]
    assert orchestrator.manager_for("/projects/app").get("s-1") is not None

    listed = handles.list_sessions.fn()
    assert [entry["id"] for entry in listed] == ["s-1"]
    assert handles.list_sessions.fn(project_path="/projects/app")[0]["id"] == "s-1"
    assert handles.list_sessions.fn(project_path="/projects/other") == []

    supervisor.last.emit("hello from claude")
    live = handles.get_session.fn("s-1", include_output=True)
    assert live["live"] is True
    assert "hello from claude" in live["output"]
    assert "output" not in handles.get_session.fn("s-1")


def test_get_session_falls_back_to_history(tmp_path: Path) -> None:
    _, handles, orchestrator, _ = setup_tools(tmp_path)
    create(handles, worktree_path=str(tmp_path), agent_profile_id="codex", session_id="s-2")

    result = handles.destroy_session.fn("s-2")
    assert result == {"session_id": "s-2", "destroyed": True}
    assert handles.destroy_session.fn("s-2") == {"session_id": "s-2", "destroyed": False}

    historical = handles.get_session.fn("s-2")
    assert historical["live"] is False
    assert historical["agent_profile_id"] == "codex"
    assert historical["ended_at"] is not None
    assert orchestrator.find_session("s-2") is None

    with pytest.raises(SessionNotFoundError):
        handles.get_session.fn("never-existed")


def test_input_resize_rename_and_visibility(tmp_path: Path) -> None:
    _, handles, orchestrator, supervisor = setup_tools(tmp_path)
    create(handles, worktree_path=str(tmp_path), agent_profile_id="terminal", session_id="s-3")

    assert handles.send_input.fn("s-3", "ls\r") == {"session_id": "s-3", "written": 3}
    assert supervisor.last.writes == ["ls\r"]

    handles.resize_session.fn("s-3", 100, 30)
    assert supervisor.last.sizes == [(100, 30)]
    with pytest.raises(SessionValidationError):
        handles.resize_session.fn("s-3", 0, 30)

    renamed = handles.rename_session.fn("s-3", "  build shell ")
    assert renamed["name"] == "build shell"
    assert orchestrator.store.get_session_by_id("s-3").session_name == "build shell"

    assert handles.set_session_active.fn("s-3", True)["is_active"] is True
    assert handles.set_session_active.fn("s-3", active=False)["is_active"] is False


def test_unknown_session_ids_raise_not_found(tmp_path: Path) -> None:
    _, handles, _, _ = setup_tools(tmp_path)

    with pytest.raises(SessionNotFoundError):
        handles.send_input.fn("ghost", "x")
    with pytest.raises(SessionNotFoundError):
        handles.resize_session.fn("ghost", 80, 24)
    with pytest.raises(SessionNotFoundError):
        handles.rename_session.fn("ghost", "name")
    with pytest.raises(SessionNotFoundError):
        handles.set_session_active.fn("ghost")


def test_query_session_history(tmp_path: Path) -> None:
    _, handles, orchestrator, _ = setup_tools(tmp_path)
    store = orchestrator.store
    for index in range(3):
        store.create_session_record(
            CreateSessionRecordInput(
                id=f"h-{index}",
                agent_profile_id="claude-code",
                agent_profile_name="Claude Code",
                agent_type="claude",
                worktree_path="/wt/a" if index < 2 else "/wt/b",
                project_path="/projects/app",
                created_at=1_700_000_000 + index,
            )
        )

    result = handles.query_session_history.fn(worktree_path="/wt/a")
    assert result["total"] == 2
    assert [entry["id"] for entry in result["sessions"]] == ["h-1", "h-0"]

    page = handles.query_session_history.fn(project_path="/projects/app", limit=1, offset=1)
    assert page["total"] == 3
    assert page["limit"] == 1
    assert [entry["id"] for entry in page["sessions"]] == ["h-1"]

    with pytest.raises(SessionValidationError):
        handles.query_session_history.fn(limit=0)
    with pytest.raises(SessionValidationError):
        handles.query_session_history.fn(offset=-1)


def test_list_agent_profiles(tmp_path: Path) -> None:
    _, handles, _, _ = setup_tools(tmp_path)

    catalog = handles.list_agent_profiles.fn()
    ids = [entry["id"] for entry in catalog]
    assert ids == sorted(ids)
    claude = next(entry for entry in catalog if entry["id"] == "claude-code")
    assert claude["agent_type"] == "claude"
    assert any(option["id"] == "model" for option in claude["options"])
