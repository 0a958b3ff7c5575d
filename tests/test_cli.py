from __future__ import annotations

import argparse
import importlib.util
import json
from pathlib import Path

import pytest

from agentdeck_mcp.storage import CreateSessionRecordInput, SessionRecordStore


def load_diag(module_name: str):
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "agentdeck_diag.py"
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    assert spec and spec.loader
    diag = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(diag)
    return diag


@pytest.fixture
def seeded_store(tmp_path: Path) -> SessionRecordStore:
    store = SessionRecordStore(tmp_path / "sessions.db", clock=lambda: 1_700_000_000)
    rows = [
        ("a", "claude-code", "Claude Code", "claude", "work"),
        ("b", "claude-code", "Claude Code", "claude", "manual"),
        ("c", "codex", "Codex CLI", "codex", "review"),
    ]
    for index, (record_id, profile_id, profile_name, agent_type, intent) in enumerate(rows):
        store.create_session_record(
            CreateSessionRecordInput(
                id=record_id,
                agent_profile_id=profile_id,
                agent_profile_name=profile_name,
                agent_type=agent_type,
                worktree_path=f"/wt/{record_id}",
                td_task_id="td-1" if record_id != "c" else None,
                intent=intent,
                created_at=1_700_000_000 + index,
            )
        )
    store.mark_session_ended("b", 1_700_000_100)
    store.update_agent_session_link("a", "/home/me/.claude/projects/x/a.jsonl", "claude-a")
    return store


def test_metrics_counts_records(monkeypatch, capsys, seeded_store) -> None:
    diag = load_diag("agentdeck_diag_metrics")
    monkeypatch.setattr(diag, "load_store", lambda _settings: seeded_store)

    diag.cmd_metrics(argparse.Namespace())

    payload = json.loads(capsys.readouterr().out)
    assert payload["sessions_total"] == 3
    assert payload["live"] == 2
    assert payload["ended"] == 1
    assert payload["transcripts_linked"] == 1
    assert payload["by_agent_type"] == {"claude": 2, "codex": 1}
    assert payload["by_intent"] == {"work": 1, "manual": 1, "review": 1}


def test_sessions_filters_and_json_output(monkeypatch, capsys, seeded_store) -> None:
    diag = load_diag("agentdeck_diag_sessions")
    monkeypatch.setattr(diag, "load_store", lambda _settings: seeded_store)

    diag.main(["sessions", "--task-id", "td-1", "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert [entry["id"] for entry in payload] == ["b", "a"]

    diag.main(["sessions", "--agent-type", "codex"])
    output = capsys.readouterr().out
    assert output.startswith("c [live] codex Codex CLI -> /wt/c")


def test_show_reports_missing_session(monkeypatch, capsys, seeded_store) -> None:
    diag = load_diag("agentdeck_diag_show")
    monkeypatch.setattr(diag, "load_store", lambda _settings: seeded_store)

    diag.cmd_show(argparse.Namespace(session_id="a"))
    record = json.loads(capsys.readouterr().out)
    assert record["agent_session_id"] == "claude-a"

    with pytest.raises(SystemExit):
        diag.cmd_show(argparse.Namespace(session_id="missing"))
    assert "not found" in capsys.readouterr().out


def test_events_requires_chroma_path(monkeypatch, capsys) -> None:
    monkeypatch.delenv("CHROMA_PERSIST_PATH", raising=False)
    diag = load_diag("agentdeck_diag_events")

    with pytest.raises(SystemExit):
        diag.cmd_events(argparse.Namespace(session_id="a", limit=None))

    assert "Chroma unavailable" in capsys.readouterr().out
