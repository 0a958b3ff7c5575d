from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from agentdeck_mcp.events import (
    SessionCreated,
    SessionDestroyed,
    SessionEventBus,
    SessionExited,
    SessionOutput,
    SessionStateChanged,
)
from agentdeck_mcp.storage import ChromaJournal, ChromaUnavailableError


@dataclass
class _Record:
    document: str
    metadata: dict[str, Any]
    id: str


class StubCollection:
    def __init__(self) -> None:
        self.records: list[_Record] = []

    def add(self, *, documents, metadatas, ids) -> None:  # type: ignore[override]
        for document, metadata, record_id in zip(documents, metadatas, ids):
            self.records.append(_Record(document=document, metadata=dict(metadata), id=record_id))

    def get(self, *, ids=None, where=None, limit=None):  # type: ignore[override]
        filtered = self.records
        if where:
            for key, value in where.items():
                filtered = [record for record in filtered if record.metadata.get(key) == value]
        if limit is not None:
            filtered = filtered[:limit]
        return {
            "ids": [record.id for record in filtered],
            "documents": [record.document for record in filtered],
            "metadatas": [record.metadata for record in filtered],
        }


class StubClient:
    def __init__(self) -> None:
        self.collections = defaultdict(StubCollection)

    def get_or_create_collection(self, name: str) -> StubCollection:
        return self.collections[name]


def make_journal(tmp_path: Path, client: StubClient | None = None) -> ChromaJournal:
    client = client or StubClient()
    return ChromaJournal(
        tmp_path,
        client_factory=lambda: client,
        clock=lambda: datetime.fromisoformat("2025-01-01T00:00:00+00:00"),
    )


def test_record_and_fetch_events(tmp_path: Path) -> None:
    journal = make_journal(tmp_path)

    entry = journal.record_event(
        session_id="session-1",
        event_type="note",
        body={"message": "started"},
        metadata={"level": "INFO", "extra": None},
    )

    assert entry.session_id == "session-1"
    assert entry.metadata["sequence"] == 1
    assert entry.metadata["extra"] == ""

    events = journal.fetch_session_events("session-1")
    assert len(events) == 1
    assert events[0].metadata["level"] == "INFO"
    assert events[0].document == '{"message": "started"}'
    assert journal.ping()


def test_lifecycle_events_are_journaled_from_the_bus(tmp_path: Path) -> None:
    client = StubClient()
    journal = make_journal(tmp_path, client)
    bus = SessionEventBus()
    unsubscribe = journal.attach(bus)

    bus.publish(SessionCreated(session_id="s1", name="Claude Code", agent_profile_id="claude-code", worktree_path="/wt"))
    bus.publish(SessionOutput(session_id="s1", data="noise"))
    bus.publish(SessionStateChanged(session_id="s1", state="waiting_input"))
    bus.publish(SessionExited(session_id="s1", exit_code=0))
    bus.publish(SessionDestroyed(session_id="s1"))
    unsubscribe()
    bus.publish(SessionDestroyed(session_id="s1"))

    events = journal.fetch_session_events("s1")
    assert [event.event_type for event in events] == [
        "session_created",
        "state_changed",
        "session_exited",
        "session_destroyed",
    ]
    assert [event.metadata["sequence"] for event in events] == [1, 2, 3, 4]
    assert events[1].metadata["state"] == "waiting_input"


def test_search_events_by_keyword_and_filter(tmp_path: Path) -> None:
    journal = make_journal(tmp_path)
    journal.record_lifecycle(SessionStateChanged(session_id="a", state="busy"))
    journal.record_lifecycle(
        SessionStateChanged(session_id="b", state="waiting_input", auto_approval_failed=True, reason="policy denied")
    )

    assert [event.session_id for event in journal.search_events("policy")] == ["b"]
    assert [event.session_id for event in journal.search_events(filters={"session_id": "a"})] == ["a"]
    assert len(journal.search_events(limit=1)) == 1


def test_journal_failures_never_reach_publishers(tmp_path: Path, caplog) -> None:
    def broken_factory():
        raise ChromaUnavailableError("chroma offline")

    journal = ChromaJournal(tmp_path, client_factory=broken_factory)
    bus = SessionEventBus()
    journal.attach(bus)

    with caplog.at_level("WARNING"):
        bus.publish(SessionDestroyed(session_id="s1"))

    assert any("Failed to journal session event" in record.message for record in caplog.records)
    with pytest.raises(ChromaUnavailableError):
        journal.ping()
