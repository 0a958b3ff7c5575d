from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import pytest

from agentdeck_mcp.adapters import (
    AdapterRegistry,
    BaseAgentAdapter,
    ConversationMessage,
    SessionFileMetadata,
)
from agentdeck_mcp.storage import CreateSessionRecordInput, SessionRecordStore


class ScriptedAdapter(BaseAgentAdapter):
    """Returns queued lookup results, then keeps returning the last one."""

    def __init__(self, results, *, messages=None, session_id="agent-session-1") -> None:
        super().__init__("scripted", agent_types=("scripted",))
        self.results = list(results)
        self.calls: list[tuple[Path, datetime | None]] = []
        self.messages = messages if messages is not None else []
        self.session_id = session_id
        self.on_metadata = None

    def find_session_file(self, worktree_path, since=None):
        self.calls.append((worktree_path, since))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0] if self.results else None

    def extract_metadata(self, session_file):
        if self.on_metadata is not None:
            self.on_metadata()
        return SessionFileMetadata(agent_session_id=self.session_id)

    def parse_messages(self, session_file):
        return list(self.messages)


def message(content: str) -> ConversationMessage:
    return ConversationMessage(id="m1", role="user", content=content, preview="")


def make_store(tmp_path: Path, adapter: BaseAgentAdapter, *, retry_limit: int = 4) -> SessionRecordStore:
    store = SessionRecordStore(
        tmp_path / "sessions.db",
        adapters=AdapterRegistry([adapter]),
        retry_limit=retry_limit,
        retry_delay=0,
        grace_seconds=120,
    )
    store.create_session_record(
        CreateSessionRecordInput(
            id="s1",
            agent_profile_id="scripted",
            agent_profile_name="Scripted",
            agent_type="scripted",
            worktree_path=str(tmp_path),
            created_at=1_000,
        )
    )
    return store


def test_discovery_links_after_misses(tmp_path: Path) -> None:
    transcript = tmp_path / "transcript.jsonl"
    adapter = ScriptedAdapter(
        [None, None, transcript],
        messages=[message("   "), message("  Fix the\n   login   bug ")],
    )
    store = make_store(tmp_path, adapter)

    async def scenario():
        task = store.schedule_discovery("s1", "scripted", str(tmp_path), 1_000)
        assert task is not None
        assert store.discovery_pending("s1")
        return await task

    found = asyncio.run(scenario())

    assert found == transcript
    assert len(adapter.calls) == 3
    assert adapter.calls[0][0] == tmp_path.resolve()
    assert adapter.calls[0][1] == datetime.fromtimestamp(880, tz=timezone.utc)
    record = store.get_session_by_id("s1")
    assert record.agent_session_path == str(transcript)
    assert record.agent_session_id == "agent-session-1"
    assert record.content_preview == "Fix the login bug"
    assert not store.discovery_pending("s1")


def test_discovery_exhaustion_is_silent(tmp_path: Path, caplog) -> None:
    adapter = ScriptedAdapter([None])
    store = make_store(tmp_path, adapter, retry_limit=3)

    async def scenario():
        task = store.schedule_discovery("s1", "scripted", str(tmp_path), 1_000)
        result = await task
        await asyncio.sleep(0)
        return result

    with caplog.at_level("WARNING"):
        assert asyncio.run(scenario()) is None

    assert len(adapter.calls) == 3
    assert store.get_session_by_id("s1").agent_session_path is None
    assert not store.discovery_pending("s1")
    assert not [record for record in caplog.records if record.levelname in {"WARNING", "ERROR"}]


def test_lookup_errors_count_as_misses(tmp_path: Path) -> None:
    transcript = tmp_path / "t.jsonl"

    class FlakyAdapter(ScriptedAdapter):
        def find_session_file(self, worktree_path, since=None):
            self.calls.append((worktree_path, since))
            if len(self.calls) == 1:
                raise OSError("permission denied")
            return transcript

    adapter = FlakyAdapter([])
    store = make_store(tmp_path, adapter)

    async def scenario():
        return await store.schedule_discovery("s1", "scripted", str(tmp_path), 1_000)

    assert asyncio.run(scenario()) == transcript
    assert len(adapter.calls) == 2


def test_no_adapter_means_no_discovery(tmp_path: Path) -> None:
    store = make_store(tmp_path, ScriptedAdapter([None]))

    async def scenario():
        return store.schedule_discovery("s1", "unknown-agent", str(tmp_path), 1_000)

    assert asyncio.run(scenario()) is None
    assert not store.discovery_pending("s1")


def test_cancelled_discovery_never_links(tmp_path: Path) -> None:
    adapter = ScriptedAdapter([tmp_path / "late.jsonl"])
    store = SessionRecordStore(
        tmp_path / "sessions.db",
        adapters=AdapterRegistry([adapter]),
        retry_limit=4,
        retry_delay=0.05,
    )
    store.create_session_record(
        CreateSessionRecordInput(
            id="s1",
            agent_profile_id="scripted",
            agent_profile_name="Scripted",
            agent_type="scripted",
            worktree_path=str(tmp_path),
        )
    )

    async def scenario():
        task = store.schedule_discovery("s1", "scripted", str(tmp_path))
        assert store.cancel_discovery("s1")
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not store.cancel_discovery("s1")

    asyncio.run(scenario())

    assert adapter.calls == []
    assert store.get_session_by_id("s1").agent_session_path is None


def test_result_arriving_after_cancel_is_dropped(tmp_path: Path) -> None:
    adapter = ScriptedAdapter([tmp_path / "t.jsonl"])
    store = make_store(tmp_path, adapter)

    async def scenario():
        loop = asyncio.get_running_loop()
        adapter.on_metadata = lambda: loop.call_soon_threadsafe(store.cancel_discovery, "s1")
        task = store.schedule_discovery("s1", "scripted", str(tmp_path), 1_000)
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert store.get_session_by_id("s1").agent_session_path is None


def test_rescheduling_replaces_previous_task(tmp_path: Path) -> None:
    adapter = ScriptedAdapter([tmp_path / "t.jsonl"])
    store = make_store(tmp_path, adapter)

    async def scenario():
        first = store.schedule_discovery("s1", "scripted", str(tmp_path), 1_000)
        second = store.schedule_discovery("s1", "scripted", str(tmp_path), 1_000)
        assert first is not second
        await second
        assert first.cancelled()

    asyncio.run(scenario())
    assert store.get_session_by_id("s1").agent_session_path == str(tmp_path / "t.jsonl")


def test_closed_store_schedules_nothing(tmp_path: Path) -> None:
    store = make_store(tmp_path, ScriptedAdapter([None]))

    async def scenario():
        store.close()
        return store.schedule_discovery("s1", "scripted", str(tmp_path), 1_000)

    assert asyncio.run(scenario()) is None


def test_hydrate_content_preview_for_linked_record(tmp_path: Path) -> None:
    transcript = tmp_path / "t.jsonl"
    transcript.write_text("{}\n", encoding="utf-8")
    adapter = ScriptedAdapter([None], messages=[message("Review the migration plan")])
    store = make_store(tmp_path, adapter)
    store.update_agent_session_link("s1", str(transcript), "ext")

    assert asyncio.run(store.hydrate_content_preview("s1")) == "Review the migration plan"
    assert store.get_session_by_id("s1").content_preview == "Review the migration plan"

    # already hydrated
    assert asyncio.run(store.hydrate_content_preview("s1")) is None


def test_hydrate_skips_unlinked_and_missing_transcripts(tmp_path: Path) -> None:
    adapter = ScriptedAdapter([None], messages=[message("hello")])
    store = make_store(tmp_path, adapter)

    assert asyncio.run(store.hydrate_content_preview("s1")) is None
    store.update_agent_session_link("s1", str(tmp_path / "gone.jsonl"))
    assert asyncio.run(store.hydrate_content_preview("s1")) is None
    assert asyncio.run(store.hydrate_content_preview("missing")) is None
