"""Chroma-backed journal of session lifecycle events."""

from __future__ import annotations

import json
import logging
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from ..events import (
    SessionCreated,
    SessionDestroyed,
    SessionEvent,
    SessionEventBus,
    SessionExited,
    SessionOutput,
    SessionStateChanged,
)

logger = logging.getLogger(__name__)


class ChromaUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by the journal."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used by the journal."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


@dataclass(slots=True)
class JournalEntry:
    """A lifecycle event stored in Chroma."""

    id: str
    session_id: str
    event_type: str
    document: str
    metadata: dict[str, Any]
    timestamp: datetime


_EVENT_TYPES: dict[type, str] = {
    SessionCreated: "session_created",
    SessionDestroyed: "session_destroyed",
    SessionStateChanged: "state_changed",
    SessionExited: "session_exited",
}


def _metadata_value(value: Any) -> str | int | float | bool:
    if isinstance(value, (str, int, float, bool)):
        return value
    return "" if value is None else str(value)


class ChromaJournal:
    """Persist lifecycle events of agent sessions via ChromaDB."""

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "agentdeck_sessions",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collection: CollectionProtocol | None = None
        self._counters: dict[str, int] = defaultdict(int)

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise ChromaUnavailableError(
                "chromadb package is not installed; install agentdeck-mcp[journal]"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self) -> CollectionProtocol:
        if self._collection is None:
            client = self._client or self._client_factory()
            self._client = client
            self._collection = client.get_or_create_collection(self._collection_name)
        return self._collection

    def _convert_result(self, result: dict[str, list[Any]]) -> list[JournalEntry]:
        entries: list[JournalEntry] = []
        ids = result.get("ids", [])
        documents = result.get("documents", [])
        metadatas = result.get("metadatas", [])
        for entry_id, document, metadata in zip(ids, documents, metadatas):
            timestamp_raw = metadata.get("timestamp")
            timestamp = (
                datetime.fromisoformat(timestamp_raw)
                if isinstance(timestamp_raw, str)
                else self._clock()
            )
            entries.append(
                JournalEntry(
                    id=entry_id,
                    session_id=metadata.get("session_id", ""),
                    event_type=metadata.get("event_type", ""),
                    document=document,
                    metadata=metadata,
                    timestamp=timestamp,
                )
            )
        entries.sort(key=lambda entry: (entry.timestamp, entry.metadata.get("sequence", 0)))
        return entries

    def ping(self) -> bool:
        """Verify that the underlying collection can be obtained."""

        self._ensure_collection()
        return True

    def record_event(
        self,
        *,
        session_id: str,
        event_type: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
    ) -> JournalEntry:
        collection = self._ensure_collection()
        counter = self._counters[session_id] = self._counters[session_id] + 1
        entry_id = f"{session_id}:{uuid.uuid4().hex}"
        timestamp = self._clock()

        document = body if isinstance(body, str) else json.dumps(body)
        record_metadata: dict[str, Any] = {
            "session_id": session_id,
            "event_type": event_type,
            "timestamp": timestamp.isoformat(),
            "sequence": counter,
        }
        if metadata:
            record_metadata.update({key: _metadata_value(value) for key, value in metadata.items()})

        collection.add(documents=[document], metadatas=[record_metadata], ids=[entry_id])

        return JournalEntry(
            id=entry_id,
            session_id=session_id,
            event_type=event_type,
            document=document,
            metadata=record_metadata,
            timestamp=timestamp,
        )

    def record_lifecycle(self, event: SessionEvent) -> JournalEntry | None:
        """Store a bus event; terminal output is not journaled."""

        if isinstance(event, SessionOutput):
            return None
        event_type = _EVENT_TYPES.get(type(event))
        if event_type is None:
            return None
        payload = asdict(event)
        metadata = {key: value for key, value in payload.items() if key != "session_id"}
        return self.record_event(
            session_id=event.session_id,
            event_type=event_type,
            body=payload,
            metadata=metadata,
        )

    def attach(self, bus: SessionEventBus) -> Callable[[], None]:
        """Subscribe to ``bus``; journal failures are logged and never propagate."""

        def _on_event(event: SessionEvent) -> None:
            try:
                self.record_lifecycle(event)
            except Exception as exc:
                logger.warning(
                    "Failed to journal session event",
                    extra={"session_id": event.session_id, "error": str(exc)},
                )

        return bus.subscribe(_on_event)

    def fetch_session_events(self, session_id: str, *, limit: int | None = None) -> list[JournalEntry]:
        collection = self._ensure_collection()
        result = collection.get(where={"session_id": session_id}, limit=limit)
        return self._convert_result(result)

    def search_events(
        self,
        query: str | None = None,
        *,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[JournalEntry]:
        collection = self._ensure_collection()
        result = collection.get(where=filters, limit=None if query else limit)
        entries = self._convert_result(result)
        if query:
            needle = query.lower()
            entries = [
                entry
                for entry in entries
                if needle in entry.document.lower()
                or any(needle in str(value).lower() for value in entry.metadata.values())
            ]
        return entries[:limit] if limit else entries


__all__ = ["ChromaJournal", "ChromaUnavailableError", "JournalEntry"]
