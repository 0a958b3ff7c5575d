"""Storage abstractions for AgentDeck MCP."""

from .journal import ChromaJournal, ChromaUnavailableError, JournalEntry
from .models import CreateSessionRecordInput, SessionIntent, SessionQuery, SessionRecord
from .sessions import SessionRecordStore, normalize_optional_string

__all__ = [
    "ChromaJournal",
    "ChromaUnavailableError",
    "CreateSessionRecordInput",
    "JournalEntry",
    "SessionIntent",
    "SessionQuery",
    "SessionRecord",
    "SessionRecordStore",
    "normalize_optional_string",
]
