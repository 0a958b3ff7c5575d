"""Exception hierarchy shared by the session subsystem."""

from __future__ import annotations


class AgentDeckError(RuntimeError):
    """Base class for AgentDeck errors."""


class SessionValidationError(AgentDeckError, ValueError):
    """Raised when a session request is rejected before any resource is allocated."""


class ProcessSpawnError(AgentDeckError):
    """Raised when the agent process cannot be started."""


class StorageCorruptionError(AgentDeckError):
    """Raised when the session database is still unusable after recreating it."""


class TransportError(AgentDeckError):
    """Raised when terminal input or output for a live session fails."""


class SessionNotFoundError(AgentDeckError, KeyError):
    """Raised when an operation targets a session id that is not live."""

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class ManagerClosedError(AgentDeckError):
    """Raised when a session is requested from a manager that has been shut down."""


__all__ = [
    "AgentDeckError",
    "ManagerClosedError",
    "ProcessSpawnError",
    "SessionNotFoundError",
    "SessionValidationError",
    "StorageCorruptionError",
    "TransportError",
]
