"""In-process event bus for session lifecycle notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SessionCreated:
    session_id: str
    name: str
    agent_profile_id: str
    worktree_path: str
    project_path: str | None = None


@dataclass(slots=True, frozen=True)
class SessionDestroyed:
    session_id: str


@dataclass(slots=True, frozen=True)
class SessionStateChanged:
    session_id: str
    state: str
    auto_approval_failed: bool = False
    reason: str | None = None


@dataclass(slots=True, frozen=True)
class SessionExited:
    session_id: str
    exit_code: int | None


@dataclass(slots=True, frozen=True)
class SessionOutput:
    session_id: str
    data: str


SessionEvent = Union[SessionCreated, SessionDestroyed, SessionStateChanged, SessionExited, SessionOutput]
Subscriber = Callable[[SessionEvent], None]


class SessionEventBus:
    """Deliver session events synchronously, in publish order, to every subscriber.

    A failing subscriber is logged and skipped so that the remaining
    subscribers still observe the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, event: SessionEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Session event subscriber failed",
                    extra={"event": type(event).__name__, "session_id": event.session_id},
                )

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


__all__ = [
    "SessionCreated",
    "SessionDestroyed",
    "SessionEvent",
    "SessionEventBus",
    "SessionExited",
    "SessionOutput",
    "SessionStateChanged",
    "Subscriber",
]
