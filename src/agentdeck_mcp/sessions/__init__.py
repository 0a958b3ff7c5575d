"""Live session management."""

from ..detection import SessionState
from .manager import SessionManager, strip_leading_clears
from .orchestrator import RehydrationReport, SessionOrchestrator
from .session import Session, SessionSummary

__all__ = [
    "RehydrationReport",
    "Session",
    "SessionManager",
    "SessionOrchestrator",
    "SessionState",
    "SessionSummary",
    "strip_leading_clears",
]
