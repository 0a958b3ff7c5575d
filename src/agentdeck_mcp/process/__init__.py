"""Process supervision for agent terminals."""

from .pty import (
    FakeProcessHandle,
    FakeSupervisor,
    ProcessHandle,
    ProcessSupervisor,
    PtyProcessHandle,
    PtySupervisor,
)
from .utils import default_shell, resolve_command, sanitize_environment

__all__ = [
    "FakeProcessHandle",
    "FakeSupervisor",
    "ProcessHandle",
    "ProcessSupervisor",
    "PtyProcessHandle",
    "PtySupervisor",
    "default_shell",
    "resolve_command",
    "sanitize_environment",
]
