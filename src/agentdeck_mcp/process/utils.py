"""Environment and command helpers for agent processes."""

from __future__ import annotations

import os
import shlex
import shutil
from typing import Mapping, Sequence

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

_TERMINAL_DEFAULTS = {
    "TERM": "xterm-256color",
    "COLORTERM": "truecolor",
}

SHELL_PLACEHOLDER = "$SHELL"


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for an interactive agent terminal."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    for key, value in _TERMINAL_DEFAULTS.items():
        env.setdefault(key, value)
    if additional:
        env.update(additional)
    return env


def default_shell() -> str:
    """Return the user's login shell, falling back to /bin/sh."""

    shell = os.environ.get("SHELL")
    if shell:
        return shell
    return shutil.which("bash") or "/bin/sh"


def resolve_command(command: str, args: Sequence[str] = ()) -> tuple[str, list[str]]:
    """Split a profile command into an executable and argv.

    Profile commands may carry leading arguments (``cursor agent``) or the
    ``$SHELL`` placeholder used by plain terminal profiles.
    """

    if command.strip() == SHELL_PLACEHOLDER:
        return default_shell(), list(args)
    parts = shlex.split(command)
    if not parts:
        raise ValueError("command must not be empty")
    return parts[0], [*parts[1:], *args]
