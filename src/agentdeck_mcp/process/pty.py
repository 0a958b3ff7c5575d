"""Pseudo-terminal process supervision for agent sessions."""

from __future__ import annotations

import asyncio
import codecs
import logging
import signal
from pathlib import Path
from typing import Callable, Iterable, Mapping, Protocol, Sequence

import pexpect

from ..errors import ProcessSpawnError, TransportError

logger = logging.getLogger(__name__)

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int | None], None]
Disposer = Callable[[], None]

READ_CHUNK_SIZE = 4096


class ProcessHandle(Protocol):
    """A live child process attached to a pseudo-terminal."""

    @property
    def pid(self) -> int | None: ...

    def write(self, data: str) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...

    def kill(self) -> None: ...

    def on_data(self, callback: DataCallback) -> Disposer: ...

    def on_exit(self, callback: ExitCallback) -> Disposer: ...


class ProcessSupervisor(Protocol):
    """Spawns processes under a pseudo-terminal."""

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        cols: int,
        rows: int,
    ) -> ProcessHandle: ...


class _Listeners:
    def __init__(self) -> None:
        self._data: list[DataCallback] = []
        self._exit: list[ExitCallback] = []

    def add_data(self, callback: DataCallback) -> Disposer:
        self._data.append(callback)
        return lambda: self._discard(self._data, callback)

    def add_exit(self, callback: ExitCallback) -> Disposer:
        self._exit.append(callback)
        return lambda: self._discard(self._exit, callback)

    @staticmethod
    def _discard(items: list, callback) -> None:
        try:
            items.remove(callback)
        except ValueError:
            pass

    def emit_data(self, data: str) -> None:
        for callback in list(self._data):
            try:
                callback(data)
            except Exception:  # pragma: no cover - listener bugs must not stop the reader
                logger.exception("Process data listener failed")

    def emit_exit(self, code: int | None) -> None:
        for callback in list(self._exit):
            try:
                callback(code)
            except Exception:  # pragma: no cover
                logger.exception("Process exit listener failed")


class PtyProcessHandle:
    """ProcessHandle backed by a ``pexpect.spawn`` child."""

    def __init__(self, child: pexpect.spawn, loop: asyncio.AbstractEventLoop) -> None:
        self._child = child
        self._loop = loop
        self._listeners = _Listeners()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._exited = False
        self._reading = False

    @property
    def pid(self) -> int | None:
        return self._child.pid

    @property
    def exited(self) -> bool:
        return self._exited

    def start_reading(self) -> None:
        if self._reading:
            return
        self._loop.add_reader(self._child.child_fd, self._on_readable)
        self._reading = True

    def _stop_reading(self) -> None:
        if not self._reading:
            return
        self._reading = False
        try:
            self._loop.remove_reader(self._child.child_fd)
        except (ValueError, OSError):  # pragma: no cover - fd already gone
            pass

    def _on_readable(self) -> None:
        try:
            chunk = self._child.read_nonblocking(READ_CHUNK_SIZE, timeout=0)
        except pexpect.TIMEOUT:
            return
        except (pexpect.EOF, OSError):
            self._handle_eof()
            return
        text = self._decoder.decode(chunk)
        if text:
            self._listeners.emit_data(text)

    def _handle_eof(self) -> None:
        self._stop_reading()
        if self._exited:
            return
        self._exited = True
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._listeners.emit_data(tail)
        self._schedule_reap()

    def _schedule_reap(self) -> None:
        try:
            self._loop.run_in_executor(None, self._reap)
        except RuntimeError:
            self._reap()

    def _reap(self) -> None:
        # Worker thread: close() waits for the child and releases the pty fd.
        try:
            self._child.close(force=True)
        except (pexpect.ExceptionPexpect, OSError) as exc:
            logger.debug("Failed to close pty child", extra={"pid": self.pid, "error": str(exc)})
        code = self._child.exitstatus
        if code is None and self._child.signalstatus is not None:
            code = 128 + self._child.signalstatus
        logger.debug("Process exited", extra={"pid": self.pid, "exit_code": code})
        try:
            self._loop.call_soon_threadsafe(self._listeners.emit_exit, code)
        except RuntimeError:
            logger.debug("Event loop closed before process exit was reported", extra={"pid": self.pid})

    def write(self, data: str) -> None:
        if self._exited:
            raise TransportError(f"Process {self.pid} has exited")
        try:
            self._child.send(data.encode("utf-8"))
        except OSError as exc:
            raise TransportError(f"Failed to write to process {self.pid}: {exc}") from exc

    def resize(self, cols: int, rows: int) -> None:
        if self._exited:
            return
        try:
            self._child.setwinsize(rows, cols)
        except OSError as exc:
            raise TransportError(f"Failed to resize process {self.pid}: {exc}") from exc

    def kill(self) -> None:
        """Send SIGKILL and reap the child off the event loop thread."""

        if self._exited:
            return
        self._stop_reading()
        self._exited = True
        try:
            self._child.kill(signal.SIGKILL)
        except OSError as exc:
            logger.warning("Failed to kill process", extra={"pid": self.pid, "error": str(exc)})
        self._schedule_reap()

    def on_data(self, callback: DataCallback) -> Disposer:
        return self._listeners.add_data(callback)

    def on_exit(self, callback: ExitCallback) -> Disposer:
        return self._listeners.add_exit(callback)


class PtySupervisor:
    """Spawn agent CLIs under a pseudo-terminal using pexpect."""

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        cols: int,
        rows: int,
    ) -> PtyProcessHandle:
        try:
            child = await asyncio.to_thread(
                pexpect.spawn,
                command,
                list(args),
                cwd=str(cwd),
                env=dict(env),
                dimensions=(rows, cols),
                encoding=None,
                echo=False,
            )
        except (pexpect.ExceptionPexpect, OSError) as exc:
            raise ProcessSpawnError(f"Failed to spawn {command!r}: {exc}") from exc
        handle = PtyProcessHandle(child, asyncio.get_running_loop())
        handle.start_reading()
        logger.info(
            "Spawned process",
            extra={"command": command, "pid": handle.pid, "cwd": str(cwd)},
        )
        return handle


class FakeProcessHandle:
    """Test double that records writes and lets tests drive output and exit."""

    def __init__(self, pid: int) -> None:
        self._pid = pid
        self._listeners = _Listeners()
        self.writes: list[str] = []
        self.sizes: list[tuple[int, int]] = []
        self.killed = False
        self.exited = False
        self.fail_writes = False

    @property
    def pid(self) -> int:
        return self._pid

    def write(self, data: str) -> None:
        if self.fail_writes or self.exited:
            raise TransportError(f"Process {self._pid} is not writable")
        self.writes.append(data)

    def resize(self, cols: int, rows: int) -> None:
        self.sizes.append((cols, rows))

    def kill(self) -> None:
        self.killed = True

    def on_data(self, callback: DataCallback) -> Disposer:
        return self._listeners.add_data(callback)

    def on_exit(self, callback: ExitCallback) -> Disposer:
        return self._listeners.add_exit(callback)

    def emit(self, data: str) -> None:
        self._listeners.emit_data(data)

    def exit(self, code: int | None = 0) -> None:
        self.exited = True
        self._listeners.emit_exit(code)


class FakeSupervisor:
    """Test double that hands out :class:`FakeProcessHandle` instances."""

    def __init__(self, failures: Iterable[Exception] | None = None) -> None:
        self._failures = list(failures or [])
        self._next_pid = 1000
        self.spawned: list[dict[str, object]] = []
        self.handles: list[FakeProcessHandle] = []

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        cols: int,
        rows: int,
    ) -> FakeProcessHandle:
        if self._failures:
            raise self._failures.pop(0)
        self._next_pid += 1
        handle = FakeProcessHandle(self._next_pid)
        self.spawned.append(
            {
                "command": command,
                "args": list(args),
                "cwd": Path(cwd),
                "env": dict(env),
                "cols": cols,
                "rows": rows,
            }
        )
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeProcessHandle:
        return self.handles[-1]


__all__ = [
    "DataCallback",
    "Disposer",
    "ExitCallback",
    "FakeProcessHandle",
    "FakeSupervisor",
    "ProcessHandle",
    "ProcessSupervisor",
    "PtyProcessHandle",
    "PtySupervisor",
]
