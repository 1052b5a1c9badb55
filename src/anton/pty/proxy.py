"""PTY proxy — the wrapped agent running in its own pseudo-terminal.

The proxy owns the child process and the master side of its PTY. Output is
read by an event-loop reader on the master fd, so chunks are delivered in
order on the loop thread, never from a background thread.
"""

from __future__ import annotations

import asyncio
import enum
import fcntl
import logging
import os
import pty
import shutil
import signal
import struct
import termios
from dataclasses import dataclass, field
from typing import Callable

from anton.pty.subscription import CallbackList, Subscription

logger = logging.getLogger(__name__)

READ_SIZE = 65536
REAP_INTERVAL = 0.05
DEFAULT_TERM = "xterm-256color"


class LaunchError(Exception):
    """The wrapped executable could not be found or started."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Cannot launch {command!r}: {reason}")


class ProxyStatus(enum.Enum):
    """Lifecycle states for the proxied child."""

    NEW = "new"
    RUNNING = "running"
    EXITED = "exited"  # Child exited on its own
    KILLED = "killed"  # Killed by us (SIGKILL)


def resolve_executable(command: str, env: dict[str, str] | None = None) -> str:
    """Return an absolute path for ``command`` or raise LaunchError.

    Names are looked up on ``PATH`` (from ``env`` when given); anything with
    a path separator must point at an executable file.
    """
    if os.sep in command:
        path = os.path.abspath(os.path.expanduser(command))
        if not os.path.isfile(path):
            raise LaunchError(command, "no such file")
        if not os.access(path, os.X_OK):
            raise LaunchError(command, "file is not executable")
        return path

    search_path = (env or os.environ).get("PATH")
    found = shutil.which(command, path=search_path)
    if found is None:
        raise LaunchError(command, "not found on PATH")
    return found


def set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _exit_code(status: int) -> int:
    """Convert a waitpid status to a shell-style exit code (128+N for signals)."""
    code = os.waitstatus_to_exitcode(status)
    if code < 0:
        return 128 - code
    return code


@dataclass
class PTYProxy:
    """The wrapped agent attached to a fresh pseudo-terminal.

    - ``on_data`` subscribers receive every output chunk exactly once
    - ``write`` forwards keystrokes to the child
    - ``resize`` updates the window size (``force`` also sends SIGWINCH)
    - ``on_exit`` subscribers are told the exit code exactly once

    The proxy never touches the real terminal.
    """

    command: str
    argv: list[str] = field(default_factory=list)
    cols: int = 80
    rows: int = 24
    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=lambda: dict(os.environ))

    # Internal state
    _master_fd: int = field(default=-1, init=False)
    _pid: int = field(default=0, init=False)
    _status: ProxyStatus = field(default=ProxyStatus.NEW, init=False)
    _exit_code: int | None = field(default=None, init=False)
    _exit_future: asyncio.Future[int] | None = field(default=None, init=False)
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False)
    _data_callbacks: CallbackList[bytes] = field(default_factory=CallbackList, init=False)
    _exit_callbacks: CallbackList[int] = field(default_factory=CallbackList, init=False)

    @classmethod
    def spawn(
        cls,
        command: str,
        argv: list[str],
        cols: int,
        rows: int,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> PTYProxy:
        """Start ``command argv...`` in a new PTY sized ``cols`` x ``rows``.

        Must be called with a running event loop. Raises LaunchError if the
        executable cannot be found or the fork fails.
        """
        proxy = cls(
            command=command,
            argv=list(argv),
            cols=cols,
            rows=rows,
            cwd=cwd or os.getcwd(),
            env=dict(env) if env is not None else dict(os.environ),
        )
        proxy.start()
        return proxy

    def start(self) -> None:
        if self._status != ProxyStatus.NEW:
            raise RuntimeError("PTY proxy already started")

        path = resolve_executable(self.command, self.env)
        env = dict(self.env)
        env.setdefault("TERM", DEFAULT_TERM)
        self._loop = asyncio.get_running_loop()

        try:
            pid, master_fd = pty.fork()
        except OSError as e:
            raise LaunchError(self.command, str(e)) from e

        if pid == 0:
            # Child process - exec never returns on success
            try:
                os.chdir(self.cwd)
                os.execve(path, [self.command, *self.argv], env)
            except OSError as e:
                os.write(2, f"anton: exec {path} failed: {e}\r\n".encode())
            finally:
                os._exit(127)

        self._pid = pid
        self._master_fd = master_fd
        self._status = ProxyStatus.RUNNING
        self._exit_future = self._loop.create_future()
        set_winsize(master_fd, self.cols, self.rows)
        self._loop.add_reader(master_fd, self._on_readable)

        logger.info(
            "PTY proxy started: pid=%d size=%dx%d cmd=%s",
            pid,
            self.cols,
            self.rows,
            " ".join([path, *self.argv]),
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_data(self, callback: Callable[[bytes], None]) -> Subscription:
        """Register a consumer for output chunks, in emission order."""
        return self._data_callbacks.add(callback)

    def on_exit(self, callback: Callable[[int], None]) -> Subscription:
        """Register a consumer for the exit code.

        Registering after the child has exited schedules the callback on the
        loop right away, so late subscribers still hear about it once.
        """
        sub = self._exit_callbacks.add(callback)
        if self._exit_code is not None and self._loop is not None:
            code = self._exit_code
            self._loop.call_soon(self._deliver_late_exit, sub, callback, code)
        return sub

    def _deliver_late_exit(
        self, sub: Subscription, callback: Callable[[int], None], code: int
    ) -> None:
        if sub.disposed:
            return
        sub.dispose()
        callback(code)

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once every slave fd is closed (Linux)
            data = b""

        if not data:
            self._on_eof()
            return

        for callback in self._data_callbacks.snapshot():
            try:
                callback(data)
            except Exception:
                logger.exception("Error in PTY data callback")

    def _on_eof(self) -> None:
        assert self._loop is not None
        self._loop.remove_reader(self._master_fd)
        self._close_fd()
        logger.debug("PTY output closed (pid=%d)", self._pid)
        self._reap()

    def _reap(self) -> None:
        assert self._loop is not None
        try:
            pid, status = os.waitpid(self._pid, os.WNOHANG)
        except ChildProcessError:
            # Reaped elsewhere; the real status is lost
            self._finish(1)
            return
        if pid == 0:
            self._loop.call_later(REAP_INTERVAL, self._reap)
            return
        self._finish(_exit_code(status))

    def _finish(self, code: int) -> None:
        if self._exit_code is not None:
            return
        self._exit_code = code
        if self._status == ProxyStatus.RUNNING:
            self._status = ProxyStatus.EXITED
        logger.info("PTY proxy child %d exited (code=%d)", self._pid, code)

        callbacks = self._exit_callbacks.snapshot()
        for callback in callbacks:
            try:
                callback(code)
            except Exception:
                logger.exception("Error in PTY exit callback")
        if self._exit_future is not None and not self._exit_future.done():
            self._exit_future.set_result(code)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def write(self, data: bytes | str) -> None:
        """Forward input to the child."""
        if self._master_fd < 0:
            logger.debug("Dropping %d bytes of input: PTY closed", len(data))
            return
        if isinstance(data, str):
            data = data.encode("utf-8")
        view = memoryview(data)
        while view:
            written = os.write(self._master_fd, view)
            view = view[written:]

    def resize(self, cols: int, rows: int, force: bool = False) -> None:
        """Update the PTY window size.

        The kernel only signals the child when the size actually changes, so
        ``force=True`` sends SIGWINCH to the foreground process group as well.
        That makes the child redraw its screen on demand.
        """
        if self._master_fd < 0:
            return
        self.cols, self.rows = cols, rows
        set_winsize(self._master_fd, cols, rows)
        if not force:
            return
        try:
            pgrp = os.tcgetpgrp(self._master_fd)
        except OSError:
            pgrp = self._pid
        try:
            os.killpg(pgrp, signal.SIGWINCH)
        except ProcessLookupError:
            logger.debug("No process group %d to signal", pgrp)

    async def wait(self) -> int:
        """Wait for the child to exit and return its exit code."""
        if self._exit_future is None:
            raise RuntimeError("PTY proxy was never started")
        return await asyncio.shield(self._exit_future)

    def kill(self) -> None:
        """Kill the child's whole process group.

        A child killed right after the fork may not have called ``setsid()``
        yet, so its group does not exist; the child itself is signalled then.
        """
        if self._status != ProxyStatus.RUNNING:
            return
        self._status = ProxyStatus.KILLED
        try:
            os.killpg(self._pid, signal.SIGKILL)
            logger.info("Killed PTY child (pgid=%d)", self._pid)
        except ProcessLookupError:
            try:
                os.kill(self._pid, signal.SIGKILL)
                logger.info("Killed PTY child before setsid (pid=%d)", self._pid)
            except ProcessLookupError:
                logger.debug("PTY child already gone: %d", self._pid)
        if self._master_fd >= 0 and self._loop is not None:
            self._loop.remove_reader(self._master_fd)
            self._close_fd()
            self._reap()

    def _close_fd(self) -> None:
        if self._master_fd < 0:
            return
        try:
            os.close(self._master_fd)
        except OSError as e:
            logger.debug("Closing PTY master failed: %s", e)
        self._master_fd = -1

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def alive(self) -> bool:
        return self._status == ProxyStatus.RUNNING and self._exit_code is None

    @property
    def status(self) -> ProxyStatus:
        return self._status

    @property
    def exit_code(self) -> int | None:
        return self._exit_code
