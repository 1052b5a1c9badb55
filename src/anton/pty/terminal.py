"""The user's real terminal — raw mode, cursor, input and resize events.

Whoever renders to the screen owns raw mode and cursor visibility. The
restore hook puts both back exactly once however the process ends, so a
crash never leaves the user's shell in raw mode with a hidden cursor.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import pty
import signal
import termios
import tty
from typing import Callable

from anton.pty.subscription import Subscription

logger = logging.getLogger(__name__)

HIDE_CURSOR = b"\x1b[?25l"
SHOW_CURSOR = b"\x1b[?25h"
CLEAR_SCREEN = b"\x1b[2J\x1b[3J\x1b[H"

DEFAULT_SIZE = (80, 24)
INPUT_READ_SIZE = 4096

# Signals that end the process but still deserve a restored terminal
RESTORE_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class RealTerminal:
    """Save terminal mode on ``enter_raw``, restore it on ``restore``.

    Modelled on a save/restore context manager: ``restore`` is idempotent
    and is registered with ``atexit`` by :meth:`install_restore_hooks`.
    """

    def __init__(self, input_fd: int | None = None, output_fd: int | None = None) -> None:
        self.input_fd = pty.STDIN_FILENO if input_fd is None else input_fd
        self.output_fd = pty.STDOUT_FILENO if output_fd is None else output_fd
        self._saved_mode: list | None = None
        self._raw = False
        self._cursor_hidden = False
        self._restored = False
        self._hooks_installed = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_tty(self) -> bool:
        return os.isatty(self.input_fd)

    @property
    def raw(self) -> bool:
        return self._raw

    @property
    def cursor_hidden(self) -> bool:
        return self._cursor_hidden

    def size(self) -> tuple[int, int]:
        """Return ``(columns, rows)``, falling back to 80x24."""
        try:
            columns, lines = os.get_terminal_size(self.output_fd)
        except OSError:
            return DEFAULT_SIZE
        return columns or DEFAULT_SIZE[0], lines or DEFAULT_SIZE[1]

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        view = memoryview(data)
        while view:
            written = os.write(self.output_fd, view)
            view = view[written:]

    def hide_cursor(self) -> None:
        self.write(HIDE_CURSOR)
        self._cursor_hidden = True

    def show_cursor(self) -> None:
        self.write(SHOW_CURSOR)
        self._cursor_hidden = False

    def clear_screen(self) -> None:
        self.write(CLEAR_SCREEN)

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def enter_raw(self) -> None:
        """Switch input to raw mode, keeping output newline translation.

        ``tty.setraw`` also clears OPOST; we turn OPOST/ONLCR back on so our
        own "\\n"-terminated writes still return to column 0.
        """
        if self._raw or not self.is_tty:
            return
        try:
            self._saved_mode = termios.tcgetattr(self.input_fd)
            tty.setraw(self.input_fd)
            mode = termios.tcgetattr(self.input_fd)
            mode[tty.OFLAG] |= termios.OPOST | termios.ONLCR
            termios.tcsetattr(self.input_fd, termios.TCSANOW, mode)
        except termios.error as e:
            logger.warning("Could not switch terminal to raw mode: %s", e)
            return
        self._raw = True
        self._restored = False

    def flush_input(self) -> None:
        """Discard keystrokes typed while input was not being relayed."""
        if not self.is_tty:
            return
        try:
            termios.tcflush(self.input_fd, termios.TCIFLUSH)
        except termios.error as e:
            logger.debug("tcflush failed: %s", e)

    def restore(self) -> None:
        """Restore cooked mode and show the cursor. Runs at most once per raw entry."""
        if self._restored:
            return
        self._restored = True
        try:
            self.write(SHOW_CURSOR)
        except OSError as e:
            logger.debug("Could not show cursor: %s", e)
        self._cursor_hidden = False
        if self._saved_mode is not None:
            try:
                termios.tcsetattr(self.input_fd, termios.TCSAFLUSH, self._saved_mode)
            except termios.error as e:
                logger.debug("Could not restore terminal mode: %s", e)
        self._raw = False

    def install_restore_hooks(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Restore the terminal on interpreter exit and on SIGTERM/SIGHUP."""
        if self._hooks_installed:
            return
        self._hooks_installed = True
        atexit.register(self.restore)
        if loop is None:
            return
        for sig in RESTORE_SIGNALS:
            loop.add_signal_handler(sig, self._restore_and_reraise, sig)

    def _restore_and_reraise(self, sig: signal.Signals) -> None:
        logger.info("Received %s, restoring terminal", sig.name)
        self.restore()
        signal.signal(sig, signal.SIG_DFL)
        os.kill(os.getpid(), sig)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_input(self, callback: Callable[[bytes], None]) -> Subscription:
        """Relay raw input chunks from the real terminal to ``callback``."""
        loop = asyncio.get_running_loop()
        fd = self.input_fd

        def _on_readable() -> None:
            try:
                data = os.read(fd, INPUT_READ_SIZE)
            except OSError as e:
                logger.debug("stdin read failed: %s", e)
                data = b""
            if not data:
                loop.remove_reader(fd)
                return
            callback(data)

        loop.add_reader(fd, _on_readable)
        return Subscription(lambda: loop.remove_reader(fd))

    def on_resize(self, callback: Callable[[int, int], None]) -> Subscription:
        """Call ``callback(cols, rows)`` on every SIGWINCH."""
        loop = asyncio.get_running_loop()

        def _on_winch() -> None:
            cols, rows = self.size()
            logger.debug("Terminal resized to %dx%d", cols, rows)
            callback(cols, rows)

        loop.add_signal_handler(signal.SIGWINCH, _on_winch)
        return Subscription(lambda: loop.remove_signal_handler(signal.SIGWINCH))
