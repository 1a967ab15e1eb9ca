"""Interactive terminal device: key input, current line, cursor visibility.

Keys are read from stdin by an event loop reader while the terminal is
attached.  Every chunk is shown to the registered listeners first and then
handed to ``key_handler`` (a minimal line editor by default), which callers
may swap out.  Safe to use when stdin is not a TTY -- attach() is a no-op.
"""

import asyncio
import logging
import os
import sys
from typing import Callable

try:
    import termios
except ImportError:  # Windows
    termios = None

log = logging.getLogger(__name__)

KeyHandler = Callable[[bytes], None]

_HIDE_CURSOR = "\033[?25l"
_SHOW_CURSOR = "\033[?25h"
_BACKSPACES = (b"\x7f", b"\x08")


class Terminal:
    """Owns stdin key handling and the line being written to stdout."""

    def __init__(self, stdin=None, stdout=None, stderr=None):
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr
        self.line = ""
        self.cursor = 0
        self._rendered = 0
        self.key_handler: KeyHandler = self.edit_line
        self._listeners: list[KeyHandler] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._fd: int | None = None
        self._saved_attrs = None
        self.cursor_visible = True

    @property
    def input_is_tty(self) -> bool:
        return self._stdin.isatty()

    @property
    def output_is_tty(self) -> bool:
        return self._stdout.isatty()

    @property
    def attached(self) -> bool:
        return self._loop is not None

    def add_key_listener(self, listener: KeyHandler):
        """Observe every input chunk regardless of the active key handler."""
        self._listeners.append(listener)

    def attach(self, loop: asyncio.AbstractEventLoop):
        """Switch stdin to unbuffered, non-echoing, non-signalling mode."""
        if self.attached or not self.input_is_tty or termios is None:
            return
        fd = self._stdin.fileno()
        try:
            self._saved_attrs = termios.tcgetattr(fd)
            attrs = termios.tcgetattr(fd)
            # Ctrl+C arrives as a plain 0x03 byte instead of SIGINT
            attrs[3] &= ~(termios.ECHO | termios.ICANON | termios.ISIG)
            attrs[6][termios.VMIN] = 1
            attrs[6][termios.VTIME] = 0
            termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
        except termios.error:
            log.warning("Could not configure terminal input", exc_info=True)
            self._saved_attrs = None
            return
        self._fd = fd
        self._loop = loop
        loop.add_reader(fd, self._on_readable)
        log.debug("Terminal attached (fd=%d)", fd)

    def detach(self):
        """Remove the stdin reader and restore the original terminal mode."""
        if not self.attached:
            return
        self._loop.remove_reader(self._fd)
        try:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
        except termios.error:
            log.warning("Could not restore terminal mode", exc_info=True)
        self._loop = None
        self._fd = None
        self._saved_attrs = None
        log.debug("Terminal detached")

    def _on_readable(self):
        try:
            data = os.read(self._fd, 1024)
        except OSError:
            log.warning("Terminal read failed", exc_info=True)
            return
        if data:
            self.feed(data)

    def feed(self, data: bytes):
        """Dispatch an input chunk to the listeners, then the key handler."""
        for listener in self._listeners:
            listener(data)
        self.key_handler(data)

    def edit_line(self, data: bytes):
        """Default key handler: append printable input, honour backspace."""
        if data in _BACKSPACES:
            if self.line:
                self.line = self.line[:-1]
                self.cursor = len(self.line)
                self._rendered = min(self._rendered, len(self.line))
                self._stdout.write("\b \b")
                self._stdout.flush()
            return
        text = data.decode("utf-8", errors="ignore")
        text = "".join(ch for ch in text if ch.isprintable() or ch == "\n")
        if text:
            self.line += text
            self.cursor = len(self.line)
            self.refresh_line()

    def refresh_line(self):
        """Draw whatever part of the current line is not on screen yet."""
        self._stdout.write(self.line[self._rendered:])
        self._stdout.flush()
        self._rendered = len(self.line)

    def hide_cursor(self):
        self._stderr.write(_HIDE_CURSOR)
        self._stderr.flush()
        self.cursor_visible = False

    def show_cursor(self):
        self._stderr.write(_SHOW_CURSOR)
        self._stderr.flush()
        self.cursor_visible = True
