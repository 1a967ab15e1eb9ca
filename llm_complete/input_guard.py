"""Block keyboard input while a completion is being written.

The terminal's key handler is swapped for a no-op so stray keystrokes do
not end up in the middle of the output.  Ctrl+C is still observed through
a key listener and reported to ``on_cancel``.
"""

import logging
from typing import Callable

from .terminal import Terminal

log = logging.getLogger(__name__)

CANCEL_BYTE = b"\x03"  # ETX / Ctrl+C


def _discard(_data: bytes):
    pass


class InputGuard:
    """Two states: passthrough and blocked."""

    def __init__(self, terminal: Terminal, on_cancel: Callable[[], None]):
        self._terminal = terminal
        self._on_cancel = on_cancel
        self._saved_handler = None
        terminal.add_key_listener(self._watch_cancel)

    @property
    def blocked(self) -> bool:
        return self._saved_handler is not None

    def enter_blocked(self):
        if self.blocked:
            return
        self._saved_handler = self._terminal.key_handler
        self._terminal.key_handler = _discard
        self._terminal.hide_cursor()
        log.debug("Input blocked")

    def exit_blocked(self):
        if not self.blocked:
            return
        self._terminal.key_handler = self._saved_handler
        self._saved_handler = None
        self._terminal.show_cursor()
        log.debug("Input restored")

    def _watch_cancel(self, data: bytes):
        if CANCEL_BYTE in data:
            self._on_cancel()
