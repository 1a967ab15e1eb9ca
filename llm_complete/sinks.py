"""Output sinks -- where generated tokens are written.

One sink is chosen per invocation:
  - TerminalLineSink: stdout is an interactive terminal
  - RawStreamSink:    stdout is redirected to a pipe or file
  - AppendFileSink:   --append, output goes back into the input file
"""

import logging
import os
import sys

from .errors import SinkError
from .terminal import Terminal

log = logging.getLogger(__name__)


def normalize_trailing_newline(fh) -> bool:
    """Drop a single trailing newline from a binary file handle.

    A lone trailing newline marks "continue here" and is removed so the
    file does not grow a newline on every run.  A double newline is a
    paragraph break and is kept.  Returns True if the file was truncated.
    """
    size = fh.seek(0, os.SEEK_END)
    if size == 0:
        return False
    start = max(size - 2, 0)
    fh.seek(start)
    tail = fh.read(size - start)
    if tail.endswith(b"\n") and not tail.endswith(b"\n\n"):
        fh.truncate(size - 1)
        log.debug("Trimmed trailing newline (%d -> %d bytes)", size, size - 1)
        return True
    return False


class OutputSink:
    """Base sink. Subclasses implement write()."""

    interactive = False

    def prepare(self):
        """Called once before the first token is written."""

    def write(self, text: str) -> None:
        raise NotImplementedError

    def close(self):
        pass


class TerminalLineSink(OutputSink):
    """Append to the terminal's current line and redraw it."""

    interactive = True

    def __init__(self, terminal: Terminal):
        self._terminal = terminal

    def write(self, text: str) -> None:
        term = self._terminal
        term.line += text
        term.cursor = len(term.line)
        try:
            term.refresh_line()
        except (OSError, ValueError) as exc:
            raise SinkError("terminal write failed: %s" % exc) from exc


class RawStreamSink(OutputSink):
    """Write straight to a (redirected) text stream."""

    def __init__(self, stream=None):
        self._stream = stream or sys.stdout

    def write(self, text: str) -> None:
        try:
            self._stream.write(text)
            self._stream.flush()
        except (OSError, ValueError) as exc:
            raise SinkError("output stream write failed: %s" % exc) from exc


class AppendFileSink(OutputSink):
    """Append tokens to the end of a file, flushing after every token."""

    def __init__(self, path: str):
        self.path = path
        self._fh = None

    def open(self):
        """Open the file for appending. Raises OSError if it cannot be opened."""
        if self._fh is None:
            self._fh = open(self.path, "a+b")

    def prepare(self):
        self.open()
        try:
            normalize_trailing_newline(self._fh)
        except OSError as exc:
            raise SinkError("could not prepare %s: %s" % (self.path, exc)) from exc

    def write(self, text: str) -> None:
        if self._fh is None:
            raise SinkError("%s is not open" % self.path)
        try:
            self._fh.write(text.encode("utf-8"))
            self._fh.flush()
        except (OSError, ValueError) as exc:
            raise SinkError("write to %s failed: %s" % (self.path, exc)) from exc

    def close(self):
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                log.warning("Error closing %s", self.path, exc_info=True)
            self._fh = None


def select_sink(terminal: Terminal, append_path: str | None = None,
                stream=None) -> OutputSink:
    """Pick the sink for this invocation."""
    stream = stream or sys.stdout
    if append_path:
        sink = AppendFileSink(append_path)
    elif not stream.isatty():
        sink = RawStreamSink(stream)
    else:
        sink = TerminalLineSink(terminal)
    log.info("Output sink: %s", type(sink).__name__)
    return sink
