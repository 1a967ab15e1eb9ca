"""Tests for output sinks and append-mode newline normalization."""

import pytest

from llm_complete.errors import SinkError
from llm_complete.sinks import (
    AppendFileSink,
    RawStreamSink,
    TerminalLineSink,
    normalize_trailing_newline,
    select_sink,
)


def _normalize(path, content: bytes):
    path.write_bytes(content)
    with open(path, "a+b") as fh:
        changed = normalize_trailing_newline(fh)
    return changed, path.read_bytes()


class TestNormalizeTrailingNewline:

    def test_single_newline_removed(self, tmp_path):
        changed, data = _normalize(tmp_path / "f.txt", b"Once upon a time\n")
        assert changed
        assert data == b"Once upon a time"

    def test_double_newline_kept(self, tmp_path):
        changed, data = _normalize(tmp_path / "f.txt", b"Chapter one\n\n")
        assert not changed
        assert data == b"Chapter one\n\n"

    def test_no_newline_untouched(self, tmp_path):
        changed, data = _normalize(tmp_path / "f.txt", b"The end")
        assert not changed
        assert data == b"The end"

    def test_empty_file_untouched(self, tmp_path):
        changed, data = _normalize(tmp_path / "f.txt", b"")
        assert not changed
        assert data == b""

    def test_lone_newline_removed(self, tmp_path):
        changed, data = _normalize(tmp_path / "f.txt", b"\n")
        assert changed
        assert data == b""


class TestAppendFileSink:

    def test_prepare_then_append(self, tmp_path):
        path = tmp_path / "story.txt"
        path.write_bytes(b"It was late\n")
        sink = AppendFileSink(str(path))
        sink.prepare()
        sink.write(" and dark")
        sink.write(".")
        sink.close()
        assert path.read_text() == "It was late and dark."

    def test_paragraph_break_survives_prepare(self, tmp_path):
        path = tmp_path / "story.txt"
        path.write_bytes(b"Para\n\n")
        sink = AppendFileSink(str(path))
        sink.prepare()
        sink.write("Next")
        sink.close()
        assert path.read_text() == "Para\n\nNext"

    def test_unicode_written_as_utf8(self, tmp_path):
        path = tmp_path / "u.txt"
        path.write_bytes(b"")
        sink = AppendFileSink(str(path))
        sink.open()
        sink.write("café…")
        sink.close()
        assert path.read_bytes() == "café…".encode("utf-8")

    def test_write_before_open_raises(self, tmp_path):
        sink = AppendFileSink(str(tmp_path / "x.txt"))
        with pytest.raises(SinkError):
            sink.write("x")

    def test_open_missing_directory_raises_oserror(self, tmp_path):
        sink = AppendFileSink(str(tmp_path / "nope" / "x.txt"))
        with pytest.raises(OSError):
            sink.open()

    def test_close_is_idempotent(self, tmp_path):
        sink = AppendFileSink(str(tmp_path / "x.txt"))
        sink.open()
        sink.close()
        sink.close()


class TestStreamSinks:

    def test_raw_stream_sink_writes_through(self, fake_stream):
        out = fake_stream()
        sink = RawStreamSink(out)
        sink.write("a")
        sink.write("b")
        assert out.getvalue() == "ab"
        assert not sink.interactive

    def test_raw_stream_sink_wraps_errors(self, fake_stream):
        out = fake_stream()
        out.close()
        with pytest.raises(SinkError):
            RawStreamSink(out).write("x")

    def test_terminal_line_sink_appends_and_redraws(self, terminal):
        sink = TerminalLineSink(terminal)
        sink.write("Hello")
        sink.write(", world")
        assert sink.interactive
        assert terminal.line == "Hello, world"
        assert terminal.cursor == len("Hello, world")
        assert terminal._stdout.getvalue() == "Hello, world"


class TestSelectSink:

    def test_append_wins(self, terminal, fake_stream, tmp_path):
        sink = select_sink(terminal, append_path=str(tmp_path / "f"), stream=fake_stream(tty=True))
        assert isinstance(sink, AppendFileSink)

    def test_redirected_output(self, terminal, fake_stream):
        sink = select_sink(terminal, stream=fake_stream(tty=False))
        assert isinstance(sink, RawStreamSink)

    def test_interactive_output(self, terminal, fake_stream):
        sink = select_sink(terminal, stream=fake_stream(tty=True))
        assert isinstance(sink, TerminalLineSink)
