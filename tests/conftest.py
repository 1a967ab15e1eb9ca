"""Shared fakes for llm-complete tests."""

import asyncio
import io
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from llm_complete.errors import SinkError, StreamError  # noqa: E402
from llm_complete.llama_server import Token  # noqa: E402
from llm_complete.sinks import OutputSink  # noqa: E402


class FakeStream(io.StringIO):
    """StringIO that can pretend to be a terminal."""

    def __init__(self, tty: bool = False):
        super().__init__()
        self._tty = tty

    def isatty(self):
        return self._tty


class FakeSession:
    """Token source that replays a fixed token list."""

    def __init__(self, tokens, fail_at=None):
        self.tokens = list(tokens)
        self.fail_at = fail_at
        self.before_token = None  # called with the index before each token
        self.started = False
        self.prompt = None
        self.dispose_calls = 0
        self.disposed_at = None

    async def start(self):
        self.started = True

    async def stream(self, prompt, settings=None, on_token=None):
        self.prompt = prompt
        for i, text in enumerate(self.tokens):
            await asyncio.sleep(0)
            if self.fail_at == i:
                raise StreamError("boom at token %d" % i)
            if self.before_token is not None:
                self.before_token(i)
            if on_token is not None and not on_token(i, text):
                return
            yield Token(i, text)

    async def dispose(self):
        self.dispose_calls += 1
        self.disposed_at = asyncio.get_running_loop().time()


class RecordingSink(OutputSink):
    """Sink that keeps every write and can fail on a given token."""

    def __init__(self, interactive=False, fail_on=None):
        self.interactive = interactive
        self.fail_on = fail_on
        self.writes: list[str] = []
        self.on_write = None
        self.prepared = 0
        self.closed = False

    def prepare(self):
        self.prepared += 1

    def write(self, text):
        if text == self.fail_on:
            raise SinkError("cannot write %r" % text)
        self.writes.append(text)
        if self.on_write is not None:
            self.on_write(text)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_stream():
    return FakeStream


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def recording_sink():
    return RecordingSink


@pytest.fixture
def terminal():
    from llm_complete.terminal import Terminal
    return Terminal(stdin=FakeStream(), stdout=FakeStream(tty=True), stderr=FakeStream(tty=True))
