"""Generation controller -- drives one completion from input to shutdown.

Tokens from the model pass through a lookahead buffer before reaching the
sink, so the tail can be trimmed back to a sentence boundary when the
stream ends.  Cancellation (Ctrl+C, signals, errors) is cooperative: the
kill flag is checked before every emitted token and handed to the token
source, which stops reading at its next token.

Every exit path ends in shutdown(): final newline, indicator off, input
restored, then the model session is disposed.  If generation was under
way, disposal waits a short grace period so the server can finish
cleaning up the interrupted request.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Awaitable, Callable

from . import config
from .errors import CompletionError, SinkError
from .input_guard import InputGuard
from .llama_server import GenerationSettings, LlamaServer
from .progress import ProgressIndicator
from .run_state import RunState
from .sentence_buffer import LookaheadBuffer
from .sinks import AppendFileSink, OutputSink
from .terminal import Terminal

log = logging.getLogger(__name__)

InputReader = Callable[[], Awaitable[str]]


def trim_input(text: str) -> str:
    """Strip a single trailing newline; keep a paragraph break."""
    if text.endswith("\n") and not text.endswith("\n\n"):
        return text[:-1]
    return text


class GenerationController:
    """Owns the run state and sequences guard, indicator, buffer and sink."""

    def __init__(
        self,
        session: LlamaServer,
        sink: OutputSink,
        terminal: Terminal,
        indicator: ProgressIndicator | None = None,
        settings: GenerationSettings | None = None,
        depth: int = config.BUFFER_AHEAD,
        tail_interval: float = config.TAIL_INTERVAL,
        dispose_delay: float = config.DISPOSE_DELAY,
    ):
        self.state = RunState()
        self.session = session
        self.sink = sink
        self.indicator = indicator or ProgressIndicator()
        self.guard = InputGuard(terminal, on_cancel=self.cancel)
        self.settings = settings or GenerationSettings()
        self.depth = depth
        self.tail_interval = tail_interval
        self.dispose_delay = dispose_delay
        self.emitted = 0

    def cancel(self):
        """User interrupt. Only honoured while generating."""
        if self.state.busy and self.state.kill("cancelled"):
            log.info("Generation cancelled by user")

    def abort(self, reason: str):
        """Fatal error outside the stream loop; stop at the next checkpoint."""
        if self.state.kill(reason):
            log.error("Generation aborted: %s", reason)

    def _keep_going(self, _index: int, _text: str) -> bool:
        return not self.state.killed

    async def run(self, read_input: InputReader):
        """Run one completion. Always finishes with shutdown()."""
        self.state.start()
        self.guard.enter_blocked()
        self.indicator.start()
        try:
            prompt = await read_input()
            await self._process(prompt)
        except CompletionError as exc:
            log.error("Error processing stream: %s", exc)
            self.state.kill(str(exc))
        finally:
            await self.shutdown()

    async def _process(self, prompt: str):
        prompt = trim_input(prompt)

        self.sink.prepare()
        # In append mode the input is already in the file
        if not isinstance(self.sink, AppendFileSink):
            self._write(prompt)

        buffer = LookaheadBuffer(self.depth, seam=prompt)
        tokens = self.session.stream(prompt, self.settings, on_token=self._keep_going)
        async with aclosing(tokens):
            async for token in tokens:
                if self.state.killed:
                    return
                buffer.push(token.text)
                if buffer.ready_to_emit():
                    self._emit(buffer.pop_next())

        if self.state.killed:
            return
        self.state.complete()

        tail = buffer.drain()
        log.debug("Stream ended: %d tokens, %d held back for the tail",
                  buffer.count, len(tail))
        for text in tail:
            await asyncio.sleep(self.tail_interval)
            if self.state.killed:
                return
            self._emit(text)

    def _write(self, text: str):
        if text:
            self.sink.write(text)

    def _emit(self, text: str):
        # Animation and output must not share the terminal line
        if self.sink.interactive and self.indicator.running:
            self.indicator.stop()
        self._write(text)
        self.emitted += 1

    async def shutdown(self):
        """Restore the terminal and dispose of the model. Idempotent."""
        if self.state.shutting_down:
            return
        was_busy = self.state.begin_shutdown()

        try:
            try:
                self.sink.write("\n")
            except SinkError as exc:
                log.warning("Could not write final newline: %s", exc)
            self.indicator.stop()
            self.guard.exit_blocked()
            self.sink.close()
        finally:
            if was_busy:
                # Let the server settle an interrupted request before release
                await asyncio.sleep(self.dispose_delay)
            try:
                await self.session.dispose()
            finally:
                self.state.terminate()
                log.info("Shutdown complete (%d tokens emitted)", self.emitted)
