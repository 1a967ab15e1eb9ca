"""llm-complete -- main entry point.

Completes a prompt with a local llama-server model and streams the result
to the terminal, a redirected stdout, or back into the input file.

    llm-complete -p "Once upon a time"
    llm-complete -f story.txt > continued.txt
    llm-complete -a story.txt
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from . import config
from .controller import GenerationController
from .errors import CompletionError, InputError
from .llama_server import LlamaServer
from .progress import ProgressIndicator
from .sinks import AppendFileSink, select_sink
from .terminal import Terminal

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.WARNING),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("llm-complete")

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, "%s: error: %s\n" % (self.prog, message))


def parse_args(argv=None) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog="llm-complete",
        description="Stream a text completion from a local model",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-p", "--prompt", default=None,
                       help="Prompt text to complete")
    group.add_argument("-f", "--file", default=None, metavar="PATH",
                       help="Read the prompt from a file")
    group.add_argument("-a", "--append", default=None, metavar="PATH",
                       help="Read the prompt from a file and append the completion to it")
    return parser.parse_args(argv)


def read_input(args: argparse.Namespace) -> str:
    """Return the input text. Fails before any model resources exist."""
    path = args.append or args.file
    if path is None:
        return args.prompt or ""
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise InputError("Error opening file: %s" % exc) from exc
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InputError("Error reading file: %s" % exc) from exc


def make_reader(text: str):
    """Wrap already-loaded input as the controller's async reader."""
    async def _read() -> str:
        return text
    return _read


def check_input(sink) -> None:
    """Open the append target so an unwritable file is caught up front."""
    if isinstance(sink, AppendFileSink):
        try:
            sink.open()
        except OSError as exc:
            raise InputError("Error opening file: %s" % exc) from exc


def install_handlers(loop, controller):
    """Send SIGINT/SIGTERM to cancel() and stray callback errors to abort().

    Returns a callable that removes both again.
    """
    def _handle_loop_exception(_loop, context):
        exc = context.get("exception")
        log.error("Unhandled error: %s", context.get("message"), exc_info=exc)
        controller.abort(str(exc or context.get("message")))

    loop.set_exception_handler(_handle_loop_exception)
    for sig in STOP_SIGNALS:
        loop.add_signal_handler(sig, controller.cancel)

    def remove():
        for sig in STOP_SIGNALS:
            loop.remove_signal_handler(sig)
        loop.set_exception_handler(None)
    return remove


async def main(argv=None) -> int:
    args = parse_args(argv)
    terminal = Terminal()
    sink = select_sink(terminal, append_path=args.append)

    try:
        text = read_input(args)
        check_input(sink)
    except InputError as exc:
        print(exc, file=sys.stderr)
        return 1

    session = LlamaServer()
    try:
        await session.start()
    except CompletionError as exc:
        sink.close()
        log.error("Model unavailable: %s", exc)
        return 1

    controller = GenerationController(
        session, sink, terminal, indicator=ProgressIndicator(),
    )

    loop = asyncio.get_running_loop()
    remove_handlers = install_handlers(loop, controller)
    terminal.attach(loop)
    try:
        await controller.run(make_reader(text))
    except Exception:
        log.exception("Unexpected error")
        await controller.shutdown()
    finally:
        terminal.detach()
        remove_handlers()
    return 0


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
