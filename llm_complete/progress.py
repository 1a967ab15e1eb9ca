"""Flashing ellipsis on stderr while the model warms up.

Written to stderr so it works when stdout is redirected.  The cursor is
moved back after each frame so the first token overwrites the dots.
"""

import asyncio
import logging
import sys

from . import config

log = logging.getLogger(__name__)

_DOTS = "...\b\b\b"
_BLANK = "   \b\b\b"


class ProgressIndicator:
    def __init__(self, stream=None, interval: float = config.FLASH_INTERVAL,
                 enabled: bool | None = None):
        self._stream = stream or sys.stderr
        self._interval = interval
        self._enabled = self._stream.isatty() if enabled is None else enabled
        self._task: asyncio.Task | None = None
        self._flash_on = False

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self):
        if self.running or not self._enabled:
            return
        self._task = asyncio.get_running_loop().create_task(self._flash_loop())

    def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        if self._flash_on:
            self._write(_BLANK)
            self._flash_on = False

    async def _flash_loop(self):
        while True:
            await asyncio.sleep(self._interval)
            self._flash_on = not self._flash_on
            self._write(_DOTS if self._flash_on else _BLANK)

    def _write(self, frame: str):
        try:
            self._stream.write(frame)
            self._stream.flush()
        except (OSError, ValueError):
            log.debug("Progress indicator write failed", exc_info=True)
