"""Run state machine for one completion invocation.

    idle -> busy -> (killed | completed) -> shutting_down -> terminated

``busy`` stays set from the start of generation until shutdown begins,
covering both the live stream and the paced tail.  ``killed`` is one-way.
"""

import logging
from enum import Enum

log = logging.getLogger(__name__)


class Phase(Enum):
    IDLE = "idle"
    BUSY = "busy"
    COMPLETED = "completed"
    KILLED = "killed"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class RunState:
    def __init__(self):
        self.phase = Phase.IDLE
        self.busy = False
        self.killed = False
        self.reason: str | None = None

    def __repr__(self):
        return "RunState(phase=%s, busy=%s, killed=%s)" % (
            self.phase.value, self.busy, self.killed,
        )

    @property
    def shutting_down(self) -> bool:
        return self.phase in (Phase.SHUTTING_DOWN, Phase.TERMINATED)

    def _move(self, allowed: tuple, target: Phase):
        if self.phase not in allowed:
            raise RuntimeError(
                "invalid transition %s -> %s" % (self.phase.value, target.value)
            )
        log.debug("Run state %s -> %s", self.phase.value, target.value)
        self.phase = target

    def start(self):
        self._move((Phase.IDLE,), Phase.BUSY)
        self.busy = True

    def complete(self):
        self._move((Phase.BUSY,), Phase.COMPLETED)

    def kill(self, reason: str) -> bool:
        """Mark the run killed. Returns False if it was already killed or shutting down."""
        if self.killed or self.shutting_down:
            return False
        self.killed = True
        self.reason = reason
        self.phase = Phase.KILLED
        log.debug("Run killed: %s", reason)
        return True

    def begin_shutdown(self) -> bool:
        """Enter shutting_down. Returns whether the run was busy."""
        was_busy = self.busy
        self._move(
            (Phase.IDLE, Phase.BUSY, Phase.COMPLETED, Phase.KILLED),
            Phase.SHUTTING_DOWN,
        )
        self.busy = False
        return was_busy

    def terminate(self):
        self._move((Phase.SHUTTING_DOWN,), Phase.TERMINATED)
