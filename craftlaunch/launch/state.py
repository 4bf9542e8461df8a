"""
Launch state machine

One launch attempt moves forward through
Idle -> Preparing -> Downloading -> Installing -> Launching -> Running and
ends in Idle (the game exited) or Error (the attempt failed before Running).
"""

from enum import Enum
from typing import Callable, List, Optional

from loguru import logger


class LaunchState(Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    LAUNCHING = "launching"
    RUNNING = "running"
    ERROR = "error"


_ORDER = [
    LaunchState.IDLE,
    LaunchState.PREPARING,
    LaunchState.DOWNLOADING,
    LaunchState.INSTALLING,
    LaunchState.LAUNCHING,
    LaunchState.RUNNING,
]


class InvalidTransition(RuntimeError):
    pass


class LaunchStateMachine:
    """Forward only state of one launch attempt"""

    def __init__(self, on_change: Optional[Callable[[LaunchState], None]] = None):
        self.state = LaunchState.IDLE
        self.error: Optional[str] = None
        self.history: List[LaunchState] = [LaunchState.IDLE]
        self._started = False
        self._on_change = on_change

    @property
    def finished(self) -> bool:
        return self._started and self.state in (LaunchState.IDLE, LaunchState.ERROR)

    def advance(self, state: LaunchState):
        """Move to a later stage; stages may be skipped but never revisited"""
        if self.finished:
            raise InvalidTransition(f"attempt already ended in {self.state.value}")
        if state in (LaunchState.IDLE, LaunchState.ERROR):
            raise InvalidTransition(f"use finish() or fail() to enter {state.value}")
        if _ORDER.index(state) <= _ORDER.index(self.state):
            raise InvalidTransition(f"{self.state.value} -> {state.value}")
        self._started = True
        self._set(state)

    def finish(self):
        """The game process exited"""
        if self.state is not LaunchState.RUNNING:
            raise InvalidTransition(f"{self.state.value} -> idle")
        self._set(LaunchState.IDLE)

    def fail(self, message: str):
        """The attempt failed before the game was running"""
        if self.finished or self.state is LaunchState.RUNNING:
            raise InvalidTransition(f"{self.state.value} -> error")
        self._started = True
        self.error = message
        self._set(LaunchState.ERROR)

    def _set(self, state: LaunchState):
        self.state = state
        self.history.append(state)
        logger.debug(f"[launch] state {state.value}")
        if self._on_change is not None:
            self._on_change(state)
