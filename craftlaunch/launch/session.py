"""
Launch sessions

A LaunchSession is created when the game process is spawned and updated by
the output pump and the exit watcher. Sessions are kept in a registry keyed
by process id for the lifetime of the launcher.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from craftlaunch.models.entities import utcnow


@dataclass
class LaunchSession:
    """A spawned game process"""

    pid: int
    profile_id: str
    process: Optional[asyncio.subprocess.Process] = field(default=None, repr=False)
    start_time: datetime = field(default_factory=utcnow)
    is_running: bool = True
    exit_code: Optional[int] = None
    crashed: bool = False
    crash_reason: Optional[str] = None
    log_lines: List[str] = field(default_factory=list, repr=False)
    watcher: Optional[asyncio.Task] = field(default=None, repr=False)

    async def wait(self) -> Optional[int]:
        """Wait until the process exited and its output was drained"""
        if self.watcher is not None:
            await asyncio.shield(self.watcher)
        return self.exit_code


class SessionRegistry:
    """Sessions by process id"""

    def __init__(self):
        self._sessions: Dict[int, LaunchSession] = {}

    def add(self, session: LaunchSession):
        self._sessions[session.pid] = session

    def get(self, pid: int) -> Optional[LaunchSession]:
        return self._sessions.get(pid)

    def running(self) -> List[LaunchSession]:
        return [s for s in self._sessions.values() if s.is_running]

    def all(self) -> List[LaunchSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
