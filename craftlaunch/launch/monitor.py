"""
Process monitoring

OutputPump reads a process's stdout and stderr line by line and hands every
line to its subscribers. CrashClassifier is one of them: it flags a session
as crashed on known crash text and, once the process exited, on a non-zero
exit code if no text was found before.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from loguru import logger

from craftlaunch.launch.session import LaunchSession


CRASH_INDICATORS = ("Exception", "Error", "Crash")

STDOUT = "stdout"
STDERR = "stderr"


@dataclass(frozen=True)
class OutputLine:
    stream: str
    text: str


Subscriber = Callable[[OutputLine], None]


class OutputPump:
    """Line producer over the output streams of a process"""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber):
        self._subscribers.append(subscriber)

    def publish(self, line: OutputLine):
        for subscriber in self._subscribers:
            subscriber(line)

    async def pump(self, reader: Optional[asyncio.StreamReader], stream: str):
        if reader is None:
            return
        while True:
            raw = await reader.readline()
            if not raw:
                break
            self.publish(OutputLine(stream, raw.decode("utf-8", errors="replace").rstrip("\r\n")))

    async def run(self, process: asyncio.subprocess.Process):
        await asyncio.gather(
            self.pump(process.stdout, STDOUT),
            self.pump(process.stderr, STDERR),
        )


class CrashClassifier:
    """
    Crash detection for one session.

    Text found on stdout wins over the exit code: a matching line marks the
    session crashed and a later exit code never clears it.
    """

    def __init__(
        self, session: LaunchSession, indicators: Sequence[str] = CRASH_INDICATORS
    ):
        self.session = session
        self.indicators = tuple(indicators)

    def on_line(self, line: OutputLine):
        if line.stream != STDOUT or self.session.crashed:
            return
        if any(indicator in line.text for indicator in self.indicators):
            self.session.crashed = True
            self.session.crash_reason = line.text

    def on_exit(self, exit_code: int):
        if exit_code != 0 and not self.session.crashed:
            self.session.crashed = True
            self.session.crash_reason = f"Abnormal exit code: {exit_code}"


class SessionLog:
    """Keeps the output in the session buffer and forwards it to the logger"""

    def __init__(self, session: LaunchSession):
        self.session = session

    def on_line(self, line: OutputLine):
        if line.stream == STDERR:
            self.session.log_lines.append(f"[ERROR] {line.text}")
            logger.warning(f"[game {self.session.pid}] {line.text}")
        else:
            self.session.log_lines.append(line.text)
            logger.debug(f"[game {self.session.pid}] {line.text}")


async def watch(
    process: asyncio.subprocess.Process,
    session: LaunchSession,
    pump: OutputPump,
    classifier: CrashClassifier,
    on_exit: Optional[Callable[[LaunchSession], None]] = None,
):
    """Drain the output, wait for exit and classify it"""
    await pump.run(process)
    exit_code = await process.wait()

    session.exit_code = exit_code
    classifier.on_exit(exit_code)
    session.is_running = False

    if session.crashed:
        logger.error(
            f"[launch] game {session.pid} crashed (exit code {exit_code}): "
            f"{session.crash_reason}"
        )
    else:
        logger.info(f"[launch] game {session.pid} exited with code {exit_code}")
    if on_exit is not None:
        on_exit(session)
