"""Run the test executable under a debugger and tail its redirected output."""

import logging
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from .debuggers import DebugHandle, Debugger
from .session import ExecutionSession, ExecutionStrategy
from .tail import FileTail

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "debug-output-"
OUTPUT_SUFFIX = ".txt"


def default_output_dir() -> Path:
    return Path(tempfile.gettempdir()) / "ctest-explorer"


def allocate_output_file(directory: Optional[Union[str, Path]] = None) -> Path:
    """
    Create an empty, uniquely named output file

    Candidate names are probed in order; exclusive creation means a file
    left behind by an earlier run (or claimed concurrently) is skipped.
    """
    directory = Path(directory) if directory else default_output_dir()
    directory.mkdir(parents=True, exist_ok=True, mode=0o700)

    index = 0
    while True:
        candidate = directory / f"{OUTPUT_PREFIX}{index}{OUTPUT_SUFFIX}"
        try:
            with open(candidate, "x", encoding="utf-8"):
                pass
            return candidate
        except FileExistsError:
            index += 1


class DebugAttachStrategy(ExecutionStrategy):
    """
    Launch under ``debugger`` with output redirected into a temporary file

    The file is tailed from its beginning; it is created before the
    debugger starts and deleted when the session stops.
    """

    name = "debug"

    def __init__(
        self,
        debugger: Debugger,
        poll_interval: float = 0.1,
        output_dir: Optional[Union[str, Path]] = None,
    ):
        self.debugger = debugger
        self.poll_interval = poll_interval
        self.output_dir = output_dir
        self.output_path: Optional[Path] = None
        self.handle: Optional[DebugHandle] = None
        self._tail: Optional[FileTail] = None
        self._session: Optional[ExecutionSession] = None

    def start(self, session: ExecutionSession, executable: str, args: List[str]) -> None:
        self._session = session
        self.output_path = allocate_output_file(self.output_dir)
        logger.debug(f"Redirecting debug output to {self.output_path}")

        # Tail before launching so a debugger that ends immediately still
        # finds the tail in place when the session is released
        self._tail = FileTail(
            self.output_path,
            lambda line: session.emit(line + "\n"),
            interval=self.poll_interval,
        )
        self._tail.start()

        self.handle = self.debugger.launch(
            executable,
            args,
            str(self.output_path),
            on_terminated=session.stop,
        )

    def force_stop(self) -> None:
        if self.handle is not None:
            self.debugger.stop(self.handle)

    def release(self) -> None:
        tail, self._tail = self._tail, None
        if tail is not None:
            tail.stop()

        path, self.output_path = self.output_path, None
        if path is not None:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            logger.debug(f"Removed debug output file {path}")
