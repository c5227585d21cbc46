"""Follow a growing file and hand out complete lines as they appear."""

import codecs
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers.polling import PollingObserver

logger = logging.getLogger(__name__)


class FileTail(FileSystemEventHandler):
    """
    Tail ``path`` from its beginning using a polling watchdog observer.

    The parent directory is watched (polling works on any filesystem the
    debugger may write to) and events for other files are ignored. A
    partial trailing line is held until its newline arrives or ``stop``.
    """

    def __init__(
        self,
        path: Union[str, Path],
        on_line: Callable[[str], None],
        interval: float = 0.1,
        encoding: str = "utf-8",
    ):
        super().__init__()
        self.path = Path(path).absolute()
        self.on_line = on_line
        self.interval = interval
        self._offset = 0
        self._partial = ""
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._lock = threading.Lock()
        self._observer: Optional[PollingObserver] = None

    @property
    def watching(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        self._read_new()
        observer = PollingObserver(timeout=self.interval)
        observer.schedule(self, str(self.path.parent), recursive=False)
        observer.start()
        self._observer = observer
        logger.debug(f"Tailing {self.path}")

    def stop(self) -> None:
        """Stop watching, then deliver whatever is left including a partial line"""
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=max(1.0, self.interval * 10))

        self._read_new()
        with self._lock:
            rest, self._partial = self._partial + self._decoder.decode(b"", final=True), ""
        if rest:
            self.on_line(rest.rstrip("\r"))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if Path(os.fsdecode(event.src_path)) == self.path:
            self._read_new()

    on_created = on_modified

    def _read_new(self) -> None:
        with self._lock:
            try:
                size = self.path.stat().st_size
            except FileNotFoundError:
                return

            if size < self._offset:
                logger.debug(f"{self.path} was truncated, reading from the start")
                self._offset = 0
                self._partial = ""
                self._decoder.reset()
            if size == self._offset:
                return

            with open(self.path, "rb") as handle:
                handle.seek(self._offset)
                data = handle.read()
            self._offset += len(data)

            lines = (self._partial + self._decoder.decode(data)).split("\n")
            self._partial = lines.pop()
            for line in lines:
                self.on_line(line.rstrip("\r"))
