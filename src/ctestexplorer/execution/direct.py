"""Run the test executable directly and stream its piped output."""

import logging
import threading
import time
from typing import Dict, List, Optional

import pexpect
from pexpect.popen_spawn import PopenSpawn

from .process import kill_process_tree, spawn, terminate
from .session import ExecutionSession, ExecutionStrategy

logger = logging.getLogger(__name__)


class DirectStrategy(ExecutionStrategy):
    """Spawn with pipes; a reader thread pumps output until EOF"""

    name = "direct"

    def __init__(
        self,
        poll_interval: float = 0.1,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.poll_interval = poll_interval
        self.cwd = cwd
        self.env = env
        self.child: Optional[PopenSpawn] = None
        self._session: Optional[ExecutionSession] = None
        self._reader: Optional[threading.Thread] = None

    @property
    def pid(self) -> Optional[int]:
        return self.child.pid if self.child is not None else None

    def start(self, session: ExecutionSession, executable: str, args: List[str]) -> None:
        self._session = session
        self.child = spawn([executable] + args, timeout=None, cwd=self.cwd, env=self.env)
        self._reader = threading.Thread(
            target=self._pump,
            name=f"direct-output-{self.child.pid}",
            daemon=True,
        )
        self._reader.start()

    def _pump(self) -> None:
        child = self.child
        try:
            while True:
                try:
                    chunk = child.read_nonblocking(size=4096, timeout=self.poll_interval)
                except pexpect.TIMEOUT:
                    continue
                except pexpect.EOF:
                    break

                if chunk:
                    self._session.emit(chunk)
                else:
                    time.sleep(self.poll_interval)

            child.wait()
            if child.signalstatus:
                logger.info(f"Test process {child.pid} ended by signal {child.signalstatus}")
            else:
                logger.debug(f"Test process {child.pid} exited with status {child.exitstatus}")
        except Exception as e:
            logger.error(f"Error reading output of process {child.pid}: {e}")
        finally:
            self._session.stop()

    def force_stop(self) -> None:
        if self.child is None:
            return
        terminate(self.child.pid)

    def release(self) -> None:
        """Kill the process tree if the binary outlived its session"""
        if self.child is None or self.child.proc.poll() is not None:
            return
        logger.warning(f"Test process {self.child.pid} still running at session end; killing it")
        kill_process_tree(self.child.pid)
