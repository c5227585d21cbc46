"""Execution session: the lifecycle shared by every execution strategy."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..exceptions import CTestExplorerError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class ExecutionStrategy(ABC):
    """
    How a test executable is started and stopped.

    A strategy forwards output through ``session.emit`` and reports the end
    of execution through ``session.stop``; it never fires callbacks itself.
    """

    name = "strategy"

    @abstractmethod
    def start(self, session: "ExecutionSession", executable: str, args: List[str]) -> None:
        """Launch ``executable``; raise CTestExplorerError if it cannot be started"""

    @abstractmethod
    def force_stop(self) -> None:
        """Request termination; completion is reported through ``session.stop``"""

    def release(self) -> None:
        """Free resources owned by the strategy. Called once, on stop."""


class ExecutionSession:
    """
    One execution of a test binary: IDLE -> RUNNING -> STOPPED

    ``stop`` is latched: however many times and from whichever thread it
    is triggered (process exit, debugger termination, forced stop), the
    strategy is released and ``on_end`` fires exactly once.
    """

    def __init__(
        self,
        strategy: ExecutionStrategy,
        on_output: Optional[Callable[[str], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        kill_grace_seconds: float = 5,
    ):
        self.strategy = strategy
        self.on_output = on_output
        self.on_end = on_end
        self.kill_grace_seconds = kill_grace_seconds
        self.state = SessionState.IDLE
        self.error: Optional[Exception] = None
        self._lock = threading.Lock()
        self._grace_timer: Optional[threading.Timer] = None
        self._ended = False

    @property
    def stopped(self) -> bool:
        return self.state is SessionState.STOPPED

    def start(self, executable: str, args: Sequence[str]) -> None:
        """Start the strategy; a launch failure ends the session instead of raising"""
        with self._lock:
            if self.state is not SessionState.IDLE:
                logger.debug(f"Not starting {executable}: session is {self.state.value}")
                return
            self.state = SessionState.RUNNING

        logger.info(f"Starting {executable} {' '.join(args)} ({self.strategy.name})")
        try:
            self.strategy.start(self, executable, list(args))
        except (CTestExplorerError, OSError) as e:
            self.error = e
            logger.error(f"Failed to start {executable}: {e}")
            self.stop()

    def emit(self, text: str) -> None:
        """Forward output; dropped once ``on_end`` has been delivered"""
        if self._ended:
            logger.debug(f"Dropping output after {self.strategy.name} session ended")
            return
        if text and self.on_output is not None:
            self.on_output(text)

    def force_stop(self) -> None:
        """Ask the strategy to terminate, with a timed fallback to ``stop``"""
        with self._lock:
            state = self.state
        if state is SessionState.STOPPED:
            return
        if state is SessionState.IDLE:
            self.stop()
            return

        logger.info(f"Forcing {self.strategy.name} execution to stop")
        try:
            self.strategy.force_stop()
        except Exception as e:
            logger.error(f"Error stopping {self.strategy.name} execution: {e}")

        with self._lock:
            if self.state is SessionState.STOPPED or self._grace_timer is not None:
                return
            timer = threading.Timer(self.kill_grace_seconds, self._grace_expired)
            timer.daemon = True
            self._grace_timer = timer
        timer.start()

    def _grace_expired(self) -> None:
        if self.stop():
            logger.warning(
                f"{self.strategy.name} execution did not report its end within "
                f"{self.kill_grace_seconds}s of being stopped"
            )

    def stop(self) -> bool:
        """Transition to STOPPED; returns False if already stopped"""
        with self._lock:
            if self.state is SessionState.STOPPED:
                return False
            self.state = SessionState.STOPPED
            timer, self._grace_timer = self._grace_timer, None

        if timer is not None:
            timer.cancel()

        try:
            self.strategy.release()
        except Exception as e:
            logger.error(f"Error releasing {self.strategy.name} execution: {e}")

        # Release may still deliver buffered output; nothing is forwarded after this
        self._ended = True
        if self.on_end is not None:
            self.on_end()
        return True

    def __repr__(self):
        return f"ExecutionSession(strategy={self.strategy.name}, state={self.state.value})"
