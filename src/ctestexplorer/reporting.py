"""Result sinks: where per-test outcomes of a run are delivered."""

from __future__ import annotations

import logging
import sys
import threading
from enum import Enum
from typing import Dict, List, Optional, Protocol, TextIO, Tuple

from .tree import TestNode

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """Terminal outcome of one test in a run."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_RUN = "not_run"


class ResultSink(Protocol):
    """What the host UI exposes for one run."""

    def passed(self, node: TestNode, duration_ms: int) -> None:
        ...

    def failed(self, node: TestNode, message: str, duration_ms: int) -> None:
        ...

    def skipped(self, node: TestNode) -> None:
        ...

    def not_run(self, node: TestNode) -> None:
        ...

    def end(self) -> None:
        ...


class SafeSink:
    """Forward to another sink, logging instead of raising on its errors"""

    def __init__(self, sink: ResultSink):
        self.sink = sink

    def _call(self, name: str, *args) -> None:
        try:
            getattr(self.sink, name)(*args)
        except Exception as e:
            logger.error(f"Result sink {name}() failed: {e}")

    def passed(self, node: TestNode, duration_ms: int) -> None:
        self._call("passed", node, duration_ms)

    def failed(self, node: TestNode, message: str, duration_ms: int) -> None:
        self._call("failed", node, message, duration_ms)

    def skipped(self, node: TestNode) -> None:
        self._call("skipped", node)

    def not_run(self, node: TestNode) -> None:
        self._call("not_run", node)

    def end(self) -> None:
        self._call("end")


class ConsoleReporter:
    """
    Print outcomes as they arrive and keep a tally for the summary

    Thread-safe: results arrive on a run's worker thread while the CLI
    waits on the main thread.
    """

    SYMBOLS = {
        Outcome.PASSED: "✓",
        Outcome.FAILED: "✗",
        Outcome.SKIPPED: "-",
        Outcome.NOT_RUN: "?",
    }

    def __init__(self, stream: Optional[TextIO] = None, show_output: bool = True):
        self.stream = stream or sys.stdout
        self.show_output = show_output
        self.results: List[Tuple[str, Outcome, Optional[int]]] = []
        self.ended = False
        self._lock = threading.Lock()

    def _emit(self, node: TestNode, outcome: Outcome, duration_ms: Optional[int] = None) -> None:
        with self._lock:
            self.results.append((node.id, outcome, duration_ms))
            timing = f" ({duration_ms} ms)" if duration_ms is not None else ""
            label = "not run" if outcome is Outcome.NOT_RUN else ""
            suffix = f" [{label}]" if label else ""
            print(f"{self.SYMBOLS[outcome]} {node.id}{timing}{suffix}", file=self.stream)

    def passed(self, node: TestNode, duration_ms: int) -> None:
        self._emit(node, Outcome.PASSED, duration_ms)

    def failed(self, node: TestNode, message: str, duration_ms: int) -> None:
        self._emit(node, Outcome.FAILED, duration_ms)
        if self.show_output and message:
            for line in message.splitlines():
                print(f"    {line}", file=self.stream)

    def skipped(self, node: TestNode) -> None:
        self._emit(node, Outcome.SKIPPED)

    def not_run(self, node: TestNode) -> None:
        self._emit(node, Outcome.NOT_RUN)

    def end(self) -> None:
        with self._lock:
            self.ended = True
            counts = self.counts()
            total = sum(counts.values())
            print(
                f"\n{counts[Outcome.PASSED]}/{total} passed, "
                f"{counts[Outcome.FAILED]} failed, "
                f"{counts[Outcome.SKIPPED]} skipped, "
                f"{counts[Outcome.NOT_RUN]} not run",
                file=self.stream,
            )

    def counts(self) -> Dict[Outcome, int]:
        tally = {outcome: 0 for outcome in Outcome}
        for _, outcome, _ in self.results:
            tally[outcome] += 1
        return tally

    @property
    def succeeded(self) -> bool:
        counts = self.counts()
        return counts[Outcome.FAILED] == 0 and counts[Outcome.NOT_RUN] == 0
