"""Incremental parser for gtest-style run output."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

RUN_MARKER = "[ RUN      ] "
OK_MARKER = "[       OK ] "
FAILED_MARKER = "[  FAILED  ] "
SKIPPED_MARKER = "[  SKIPPED ] "

# Any gtest status tag: "[ RUN      ]", "[----------]", "[==========]", ...
STATUS_TAG_RE = re.compile(r"^\[[ A-Z=\-]{10}\]")
ANSI_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")
PARAM_SUFFIX_RE = re.compile(r", where (?:GetParam\(\)|TypeParam) = .*$")
LAST_NUMBER_RE = re.compile(r"(\d+)(?!.*\d)")

DEFAULT_DURATION_MS = 5


@dataclass(frozen=True)
class Started:
    """A test printed its run-begin marker."""

    name: str


@dataclass(frozen=True)
class Passed:
    name: str
    duration_ms: int


@dataclass(frozen=True)
class Failed:
    """A test failed; ``message`` is the output it printed while running."""

    name: str
    duration_ms: int
    message: str


@dataclass(frozen=True)
class Skipped:
    name: str
    duration_ms: int


ParsedEvent = Union[Started, Passed, Failed, Skipped]


def strip_ansi(value: str) -> str:
    """Remove ANSI escape sequences."""

    return ANSI_RE.sub("", value)


def split_result_line(line: str, marker: str) -> Tuple[str, int]:
    """
    Split ``[  MARKER  ] Suite.Case (12 ms)`` into its name and duration.

    The name is everything between the marker and the last opening
    parenthesis. The duration is the last integer inside that trailing
    parenthesis, or ``DEFAULT_DURATION_MS`` when none is printed.
    """
    body = line[len(marker):]
    paren = body.rfind("(")
    if paren == -1:
        name, tail = body, ""
    else:
        name, tail = body[:paren], body[paren:]
    name = PARAM_SUFFIX_RE.sub("", name.strip()).strip()

    match = LAST_NUMBER_RE.search(tail)
    duration = int(match.group(1)) if match else DEFAULT_DURATION_MS
    return name, duration


class OutputParser:
    """
    Line scanner fed with arbitrary chunks of test binary output.

    Not thread-safe: one parser belongs to one run and is fed from that
    run's event loop only.

    A failure is held back until the next status tag (or ``flush``) so
    diagnostics printed right after the FAILED line still land in its
    message. The captured output is only reset by a RUN marker, so two
    failures without a RUN in between share diagnostics.
    """

    def __init__(self) -> None:
        self._partial = ""
        self._captured: List[str] = []
        self._pending: Optional[Tuple[str, int]] = None

    def feed(self, chunk: str) -> List[ParsedEvent]:
        """Consume a chunk and return the events completed by it"""
        if not chunk:
            return []

        lines = (self._partial + chunk).split("\n")
        self._partial = lines.pop()

        events: List[ParsedEvent] = []
        for line in lines:
            events.extend(self._handle_line(line))
        return events

    def flush(self) -> List[ParsedEvent]:
        """End of stream: process the partial line and any held failure"""
        events: List[ParsedEvent] = []
        if self._partial:
            line, self._partial = self._partial, ""
            events.extend(self._handle_line(line))
        events.extend(self._close_pending())
        return events

    @property
    def captured_output(self) -> str:
        return "\n".join(self._captured)

    def _close_pending(self) -> List[ParsedEvent]:
        if self._pending is None:
            return []
        name, duration = self._pending
        self._pending = None
        return [Failed(name=name, duration_ms=duration, message=self.captured_output)]

    def _handle_line(self, raw: str) -> List[ParsedEvent]:
        raw = strip_ansi(raw).rstrip("\r")
        line = raw.strip()
        events: List[ParsedEvent] = []

        if STATUS_TAG_RE.match(line):
            events.extend(self._close_pending())

        if line.startswith(RUN_MARKER):
            self._captured = []
            events.append(Started(name=line[len(RUN_MARKER):].strip()))
        elif line.startswith(OK_MARKER) and line.endswith(")"):
            name, duration = split_result_line(line, OK_MARKER)
            events.append(Passed(name=name, duration_ms=duration))
        elif line.startswith(FAILED_MARKER) and line.endswith(")"):
            self._pending = split_result_line(line, FAILED_MARKER)
        elif line.startswith(SKIPPED_MARKER) and line.endswith(")"):
            name, duration = split_result_line(line, SKIPPED_MARKER)
            events.append(Skipped(name=name, duration_ms=duration))
        else:
            self._captured.append(raw)

        return events
