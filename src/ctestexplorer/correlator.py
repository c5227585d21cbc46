"""
Run queue: the identities selected for one run and the correlation of
parsed output events back to them
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from .parsing import Failed, ParsedEvent, Passed, Skipped, Started
from .reporting import ResultSink
from .tree import TestNode, TestTree

logger = logging.getLogger(__name__)


class RunQueue:
    """
    Dense slot list of node indices plus an id -> slot map.

    Removal swaps the last slot into the vacated one so every outcome is
    recorded in O(1). Only identities without a terminal outcome stay queued.
    """

    def __init__(
        self,
        tree: TestTree,
        nodes: Iterable[TestNode],
        sink: ResultSink,
        on_complete: Optional[Callable[[], None]] = None,
    ):
        self.tree = tree
        self.sink = sink
        self.on_complete = on_complete
        self._slots: List[int] = []
        self._slot_by_id: Dict[str, int] = {}
        self._completed = False

        for node in nodes:
            if node.id in self._slot_by_id:
                logger.debug(f"Ignoring duplicate selection of {node.id}")
                continue
            self._slot_by_id[node.id] = len(self._slots)
            self._slots.append(node.index)

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, name: str) -> bool:
        return name in self._slot_by_id

    @property
    def completed(self) -> bool:
        return self._completed

    def first(self) -> Optional[TestNode]:
        if not self._slots:
            return None
        return self.tree[self._slots[0]]

    def remaining(self) -> List[TestNode]:
        return [self.tree[index] for index in self._slots]

    def submit(self, event: ParsedEvent) -> Optional[TestNode]:
        """
        Record an event's outcome against its queued identity.

        Returns the matched node, or None for start markers and names that
        are not queued (those may belong to another filter and are ignored).
        """
        if isinstance(event, Started):
            return None

        slot = self._slot_by_id.get(event.name)
        if slot is None:
            logger.debug(f"No queued test matches output name {event.name!r}")
            return None

        node = self.tree[self._slots[slot]]
        if isinstance(event, Passed):
            self.sink.passed(node, event.duration_ms)
        elif isinstance(event, Failed):
            self.sink.failed(node, event.message, event.duration_ms)
        elif isinstance(event, Skipped):
            self.sink.skipped(node)

        self._remove(slot)

        if not self._slots and not self._completed:
            self._completed = True
            if self.on_complete is not None:
                self.on_complete()

        return node

    def drain(self) -> List[TestNode]:
        """Remove and return everything still queued"""
        nodes = self.remaining()
        self._slots.clear()
        self._slot_by_id.clear()
        return nodes

    def _remove(self, slot: int) -> None:
        removed = self.tree[self._slots[slot]]
        last = self._slots.pop()
        del self._slot_by_id[removed.id]
        if slot < len(self._slots):
            self._slots[slot] = last
            self._slot_by_id[self.tree[last].id] = slot

    def __repr__(self):
        return f"RunQueue(queued={len(self._slots)}, completed={self._completed})"
