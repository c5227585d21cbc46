"""Arena-backed test tree shared by the catalog, the run queue and the sinks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional


@dataclass
class TestNode:
    """One identity in the tree: an executable root, a suite or a single case."""

    index: int
    id: str
    label: str
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    path: Optional[str] = None
    location: Optional[str] = None

    # Keep pytest from collecting this as a test class
    __test__ = False

    @property
    def is_leaf(self) -> bool:
        return not self.children


class TestTree:
    """
    Owns every node; parent/child links are indices into ``nodes``.

    Roots are kept in discovery order, one per test executable.
    """

    __test__ = False

    def __init__(self) -> None:
        self.nodes: List[TestNode] = []
        self.roots: List[int] = []

    def add_node(
        self,
        node_id: str,
        label: Optional[str] = None,
        parent: Optional[int] = None,
        path: Optional[str] = None,
        location: Optional[str] = None,
    ) -> TestNode:
        """Create a node and attach it under ``parent`` (or as a root)"""
        node = TestNode(
            index=len(self.nodes),
            id=node_id,
            label=label if label is not None else node_id,
            parent=parent,
            path=path,
            location=location,
        )
        self.nodes.append(node)
        if parent is None:
            self.roots.append(node.index)
        else:
            self.nodes[parent].children.append(node.index)
        return node

    def __getitem__(self, index: int) -> TestNode:
        return self.nodes[index]

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[TestNode]:
        return iter(self.nodes)

    def root_nodes(self) -> List[TestNode]:
        return [self.nodes[i] for i in self.roots]

    def children_of(self, node: TestNode) -> List[TestNode]:
        return [self.nodes[i] for i in node.children]

    def leaves(self, node: TestNode) -> List[TestNode]:
        """Return every leaf beneath ``node`` in depth-first order"""
        if node.is_leaf:
            return [node]
        found: List[TestNode] = []
        stack = list(reversed(node.children))
        while stack:
            current = self.nodes[stack.pop()]
            if current.is_leaf:
                found.append(current)
            else:
                stack.extend(reversed(current.children))
        return found

    def ancestors(self, node: TestNode) -> Iterator[TestNode]:
        """Yield ``node`` and then each parent up to its root"""
        current: Optional[TestNode] = node
        while current is not None:
            yield current
            current = self.nodes[current.parent] if current.parent is not None else None

    def executable_for(self, node: TestNode) -> Optional[str]:
        """Walk up from ``node`` until an ancestor carries a path"""
        for candidate in self.ancestors(node):
            if candidate.path:
                return candidate.path
        return None

    def find(self, ids: Iterable[str]) -> List[TestNode]:
        """
        Look nodes up by id, preserving the order of ``ids``

        A root named after one of the cases it holds (CTest entries made by
        ``gtest_discover_tests``) yields to that case; the root stays
        reachable through ``root_nodes``.
        """
        by_id: Dict[str, List[TestNode]] = {}
        for node in self.nodes:
            by_id.setdefault(node.id, []).append(node)
        matches: List[TestNode] = []
        for wanted in ids:
            found = by_id.get(wanted, [])
            inner = [node for node in found if node.parent is not None]
            matches.extend(inner or found)
        return matches

    def to_dict(self) -> List[dict]:
        """Nested dict form of the tree, used for ``list --json``"""

        def _encode(node: TestNode) -> dict:
            entry = {"id": node.id, "label": node.label}
            if node.path:
                entry["path"] = node.path
            if node.location:
                entry["location"] = node.location
            if node.children:
                entry["children"] = [_encode(child) for child in self.children_of(node)]
            return entry

        return [_encode(root) for root in self.root_nodes()]

    def __repr__(self) -> str:
        return f"TestTree(roots={len(self.roots)}, nodes={len(self.nodes)})"
