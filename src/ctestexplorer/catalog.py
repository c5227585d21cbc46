"""
Test discovery: ask CTest for the test executables in a build tree and
ask each executable for the gtest cases it contains
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import fastjsonschema

from .config import load_config
from .exceptions import CatalogUnavailableError, ProcessError
from .execution.process import capture_output
from .parsing import strip_ansi
from .tree import TestNode, TestTree

logger = logging.getLogger(__name__)

_CTEST_SCHEMA = {
    "type": "object",
    "required": ["tests"],
    "properties": {
        "kind": {"type": "string"},
        "tests": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "command": {
                        "type": "array",
                        "items": {"type": "string"},
                    },
                    "backtrace": {"type": "integer"},
                    "properties": {"type": "array"},
                },
            },
        },
        "backtraceGraph": {
            "type": "object",
            "properties": {
                "files": {"type": "array", "items": {"type": "string"}},
                "nodes": {"type": "array", "items": {"type": "object"}},
            },
        },
    },
}

_VALIDATE_CTEST = fastjsonschema.compile(_CTEST_SCHEMA)

# Trailing annotation on parameterised/typed tests: "  Case/0  # GetParam() = 3"
_ANNOTATION_RE = re.compile(r"\s+#.*$")


@dataclass
class CTestEntry:
    """One test as declared to CTest."""

    name: str
    command: List[str] = field(default_factory=list)
    source_location: Optional[str] = None

    __test__ = False

    @property
    def executable(self) -> Optional[str]:
        return self.command[0] if self.command else None


def _source_location(test: dict, graph: dict) -> Optional[str]:
    for prop in test.get("properties", []):
        if isinstance(prop, dict) and prop.get("name") == "DEF_SOURCE_LINE":
            return str(prop.get("value"))

    index = test.get("backtrace")
    if index is None:
        return None
    try:
        node = graph["nodes"][index]
        path = graph["files"][node["file"]]
    except (KeyError, IndexError, TypeError):
        return None
    line = node.get("line")
    return f"{path}:{line}" if line else path


def parse_ctest_json(text: str) -> List[CTestEntry]:
    """Decode ``ctest --show-only=json-v1`` output"""
    try:
        payload = json.loads(text)
        _VALIDATE_CTEST(payload)
    except (ValueError, fastjsonschema.JsonSchemaException) as e:
        raise CatalogUnavailableError(f"Unexpected ctest output: {e}") from e

    graph = payload.get("backtraceGraph", {})
    return [
        CTestEntry(
            name=test["name"],
            command=list(test.get("command", [])),
            source_location=_source_location(test, graph),
        )
        for test in payload["tests"]
    ]


def query_ctest(build_dir: str, ctest_command: str = "ctest", timeout: float = 30) -> List[CTestEntry]:
    """List the tests CTest knows about in ``build_dir``"""
    argv = [ctest_command, "--show-only=json-v1", "--test-dir", str(build_dir)]
    try:
        output, status = capture_output(argv, timeout=timeout)
    except ProcessError as e:
        raise CatalogUnavailableError(str(e)) from e

    if status not in (None, 0):
        raise CatalogUnavailableError(f"{ctest_command} exited with status {status}")

    # ctest may print warnings before the document
    start = output.find("{")
    if start == -1:
        raise CatalogUnavailableError(f"{ctest_command} printed no test list")
    return parse_ctest_json(output[start:])


def list_test_cases(executable: str, list_flag: str = "--gtest_list_tests", timeout: float = 30) -> str:
    """Return the raw case listing printed by a test executable"""
    output, status = capture_output([executable, list_flag], timeout=timeout)
    if status not in (None, 0):
        logger.warning(f"{executable} {list_flag} exited with status {status}")
    return output


def parse_test_listing(text: str) -> List[Tuple[str, List[str]]]:
    """
    Parse a two-level listing into ``[(suite, [case, ...]), ...]``

    Unindented lines open a suite, indented lines are cases of the latest
    suite; blank lines are skipped. ``suite + case`` is exactly the name
    the binary prints when it runs the case ("Math." + "Add" -> "Math.Add").
    Suites without cases, such as banner lines, are dropped.
    """
    suites: List[Tuple[str, List[str]]] = []
    current: Optional[Tuple[str, List[str]]] = None

    for raw in text.splitlines():
        line = strip_ansi(raw).rstrip("\r")
        if not line.strip():
            continue

        text_only = _ANNOTATION_RE.sub("", line).strip()
        if line[0].isspace():
            if current is not None:
                current[1].append(text_only)
        else:
            current = (text_only, [])
            suites.append(current)

    return [(suite, cases) for suite, cases in suites if cases]


def build_catalog(build_dir: str, config: Optional[dict] = None) -> TestTree:
    """
    Build a fresh tree: one root per executable, suites below, cases as leaves

    A build tree CTest cannot describe yields an empty catalog.
    """
    config = config or load_config()
    tree = TestTree()

    try:
        entries = query_ctest(
            build_dir,
            ctest_command=config["ctest_command"],
            timeout=config["query_timeout"],
        )
    except CatalogUnavailableError as e:
        logger.warning(f"Test catalog unavailable for {build_dir}: {e}")
        return tree

    if not entries:
        logger.warning(f"No tests registered with CTest in {build_dir}")
        return tree

    seen = set()
    for entry in entries:
        executable = entry.executable
        if executable is None:
            logger.debug(f"Skipping CTest entry {entry.name} without a command")
            continue
        if executable in seen:
            continue
        seen.add(executable)

        root = tree.add_node(entry.name, path=executable, location=entry.source_location)
        try:
            listing = list_test_cases(
                executable,
                list_flag=config["list_flag"],
                timeout=config["query_timeout"],
            )
        except ProcessError as e:
            logger.warning(f"Could not list tests of {executable}: {e}")
            continue

        for suite, cases in parse_test_listing(listing):
            suite_node = tree.add_node(suite, label=suite.rstrip("."), parent=root.index)
            for case in cases:
                tree.add_node(suite + case, label=case, parent=suite_node.index)

    logger.info(f"Discovered {len(tree.roots)} test executables in {build_dir}")
    return tree


class Catalog:
    """
    Holder for the current test tree

    ``refresh`` builds a new tree and swaps it in whole; readers holding
    the old tree keep a consistent snapshot.
    """

    def __init__(self, build_dir: str, config: Optional[dict] = None):
        self.build_dir = build_dir
        self.config = config
        self._tree = TestTree()

    @property
    def tree(self) -> TestTree:
        return self._tree

    def refresh(self) -> TestTree:
        tree = build_catalog(self.build_dir, self.config)
        self._tree = tree
        return tree

    def find(self, ids: Iterable[str]) -> List[TestNode]:
        return self._tree.find(ids)

    def __repr__(self):
        return f"Catalog(build_dir={self.build_dir!r}, tree={self._tree!r})"
