"""
Shared fixtures and configuration for ctestexplorer tests
"""

import json
import os
import sys
import tempfile
import shutil
import threading
import time
from pathlib import Path
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from ctestexplorer import TestTree, reset_config
from ctestexplorer.config import DEFAULTS


FAKE_GTEST = '''#!__PYTHON__
"""Stand-in for a gtest binary; behaviour per test comes from TESTS."""
import fnmatch
import json
import os
import signal
import sys
import time

TESTS = json.loads(__TESTS__)


def selected(expr):
    patterns = expr.split(":") if expr else ["*"]
    for suite, case, behaviour, ms in TESTS:
        if any(fnmatch.fnmatchcase(suite + case, p) for p in patterns):
            yield suite, case, behaviour, ms


def main(argv):
    if "--gtest_list_tests" in argv:
        print("Running main() from gtest_main.cc")
        last = None
        for suite, case, _, _ in TESTS:
            if suite != last:
                print(suite)
                last = suite
            print("  " + case)
        return 0

    expr = "*"
    for arg in argv:
        if arg.startswith("--gtest_filter="):
            expr = arg.split("=", 1)[1]

    tests = list(selected(expr))
    print("[==========] Running %d tests." % len(tests), flush=True)
    failed = []
    for suite, case, behaviour, ms in tests:
        name = suite + case
        print("[ RUN      ] " + name, flush=True)
        if behaviour == "crash":
            print("Segmentation fault", flush=True)
            os._exit(139)
        if behaviour == "hang":
            time.sleep(60)
        if behaviour == "stubborn":
            signal.signal(signal.SIGHUP, signal.SIG_IGN)
            print("ignoring hangup", flush=True)
            time.sleep(60)
        if behaviour == "fail_late":
            print("[  FAILED  ] %s (%d ms)" % (name, ms))
            print("assert x==y", flush=True)
            os._exit(1)
        if behaviour == "fail":
            print("test.cc:10: Failure")
            print("assert x==y")
            print("[  FAILED  ] %s (%d ms)" % (name, ms), flush=True)
            failed.append(name)
        elif behaviour == "skip":
            print("[  SKIPPED ] %s (%d ms)" % (name, ms), flush=True)
        else:
            print("[       OK ] %s (%d ms)" % (name, ms), flush=True)

    print("[==========] %d tests ran." % len(tests))
    if failed:
        print("[  FAILED  ] %d tests, listed below:" % len(failed))
        for name in failed:
            print("[  FAILED  ] " + name)
    sys.stdout.flush()
    return 1 if failed else 0


sys.exit(main(sys.argv[1:]))
'''

FAKE_CTEST = '''#!__PYTHON__
import sys

if "--show-only=json-v1" not in sys.argv:
    print("unexpected arguments", sys.argv, file=sys.stderr)
    sys.exit(2)

print(__PAYLOAD__)
sys.exit(__STATUS__)
'''

MATH_TESTS = [
    ["Math.", "Add", "pass", 1],
    ["Math.", "Sub", "fail", 2],
]


def _write_script(path: Path, content: str) -> str:
    path.write_text(content)
    path.chmod(0o755)
    return str(path)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the user's ~/.ctest-explorer"""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    # Cleanup
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def make_gtest(temp_dir):
    """Factory writing a fake gtest executable with the given tests"""

    def _make(tests=None, name="fake_gtest"):
        script = FAKE_GTEST.replace("__PYTHON__", sys.executable)
        script = script.replace("__TESTS__", repr(json.dumps(tests or MATH_TESTS)))
        return _write_script(temp_dir / name, script)

    return _make


@pytest.fixture
def make_ctest(temp_dir):
    """Factory writing a fake ctest that describes the given executables"""

    def _make(entries, status=0, raw=None, name="fake_ctest"):
        payload = raw if raw is not None else json.dumps({
            "kind": "ctestInfo",
            "version": {"major": 1, "minor": 0},
            "tests": [
                {"name": test_name, "command": command}
                for test_name, command in entries
            ],
        })
        script = FAKE_CTEST.replace("__PYTHON__", sys.executable)
        script = script.replace("__PAYLOAD__", repr(payload))
        script = script.replace("__STATUS__", str(status))
        return _write_script(temp_dir / name, script)

    return _make


@pytest.fixture
def test_config():
    """Configuration with short intervals for tests"""
    config = dict(DEFAULTS)
    config.update({
        "poll_interval": 0.05,
        "kill_grace_seconds": 3,
        "query_timeout": 10,
    })
    return config


@pytest.fixture
def math_tree():
    """Executable root 'math_tests' > suite 'Math.' > cases Add and Sub"""
    tree = TestTree()
    root = tree.add_node("math_tests", path="/nonexistent/math_tests")
    suite = tree.add_node("Math.", label="Math", parent=root.index)
    tree.add_node("Math.Add", label="Add", parent=suite.index)
    tree.add_node("Math.Sub", label="Sub", parent=suite.index)
    return tree


class RecordingSink:
    """Result sink that remembers every outcome it receives"""

    def __init__(self):
        self.results = {}
        self.order = []
        self.end_count = 0
        self.ended = threading.Event()
        self._lock = threading.Lock()

    def _record(self, node, outcome):
        with self._lock:
            self.results[node.id] = outcome
            self.order.append(node.id)

    def passed(self, node, duration_ms):
        self._record(node, ("passed", duration_ms))

    def failed(self, node, message, duration_ms):
        self._record(node, ("failed", duration_ms, message))

    def skipped(self, node):
        self._record(node, ("skipped",))

    def not_run(self, node):
        self._record(node, ("not_run",))

    def end(self):
        with self._lock:
            self.end_count += 1
        self.ended.set()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires"""

    def _wait(predicate, timeout=10.0, interval=0.02):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
