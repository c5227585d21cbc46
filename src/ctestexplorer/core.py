"""
Core functionality for ctest-explorer
Run a selection of discovered tests and stream their results
"""

import logging
import queue
import threading
import time
from typing import Callable, Iterable, List, Optional, Tuple

from .config import load_config
from .correlator import RunQueue
from .exceptions import CTestExplorerError, UnresolvableExecutableError
from .execution import (
    DebugAttachStrategy,
    Debugger,
    DirectStrategy,
    ExecutionSession,
    ExecutionStrategy,
    get_debugger,
    load_launch_configuration,
)
from .parsing import OutputParser, ParsedEvent
from .reporting import ConsoleReporter, ResultSink, SafeSink
from .tree import TestNode, TestTree

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a run"""

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register ``callback``; it runs at once if already cancelled"""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def _is_executable_root(node: TestNode) -> bool:
    return node.parent is None and bool(node.path)


def build_filter(tree: TestTree, selected: Iterable[TestNode]) -> Tuple[str, List[TestNode]]:
    """
    Turn selected identities into a gtest filter and the leaves to expect

    A whole executable becomes ``*``, a suite ``Suite.*`` and a single case
    its exact name; terms are joined with ``:``.
    """
    terms: List[str] = []
    queued: List[TestNode] = []

    for node in selected:
        if _is_executable_root(node):
            term = "*"
            queued.extend(tree.leaves(node) if node.children else [])
        elif node.children:
            term = f"{node.id}*"
            queued.extend(tree.leaves(node))
        else:
            term = node.id
            queued.append(node)

        if term not in terms:
            terms.append(term)

    if "*" in terms:
        return "*", queued
    return ":".join(terms), queued


class TestRun:
    """
    One run of one test executable

    Output and end notifications from the execution session are queued as
    messages and handled by a single worker thread in arrival order, so the
    parser and the run queue are never touched concurrently.
    """

    __test__ = False

    def __init__(
        self,
        tree: TestTree,
        nodes: Iterable[TestNode],
        sink: ResultSink,
        config: Optional[dict] = None,
    ):
        self.config = config or load_config()
        self.tree = tree
        self.sink = SafeSink(sink)
        self.queue = RunQueue(tree, nodes, self.sink, on_complete=self._finish)
        self.parser = OutputParser()
        self.session: Optional[ExecutionSession] = None
        self.executable: Optional[str] = None
        self.filter_arg: Optional[str] = None
        self.started_at: Optional[float] = None
        self._messages: "queue.Queue[Tuple[str, Optional[str]]]" = queue.Queue()
        self._finished = threading.Event()
        self._done = threading.Event()
        self._timeout_timer: Optional[threading.Timer] = None
        self._worker = threading.Thread(target=self._loop, name="test-run", daemon=True)

    @property
    def finished(self) -> bool:
        """Every queued test has received its outcome and the sink has ended"""
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the run has finished and its execution has stopped"""
        return self._done.wait(timeout)

    def start(
        self,
        strategy: ExecutionStrategy,
        executable: str,
        filter_arg: str,
        token: Optional[CancellationToken] = None,
    ) -> None:
        self.executable = executable
        self.filter_arg = filter_arg
        self.started_at = time.time()
        self.session = ExecutionSession(
            strategy,
            on_output=lambda text: self._messages.put(("output", text)),
            on_end=lambda: self._messages.put(("end", None)),
            kill_grace_seconds=self.config.get("kill_grace_seconds", 5),
        )

        self._worker.start()
        if token is not None:
            token.on_cancel(self.cancel)

        run_timeout = self.config.get("run_timeout") or 0
        if run_timeout > 0:
            self._timeout_timer = threading.Timer(run_timeout, self._timed_out)
            self._timeout_timer.daemon = True
            self._timeout_timer.start()

        # Last: some strategies deliver output before start() returns
        self.session.start(executable, [filter_arg])

    def cancel(self) -> None:
        if self.session is not None:
            self.session.force_stop()

    def abort(self) -> None:
        """End a run that never started an execution"""
        self._finish()
        self._done.set()

    def _timed_out(self) -> None:
        logger.warning(f"Run of {self.executable} exceeded {self.config['run_timeout']}s; stopping")
        self.cancel()

    def _loop(self) -> None:
        while True:
            kind, payload = self._messages.get()
            try:
                if kind == "output":
                    logger.debug(payload.rstrip("\n"))
                    self._dispatch(self.parser.feed(payload))
                elif kind == "end":
                    self._dispatch(self.parser.flush())
            except Exception as e:
                logger.exception(f"Error handling test output: {e}")
                self._finish()
                self.cancel()

            if kind == "end":
                break

        if self._timeout_timer is not None:
            self._timeout_timer.cancel()
        self._finish()
        self._done.set()

    def _dispatch(self, events: List[ParsedEvent]) -> None:
        if self._finished.is_set():
            return
        for event in events:
            self.queue.submit(event)

    def _finish(self) -> None:
        if self._finished.is_set():
            return
        for node in self.queue.drain():
            self.sink.not_run(node)
        self.sink.end()
        self._finished.set()
        if self.started_at is not None:
            logger.info(f"Run of {self.executable} finished in {time.time() - self.started_at:.2f}s")

    def __repr__(self):
        return (
            f"TestRun(executable={self.executable!r}, filter={self.filter_arg!r}, "
            f"queued={len(self.queue)}, finished={self.finished})"
        )


def make_strategy(
    debug: bool,
    config: Optional[dict] = None,
    debugger: Optional[Debugger] = None,
) -> ExecutionStrategy:
    """Pick the execution strategy for a run"""
    config = config or load_config()
    poll_interval = config.get("poll_interval", 0.1)
    if not debug:
        return DirectStrategy(poll_interval=poll_interval)

    if debugger is None:
        debugger = get_debugger(load_launch_configuration(config.get("workspace", ".")))
    return DebugAttachStrategy(debugger, poll_interval=poll_interval)


def run_tests(
    tree: TestTree,
    selected: Optional[Iterable[TestNode]] = None,
    sink: Optional[ResultSink] = None,
    debug: bool = False,
    token: Optional[CancellationToken] = None,
    config: Optional[dict] = None,
    debugger: Optional[Debugger] = None,
    strategy: Optional[ExecutionStrategy] = None,
) -> TestRun:
    """
    Start running ``selected`` tests (all executables when None)

    Returns immediately; results arrive through ``sink`` and every selected
    test receives exactly one outcome, ``not_run`` included.

    Example:
        run = run_tests(catalog.tree, catalog.find(["Math."]))
        run.wait()
    """
    config = config or load_config()
    sink = sink if sink is not None else ConsoleReporter()
    if selected is None:
        selected = tree.root_nodes()

    expression, nodes = build_filter(tree, list(selected))
    run = TestRun(tree, nodes, sink, config)

    first = run.queue.first()
    executable = tree.executable_for(first) if first is not None else None
    if executable is None:
        error = UnresolvableExecutableError(
            "No executable found for the selected tests" if first is None
            else f"No executable found for {first.id}"
        )
        logger.error(str(error))
        run.abort()
        return run

    if strategy is None:
        try:
            strategy = make_strategy(debug, config, debugger)
        except CTestExplorerError as e:
            logger.error(f"Cannot start {'debug ' if debug else ''}run of {executable}: {e}")
            run.abort()
            return run

    run.start(strategy, executable, f"{config['filter_flag']}{expression}", token)
    return run
