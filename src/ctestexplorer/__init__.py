"""
ctest-explorer: discover, run and stream results of gtest executables registered with CTest
"""

from .catalog import (
    Catalog,
    CTestEntry,
    build_catalog,
    list_test_cases,
    parse_test_listing,
    query_ctest,
)

from .config import load_config, reset_config

from .core import (
    CancellationToken,
    TestRun,
    build_filter,
    make_strategy,
    run_tests,
)

from .correlator import RunQueue

from .exceptions import (
    CTestExplorerError,
    CatalogUnavailableError,
    UnresolvableExecutableError,
    ProcessError,
    DebuggerError,
    ConfigError,
)

from .parsing import (
    OutputParser,
    ParsedEvent,
    Started,
    Passed,
    Failed,
    Skipped,
)

from .reporting import ConsoleReporter, Outcome, ResultSink

from .tree import TestNode, TestTree

__version__ = "0.1.0"
__all__ = [
    "Catalog",
    "CTestEntry",
    "build_catalog",
    "list_test_cases",
    "parse_test_listing",
    "query_ctest",
    "load_config",
    "reset_config",
    "CancellationToken",
    "TestRun",
    "build_filter",
    "make_strategy",
    "run_tests",
    "RunQueue",
    "CTestExplorerError",
    "CatalogUnavailableError",
    "UnresolvableExecutableError",
    "ProcessError",
    "DebuggerError",
    "ConfigError",
    "OutputParser",
    "ParsedEvent",
    "Started",
    "Passed",
    "Failed",
    "Skipped",
    "ConsoleReporter",
    "Outcome",
    "ResultSink",
    "TestNode",
    "TestTree",
]
