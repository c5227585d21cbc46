#!/usr/bin/env python3
"""Command-line interface for ctest-explorer."""

import argparse
import json
import logging
import sys

from .catalog import Catalog
from .config import load_config, merged_config
from .core import CancellationToken, run_tests
from .reporting import ConsoleReporter
from .tree import TestNode, TestTree


def _print_node(tree: TestTree, node: TestNode, depth: int = 0) -> None:
    indent = "  " * depth
    if node.parent is None:
        location = f"  ({node.location})" if node.location else ""
        print(f"{node.id}  [{node.path}]{location}")
    elif node.is_leaf:
        print(f"{indent}{node.id}")
    else:
        print(f"{indent}{node.id}  ({len(node.children)} tests)")
    for child in tree.children_of(node):
        _print_node(tree, child, depth + 1)


def _load_catalog(config: dict) -> Catalog:
    catalog = Catalog(config["build_dir"], config)
    catalog.refresh()
    return catalog


def cmd_list(args):
    """List discovered tests"""
    config = merged_config({"build_dir": args.build_dir})
    tree = _load_catalog(config).tree

    if args.json:
        print(json.dumps(tree.to_dict(), indent=2))
        return 0

    if not tree.roots:
        print(f"No tests found in {config['build_dir']}")
        return 0

    for root in tree.root_nodes():
        _print_node(tree, root)
    return 0


def cmd_run(args):
    """Run tests and stream results"""
    config = merged_config({
        "build_dir": args.build_dir,
        "workspace": args.workspace,
        "run_timeout": args.timeout,
    })
    catalog = _load_catalog(config)

    selected = None
    if args.ids:
        selected = catalog.find(args.ids)
        missing = [test_id for test_id in args.ids if not catalog.find([test_id])]
        for test_id in missing:
            print(f"Unknown test: {test_id}")
        if not selected:
            return 1

    reporter = ConsoleReporter(show_output=not args.quiet)
    token = CancellationToken()
    run = run_tests(
        catalog.tree,
        selected,
        reporter,
        debug=args.debug,
        token=token,
        config=config,
    )

    try:
        while not run.wait(0.2):
            pass
    except KeyboardInterrupt:
        print("\nCancelling run...")
        token.cancel()
        run.wait()

    return 0 if reporter.succeeded else 1


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog="ctest-explorer",
        description="Discover and run gtest executables registered with CTest",
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    list_parser = subparsers.add_parser("list", help="List discovered tests")
    list_parser.add_argument("--build-dir", help="CMake build directory")
    list_parser.add_argument("--json", action="store_true", help="JSON output")
    list_parser.set_defaults(func=cmd_list)

    run_parser = subparsers.add_parser("run", help="Run tests")
    run_parser.add_argument("ids", nargs="*", help="Executable, suite (e.g. 'Math.') or case ids")
    run_parser.add_argument("--build-dir", help="CMake build directory")
    run_parser.add_argument("--debug", action="store_true", help="Run under the debugger")
    run_parser.add_argument("--workspace", help="Folder holding .vscode/launch.json")
    run_parser.add_argument("--timeout", type=int, help="Stop the run after this many seconds")
    run_parser.add_argument("--quiet", action="store_true", help="Hide output of failed tests")
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)

    # Setup logging
    if args.debug_log:
        logging.basicConfig(level=logging.DEBUG)
    else:
        config = load_config()
        level_name = config.get("log_level", "INFO")
        level = getattr(logging, str(level_name), None)

        if not isinstance(level, int):
            logging.basicConfig(level=logging.INFO)
            logging.warning(
                "Unknown log level '%s' in configuration. Falling back to INFO.",
                level_name,
            )
        else:
            logging.basicConfig(level=level)

    if hasattr(args, "func"):
        return args.func(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
