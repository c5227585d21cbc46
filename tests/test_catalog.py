"""
Tests for test discovery through ctest and gtest listings
"""

import json

import pytest

from ctestexplorer import catalog as catalog_module
from ctestexplorer.catalog import (
    Catalog,
    CTestEntry,
    build_catalog,
    list_test_cases,
    parse_ctest_json,
    parse_test_listing,
    query_ctest,
)
from ctestexplorer.core import build_filter
from ctestexplorer.exceptions import CatalogUnavailableError
from ctestexplorer.execution.process import capture_output


LISTING = """Running main() from gtest_main.cc
Math.
  Add
  Sub
Strings.
  Concat

Inst/Param.
  Case/0  # GetParam() = 1
  Case/1  # GetParam() = 2
Empty.
"""


class TestParseListing:
    """Test parsing of --gtest_list_tests output"""

    def test_suites_and_cases(self):
        assert parse_test_listing(LISTING) == [
            ("Math.", ["Add", "Sub"]),
            ("Strings.", ["Concat"]),
            ("Inst/Param.", ["Case/0", "Case/1"]),
        ]

    def test_case_id_matches_run_name(self, make_gtest):
        """suite + case is what the binary prints when it runs the case"""
        exe = make_gtest([["Math.", "Add", "pass", 1]])
        suites = parse_test_listing(list_test_cases(exe))
        assert suites == [("Math.", ["Add"])]

        suite, cases = suites[0]
        output, _ = capture_output([exe, "--gtest_filter=" + suite + cases[0]])
        assert "[       OK ] Math.Add (1 ms)" in output

    def test_empty_listing(self):
        assert parse_test_listing("") == []

    def test_blank_line_keeps_current_suite(self):
        """An indented line after a blank line still belongs to the latest suite"""
        assert parse_test_listing("Math.\n  Add\n\n  Sub\n") == [("Math.", ["Add", "Sub"])]

    def test_case_before_any_suite_is_dropped(self):
        assert parse_test_listing("  Orphan\nS.\n  Case\n") == [("S.", ["Case"])]


class TestCTestJson:
    """Test decoding of ctest --show-only=json-v1"""

    def test_entries(self):
        payload = {
            "kind": "ctestInfo",
            "backtraceGraph": {
                "files": ["/src/CMakeLists.txt"],
                "nodes": [{"file": 0, "line": 12}],
            },
            "tests": [
                {"name": "math_tests", "command": ["/b/math_tests"], "backtrace": 0},
                {"name": "no_command"},
            ],
        }
        entries = parse_ctest_json(json.dumps(payload))
        assert entries == [
            CTestEntry("math_tests", ["/b/math_tests"], "/src/CMakeLists.txt:12"),
            CTestEntry("no_command", [], None),
        ]
        assert entries[0].executable == "/b/math_tests"
        assert entries[1].executable is None

    def test_def_source_line_property(self):
        payload = {"tests": [{
            "name": "t",
            "command": ["/b/t"],
            "properties": [{"name": "DEF_SOURCE_LINE", "value": "/src/t.cc:3"}],
        }]}
        assert parse_ctest_json(json.dumps(payload))[0].source_location == "/src/t.cc:3"

    @pytest.mark.parametrize("text", ["not json", '{"kind": "ctestInfo"}', '{"tests": [{"command": []}]}'])
    def test_malformed(self, text):
        with pytest.raises(CatalogUnavailableError):
            parse_ctest_json(text)

    def test_query_ctest_skips_leading_noise(self, make_ctest):
        ctest = make_ctest([], raw='CMake Warning: something\n{"tests": [{"name": "a", "command": ["/b/a"]}]}')
        entries = query_ctest("build", ctest_command=ctest, timeout=10)
        assert [e.name for e in entries] == ["a"]

    def test_query_ctest_failure(self, make_ctest):
        ctest = make_ctest([], status=1)
        with pytest.raises(CatalogUnavailableError):
            query_ctest("build", ctest_command=ctest, timeout=10)

    def test_missing_ctest(self, temp_dir):
        with pytest.raises(CatalogUnavailableError):
            query_ctest("build", ctest_command=str(temp_dir / "no-such-ctest"), timeout=10)


class TestBuildCatalog:
    """Test building the tree from ctest and the executables"""

    def test_tree_shape(self, make_gtest, make_ctest, test_config):
        exe = make_gtest([
            ["Math.", "Add", "pass", 1],
            ["Math.", "Sub", "fail", 2],
            ["Strings.", "Concat", "pass", 1],
        ])
        test_config["ctest_command"] = make_ctest([("math_tests", [exe])])

        tree = build_catalog("build", test_config)

        roots = tree.root_nodes()
        assert [r.id for r in roots] == ["math_tests"]
        assert roots[0].path == exe

        suites = tree.children_of(roots[0])
        assert [(s.id, s.label) for s in suites] == [("Math.", "Math"), ("Strings.", "Strings")]
        cases = tree.children_of(suites[0])
        assert [(c.id, c.label) for c in cases] == [("Math.Add", "Add"), ("Math.Sub", "Sub")]
        assert all(c.path is None for c in cases)
        assert tree.executable_for(cases[0]) == exe

    def test_executables_deduplicated(self, make_gtest, make_ctest, test_config):
        """Several ctest entries for one binary become one root"""
        exe = make_gtest()
        test_config["ctest_command"] = make_ctest([
            ("math_tests", [exe, "--gtest_filter=Math.Add"]),
            ("math_tests_sub", [exe, "--gtest_filter=Math.Sub"]),
        ])

        tree = build_catalog("build", test_config)
        assert [r.id for r in tree.root_nodes()] == ["math_tests"]
        assert len(tree.leaves(tree.root_nodes()[0])) == 2

    def test_per_case_entries_select_single_case(self, make_gtest, make_ctest, test_config):
        """A root named after a case does not widen a selection of that case"""
        exe = make_gtest()
        test_config["ctest_command"] = make_ctest([
            ("Math.Add", [exe, "--gtest_filter=Math.Add"]),
            ("Math.Sub", [exe, "--gtest_filter=Math.Sub"]),
        ])
        tree = build_catalog("build", test_config)
        assert [r.id for r in tree.root_nodes()] == ["Math.Add"]

        found = tree.find(["Math.Add"])
        assert [(n.id, n.parent is None) for n in found] == [("Math.Add", False)]

        expression, nodes = build_filter(tree, found)
        assert expression == "Math.Add"
        assert [n.id for n in nodes] == ["Math.Add"]

    def test_unavailable_catalog_is_empty(self, make_ctest, test_config):
        test_config["ctest_command"] = make_ctest([], status=2)
        tree = build_catalog("build", test_config)
        assert len(tree) == 0

    def test_unlistable_executable_keeps_root(self, make_ctest, test_config):
        test_config["ctest_command"] = make_ctest([("gone", ["/nonexistent/gone"])])
        tree = build_catalog("build", test_config)
        roots = tree.root_nodes()
        assert [r.id for r in roots] == ["gone"]
        assert roots[0].is_leaf

    def test_catalog_refresh_replaces_tree(self, monkeypatch, math_tree):
        catalog = Catalog("build")
        old = catalog.tree
        monkeypatch.setattr(catalog_module, "build_catalog", lambda build_dir, config=None: math_tree)

        assert catalog.refresh() is math_tree
        assert catalog.tree is math_tree
        assert len(old) == 0
        assert [n.id for n in catalog.find(["Math.Sub"])] == ["Math.Sub"]
