"""Tests for display functions."""

from datetime import datetime

from spacemap import display
from spacemap.display import build_tree, node_label, usage_color
from spacemap.models import (
    AnalyzeResult,
    DeleteResult,
    ErrorCategory,
    NodeKind,
    SizedNode,
    VolumeInfo,
    VolumeListing,
)


def file_node(name: str, size: int) -> SizedNode:
    return SizedNode(name=name, size_bytes=size, kind=NodeKind.FILE)


class TestUsageColor:
    def test_thresholds(self):
        assert usage_color(50) == "green"
        assert usage_color(80) == "yellow"
        assert usage_color(95) == "red"


class TestNodeLabel:
    def test_file(self):
        assert node_label(file_node("a.txt", 100)) == "a.txt  [green]100 B[/green]"

    def test_directory_has_slash(self):
        node = SizedNode(name="sub", size_bytes=5, kind=NodeKind.DIRECTORY)
        assert "sub/" in node_label(node)

    def test_estimated(self):
        node = SizedNode(name="big", size_bytes=2000, kind=NodeKind.DIRECTORY, estimated=True)
        assert "~2.0 KB (estimate)" in node_label(node)

    def test_skipped(self):
        node = SizedNode(name=".cache", kind=NodeKind.DIRECTORY, skipped=True)
        assert "(skipped)" in node_label(node)

    def test_error(self):
        node = SizedNode(name="locked", kind=NodeKind.DIRECTORY, error="Permission denied")
        assert "Permission denied" in node_label(node)


class TestBuildTree:
    def test_truncates_children(self):
        root = SizedNode(
            name="root",
            size_bytes=12,
            kind=NodeKind.DIRECTORY,
            children=[file_node(f"f{i:02d}", 1) for i in range(12)],
        )
        tree = build_tree(root, max_children=10)
        assert len(tree.children) == 11
        assert "... 2 more (2 B)" in tree.children[-1].label

    def test_depth_limit(self):
        inner = SizedNode(
            name="inner", size_bytes=1, kind=NodeKind.DIRECTORY, children=[file_node("x", 1)]
        )
        root = SizedNode(name="root", size_bytes=1, kind=NodeKind.DIRECTORY, children=[inner])
        assert build_tree(root, max_depth=1).children[0].children == []
        assert len(build_tree(root, max_depth=2).children[0].children) == 1


class TestShowFunctions:
    def test_show_analysis_error(self):
        result = AnalyzeResult(
            success=False,
            path="/nope",
            tree=SizedNode(name="nope", kind=NodeKind.DIRECTORY),
            category=ErrorCategory.ROOT_UNREADABLE,
            message="Cannot read /nope: path does not exist",
        )
        with display.console.capture() as capture:
            display.show_analysis(result)
        assert "Error: Cannot read /nope" in capture.get()

    def test_show_analysis_tree(self):
        result = AnalyzeResult(
            path="/data",
            tree=SizedNode(
                name="data", size_bytes=100, kind=NodeKind.DIRECTORY, children=[file_node("a.txt", 100)]
            ),
            last_updated=datetime(2024, 5, 1, 12, 0, 0),
            from_cache=True,
        )
        with display.console.capture() as capture:
            display.show_analysis(result)
        output = capture.get()
        assert "a.txt" in output
        assert "cache" in output

    def test_show_volumes_marks_degraded(self):
        listing = VolumeListing(
            volumes=[
                VolumeInfo(
                    name="/", path="/", total_bytes=100, used_bytes=50,
                    available_bytes=50, approximate=True,
                )
            ],
            degraded=True,
        )
        with display.console.capture() as capture:
            display.show_volumes(listing)
        output = capture.get()
        assert "Volumes" in output
        assert "approx" in output
        assert "stale or approximate" in output

    def test_show_delete_result_dry_run(self):
        result = DeleteResult(success=True, message="Would delete file: /x", path="/x", dry_run=True)
        with display.console.capture() as capture:
            display.show_delete_result(result)
        assert "DRY RUN" in capture.get()
