"""Tests for the size scanner."""

import os
import sys

import pytest

import spacemap.scanner as scanner_module
from spacemap.errors import RootUnreadableError
from spacemap.models import ErrorCategory, NodeKind, ScanOptions, Settings, SizedNode
from spacemap.platform import Platform
from spacemap.scanner import HUGE_DIRECTORY_ESTIMATE, SizeScanner, estimate_directory_size

from conftest import write_bytes_named, write_file

needs_symlinks = pytest.mark.skipif(sys.platform.startswith("win"), reason="symlinks need privileges")
needs_byte_names = pytest.mark.skipif(
    not sys.platform.startswith("linux"), reason="file names must be arbitrary bytes"
)


def assert_sizes_consistent(node: SizedNode) -> None:
    """Every walked directory's size equals the sum of its children, largest first."""
    for current in node.iter_nodes():
        if not current.is_directory or current.estimated or current.skipped or current.error:
            continue
        assert current.size_bytes == sum(c.size_bytes for c in current.children)
        sizes = [c.size_bytes for c in current.children]
        assert sizes == sorted(sizes, reverse=True)


@pytest.fixture
def deep_dir(tmp_path):
    """l1/l2/l3/l4/l5 with 10 B directly in l3 and 1000 B at the bottom."""
    root = tmp_path / "deep"
    write_file(root / "l1" / "l2" / "l3" / "f3.bin", 10)
    write_file(root / "l1" / "l2" / "l3" / "l4" / "l5" / "big.bin", 1000)
    return root


class TestScan:
    async def test_sizes_and_order(self, data_dir):
        node = await SizeScanner().scan(str(data_dir))

        assert node.name == "data"
        assert node.kind == NodeKind.DIRECTORY
        assert node.size_bytes == 175
        assert [c.name for c in node.children] == ["a.txt", "b.txt", "sub"]
        assert [c.size_bytes for c in node.children] == [100, 50, 25]
        assert node.find("sub/c.txt").size_bytes == 25

    async def test_sizes_consistent(self, data_dir):
        write_file(data_dir / "sub" / "deeper" / "d.bin", 400)
        write_file(data_dir / "sub" / "e.bin", 7)
        node = await SizeScanner().scan(str(data_dir))

        assert_sizes_consistent(node)
        assert node.size_bytes == 175 + 400 + 7

    async def test_equal_sizes_ordered_by_name(self, tmp_path):
        write_file(tmp_path / "tie" / "b.bin", 5)
        write_file(tmp_path / "tie" / "a.bin", 5)
        node = await SizeScanner().scan(str(tmp_path / "tie"))
        assert [c.name for c in node.children] == ["a.bin", "b.bin"]

    async def test_file_root(self, data_dir):
        node = await SizeScanner().scan(str(data_dir / "a.txt"))
        assert node.kind == NodeKind.FILE
        assert node.size_bytes == 100
        assert node.children == []

    async def test_empty_directory(self, tmp_path):
        (tmp_path / "empty").mkdir()
        node = await SizeScanner().scan(str(tmp_path / "empty"))
        assert node.size_bytes == 0
        assert node.children == []


class TestDepthLimit:
    async def test_below_budget_is_estimated(self, deep_dir):
        node = await SizeScanner().scan(str(deep_dir), ScanOptions(max_depth=2))

        assert not node.find("l1").estimated
        assert not node.find("l1/l2").estimated
        l3 = node.find("l1/l2/l3")
        assert l3.estimated
        assert l3.children == []
        assert l3.size_bytes == 10
        assert node.size_bytes == 10

    async def test_deep_budget_is_exact(self, deep_dir):
        node = await SizeScanner().scan(str(deep_dir), ScanOptions(max_depth=10))
        assert node.size_bytes == 1010
        assert not any(n.estimated for n in node.iter_nodes())

    async def test_zero_depth_estimates_children(self, data_dir):
        node = await SizeScanner().scan(str(data_dir), ScanOptions(max_depth=0))
        sub = node.find("sub")
        assert sub.estimated
        assert sub.size_bytes == 25
        assert node.find("a.txt").size_bytes == 100

    async def test_settings_depth_used_when_no_options(self, deep_dir):
        node = await SizeScanner(Settings(max_depth=1)).scan(str(deep_dir))
        assert node.find("l1/l2").estimated


class TestSkippedEntries:
    async def test_hidden_entries_are_placeholders(self, data_dir):
        write_file(data_dir / ".hidden", 500)
        node = await SizeScanner().scan(str(data_dir))

        hidden = node.find(".hidden")
        assert hidden.skipped
        assert hidden.size_bytes == 0
        assert node.size_bytes == 175

    async def test_show_hidden_counts_them(self, data_dir):
        write_file(data_dir / ".hidden", 500)
        node = await SizeScanner(Settings(show_hidden_files=True)).scan(str(data_dir))
        assert node.size_bytes == 675

    async def test_excluded_paths(self, data_dir):
        settings = Settings(exclude_paths=[str(data_dir / "sub")])
        node = await SizeScanner(settings).scan(str(data_dir))
        assert node.find("sub").skipped
        assert node.size_bytes == 150

    async def test_classifier_can_be_disabled(self, data_dir):
        write_file(data_dir / ".hidden", 500)
        options = ScanOptions(respect_classifier=False)
        node = await SizeScanner().scan(str(data_dir), options)
        assert node.size_bytes == 675


class TestUnreadable:
    async def test_missing_root(self, tmp_path):
        with pytest.raises(RootUnreadableError) as exc_info:
            await SizeScanner().scan(str(tmp_path / "nope"))
        assert exc_info.value.reason == ErrorCategory.NOT_FOUND
        assert "Cannot read" in str(exc_info.value)

    async def test_unlistable_root(self, data_dir, monkeypatch):
        original = scanner_module._read_directory

        def failing(path, follow_symlinks):
            if path == str(data_dir):
                raise PermissionError(13, "Permission denied")
            return original(path, follow_symlinks)

        monkeypatch.setattr(scanner_module, "_read_directory", failing)
        with pytest.raises(RootUnreadableError) as exc_info:
            await SizeScanner().scan(str(data_dir))
        assert exc_info.value.reason == ErrorCategory.PERMISSION_DENIED

    async def test_unreadable_child_does_not_abort(self, data_dir, monkeypatch):
        original = scanner_module._read_directory

        def failing(path, follow_symlinks):
            if path.endswith(os.sep + "sub"):
                raise PermissionError(13, "Permission denied")
            return original(path, follow_symlinks)

        monkeypatch.setattr(scanner_module, "_read_directory", failing)
        node = await SizeScanner().scan(str(data_dir))

        sub = node.find("sub")
        assert sub.error == "Permission denied"
        assert sub.size_bytes == 0
        assert node.size_bytes == 150


@needs_byte_names
class TestUndecodableNames:
    async def test_names_are_replaced(self, data_dir):
        write_bytes_named(data_dir, b"bad\xff.bin", size=10)
        node = await SizeScanner().scan(str(data_dir))

        bad = node.find("bad\ufffd.bin")
        assert bad is not None
        assert bad.size_bytes == 10
        assert node.size_bytes == 185
        node.model_dump_json()

    async def test_directory_contents_still_walked(self, data_dir):
        write_bytes_named(data_dir, b"dir\xfe", b"inner.bin", size=30)
        node = await SizeScanner().scan(str(data_dir))

        directory = node.find("dir\ufffd")
        assert not directory.error
        assert directory.find("inner.bin").size_bytes == 30
        assert node.size_bytes == 205

    async def test_undecodable_root_name(self, tmp_path):
        write_bytes_named(tmp_path, b"root\xfd", b"f.bin", size=4)
        node = await SizeScanner().scan(os.fsdecode(os.fsencode(str(tmp_path)) + b"/root\xfd"))

        assert node.name == "root\ufffd"
        assert node.size_bytes == 4
        node.model_dump_json()


@needs_symlinks
class TestSymlinks:
    async def test_loop_is_skipped(self, data_dir):
        os.symlink(data_dir, data_dir / "sub" / "loop")
        node = await SizeScanner().scan(str(data_dir))

        loop = node.find("sub/loop")
        assert loop.skipped
        assert node.size_bytes == 175

    async def test_loop_guard_without_classifier(self, data_dir):
        os.symlink(data_dir, data_dir / "sub" / "loop")
        node = await SizeScanner().scan(str(data_dir), ScanOptions(respect_classifier=False))
        assert node.find("sub/loop").skipped

    async def test_link_to_outside_directory_is_measured(self, tmp_path, data_dir):
        write_file(tmp_path / "elsewhere" / "x.bin", 30)
        os.symlink(tmp_path / "elsewhere", data_dir / "link")
        node = await SizeScanner().scan(str(data_dir))
        assert node.find("link").size_bytes == 30

    async def test_not_following_links(self, tmp_path, data_dir):
        write_file(tmp_path / "elsewhere" / "x.bin", 30)
        os.symlink(tmp_path / "elsewhere", data_dir / "link")
        node = await SizeScanner().scan(str(data_dir), ScanOptions(follow_symlinks=False))
        link = node.find("link")
        assert link.kind == NodeKind.FILE
        assert not link.is_directory


class TestVolumeRoot:
    async def test_known_huge_directories_estimated(self, data_dir):
        write_file(data_dir / "Windows" / "explorer.exe", 10)
        options = ScanOptions(volume_paths=[str(data_dir)])
        node = await SizeScanner().scan(str(data_dir), options)

        windows = node.find("Windows")
        assert windows.estimated
        assert windows.size_bytes == HUGE_DIRECTORY_ESTIMATE
        assert node.find("a.txt").size_bytes == 100

    async def test_top_level_depth_cap(self, data_dir):
        write_file(data_dir / "deep" / "x1" / "x2" / "x3" / "f.bin", 10)
        options = ScanOptions(volume_paths=[str(data_dir)], volume_root_depth=1, max_depth=10)
        node = await SizeScanner().scan(str(data_dir), options)

        deep = node.find("deep")
        assert not deep.estimated
        assert [c.name for c in deep.children] == ["x1"]
        assert node.find("deep/x1").estimated

    async def test_zero_depth_estimates_top_level_directories(self, data_dir):
        options = ScanOptions(volume_paths=[str(data_dir)], volume_root_depth=0, max_depth=10)
        node = await SizeScanner().scan(str(data_dir), options)

        sub = node.find("sub")
        assert sub.estimated
        assert sub.size_bytes == 25
        assert sub.children == []

    async def test_small_top_level_entries_kept(self, data_dir):
        write_file(data_dir / "tiny.txt", 1)
        write_file(data_dir / "empty.txt", 0)
        (data_dir / "empty_dir").mkdir()
        options = ScanOptions(volume_paths=[str(data_dir)])
        node = await SizeScanner().scan(str(data_dir), options)

        names = {c.name for c in node.children}
        assert {"a.txt", "b.txt", "sub", "tiny.txt", "empty.txt", "empty_dir"} <= names
        assert node.find("tiny.txt").size_bytes == 1
        assert node.size_bytes == 176

    async def test_full_volume_scan_walks_normally(self, data_dir):
        write_file(data_dir / "deep" / "x1" / "x2" / "x3" / "f.bin", 10)
        options = ScanOptions(
            volume_paths=[str(data_dir)], volume_root_depth=1, max_depth=10, full_volume_scan=True
        )
        node = await SizeScanner().scan(str(data_dir), options)
        assert not node.find("deep/x1/x2").estimated
        assert node.find("deep/x1/x2/x3/f.bin").size_bytes == 10

    async def test_probes_user_folders_when_nothing_measured(self, tmp_path):
        volume = tmp_path / "volume"
        write_file(volume / "home" / "user" / "file.bin", 100)
        settings = Settings(exclude_paths=[str(volume / "home")])
        options = ScanOptions(volume_paths=[str(volume)])

        node = await SizeScanner(platform=Platform.LINUX).scan(str(volume), options, settings)

        home = node.find("home")
        assert home.estimated
        assert home.size_bytes == 100
        assert node.size_bytes == 100


class TestEstimateDirectorySize:
    def test_sums_shallow_files(self, deep_dir):
        assert estimate_directory_size(str(deep_dir / "l1" / "l2" / "l3"), max_depth=1) == 10

    def test_deeper_estimate(self, deep_dir):
        assert estimate_directory_size(str(deep_dir / "l1" / "l2" / "l3"), max_depth=3) == 1010

    def test_entry_limit_bounds_work(self, tmp_path):
        for i in range(20):
            write_file(tmp_path / "many" / f"f{i:02d}", 1)
        assert estimate_directory_size(str(tmp_path / "many"), entry_limit=5) == 5

    def test_missing_directory(self, tmp_path):
        assert estimate_directory_size(str(tmp_path / "nope")) == 0
