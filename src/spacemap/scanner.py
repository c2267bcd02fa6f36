"""Recursive directory size scanning.

Sizes are computed bottom-up. Directories below the depth budget are not
walked; they get a bounded estimate instead and are flagged ``estimated``.
Entries excluded by the classifier or that cannot be read stay in the tree
as zero-size placeholders, so nothing disappears silently.
"""

import asyncio
import logging
import os
import stat
import time
from typing import AbstractSet, NamedTuple, Optional

import aiofiles.os

from spacemap.classifier import PathClassifier, is_symlink_cycle
from spacemap.errors import RootUnreadableError, classify_os_error
from spacemap.models import NodeKind, ScanOptions, Settings, SizedNode
from spacemap.paths import display_name, is_volume_root, normalize, to_native
from spacemap.platform import USER_DATA_DIRS, Platform, current_platform

log = logging.getLogger(__name__)

# System folders at the top of a volume that are too big to walk
KNOWN_HUGE_DIRECTORIES = frozenset({"windows", "program files", "program files (x86)", "programdata"})
HUGE_DIRECTORY_ESTIMATE = 1024**3  # 1 GiB

DEFAULT_CONCURRENCY = 8


class _Entry(NamedTuple):
    name: str
    path: str
    is_dir: bool
    size: int
    link_target: Optional[str] = None
    error: Optional[str] = None


def _describe(error: OSError) -> str:
    return error.strerror or error.__class__.__name__


def printable_name(name: str) -> str:
    """Replace undecodable bytes in a file name so it survives JSON encoding."""
    return os.fsencode(name).decode("utf-8", "replace")


def _read_directory(path: str, follow_symlinks: bool) -> list[_Entry]:
    """List a directory and stat every entry. Runs in a worker thread.

    Raises OSError only if the directory itself cannot be listed.
    """
    entries = []
    with os.scandir(path) as it:
        for entry in it:
            try:
                is_link = entry.is_symlink()
                st = entry.stat(follow_symlinks=follow_symlinks)
                is_dir = stat.S_ISDIR(st.st_mode)
                entries.append(
                    _Entry(
                        name=printable_name(entry.name),
                        path=entry.path,
                        is_dir=is_dir,
                        size=0 if is_dir else st.st_size,
                        link_target=os.path.realpath(entry.path) if is_link and is_dir else None,
                    )
                )
            except OSError as e:
                entries.append(_Entry(printable_name(entry.name), entry.path, False, 0, error=_describe(e)))
    return entries


def estimate_directory_size(path: str, max_depth: int = 1, entry_limit: int = 10_000) -> int:
    """
    Shallow size estimate for a directory that is not walked exactly.

    Sums regular files up to ``max_depth`` levels below ``path`` and stops after
    ``entry_limit`` entries. Unreadable entries are ignored; symlinks are never
    followed.

    Returns:
        Estimated size in bytes (a lower bound for deep trees)
    """
    total = 0
    visited = 0
    pending = [(path, 0)]

    while pending and visited < entry_limit:
        current, depth = pending.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    visited += 1
                    if visited > entry_limit:
                        break
                    try:
                        if entry.is_file(follow_symlinks=False):
                            total += entry.stat(follow_symlinks=False).st_size
                        elif entry.is_dir(follow_symlinks=False) and depth < max_depth:
                            pending.append((entry.path, depth + 1))
                    except OSError:
                        continue
        except OSError:
            continue

    return total


def _directory_node(name: str, children: list[SizedNode]) -> SizedNode:
    ordered = sorted(children, key=lambda c: (-c.size_bytes, c.name))
    return SizedNode(
        name=name,
        size_bytes=sum(c.size_bytes for c in ordered),
        kind=NodeKind.DIRECTORY,
        children=ordered,
    )


class _Walk:
    """State for one scan: options, skip rules and the listing semaphore."""

    def __init__(
        self,
        options: ScanOptions,
        classifier: PathClassifier,
        concurrency: int,
        platform: Platform,
    ) -> None:
        self.options = options
        self.classifier = classifier
        self.platform = platform
        self.semaphore = asyncio.Semaphore(concurrency)

    async def _list(self, path: str) -> list[_Entry]:
        loop = asyncio.get_running_loop()
        async with self.semaphore:
            return await loop.run_in_executor(
                None, _read_directory, path, self.options.follow_symlinks
            )

    async def _estimate(self, path: str, max_depth: int) -> int:
        loop = asyncio.get_running_loop()
        async with self.semaphore:
            return await loop.run_in_executor(
                None,
                estimate_directory_size,
                path,
                max_depth,
                self.options.estimate_entry_limit,
            )

    async def run(self, key: str) -> SizedNode:
        path = to_native(key)
        name = printable_name(display_name(key))

        try:
            st = await aiofiles.os.stat(path)
        except OSError as e:
            raise RootUnreadableError(key, classify_os_error(e)) from e

        if not stat.S_ISDIR(st.st_mode):
            return SizedNode(name=name, size_bytes=st.st_size, kind=NodeKind.FILE)

        real = os.path.realpath(path)
        try:
            entries = await self._list(path)
        except OSError as e:
            raise RootUnreadableError(key, classify_os_error(e)) from e

        if not self.options.full_volume_scan and is_volume_root(key, self.options.volume_paths):
            return await self._volume_root(path, name, entries, real)

        return await self._directory(name, entries, self.options.max_depth, real, frozenset({real}))

    async def _scan_directory(
        self, path: str, name: str, budget: int, real: str, ancestors: AbstractSet[str]
    ) -> SizedNode:
        try:
            entries = await self._list(path)
        except OSError as e:
            log.debug("Cannot list %s: %s", path, e)
            return SizedNode(name=name, kind=NodeKind.DIRECTORY, error=_describe(e))
        return await self._directory(name, entries, budget, real, ancestors)

    async def _directory(
        self,
        name: str,
        entries: list[_Entry],
        budget: int,
        real: str,
        ancestors: AbstractSet[str],
    ) -> SizedNode:
        children = await asyncio.gather(
            *(self._child(entry, budget - 1, real, ancestors) for entry in entries)
        )
        return _directory_node(name, list(children))

    async def _child(
        self, entry: _Entry, budget: int, parent_real: str, ancestors: AbstractSet[str]
    ) -> SizedNode:
        kind = NodeKind.DIRECTORY if entry.is_dir else NodeKind.FILE

        if entry.error is not None:
            log.debug("Skipping unreadable entry %s: %s", entry.path, entry.error)
            return SizedNode(name=entry.name, kind=kind, error=entry.error)

        if self.options.respect_classifier:
            reason = self.classifier.skip_reason(entry.path, entry.link_target, ancestors)
        elif entry.link_target is not None and is_symlink_cycle(entry.link_target, ancestors):
            reason = "symlink cycle"
        else:
            reason = None
        if reason is not None:
            log.debug("Skipping %s (%s)", entry.path, reason)
            return SizedNode(name=entry.name, kind=kind, skipped=True)

        if not entry.is_dir:
            return SizedNode(name=entry.name, size_bytes=entry.size, kind=NodeKind.FILE)

        if budget < 0:
            size = await self._estimate(entry.path, self.options.estimate_depth)
            return SizedNode(
                name=entry.name, size_bytes=size, kind=NodeKind.DIRECTORY, estimated=True
            )

        real = entry.link_target or os.path.join(parent_real, os.path.basename(entry.path))
        return await self._scan_directory(entry.path, entry.name, budget, real, ancestors | {real})

    async def _volume_root(
        self, path: str, name: str, entries: list[_Entry], real: str
    ) -> SizedNode:
        """Shallow strategy for a whole volume: top-level entries only, depth-capped."""
        ancestors = frozenset({real})
        depth = self.options.volume_root_depth

        async def top_level(entry: _Entry) -> SizedNode:
            if entry.is_dir and entry.error is None and entry.name.lower() in KNOWN_HUGE_DIRECTORIES:
                return SizedNode(
                    name=entry.name,
                    size_bytes=HUGE_DIRECTORY_ESTIMATE,
                    kind=NodeKind.DIRECTORY,
                    estimated=True,
                )
            return await self._child(entry, depth - 1, real, ancestors)

        children = list(await asyncio.gather(*(top_level(e) for e in entries)))

        if not any(c.size_bytes > 0 for c in children):
            children = await self._probe_user_dirs(path, children)

        return _directory_node(name, children)

    async def _probe_user_dirs(self, path: str, children: list[SizedNode]) -> list[SizedNode]:
        """Estimate well-known user data folders when nothing else measured."""
        by_name = {c.name: c for c in children}
        for folder in USER_DATA_DIRS.get(self.platform, []):
            candidate = os.path.join(path, folder)
            if not await aiofiles.os.path.isdir(candidate):
                continue
            log.info("Probing fallback directory %s", candidate)
            size = await self._estimate(candidate, 1)
            if size > 0:
                by_name[folder] = SizedNode(
                    name=folder, size_bytes=size, kind=NodeKind.DIRECTORY, estimated=True
                )
        return list(by_name.values())


class SizeScanner:
    """Measures filesystem subtrees."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        platform: Optional[Platform] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.concurrency = concurrency
        self.platform = platform or current_platform()

    async def scan(
        self,
        root: str,
        options: Optional[ScanOptions] = None,
        settings: Optional[Settings] = None,
    ) -> SizedNode:
        """
        Measure ``root`` and return its sized tree.

        Args:
            root: Path to scan (any form accepted by ``normalize``)
            options: Scan parameters; derived from settings when omitted
            settings: Settings snapshot for the skip rules (defaults to the
                scanner's own)

        Returns:
            SizedNode for the root

        Raises:
            RootUnreadableError: if the root cannot be stat'ed or listed
        """
        settings = settings or self.settings
        options = options or ScanOptions.from_settings(settings)
        key = normalize(root)

        walk = _Walk(options, PathClassifier(settings), self.concurrency, self.platform)
        started = time.monotonic()
        log.info("Scanning %s (max depth %d)", key, options.max_depth)
        node = await walk.run(key)
        log.info(
            "Scanned %s: %d bytes in %.2fs", key, node.size_bytes, time.monotonic() - started
        )
        return node
