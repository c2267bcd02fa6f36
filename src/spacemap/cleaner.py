"""Deletion of scanned items with cache reconciliation."""

import asyncio
import logging
import shutil
import stat
from functools import partial
from pathlib import Path
from typing import Iterable

import aiofiles.os

from spacemap.cache import ScanCache
from spacemap.errors import MESSAGES, classify_os_error
from spacemap.models import DeleteResult, ErrorCategory
from spacemap.paths import is_volume_root, normalize, to_native

log = logging.getLogger(__name__)


def is_path_safe(path_key: str, volume_paths: Iterable[str] = ()) -> bool:
    """
    Check if a path may be deleted.

    Volume roots and the user's home directory are never deleted.

    Args:
        path_key: Normalized path
        volume_paths: Known volume mount points

    Returns:
        True if safe to delete, False otherwise
    """
    if is_volume_root(path_key, volume_paths):
        return False
    if path_key == normalize(str(Path.home())):
        return False
    return True


class DeletionExecutor:
    """Removes files and directory trees, then reconciles the scan cache."""

    def __init__(self, cache: ScanCache) -> None:
        self.cache = cache

    async def delete(self, path: str, dry_run: bool = False) -> DeleteResult:
        """
        Delete a file or directory tree.

        Args:
            path: Path to delete (any form accepted by ``normalize``)
            dry_run: If True, only check what would be deleted

        Returns:
            DeleteResult with a category and message on failure
        """
        key = normalize(path)
        native = to_native(key)
        volume_paths = [v.path for v in self.cache.volumes]

        if not is_path_safe(key, volume_paths):
            log.warning("Refusing to delete protected path %s", key)
            return self._failure(key, ErrorCategory.PROTECTED, dry_run)

        try:
            st = await aiofiles.os.stat(native, follow_symlinks=False)
        except OSError as e:
            category = classify_os_error(e)
            if category == ErrorCategory.NOT_FOUND:
                await self._reconcile(key)
            return self._failure(key, category, dry_run)

        is_dir = stat.S_ISDIR(st.st_mode)
        kind = "directory" if is_dir else "file"

        if dry_run:
            return DeleteResult(
                success=True, message=f"Would delete {kind}: {key}", path=key, dry_run=True
            )

        log.info("Deleting %s: %s", kind, native)
        try:
            if is_dir:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, partial(shutil.rmtree, native))
            else:
                await aiofiles.os.remove(native)
        except OSError as e:
            category = classify_os_error(e)
            log.error("Failed to delete %s: %s", native, e)
            if is_dir or category == ErrorCategory.NOT_FOUND:
                # a partially removed tree no longer matches its cached size
                await self._reconcile(key)
            return self._failure(key, category, dry_run)

        await self._reconcile(key)
        return DeleteResult(success=True, message=f"Successfully deleted {kind}: {key}", path=key)

    async def _reconcile(self, key: str) -> None:
        await self.cache.invalidate_subtree(key)
        await self.cache.invalidate_ancestors(key)

    @staticmethod
    def _failure(key: str, category: ErrorCategory, dry_run: bool) -> DeleteResult:
        return DeleteResult(
            success=False,
            message=MESSAGES.get(category, MESSAGES[ErrorCategory.OTHER]),
            path=key,
            category=category,
            dry_run=dry_run,
        )
