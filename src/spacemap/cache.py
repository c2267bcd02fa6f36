"""Scan cache: path-keyed results, volume list, and their on-disk mirror.

All mutation of cached data goes through :class:`ScanCache`. Every mutation is
followed by a ``persist()`` so a restart loses at most the scan that was still
running.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from spacemap.errors import CacheCorruptError
from spacemap.models import CacheEntry, CacheState, SizedNode, VolumeInfo
from spacemap.paths import is_descendant, parent_keys

log = logging.getLogger(__name__)

ScanFunction = Callable[[], Awaitable[SizedNode]]


class CacheStorage(Protocol):
    """Durable backing store for the serialized cache."""

    async def read(self) -> Optional[str]:
        """Return the stored document, or None if nothing was stored yet."""
        ...

    async def write(self, data: str) -> None:
        ...


class JsonFileStorage:
    """Stores the cache as a JSON file, replaced atomically on each write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    async def read(self) -> Optional[str]:
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError:
            return None

    async def write(self, data: str) -> None:
        await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(data)
        await aiofiles.os.replace(tmp_path, self.path)


class MemoryStorage:
    """In-process storage, for tests and throwaway sessions."""

    def __init__(self, data: Optional[str] = None) -> None:
        self.data = data
        self.writes = 0

    async def read(self) -> Optional[str]:
        return self.data

    async def write(self, data: str) -> None:
        self.data = data
        self.writes += 1


class ScanCache:
    """Path-keyed scan results with per-key scan coalescing.

    Keys must already be normalized (see ``spacemap.paths.normalize``).
    """

    def __init__(
        self,
        storage: Optional[CacheStorage] = None,
        max_age: Optional[float] = None,
    ) -> None:
        self.storage: CacheStorage = storage or MemoryStorage()
        self.max_age = max_age or None
        self._state = CacheState()
        self._inflight: dict[str, asyncio.Future] = {}
        self._stale: set[str] = set()
        self._lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()

    @property
    def volumes(self) -> list[VolumeInfo]:
        return list(self._state.volumes)

    @property
    def volumes_updated(self) -> Optional[datetime]:
        return self._state.volumes_updated

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._state.last_updated

    def keys(self) -> list[str]:
        return list(self._state.entries)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` if present and fresh, else None."""
        entry = self._state.entries.get(key)
        if entry is None:
            return None
        if self.max_age is not None:
            age = (datetime.now() - entry.computed_at).total_seconds()
            if age > self.max_age:
                return None
        return entry

    async def put(
        self, key: str, node: SizedNode, timestamp: Optional[datetime] = None
    ) -> CacheEntry:
        """Store (or overwrite) the tree for ``key`` and persist.

        A tree that cannot be serialized is returned but not stored, so it
        never blocks persisting the rest of the cache.
        """
        entry = CacheEntry(path_key=key, node=node, computed_at=timestamp or datetime.now())
        try:
            entry.model_dump_json()
        except ValueError as e:
            log.warning("Not caching %s, tree cannot be serialized: %s", key, e)
            return entry
        self._state.entries[key] = entry
        self._state.last_updated = entry.computed_at
        await self.persist()
        return entry

    async def invalidate(self, key: str) -> bool:
        """Drop the entry for ``key``. Returns whether one existed."""
        self._mark_stale(k for k in self._inflight if k == key)
        removed = self._state.entries.pop(key, None) is not None
        if removed:
            await self.persist()
        return removed

    async def invalidate_subtree(self, key: str) -> list[str]:
        """Drop ``key`` and every entry whose key lies below it."""
        self._mark_stale(k for k in self._inflight if k == key or is_descendant(k, key))
        doomed = [k for k in self._state.entries if k == key or is_descendant(k, key)]
        return await self._drop(doomed)

    async def invalidate_ancestors(self, key: str) -> list[str]:
        """Drop the entries of every ancestor of ``key`` up to the root."""
        ancestors = list(parent_keys(key))
        self._mark_stale(k for k in self._inflight if k in ancestors)
        doomed = [k for k in ancestors if k in self._state.entries]
        return await self._drop(doomed)

    def _mark_stale(self, keys) -> None:
        """Flag in-flight scans whose result must not be stored when they finish."""
        for k in keys:
            self._stale.add(k)

    async def _drop(self, keys: list[str]) -> list[str]:
        for k in keys:
            del self._state.entries[k]
        if keys:
            log.debug("Invalidated cache entries: %s", ", ".join(keys))
            await self.persist()
        return keys

    async def put_volumes(self, volumes: list[VolumeInfo], timestamp: datetime) -> None:
        """Replace the cached volume list wholesale and persist."""
        self._state.volumes = list(volumes)
        self._state.volumes_updated = timestamp
        self._state.last_updated = timestamp
        await self.persist()

    async def clear(self) -> None:
        """Reset to an empty cache and persist."""
        self._mark_stale(self._inflight)
        self._state = CacheState()
        await self.persist()

    def stats(self) -> dict:
        return {
            "entries": len(self._state.entries),
            "volumes": len(self._state.volumes),
            "in_flight": len(self._inflight),
            "last_updated": self._state.last_updated,
            "volumes_updated": self._state.volumes_updated,
        }

    async def persist(self) -> None:
        """Write the full cache to storage. Failures are logged, not raised."""
        async with self._persist_lock:
            try:
                data = self._state.model_dump_json()
                await self.storage.write(data)
            except (OSError, ValueError) as e:
                log.warning("Failed to save scan cache: %s", e)

    async def load(self) -> None:
        """Restore the persisted cache, starting cold if it is missing or corrupt."""
        try:
            raw = await self.storage.read()
        except (OSError, UnicodeDecodeError) as e:
            log.warning("Cannot read scan cache, starting empty: %s", e)
            raw = None

        if raw is None:
            self._state = CacheState()
            return

        try:
            self._state = self._decode(raw)
        except CacheCorruptError as e:
            log.warning("Discarding corrupt scan cache: %s", e)
            self._state = CacheState()
        else:
            log.debug("Loaded %d cached entries", len(self._state.entries))

    @staticmethod
    def _decode(raw: str) -> CacheState:
        try:
            state = CacheState.model_validate_json(raw)
        except ValidationError as e:
            raise CacheCorruptError(f"Invalid cache document: {e.error_count()} errors") from e
        state.entries = {k: v for k, v in state.entries.items() if v.path_key == k}
        return state

    async def get_or_scan(
        self, key: str, scan: ScanFunction, force_refresh: bool = False
    ) -> tuple[CacheEntry, bool]:
        """
        Return the cached entry for ``key`` or run ``scan`` to produce one.

        Concurrent callers for the same key share a single in-flight scan and
        all receive the same entry. The scan keeps running if a caller is
        cancelled. A forced refresh joins a scan that is already running. A
        scan whose key is invalidated while it runs still answers its waiters
        but its result is not stored.

        Returns:
            Tuple of (entry, served_from_cache)

        Raises:
            Exception: whatever the scan raised, propagated to every waiter
        """
        async with self._lock:
            if not force_refresh:
                entry = self.get(key)
                if entry is not None:
                    return entry, True

            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._run_scan(key, scan))
                self._inflight[key] = task

        return await asyncio.shield(task), False

    async def _run_scan(self, key: str, scan: ScanFunction) -> CacheEntry:
        try:
            node = await scan()
            if key in self._stale:
                log.debug("Discarding scan of %s, invalidated while running", key)
                return CacheEntry(path_key=key, node=node, computed_at=datetime.now())
            return await self.put(key, node)
        except Exception:
            await self.invalidate_subtree(key)
            raise
        finally:
            self._inflight.pop(key, None)
            self._stale.discard(key)
