"""Core API: volume listing, cached path analysis and deletion."""

import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from spacemap.cache import JsonFileStorage, ScanCache
from spacemap.cleaner import DeletionExecutor
from spacemap.errors import RootUnreadableError
from spacemap.models import (
    AnalyzeResult,
    DeleteResult,
    DiskEvent,
    ErrorCategory,
    NodeKind,
    ScanOptions,
    Settings,
    SizedNode,
    VolumeListing,
)
from spacemap.paths import display_name, normalize
from spacemap.scanner import SizeScanner, printable_name
from spacemap import settings as settings_store
from spacemap.settings import load_settings
from spacemap.volumes import VolumeEnumerator

log = logging.getLogger(__name__)

Listener = Callable[[DiskEvent], Union[None, Awaitable[None]]]


class DiskAnalyzer:
    """Entry point for shells (CLI, HTTP, WebSocket) consuming the scan engine."""

    def __init__(
        self,
        cache: Optional[ScanCache] = None,
        scanner: Optional[SizeScanner] = None,
        enumerator: Optional[VolumeEnumerator] = None,
        executor: Optional[DeletionExecutor] = None,
        settings_provider: Callable[[], Settings] = load_settings,
    ) -> None:
        self.settings_provider = settings_provider
        self.cache = cache or ScanCache()
        self.scanner = scanner or SizeScanner()
        self.enumerator = enumerator or VolumeEnumerator(self.cache)
        self.executor = executor or DeletionExecutor(self.cache)
        self._listeners: list[Listener] = []

    @classmethod
    def from_config(cls) -> "DiskAnalyzer":
        """Analyzer backed by the user's cache file and settings."""
        settings = settings_store.load_settings()
        cache = ScanCache(
            JsonFileStorage(settings_store.CACHE_FILE),
            max_age=settings.cache_ttl_seconds,
        )
        return cls(cache=cache)

    async def start(self) -> None:
        await self.cache.load()

    async def close(self) -> None:
        await self.cache.persist()

    async def __aenter__(self) -> "DiskAnalyzer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a push listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event: DiskEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("Event listener failed for %s event", event.type)

    async def list_volumes(self, force_refresh: bool = False) -> VolumeListing:
        previous = self.cache.volumes_updated
        listing = await self.enumerator.list_volumes(force_refresh)
        if listing.last_updated != previous:
            await self._emit(
                DiskEvent(
                    type="volumes",
                    payload={"volumes": [v.model_dump() for v in listing.volumes]},
                )
            )
        return listing

    async def analyze(
        self,
        path: str,
        force_refresh: bool = False,
        max_depth: Optional[int] = None,
    ) -> AnalyzeResult:
        """
        Analyze a path, serving the cache unless a refresh is forced.

        Args:
            path: Path to analyze (``root`` means the primary volume)
            force_refresh: Rescan even if a cached tree exists
            max_depth: Override the configured depth; implies a refresh

        Returns:
            AnalyzeResult; on failure ``success`` is False and ``tree`` is an
            empty directory node
        """
        key = normalize(path)
        settings = self.settings_provider()
        overrides: dict = {"volume_paths": [v.path for v in self.cache.volumes]}
        if max_depth is not None:
            overrides["max_depth"] = max_depth
            force_refresh = True
        options = ScanOptions.from_settings(settings, **overrides)

        async def scan() -> SizedNode:
            node = await self.scanner.scan(key, options, settings)
            await self._emit(
                DiskEvent(type="analysis", path=key, payload={"size_bytes": node.size_bytes})
            )
            return node

        try:
            entry, from_cache = await self.cache.get_or_scan(key, scan, force_refresh)
        except RootUnreadableError as e:
            log.warning("Analysis of %s failed: %s", key, e)
            return AnalyzeResult(
                success=False,
                path=key,
                tree=SizedNode(name=printable_name(display_name(key)), kind=NodeKind.DIRECTORY),
                category=ErrorCategory.ROOT_UNREADABLE,
                message=e.message,
            )
        except Exception as e:
            log.exception("Unexpected error analyzing %s", key)
            return AnalyzeResult(
                success=False,
                path=key,
                tree=SizedNode(name=printable_name(display_name(key)), kind=NodeKind.DIRECTORY),
                category=ErrorCategory.OTHER,
                message=f"Analysis of {key} failed: {e}",
            )

        return AnalyzeResult(
            path=key,
            tree=entry.node,
            last_updated=entry.computed_at,
            from_cache=from_cache,
        )

    async def delete(self, path: str, dry_run: bool = False) -> DeleteResult:
        result = await self.executor.delete(path, dry_run=dry_run)
        if result.success and not dry_run:
            await self._emit(DiskEvent(type="deleted", path=result.path))
        return result
