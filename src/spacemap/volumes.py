"""Volume enumeration with cache-first and degraded-mode fallbacks."""

import asyncio
import logging
import shutil
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from spacemap.errors import PlatformCommandError
from spacemap.models import VolumeInfo, VolumeListing
from spacemap.paths import primary_root, to_native
from spacemap.platform import Platform, current_platform, parse_volume_output, volume_command

if TYPE_CHECKING:
    from spacemap.cache import ScanCache

log = logging.getLogger(__name__)

CommandRunner = Callable[[list[str]], Awaitable[str]]

COMMAND_TIMEOUT = 30  # seconds


async def run_command(argv: list[str], timeout: float = COMMAND_TIMEOUT) -> str:
    """Run a command without a shell and return its stdout.

    Raises:
        PlatformCommandError: if the command cannot start, times out or exits non-zero
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise PlatformCommandError(f"Cannot run {argv[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise PlatformCommandError(f"{argv[0]} timed out after {timeout}s") from e

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip()
        raise PlatformCommandError(f"{argv[0]} exited with {proc.returncode}: {detail}")

    return stdout.decode(errors="replace")


def fallback_volumes(platform: Optional[Platform] = None) -> list[VolumeInfo]:
    """Best-guess volume list used when enumeration fails and nothing is cached.

    Sizes are approximate: they come from ``shutil.disk_usage`` when that works,
    otherwise they are zero.
    """
    platform = platform or current_platform()
    root = primary_root()
    path = root.rstrip("/") if platform == Platform.WINDOWS else root

    try:
        usage = shutil.disk_usage(to_native(root))
        total, used, free = usage.total, usage.used, usage.free
    except OSError:
        total = used = free = 0

    return [
        VolumeInfo(
            name=path,
            path=path,
            total_bytes=total,
            used_bytes=used,
            available_bytes=free,
            approximate=True,
        )
    ]


class VolumeEnumerator:
    """Lists mounted volumes, serving the scan cache's copy when allowed."""

    def __init__(
        self,
        cache: "ScanCache",
        runner: Optional[CommandRunner] = None,
        platform: Optional[Platform] = None,
    ) -> None:
        self.cache = cache
        self.runner = runner or run_command
        self.platform = platform or current_platform()

    async def list_volumes(self, force_refresh: bool = False) -> VolumeListing:
        """Return the volume list.

        Args:
            force_refresh: Re-run the platform command even if a list is cached

        Returns:
            VolumeListing; ``degraded`` is set when stale or hard-coded data
            is returned because enumeration failed.
        """
        cached = self.cache.volumes
        if not force_refresh and cached:
            return VolumeListing(volumes=cached, last_updated=self.cache.volumes_updated)

        try:
            volumes = await self._enumerate()
        except PlatformCommandError as e:
            if cached:
                log.warning("Volume enumeration failed, serving cached list: %s", e)
                return VolumeListing(
                    volumes=cached,
                    last_updated=self.cache.volumes_updated,
                    degraded=True,
                )
            log.warning("Volume enumeration failed, using best-guess defaults: %s", e)
            return VolumeListing(
                volumes=fallback_volumes(self.platform),
                last_updated=datetime.now(),
                degraded=True,
            )

        timestamp = datetime.now()
        await self.cache.put_volumes(volumes, timestamp)
        log.info("Found %d volumes: %s", len(volumes), ", ".join(v.path for v in volumes))
        return VolumeListing(volumes=volumes, last_updated=timestamp)

    async def _enumerate(self) -> list[VolumeInfo]:
        argv = volume_command(self.platform)
        if argv is None:
            raise PlatformCommandError(f"Unsupported platform: {self.platform.value}")

        output = await self.runner(argv)
        volumes = [v for v in parse_volume_output(output, self.platform) if v.total_bytes > 0]
        if not volumes:
            raise PlatformCommandError(f"No volumes found in output of {argv[0]}")
        return volumes
