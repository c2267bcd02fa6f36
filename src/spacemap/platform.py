"""Platform detection and volume-listing command output parsing."""

import logging
import sys
from enum import Enum
from typing import Optional

from spacemap.models import VolumeInfo

log = logging.getLogger(__name__)


class Platform(str, Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNKNOWN = "unknown"


def current_platform() -> Platform:
    """Detect the host platform."""
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    if sys.platform == "darwin":
        return Platform.MACOS
    if sys.platform.startswith("linux"):
        return Platform.LINUX
    return Platform.UNKNOWN


VOLUME_COMMANDS: dict[Platform, list[str]] = {
    Platform.WINDOWS: [
        "wmic", "logicaldisk", "get", "caption,size,freespace,volumename", "/format:csv",
    ],
    Platform.MACOS: ["df", "-k"],
    Platform.LINUX: ["df", "-k", "--output=source,fstype,size,used,avail,target"],
}

# Pseudo filesystems that never hold user data
IGNORED_FILESYSTEMS = frozenset({"tmpfs", "devtmpfs", "udev", "squashfs", "proc", "sysfs"})

LINUX_SKIPPED_MOUNTS = frozenset({"/boot", "/dev", "/proc", "/sys"})
MACOS_SKIPPED_MOUNTS = frozenset({"/dev", "/private/var/vm"})

# Well-known user data directories probed when a volume root yields nothing
USER_DATA_DIRS: dict[Platform, list[str]] = {
    Platform.WINDOWS: ["Users", "Documents and Settings", "Program Files", "Program Files (x86)"],
    Platform.MACOS: ["Users", "Applications", "Library"],
    Platform.LINUX: ["home", "root", "opt", "srv", "var"],
    Platform.UNKNOWN: ["home", "Users"],
}


def volume_command(platform: Optional[Platform] = None) -> Optional[list[str]]:
    """Argument vector that lists volumes on the platform, or None if unsupported."""
    return VOLUME_COMMANDS.get(platform or current_platform())


def _to_int(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except (ValueError, AttributeError):
        return None


def parse_wmic_csv(output: str) -> list[VolumeInfo]:
    """Parse ``wmic logicaldisk ... /format:csv`` output.

    Columns: Node,Caption,FreeSpace,Size,VolumeName
    """
    volumes = []
    for line in output.strip().splitlines():
        parts = [p.strip() for p in line.strip().split(",")]
        if len(parts) < 4 or parts[1].lower() == "caption":
            continue

        caption = parts[1]
        available = _to_int(parts[2]) or 0
        total = _to_int(parts[3])
        label = parts[4] if len(parts) > 4 else ""
        if not caption or total is None:
            continue

        volumes.append(
            VolumeInfo(
                name=f"{label} ({caption})" if label else caption,
                path=caption,
                total_bytes=total,
                used_bytes=max(total - available, 0),
                available_bytes=available,
            )
        )
    return volumes


def parse_macos_df(output: str) -> list[VolumeInfo]:
    """Parse macOS ``df -k`` output.

    Columns: Filesystem 1024-blocks Used Available Capacity iused ifree %iused Mounted-on
    """
    volumes = []
    for line in output.strip().splitlines()[1:]:
        parts = line.split()
        if len(parts) < 6 or parts[0] == "map" or parts[0].startswith("/dev/loop"):
            continue

        total, used, available = (_to_int(p) for p in parts[1:4])
        if total is None or used is None or available is None:
            continue
        mount = " ".join(parts[8:]) if len(parts) > 8 else parts[5]

        if mount in MACOS_SKIPPED_MOUNTS or mount.startswith("/System/Volumes"):
            continue

        volumes.append(
            VolumeInfo(
                name=mount,
                path=mount,
                total_bytes=total * 1024,
                used_bytes=used * 1024,
                available_bytes=available * 1024,
            )
        )
    return volumes


def parse_linux_df(output: str) -> list[VolumeInfo]:
    """Parse ``df -k --output=source,fstype,size,used,avail,target`` output."""
    volumes = []
    for line in output.strip().splitlines()[1:]:
        parts = line.split()
        if len(parts) < 6:
            continue

        source, fstype = parts[0], parts[1]
        if fstype in IGNORED_FILESYSTEMS or source == "udev" or source.startswith("/dev/loop"):
            continue

        total, used, available = (_to_int(p) for p in parts[2:5])
        if total is None or used is None or available is None:
            continue
        mount = " ".join(parts[5:])
        if mount in LINUX_SKIPPED_MOUNTS:
            continue

        volumes.append(
            VolumeInfo(
                name=mount,
                path=mount,
                total_bytes=total * 1024,
                used_bytes=used * 1024,
                available_bytes=available * 1024,
            )
        )
    return volumes


_PARSERS = {
    Platform.WINDOWS: parse_wmic_csv,
    Platform.MACOS: parse_macos_df,
    Platform.LINUX: parse_linux_df,
}


def parse_volume_output(output: str, platform: Optional[Platform] = None) -> list[VolumeInfo]:
    """Parse volume command output for the given (or current) platform."""
    parser = _PARSERS.get(platform or current_platform())
    if parser is None:
        return []
    return parser(output)
