"""Data models for spacemap."""

from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field


class NodeKind(str, Enum):
    """Kind of a sized filesystem node."""

    FILE = "file"
    DIRECTORY = "directory"


class ErrorCategory(str, Enum):
    """Failure classes surfaced to callers."""

    ROOT_UNREADABLE = "root_unreadable"
    ENTRY_UNREADABLE = "entry_unreadable"
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_BUSY = "resource_busy"
    NOT_FOUND = "not_found"
    PLATFORM_COMMAND_FAILED = "platform_command_failed"
    CACHE_CORRUPT = "cache_corrupt"
    PROTECTED = "protected"
    OTHER = "other"


def format_size(size_bytes: int) -> str:
    """Format bytes to human-readable string (decimal units)."""
    if size_bytes >= 1000**4:
        return f"{size_bytes / (1000**4):.1f} TB"
    elif size_bytes >= 1000**3:
        return f"{size_bytes / (1000**3):.1f} GB"
    elif size_bytes >= 1000**2:
        return f"{size_bytes / (1000**2):.1f} MB"
    elif size_bytes >= 1000:
        return f"{size_bytes / 1000:.1f} KB"
    else:
        return f"{size_bytes} B"


class VolumeInfo(BaseModel):
    """A mounted storage volume and its capacity."""

    name: str = Field(..., description="Display name (label and drive, or mount point)")
    path: str = Field(..., description="Drive letter or mount point")
    total_bytes: int = Field(..., description="Capacity in bytes")
    used_bytes: int = Field(..., description="Used space in bytes")
    available_bytes: int = Field(..., description="Free space in bytes")
    approximate: bool = Field(
        False, description="True for hard-coded best-guess records used in degraded mode"
    )

    @property
    def used_percent(self) -> float:
        """Percentage of the volume in use."""
        if self.total_bytes <= 0:
            return 0.0
        return (self.used_bytes / self.total_bytes) * 100

    @property
    def total_gb(self) -> float:
        """Capacity in GB (decimal)."""
        return self.total_bytes / (1000**3)

    @property
    def free_gb(self) -> float:
        """Free space in GB (decimal)."""
        return self.available_bytes / (1000**3)


class SizedNode(BaseModel):
    """A measured file or directory.

    Directory sizes are the sum of their children's sizes. Children are kept
    sorted largest first. Entries the scanner could not measure exactly are
    still present in the tree, flagged with ``estimated``, ``skipped`` or
    ``error`` so totals stay auditable.
    """

    name: str = Field(..., description="Base name of the entry (or the root path)")
    size_bytes: int = Field(0, ge=0, description="Size in bytes")
    kind: NodeKind = Field(..., description="File or directory")
    children: list["SizedNode"] = Field(
        default_factory=list, description="Measured children, largest first"
    )
    estimated: bool = Field(
        False, description="Size comes from a bounded estimate, not a full walk"
    )
    skipped: bool = Field(False, description="Entry excluded by the path classifier")
    error: Optional[str] = Field(None, description="Why the entry could not be read")

    @property
    def is_directory(self) -> bool:
        return self.kind == NodeKind.DIRECTORY

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.size_bytes)

    def find(self, relative_path: str) -> Optional["SizedNode"]:
        """Look up a descendant by a ``/``-separated path relative to this node."""
        node: Optional[SizedNode] = self
        for part in [p for p in relative_path.replace("\\", "/").split("/") if p]:
            if node is None:
                return None
            node = next((c for c in node.children if c.name == part), None)
        return node

    def iter_nodes(self) -> Iterator["SizedNode"]:
        """Yield this node and all descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()


class CacheEntry(BaseModel):
    """A cached scan result for one path key."""

    path_key: str = Field(..., description="Normalized path the tree was computed for")
    node: SizedNode
    computed_at: datetime = Field(default_factory=datetime.now)


class CacheState(BaseModel):
    """Everything the scan cache persists."""

    entries: dict[str, CacheEntry] = Field(default_factory=dict)
    volumes: list[VolumeInfo] = Field(default_factory=list)
    volumes_updated: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class Settings(BaseModel):
    """User preferences for scanning and display."""

    auto_refresh: bool = Field(False, description="Periodically refresh open views")
    refresh_interval: int = Field(60, ge=1, description="Auto-refresh interval in seconds")
    exclude_paths: list[str] = Field(
        default_factory=list, description="Paths never descended into"
    )
    show_hidden_files: bool = Field(False, description="Include dot/$-prefixed entries")
    dark_mode: bool = Field(False, description="UI theme preference")
    max_depth: int = Field(5, ge=0, description="Levels scanned exactly below the root")
    volume_root_depth: int = Field(
        2, ge=0, description="Depth cap for top-level entries of a whole volume"
    )
    cache_ttl_seconds: int = Field(
        0, ge=0, description="Age after which cached trees count as stale (0 = never)"
    )
    follow_symlinks: bool = Field(True, description="Measure symlink targets")


class ScanOptions(BaseModel):
    """Parameters for a single scan."""

    max_depth: int = Field(5, ge=0, description="Exact-scan depth budget")
    respect_classifier: bool = Field(True, description="Apply the skip rules")
    follow_symlinks: bool = Field(True, description="Measure symlink targets")
    volume_root_depth: int = Field(
        2, ge=0, description="Levels walked exactly in volume-root mode, top-level entries included"
    )
    estimate_depth: int = Field(1, ge=0, description="Levels summed by the estimator")
    estimate_entry_limit: int = Field(
        10_000, ge=1, description="Entries the estimator may visit"
    )
    full_volume_scan: bool = Field(
        False, description="Walk a whole volume instead of the shallow root strategy"
    )
    volume_paths: list[str] = Field(
        default_factory=list, description="Known volume mount points (normalized)"
    )

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "ScanOptions":
        values: dict[str, Any] = {
            "max_depth": settings.max_depth,
            "volume_root_depth": settings.volume_root_depth,
            "follow_symlinks": settings.follow_symlinks,
        }
        values.update(overrides)
        return cls(**values)


class VolumeListing(BaseModel):
    """Result of a volume enumeration."""

    volumes: list[VolumeInfo] = Field(default_factory=list)
    last_updated: Optional[datetime] = None
    degraded: bool = Field(
        False, description="Served stale or hard-coded data after a failed enumeration"
    )


class AnalyzeResult(BaseModel):
    """Result of analyzing a path."""

    success: bool = Field(True, description="Whether the root could be scanned")
    path: str = Field(..., description="Normalized path that was analyzed")
    tree: SizedNode
    last_updated: Optional[datetime] = None
    from_cache: bool = Field(False, description="Served from the scan cache")
    category: Optional[ErrorCategory] = None
    message: Optional[str] = None


class DeleteResult(BaseModel):
    """Result of a deletion request."""

    success: bool
    message: str
    path: str = Field(..., description="Normalized path that was targeted")
    category: Optional[ErrorCategory] = None
    dry_run: bool = Field(False, description="Whether this was a dry run")


class DiskEvent(BaseModel):
    """Push notification emitted after scans, deletions and volume refreshes."""

    type: str = Field(..., description="'analysis', 'deleted' or 'volumes'")
    path: Optional[str] = None
    payload: Optional[dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=datetime.now)
