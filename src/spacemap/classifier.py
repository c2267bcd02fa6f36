"""Skip rules applied to every entry before it is measured."""

import os
from typing import AbstractSet, Iterable, Optional

from spacemap.models import Settings
from spacemap.paths import normalize

# Reserved/system locations. Matched case-insensitively against the path with
# "/" separators and a trailing "/", so each marker is a whole segment.
RESERVED_MARKERS = (
    # Recycle bins and trash metadata
    "/$recycle.bin/",
    "/recycler/",
    "/.trashes/",
    # Page, swap and hibernation files
    "/pagefile.sys/",
    "/swapfile.sys/",
    "/hiberfil.sys/",
    "/dumpstack.log/",
    "/dumpstack.log.tmp/",
    # Volume metadata
    "/system volume information/",
    "/.spotlight-v100/",
    "/.fseventsd/",
    "/.documentrevisions-v100/",
    "/.temporaryitems/",
    "/.vol/",
    # OS-reserved folders and boot files
    "/windows/",
    "/windows.old/",
    "/program files",
    "/programdata/",
    "/windowsapps/",
    "/wpsystem/",
    "/msocache/",
    "/recovery/",
    "/documents and settings/",
    "/$windows.~bt/",
    "/$windows.~ws/",
    "/$getcurrent/",
    "/$sysreset/",
    "/$winreagent/",
    "/bootmgr/",
    "/bootnxt/",
    "/config.sys/",
    "/ntuser.dat/",
    "/desktop.ini/",
)

# Kernel-provided pseudo filesystems, skipped only at the top of a POSIX tree
VIRTUAL_ROOTS = ("/proc/", "/sys/", "/dev/", "/run/")

HIDDEN_PREFIXES = (".", "$")


def _match_form(path: str) -> str:
    return path.replace("\\", "/").lower().rstrip("/") + "/"


def _is_ancestor_or_self(candidate: str, path: str) -> bool:
    candidate = candidate.rstrip(os.sep) + os.sep
    return (path.rstrip(os.sep) + os.sep).startswith(candidate)


def is_symlink_cycle(link_target: str, ancestors: AbstractSet[str]) -> bool:
    """True if following a link to ``link_target`` would re-enter the scan chain."""
    return any(_is_ancestor_or_self(link_target, ancestor) for ancestor in ancestors)


def skip_reason(
    path: str,
    *,
    show_hidden: bool = False,
    exclude_paths: Iterable[str] = (),
    link_target: Optional[str] = None,
    ancestors: AbstractSet[str] = frozenset(),
) -> Optional[str]:
    """
    Decide whether an entry must be skipped, and why.

    Args:
        path: Absolute path of the entry (native or canonical separators)
        show_hidden: Whether dot/$-prefixed entries are wanted
        exclude_paths: User-excluded paths; the entry is skipped at or below them
        link_target: Resolved target if the entry is a symbolic link
        ancestors: Resolved directories on the current scan chain

    Returns:
        A short reason string, or None if the entry should be measured
    """
    form = _match_form(path)

    for marker in RESERVED_MARKERS:
        if marker in form:
            return f"reserved: {marker.strip('/')}"

    for root in VIRTUAL_ROOTS:
        if form.startswith(root):
            return "virtual filesystem"

    for excluded in exclude_paths:
        if form.startswith(_match_form(excluded)):
            return "excluded by settings"

    name = os.path.basename(path.replace("\\", "/").rstrip("/"))
    if not show_hidden and name.startswith(HIDDEN_PREFIXES):
        return "hidden"

    if link_target is not None and is_symlink_cycle(link_target, ancestors):
        return "symlink cycle"

    return None


def should_skip(path: str, **kwargs) -> bool:
    """Boolean form of :func:`skip_reason`."""
    return skip_reason(path, **kwargs) is not None


class PathClassifier:
    """Skip rules bound to a settings snapshot."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or Settings()
        self.show_hidden = settings.show_hidden_files
        self.exclude_paths = tuple(normalize(p) for p in settings.exclude_paths)

    def skip_reason(
        self,
        path: str,
        link_target: Optional[str] = None,
        ancestors: AbstractSet[str] = frozenset(),
    ) -> Optional[str]:
        return skip_reason(
            path,
            show_hidden=self.show_hidden,
            exclude_paths=self.exclude_paths,
            link_target=link_target,
            ancestors=ancestors,
        )

    def should_skip(
        self,
        path: str,
        link_target: Optional[str] = None,
        ancestors: AbstractSet[str] = frozenset(),
    ) -> bool:
        return self.skip_reason(path, link_target, ancestors) is not None
