"""Path canonicalization for cache keys and scan roots.

Cache keys always use ``/`` as separator, whatever the host platform, so a
path typed as ``C:\\Users`` and one typed as ``c:/Users/`` share one entry.
Filesystem calls convert back with :func:`to_native`.
"""

import os
import posixpath
import re
from pathlib import Path
from typing import Iterable, Iterator

ROOT_TOKEN = "root"

_DRIVE_RE = re.compile(r"^([A-Za-z]):(.*)$", re.DOTALL)
_ANCHOR_RE = re.compile(r"^(?:/|[A-Z]:/)$")


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


def primary_root() -> str:
    """Canonical form of the platform's primary volume root."""
    if os.name == "nt":
        drive = os.environ.get("SystemDrive", "C:") or "C:"
        return f"{drive[0].upper()}:/"
    return "/"


def _expand(text: str) -> str:
    try:
        return os.path.expanduser(os.path.expandvars(text))
    except (ValueError, OSError):
        # e.g. embedded NUL in a "~user" lookup
        return text


def normalize(user_path: str) -> str:
    """Canonicalize a user-supplied path into its cache-key form.

    Never raises, and ``normalize(normalize(p)) == normalize(p)``.
    """
    text = (user_path or "").strip()
    if not text or text.lower() == ROOT_TOKEN:
        return primary_root()

    text = _expand(text)
    if os.name == "nt" and len(text) == 1 and text.isalpha():
        text = f"{text}:"
    text = text.replace("\\", "/")

    if not _DRIVE_RE.match(text) and not text.startswith("/"):
        text = os.path.abspath(text).replace("\\", "/")

    match = _DRIVE_RE.match(text)
    if match:
        drive, rest = match.group(1).upper(), match.group(2)
        return f"{drive}:" + posixpath.normpath("/" + rest.lstrip("/"))

    return posixpath.normpath(text)


def to_native(path_key: str) -> str:
    """Convert a canonical key to the platform's native separator."""
    if os.sep == "/":
        return path_key
    return path_key.replace("/", os.sep)


def is_anchor(path_key: str) -> bool:
    """True for ``/`` and drive roots such as ``C:/``."""
    return bool(_ANCHOR_RE.match(path_key))


def is_volume_root(path_key: str, volume_paths: Iterable[str] = ()) -> bool:
    """True if the key is an anchor or the mount point of a known volume."""
    if is_anchor(path_key):
        return True
    return any(normalize(p) == path_key for p in volume_paths)


def is_descendant(path_key: str, ancestor_key: str) -> bool:
    """True if ``path_key`` lies strictly below ``ancestor_key``."""
    prefix = ancestor_key if ancestor_key.endswith("/") else ancestor_key + "/"
    return path_key != ancestor_key and path_key.startswith(prefix)


def parent_keys(path_key: str) -> Iterator[str]:
    """Yield every ancestor key, nearest first, ending at the root."""
    drive = ""
    rest = path_key
    match = _DRIVE_RE.match(path_key)
    if match:
        drive, rest = f"{match.group(1)}:", match.group(2) or "/"

    current = rest
    while True:
        parent = posixpath.dirname(current)
        if parent == current or not parent:
            return
        yield drive + parent
        current = parent


def display_name(path_key: str) -> str:
    """Base name of a key, or the key itself for roots."""
    return posixpath.basename(path_key) or path_key
