"""Exception taxonomy for spacemap."""

import errno
from typing import Optional

from spacemap.models import ErrorCategory

_BUSY_ERRNOS = {errno.EBUSY, errno.ETXTBSY}
_NOT_FOUND_ERRNOS = {errno.ENOENT, errno.ENOTDIR}
_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}

MESSAGES = {
    ErrorCategory.PERMISSION_DENIED: (
        "Permission denied. Try running with administrator privileges "
        "or check file permissions."
    ),
    ErrorCategory.RESOURCE_BUSY: (
        "File or directory is in use by another process. Close any applications "
        "using this path and try again."
    ),
    ErrorCategory.NOT_FOUND: "File or directory not found.",
    ErrorCategory.PROTECTED: "Refusing to delete a protected location.",
    ErrorCategory.OTHER: "Failed to delete path.",
}


def classify_os_error(exc: BaseException) -> ErrorCategory:
    """Map an OSError to a surfaced failure category."""
    if isinstance(exc, PermissionError):
        return ErrorCategory.PERMISSION_DENIED
    if isinstance(exc, (FileNotFoundError, NotADirectoryError)):
        return ErrorCategory.NOT_FOUND
    code = getattr(exc, "errno", None)
    if code in _PERMISSION_ERRNOS:
        return ErrorCategory.PERMISSION_DENIED
    if code in _BUSY_ERRNOS:
        return ErrorCategory.RESOURCE_BUSY
    if code in _NOT_FOUND_ERRNOS:
        return ErrorCategory.NOT_FOUND
    return ErrorCategory.OTHER


class SpacemapError(Exception):
    """Base class for spacemap failures."""

    category = ErrorCategory.OTHER

    def __init__(self, message: str, category: Optional[ErrorCategory] = None) -> None:
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category


class RootUnreadableError(SpacemapError):
    """The scan root itself could not be stat'ed or listed."""

    category = ErrorCategory.ROOT_UNREADABLE

    def __init__(self, path: str, reason: ErrorCategory = ErrorCategory.OTHER) -> None:
        self.path = path
        self.reason = reason
        detail = {
            ErrorCategory.PERMISSION_DENIED: "permission denied",
            ErrorCategory.NOT_FOUND: "path does not exist",
            ErrorCategory.RESOURCE_BUSY: "resource busy",
        }.get(reason, "unreadable")
        super().__init__(f"Cannot read {path}: {detail}")


class PlatformCommandError(SpacemapError):
    """The volume listing command failed or produced unusable output."""

    category = ErrorCategory.PLATFORM_COMMAND_FAILED


class CacheCorruptError(SpacemapError):
    """Persisted cache data could not be decoded."""

    category = ErrorCategory.CACHE_CORRUPT
