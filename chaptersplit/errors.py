"""Error kinds reported by the chapter extraction engine."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of failure a parse can report."""

    CORRUPT_ARCHIVE = "CorruptArchive"
    MISSING_DESCRIPTOR = "MissingDescriptor"
    MISSING_PACKAGE_PATH = "MissingPackagePath"
    MISSING_PACKAGE_FILE = "MissingPackageFile"
    UNREADABLE_PACKAGE_FILE = "UnreadablePackageFile"
    RESOURCE_NOT_FOUND = "ResourceNotFound"
    RESOURCE_UNREADABLE = "ResourceUnreadable"
    NO_READABLE_CONTENT = "NoReadableContent"
    UNSUPPORTED_MEDIA_TYPE = "UnsupportedMediaType"

    @property
    def fatal(self) -> bool:
        """Whether this kind aborts the whole parse."""
        return self not in (ErrorKind.RESOURCE_NOT_FOUND, ErrorKind.RESOURCE_UNREADABLE)


class EPUBError(ValueError):
    """
    Raised by the container and package layers.

    The public ``parse_*`` functions catch it and turn it into a failed
    ParseResult, so callers of those functions never see it.
    """

    def __init__(self, kind: ErrorKind, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = path

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
