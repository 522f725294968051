"""
Archive access for EPUB containers.

Only archive integrity and entry lookup live here; nothing in this module
knows about chapters.
"""

import io
import logging
import zipfile
import zlib
from typing import Optional

from .errors import EPUBError, ErrorKind

logger = logging.getLogger(__name__)

EPUB_MIMETYPE = "application/epub+zip"
_ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")


class EPUBArchive:
    """
    Read-only handle on an EPUB's ZIP container.

    The handle is owned by the parse that opened it. Entry reads are safe
    from worker threads because ``zipfile`` serializes access to the
    underlying buffer.
    """

    def __init__(self, zf: zipfile.ZipFile):
        self._zip = zf
        self._names = {info.filename: info for info in zf.infolist()}
        # Case-insensitive lookup table for sloppy producers
        self._folded = {name.lower(): name for name in self._names}

    @classmethod
    def from_bytes(cls, data: bytes) -> "EPUBArchive":
        """
        Open an archive from raw bytes.

        Raises:
            EPUBError: ``CorruptArchive`` when the bytes are not a ZIP file
                at all, or when they look like one but cannot be opened.
        """
        if not data:
            raise EPUBError(ErrorKind.CORRUPT_ARCHIVE, "Not an archive: input is empty")

        buffer = io.BytesIO(data)
        if not data.startswith(_ZIP_SIGNATURES) and not zipfile.is_zipfile(buffer):
            raise EPUBError(
                ErrorKind.CORRUPT_ARCHIVE,
                "Not an archive: input does not start with a ZIP signature",
            )

        try:
            zf = zipfile.ZipFile(buffer)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
            raise EPUBError(
                ErrorKind.CORRUPT_ARCHIVE, f"Archive is corrupt: {e}"
            ) from e

        archive = cls(zf)
        logger.info(f"Opened archive with {len(archive._names)} entries")
        archive._check_mimetype()
        return archive

    def _check_mimetype(self) -> None:
        if "mimetype" not in self._names:
            logger.warning("Archive has no 'mimetype' entry")
            return
        try:
            declared = self._zip.read("mimetype").decode("ascii", errors="ignore")
        except (zipfile.BadZipFile, zlib.error, OSError) as e:
            logger.warning(f"Could not read 'mimetype' entry: {e}")
            return
        if declared.strip() != EPUB_MIMETYPE:
            logger.warning(f"Unexpected mimetype '{declared.strip()}'")

    def names(self) -> list[str]:
        return list(self._names)

    def find(self, path: str) -> Optional[str]:
        """Return the stored entry name for ``path``, or None."""
        if path in self._names:
            return path
        return self._folded.get(path.lower())

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.find(path) is not None

    def read_bytes(self, path: str) -> bytes:
        """
        Read one entry.

        Raises:
            EPUBError: ``ResourceNotFound`` if there is no such entry,
                ``ResourceUnreadable`` if it cannot be decompressed.
        """
        name = self.find(path)
        if name is None:
            raise EPUBError(
                ErrorKind.RESOURCE_NOT_FOUND, f"No entry at path {path}", path=path
            )
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, zlib.error, OSError, EOFError, RuntimeError) as e:
            raise EPUBError(
                ErrorKind.RESOURCE_UNREADABLE,
                f"Failed to read entry {path}: {e}",
                path=path,
            ) from e

    def read_text(self, path: str) -> str:
        """Read one entry as UTF-8, dropping undecodable bytes."""
        return self.read_bytes(path).decode("utf-8-sig", errors="ignore")

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "EPUBArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
