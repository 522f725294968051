"""
Package descriptor parsing.

Walks ``META-INF/container.xml`` to the root package document and extracts
metadata, manifest and reading order from it.
"""

import logging
from typing import Any, Optional

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DefusedET

from .container import EPUBArchive
from .errors import EPUBError, ErrorKind
from .models import (
    DEFAULT_AUTHOR,
    DEFAULT_TITLE,
    ManifestItem,
    PackageDocument,
    resolve_href,
)

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
PACKAGE_MEDIA_TYPE = "application/oebps-package+xml"

_XML_ERRORS = (DefusedET.ParseError, DefusedXmlException, ValueError)


def _parse_xml(data: bytes) -> Any:
    return DefusedET.fromstring(data)


def _text_of(element: Any) -> Optional[str]:
    if element is None:
        return None
    text = "".join(element.itertext()).strip()
    return " ".join(text.split()) or None


def find_package_path(archive: EPUBArchive) -> str:
    """
    Read the root package path from the container descriptor.

    Raises:
        EPUBError: ``MissingDescriptor`` if the descriptor entry is absent
            or unreadable, ``MissingPackagePath`` if it holds no usable path.
    """
    if CONTAINER_PATH not in archive:
        raise EPUBError(
            ErrorKind.MISSING_DESCRIPTOR,
            f"Invalid EPUB: missing {CONTAINER_PATH}",
            path=CONTAINER_PATH,
        )
    try:
        data = archive.read_bytes(CONTAINER_PATH)
    except EPUBError as e:
        raise EPUBError(
            ErrorKind.MISSING_DESCRIPTOR,
            f"Failed to read {CONTAINER_PATH}: {e.message}",
            path=CONTAINER_PATH,
        ) from e

    try:
        root = _parse_xml(data)
    except _XML_ERRORS as e:
        raise EPUBError(
            ErrorKind.MISSING_PACKAGE_PATH,
            f"Failed to parse {CONTAINER_PATH}: {e}",
            path=CONTAINER_PATH,
        ) from e

    candidates: list[str] = []
    for rootfile in root.findall(".//{*}rootfile"):
        full_path = (rootfile.get("full-path") or "").strip()
        if not full_path:
            continue
        if rootfile.get("media-type", PACKAGE_MEDIA_TYPE) == PACKAGE_MEDIA_TYPE:
            candidates.insert(0, full_path)
        else:
            candidates.append(full_path)

    if not candidates:
        raise EPUBError(
            ErrorKind.MISSING_PACKAGE_PATH,
            f"Invalid EPUB: no package path in {CONTAINER_PATH}",
            path=CONTAINER_PATH,
        )
    logger.debug(f"Package path candidates: {candidates}")
    return candidates[0].lstrip("/")


def parse_package_document(data: bytes, path: str) -> PackageDocument:
    """
    Parse the bytes of a package document found at ``path``.

    Raises:
        EPUBError: ``UnreadablePackageFile`` if the XML is not well formed.
    """
    try:
        root = _parse_xml(data)
    except _XML_ERRORS as e:
        raise EPUBError(
            ErrorKind.UNREADABLE_PACKAGE_FILE,
            f"Failed to parse package file {path}: {e}",
            path=path,
        ) from e

    metadata = root.find("{*}metadata")
    scope = metadata if metadata is not None else root
    title = _text_of(scope.find(".//{*}title")) or DEFAULT_TITLE
    author = _text_of(scope.find(".//{*}creator")) or DEFAULT_AUTHOR

    manifest: dict[str, ManifestItem] = {}
    nav_id: Optional[str] = None
    manifest_el = root.find("{*}manifest")
    if manifest_el is not None:
        for item in manifest_el.findall("{*}item"):
            item_id = item.get("id")
            href = item.get("href")
            if not item_id or not href:
                logger.debug(f"Skipping manifest item without id/href: {item.attrib}")
                continue
            properties = tuple((item.get("properties") or "").split())
            manifest[item_id] = ManifestItem(
                id=item_id,
                href=resolve_href(href, path),
                media_type=(item.get("media-type") or "").strip().lower(),
                properties=properties,
            )
            if nav_id is None and "nav" in properties:
                nav_id = item_id
    else:
        logger.warning(f"Package file {path} has no <manifest>")

    spine: list[str] = []
    ncx_id: Optional[str] = None
    spine_el = root.find("{*}spine")
    if spine_el is not None:
        ncx_id = spine_el.get("toc") or None
        for itemref in spine_el.findall("{*}itemref"):
            idref = itemref.get("idref")
            if idref:
                spine.append(idref)
    else:
        logger.warning(f"Package file {path} has no <spine>")

    logger.info(
        f"Parsed package '{title}' by {author}: "
        f"{len(manifest)} manifest items, {len(spine)} spine entries"
    )
    return PackageDocument(
        path=path,
        title=title,
        author=author,
        spine=tuple(spine),
        manifest=manifest,
        nav_id=nav_id,
        ncx_id=ncx_id,
    )


def read_package(archive: EPUBArchive) -> PackageDocument:
    """
    Locate, load and parse the root package document of ``archive``.

    Raises:
        EPUBError: with one of the structural kinds (``MissingDescriptor``,
            ``MissingPackagePath``, ``MissingPackageFile``,
            ``UnreadablePackageFile``).
    """
    path = find_package_path(archive)
    try:
        data = archive.read_bytes(path)
    except EPUBError as e:
        kind = (
            ErrorKind.MISSING_PACKAGE_FILE
            if e.kind is ErrorKind.RESOURCE_NOT_FOUND
            else ErrorKind.UNREADABLE_PACKAGE_FILE
        )
        raise EPUBError(
            kind, f"Invalid EPUB: cannot load package file {path}: {e.message}", path
        ) from e
    return parse_package_document(data, path)
