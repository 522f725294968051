"""
Navigation document resolution.

Parses EPUB3 NAV HTML and EPUB2 NCX tables of contents into a tree of
NavPoint values and reconciles it with the package reading order.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from bs4 import BeautifulSoup  # type: ignore[import-untyped]
from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DefusedET

from .container import EPUBArchive
from .errors import EPUBError
from .models import ChapterSource, NavPoint, PackageDocument, resolve_href

logger = logging.getLogger(__name__)

NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
CONTENT_MEDIA_TYPES = frozenset(
    {
        "application/xhtml+xml",
        "text/html",
        "application/xml",
        "text/xml",
        "application/x-dtbook+xml",
    }
)
MAX_OUTLINE_DEPTH = 32
UNTITLED_SECTION = "Untitled Section"

_TOC_TYPE = re.compile(r"\btoc\b")


@dataclass(frozen=True)
class ChapterPlan:
    """A chapter decided on before its text is loaded."""

    id: str
    path: str
    title: str
    level: int
    source: ChapterSource


def _label(text: str) -> str:
    return " ".join(text.split())


def parse_nav_html(
    html: str, nav_path: str, max_depth: int = MAX_OUTLINE_DEPTH
) -> list[NavPoint]:
    """
    Parse an EPUB3 navigation document into an outline.

    Args:
        html: Markup of the navigation document
        nav_path: Archive path of the document, used to resolve hrefs
        max_depth: Entries nested deeper than this are dropped

    Returns:
        Top-level NavPoints, hrefs resolved to archive paths (fragments kept)
    """
    soup = BeautifulSoup(html, "html.parser")
    toc_nav = soup.find("nav", attrs={"epub:type": _TOC_TYPE})
    if not toc_nav:
        # Fallback: any <nav> with an <ol>
        toc_nav = next((nav for nav in soup.find_all("nav") if nav.find("ol")), None)
        if toc_nav:
            logger.info("Found fallback TOC in <nav> with <ol>")
    if not toc_nav:
        logger.warning(f"Could not find TOC structure in {nav_path}")
        return []

    top_ol = toc_nav.find("ol")
    if not top_ol:
        logger.warning(f"Found <nav> but no <ol> in {nav_path}")
        return []

    outline: list[NavPoint] = []
    stack: list[tuple[Any, list[NavPoint], int]] = [(top_ol, outline, 0)]
    while stack:
        ol, siblings, depth = stack.pop()
        if depth >= max_depth:
            logger.warning(f"Navigation nested deeper than {max_depth}; truncating")
            continue
        for li in ol.find_all("li", recursive=False):
            link = li.find("a", recursive=False)
            span = li.find("span", recursive=False)
            href: Optional[str] = None
            title = ""
            if link is not None:
                title = _label(link.get_text(" "))
                raw_href = link.get("href")
                if raw_href:
                    href = _resolve_with_fragment(raw_href, nav_path)
            if not title and span is not None:
                title = _label(span.get_text(" "))
            node = NavPoint(label=title or UNTITLED_SECTION, href=href)
            siblings.append(node)
            for child_ol in li.find_all("ol", recursive=False):
                stack.append((child_ol, node.children, depth + 1))
    return outline


def parse_ncx(
    data: bytes, ncx_path: str, max_depth: int = MAX_OUTLINE_DEPTH
) -> list[NavPoint]:
    """
    Parse an EPUB2 NCX document into an outline.

    Raises:
        ValueError: If the NCX is not well-formed XML
    """
    root = DefusedET.fromstring(data)
    nav_map = root.find("{*}navMap")
    if nav_map is None:
        logger.warning(f"Could not find <navMap> in {ncx_path}")
        return []

    outline: list[NavPoint] = []
    stack: list[tuple[Any, list[NavPoint], int]] = [(nav_map, outline, 0)]
    while stack:
        element, siblings, depth = stack.pop()
        if depth >= max_depth:
            logger.warning(f"NCX nested deeper than {max_depth}; truncating")
            continue
        for nav_point in element.findall("{*}navPoint"):
            text_el = nav_point.find("{*}navLabel/{*}text")
            title = _label("".join(text_el.itertext())) if text_el is not None else ""
            content = nav_point.find("{*}content")
            src = content.get("src") if content is not None else None
            node = NavPoint(
                label=title or UNTITLED_SECTION,
                href=_resolve_with_fragment(src, ncx_path) if src else None,
            )
            siblings.append(node)
            stack.append((nav_point, node.children, depth + 1))
    return outline


def _resolve_with_fragment(href: str, relative_to: str) -> str:
    fragment = href.split("#", 1)[1] if "#" in href else ""
    path = resolve_href(href, relative_to)
    return f"{path}#{fragment}" if fragment else path


def flatten_outline(
    outline: list[NavPoint], max_depth: int = MAX_OUTLINE_DEPTH
) -> list[tuple[NavPoint, int]]:
    """
    Walk ``outline`` depth-first in document order.

    Uses an explicit stack and a visited set, so a malformed outline that
    shares or cycles nodes cannot recurse without bound.

    Returns:
        (node, depth) pairs, top-level entries at depth 0
    """
    flat: list[tuple[NavPoint, int]] = []
    visited: set[int] = set()
    stack: list[tuple[NavPoint, int]] = [(node, 0) for node in reversed(outline)]
    while stack:
        node, depth = stack.pop()
        if id(node) in visited:
            logger.warning(f"Navigation entry '{node.label}' visited twice; skipping")
            continue
        visited.add(id(node))
        flat.append((node, depth))
        if depth + 1 >= max_depth:
            continue
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return flat


def _load_outline(
    archive: EPUBArchive, path: str, kind: str, max_depth: int
) -> list[NavPoint]:
    try:
        if kind == "html":
            return parse_nav_html(archive.read_text(path), path, max_depth)
        return parse_ncx(archive.read_bytes(path), path, max_depth)
    except EPUBError as e:
        logger.warning(f"Navigation document {path} unavailable: {e.message}")
    except (DefusedET.ParseError, DefusedXmlException, ValueError) as e:
        logger.warning(f"Failed to parse navigation document {path}: {e}")
    return []


def resolve_navigation(
    archive: EPUBArchive,
    package: PackageDocument,
    max_depth: int = MAX_OUTLINE_DEPTH,
) -> Optional[list[NavPoint]]:
    """
    Find and parse the package's navigation document.

    Tries the EPUB3 NAV document (manifest item with ``properties="nav"``),
    then the NCX named by the spine's ``toc`` attribute, then any NCX in
    the manifest.

    Returns:
        The outline, or None when no navigation document yields any entry
    """
    candidates: list[tuple[str, str]] = []
    if package.nav_id and package.nav_id in package.manifest:
        candidates.append((package.manifest[package.nav_id].href, "html"))
    if package.ncx_id and package.ncx_id in package.manifest:
        candidates.append((package.manifest[package.ncx_id].href, "ncx"))
    for item in package.manifest.values():
        if item.media_type == NCX_MEDIA_TYPE:
            candidates.append((item.href, "ncx"))

    seen: set[str] = set()
    for path, kind in candidates:
        if path in seen:
            continue
        seen.add(path)
        outline = _load_outline(archive, path, kind, max_depth)
        if outline:
            logger.info(f"Using navigation document {path} ({kind})")
            return outline

    logger.info("No usable navigation document; falling back to reading order")
    return None


def _build_title_index(
    outline: list[NavPoint], max_depth: int
) -> dict[str, tuple[str, int]]:
    """Map each target path to the label and depth of its first entry."""
    index: dict[str, tuple[str, int]] = {}
    for node, depth in flatten_outline(outline, max_depth):
        if not node.href:
            continue
        path = node.href.split("#", 1)[0]
        if path and path not in index:
            index[path] = (node.label, depth)
    return index


def match_nav_title(
    path: str, title_index: dict[str, tuple[str, int]]
) -> Optional[tuple[str, int]]:
    """
    Look up the navigation label for a reading-order path.

    Exact path match first, then a suffix match on a path-segment boundary
    in either direction.
    """
    if path in title_index:
        return title_index[path]
    lowered = path.lower()
    for nav_path, entry in title_index.items():
        nav_lower = nav_path.lower()
        if nav_lower == lowered:
            return entry
        if lowered.endswith("/" + nav_lower) or nav_lower.endswith("/" + lowered):
            return entry
    return None


def reading_order_items(package: PackageDocument) -> list[tuple[str, str]]:
    """
    Reading-order entries that hold narratable markup.

    Returns:
        (manifest id, archive path) pairs in spine order
    """
    items: list[tuple[str, str]] = []
    for idref in package.spine:
        item = package.manifest.get(idref)
        if item is None:
            logger.warning(f"Spine item with id '{idref}' not found in manifest")
            continue
        if idref == package.nav_id:
            logger.debug(f"Skipping navigation document '{idref}' in spine")
            continue
        if item.media_type not in CONTENT_MEDIA_TYPES:
            logger.debug(f"Skipping spine item '{idref}' of type {item.media_type}")
            continue
        items.append((idref, item.href))
    return items


def plan_chapters(
    package: PackageDocument,
    outline: Optional[list[NavPoint]],
    max_depth: int = MAX_OUTLINE_DEPTH,
) -> list[ChapterPlan]:
    """
    Decide chapter order and titles.

    Order always follows the reading order. Titles come from the
    navigation outline where a reading-order path matches an entry;
    everything else keeps a generic "Chapter N" title.
    """
    title_index = _build_title_index(outline, max_depth) if outline else {}
    plans: list[ChapterPlan] = []
    unmatched = 0
    for position, (item_id, path) in enumerate(reading_order_items(package), 1):
        match = match_nav_title(path, title_index)
        if match is not None:
            label, depth = match
            plans.append(
                ChapterPlan(item_id, path, label, depth, ChapterSource.NAVIGATION)
            )
        else:
            if title_index:
                unmatched += 1
            plans.append(
                ChapterPlan(
                    item_id,
                    path,
                    f"Chapter {position}",
                    0,
                    ChapterSource.READING_ORDER,
                )
            )
    if unmatched:
        logger.info(f"{unmatched} reading-order entries have no navigation title")
    return plans
