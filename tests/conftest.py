"""Shared fixtures: EPUB packages assembled in memory with zipfile."""

import io
import zipfile
from typing import Callable, Optional, Sequence

import pytest

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

XHTML = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>{title}</title><style>p {{ margin: 0; }}</style></head>
<body>
{body}
</body>
</html>
"""


def xhtml(body: str, title: str = "") -> str:
    return XHTML.format(body=body, title=title)


def _nav_items(entries: Sequence[tuple]) -> str:
    parts = []
    for entry in entries:
        href, label = entry[0], entry[1]
        children = entry[2] if len(entry) > 2 else ()
        inner = f'<a href="{href}">{label}</a>'
        if children:
            inner += f"<ol>{_nav_items(children)}</ol>"
        parts.append(f"<li>{inner}</li>")
    return "".join(parts)


def nav_document(entries: Sequence[tuple]) -> str:
    return xhtml(
        f'<nav epub:type="toc" id="toc"><h1>Contents</h1>'
        f"<ol>{_nav_items(entries)}</ol></nav>",
        "Contents",
    )


def _nav_points(entries: Sequence[tuple], counter: list[int]) -> str:
    parts = []
    for entry in entries:
        href, label = entry[0], entry[1]
        children = entry[2] if len(entry) > 2 else ()
        counter[0] += 1
        parts.append(
            f'<navPoint id="np{counter[0]}" playOrder="{counter[0]}">'
            f"<navLabel><text>{label}</text></navLabel>"
            f'<content src="{href}"/>'
            f"{_nav_points(children, counter)}</navPoint>"
        )
    return "".join(parts)


def ncx_document(entries: Sequence[tuple]) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">'
        "<head/><docTitle><text>Book</text></docTitle>"
        f"<navMap>{_nav_points(entries, [0])}</navMap></ncx>"
    )


def build_epub(
    docs: Sequence[tuple[str, str, str]],
    title: Optional[str] = "Test Book",
    author: Optional[str] = "Test Author",
    nav: Optional[Sequence[tuple]] = None,
    ncx: Optional[Sequence[tuple]] = None,
    spine: Optional[Sequence[str]] = None,
    omit: Sequence[str] = (),
    mimetype: Optional[str] = "application/epub+zip",
    package_dir: str = "OEBPS",
    container_xml: Optional[str] = None,
    opf: Optional[str] = None,
    extra_manifest: Sequence[str] = (),
) -> bytes:
    """
    Assemble an EPUB as bytes.

    Args:
        docs: (manifest id, href relative to the package, markup) triples
        nav: EPUB3 navigation entries as (href, label[, children]) tuples
        ncx: EPUB2 NCX entries, same shape as ``nav``
        spine: Reading-order idrefs (default: the ids of ``docs``)
        omit: Archive paths to leave out of the ZIP
        container_xml: Replaces the generated META-INF/container.xml
        opf: Replaces the generated package document
        extra_manifest: Raw <item> elements appended to the manifest
    """
    prefix = f"{package_dir}/" if package_dir else ""
    opf_path = f"{prefix}content.opf"

    manifest = [
        f'<item id="{item_id}" href="{href}" media-type="application/xhtml+xml"/>'
        for item_id, href, _ in docs
    ]
    if nav is not None:
        manifest.append(
            '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" '
            'properties="nav"/>'
        )
    if ncx is not None:
        manifest.append(
            '<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>'
        )
    manifest.extend(extra_manifest)

    spine_ids = spine if spine is not None else [item_id for item_id, _, _ in docs]
    toc_attr = ' toc="ncx"' if ncx is not None else ""
    metadata = ""
    if title is not None:
        metadata += f"<dc:title>{title}</dc:title>"
    if author is not None:
        metadata += f"<dc:creator>{author}</dc:creator>"

    package = opf or (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<package xmlns="http://www.idpf.org/2007/opf" version="3.0" '
        'unique-identifier="uid">'
        '<metadata xmlns:dc="http://purl.org/dc/elements/1.1/">'
        f'<dc:identifier id="uid">urn:uuid:test</dc:identifier>{metadata}</metadata>'
        f"<manifest>{''.join(manifest)}</manifest>"
        f"<spine{toc_attr}>"
        + "".join(f'<itemref idref="{idref}"/>' for idref in spine_ids)
        + "</spine></package>"
    )

    entries: dict[str, str] = {
        "META-INF/container.xml": container_xml or CONTAINER_XML.format(path=opf_path),
        opf_path: package,
    }
    for _, href, markup in docs:
        entries[f"{prefix}{href}"] = markup
    if nav is not None:
        entries[f"{prefix}nav.xhtml"] = nav_document(nav)
    if ncx is not None:
        entries[f"{prefix}toc.ncx"] = ncx_document(ncx)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        if mimetype is not None:
            zf.writestr("mimetype", mimetype, compress_type=zipfile.ZIP_STORED)
        for path, content in entries.items():
            if path not in omit:
                zf.writestr(path, content)
    return buffer.getvalue()


@pytest.fixture
def epub_factory() -> Callable[..., bytes]:
    """Builder for in-memory EPUB packages."""
    return build_epub


@pytest.fixture
def three_chapter_docs() -> list[tuple[str, str, str]]:
    return [
        (
            "c1",
            "Text/ch1.xhtml",
            xhtml("<h1>The Beginning</h1><p>It was a quiet morning.</p>"),
        ),
        (
            "c2",
            "Text/ch2.xhtml",
            xhtml("<h1>The Middle</h1><p>Then the storm arrived.</p>"),
        ),
        (
            "c3",
            "Text/ch3.xhtml",
            xhtml("<h1>The End</h1><p>At last the sea was calm.</p>"),
        ),
    ]


@pytest.fixture
def xhtml_page() -> Callable[..., str]:
    return xhtml


def corrupt_entry(data: bytes, name: str) -> bytes:
    """Flip every stored byte of one entry so it no longer inflates."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        info = zf.getinfo(name)
    offset = info.header_offset
    # Local header: 30 fixed bytes, then file name and extra field
    name_len = int.from_bytes(data[offset + 26 : offset + 28], "little")
    extra_len = int.from_bytes(data[offset + 28 : offset + 30], "little")
    start = offset + 30 + name_len + extra_len
    end = start + info.compress_size
    flipped = bytes(b ^ 0xFF for b in data[start:end])
    return data[:start] + flipped + data[end:]


@pytest.fixture
def entry_corrupter() -> Callable[[bytes, str], bytes]:
    return corrupt_entry
