"""Convert raw documentation sources into ordered sections.

Three formats are supported:

* HTML pages (crawled reference manuals), split on ``h1``..``h6``.
* Markdown files (DocFX style repositories), split on ATX headings.
* GNU info files, split on node separators with breadcrumbs from ``Up:`` links.

Every normalizer returns :class:`~docpacks.models.Section` records in document
order. A section that cannot be normalized is logged and skipped.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from docpacks.errors import ParseError
from docpacks.models import Section, SourceKind
from docpacks.utils.text import collapse_whitespace, normalize_whitespace

LOGGER = logging.getLogger(__name__)

PATH_SEPARATOR = " > "
DEFAULT_TITLE = "Document"

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
BLOCK_TAGS = [
    "p",
    "pre",
    "li",
    "dt",
    "dd",
    "td",
    "th",
    "tr",
    "blockquote",
    "div",
    "table",
    "section",
    "article",
    "figure",
    "caption",
]
DROP_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "template"]
DROP_CLASSES = ["navheader", "navfooter"]


def _build_path(stack: List[tuple[int, str]]) -> str:
    return PATH_SEPARATOR.join(title for _, title in stack)


def _push_heading(stack: List[tuple[int, str]], level: int, title: str) -> None:
    while stack and stack[-1][0] >= level:
        stack.pop()
    stack.append((level, title))


# --------------------------------------------------------------------------- HTML


def _heading_level(tag: Tag) -> int:
    return int(tag.name[1])


def _block_paragraphs(heading: Tag) -> List[str]:
    """Collect the text between ``heading`` and the next heading as paragraphs."""
    paragraphs: List[str] = []
    current: List[str] = []
    current_block: Optional[Tag] = None
    preformatted = False

    def flush() -> None:
        nonlocal current
        if current:
            if preformatted:
                text = normalize_whitespace("".join(current).splitlines())
            else:
                text = collapse_whitespace("".join(current))
            if text:
                paragraphs.append(text)
        current = []

    for element in heading.next_elements:
        if isinstance(element, Tag):
            if element.name in HEADING_TAGS:
                break
            continue
        if not isinstance(element, NavigableString) or isinstance(element, Comment):
            continue
        if element.find_parent(HEADING_TAGS) is not None:
            continue
        block = element.find_parent(BLOCK_TAGS)
        if block is not current_block:
            flush()
            current_block = block
            preformatted = block is not None and (
                block.name == "pre" or block.find_parent("pre") is not None
            )
        current.append(str(element))
    flush()
    return paragraphs


def _page_title(soup: BeautifulSoup) -> str:
    if soup.title is not None:
        title = collapse_whitespace(soup.title.get_text(" "))
        if title:
            return title
    return DEFAULT_TITLE


def _whole_page(soup: BeautifulSoup, title: str) -> List[Section]:
    root = soup.body or soup
    text = normalize_whitespace(root.get_text("\n").splitlines())
    if not text:
        return []
    return [Section(title=title, section_path=title, body=text)]


def normalize_html(html: str) -> List[Section]:
    """Split an HTML page into sections keyed by its heading hierarchy."""
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as exc:  # bs4 surfaces parser failures as assorted errors
        raise ParseError(f"Unparsable HTML: {exc}") from exc

    for tag in soup.find_all(DROP_TAGS):
        tag.decompose()
    for cls in DROP_CLASSES:
        for tag in soup.find_all(class_=cls):
            tag.decompose()

    default_title = _page_title(soup)
    headings = soup.find_all(HEADING_TAGS)
    if not headings:
        return _whole_page(soup, default_title)

    sections: List[Section] = []
    stack: List[tuple[int, str]] = []
    for heading in headings:
        title = collapse_whitespace(heading.get_text(" "))
        if not title:
            continue
        _push_heading(stack, _heading_level(heading), title)
        body = "\n\n".join(_block_paragraphs(heading))
        if not body:
            continue
        sections.append(Section(title=title, section_path=_build_path(stack), body=body))

    return sections or _whole_page(soup, default_title)


# ----------------------------------------------------------------------- Markdown

_ATX_HEADING = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t#]*$")
_FENCE = re.compile(r"^(`{3,}|~{3,})")
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_REF_LINK = re.compile(r"\[([^\]]+)\]\[[^\]]*\]")
_INCLUDE = re.compile(r"\[!(?:INCLUDE|include)[^\]]*\]\([^)]*\)|\[!(?:INCLUDE|include)[^\]]*\]")
_ALERT = re.compile(r"^\s*>\s*\[!(?:NOTE|TIP|IMPORTANT|WARNING|CAUTION)\]\s*$", re.IGNORECASE)
_HTML_TAG = re.compile(r"</?[A-Za-z][^>]*>")
_EMPHASIS = re.compile(r"(?<!\w)(\*\*|__|\*|_)(?=\S)(.+?)(?<=\S)\1(?!\w)")
_INLINE_CODE = re.compile(r"`([^`]*)`")
_BLOCKQUOTE = re.compile(r"^\s*>\s?")


def _strip_front_matter(text: str) -> tuple[Dict[str, str], str]:
    if not text.startswith("---"):
        return {}, text
    lines = text.splitlines()
    if lines[0].strip() != "---":
        return {}, text
    for idx in range(1, len(lines)):
        if lines[idx].strip() in ("---", "..."):
            meta: Dict[str, str] = {}
            for line in lines[1:idx]:
                if ":" in line and not line.startswith((" ", "\t")):
                    key, value = line.split(":", 1)
                    meta[key.strip()] = value.strip().strip("'\"")
            return meta, "\n".join(lines[idx + 1 :])
    raise ParseError("Unterminated front matter block")


def _strip_markdown_line(line: str) -> str:
    line = _BLOCKQUOTE.sub("", line)
    line = _INCLUDE.sub("", line)
    line = _IMAGE.sub(r"\1", line)
    line = _LINK.sub(r"\1", line)
    line = _REF_LINK.sub(r"\1", line)
    line = _HTML_TAG.sub("", line)
    line = _INLINE_CODE.sub(r"\1", line)
    line = _EMPHASIS.sub(r"\2", line)
    return line.rstrip()


def normalize_markdown(text: str) -> List[Section]:
    """Split a markdown document on ATX headings, stripping inline markup."""
    meta, content = _strip_front_matter(text.replace("\r\n", "\n"))
    default_title = meta.get("title") or DEFAULT_TITLE

    sections: List[Section] = []
    stack: List[tuple[int, str]] = []
    current_title = default_title
    body_lines: List[str] = []
    fence: Optional[str] = None

    def flush() -> None:
        body = "\n".join(body_lines).strip()
        body_lines.clear()
        if not body:
            return
        path = _build_path(stack) if stack else current_title
        sections.append(Section(title=current_title, section_path=path, body=body))

    for raw_line in content.split("\n"):
        fence_match = _FENCE.match(raw_line.strip())
        if fence is not None:
            if fence_match and raw_line.strip().startswith(fence):
                fence = None
            else:
                body_lines.append(raw_line.rstrip())
            continue
        if fence_match:
            fence = fence_match.group(1)[:3]
            continue

        heading = _ATX_HEADING.match(raw_line.strip())
        if heading:
            title = collapse_whitespace(_strip_markdown_line(heading.group(2)))
            if not title:
                continue
            flush()
            _push_heading(stack, len(heading.group(1)), title)
            current_title = title
            continue

        stripped = raw_line.strip()
        if stripped.startswith(":::") or _ALERT.match(raw_line):
            continue
        body_lines.append(_strip_markdown_line(raw_line))

    flush()
    return sections


# --------------------------------------------------------------------------- Info

INFO_SEPARATOR = "\x1f"
_INFO_FIELD = re.compile(r"(File|Node|Next|Prev|Up):\s*([^,\t]*)")
_INFO_ROOTS = {"top", "(dir)"}


def _parse_info_header(line: str) -> Dict[str, str]:
    return {key: value.strip() for key, value in _INFO_FIELD.findall(line)}


def _info_breadcrumb(name: str, parents: Dict[str, str]) -> str:
    path = [name]
    seen = {name}
    node = parents.get(name)
    while node and node.lower() not in _INFO_ROOTS and node not in seen:
        path.append(node)
        seen.add(node)
        node = parents.get(node)
    return PATH_SEPARATOR.join(reversed(path))


def _parse_info_node(chunk: str) -> tuple[Dict[str, str], str]:
    lines = chunk.strip("\n").split("\n")
    header_idx = next((idx for idx, line in enumerate(lines) if line.strip()), None)
    if header_idx is None:
        raise ParseError("Empty info node")
    header = _parse_info_header(lines[header_idx])
    if not header.get("Node"):
        raise ParseError("Info chunk without a Node: header")
    body = "\n".join(lines[header_idx + 1 :]).strip()
    return header, body


def normalize_info(text: str) -> List[Section]:
    """Split a GNU info file into one section per node."""
    nodes: List[tuple[str, str]] = []
    parents: Dict[str, str] = {}
    for chunk in text.split(INFO_SEPARATOR):
        if not chunk.strip():
            continue
        try:
            header, body = _parse_info_node(chunk)
        except ParseError as exc:
            LOGGER.debug("Skipping info chunk: %s", exc)
            continue
        name = header["Node"]
        if header.get("Up"):
            parents[name] = header["Up"]
        nodes.append((name, body))

    sections: List[Section] = []
    for name, body in nodes:
        if not body:
            continue
        sections.append(
            Section(title=name, section_path=_info_breadcrumb(name, parents), body=body)
        )
    return sections


NORMALIZERS: Dict[SourceKind, Callable[[str], List[Section]]] = {
    SourceKind.POSTGRES_HTML: normalize_html,
    SourceKind.MYSQL_INFO: normalize_info,
    SourceKind.SQLSERVER_MARKDOWN: normalize_markdown,
}


def normalize(raw: str, source_kind: SourceKind) -> List[Section]:
    """Dispatch ``raw`` to the normalizer for ``source_kind``."""
    return NORMALIZERS[SourceKind(source_kind)](raw)
