"""Fetchers turning a catalog entry into normalized documents.

One fetcher exists per :class:`~docpacks.models.SourceKind`; :func:`fetch_docs`
picks the right one from :data:`FETCHERS`.
"""

from __future__ import annotations

import gzip
import logging
import shutil
import tarfile
import tempfile
import zlib
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import IO, Callable, Dict, Iterator, List, Optional, Protocol
from urllib.parse import urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

from docpacks.config import DEFAULT_MAX_PAGES, DEFAULT_USER_AGENT, AppConfig
from docpacks.errors import DecompressError, DownloadError, ParseError
from docpacks.ids import slugify_anchor
from docpacks.ingestion.normalize import normalize_html, normalize_info, normalize_markdown
from docpacks.models import DocPack, NormalizedDoc, Section, SourceKind
from docpacks.utils.files import mirror_bytes, sanitize_filename

LOGGER = logging.getLogger(__name__)

PAGE_SUFFIXES = (".html", ".htm")
DOCS_ROOT_MARKER = "/docs/"
MARKDOWN_SUFFIX = ".md"
_DECOMPRESS_ERRORS = (tarfile.TarError, gzip.BadGzipFile, EOFError, zlib.error)


class Fetcher(Protocol):
    def fetch(self, pack: DocPack, source_dir: Optional[Path] = None) -> List[NormalizedDoc]:
        ...


@contextmanager
def _session_scope(
    session: Optional[requests.Session], user_agent: str
) -> Iterator[requests.Session]:
    if session is not None:
        yield session
        return
    owned = requests.Session()
    owned.headers["User-Agent"] = user_agent
    try:
        yield owned
    finally:
        owned.close()


def _get(
    session: requests.Session,
    url: str,
    pack: DocPack,
    *,
    timeout: Optional[float] = None,
    stream: bool = False,
) -> requests.Response:
    try:
        return session.get(url, timeout=timeout, stream=stream)
    except requests.RequestException as exc:
        raise DownloadError(
            f"Download failed for {url}: {exc}", db=pack.db, version=pack.version
        ) from exc


def _require_ok(response: requests.Response, url: str, pack: DocPack) -> None:
    if not response.ok:
        response.close()
        raise DownloadError(
            f"Failed to download {url}: HTTP {response.status_code}",
            db=pack.db,
            version=pack.version,
        )


def _stamp(sections: List[Section], source_url: str) -> List[NormalizedDoc]:
    return [
        NormalizedDoc(
            title=section.title,
            section_path=section.section_path,
            body=section.body,
            source_url=source_url,
        )
        for section in sections
    ]


# ----------------------------------------------------------------- HTML crawling


def canonicalize_url(url: str) -> str:
    """Drop fragment, query and params so each page has one identity."""
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))


def is_allowed(url: str, base_url: str, version: str) -> bool:
    """Same host as ``base_url``, under ``/docs/{version}/`` and page-like."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False
    if parsed.hostname != urlparse(base_url).hostname:
        return False
    path = parsed.path
    if f"/docs/{version}/" not in path:
        return False
    return path.endswith(PAGE_SUFFIXES) or path.endswith("/")


def extract_links(html: str, page_url: str, base_url: str, version: str) -> List[str]:
    """Canonical in-scope links of a page, in document order, without duplicates."""
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        link = canonicalize_url(urljoin(page_url, anchor["href"]))
        if link in seen or not is_allowed(link, base_url, version):
            continue
        seen.add(link)
        links.append(link)
    return links


class HtmlCrawler:
    """Breadth-first crawler over a versioned HTML manual.

    Pages are fetched one at a time. The crawl stops once ``max_pages`` pages
    have been visited; whatever is still queued at that point is dropped.
    """

    def __init__(
        self,
        *,
        max_pages: int = DEFAULT_MAX_PAGES,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.max_pages = max_pages
        self.timeout = timeout
        self.user_agent = user_agent
        self.session = session

    @classmethod
    def from_config(cls, config: AppConfig) -> "HtmlCrawler":
        return cls(
            max_pages=config.max_pages,
            timeout=config.request_timeout,
            user_agent=config.user_agent,
        )

    def fetch(self, pack: DocPack, source_dir: Optional[Path] = None) -> List[NormalizedDoc]:
        start = canonicalize_url(pack.source_url)
        queue: List[str] = [start]
        queued = {start}
        visited: set[str] = set()
        head = 0
        docs: List[NormalizedDoc] = []

        with _session_scope(self.session, self.user_agent) as session:
            while head < len(queue):
                if len(visited) >= self.max_pages:
                    LOGGER.info(
                        "Page budget of %d reached; dropping %d queued pages",
                        self.max_pages,
                        len(queue) - head,
                    )
                    break
                url = queue[head]
                head += 1
                if url in visited:
                    continue
                visited.add(url)

                html = self._fetch_page(session, url, pack, is_start=url == start)
                if html is None:
                    continue
                if source_dir is not None:
                    name = sanitize_filename(urlparse(url).path) + ".html"
                    mirror_bytes(source_dir / name, html.encode("utf-8"))

                try:
                    sections = normalize_html(html)
                except ParseError as exc:
                    LOGGER.warning("Skipping page %s: %s", url, exc)
                else:
                    docs.extend(_stamp(sections, url))

                for link in extract_links(html, url, pack.source_url, pack.version):
                    if link not in queued:
                        queued.add(link)
                        queue.append(link)

        LOGGER.info("Crawled %d pages from %s", len(visited), pack.source_url)
        return docs

    def _fetch_page(
        self, session: requests.Session, url: str, pack: DocPack, *, is_start: bool
    ) -> Optional[str]:
        LOGGER.debug("GET %s", url)
        response = _get(session, url, pack, timeout=self.timeout)
        if is_start:
            _require_ok(response, url, pack)
        elif not response.ok:
            LOGGER.warning("Skipping %s: HTTP %s", url, response.status_code)
            return None
        try:
            return response.text
        except requests.RequestException as exc:
            raise DownloadError(
                f"Failed to read {url}: {exc}", db=pack.db, version=pack.version
            ) from exc


# ------------------------------------------------------------ gzip single file


class InfoArchiveFetcher:
    """Downloads one gzip-compressed GNU info manual."""

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.user_agent = user_agent
        self.session = session

    @classmethod
    def from_config(cls, config: AppConfig) -> "InfoArchiveFetcher":
        return cls(user_agent=config.user_agent)

    def fetch(self, pack: DocPack, source_dir: Optional[Path] = None) -> List[NormalizedDoc]:
        with _session_scope(self.session, self.user_agent) as session:
            response = _get(session, pack.source_url, pack)
            _require_ok(response, pack.source_url, pack)
            try:
                payload = response.content
            except requests.RequestException as exc:
                raise DownloadError(
                    f"Failed to read {pack.source_url}: {exc}", db=pack.db, version=pack.version
                ) from exc

        if source_dir is not None:
            name = PurePosixPath(urlparse(pack.source_url).path).name or "source.gz"
            mirror_bytes(source_dir / name, payload)

        try:
            text = gzip.decompress(payload).decode("utf-8", errors="replace")
        except _DECOMPRESS_ERRORS as exc:
            raise DecompressError(
                f"Could not decompress {pack.source_url}: {exc}", db=pack.db, version=pack.version
            ) from exc

        docs: List[NormalizedDoc] = []
        for section in normalize_info(text):
            anchor = slugify_anchor(section.section_path)
            docs.extend(_stamp([section], f"{pack.canonical_base_url}#{anchor}"))
        LOGGER.info("Read %d info nodes from %s", len(docs), pack.source_url)
        return docs


# ------------------------------------------------------------- gzip+tar archive


def relative_docs_path(member_name: str) -> Optional[str]:
    """Path below the docs root for markdown members, ``None`` for anything else."""
    path = member_name.replace("\\", "/")
    if DOCS_ROOT_MARKER not in path or not path.endswith(MARKDOWN_SUFFIX):
        return None
    relative = path.split(DOCS_ROOT_MARKER, 1)[1].lstrip("/")
    if not relative or ".." in PurePosixPath(relative).parts:
        return None
    return relative


class MarkdownArchiveFetcher:
    """Downloads a gzip+tar snapshot of a markdown documentation repository."""

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.user_agent = user_agent
        self.session = session

    @classmethod
    def from_config(cls, config: AppConfig) -> "MarkdownArchiveFetcher":
        return cls(user_agent=config.user_agent)

    def fetch(self, pack: DocPack, source_dir: Optional[Path] = None) -> List[NormalizedDoc]:
        with tempfile.TemporaryFile() as spool:
            with _session_scope(self.session, self.user_agent) as session:
                response = _get(session, pack.source_url, pack, stream=True)
                _require_ok(response, pack.source_url, pack)
                try:
                    for block in response.iter_content(chunk_size=1 << 20):
                        spool.write(block)
                except requests.RequestException as exc:
                    raise DownloadError(
                        f"Failed to read {pack.source_url}: {exc}",
                        db=pack.db,
                        version=pack.version,
                    ) from exc
                finally:
                    response.close()

            if source_dir is not None:
                self._mirror_archive(spool, source_dir / "archive.tar.gz")
            spool.seek(0)
            return self._read_archive(spool, pack, source_dir)

    @staticmethod
    def _mirror_archive(spool: IO[bytes], dest: Path) -> None:
        spool.seek(0)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with dest.open("wb") as handle:
                shutil.copyfileobj(spool, handle)
        except OSError as exc:
            LOGGER.warning("Could not mirror source to %s: %s", dest, exc)

    def _read_archive(
        self, spool: IO[bytes], pack: DocPack, source_dir: Optional[Path]
    ) -> List[NormalizedDoc]:
        docs: List[NormalizedDoc] = []
        files = 0
        try:
            with tarfile.open(fileobj=spool, mode="r|gz") as archive:
                for member in archive:
                    if not member.isfile():
                        continue
                    relative = relative_docs_path(member.name)
                    if relative is None:
                        continue
                    handle = archive.extractfile(member)
                    if handle is None:
                        continue
                    content = handle.read().decode("utf-8", errors="replace")
                    files += 1
                    if source_dir is not None:
                        mirror_bytes(source_dir / relative, content.encode("utf-8"))
                    try:
                        sections = normalize_markdown(content)
                    except ParseError as exc:
                        LOGGER.warning("Skipping %s: %s", member.name, exc)
                        continue
                    canonical = pack.canonical_base_url + relative[: -len(MARKDOWN_SUFFIX)]
                    docs.extend(_stamp(sections, canonical))
        except _DECOMPRESS_ERRORS as exc:
            raise DecompressError(
                f"Could not read archive {pack.source_url}: {exc}",
                db=pack.db,
                version=pack.version,
            ) from exc
        LOGGER.info("Read %d markdown files from %s", files, pack.source_url)
        return docs


FETCHERS: Dict[SourceKind, Callable[[AppConfig], Fetcher]] = {
    SourceKind.POSTGRES_HTML: HtmlCrawler.from_config,
    SourceKind.MYSQL_INFO: InfoArchiveFetcher.from_config,
    SourceKind.SQLSERVER_MARKDOWN: MarkdownArchiveFetcher.from_config,
}


def get_fetcher(source_kind: SourceKind, config: Optional[AppConfig] = None) -> Fetcher:
    return FETCHERS[SourceKind(source_kind)](config or AppConfig())


def fetch_docs(
    pack: DocPack, source_dir: Optional[Path] = None, *, config: Optional[AppConfig] = None
) -> List[NormalizedDoc]:
    """Fetch and normalize every section of ``pack``."""
    return get_fetcher(pack.source_kind, config).fetch(pack, source_dir)
