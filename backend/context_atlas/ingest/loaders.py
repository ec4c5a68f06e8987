"""Content loaders keyed by knowledge source type."""

from __future__ import annotations

import codecs
import re
from typing import Protocol

import requests
from bs4 import BeautifulSoup

from context_atlas.core.config import Settings
from context_atlas.core.errors import InvalidInputError, NotFoundError, UpstreamError
from context_atlas.core.logging import get_logger
from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.ingest.types import LoadedContent
from context_atlas.models.entities import KnowledgeSource
from context_atlas.retrieval.pages import PageStore

logger = get_logger(__name__)

ACCEPT_HEADER = "text/html,application/xhtml+xml,text/plain,text/markdown"
_STRIPPED_ELEMENTS = ("script", "style", "nav", "footer", "header")
_MULTI_NEWLINE_RE = re.compile(r"\n{3,}")
_INLINE_SPACE_RE = re.compile(r"[ \t]+")


class SourceLoader(Protocol):
    source_type: str

    def load(self, source: KnowledgeSource, content: str | None = None) -> LoadedContent: ...


class UrlLoader:
    """Fetch a remote page and reduce HTML to markdown-flavoured text."""

    source_type = "url"

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.timeout = settings.fetch_timeout
        self.max_bytes = settings.fetch_max_bytes
        self.user_agent = settings.fetch_user_agent
        self._session = session or requests.Session()

    def load(self, source: KnowledgeSource, content: str | None = None) -> LoadedContent:
        if not source.source_url:
            raise InvalidInputError("URL source has no source_url")
        raw, content_type = self._fetch(source.source_url)
        if "text/html" in content_type:
            return LoadedContent(text=html_to_text(raw), mime="text/html", origin=source.source_url)
        return LoadedContent(text=raw, mime=content_type or "text/plain", origin=source.source_url)

    def _fetch(self, url: str) -> tuple[str, str]:
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER}
        try:
            with self._session.get(url, headers=headers, timeout=self.timeout, stream=True) as resp:
                if not resp.ok:
                    raise UpstreamError(f"Failed to fetch URL: HTTP {resp.status_code}: {resp.reason}")
                declared = resp.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise InvalidInputError(f"Response body exceeds {self.max_bytes} bytes")
                body = bytearray()
                for block in resp.iter_content(chunk_size=65536):
                    body.extend(block)
                    if len(body) > self.max_bytes:
                        raise InvalidInputError(f"Response body exceeds {self.max_bytes} bytes")
                content_type = resp.headers.get("Content-Type", "")
                encoding = _declared_charset(content_type) or "utf-8"
        except requests.RequestException as exc:
            raise UpstreamError(f"Failed to fetch URL: {exc}") from exc
        logger.debug("Fetched %s (%s bytes, %s)", url, len(body), content_type)
        return bytes(body).decode(encoding, errors="replace"), content_type


class PageLoader:
    """Read a stored page as ``# title`` followed by its plain text."""

    source_type = "page"

    def __init__(self, pages: PageStore) -> None:
        self.pages = pages

    def load(self, source: KnowledgeSource, content: str | None = None) -> LoadedContent:
        if not source.page_id:
            raise InvalidInputError("Page source has no page_id")
        page = self.pages.get_page_content(source.page_id)
        if page is None:
            raise NotFoundError(f"Page {source.page_id} not found")
        title = (page["title"] or "").strip()
        text = page["text"]
        body = f"# {title}\n\n{text}" if title else text
        return LoadedContent(text=body, mime="text/markdown", origin=source.page_id)


class MarkdownLoader:
    """Markdown arrives with the ingestion call; nothing is cached between runs."""

    source_type = "markdown"

    def load(self, source: KnowledgeSource, content: str | None = None) -> LoadedContent:
        if content is None:
            raise InvalidInputError("Markdown source content not available for refresh")
        return LoadedContent(text=content, mime="text/markdown")


class FileLoader:
    source_type = "file"

    def load(self, source: KnowledgeSource, content: str | None = None) -> LoadedContent:
        raise InvalidInputError("File content extraction not yet implemented")


class LoaderRegistry:
    """Registry that selects the loader for a source type."""

    def __init__(self, db: SQLiteDatabase, settings: Settings) -> None:
        self._loaders: dict[str, SourceLoader] = {}
        for loader in (UrlLoader(settings), PageLoader(PageStore(db)), MarkdownLoader(), FileLoader()):
            self.register(loader)

    def register(self, loader: SourceLoader) -> None:
        self._loaders[loader.source_type] = loader

    def for_type(self, source_type: str) -> SourceLoader | None:
        return self._loaders.get(source_type)

    def load(self, source: KnowledgeSource, content: str | None = None) -> LoadedContent:
        loader = self.for_type(source.type)
        if loader is None:
            raise InvalidInputError(f"Unknown source type: {source.type}")
        return loader.load(source, content)


def _declared_charset(content_type: str) -> str | None:
    """Charset named in the Content-Type header, if any.

    requests assumes ISO-8859-1 for text/* responses without one; such bodies
    are decoded as UTF-8 instead. Unknown codec names are ignored.
    """
    if "charset=" not in content_type.lower():
        return None
    charset = requests.utils.get_encoding_from_headers({"content-type": content_type})
    try:
        return codecs.lookup(charset).name if charset else None
    except LookupError:
        return None


def html_to_text(html: str) -> str:
    """Flatten HTML into text, keeping headings as ``#`` lines and link targets."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_STRIPPED_ELEMENTS):
        tag.decompose()
    for anchor in soup.find_all("a"):
        href = anchor.get("href")
        label = anchor.get_text()
        anchor.replace_with(f"{label} ({href})" if href else label)
    for level in range(1, 7):
        for heading in soup.find_all(f"h{level}"):
            heading.replace_with(f"\n{'#' * level} {heading.get_text()}\n")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for paragraph in soup.find_all("p"):
        paragraph.insert_before("\n")
        paragraph.insert_after("\n")
        paragraph.unwrap()
    for item in soup.find_all("li"):
        item.insert_before("\n- ")
        item.unwrap()

    text = soup.get_text().replace("\xa0", " ")
    text = _MULTI_NEWLINE_RE.sub("\n\n", text)
    text = _INLINE_SPACE_RE.sub(" ", text)
    return text.strip()


__all__ = [
    "ACCEPT_HEADER",
    "SourceLoader",
    "UrlLoader",
    "PageLoader",
    "MarkdownLoader",
    "FileLoader",
    "LoaderRegistry",
    "html_to_text",
]
