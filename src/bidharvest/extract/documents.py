"""Attachment discovery on detail pages."""

from __future__ import annotations

import logging
import re
from urllib.parse import unquote, urljoin, urlparse

from .accessor import DocumentAccessor, Element
from .tables import TableDecoder
from .tabs import TabbedContentExtractor, tab_name
from bidharvest.normalize.canonical_id import generate_id
from bidharvest.normalize.schema import RawDocument

logger = logging.getLogger(__name__)

CONTAINER_SELECTORS: tuple[str, ...] = (
    ".documents",
    ".attachments",
    ".files",
    "[data-documents]",
    ".document-list",
)
LINK_SELECTORS: tuple[str, ...] = (
    'a[href*=".pdf"]',
    'a[href*=".doc"]',
    'a[href*=".docx"]',
    'a[href*=".xls"]',
    'a[href*=".xlsx"]',
    ".document-link",
    ".attachment-link",
    "[data-document]",
    ".file-download",
    "a[download]",
)
TABLE_SELECTORS: tuple[str, ...] = (
    "table.documents",
    "table.attachments",
    "table[data-documents]",
    ".documents table",
    ".attachments table",
)
_NAME_COLUMNS = ("file_name", "name", "document", "file")
_DOCUMENT_TAB_HINTS = ("document", "attachment", "file")

_SIZE_PATTERN = re.compile(r"^([\d.]+)\s*(B|KB|MB|GB|TB)?$", flags=re.IGNORECASE)
_SIZE_IN_TEXT_PATTERNS = (
    re.compile(r"\(([\d.]+\s*(?:B|KB|MB|GB|TB))\)", flags=re.IGNORECASE),
    re.compile(r"Size:\s*([\d.]+\s*(?:B|KB|MB|GB|TB))", flags=re.IGNORECASE),
    re.compile(r"\b([\d.]+\s*(?:KB|MB|GB|TB))\b", flags=re.IGNORECASE),
)
_UNIT_BYTES = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3, "TB": 1024**4}
_HAS_EXTENSION = re.compile(r"\.\w+$")


def parse_file_size(raw: str | None) -> int | None:
    """``"2.5 MB"`` to bytes using binary multipliers."""

    if not raw:
        return None
    match = _SIZE_PATTERN.match(raw.strip())
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    unit = (match.group(2) or "B").upper()
    return round(value * _UNIT_BYTES[unit])


def size_from_text(text: str | None) -> int | None:
    if not text:
        return None
    for pattern in _SIZE_IN_TEXT_PATTERNS:
        match = pattern.search(text)
        if match:
            size = parse_file_size(match.group(1))
            if size is not None:
                return size
    return None


def _all_matching(scope: Element, selectors: tuple[str, ...]) -> list[Element]:
    """Union of every selector's matches, first discovery wins."""

    found: list[Element] = []
    for selector in selectors:
        try:
            matches = scope.select(selector)
        except Exception as exc:
            logger.debug("Document selector %r failed: %s", selector, exc)
            continue
        found.extend(match for match in matches if match not in found)
    return found


class DocumentExtractor:
    def __init__(self, decoder: TableDecoder | None = None) -> None:
        self.decoder = decoder or TableDecoder()

    def find_links(self, scope: Element) -> list[tuple[Element, str | None]]:
        """Candidate links: inside a documents container, then page-wide, then document tables."""

        for container_selector in CONTAINER_SELECTORS:
            for container in scope.select(container_selector):
                links = _all_matching(container, LINK_SELECTORS)
                if links:
                    return [(link, None) for link in links]

        links = _all_matching(scope, LINK_SELECTORS)
        if links:
            return [(link, None) for link in links]

        for table_selector in TABLE_SELECTORS:
            found = self._links_from_table(scope, table_selector)
            if found:
                return found
        return []

    def _links_from_table(self, scope: Element, table_selector: str) -> list[tuple[Element, str | None]]:
        table = scope.select_one(table_selector)
        if table is None:
            return []
        decoded = self.decoder.decode(table)
        name_column = next((column for column in _NAME_COLUMNS if column in decoded.headers), None)
        rows = [row for row in table.select("tr") if row.select_one("a[href]") is not None]
        found: list[tuple[Element, str | None]] = []
        for row in rows:
            link = row.select_one("a[href]")
            name: str | None = None
            if name_column is not None:
                cells = [child for child in row.children() if child.tag in ("td", "th")]
                index = decoded.headers.index(name_column)
                if index < len(cells):
                    name = cells[index].text() or None
            if link is not None:
                found.append((link, name))
        return found

    def extract(self, scope: Element, page_url: str, parent_id: str) -> list[RawDocument]:
        documents: list[RawDocument] = []
        seen_urls: set[str] = set()
        for index, (link, table_name) in enumerate(self.find_links(scope)):
            try:
                document = self._document_from_link(link, table_name, page_url, parent_id, index)
            except Exception as exc:
                logger.debug("Skipping document link %d: %s", index, exc)
                continue
            if document is None or document.download_url in seen_urls:
                continue
            seen_urls.add(document.download_url)
            documents.append(document)
        return documents

    async def extract_with_tabs(
        self,
        document: DocumentAccessor,
        parent_id: str,
        tabs: TabbedContentExtractor | None = None,
    ) -> list[RawDocument]:
        """Like ``extract`` but opens a documents tab when the visible page has none."""

        found = self.extract(document.root(), document.url, parent_id)
        if found or tabs is None:
            return found
        for tab in tabs.find_tabs(document):
            name = tab_name(tab) or ""
            if not any(hint in name for hint in _DOCUMENT_TAB_HINTS):
                continue
            if not await tabs.activate(document, tab):
                continue
            await document.wait_for_idle(tabs.settle_seconds)
            found = self.extract(document.root(), document.url, parent_id)
            if found:
                return found
        return found

    def _document_from_link(
        self,
        link: Element,
        table_name: str | None,
        page_url: str,
        parent_id: str,
        index: int,
    ) -> RawDocument | None:
        href = link.attr("href")
        if not href or href.startswith("#") or href.lower().startswith(("javascript:", "mailto:")):
            return None
        download_url = urljoin(page_url, href) if page_url else href

        file_name = table_name or link.text()
        url_name = unquote(urlparse(download_url).path.rsplit("/", 1)[-1])
        if not file_name:
            file_name = url_name or f"document-{index + 1}"
        file_name = file_name.strip()
        if not file_name:
            return None
        if not _HAS_EXTENSION.search(file_name) and _HAS_EXTENSION.search(url_name):
            file_name = f"{file_name}.{url_name.rsplit('.', 1)[-1]}"

        return RawDocument(
            id=generate_id(f"{parent_id}|{download_url}", prefix="doc"),
            file_name=file_name,
            download_url=download_url,
            file_size_bytes=self._file_size(link),
            parent_id=parent_id,
        )

    def _file_size(self, link: Element) -> int | None:
        size = parse_file_size(link.attr("data-file-size"))
        if size is not None:
            return size
        parent = link.parent()
        if parent is not None:
            size = size_from_text(parent.text())
            if size is not None:
                return size
        sibling = link.next_sibling()
        return size_from_text(sibling.text()) if sibling is not None else None
