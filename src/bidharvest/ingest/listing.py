from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlencode, urljoin

from bidharvest.config import SiteConfig
from bidharvest.extract.accessor import DocumentAccessor, Element
from bidharvest.extract.record import DEFAULT_TITLE
from bidharvest.extract.tables import normalize_header

logger = logging.getLogger(__name__)

_TIME_SUFFIX = r"(?:\s+\d{1,2}:\d{2}(?::\d{2})?\s*(?:[AaPp][Mm])?)?"
_DATE_PATTERN = re.compile(
    rf"^(?:\d{{1,2}}/\d{{1,2}}/\d{{4}}|\d{{4}}-\d{{1,2}}-\d{{1,2}}|[A-Za-z]{{3}}\s+\d{{1,2}},?\s+\d{{4}}){_TIME_SUFFIX}$"
)
DATE_FALLBACK_SELECTORS = ("[data-opendate]", ".open-date", "[data-date]")


def looks_like_date(text: str | None) -> bool:
    return bool(text) and bool(_DATE_PATTERN.match(text.strip()))


@dataclass(frozen=True, slots=True)
class ListingEntry:
    external_id: str
    title: str
    detail_link: str
    page_number: int
    ordinal: int
    open_date: str | None = None
    synthetic_id: bool = False


def _cells(row: Element) -> list[Element]:
    return [child for child in row.children() if child.tag in ("td", "th")]


def _cell_text(cells: list[Element], column: int) -> str:
    index = column - 1
    return cells[index].text() if 0 <= index < len(cells) else ""


class ListingParser:
    """Reads listing rows for one site."""

    def __init__(self, site: SiteConfig) -> None:
        self.site = site
        self._header_hints = {normalize_header(hint) for hint in site.header_row_hints}

    def page_url(self, page_number: int, page_size: int) -> str:
        path = self.site.page_path_template.format(size=page_size, page=page_number)
        url = self.site.search_url.rstrip("/") + path
        if self.site.sort_params:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{urlencode(list(self.site.sort_params))}"
        return url

    def rows(self, document: DocumentAccessor) -> list[Element]:
        rows: list[Element] = []
        for selector in self.site.listing_row_selectors:
            try:
                rows = document.select(selector)
            except Exception as exc:
                logger.debug("Listing selector %r failed: %s", selector, exc)
                continue
            if rows:
                break
        if rows and self._is_header_row(rows[0]):
            rows = rows[1:]
        return rows

    def _is_header_row(self, row: Element) -> bool:
        cells = _cells(row)
        if not cells:
            return False
        if all(cell.tag == "th" for cell in cells):
            return True
        return any(normalize_header(cell.text()) in self._header_hints for cell in cells)

    def parse_row(self, row: Element, page_number: int, ordinal: int) -> ListingEntry | None:
        cells = _cells(row)

        external_id = _cell_text(cells, self.site.id_column) or (row.attr("data-id") or "")
        synthetic = not external_id
        if synthetic:
            external_id = f"listing-{page_number}-{ordinal}"

        title = _cell_text(cells, self.site.title_column)
        if not title:
            link_element = row.select_one("td a")
            title = link_element.text() if link_element is not None else ""

        link = self._link(row)
        if link is None and synthetic:
            return None
        detail_link = (
            urljoin(self.site.base_url, link)
            if link
            else f"{self.site.search_url}?{urlencode({'id': external_id})}"
        )

        return ListingEntry(
            external_id=external_id,
            title=title or DEFAULT_TITLE,
            detail_link=detail_link,
            page_number=page_number,
            ordinal=ordinal,
            open_date=self._open_date(row, cells),
            synthetic_id=synthetic,
        )

    def _link(self, row: Element) -> str | None:
        for selector in self.site.link_selectors:
            element = row.select_one(selector)
            if element is not None:
                href = element.attr("href")
                if href and not href.startswith("#"):
                    return href
        return None

    def _open_date(self, row: Element, cells: list[Element]) -> str | None:
        first, last = self.site.date_columns
        for column in range(first, last + 1):
            text = _cell_text(cells, column)
            if looks_like_date(text):
                return text
        for selector in DATE_FALLBACK_SELECTORS:
            element = row.select_one(selector)
            if element is None:
                continue
            attribute = selector.strip("[]") if selector.startswith("[") else None
            text = element.text() or (element.attr(attribute) if attribute else None)
            if looks_like_date(text):
                return text
        return None
