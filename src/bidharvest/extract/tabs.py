"""Harvest content hidden behind UI tabs."""

from __future__ import annotations

import logging
import re
from typing import Sequence

from .accessor import DocumentAccessor, Element, is_active
from .tables import TableDecoder

logger = logging.getLogger(__name__)

TAB_SELECTORS: tuple[str, ...] = (
    ".tab",
    ".nav-tab",
    '[role="tab"]',
    ".tab-button",
    ".tab-link",
    "button[data-tab]",
    "a[data-tab]",
    ".ui-tabs-nav li",
    ".tabs li a",
    ".tab-header",
)

_MAIN_CONTENT_SELECTORS = ("main", ".content", ".main-content", '[role="main"]')
_SAFE_NAME = re.compile(r"^[a-z0-9_-]+$")


def tab_name(tab: Element) -> str | None:
    """Visible text, then ``data-tab``, then ``aria-label``, then ``id``."""

    text = tab.text()
    if text:
        return _slug(text)
    for attribute in ("data-tab", "aria-label"):
        value = tab.attr(attribute)
        if value:
            return _slug(value)
    element_id = tab.attr("id")
    return element_id.lower() if element_id else None


def _slug(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


def is_hidden(element: Element) -> bool:
    if element.has_attr("hidden") or element.attr("aria-hidden") == "true":
        return True
    style = (element.attr("style") or "").replace(" ", "").lower()
    return "display:none" in style


class TabbedContentExtractor:
    def __init__(
        self,
        decoder: TableDecoder | None = None,
        *,
        tab_selectors: Sequence[str] = TAB_SELECTORS,
        settle_seconds: float = 0.5,
    ) -> None:
        self.decoder = decoder or TableDecoder()
        self.tab_selectors = tuple(tab_selectors)
        self.settle_seconds = settle_seconds

    def find_tabs(self, document: DocumentAccessor) -> list[Element]:
        # The first selector that matches anything defines the tab set.
        for selector in self.tab_selectors:
            try:
                found = document.select(selector)
            except Exception as exc:
                logger.debug("Tab selector %r failed: %s", selector, exc)
                continue
            if found:
                return found
        return []

    async def extract(self, document: DocumentAccessor) -> dict[str, str]:
        """Map of tab name to content. Tabs that cannot be activated are left out."""

        contents: dict[str, str] = {}
        for tab in self.find_tabs(document):
            name = tab_name(tab)
            if not name:
                continue
            if not await self.activate(document, tab):
                continue
            await document.wait_for_idle(self.settle_seconds)
            content = self.panel_content(document, name)
            if content:
                contents[name] = content
        return contents

    async def activate(self, document: DocumentAccessor, tab: Element) -> bool:
        if is_active(tab):
            return True
        try:
            await document.click(tab)
        except Exception as exc:
            logger.debug("Could not activate tab %r: %s", tab, exc)
            return False
        return True

    def panel_content(self, document: DocumentAccessor, name: str) -> str | None:
        for panel in self._panel_candidates(document, name):
            content = self.render(panel)
            if content:
                return content
        for selector in _MAIN_CONTENT_SELECTORS:
            main = document.select_one(selector)
            if main is not None:
                content = main.text()
                if content:
                    return content
        return None

    def _panel_candidates(self, document: DocumentAccessor, name: str) -> list[Element]:
        selectors = [
            f'.tab-content[data-tab="{name}"]',
            f'.tab-panel[data-tab="{name}"]',
            f'.tab-pane[data-tab="{name}"]',
        ]
        if _SAFE_NAME.match(name):
            selectors += [f"#{name}-content", f"#{name}-panel", f"#{name}"]
        selectors += [
            ".tab-content.active",
            ".tab-panel.active",
            ".tab-pane.active",
            '[role="tabpanel"]',
            ".tab-pane",
            ".tab-content",
            ".tab-panel",
        ]
        candidates: list[Element] = []
        for selector in selectors:
            try:
                matches = document.select(selector)
            except Exception as exc:
                logger.debug("Panel selector %r failed: %s", selector, exc)
                continue
            candidates.extend(panel for panel in matches if not is_hidden(panel) and panel not in candidates)
        return candidates

    def render(self, panel: Element) -> str | None:
        """Panel text, with tables flattened to ``header: value`` lines."""

        tables = self.decoder.tables_in(panel)
        if not tables:
            return panel.text() or None

        lines: list[str] = []
        for table in tables:
            decoded = self.decoder.decode(table)
            for row in decoded.rows:
                cells = [f"{header}: {value}" for header, value in row.items() if value]
                if cells:
                    lines.append("; ".join(cells))
        for term, value in self.decoder.key_value_pairs(panel):
            if value and not any(value in line for line in lines):
                lines.append(f"{term}: {value}")
        return "\n".join(lines) or panel.text() or None
