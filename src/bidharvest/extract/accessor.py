"""Document accessor seam.

Extractors only talk to the ``Element`` and ``DocumentAccessor`` protocols. The
static implementation here parses HTML with BeautifulSoup and emulates tab
activation so that tabbed detail pages can be harvested without a browser.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterator, Protocol, runtime_checkable

from bs4 import BeautifulSoup, NavigableString, Tag

logger = logging.getLogger(__name__)

_ACTIVE_CLASSES = ("active", "selected", "current")


@runtime_checkable
class Element(Protocol):
    @property
    def tag(self) -> str: ...

    def text(self) -> str: ...

    def own_text(self) -> str: ...

    def lines(self) -> list[str]: ...

    def attr(self, name: str) -> str | None: ...

    def has_attr(self, name: str) -> bool: ...

    def has_class(self, name: str) -> bool: ...

    def select(self, selector: str) -> list["Element"]: ...

    def select_one(self, selector: str) -> "Element | None": ...

    def parent(self) -> "Element | None": ...

    def next_sibling(self) -> "Element | None": ...

    def children(self) -> list["Element"]: ...


@runtime_checkable
class DocumentAccessor(Protocol):
    @property
    def url(self) -> str: ...

    def root(self) -> Element: ...

    def select(self, selector: str) -> list[Element]: ...

    def select_one(self, selector: str) -> Element | None: ...

    async def navigate(self, url: str) -> None: ...

    async def click(self, element: Element) -> None: ...

    async def wait_for_idle(self, seconds: float = 0.0) -> None: ...


def _squash(value: str) -> str:
    return " ".join(value.split())


class SoupElement:
    __slots__ = ("_node",)

    def __init__(self, node: Tag) -> None:
        self._node = node

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SoupElement) and other._node is self._node

    def __hash__(self) -> int:
        return id(self._node)

    def __repr__(self) -> str:
        return f"SoupElement(<{self._node.name}>)"

    @property
    def node(self) -> Tag:
        return self._node

    @property
    def tag(self) -> str:
        return self._node.name or ""

    def text(self) -> str:
        return _squash(self._node.get_text(" ", strip=True))

    def own_text(self) -> str:
        parts = [str(child) for child in self._node.children if isinstance(child, NavigableString)]
        return _squash(" ".join(parts))

    def lines(self) -> list[str]:
        """Text split at element and line boundaries, each line squashed."""

        raw = self._node.get_text("\n")
        return [line for line in (_squash(part) for part in raw.splitlines()) if line]

    def attr(self, name: str) -> str | None:
        value = self._node.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            value = " ".join(value)
        cleaned = str(value).strip()
        return cleaned or None

    def has_attr(self, name: str) -> bool:
        return self._node.has_attr(name)

    def has_class(self, name: str) -> bool:
        return name in (self._node.get("class") or [])

    def select(self, selector: str) -> list[Element]:
        return [SoupElement(node) for node in self._node.select(selector)]

    def select_one(self, selector: str) -> Element | None:
        node = self._node.select_one(selector)
        return SoupElement(node) if node is not None else None

    def parent(self) -> Element | None:
        node = self._node.parent
        if node is None or not isinstance(node, Tag) or node.name == "[document]":
            return None
        return SoupElement(node)

    def next_sibling(self) -> Element | None:
        node = self._node.find_next_sibling()
        return SoupElement(node) if isinstance(node, Tag) else None

    def children(self) -> list[Element]:
        return [SoupElement(child) for child in self._node.children if isinstance(child, Tag)]


class SoupDocument:
    """Static HTML document.

    ``fetch_text`` is any callable returning page HTML for a URL; the polite
    HTTP client's ``get_text`` is the usual choice. It runs on a worker thread
    so the collector stays on one cooperative event loop.
    """

    def __init__(self, fetch_text: Any = None, *, html: str = "", url: str = "") -> None:
        self._fetch_text = fetch_text
        self._url = url
        self._soup = BeautifulSoup(html or "<html></html>", "html.parser")

    @classmethod
    def from_html(cls, html: str, url: str = "") -> "SoupDocument":
        return cls(html=html, url=url)

    @property
    def url(self) -> str:
        return self._url

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    def root(self) -> Element:
        return SoupElement(self._soup)

    def select(self, selector: str) -> list[Element]:
        return [SoupElement(node) for node in self._soup.select(selector)]

    def select_one(self, selector: str) -> Element | None:
        node = self._soup.select_one(selector)
        return SoupElement(node) if node is not None else None

    async def navigate(self, url: str) -> None:
        if self._fetch_text is None:
            raise RuntimeError("SoupDocument has no fetcher; build it with from_html() for offline use.")
        html = await asyncio.to_thread(self._fetch_text, url)
        self._soup = BeautifulSoup(html, "html.parser")
        self._url = url

    async def wait_for_idle(self, seconds: float = 0.0) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def click(self, element: Element) -> None:
        if not isinstance(element, SoupElement):
            raise TypeError(f"Cannot click foreign element {element!r}")
        tab = element.node
        if tab.has_attr("disabled") or tab.get("aria-disabled") == "true":
            raise RuntimeError("Element is disabled")

        for sibling in self._tab_group(tab):
            _set_active(sibling, False)
        _set_active(tab, True)

        panel = self._panel_for(tab)
        if panel is None:
            logger.debug("Clicked tab without a resolvable panel")
            return
        for other in self._panel_group(panel):
            _set_active(other, False)
            other["hidden"] = "hidden"
        _set_active(panel, True)
        if panel.has_attr("hidden"):
            del panel["hidden"]

    def _tab_group(self, tab: Tag) -> Iterator[Tag]:
        container = (
            tab.find_parent(attrs={"role": "tablist"})
            or tab.find_parent(["ul", "ol", "nav"])
            or tab.parent
        )
        if container is None:
            return iter(())
        return (
            node
            for node in container.find_all(True)
            if node is not tab and _looks_like_tab(node)
        )

    def _panel_group(self, panel: Tag) -> list[Tag]:
        parent = panel.parent
        if parent is None:
            return []
        return [node for node in parent.find_all(True, recursive=False) if node is not panel and _looks_like_panel(node)]

    def _panel_for(self, tab: Tag) -> Tag | None:
        controls = tab.get("aria-controls")
        if controls:
            found = self._soup.find(id=controls)
            if isinstance(found, Tag):
                return found
        for key in ("data-target", "data-bs-target", "href"):
            target = tab.get(key)
            if isinstance(target, str) and target.startswith("#") and len(target) > 1:
                found = self._soup.find(id=target[1:])
                if isinstance(found, Tag):
                    return found
        data_tab = tab.get("data-tab")
        if data_tab:
            for candidate in self._soup.find_all(attrs={"data-tab": data_tab}):
                if candidate is not tab and _looks_like_panel(candidate):
                    return candidate
            found = self._soup.find(id=data_tab) or self._soup.find(id=f"{data_tab}-content")
            if isinstance(found, Tag):
                return found
        return None


def _classes(node: Tag) -> list[str]:
    return list(node.get("class") or [])


def _looks_like_tab(node: Tag) -> bool:
    classes = _classes(node)
    return node.get("role") == "tab" or any(name in classes for name in ("tab", "nav-tab", "tab-button", "tab-link"))


def _looks_like_panel(node: Tag) -> bool:
    classes = _classes(node)
    return node.get("role") == "tabpanel" or any(
        name in classes for name in ("tab-pane", "tab-panel", "tab-content")
    )


def _set_active(node: Tag, active: bool) -> None:
    classes = [name for name in _classes(node) if name not in _ACTIVE_CLASSES]
    if active:
        classes.append("active")
    if classes:
        node["class"] = classes
    elif node.has_attr("class"):
        del node["class"]
    if node.get("role") == "tab" or node.has_attr("aria-selected"):
        node["aria-selected"] = "true" if active else "false"


def is_active(element: Element) -> bool:
    return any(element.has_class(name) for name in _ACTIVE_CLASSES) or element.attr("aria-selected") == "true"
