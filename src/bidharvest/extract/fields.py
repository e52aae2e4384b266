from __future__ import annotations

import re
from dataclasses import dataclass
from functools import partial
from typing import Callable, Sequence

from .accessor import Element

_DATA_ATTRIBUTE_PATTERN = re.compile(r"^\[(data-[a-z0-9-]+)\]$")
_CODE_SPLIT_PATTERN = re.compile(r"[,;\n]")


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Generic selectors and labels for one raw field."""

    name: str
    selectors: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()


def selector_value(scope: Element, selector: str) -> str | None:
    """Text of the first match; ``mailto:``/``tel:`` targets and ``data-*`` values when it has none."""

    element = scope.select_one(selector)
    if element is None:
        return None
    text = element.text()
    if text:
        return text

    href = element.attr("href") or ""
    if href.lower().startswith("mailto:"):
        return href[len("mailto:"):].split("?", 1)[0].strip() or None
    if href.lower().startswith("tel:"):
        return " ".join(href[len("tel:"):].split()) or None

    attribute = _DATA_ATTRIBUTE_PATTERN.match(selector)
    if attribute:
        return element.attr(attribute.group(1))
    return None


def selector_strategies(scope: Element, selectors: Sequence[str]) -> list[Callable[[], str | None]]:
    return [partial(selector_value, scope, selector) for selector in selectors]


def split_codes(text: str | None) -> list[str]:
    if not text:
        return []
    return [code.strip() for code in _CODE_SPLIT_PATTERN.split(text) if code.strip()]
