"""Label to value lookup across tables, definition lists and free text."""

from __future__ import annotations

import re
from functools import partial
from typing import Sequence

from .accessor import Element
from .resolver import resolve
from .tables import TableDecoder, header_contains, normalize_header, whole_word_pattern

_SEPARATORS = " :-–—\t\n|"
_MAX_PARENT_VALUE_LENGTH = 500
_SKIPPED_TAGS = frozenset({"script", "style", "noscript", "head", "title"})


class LabeledValueExtractor:
    """Finds the value printed next to any of a list of labels.

    Tabular layouts are tried for every label first, then a free-text scan.
    Earlier labels win within a strategy. The result is either a non-empty
    string or ``None``; a match that only repeats a label is discarded.
    """

    def __init__(self, decoder: TableDecoder | None = None) -> None:
        self.decoder = decoder or TableDecoder()

    def extract(self, scope: Element, labels: Sequence[str]) -> str | None:
        wanted = [label for label in labels if label and label.strip()]
        if not wanted:
            return None
        strategies = [partial(self.from_tables, scope, label, wanted) for label in wanted]
        strategies += [partial(self.from_text, scope, label, wanted) for label in wanted]
        return resolve(strategies)

    def from_tables(self, scope: Element, label: str, all_labels: Sequence[str] = ()) -> str | None:
        rejected = _label_keys(all_labels or [label])
        for table in self.decoder.tables_in(scope):
            decoded = self.decoder.decode(table)
            # Two-column tables without a header row are label/value rows, handled below.
            if decoded.inferred_headers and len(decoded.headers) <= 2:
                continue
            value = _accept(decoded.first_value(label), rejected)
            if value is not None:
                return value

        key = normalize_header(label)
        for term, raw_value in self.decoder.key_value_pairs(scope):
            if header_contains(normalize_header(term), key):
                value = _accept(raw_value, rejected)
                if value is not None:
                    return value
        return None

    def from_text(self, scope: Element, label: str, all_labels: Sequence[str] = ()) -> str | None:
        rejected = _label_keys(all_labels or [label])
        needle = label.strip().lower()
        for element in _holders(scope, needle):
            for candidate in (
                _trailing_text(element, needle),
                _sibling_text(element),
                _parent_text(element, needle),
            ):
                value = _accept(candidate, rejected)
                if value is not None:
                    return value
        return None


def _label_keys(labels: Sequence[str]) -> set[str]:
    return {normalize_header(label) for label in labels if label}


def _accept(raw: str | None, rejected: set[str]) -> str | None:
    if raw is None:
        return None
    value = raw.strip(_SEPARATORS).strip()
    if not value:
        return None
    if normalize_header(value) in rejected:
        return None
    return value


def _find_label(text: str, needle: str) -> re.Match[str] | None:
    """Case-insensitive match of the label as whole words."""

    return re.search(whole_word_pattern(needle), text, re.IGNORECASE)


def _holders(scope: Element, needle: str) -> list[Element]:
    """Elements whose own text nodes carry the label, in document order."""

    return [
        element
        for element in [scope, *scope.select("*")]
        if element.tag not in _SKIPPED_TAGS and _find_label(element.own_text(), needle) is not None
    ]


def _after(text: str, needle: str) -> str | None:
    match = _find_label(text, needle)
    if match is None:
        return None
    return text[match.end():]


def _trailing_text(element: Element, needle: str) -> str | None:
    return _after(element.text(), needle)


def _sibling_text(element: Element) -> str | None:
    sibling = element.next_sibling()
    return sibling.text() if sibling is not None else None


def _parent_text(element: Element, needle: str) -> str | None:
    parent = element.parent()
    if parent is None:
        return None
    text = parent.text()
    if len(text) > _MAX_PARENT_VALUE_LENGTH:
        return None
    match = _find_label(text, needle)
    if match is None:
        return None
    return (text[:match.start()] + text[match.end():]).strip()
